"""Collaborator wrapper with retry/backoff and cross-provider failover."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator

from loguru import logger

from wikiagent.providers.base import AIErrorDetail, AIStreamResponse, LLMCollaborator


@dataclass
class FailoverCandidate:
    """Resolved collaborator candidate."""

    name: str
    collaborator: LLMCollaborator


class FailoverCollaborator(LLMCollaborator):
    """Wrap multiple collaborators and fail over on errors raised before any output.

    Once a candidate has streamed an ``update`` chunk its errors are surfaced
    as-is; replaying a half-streamed answer from another backend would show
    the user two different texts.
    """

    def __init__(
        self,
        *,
        candidates: list[FailoverCandidate],
        failover_policy: Any | None = None,
    ):
        if not candidates:
            raise ValueError("FailoverCollaborator requires at least one collaborator candidate.")
        super().__init__(api_key=None, api_base=None)
        self._candidates = list(candidates)
        self._policy = failover_policy
        self._owners: dict[str, tuple[LLMCollaborator, str]] = {}

    async def get_ai_config(self) -> dict[str, Any]:
        return await self._candidates[0].collaborator.get_ai_config()

    async def cancel_ai_request(self, request_id: str) -> None:
        entry = self._owners.get(request_id)
        if entry is not None:
            owner, inner_id = entry
            await owner.cancel_ai_request(inner_id)

    async def generate_from_ai(
        self,
        prompts: list[dict[str, Any]],
        ai_config: dict[str, Any],
        *,
        agent_instance_id: str | None = None,
    ) -> AsyncIterator[AIStreamResponse]:
        # Chunks carry the first attempt's id; _owners maps it to the live attempt.
        outer_id: str | None = None
        last_error: AIStreamResponse | None = None
        started = False

        try:
            for candidate in self._candidates:
                attempts, base_ms, max_ms = self._policy_for(candidate.name)
                for attempt_index in range(attempts):
                    had_update = False
                    failed: AIStreamResponse | None = None
                    request_id: str | None = None
                    try:
                        async for chunk in candidate.collaborator.generate_from_ai(
                            prompts,
                            ai_config,
                            agent_instance_id=agent_instance_id,
                        ):
                            if request_id is None:
                                request_id = chunk.request_id
                                if outer_id is None:
                                    outer_id = request_id
                                self._owners[outer_id] = (candidate.collaborator, request_id)
                            chunk = replace(chunk, request_id=outer_id)
                            if chunk.status == "start":
                                # Only the first attempt announces itself.
                                if not started:
                                    started = True
                                    yield chunk
                                continue
                            if chunk.status == "error" and not had_update:
                                failed = chunk
                                break
                            if chunk.status == "update":
                                had_update = True
                            yield chunk
                            if chunk.status in ("done", "cancel", "error"):
                                return
                    except Exception as exc:
                        if had_update:
                            raise
                        failed = AIStreamResponse(
                            request_id=outer_id or "",
                            status="error",
                            error_detail=AIErrorDetail.from_exception(exc, candidate.name),
                        )

                    if failed is None:
                        # Stream ended without a terminal chunk; nothing to retry.
                        return
                    last_error = failed
                    detail = failed.error_detail.message if failed.error_detail else "unknown error"
                    logger.warning(
                        f"LLM candidate {candidate.name} attempt {attempt_index + 1}/{attempts} failed: {detail}"
                    )
                    if attempt_index < attempts - 1:
                        await asyncio.sleep(self._backoff_s(base_ms, max_ms, attempt_index))

            yield last_error or AIStreamResponse(
                request_id=outer_id or "",
                status="error",
                error_detail=AIErrorDetail(
                    name="FailoverError",
                    code="EXHAUSTED",
                    message="failover candidates exhausted",
                ),
            )
        finally:
            if outer_id is not None:
                self._owners.pop(outer_id, None)

    def _policy_for(self, candidate_name: str) -> tuple[int, int, int]:
        # Defaults if policy config is absent.
        attempts = 2
        base_ms = 350
        max_ms = 5000

        policy = self._policy
        if policy is None:
            return attempts, base_ms, max_ms

        default = getattr(policy, "default", None)
        if default is not None:
            attempts = int(getattr(default, "max_attempts", attempts) or attempts)
            base_ms = int(getattr(default, "base_backoff_ms", base_ms) or 0)
            max_ms = int(getattr(default, "max_backoff_ms", max_ms) or max_ms)

        overrides = getattr(policy, "provider_overrides", {}) or {}
        override = overrides.get(candidate_name) or overrides.get(candidate_name.lower())
        if override is not None:
            attempts = int(getattr(override, "max_attempts", attempts) or attempts)
            base_ms = int(getattr(override, "base_backoff_ms", base_ms) or 0)
            max_ms = int(getattr(override, "max_backoff_ms", max_ms) or max_ms)

        return max(1, attempts), max(0, base_ms), max(1, max_ms)

    @staticmethod
    def _backoff_s(base_ms: int, max_ms: int, attempt_index: int) -> float:
        if base_ms <= 0:
            return 0.0
        raw = min(max_ms, base_ms * (2 ** max(0, attempt_index)))
        jitter = random.uniform(0, max(1, raw) * 0.2)
        return (raw + jitter) / 1000.0
