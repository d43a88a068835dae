"""LiteLLM collaborator implementation for multi-provider streaming."""

import uuid
from typing import Any, AsyncIterator

import litellm
from litellm import acompletion
from loguru import logger

from wikiagent.providers.base import AIErrorDetail, AIStreamResponse, LLMCollaborator


class LiteLLMCollaborator(LLMCollaborator):
    """
    LLM collaborator using LiteLLM for multi-provider support.

    Every call gets its own request id. ``cancel_ai_request`` flags the id and
    the stream stops at the next chunk boundary with a ``cancel`` chunk.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_provider: str = "openai",
        default_model: str = "gpt-4o-mini",
        extra_headers: dict[str, str] | None = None,
        timeout_seconds: int | None = None,
    ):
        super().__init__(api_key, api_base)
        self.default_provider = default_provider
        self.default_model = default_model
        self.extra_headers = extra_headers or {}
        self.timeout_seconds = timeout_seconds
        self._active: set[str] = set()
        self._cancelled: set[str] = set()

        # Disable LiteLLM logging noise
        litellm.suppress_debug_info = True

    async def get_ai_config(self) -> dict[str, Any]:
        return {
            "api": {"provider": self.default_provider, "model": self.default_model},
            "model_parameters": {"temperature": 0.7, "max_tokens": 4096},
        }

    async def cancel_ai_request(self, request_id: str) -> None:
        if request_id in self._active:
            logger.info(f"Cancelling LLM request {request_id}")
            self._cancelled.add(request_id)

    def is_active(self, request_id: str) -> bool:
        return request_id in self._active

    async def generate_from_ai(
        self,
        prompts: list[dict[str, Any]],
        ai_config: dict[str, Any],
        *,
        agent_instance_id: str | None = None,
    ) -> AsyncIterator[AIStreamResponse]:
        request_id = uuid.uuid4().hex
        provider = self._provider_name(ai_config)
        self._active.add(request_id)
        yield AIStreamResponse(request_id=request_id, status="start")

        try:
            kwargs = self._build_completion_kwargs(prompts, ai_config)
            logger.debug(
                f"LLM request {request_id} for agent {agent_instance_id}: "
                f"model={kwargs['model']} prompts={len(prompts)}"
            )
            try:
                stream = await acompletion(**kwargs)
            except Exception as e:
                logger.error(f"LLM request {request_id} failed to start: {e}")
                yield AIStreamResponse(
                    request_id=request_id,
                    status="error",
                    error_detail=AIErrorDetail.from_exception(e, provider),
                )
                return

            content_parts: list[str] = []
            try:
                async for chunk in stream:
                    if request_id in self._cancelled:
                        yield AIStreamResponse(request_id=request_id, status="cancel", content="".join(content_parts))
                        return
                    choice = self._get_first_choice(chunk)
                    if choice is None:
                        continue
                    text = self._extract_delta_text(self._obj_get(choice, "delta"))
                    if text:
                        content_parts.append(text)
                        yield AIStreamResponse(request_id=request_id, status="update", content="".join(content_parts))
            except Exception as e:
                logger.error(f"LLM request {request_id} stream broke: {e}")
                yield AIStreamResponse(
                    request_id=request_id,
                    status="error",
                    content="".join(content_parts),
                    error_detail=AIErrorDetail.from_exception(e, provider),
                )
                return

            yield AIStreamResponse(request_id=request_id, status="done", content="".join(content_parts))
        finally:
            self._active.discard(request_id)
            self._cancelled.discard(request_id)

    def _provider_name(self, ai_config: dict[str, Any]) -> str:
        api = ai_config.get("api") or {}
        return str(api.get("provider") or self.default_provider)

    def _build_completion_kwargs(self, prompts: list[dict[str, Any]], ai_config: dict[str, Any]) -> dict[str, Any]:
        api = ai_config.get("api") or {}
        params = ai_config.get("model_parameters") or {}
        model = str(api.get("model") or self.default_model)
        provider = self._provider_name(ai_config)
        model_name = model if "/" in model else f"{provider}/{model}"

        messages = list(prompts)
        system_prompt = params.get("system_prompt")
        if system_prompt:
            messages = [{"role": "system", "content": system_prompt}] + messages

        kwargs: dict[str, Any] = {
            "model": model_name,
            "messages": messages,
            "stream": True,
        }
        if params.get("temperature") is not None:
            kwargs["temperature"] = params["temperature"]
        if params.get("max_tokens") is not None:
            kwargs["max_tokens"] = params["max_tokens"]
        if params.get("top_p") is not None:
            kwargs["top_p"] = params["top_p"]
        if self.timeout_seconds:
            kwargs["timeout"] = self.timeout_seconds
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers
        return kwargs

    @staticmethod
    def _obj_get(obj: Any, key: str, default: Any = None) -> Any:
        if obj is None:
            return default
        if isinstance(obj, dict):
            return obj.get(key, default)
        return getattr(obj, key, default)

    def _get_first_choice(self, chunk: Any) -> Any:
        choices = self._obj_get(chunk, "choices", [])
        if isinstance(choices, list) and choices:
            return choices[0]
        return None

    def _extract_delta_text(self, delta: Any) -> str:
        content = self._obj_get(delta, "content")
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            out: list[str] = []
            for part in content:
                text = self._obj_get(part, "text")
                if isinstance(text, str):
                    out.append(text)
            return "".join(out)
        return ""
