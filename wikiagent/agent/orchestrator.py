"""Conversation orchestrator: drives one agent round as an async generator."""

from __future__ import annotations

from typing import Any, AsyncIterator

from loguru import logger

from wikiagent.agent import status
from wikiagent.agent.context import AgentRunContext
from wikiagent.agent.models import AgentInstanceLatestStatus, AgentInstanceMessage
from wikiagent.hooks.runner import (
    AgentHooks,
    AgentStatusContext,
    ResponseContext,
    RoundDecision,
    UserMessageContext,
)
from wikiagent.prompts.concat import concat_prompts
from wikiagent.prompts.response import process_response
from wikiagent.providers.base import AIErrorDetail, AIStreamResponse

NO_USER_MESSAGE = "No user message found to process."


def merge_ai_config(*layers: dict[str, Any] | None) -> dict[str, Any]:
    """Recursively merge config dicts; later layers win on conflicting keys."""
    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in (layer or {}).items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = merge_ai_config(merged[key], value)
            elif isinstance(value, dict):
                merged[key] = merge_ai_config(value)
            else:
                merged[key] = value
    return merged


class ConversationOrchestrator:
    """
    Run one conversation round for an agent instance.

    ``run()`` yields ``working`` statuses while the LLM streams and always
    ends with exactly one terminal status (``completed`` or ``canceled``).
    A plugin voting ``self`` starts another LLM call on the extended history,
    up to ``settings.max_self_rounds`` extra calls per run.
    """

    def __init__(self, context: AgentRunContext, hooks: AgentHooks | None = None):
        self.context = context
        self._hooks = hooks
        self._request_id: str | None = None

    @property
    def hooks(self) -> AgentHooks:
        if self._hooks is None:
            from wikiagent.plugins.registry import create_hooks_with_plugins

            self._hooks = create_hooks_with_plugins(self.context.plugin_configs)
        return self._hooks

    async def run(self) -> AsyncIterator[AgentInstanceLatestStatus]:
        ctx = self.context
        try:
            user_message = await self._accept_user_message()
            if user_message is None:
                yield status.completed(NO_USER_MESSAGE, ctx)
                return

            ai_config = await self._merged_ai_config()
            if ctx.cancelled():
                logger.info(f"Agent {ctx.agent.id} cancelled before calling the LLM")
                yield status.canceled()
                return

            continuations = 0
            while True:
                outcome: dict[str, Any] = {}
                async for item in self._stream_round(ai_config, outcome):
                    yield item
                if not outcome.get("continue"):
                    return
                last_processed = outcome.get("processed", "")
                if continuations >= ctx.settings.max_self_rounds:
                    break
                continuations += 1

            logger.warning(
                f"Agent {ctx.agent.id} stopped self-continuation after {continuations} extra LLM calls"
            )
            await self._set_state("completed")
            yield status.completed(last_processed, ctx, self._request_id)
        except Exception as e:
            logger.error(
                f"Unexpected error in round for agent {ctx.agent.id} "
                f"(definition {ctx.definition.id}): {e}"
            )
            yield status.completed(f"Unexpected error: {e}", ctx)
        finally:
            if self._request_id and ctx.cancelled():
                try:
                    await ctx.llm.cancel_ai_request(self._request_id)
                except Exception as e:
                    logger.warning(f"Failed to cancel request {self._request_id}: {e}")

    async def _accept_user_message(self) -> AgentInstanceMessage | None:
        """Fire new-message hooks once per user message; return the message being answered."""
        ctx = self.context
        last = ctx.agent.last_message
        if last is None or last.role != "user":
            return None
        if not last.metadata.get("processed"):
            await self.hooks.user_message_received.call(UserMessageContext(run_context=ctx, message=last))
            await self._set_state("working")
            last.metadata["processed"] = True
        if not last.content.strip():
            return None
        return last

    async def _merged_ai_config(self) -> dict[str, Any]:
        ctx = self.context
        defaults = await ctx.llm.get_ai_config()
        return merge_ai_config(defaults, ctx.definition.ai_api_config.to_layer(), ctx.agent.ai_api_config)

    async def _set_state(self, state: str) -> None:
        await self.hooks.agent_status_changed.call(AgentStatusContext(run_context=self.context, state=state))

    async def _stream_round(
        self, ai_config: dict[str, Any], outcome: dict[str, Any]
    ) -> AsyncIterator[AgentInstanceLatestStatus]:
        """One LLM call. Sets ``outcome["continue"]`` when another call should follow."""
        ctx = self.context
        handler_config = ctx.definition.handler_config
        concat = await concat_prompts(
            handler_config.prompts,
            ctx.messages,
            ctx.plugin_configs,
            hooks=self.hooks,
            run_context=ctx,
        )
        logger.debug(f"Agent {ctx.agent.id} sending {len(concat.flat_prompts)} prompts")

        content = ""
        round_request_id: str | None = None
        chunk: AIStreamResponse
        async for chunk in ctx.llm.generate_from_ai(concat.flat_prompts, ai_config, agent_instance_id=ctx.agent.id):
            if chunk.request_id:
                # Message ids follow the first id; cancellation targets the latest.
                if round_request_id is None:
                    round_request_id = chunk.request_id
                self._request_id = chunk.request_id

            if ctx.cancelled():
                if self._request_id:
                    await ctx.llm.cancel_ai_request(self._request_id)
                    self._request_id = None
                logger.info(f"Agent {ctx.agent.id} cancelled mid-stream")
                yield status.canceled()
                return

            if chunk.status == "update":
                content = chunk.content
                await self.hooks.response_update.call(
                    ResponseContext(run_context=ctx, content=content, request_id=round_request_id)
                )
                yield status.working(content, ctx, round_request_id)

            elif chunk.status == "done":
                content = chunk.content or content
                self._request_id = None
                complete = await self.hooks.response_complete.call(
                    ResponseContext(run_context=ctx, content=content, request_id=round_request_id, status="done")
                )
                result = await process_response(
                    content,
                    ctx.messages,
                    ctx.plugin_configs,
                    handler_config.response,
                    self.hooks,
                    run_context=ctx,
                )
                decision = complete.decision.merge(
                    RoundDecision(
                        yield_next_round_to=result.yield_next_round_to,
                        new_user_message=result.new_user_message,
                        tool_call=result.tool_call,
                    )
                )
                if decision.continue_self:
                    if decision.new_user_message:
                        ctx.agent.add_user_message(decision.new_user_message, processed=True, auto_reply=True)
                    logger.info(f"Agent {ctx.agent.id} continues with another LLM call")
                    outcome["continue"] = True
                    outcome["processed"] = result.processed_response
                    yield status.working(result.processed_response, ctx, round_request_id)
                    return
                await self._set_state("completed")
                yield status.completed(result.processed_response, ctx, round_request_id)
                return

            elif chunk.status == "error":
                self._request_id = None
                detail = chunk.error_detail or AIErrorDetail(message=chunk.content)
                logger.error(f"LLM error for agent {ctx.agent.id}: {detail.code} {detail.message}")
                yield await self._record_error(detail, round_request_id)
                return

            elif chunk.status == "cancel":
                self._request_id = None
                yield status.canceled()
                return

        self._request_id = None
        logger.debug(f"Stream for agent {ctx.agent.id} ended without a terminal chunk")
        await self._set_state("completed")
        yield status.completed(content, ctx, round_request_id)

    async def _record_error(self, detail: AIErrorDetail, request_id: str | None) -> AgentInstanceLatestStatus:
        ctx = self.context
        result = status.error(f"Error: {detail.message or 'Unknown error'}", detail, ctx, request_id)
        message = result.message
        # A streamed partial reply shares the id; the error turn replaces it.
        for index, existing in enumerate(ctx.messages):
            if existing.id == message.id:
                ctx.messages[index] = message
                break
        else:
            ctx.append_message(message)

        if ctx.sink is not None:
            try:
                await ctx.sink.save_message(message)
                message.metadata["is_persisted"] = True
            except Exception as e:
                logger.warning(f"Failed to persist error message {message.id}: {e}")
        await self._set_state("completed")
        return result


async def run_agent_round(
    context: AgentRunContext, hooks: AgentHooks | None = None
) -> AsyncIterator[AgentInstanceLatestStatus]:
    """Convenience wrapper around ``ConversationOrchestrator(context).run()``."""
    async for item in ConversationOrchestrator(context, hooks).run():
        yield item
