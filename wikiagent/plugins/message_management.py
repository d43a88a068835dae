"""Core handlers that keep agent history and persistence in step with a round.

These are registered on every AgentHooks before any configured plugin.
Persistence is best-effort: a failing sink is logged and the round goes on.
"""

from __future__ import annotations

from datetime import datetime

from loguru import logger

from wikiagent.agent.models import AgentInstanceMessage, AgentStatus, new_message_id
from wikiagent.hooks.runner import (
    AgentHooks,
    AgentStatusContext,
    ResponseContext,
    ToolExecutionContext,
    UserMessageContext,
)

TAP_NAME = "messageManagement"
PENDING_ID_KEY = "pending_response_message_id"


def _response_message_id(context: ResponseContext, *, finish: bool = False) -> str:
    if context.request_id:
        return f"ai-response-{context.request_id}"
    # Without a request id each round still needs its own message.
    state = context.run_context.state
    if finish:
        return state.pop(PENDING_ID_KEY, None) or new_message_id("ai-response")
    return state.setdefault(PENDING_ID_KEY, new_message_id("ai-response"))


def _find_message(messages: list[AgentInstanceMessage], message_id: str) -> AgentInstanceMessage | None:
    for message in reversed(messages):
        if message.id == message_id:
            return message
    return None


async def on_user_message(context: UserMessageContext) -> None:
    sink = context.run_context.sink
    if sink is None:
        return
    try:
        await sink.save_message(context.message)
        context.message.metadata["is_persisted"] = True
    except Exception as e:
        logger.warning(f"Failed to persist user message {context.message.id}: {e}")


async def on_status_changed(context: AgentStatusContext) -> None:
    agent = context.run_context.agent
    agent.status = AgentStatus(state=context.state)
    sink = context.run_context.sink
    if sink is None:
        return
    try:
        await sink.update_status(agent.id, agent.status)
    except Exception as e:
        logger.warning(f"Failed to persist status '{context.state}' for agent {agent.id}: {e}")


async def on_response_update(context: ResponseContext) -> None:
    run_context = context.run_context
    message_id = _response_message_id(context)
    message = _find_message(run_context.messages, message_id)
    if message is None:
        message = run_context.append_message(
            AgentInstanceMessage(
                id=message_id,
                agent_id=run_context.agent.id,
                role="agent",
                content=context.content,
                metadata={"is_complete": False},
            )
        )
    else:
        message.content = context.content
        message.modified = datetime.now()

    if run_context.sink is None:
        return
    try:
        await run_context.sink.debounce_update_message(message, run_context.agent.id)
    except Exception as e:
        logger.warning(f"Failed to stream update for message {message_id}: {e}")


async def on_response_complete(context: ResponseContext) -> None:
    if context.status != "done":
        return
    run_context = context.run_context
    message_id = _response_message_id(context, finish=True)
    message = _find_message(run_context.messages, message_id)
    if message is None:
        message = run_context.append_message(
            AgentInstanceMessage(
                id=message_id,
                agent_id=run_context.agent.id,
                role="agent",
                content=context.content,
            )
        )
    message.content = context.content
    message.modified = datetime.now()
    message.metadata["is_complete"] = True

    if run_context.sink is None:
        return
    try:
        await run_context.sink.save_message(message)
        message.metadata["is_persisted"] = True
    except Exception as e:
        logger.warning(f"Failed to persist response {message_id}: {e}")


async def on_tool_executed(context: ToolExecutionContext) -> None:
    run_context = context.run_context
    if run_context is None or run_context.sink is None:
        return
    for message in run_context.messages:
        if message.role != "tool" or message.metadata.get("is_persisted"):
            continue
        try:
            await run_context.sink.save_message(message)
            message.metadata["is_persisted"] = True
        except Exception as e:
            logger.warning(f"Failed to persist tool result {message.id}: {e}")


def register(hooks: AgentHooks) -> None:
    hooks.user_message_received.tap(TAP_NAME, on_user_message)
    hooks.agent_status_changed.tap(TAP_NAME, on_status_changed)
    hooks.response_update.tap(TAP_NAME, on_response_update)
    hooks.response_complete.tap(TAP_NAME, on_response_complete)
    hooks.tool_executed.tap(TAP_NAME, on_tool_executed)
