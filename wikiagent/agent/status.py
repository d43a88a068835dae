"""Builders for the status values yielded by the orchestrator."""

from __future__ import annotations

from typing import TYPE_CHECKING

from wikiagent.agent.models import AgentInstanceLatestStatus, AgentInstanceMessage, new_message_id
from wikiagent.providers.base import AIErrorDetail

if TYPE_CHECKING:
    from wikiagent.agent.context import AgentRunContext


def _message_id(request_id: str | None) -> str:
    return f"ai-response-{request_id}" if request_id else new_message_id()


def _agent_message(content: str, context: AgentRunContext, request_id: str | None) -> AgentInstanceMessage:
    return AgentInstanceMessage(
        id=_message_id(request_id),
        agent_id=context.agent.id,
        role="agent",
        content=content,
    )


def working(content: str, context: AgentRunContext, request_id: str | None = None) -> AgentInstanceLatestStatus:
    return AgentInstanceLatestStatus(state="working", message=_agent_message(content, context, request_id))


def completed(content: str, context: AgentRunContext, request_id: str | None = None) -> AgentInstanceLatestStatus:
    return AgentInstanceLatestStatus(state="completed", message=_agent_message(content, context, request_id))


def canceled() -> AgentInstanceLatestStatus:
    return AgentInstanceLatestStatus(state="canceled")


def error(
    content: str,
    error_detail: AIErrorDetail | None,
    context: AgentRunContext,
    request_id: str | None = None,
) -> AgentInstanceLatestStatus:
    """Terminal ``completed`` status carrying an ``error`` role message."""
    detail = error_detail or AIErrorDetail(message=content)
    message = AgentInstanceMessage(
        id=_message_id(request_id),
        agent_id=context.agent.id,
        role="error",
        content=content,
        metadata={"error_detail": detail.to_dict()},
        duration=1,
    )
    return AgentInstanceLatestStatus(state="completed", message=message)
