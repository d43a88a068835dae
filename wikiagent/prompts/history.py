"""Conversation history helpers shared by prompt plugins."""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

if TYPE_CHECKING:
    from wikiagent.agent.models import AgentInstanceMessage

PROMPT_ROLES = {
    "user": "user",
    "tool": "user",
    "agent": "assistant",
    "assistant": "assistant",
    "error": "assistant",
}


def to_prompt_role(role: str) -> str:
    """Map a message role onto the three roles an LLM accepts."""
    return PROMPT_ROLES.get(role, "user")


def filter_messages_by_duration(messages: list[AgentInstanceMessage]) -> list[AgentInstanceMessage]:
    """
    Drop messages whose duration has run out.

    ``duration=None`` keeps a message forever. Otherwise a message stays in
    context while fewer than ``duration`` messages follow it, so ``0`` hides
    it immediately and ``1`` keeps it only while it is the newest.
    """
    total = len(messages)
    kept: list[AgentInstanceMessage] = []
    for index, message in enumerate(messages):
        if message.duration is None:
            kept.append(message)
            continue
        rounds_from_current = total - 1 - index
        if rounds_from_current < message.duration:
            kept.append(message)
    if len(kept) != total:
        logger.debug(f"Duration filter kept {len(kept)}/{total} messages")
    return kept


def history_without_current_turn(messages: list[AgentInstanceMessage]) -> list[AgentInstanceMessage]:
    """Copy of ``messages`` minus a trailing user message being answered."""
    history = list(messages)
    if history and history[-1].role == "user":
        history.pop()
    return history
