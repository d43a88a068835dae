"""Agent instance model and the conversation orchestrator."""

from wikiagent.agent.models import (
    AgentInstance,
    AgentInstanceLatestStatus,
    AgentInstanceMessage,
    AgentStatus,
)
from wikiagent.agent.context import AgentRunContext
from wikiagent.agent.orchestrator import ConversationOrchestrator, run_agent_round

__all__ = [
    "AgentInstance",
    "AgentInstanceLatestStatus",
    "AgentInstanceMessage",
    "AgentRunContext",
    "AgentStatus",
    "ConversationOrchestrator",
    "run_agent_round",
]
