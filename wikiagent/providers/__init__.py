"""LLM collaborator module for wikiagent."""

from wikiagent.providers.base import AIErrorDetail, AIStreamResponse, LLMCollaborator
from wikiagent.providers.failover import FailoverCandidate, FailoverCollaborator
from wikiagent.providers.litellm_provider import LiteLLMCollaborator

__all__ = [
    "AIErrorDetail",
    "AIStreamResponse",
    "LLMCollaborator",
    "LiteLLMCollaborator",
    "FailoverCandidate",
    "FailoverCollaborator",
]
