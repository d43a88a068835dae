"""Base LLM collaborator interface."""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, AsyncIterator

STREAM_STATUSES = ("start", "update", "done", "error", "cancel")


@dataclass(frozen=True)
class AIErrorDetail:
    """Structured error reported by an LLM backend."""
    name: str = "Error"
    code: str = "UNKNOWN"
    provider: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return asdict(self)

    @classmethod
    def from_exception(cls, exc: Exception, provider: str = "") -> "AIErrorDetail":
        code = getattr(exc, "status_code", None) or getattr(exc, "code", None) or "UNKNOWN"
        return cls(
            name=type(exc).__name__,
            code=str(code),
            provider=provider or str(getattr(exc, "llm_provider", "") or ""),
            message=str(exc),
        )


@dataclass
class AIStreamResponse:
    """One chunk of a streamed LLM response.

    ``content`` is the accumulated text so far, not a delta.
    """

    request_id: str
    status: str  # "start" | "update" | "done" | "error" | "cancel"
    content: str = ""
    error_detail: AIErrorDetail | None = None


class LLMCollaborator(ABC):
    """
    Abstract base class for the streaming LLM backend.

    Implementations own request ids and cancellation; the orchestrator only
    consumes the chunk sequence and asks for cancellation by id.
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    def generate_from_ai(
        self,
        prompts: list[dict[str, Any]],
        ai_config: dict[str, Any],
        *,
        agent_instance_id: str | None = None,
    ) -> AsyncIterator[AIStreamResponse]:
        """
        Stream a completion for the flattened prompts.

        Args:
            prompts: Ordered list of ``{"role", "content"}`` dicts.
            ai_config: Merged AI configuration (``api`` + ``model_parameters``).
            agent_instance_id: Owning agent instance, for logging.

        Returns:
            Async iterator of AIStreamResponse chunks ending in ``done``,
            ``error`` or ``cancel``.
        """

    @abstractmethod
    async def cancel_ai_request(self, request_id: str) -> None:
        """Cancel an in-flight request. Unknown ids are ignored."""

    async def get_ai_config(self) -> dict[str, Any]:
        """Global default AI configuration; lowest precedence layer."""
        return {}
