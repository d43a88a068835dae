"""Agent instance data model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

MESSAGE_ROLES = ("user", "agent", "tool", "error")
ROLE_ALIASES = {"assistant": "agent"}
AGENT_STATES = ("working", "completed", "canceled")


def normalize_role(role: str) -> str:
    """Map input aliases (``assistant``) onto stored roles."""
    value = (role or "").strip().lower()
    value = ROLE_ALIASES.get(value, value)
    if value not in MESSAGE_ROLES:
        raise ValueError(f"Unknown message role: {role!r}")
    return value


def new_message_id(prefix: str = "msg") -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


@dataclass
class AgentInstanceMessage:
    """One turn of a conversation. Append-only during a run."""

    agent_id: str
    role: str
    content: str
    id: str = field(default_factory=new_message_id)
    metadata: dict[str, Any] = field(default_factory=dict)
    duration: int | None = None
    created: datetime = field(default_factory=datetime.now)
    modified: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        self.role = normalize_role(self.role)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "role": self.role,
            "content": self.content,
            "metadata": dict(self.metadata),
            "duration": self.duration,
            "created": self.created.isoformat(),
            "modified": self.modified.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AgentInstanceMessage:
        def _dt(value: Any) -> datetime:
            if isinstance(value, str) and value:
                try:
                    return datetime.fromisoformat(value)
                except ValueError:
                    pass
            return datetime.now()

        duration = data.get("duration")
        return cls(
            id=str(data.get("id") or new_message_id()),
            agent_id=str(data.get("agent_id") or data.get("agentId") or ""),
            role=str(data.get("role") or "user"),
            content=str(data.get("content") or ""),
            metadata=dict(data.get("metadata") or {}),
            duration=int(duration) if duration is not None else None,
            created=_dt(data.get("created")),
            modified=_dt(data.get("modified")),
        )


@dataclass
class AgentStatus:
    """Persisted latest state of an agent instance."""

    state: str = "completed"
    modified: datetime = field(default_factory=datetime.now)


@dataclass
class AgentInstance:
    """A running conversation bound to an agent definition."""

    id: str
    agent_def_id: str
    messages: list[AgentInstanceMessage] = field(default_factory=list)
    status: AgentStatus = field(default_factory=AgentStatus)
    name: str = ""
    ai_api_config: dict[str, Any] = field(default_factory=dict)
    created: datetime = field(default_factory=datetime.now)

    @property
    def last_message(self) -> AgentInstanceMessage | None:
        return self.messages[-1] if self.messages else None

    def add_user_message(self, content: str, **metadata: Any) -> AgentInstanceMessage:
        message = AgentInstanceMessage(agent_id=self.id, role="user", content=content, metadata=dict(metadata))
        self.messages.append(message)
        return message


@dataclass(frozen=True)
class AgentInstanceLatestStatus:
    """Transient status yielded by the orchestrator.

    ``canceled`` carries no message. An error is a ``completed`` status whose
    message has role ``error`` and ``metadata["error_detail"]``.
    """

    state: str
    message: AgentInstanceMessage | None = None
    modified: datetime = field(default_factory=datetime.now)

    @property
    def content(self) -> str:
        return self.message.content if self.message else ""

    @property
    def is_error(self) -> bool:
        return bool(self.message and self.message.role == "error")

    @property
    def error_detail(self) -> dict[str, Any] | None:
        if not self.is_error:
            return None
        return self.message.metadata.get("error_detail")
