"""Persistence collaborators for agent messages and status."""

from __future__ import annotations

import json
import os
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path
from threading import RLock
from typing import Any

from loguru import logger

from wikiagent.agent.models import AgentInstanceMessage, AgentStatus


class MessageSink(ABC):
    """Receives message and status updates from a running round.

    Calls are best-effort: callers log failures and carry on.
    """

    @abstractmethod
    async def save_message(self, message: AgentInstanceMessage) -> None:
        """Insert or replace ``message``."""

    @abstractmethod
    async def debounce_update_message(self, message: AgentInstanceMessage, agent_id: str) -> None:
        """Record a streaming update; implementations may coalesce writes."""

    @abstractmethod
    async def update_status(self, agent_id: str, status: AgentStatus) -> None:
        """Persist the latest status of an agent."""


class InMemoryMessageStore(MessageSink):
    """Keeps everything in dicts. Useful for tests and one-shot CLI runs."""

    def __init__(self):
        self.messages: dict[str, dict[str, AgentInstanceMessage]] = {}
        self.statuses: dict[str, AgentStatus] = {}
        self.update_count = 0

    async def save_message(self, message: AgentInstanceMessage) -> None:
        self.messages.setdefault(message.agent_id, {})[message.id] = message

    async def debounce_update_message(self, message: AgentInstanceMessage, agent_id: str) -> None:
        self.update_count += 1
        self.messages.setdefault(agent_id, {})[message.id] = message

    async def update_status(self, agent_id: str, status: AgentStatus) -> None:
        self.statuses[agent_id] = status

    def history(self, agent_id: str) -> list[AgentInstanceMessage]:
        return sorted(self.messages.get(agent_id, {}).values(), key=lambda m: m.created)


class JsonlMessageStore(MessageSink):
    """
    Stores each agent's messages as a JSONL file.

    The first line holds agent metadata (latest status); each following line
    is one message. Streaming updates are written at most every
    ``debounce_s`` seconds unless the message is marked complete.
    """

    def __init__(self, directory: Path, debounce_s: float = 0.5):
        self.directory = Path(directory).expanduser()
        self.debounce_s = max(0.0, debounce_s)
        self._messages: dict[str, dict[str, AgentInstanceMessage]] = {}
        self._statuses: dict[str, AgentStatus] = {}
        self._last_write: dict[str, float] = {}
        self._lock = RLock()

    def _path(self, agent_id: str) -> Path:
        safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in agent_id)
        return self.directory / f"{safe}.jsonl"

    def load(self, agent_id: str) -> list[AgentInstanceMessage]:
        """Read back the stored messages of an agent, oldest first."""
        path = self._path(agent_id)
        if not path.exists():
            return []
        messages: list[AgentInstanceMessage] = []
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                if data.get("_type") == "metadata":
                    continue
                messages.append(AgentInstanceMessage.from_dict(data))
        with self._lock:
            self._messages[agent_id] = {m.id: m for m in messages}
        return messages

    async def save_message(self, message: AgentInstanceMessage) -> None:
        with self._lock:
            self._messages.setdefault(message.agent_id, {})[message.id] = message
        self._flush(message.agent_id)

    async def debounce_update_message(self, message: AgentInstanceMessage, agent_id: str) -> None:
        with self._lock:
            self._messages.setdefault(agent_id, {})[message.id] = message
            last = self._last_write.get(agent_id)
        if message.metadata.get("is_complete") or last is None or time.monotonic() - last >= self.debounce_s:
            self._flush(agent_id)

    async def update_status(self, agent_id: str, status: AgentStatus) -> None:
        with self._lock:
            self._statuses[agent_id] = status
        self._flush(agent_id)

    def _flush(self, agent_id: str) -> None:
        with self._lock:
            status = self._statuses.get(agent_id)
            messages = sorted(self._messages.get(agent_id, {}).values(), key=lambda m: m.created)
            metadata_line: dict[str, Any] = {
                "_type": "metadata",
                "agent_id": agent_id,
                "status": status.state if status else None,
                "status_modified": status.modified.isoformat() if status else None,
            }
            lines = [json.dumps(metadata_line, ensure_ascii=False)]
            lines.extend(json.dumps(m.to_dict(), ensure_ascii=False) for m in messages)
            self._write_payload(self._path(agent_id), "\n".join(lines) + "\n")
            self._last_write[agent_id] = time.monotonic()

    def _write_payload(self, path: Path, payload: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=str(path.parent),
                prefix=f"{path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
                tmp_path = Path(tmp.name)
            tmp_path.replace(path)
        except Exception:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink(missing_ok=True)
            logger.warning(f"Failed writing message store {path}")
            raise
