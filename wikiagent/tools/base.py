"""Tool, wiki and MCP collaborator interfaces."""

from __future__ import annotations

import inspect
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from loguru import logger


@dataclass
class ToolResult:
    """Outcome of a tool call. Tools report failure here rather than raising."""

    success: bool
    data: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolScope:
    """Who is calling a tool, used to scope workspace access."""

    agent_id: str
    message_id: str | None = None
    workspace_name: str | None = None
    ai_config: dict[str, Any] = field(default_factory=dict)


class ToolExecutor(ABC):
    """Executes a detected tool call."""

    @abstractmethod
    async def execute(self, tool_id: str, parameters: dict[str, Any], scope: ToolScope) -> ToolResult:
        """Run ``tool_id`` and return its result; never raises for tool failures."""

    def describe(self) -> list[dict[str, Any]]:
        """Tool descriptions to show the LLM."""
        return []


ToolFunc = Callable[..., Awaitable[Any] | Any]


@dataclass
class _RegisteredTool:
    name: str
    func: ToolFunc
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)


class ToolRegistry(ToolExecutor):
    """
    In-process tool executor.

    Tools are plain callables taking keyword parameters (plus ``scope`` when
    they declare it) and returning a string, a ToolResult, or anything
    ``str()`` can render.
    """

    def __init__(self):
        self._tools: dict[str, _RegisteredTool] = {}
        self._last_execution: dict[str, Any] | None = None

    def register(
        self,
        name: str,
        func: ToolFunc,
        *,
        description: str = "",
        parameters: dict[str, Any] | None = None,
    ) -> None:
        """Register a tool."""
        self._tools[name] = _RegisteredTool(name, func, description, parameters or {})

    def unregister(self, name: str) -> None:
        """Unregister a tool by name."""
        self._tools.pop(name, None)

    def has(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    def get_last_execution(self) -> dict[str, Any] | None:
        """Get metadata from the most recent tool execution."""
        return dict(self._last_execution) if self._last_execution else None

    def describe(self) -> list[dict[str, Any]]:
        return [
            {"id": tool.name, "description": tool.description, "parameters": tool.parameters}
            for tool in self._tools.values()
        ]

    async def execute(self, tool_id: str, parameters: dict[str, Any], scope: ToolScope) -> ToolResult:
        tool = self._tools.get(tool_id)
        if not tool:
            return ToolResult(success=False, error=f"Tool '{tool_id}' not found")

        kwargs = dict(parameters)
        if "scope" in inspect.signature(tool.func).parameters:
            kwargs["scope"] = scope

        start = time.monotonic()
        try:
            value = tool.func(**kwargs)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            logger.warning(f"Tool {tool_id} failed for agent {scope.agent_id}: {e}")
            result = ToolResult(success=False, error=f"Error executing {tool_id}: {e}")
        else:
            if isinstance(value, ToolResult):
                result = value
            else:
                result = ToolResult(success=True, data=value if isinstance(value, str) else str(value))
        finally:
            duration_ms = (time.monotonic() - start) * 1000
        self._last_execution = {
            "tool_name": tool_id,
            "agent_id": scope.agent_id,
            "ok": result.success,
            "duration_ms": round(duration_ms, 1),
            "at": time.time(),
        }
        return result


@dataclass
class WikiEntry:
    """A wiki note returned by a search."""

    title: str
    text: str = ""
    fields: dict[str, Any] = field(default_factory=dict)


class WikiSearchBackend(ABC):
    """Searches a wiki workspace with a filter expression."""

    @abstractmethod
    async def search(self, workspace_name: str, filter: str, max_results: int = 10) -> list[WikiEntry]:
        """Return matching entries; raise LookupError for an unknown workspace."""


class InMemoryWikiBackend(WikiSearchBackend):
    """Dict-backed wiki, mostly for previews and tests.

    The filter is a case-insensitive substring matched against titles, text
    and tags; a filter of ``[tag[x]]`` matches entries tagged ``x``.
    """

    def __init__(self, workspaces: dict[str, list[WikiEntry]] | None = None):
        self.workspaces = workspaces or {}

    async def search(self, workspace_name: str, filter: str, max_results: int = 10) -> list[WikiEntry]:
        entries = self.workspaces.get(workspace_name)
        if entries is None:
            available = ", ".join(sorted(self.workspaces)) or "none"
            raise LookupError(f'Workspace "{workspace_name}" does not exist (available: {available})')
        needle = filter.strip()
        tag = None
        if needle.startswith("[tag[") and needle.endswith("]]"):
            tag = needle[5:-2]
        out: list[WikiEntry] = []
        for entry in entries:
            if tag is not None:
                if tag in (entry.fields.get("tags") or []):
                    out.append(entry)
            elif not needle or needle.lower() in f"{entry.title}\n{entry.text}".lower():
                out.append(entry)
            if len(out) >= max_results:
                break
        return out


class MCPClient(ABC):
    """Calls a Model Context Protocol server."""

    @abstractmethod
    async def call(self, server_id: str, query: str) -> str:
        """Return text context from ``server_id`` for ``query``."""
