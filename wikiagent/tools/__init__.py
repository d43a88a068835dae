"""Tool execution collaborators for wikiagent."""

from wikiagent.tools.base import (
    InMemoryWikiBackend,
    MCPClient,
    ToolExecutor,
    ToolRegistry,
    ToolResult,
    ToolScope,
    WikiEntry,
    WikiSearchBackend,
)

__all__ = [
    "InMemoryWikiBackend",
    "MCPClient",
    "ToolExecutor",
    "ToolRegistry",
    "ToolResult",
    "ToolScope",
    "WikiEntry",
    "WikiSearchBackend",
]
