"""Per-round context handed to the orchestrator and plugins."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from wikiagent.agent.models import AgentInstance, AgentInstanceMessage
from wikiagent.config.schema import AgentDefinition, PluginConfig, Settings

if TYPE_CHECKING:
    from wikiagent.providers.base import LLMCollaborator
    from wikiagent.session.store import MessageSink
    from wikiagent.tools.base import MCPClient, ToolExecutor, WikiSearchBackend


def _never_cancelled() -> bool:
    return False


@dataclass
class AgentRunContext:
    """
    Everything one agent round needs.

    ``is_cancelled`` is polled between stream chunks; the other collaborators
    are optional and plugins degrade to placeholders when one is missing.
    """

    agent: AgentInstance
    definition: AgentDefinition
    llm: LLMCollaborator
    is_cancelled: Callable[[], bool] = _never_cancelled
    tools: ToolExecutor | None = None
    wiki: WikiSearchBackend | None = None
    mcp: MCPClient | None = None
    sink: MessageSink | None = None
    settings: Settings = field(default_factory=Settings)
    state: dict[str, Any] = field(default_factory=dict)

    def cancelled(self) -> bool:
        return bool(self.is_cancelled())

    @property
    def messages(self) -> list[AgentInstanceMessage]:
        return self.agent.messages

    @property
    def plugin_configs(self) -> list[PluginConfig]:
        return self.definition.handler_config.plugins

    def plugin_configs_of(self, plugin_id: str) -> list[PluginConfig]:
        return [config for config in self.plugin_configs if config.plugin_id == plugin_id]

    def append_message(self, message: AgentInstanceMessage) -> AgentInstanceMessage:
        self.agent.messages.append(message)
        return message
