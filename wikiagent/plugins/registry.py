"""Plugin registry: maps plugin kinds to hook registration functions."""

from __future__ import annotations

import threading
from enum import Enum
from typing import TYPE_CHECKING, Callable

from loguru import logger

from wikiagent.hooks.runner import AgentHooks

if TYPE_CHECKING:
    from wikiagent.config.schema import PluginConfig


class PluginKind(str, Enum):
    """Built-in plugin kinds, keyed by their ``pluginId``."""

    FULL_REPLACEMENT = "fullReplacement"
    DYNAMIC_POSITION = "dynamicPosition"
    RETRIEVAL_AUGMENTED_GENERATION = "retrievalAugmentedGeneration"
    MODEL_CONTEXT_PROTOCOL = "modelContextProtocol"
    TOOL_CALLING = "toolCalling"
    AUTO_REPLY = "autoReply"
    WIKI_SEARCH = "wikiSearch"

    @classmethod
    def parse(cls, value: str) -> PluginKind | None:
        try:
            return cls(value)
        except ValueError:
            return None


PluginRegistrar = Callable[[AgentHooks], None]

_PLUGINS: dict[PluginKind, PluginRegistrar] = {}
_INIT_LOCK = threading.Lock()
_initialized = False


def register_plugin(kind: PluginKind, registrar: PluginRegistrar) -> None:
    """Register (or replace) the registration function for ``kind``."""
    _PLUGINS[kind] = registrar


def get_registered_plugins() -> dict[PluginKind, PluginRegistrar]:
    initialize_plugin_system()
    return dict(_PLUGINS)


def initialize_plugin_system() -> None:
    """Register all built-in plugins once per process.

    Safe to call from several threads; later calls are no-ops.
    """
    global _initialized
    if _initialized:
        return
    with _INIT_LOCK:
        if _initialized:
            return
        from wikiagent.plugins import (
            auto_reply,
            dynamic_position,
            full_replacement,
            mcp,
            retrieval,
            tool_calling,
            wiki_search,
        )

        builtins: dict[PluginKind, PluginRegistrar] = {
            PluginKind.FULL_REPLACEMENT: full_replacement.register,
            PluginKind.DYNAMIC_POSITION: dynamic_position.register,
            PluginKind.RETRIEVAL_AUGMENTED_GENERATION: retrieval.register,
            PluginKind.MODEL_CONTEXT_PROTOCOL: mcp.register,
            PluginKind.TOOL_CALLING: tool_calling.register,
            PluginKind.AUTO_REPLY: auto_reply.register,
            PluginKind.WIKI_SEARCH: wiki_search.register,
        }
        for kind, registrar in builtins.items():
            # Keep overrides registered before initialization.
            _PLUGINS.setdefault(kind, registrar)
        _initialized = True
        logger.debug(f"Plugin system initialized with {len(_PLUGINS)} plugins")


def create_hooks_with_plugins(plugin_configs: list[PluginConfig]) -> AgentHooks:
    """
    Build a fresh AgentHooks for one round.

    Core message handling is always registered first. Each plugin kind is
    then registered once, in order of first appearance in ``plugin_configs``;
    its handlers run once per matching config. Unknown ids are skipped.
    """
    from wikiagent.plugins.message_management import register as register_message_management

    initialize_plugin_system()
    hooks = AgentHooks()
    register_message_management(hooks)

    seen: set[PluginKind] = set()
    for config in plugin_configs:
        kind = PluginKind.parse(config.plugin_id)
        if kind is None:
            logger.warning(f"Unknown plugin id '{config.plugin_id}' in plugin '{config.id}', skipping")
            continue
        if kind in seen:
            continue
        registrar = _PLUGINS.get(kind)
        if registrar is None:
            logger.warning(f"Plugin '{kind.value}' has no registration function, skipping")
            continue
        registrar(hooks)
        seen.add(kind)
    return hooks
