"""Prompt plugins for wikiagent."""

from wikiagent.plugins.registry import (
    PluginKind,
    create_hooks_with_plugins,
    get_registered_plugins,
    initialize_plugin_system,
    register_plugin,
)

__all__ = [
    "PluginKind",
    "create_hooks_with_plugins",
    "get_registered_plugins",
    "initialize_plugin_system",
    "register_plugin",
]
