"""Configuration module for wikiagent."""

from wikiagent.config.loader import load_agent_definitions, load_settings, parse_agent_definition
from wikiagent.config.schema import AgentDefinition, PluginConfig, Settings

__all__ = [
    "AgentDefinition",
    "PluginConfig",
    "Settings",
    "load_agent_definitions",
    "load_settings",
    "parse_agent_definition",
]
