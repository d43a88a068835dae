"""Configuration loading utilities for wikiagent."""

import json
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from wikiagent.config.schema import AgentDefinition, PluginConfig, Settings
from wikiagent.errors import PluginConfigError


def get_config_dir() -> Path:
    """Get the default directory for agent definition files."""
    return Path.home() / ".wikiagent"


def load_settings() -> Settings:
    """Load process settings from ``WIKIAGENT_*`` environment variables."""
    return Settings()


def load_agent_definitions(path: Path, *, strict: bool = False) -> list[AgentDefinition]:
    """
    Load agent definitions from a JSON file.

    The file holds one definition object or a list of them, with camelCase
    keys as written by the desktop app.

    Args:
        path: JSON file to read.
        strict: Raise on malformed plugin entries instead of dropping them.

    Returns:
        Parsed definitions, in file order.
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    items = data if isinstance(data, list) else [data]
    return [parse_agent_definition(item, strict=strict) for item in items]


def parse_agent_definition(data: dict[str, Any], *, strict: bool = False) -> AgentDefinition:
    """Validate one camelCase definition dict.

    Malformed plugin entries are logged and dropped so the agent still runs
    with the remaining plugins; ``strict`` turns them into PluginConfigError.
    """
    converted = convert_keys(data)
    handler_config = converted.get("handler_config")
    if isinstance(handler_config, dict):
        plugins: list[dict[str, Any]] = []
        for raw in handler_config.get("plugins") or []:
            try:
                PluginConfig.model_validate(raw)
            except ValidationError as e:
                plugin_id = raw.get("id") if isinstance(raw, dict) else raw
                if strict:
                    raise PluginConfigError(f"Invalid plugin config {plugin_id!r}: {e}") from e
                logger.warning(f"Dropping invalid plugin config {plugin_id!r}: {e}")
                continue
            plugins.append(raw)
        handler_config["plugins"] = plugins
    return AgentDefinition.model_validate(converted)


def convert_keys(data: Any) -> Any:
    """Convert camelCase keys to snake_case for Pydantic."""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)
