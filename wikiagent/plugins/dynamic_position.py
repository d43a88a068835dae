"""dynamicPosition: insert the plugin's own content next to a target node."""

from __future__ import annotations

from loguru import logger

from wikiagent.hooks.runner import AgentHooks, PromptHookContext
from wikiagent.plugins.base import insert_prompt, plugin_param

PLUGIN_ID = "dynamicPosition"


async def insert_content(context: PromptHookContext) -> PromptHookContext | None:
    config = context.plugin_config
    param = plugin_param(config, PLUGIN_ID)
    if param is None:
        return None
    if not config.content:
        logger.warning(f"dynamicPosition plugin '{config.id}' has no content, skipping")
        return None
    insert_prompt(
        context.prompts,
        config,
        target_id=param.target_id,
        position=param.type,
        text=config.content,
        caption=config.caption or "Dynamic Content",
    )
    return context


def register(hooks: AgentHooks) -> None:
    hooks.process_prompts.tap(PLUGIN_ID, insert_content)
