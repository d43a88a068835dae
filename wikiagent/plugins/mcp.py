"""modelContextProtocol: insert context fetched from an MCP server."""

from __future__ import annotations

import asyncio

from loguru import logger

from wikiagent.hooks.runner import AgentHooks, PromptHookContext
from wikiagent.plugins.base import insert_prompt, latest_user_text, plugin_param

PLUGIN_ID = "modelContextProtocol"


async def fetch_context(context: PromptHookContext) -> PromptHookContext | None:
    config = context.plugin_config
    param = plugin_param(config, PLUGIN_ID)
    if param is None:
        return None

    run_context = context.run_context
    client = run_context.mcp if run_context else None
    if client is None:
        text = f"MCP server '{param.id}' context is pending."
    else:
        timeout_s = param.timeout_second or run_context.settings.mcp_timeout_seconds
        try:
            text = await asyncio.wait_for(
                client.call(param.id, latest_user_text(context.messages)),
                timeout=timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning(f"MCP server '{param.id}' timed out after {timeout_s}s")
            text = param.timeout_message

    insert_prompt(
        context.prompts,
        config,
        target_id=param.target_id,
        position=param.position,
        text=text,
        caption=config.caption or f"MCP {param.id}",
        tags=["mcp"],
    )
    return context


def register(hooks: AgentHooks) -> None:
    hooks.process_prompts.tap(PLUGIN_ID, fetch_context)
