"""fullReplacement: swap a node's content for session history or the LLM output."""

from __future__ import annotations

from loguru import logger

from wikiagent.hooks.runner import AgentHooks, PostProcessContext, PromptHookContext
from wikiagent.plugins.base import plugin_param
from wikiagent.prompts.history import filter_messages_by_duration, history_without_current_turn, to_prompt_role
from wikiagent.prompts.tree import PromptNode, find_node_by_id

PLUGIN_ID = "fullReplacement"
# Shown to the model when there is no history; kept identical to the desktop app.
NO_HISTORY_PLACEHOLDER = "无聊天历史。"


async def replace_with_history(context: PromptHookContext) -> PromptHookContext | None:
    param = plugin_param(context.plugin_config, PLUGIN_ID)
    if param is None or param.source_type != "historyOfSession":
        return None

    location = find_node_by_id(context.prompts, param.target_id)
    if location is None:
        logger.warning(f"fullReplacement target '{param.target_id}' not found")
        return None

    history = filter_messages_by_duration(history_without_current_turn(context.messages))
    node = location.node
    if not history:
        node.text = NO_HISTORY_PLACEHOLDER
        return context

    node.text = None
    node.children = [
        PromptNode(
            id=f"history-{index}",
            caption=f"History message {index + 1}",
            role=to_prompt_role(message.role),
            text=message.content,
        )
        for index, message in enumerate(history)
    ]
    logger.debug(f"fullReplacement put {len(history)} history messages under '{param.target_id}'")
    return context


async def replace_with_llm_response(context: PostProcessContext) -> PostProcessContext | None:
    param = plugin_param(context.plugin_config, PLUGIN_ID)
    if param is None or param.source_type != "llmResponse":
        return None

    location = find_node_by_id(context.responses, param.target_id)
    if location is None:
        logger.warning(f"fullReplacement response target '{param.target_id}' not found")
        return None
    location.node.text = context.llm_response
    return context


def register(hooks: AgentHooks) -> None:
    hooks.process_prompts.tap(PLUGIN_ID, replace_with_history)
    hooks.post_process.tap(PLUGIN_ID, replace_with_llm_response)
