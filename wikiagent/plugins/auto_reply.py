"""autoReply: answer the AI on the user's behalf when a trigger fires."""

from __future__ import annotations

from loguru import logger

from wikiagent.hooks.runner import AgentHooks, PostProcessContext, RoundDecision
from wikiagent.plugins.base import plugin_param, trigger_matches

PLUGIN_ID = "autoReply"
COUNT_KEY = "auto_reply_count"


async def maybe_auto_reply(context: PostProcessContext):
    config = context.plugin_config
    param = plugin_param(config, PLUGIN_ID)
    if param is None:
        return None

    state = context.run_context.state if context.run_context else context.metadata
    counts: dict[str, int] = state.setdefault(COUNT_KEY, {})
    used = counts.get(config.id, 0)
    if used >= param.max_auto_reply:
        logger.debug(f"autoReply '{config.id}' reached its limit of {param.max_auto_reply}")
        return None
    if not trigger_matches(param.trigger, context.llm_response):
        return None

    counts[config.id] = used + 1
    logger.info(f"autoReply '{config.id}' fired ({used + 1}/{param.max_auto_reply})")
    return context, RoundDecision(yield_next_round_to="self", new_user_message=param.text)


def register(hooks: AgentHooks) -> None:
    hooks.post_process.tap(PLUGIN_ID, maybe_auto_reply)
