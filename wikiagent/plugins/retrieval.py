"""retrievalAugmentedGeneration: pull wiki notes into the prompt."""

from __future__ import annotations

from loguru import logger

from wikiagent.hooks.runner import AgentHooks, PromptHookContext
from wikiagent.plugins.base import insert_prompt, latest_user_text, plugin_param, trigger_matches
from wikiagent.tools.base import WikiEntry

PLUGIN_ID = "retrievalAugmentedGeneration"


def format_entries(entries: list[WikiEntry]) -> str:
    blocks = []
    for entry in entries:
        text = entry.text.strip()
        blocks.append(f"# {entry.title}\n{text}" if text else f"# {entry.title}")
    return "\n\n".join(blocks)


async def retrieve(context: PromptHookContext) -> PromptHookContext | None:
    config = context.plugin_config
    param = plugin_param(config, PLUGIN_ID)
    if param is None:
        return None
    if not trigger_matches(param.trigger, latest_user_text(context.messages)):
        return None

    wiki_param = param.wiki_param
    wiki = context.run_context.wiki if context.run_context else None
    if wiki is None:
        text = (
            f"Wiki retrieval from workspace '{wiki_param.workspace_name}' "
            f"with filter '{wiki_param.filter}' is pending."
        )
    else:
        try:
            entries = await wiki.search(wiki_param.workspace_name, wiki_param.filter, wiki_param.max_results)
        except LookupError as e:
            logger.warning(f"Retrieval plugin '{config.id}' could not search: {e}")
            return None
        if not entries:
            logger.debug(f"Retrieval plugin '{config.id}' found nothing for '{wiki_param.filter}'")
            return None
        text = format_entries(entries)

    insert_prompt(
        context.prompts,
        config,
        target_id=param.target_id,
        position=param.position,
        text=text,
        caption=config.caption or "Retrieved Content",
        tags=["retrieval"],
    )
    return context


def register(hooks: AgentHooks) -> None:
    hooks.process_prompts.tap(PLUGIN_ID, retrieve)
