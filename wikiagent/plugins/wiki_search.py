"""wikiSearch: offer a ``wiki-search`` tool to the AI and answer its calls."""

from __future__ import annotations

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wikiagent.hooks.runner import AgentHooks, PromptHookContext, ResponseContext, RoundDecision
from wikiagent.plugins.base import (
    insert_prompt,
    mark_tool_call_message,
    plugin_param,
    record_tool_result,
    tool_description,
)
from wikiagent.plugins.retrieval import format_entries
from wikiagent.plugins.tool_calling import HANDLED_KEY
from wikiagent.prompts.tool_calls import match_tool_calling
from wikiagent.tools.base import ToolResult

PLUGIN_ID = "wikiSearch"
TOOL_ID = "wiki-search"


class WikiSearchToolParameters(BaseModel):
    """Arguments the AI passes to ``wiki-search``."""

    model_config = ConfigDict(populate_by_name=True)

    workspace_name: str = Field(alias="workspaceName")
    filter: str
    max_results: int = Field(default=10, ge=1, alias="maxResults")


TOOL_PARAMETERS = {
    "workspaceName": "Name of the wiki workspace to search.",
    "filter": "Filter expression, e.g. [tag[example]] or a plain search term.",
    "maxResults": "Maximum number of notes to return (default 10).",
}
TOOL_EXAMPLE = {"workspaceName": "wiki", "filter": "[tag[example]]", "maxResults": 5}


async def inject_tool_list(context: PromptHookContext) -> PromptHookContext | None:
    config = context.plugin_config
    param = plugin_param(config, PLUGIN_ID)
    if param is None or param.tool_list_position is None:
        return None
    insert_prompt(
        context.prompts,
        config,
        target_id=param.tool_list_position.target_id,
        position=param.tool_list_position.position,
        text=tool_description(
            TOOL_ID,
            "Search notes in a wiki workspace and return their titles and text.",
            TOOL_PARAMETERS,
            TOOL_EXAMPLE,
        ),
        caption="Wiki search tool",
        tags=["toolList", "wikiSearch"],
    )
    return context


async def run_wiki_search(context: ResponseContext, parameters: dict) -> tuple[dict, ToolResult]:
    try:
        args = WikiSearchToolParameters.model_validate(parameters)
    except ValidationError as e:
        return parameters, ToolResult(success=False, error=f"Invalid parameters: {e.errors(include_url=False)}")

    shown = args.model_dump(by_alias=True)
    wiki = context.run_context.wiki
    if wiki is None:
        return shown, ToolResult(success=False, error="No wiki is available to search")
    try:
        entries = await wiki.search(args.workspace_name, args.filter, args.max_results)
    except LookupError as e:
        return shown, ToolResult(success=False, error=str(e))

    if not entries:
        return shown, ToolResult(
            success=True,
            data=f'No notes in "{args.workspace_name}" matched filter {args.filter}.',
            metadata={"result_count": 0},
        )
    header = f'Found {len(entries)} notes in "{args.workspace_name}" for filter {args.filter}:'
    return shown, ToolResult(
        success=True,
        data=f"{header}\n\n{format_entries(entries)}",
        metadata={"result_count": len(entries)},
    )


def register(hooks: AgentHooks) -> None:
    async def handle_response_complete(context: ResponseContext) -> RoundDecision | None:
        run_context = context.run_context
        configs = run_context.plugin_configs_of(PLUGIN_ID)
        if not configs or context.status != "done" or not context.content:
            return None

        match = match_tool_calling(context.content)
        if not match.found or match.tool_id != TOOL_ID:
            return None
        handled = run_context.state.setdefault(HANDLED_KEY, set())
        if match.original_text in handled:
            return None
        if run_context.cancelled():
            logger.debug("wiki-search skipped: round cancelled")
            return None

        handled.add(match.original_text)
        mark_tool_call_message(run_context, context.content, TOOL_ID)
        shown, result = await run_wiki_search(context, match.parameters or {})
        if run_context.cancelled():
            logger.debug("wiki-search result dropped: round cancelled")
            return None

        logger.info(f"Agent {run_context.agent.id} ran {TOOL_ID} (ok={result.success})")
        await record_tool_result(
            hooks,
            run_context,
            TOOL_ID,
            shown,
            result,
            duration=configs[0].param.tool_result_duration,
            request_id=context.request_id,
        )
        return RoundDecision(yield_next_round_to="self", tool_call=match)

    hooks.process_prompts.tap(PLUGIN_ID, inject_tool_list)
    hooks.response_complete.tap(PLUGIN_ID, handle_response_complete)
