"""toolCalling: detect tool calls in LLM output, run them and loop back to the AI."""

from __future__ import annotations

from loguru import logger

from wikiagent.hooks.runner import AgentHooks, PostProcessContext, PromptHookContext, RoundDecision
from wikiagent.plugins.base import (
    insert_prompt,
    mark_tool_call_message,
    plugin_param,
    record_tool_result,
    tool_description,
)
from wikiagent.prompts.tool_calls import ToolCallMatch, match_custom_pattern, match_tool_calling
from wikiagent.prompts.tree import find_node_by_id
from wikiagent.tools.base import ToolResult, ToolScope

PLUGIN_ID = "toolCalling"
HANDLED_KEY = "handled_tool_calls"


async def inject_tool_list(context: PromptHookContext) -> PromptHookContext | None:
    config = context.plugin_config
    param = plugin_param(config, PLUGIN_ID)
    if param is None or param.tool_list_position is None:
        return None
    tools = context.run_context.tools if context.run_context else None
    descriptions = tools.describe() if tools else []
    if not descriptions:
        return None
    text = "\n\n".join(
        tool_description(d["id"], d.get("description", ""), d.get("parameters", {}), example={})
        for d in descriptions
    )
    insert_prompt(
        context.prompts,
        config,
        target_id=param.tool_list_position.target_id,
        position=param.tool_list_position.position,
        text=text,
        caption="Available tools",
        tags=["toolList"],
    )
    return context


def register(hooks: AgentHooks) -> None:
    async def handle_tool_call(context: PostProcessContext):
        config = context.plugin_config
        param = plugin_param(config, PLUGIN_ID)
        if param is None:
            return None

        match: ToolCallMatch = (
            match_custom_pattern(context.llm_response, param.match) if param.match
            else match_tool_calling(context.llm_response)
        )
        if not match.found:
            return None

        run_context = context.run_context
        handled = run_context.state.setdefault(HANDLED_KEY, set()) if run_context else set()
        if match.original_text in handled:
            return None

        if param.target_id:
            location = find_node_by_id(context.responses, param.target_id)
            if location is not None and location.node.text:
                location.node.text = location.node.text.replace(match.original_text or "", "").strip()

        context.metadata["tool_call"] = {"tool_id": match.tool_id, "parameters": match.parameters}
        decision = RoundDecision(yield_next_round_to="self", tool_call=match)
        if run_context is None:
            return context, decision
        if run_context.cancelled():
            logger.debug(f"Tool {match.tool_id} skipped: round cancelled")
            return context, RoundDecision(tool_call=match)

        handled.add(match.original_text)
        mark_tool_call_message(run_context, context.llm_response, match.tool_id)
        parameters = match.parameters or {}
        if run_context.tools is None:
            result = ToolResult(success=False, error="No tool executor is configured")
        else:
            scope = ToolScope(
                agent_id=run_context.agent.id,
                message_id=run_context.messages[-1].id if run_context.messages else None,
                ai_config=dict(run_context.agent.ai_api_config),
            )
            result = await run_context.tools.execute(match.tool_id, parameters, scope)
        logger.info(f"Agent {run_context.agent.id} ran tool {match.tool_id} (ok={result.success})")
        await record_tool_result(
            hooks,
            run_context,
            match.tool_id,
            parameters,
            result,
            duration=param.tool_result_duration,
        )
        return context, decision

    hooks.process_prompts.tap(PLUGIN_ID, inject_tool_list)
    hooks.post_process.tap(PLUGIN_ID, handle_tool_call)
