"""Response processing pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from wikiagent.hooks.runner import AgentHooks, PostProcessContext, RoundDecision
from wikiagent.prompts.tree import ResponseNode, flatten_responses

if TYPE_CHECKING:
    from wikiagent.agent.context import AgentRunContext
    from wikiagent.agent.models import AgentInstanceMessage
    from wikiagent.config.schema import PluginConfig
    from wikiagent.prompts.tool_calls import ToolCallMatch


@dataclass
class ResponseConcatResult:
    """Display text plus who gets the next turn."""

    processed_response: str
    yield_next_round_to: str = "human"
    new_user_message: str | None = None
    tool_call: ToolCallMatch | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def needs_new_llm_call(self) -> bool:
        return self.yield_next_round_to == "self"


async def process_response(
    llm_response: str,
    messages: list[AgentInstanceMessage],
    plugin_configs: list[PluginConfig],
    response_template: list[ResponseNode],
    hooks: AgentHooks,
    run_context: AgentRunContext | None = None,
) -> ResponseConcatResult:
    """Run ``post_process`` for each plugin over a copy of the response template."""
    responses = [node.model_copy(deep=True) for node in response_template]
    context = PostProcessContext(
        llm_response=llm_response,
        responses=responses,
        messages=messages,
        run_context=run_context,
    )
    decision = RoundDecision()
    errors: list[str] = []

    for plugin_config in plugin_configs:
        context.plugin_config = plugin_config
        result = await hooks.post_process.call(context)
        decision = decision.merge(result.decision)
        errors.extend(result.errors)
        context = result.context

    processed = flatten_responses(context.responses) if context.responses else llm_response.strip()
    target = decision.yield_next_round_to or "human"
    if target != "human":
        logger.debug(f"Response pipeline yields next round to {target}")
    return ResponseConcatResult(
        processed_response=processed,
        yield_next_round_to=target,
        new_user_message=decision.new_user_message,
        tool_call=decision.tool_call,
        errors=errors,
    )
