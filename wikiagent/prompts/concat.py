"""Prompt concatenation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from wikiagent.hooks.runner import AgentHooks, PromptHookContext
from wikiagent.prompts.tree import PromptNode, flatten_prompts

if TYPE_CHECKING:
    from wikiagent.agent.context import AgentRunContext
    from wikiagent.agent.models import AgentInstanceMessage
    from wikiagent.config.schema import PluginConfig


@dataclass
class PromptConcatResult:
    """Flattened prompts plus the processed tree they came from."""

    flat_prompts: list[dict[str, str]]
    processed_prompts: list[PromptNode]
    errors: list[str] = field(default_factory=list)


async def concat_prompts(
    prompts: list[PromptNode],
    messages: list[AgentInstanceMessage],
    plugin_configs: list[PluginConfig],
    hooks: AgentHooks | None = None,
    run_context: AgentRunContext | None = None,
) -> PromptConcatResult:
    """
    Run every plugin over a copy of the prompt tree and flatten it.

    Args:
        prompts: The agent's prompt template; left untouched.
        messages: Conversation history, newest last.
        plugin_configs: Plugins in configuration order.
        hooks: Hooks with plugins registered; built from ``plugin_configs``
            when omitted.
        run_context: Round context for plugins that need collaborators.

    Returns:
        PromptConcatResult whose ``flat_prompts`` ends with the trailing user
        message when the history ends with one.
    """
    if hooks is None:
        from wikiagent.plugins.registry import create_hooks_with_plugins

        hooks = create_hooks_with_plugins(plugin_configs)

    tree = [node.model_copy(deep=True) for node in prompts]
    errors: list[str] = []
    context = PromptHookContext(messages=messages, prompts=tree, run_context=run_context)

    for plugin_config in plugin_configs:
        context.plugin_config = plugin_config
        result = await hooks.process_prompts.call(context)
        errors.extend(result.errors)
        context = result.context

    context.plugin_config = None
    result = await hooks.finalize_prompts.call(context)
    errors.extend(result.errors)
    context = result.context

    flat = flatten_prompts(context.prompts)
    last = messages[-1] if messages else None
    if last is not None and last.role == "user":
        flat.append({"role": "user", "content": last.content})

    logger.debug(f"Prompt concat produced {len(flat)} messages from {len(plugin_configs)} plugins")
    return PromptConcatResult(flat_prompts=flat, processed_prompts=context.prompts, errors=errors)
