"""Helpers shared by the built-in plugins."""

from __future__ import annotations

import json
import random
from typing import TYPE_CHECKING, Any

from loguru import logger

from wikiagent.agent.models import AgentInstanceMessage, new_message_id
from wikiagent.hooks.runner import AgentHooks, ToolExecutionContext
from wikiagent.prompts.tree import PromptNode, insert_node
from wikiagent.tools.base import ToolResult

if TYPE_CHECKING:
    from wikiagent.agent.context import AgentRunContext
    from wikiagent.config.schema import PluginConfig, TriggerConfig


def plugin_param(config: PluginConfig | None, plugin_id: str) -> Any:
    """Parameters of ``config`` if it belongs to ``plugin_id``, else None."""
    if config is None or config.plugin_id != plugin_id:
        return None
    return config.param


def trigger_matches(trigger: TriggerConfig | None, text: str, rng: random.Random | None = None) -> bool:
    """
    Evaluate trigger rules against ``text``.

    No trigger means always. Otherwise any configured rule firing is enough:
    a comma-separated keyword found case-insensitively, a literal ``filter``
    substring, or a ``random_chance`` roll.
    """
    if trigger is None:
        return True
    configured = False
    lowered = (text or "").lower()

    keywords = [k.strip().lower() for k in trigger.search.split(",") if k.strip()]
    if keywords:
        configured = True
        if any(k in lowered for k in keywords):
            return True
    if trigger.filter:
        configured = True
        if trigger.filter in (text or ""):
            return True
    if trigger.random_chance > 0:
        configured = True
        if (rng or random).random() < trigger.random_chance:
            return True
    if trigger.model:
        logger.debug(f"Model-based trigger '{trigger.model}' is not evaluated")
    return not configured


def latest_user_text(messages: list[AgentInstanceMessage]) -> str:
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return ""


def insert_prompt(
    prompts: list[PromptNode],
    config: PluginConfig,
    target_id: str,
    position: str,
    text: str,
    caption: str,
    tags: list[str] | None = None,
) -> bool:
    """Insert a generated node; ids derive from the plugin id, never from time."""
    prefix = f"{config.plugin_id}-{config.id}-"
    counter = sum(1 for node_id in _iter_ids(prompts) if node_id.startswith(prefix))
    node = PromptNode(
        id=f"{prefix}{counter}",
        caption=caption,
        text=text,
        tags=list(tags or []),
    )
    if not insert_node(prompts, target_id, node, position):
        logger.warning(f"Target prompt '{target_id}' not found for plugin '{config.id}'")
        return False
    return True


def _iter_ids(nodes: list[PromptNode]):
    for node in nodes:
        yield node.id
        yield from _iter_ids(node.children)


def format_tool_result(tool_id: str, parameters: dict[str, Any], result: ToolResult) -> str:
    """Render a tool result the way the LLM sees it on the next round."""
    label = "Result" if result.success else "Error"
    body = result.data if result.success else result.error
    return (
        "<functions_result>\n"
        f"Tool: {tool_id}\n"
        f"Parameters: {json.dumps(parameters, ensure_ascii=False)}\n"
        f"{label}: {body}\n"
        "</functions_result>"
    )


def tool_description(tool_id: str, description: str, parameters: dict[str, Any], example: dict[str, Any]) -> str:
    """Describe a tool and how to call it, for injection into prompts."""
    lines = [f"## {tool_id}", description.strip(), "", "Parameters:"]
    for name, info in parameters.items():
        lines.append(f"- {name}: {info}")
    lines.extend(
        [
            "",
            "Call it by replying with:",
            f'<tool_use name="{tool_id}">',
            json.dumps(example, ensure_ascii=False),
            "</tool_use>",
        ]
    )
    return "\n".join(lines)


def mark_tool_call_message(run_context: AgentRunContext, llm_response: str, tool_id: str) -> None:
    """Limit the agent message carrying a tool call to one more round of context."""
    for message in reversed(run_context.messages):
        if message.role != "agent":
            continue
        if message.content == llm_response:
            message.duration = 1
            message.metadata["contains_tool_call"] = True
            message.metadata["tool_id"] = tool_id
        return


async def record_tool_result(
    hooks: AgentHooks,
    run_context: AgentRunContext,
    tool_id: str,
    parameters: dict[str, Any],
    result: ToolResult,
    duration: int | None,
    request_id: str | None = None,
) -> AgentInstanceMessage:
    """Append a tool result message to the agent's history and fire ``tool_executed``."""
    message = AgentInstanceMessage(
        id=new_message_id("tool-result"),
        agent_id=run_context.agent.id,
        role="tool",
        content=format_tool_result(tool_id, parameters, result),
        duration=duration if duration is not None else run_context.settings.tool_result_duration,
        metadata={
            "is_tool_result": True,
            "is_error": not result.success,
            "tool_id": tool_id,
            "tool_parameters": parameters,
            "is_persisted": False,
            "is_complete": True,
        },
    )
    run_context.append_message(message)
    await hooks.tool_executed.call(
        ToolExecutionContext(
            run_context=run_context,
            tool_id=tool_id,
            parameters=parameters,
            result=result,
            message=message,
            request_id=request_id,
        )
    )
    return message
