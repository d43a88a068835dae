"""Prompt and response pipelines for wikiagent."""

from wikiagent.prompts.concat import PromptConcatResult, concat_prompts
from wikiagent.prompts.response import ResponseConcatResult, process_response
from wikiagent.prompts.tool_calls import ToolCallMatch, match_tool_calling
from wikiagent.prompts.tree import PromptNode, ResponseNode, find_node_by_id, flatten_prompts

__all__ = [
    "PromptConcatResult",
    "PromptNode",
    "ResponseConcatResult",
    "ResponseNode",
    "ToolCallMatch",
    "concat_prompts",
    "find_node_by_id",
    "flatten_prompts",
    "match_tool_calling",
    "process_response",
]
