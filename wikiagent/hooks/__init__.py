"""Hook registry module for wikiagent."""

from wikiagent.hooks.runner import (
    AgentHooks,
    AgentStatusContext,
    HookRunResult,
    PostProcessContext,
    PromptHookContext,
    ResponseContext,
    RoundDecision,
    SeriesHook,
    ToolExecutionContext,
    UserMessageContext,
    WaterfallHook,
)

__all__ = [
    "AgentHooks",
    "AgentStatusContext",
    "HookRunResult",
    "PostProcessContext",
    "PromptHookContext",
    "ResponseContext",
    "RoundDecision",
    "SeriesHook",
    "ToolExecutionContext",
    "UserMessageContext",
    "WaterfallHook",
]
