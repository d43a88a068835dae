"""Hook points that plugins attach handlers to during an agent round."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from loguru import logger

if TYPE_CHECKING:
    from wikiagent.agent.context import AgentRunContext
    from wikiagent.agent.models import AgentInstanceMessage
    from wikiagent.config.schema import PluginConfig
    from wikiagent.prompts.tool_calls import ToolCallMatch
    from wikiagent.prompts.tree import PromptNode, ResponseNode
    from wikiagent.tools.base import ToolResult

SERIES_HOOKS = (
    "user_message_received",
    "agent_status_changed",
    "tool_executed",
    "response_update",
    "response_complete",
)
WATERFALL_HOOKS = (
    "process_prompts",
    "finalize_prompts",
    "post_process",
)


def _yield_rank(target: str | None) -> int:
    if target == "self":
        return 3
    if target and target.startswith("agent:"):
        return 2
    if target == "human":
        return 1
    return 0


@dataclass(frozen=True)
class RoundDecision:
    """What should happen after this round, as voted by handlers.

    ``yield_next_round_to`` is ``"human"``, ``"self"`` or ``"agent:<id>"``.
    """

    yield_next_round_to: str | None = None
    new_user_message: str | None = None
    tool_call: ToolCallMatch | None = None

    def merge(self, other: RoundDecision | None) -> RoundDecision:
        """Combine two decisions; ``self`` beats ``agent:*`` beats ``human``."""
        if other is None:
            return self
        target = self.yield_next_round_to
        if _yield_rank(other.yield_next_round_to) > _yield_rank(target):
            target = other.yield_next_round_to
        return replace(
            self,
            yield_next_round_to=target,
            new_user_message=self.new_user_message or other.new_user_message,
            tool_call=self.tool_call or other.tool_call,
        )

    @property
    def continue_self(self) -> bool:
        return self.yield_next_round_to == "self"


@dataclass
class HookRunResult:
    """Result summary for one hook call."""

    hook: str
    context: Any = None
    decision: RoundDecision = field(default_factory=RoundDecision)
    executed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class PromptHookContext:
    """Context for ``process_prompts`` and ``finalize_prompts``."""

    messages: list[AgentInstanceMessage]
    prompts: list[PromptNode]
    plugin_config: PluginConfig | None = None
    run_context: AgentRunContext | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PostProcessContext:
    """Context for ``post_process``."""

    llm_response: str
    responses: list[ResponseNode]
    messages: list[AgentInstanceMessage]
    plugin_config: PluginConfig | None = None
    run_context: AgentRunContext | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class UserMessageContext:
    run_context: AgentRunContext
    message: AgentInstanceMessage


@dataclass
class AgentStatusContext:
    run_context: AgentRunContext
    state: str


@dataclass
class ResponseContext:
    """Context for ``response_update`` and ``response_complete``."""

    run_context: AgentRunContext
    content: str
    request_id: str | None = None
    status: str = "update"


@dataclass
class ToolExecutionContext:
    run_context: AgentRunContext | None
    tool_id: str
    parameters: dict[str, Any]
    result: ToolResult
    message: AgentInstanceMessage | None = None
    request_id: str | None = None


Handler = Callable[[Any], Any]


async def _invoke(handler: Handler, context: Any) -> Any:
    result = handler(context)
    if inspect.isawaitable(result):
        result = await result
    return result


class SeriesHook:
    """Run handlers one after another on the same context.

    Handlers may return a RoundDecision; a handler that raises is logged and
    the remaining handlers still run.
    """

    def __init__(self, name: str):
        self.name = name
        self._taps: list[tuple[str, Handler]] = []

    def tap(self, name: str, handler: Callable[[Any], Awaitable[RoundDecision | None] | RoundDecision | None]) -> None:
        self._taps.append((name, handler))

    @property
    def taps(self) -> list[str]:
        return [name for name, _ in self._taps]

    async def call(self, context: Any) -> HookRunResult:
        result = HookRunResult(hook=self.name, context=context)
        for tap_name, handler in self._taps:
            try:
                returned = await _invoke(handler, context)
            except Exception as exc:
                msg = f"{self.name} handler {tap_name} failed: {exc}"
                logger.warning(msg)
                result.errors.append(msg)
                continue
            result.executed += 1
            if isinstance(returned, RoundDecision):
                result.decision = result.decision.merge(returned)
        return result


class WaterfallHook:
    """Thread a context through handlers, each seeing the previous output.

    A handler returns the next context, a ``(context, decision)`` tuple or
    None to pass the context on untouched. A handler that raises is logged
    and skipped; its return value is discarded, so the next handler gets the
    context object the failing handler was given.
    """

    def __init__(self, name: str):
        self.name = name
        self._taps: list[tuple[str, Handler]] = []

    def tap(self, name: str, handler: Handler) -> None:
        self._taps.append((name, handler))

    @property
    def taps(self) -> list[str]:
        return [name for name, _ in self._taps]

    async def call(self, context: Any) -> HookRunResult:
        result = HookRunResult(hook=self.name, context=context)
        for tap_name, handler in self._taps:
            try:
                returned = await _invoke(handler, result.context)
            except Exception as exc:
                plugin_id = getattr(getattr(result.context, "plugin_config", None), "id", None)
                msg = f"{self.name} handler {tap_name} failed (plugin {plugin_id}): {exc}"
                logger.warning(msg)
                result.errors.append(msg)
                continue
            result.executed += 1
            if isinstance(returned, tuple):
                next_context, decision = returned
                result.decision = result.decision.merge(decision)
                if next_context is not None:
                    result.context = next_context
            elif returned is not None:
                result.context = returned
        return result


class AgentHooks:
    """The full set of hook points for one agent round."""

    def __init__(self):
        self.user_message_received = SeriesHook("user_message_received")
        self.agent_status_changed = SeriesHook("agent_status_changed")
        self.tool_executed = SeriesHook("tool_executed")
        self.response_update = SeriesHook("response_update")
        self.response_complete = SeriesHook("response_complete")
        self.process_prompts = WaterfallHook("process_prompts")
        self.finalize_prompts = WaterfallHook("finalize_prompts")
        self.post_process = WaterfallHook("post_process")

    def get(self, name: str) -> SeriesHook | WaterfallHook:
        if name not in SERIES_HOOKS and name not in WATERFALL_HOOKS:
            raise KeyError(f"Unknown hook: {name}")
        return getattr(self, name)
