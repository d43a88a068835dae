from wikiagent.agent.context import AgentRunContext
from wikiagent.agent.models import AgentInstance, AgentInstanceMessage
from wikiagent.agent.orchestrator import NO_USER_MESSAGE, ConversationOrchestrator, merge_ai_config, run_agent_round
from wikiagent.config.schema import (
    AgentDefinition,
    AIApiConfig,
    AutoReplyParam,
    FullReplacementParam,
    HandlerConfig,
    PluginConfig,
    ProviderModel,
    Settings,
    ToolCallingParam,
)
from wikiagent.plugins.registry import create_hooks_with_plugins
from wikiagent.prompts.tree import PromptNode
from wikiagent.providers.base import AIErrorDetail, AIStreamResponse, LLMCollaborator
from wikiagent.session.store import InMemoryMessageStore
from wikiagent.tools.base import ToolRegistry


class ScriptedLLM(LLMCollaborator):
    """Replays one scripted chunk list per generate_from_ai call."""

    def __init__(self, rounds, defaults=None):
        super().__init__(api_key=None, api_base=None)
        self.rounds = list(rounds)
        self.defaults = defaults or {}
        self.calls = 0
        self.prompts = []
        self.configs = []
        self.cancelled = []

    async def generate_from_ai(self, prompts, ai_config, *, agent_instance_id=None):
        self.calls += 1
        self.prompts.append(prompts)
        self.configs.append(ai_config)
        request_id = f"req-{self.calls}"
        for item in self.rounds.pop(0):
            if isinstance(item, AIStreamResponse):
                yield item
            else:
                status, content = item
                yield AIStreamResponse(request_id=request_id, status=status, content=content)

    async def cancel_ai_request(self, request_id):
        self.cancelled.append(request_id)

    async def get_ai_config(self):
        return self.defaults


class ExplodingLLM(ScriptedLLM):
    async def generate_from_ai(self, prompts, ai_config, *, agent_instance_id=None):
        self.calls += 1
        raise RuntimeError("boom")
        yield  # pragma: no cover


def _definition(plugins=None, prompts=None, ai_api_config=None) -> AgentDefinition:
    return AgentDefinition(
        id="def-1",
        name="Wiki helper",
        ai_api_config=ai_api_config or AIApiConfig(),
        handler_config=HandlerConfig(
            prompts=prompts or [PromptNode(id="system", role="system", text="You are a wiki helper.")],
            plugins=plugins or [],
        ),
    )


def _context(llm, definition=None, message="What is a tiddler?", **kwargs) -> AgentRunContext:
    agent = AgentInstance(id="agent-1", agent_def_id="def-1")
    if message is not None:
        agent.add_user_message(message)
    return AgentRunContext(agent=agent, definition=definition or _definition(), llm=llm, **kwargs)


async def _collect(context, hooks=None):
    return [item async for item in run_agent_round(context, hooks)]


async def test_plain_round_streams_then_completes() -> None:
    llm = ScriptedLLM([[("start", ""), ("update", "A tid"), ("update", "A tiddler"), ("done", "A tiddler")]])
    context = _context(llm, sink=InMemoryMessageStore())

    statuses = await _collect(context)

    assert [s.state for s in statuses] == ["working", "working", "completed"]
    assert statuses[-1].content == "A tiddler"
    assert statuses[-1].message.id == "ai-response-req-1"
    assert llm.calls == 1
    assert llm.prompts[0][-1] == {"role": "user", "content": "What is a tiddler?"}
    agent_messages = [m for m in context.messages if m.role == "agent"]
    assert len(agent_messages) == 1
    assert agent_messages[0].metadata["is_complete"] is True
    assert context.agent.status.state == "completed"


async def test_no_user_message_completes_without_llm_call() -> None:
    llm = ScriptedLLM([])
    context = _context(llm, message=None)
    context.agent.messages.append(AgentInstanceMessage(agent_id="agent-1", role="agent", content="Hello"))

    statuses = await _collect(context)

    assert len(statuses) == 1
    assert statuses[0].state == "completed"
    assert statuses[0].content == NO_USER_MESSAGE
    assert llm.calls == 0


async def test_cancelled_before_start_never_calls_llm() -> None:
    llm = ScriptedLLM([[("done", "never")]])
    context = _context(llm, is_cancelled=lambda: True)

    statuses = await _collect(context)

    assert [s.state for s in statuses] == ["canceled"]
    assert statuses[0].message is None
    assert llm.calls == 0
    assert llm.cancelled == []


async def test_user_message_hooks_fire_once_per_message() -> None:
    llm = ScriptedLLM([[("start", ""), ("done", "ok")]])
    flag = {"cancelled": True}
    context = _context(llm, is_cancelled=lambda: flag["cancelled"])
    hooks = create_hooks_with_plugins([])
    received = []
    hooks.user_message_received.tap("recorder", lambda ctx: received.append(ctx.message.id))

    first = await _collect(context, hooks)
    assert [s.state for s in first] == ["canceled"]
    assert context.messages[0].metadata["processed"] is True

    flag["cancelled"] = False
    second = await _collect(context, hooks)

    assert second[-1].state == "completed"
    assert received == [context.messages[0].id]
    assert llm.calls == 1


async def test_cancel_mid_stream_cancels_request() -> None:
    llm = ScriptedLLM([[("start", ""), ("update", "a"), ("update", "ab"), ("done", "ab")]])
    flag = {"cancelled": False}
    context = _context(llm, is_cancelled=lambda: flag["cancelled"])

    statuses = []
    async for item in run_agent_round(context):
        statuses.append(item)
        if item.state == "working":
            flag["cancelled"] = True

    assert [s.state for s in statuses] == ["working", "canceled"]
    assert llm.cancelled == ["req-1"]


async def test_tool_call_runs_second_round_with_result() -> None:
    tools = ToolRegistry()
    tools.register("echo", lambda text: f"echo: {text}", description="Echo text back")
    plugins = [
        PluginConfig(
            id="history",
            plugin_id="fullReplacement",
            full_replacement_param=FullReplacementParam(target_id="history"),
        ),
        PluginConfig(id="tools", plugin_id="toolCalling", tool_calling_param=ToolCallingParam()),
    ]
    prompts = [
        PromptNode(id="system", role="system", text="You are a wiki helper."),
        PromptNode(id="history", caption="History"),
    ]
    call = 'Let me check.\n<tool_use name="echo">{"text": "hi"}</tool_use>'
    llm = ScriptedLLM(
        [
            [("start", ""), ("update", call), ("done", call)],
            [("start", ""), ("update", "Final answer"), ("done", "Final answer")],
        ]
    )
    sink = InMemoryMessageStore()
    context = _context(llm, _definition(plugins=plugins, prompts=prompts), tools=tools, sink=sink)

    statuses = await _collect(context)

    assert llm.calls == 2
    assert len(statuses) >= 3
    assert [s.state for s in statuses] == ["working", "working", "working", "completed"]
    assert statuses[-1].content == "Final answer"

    round_two = llm.prompts[1]
    tool_prompts = [p for p in round_two if "<functions_result>" in p["content"]]
    assert len(tool_prompts) == 1
    assert "Tool: echo" in tool_prompts[0]["content"]
    assert "Result: echo: hi" in tool_prompts[0]["content"]

    tool_messages = [m for m in context.messages if m.role == "tool"]
    assert len(tool_messages) == 1
    assert tool_messages[0].duration == 1
    assert tool_messages[0].metadata["is_persisted"] is True
    call_message = next(m for m in context.messages if m.metadata.get("contains_tool_call"))
    assert call_message.duration == 1
    assert call_message.metadata["tool_id"] == "echo"


async def test_provider_error_is_terminal_and_recorded() -> None:
    detail = AIErrorDetail(name="BadRequestError", code="400", provider="openai", message="Invalid prompt")
    llm = ScriptedLLM([[("start", ""), AIStreamResponse(request_id="req-1", status="error", error_detail=detail)]])
    context = _context(llm)

    statuses = await _collect(context)

    assert len(statuses) == 1
    final = statuses[0]
    assert final.state == "completed"
    assert "Error:" in final.content
    assert "Invalid prompt" in final.content
    assert final.is_error
    assert final.error_detail["code"] == "400"
    assert llm.calls == 1
    assert context.messages[-1].role == "error"
    assert context.messages[-1].duration == 1


async def test_self_continuation_stops_at_round_budget() -> None:
    plugins = [PluginConfig(id="nudge", plugin_id="autoReply", auto_reply_param=AutoReplyParam(text="Go on"))]
    llm = ScriptedLLM([[("start", ""), ("done", "thinking")], [("start", ""), ("done", "still thinking")]])
    context = _context(llm, _definition(plugins=plugins), settings=Settings(max_self_rounds=1))

    statuses = await _collect(context)

    assert llm.calls == 2
    assert statuses[-1].state == "completed"
    assert statuses[-1].content == "still thinking"
    auto_replies = [m for m in context.messages if m.metadata.get("auto_reply")]
    assert [m.content for m in auto_replies] == ["Go on", "Go on"]
    assert all(m.metadata["processed"] for m in auto_replies)


async def test_default_budget_allows_three_continuations() -> None:
    plugins = [PluginConfig(id="nudge", plugin_id="autoReply", auto_reply_param=AutoReplyParam(text="Go on"))]
    llm = ScriptedLLM([[("start", ""), ("done", f"step {n}")] for n in range(1, 6)])
    context = _context(llm, _definition(plugins=plugins))

    statuses = await _collect(context)

    assert llm.calls == 4
    assert [s.state for s in statuses] == ["working", "working", "working", "working", "completed"]
    assert statuses[-1].content == "step 4"


async def test_zero_budget_disables_continuation() -> None:
    plugins = [PluginConfig(id="nudge", plugin_id="autoReply", auto_reply_param=AutoReplyParam(text="Go on"))]
    llm = ScriptedLLM([[("start", ""), ("done", "only")]])
    context = _context(llm, _definition(plugins=plugins), settings=Settings(max_self_rounds=0))

    statuses = await _collect(context)

    assert llm.calls == 1
    assert statuses[-1].state == "completed"
    assert statuses[-1].content == "only"


async def test_stream_without_terminal_chunk_completes_with_accumulated_text() -> None:
    llm = ScriptedLLM([[("start", ""), ("update", "partial")]])
    context = _context(llm)

    statuses = await _collect(context)

    assert statuses[-1].state == "completed"
    assert statuses[-1].content == "partial"


async def test_unexpected_exception_becomes_completed_status() -> None:
    llm = ExplodingLLM([])
    context = _context(llm)

    statuses = await _collect(context)

    assert len(statuses) == 1
    assert statuses[0].state == "completed"
    assert statuses[0].content == "Unexpected error: boom"


async def test_ai_config_layers_merge_later_wins() -> None:
    llm = ScriptedLLM(
        [[("start", ""), ("done", "ok")]],
        defaults={"api": {"provider": "openai", "model": "base"}, "model_parameters": {"temperature": 0.7}},
    )
    definition = _definition(ai_api_config=AIApiConfig(api=ProviderModel(provider="anthropic", model="claude")))
    context = _context(llm, definition)
    context.agent.ai_api_config = {"model_parameters": {"temperature": 0.1}}

    statuses = await _collect(context)

    assert statuses[-1].state == "completed"
    assert llm.configs[0]["api"] == {"provider": "anthropic", "model": "claude"}
    assert llm.configs[0]["model_parameters"] == {"temperature": 0.1}


def test_merge_ai_config_does_not_mutate_layers() -> None:
    base = {"api": {"provider": "openai", "model": "a"}}
    override = {"api": {"model": "b"}}

    merged = merge_ai_config(base, override)

    assert merged == {"api": {"provider": "openai", "model": "b"}}
    assert base["api"]["model"] == "a"


async def test_orchestrator_builds_hooks_from_definition_plugins() -> None:
    plugins = [PluginConfig(id="tools", plugin_id="toolCalling", tool_calling_param=ToolCallingParam())]
    context = _context(ScriptedLLM([]), _definition(plugins=plugins))

    orchestrator = ConversationOrchestrator(context)

    assert orchestrator.hooks.post_process.taps == ["toolCalling"]
    assert orchestrator.hooks.response_complete.taps == ["messageManagement"]


async def test_closing_a_cancelled_run_cancels_outstanding_request() -> None:
    llm = ScriptedLLM([[("start", ""), ("update", "a"), ("update", "ab"), ("done", "ab")]])
    flag = {"cancelled": False}
    context = _context(llm, is_cancelled=lambda: flag["cancelled"])
    run = ConversationOrchestrator(context).run()

    first = await run.__anext__()
    flag["cancelled"] = True
    await run.aclose()

    assert first.state == "working"
    assert llm.cancelled == ["req-1"]
