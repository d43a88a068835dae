from wikiagent.agent.context import AgentRunContext
from wikiagent.agent.models import AgentInstance
from wikiagent.agent.orchestrator import run_agent_round
from wikiagent.config.schema import AgentDefinition, Settings
from wikiagent.providers.base import AIErrorDetail, AIStreamResponse, LLMCollaborator
from wikiagent.providers.failover import FailoverCandidate, FailoverCollaborator


class ScriptCollaborator(LLMCollaborator):
    """Each call replays the next script: a list of (status, content) or an exception."""

    def __init__(self, name, scripts):
        super().__init__(api_key=None, api_base=None)
        self.name = name
        self.scripts = list(scripts)
        self.calls = 0
        self.cancelled = []

    async def generate_from_ai(self, prompts, ai_config, *, agent_instance_id=None):
        self.calls += 1
        request_id = f"{self.name}-{self.calls}"
        script = self.scripts.pop(0)
        if isinstance(script, Exception):
            yield AIStreamResponse(request_id=request_id, status="start")
            raise script
        for status, content in script:
            detail = AIErrorDetail(name="APIError", code="503", message=content) if status == "error" else None
            yield AIStreamResponse(request_id=request_id, status=status, content=content, error_detail=detail)

    async def cancel_ai_request(self, request_id):
        self.cancelled.append(request_id)


def _policy(max_attempts: int):
    settings = Settings()
    settings.failover.default.max_attempts = max_attempts
    settings.failover.default.base_backoff_ms = 0
    return settings.failover


async def _drain(wrapper):
    return [chunk async for chunk in wrapper.generate_from_ai([{"role": "user", "content": "hi"}], {})]


async def test_failover_moves_to_next_collaborator_on_error() -> None:
    c1 = ScriptCollaborator("openai", [[("start", ""), ("error", "upstream down")]])
    c2 = ScriptCollaborator("anthropic", [[("start", ""), ("update", "ok"), ("done", "ok")]])
    wrapper = FailoverCollaborator(
        candidates=[FailoverCandidate("openai", c1), FailoverCandidate("anthropic", c2)],
        failover_policy=_policy(1),
    )

    chunks = await _drain(wrapper)

    assert [c.status for c in chunks] == ["start", "update", "done"]
    assert chunks[-1].content == "ok"
    assert c1.calls == 1
    assert c2.calls == 1


async def test_failover_retries_same_collaborator_before_switch() -> None:
    c1 = ScriptCollaborator(
        "openai",
        [RuntimeError("overloaded"), [("start", ""), ("update", "recovered"), ("done", "recovered")]],
    )
    c2 = ScriptCollaborator("anthropic", [[("done", "never-used")]])
    wrapper = FailoverCollaborator(
        candidates=[FailoverCandidate("openai", c1), FailoverCandidate("anthropic", c2)],
        failover_policy=_policy(2),
    )

    chunks = await _drain(wrapper)

    assert chunks[-1].content == "recovered"
    assert c1.calls == 2
    assert c2.calls == 0


async def test_failover_surfaces_error_after_partial_output() -> None:
    c1 = ScriptCollaborator("openai", [[("start", ""), ("update", "half"), ("error", "connection reset")]])
    c2 = ScriptCollaborator("anthropic", [[("done", "never-used")]])
    wrapper = FailoverCollaborator(
        candidates=[FailoverCandidate("openai", c1), FailoverCandidate("anthropic", c2)],
        failover_policy=_policy(2),
    )

    chunks = await _drain(wrapper)

    assert [c.status for c in chunks] == ["start", "update", "error"]
    assert chunks[-1].error_detail.message == "connection reset"
    assert c2.calls == 0


async def test_failover_reports_last_error_when_exhausted() -> None:
    c1 = ScriptCollaborator("openai", [[("error", "first")], [("error", "second")]])
    wrapper = FailoverCollaborator(candidates=[FailoverCandidate("openai", c1)], failover_policy=_policy(2))

    chunks = await _drain(wrapper)

    assert [c.status for c in chunks] == ["error"]
    assert chunks[0].error_detail.message == "second"


def test_failover_policy_overrides_per_provider() -> None:
    settings = Settings()
    settings.failover.provider_overrides["anthropic"] = settings.failover.default.model_copy(
        update={"max_attempts": 4, "base_backoff_ms": 10}
    )
    wrapper = FailoverCollaborator(
        candidates=[FailoverCandidate("openai", ScriptCollaborator("openai", []))],
        failover_policy=settings.failover,
    )

    assert wrapper._policy_for("openai") == (2, 350, 5000)
    assert wrapper._policy_for("anthropic") == (4, 10, 5000)


async def test_failover_keeps_first_request_id_and_cancels_live_attempt() -> None:
    c1 = ScriptCollaborator("openai", [[("start", ""), ("error", "upstream down")]])
    c2 = ScriptCollaborator("anthropic", [[("start", ""), ("update", "a"), ("update", "ab"), ("done", "ab")]])
    wrapper = FailoverCollaborator(
        candidates=[FailoverCandidate("openai", c1), FailoverCandidate("anthropic", c2)],
        failover_policy=_policy(1),
    )

    seen = []
    async for chunk in wrapper.generate_from_ai([{"role": "user", "content": "hi"}], {}):
        seen.append(chunk)
        if chunk.status == "update":
            await wrapper.cancel_ai_request(chunk.request_id)

    assert {c.request_id for c in seen} == {"openai-1"}
    assert c1.cancelled == []
    assert c2.cancelled == ["anthropic-1", "anthropic-1"]
    assert wrapper._owners == {}


async def test_cancelling_a_round_reaches_the_retried_request() -> None:
    c1 = ScriptCollaborator("primary", [[("start", ""), ("error", "upstream down")]])
    c2 = ScriptCollaborator("backup", [[("start", ""), ("update", "a"), ("update", "ab"), ("done", "ab")]])
    wrapper = FailoverCollaborator(
        candidates=[FailoverCandidate("primary", c1), FailoverCandidate("backup", c2)],
        failover_policy=_policy(1),
    )
    agent = AgentInstance(id="agent-1", agent_def_id="def-1")
    agent.add_user_message("hello")
    flag = {"cancelled": False}
    context = AgentRunContext(
        agent=agent,
        definition=AgentDefinition(id="def-1"),
        llm=wrapper,
        is_cancelled=lambda: flag["cancelled"],
    )

    states = []
    async for item in run_agent_round(context):
        states.append(item.state)
        if item.state == "working":
            flag["cancelled"] = True

    assert states == ["working", "canceled"]
    assert c2.cancelled == ["backup-1"]
