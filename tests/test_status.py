from wikiagent.agent import status
from wikiagent.agent.context import AgentRunContext
from wikiagent.agent.models import AgentInstance
from wikiagent.config.schema import AgentDefinition
from wikiagent.providers.base import AIErrorDetail, LLMCollaborator


class NullLLM(LLMCollaborator):
    async def generate_from_ai(self, prompts, ai_config, *, agent_instance_id=None):
        return
        yield

    async def cancel_ai_request(self, request_id):
        return None


def _context() -> AgentRunContext:
    return AgentRunContext(
        agent=AgentInstance(id="agent-1", agent_def_id="def-1"),
        definition=AgentDefinition(id="def-1"),
        llm=NullLLM(),
    )


def test_working_and_completed_carry_agent_messages() -> None:
    context = _context()

    working = status.working("partial", context, request_id="r1")
    done = status.completed("final", context)

    assert working.state == "working"
    assert working.message.id == "ai-response-r1"
    assert working.message.role == "agent"
    assert done.state == "completed"
    assert done.content == "final"
    assert done.message.id != status.completed("final", context).message.id
    assert not done.is_error


def test_canceled_has_no_message() -> None:
    canceled = status.canceled()

    assert canceled.state == "canceled"
    assert canceled.message is None
    assert canceled.content == ""


def test_error_is_a_completed_status_with_error_role() -> None:
    detail = AIErrorDetail(name="AuthenticationError", code="401", provider="openai", message="bad key")

    result = status.error("Error: bad key", detail, _context(), request_id="r2")

    assert result.state == "completed"
    assert result.is_error
    assert result.message.role == "error"
    assert result.message.duration == 1
    assert result.error_detail == {
        "name": "AuthenticationError",
        "code": "401",
        "provider": "openai",
        "message": "bad key",
    }


def test_error_without_detail_still_builds() -> None:
    result = status.error("Error: Unknown error", None, _context())

    assert result.error_detail["message"] == "Error: Unknown error"
