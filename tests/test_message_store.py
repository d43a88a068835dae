from pathlib import Path

from wikiagent.agent.models import AgentInstanceMessage, AgentStatus
from wikiagent.session.store import InMemoryMessageStore, JsonlMessageStore


def _message(content: str, **metadata) -> AgentInstanceMessage:
    return AgentInstanceMessage(agent_id="agent-1", role="agent", content=content, metadata=metadata)


async def test_in_memory_store_keeps_latest_version_per_id() -> None:
    store = InMemoryMessageStore()
    message = _message("par")

    await store.debounce_update_message(message, "agent-1")
    message.content = "partial"
    await store.debounce_update_message(message, "agent-1")
    await store.update_status("agent-1", AgentStatus(state="working"))

    assert [m.content for m in store.history("agent-1")] == ["partial"]
    assert store.update_count == 2
    assert store.statuses["agent-1"].state == "working"


async def test_jsonl_store_round_trip(tmp_path: Path) -> None:
    store = JsonlMessageStore(tmp_path / "messages", debounce_s=0)
    user = AgentInstanceMessage(agent_id="agent-1", role="user", content="hi")
    reply = _message("hello", is_complete=True)
    reply.duration = 1

    await store.save_message(user)
    await store.save_message(reply)
    await store.update_status("agent-1", AgentStatus(state="completed"))

    path = tmp_path / "messages" / "agent-1.jsonl"
    first_line = path.read_text(encoding="utf-8").splitlines()[0]
    assert '"_type": "metadata"' in first_line
    assert '"status": "completed"' in first_line

    reloaded = JsonlMessageStore(tmp_path / "messages").load("agent-1")
    assert [(m.role, m.content) for m in reloaded] == [("user", "hi"), ("agent", "hello")]
    assert reloaded[1].duration == 1
    assert reloaded[1].metadata == {"is_complete": True}
    assert not list((tmp_path / "messages").glob("*.tmp"))


async def test_jsonl_store_debounces_streaming_updates(tmp_path: Path) -> None:
    store = JsonlMessageStore(tmp_path, debounce_s=3600)
    message = _message("a", is_complete=False)

    await store.debounce_update_message(message, "agent-1")
    message.content = "ab"
    await store.debounce_update_message(message, "agent-1")

    assert JsonlMessageStore(tmp_path).load("agent-1")[0].content == "a"

    message.metadata["is_complete"] = True
    message.content = "abc"
    await store.debounce_update_message(message, "agent-1")

    assert JsonlMessageStore(tmp_path).load("agent-1")[0].content == "abc"


def test_assistant_role_is_stored_as_agent() -> None:
    message = AgentInstanceMessage.from_dict({"id": "m1", "agentId": "agent-1", "role": "assistant", "content": "x"})

    assert message.role == "agent"
    assert message.agent_id == "agent-1"
