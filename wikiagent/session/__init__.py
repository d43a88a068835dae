"""Message persistence module for wikiagent."""

from wikiagent.session.store import InMemoryMessageStore, JsonlMessageStore, MessageSink

__all__ = ["MessageSink", "InMemoryMessageStore", "JsonlMessageStore"]
