"""Tests for the session registry."""

import threading
import time

from llm.conversation_store import ConversationTranscript, InMemoryTranscriptStore
from llm.prompt_templates import PromptTemplate
from llm.session_registry import SessionBinding, SessionRegistry, session_key
from conftest import ScriptedGenerator


class CountingFactory:
    def __init__(self, delay: float = 0.0):
        self.calls = 0
        self.delay = delay
        self.store = InMemoryTranscriptStore()

    def __call__(self, user_id, session_id):
        self.calls += 1
        time.sleep(self.delay)
        return SessionBinding(
            user_id=user_id,
            session_id=session_id,
            template=PromptTemplate(),
            generator=ScriptedGenerator(),
            transcript=ConversationTranscript(self.store, user_id, session_id),
        )


def test_session_key_joins_user_and_session():
    assert session_key("u1", "s1") == "u1:s1"


def test_get_or_create_reuses_binding():
    registry = SessionRegistry()
    factory = CountingFactory()

    first = registry.get_or_create("u1", "s1", factory)
    second = registry.get_or_create("u1", "s1", factory)

    assert first is second
    assert factory.calls == 1
    assert first.key == "u1:s1"
    assert "u1:s1" in registry
    assert len(registry) == 1


def test_bindings_are_keyed_by_user_and_session():
    registry = SessionRegistry()
    factory = CountingFactory()

    a = registry.get_or_create("alice", "s1", factory)
    b = registry.get_or_create("bob", "s1", factory)

    assert a is not b
    assert a.transcript.user_id == "alice"
    assert b.transcript.user_id == "bob"
    assert len(registry) == 2


def test_factory_runs_once_under_concurrent_callers():
    registry = SessionRegistry()
    factory = CountingFactory(delay=0.01)
    results = []

    def worker():
        results.append(registry.get_or_create("u1", "s1", factory))

    threads = [threading.Thread(target=worker) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert factory.calls == 1
    assert all(binding is results[0] for binding in results)


def test_get_does_not_create():
    registry = SessionRegistry()
    assert registry.get("u1", "s1") is None
    assert len(registry) == 0


def test_evict_is_idempotent():
    registry = SessionRegistry()
    factory = CountingFactory()
    registry.get_or_create("u1", "s1", factory)

    assert registry.evict("u1", "s1") is True
    assert registry.evict("u1", "s1") is False
    assert registry.get("u1", "s1") is None


def test_evicted_binding_is_rebuilt():
    registry = SessionRegistry()
    factory = CountingFactory()
    stale = registry.get_or_create("u1", "s1", factory)
    registry.evict("u1", "s1")

    fresh = registry.get_or_create("u1", "s1", factory)

    assert fresh is not stale
    assert factory.calls == 2


def test_turn_lock_survives_eviction():
    registry = SessionRegistry()
    factory = CountingFactory()
    stale = registry.get_or_create("u1", "s1", factory)
    registry.evict("u1", "s1")

    fresh = registry.get_or_create("u1", "s1", factory)

    assert fresh.turn_lock is stale.turn_lock
    assert registry.turn_lock("u1", "s1") is fresh.turn_lock
    assert registry.turn_lock("u2", "s1") is not fresh.turn_lock


def test_binding_created_at_is_timezone_aware():
    binding = SessionRegistry().get_or_create("u1", "s1", CountingFactory())
    assert binding.created_at.tzinfo is not None
