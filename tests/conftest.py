"""Shared fixtures for chat backend tests."""

import asyncio
import os
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient

# Ensure we never build a real provider from ambient settings
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("LLM_PROVIDER", "openai")

from llm.conversation_store import InMemoryTranscriptStore
from llm.errors import GenerationError, PersistenceError, TransportError


class ScriptedGenerator:
    """Text generator that replays fixed fragments, optionally failing part way."""

    def __init__(
        self,
        fragments=("Hello", " there", "!"),
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.error = error or GenerationError("model unavailable")
        self.delay = delay
        self.prompts: List[str] = []
        self.closed = 0

    async def stream(self, prompt: str):
        self.prompts.append(prompt)
        try:
            for i, fragment in enumerate(self.fragments):
                if i == self.fail_after:
                    raise self.error
                await asyncio.sleep(self.delay)
                yield fragment
            if self.fail_after is not None and self.fail_after >= len(self.fragments):
                raise self.error
        finally:
            self.closed += 1


class RecordingSink:
    """Output sink that keeps everything written to it."""

    def __init__(self, broken_after: Optional[int] = None):
        self.broken_after = broken_after
        self.opened = False
        self.closed = False
        self.writes: List[str] = []
        self.flushes = 0

    async def open(self):
        self.opened = True

    async def write(self, fragment: str):
        if self.broken_after is not None and len(self.writes) >= self.broken_after:
            raise TransportError("connection reset by peer")
        self.writes.append(fragment)

    async def flush(self):
        self.flushes += 1

    async def close(self):
        self.closed = True

    @property
    def text(self) -> str:
        return "".join(self.writes)


class FlakyStore(InMemoryTranscriptStore):
    """In-memory store whose reads or appends can be switched to fail or slowed down."""

    def __init__(
        self, fail_reads: bool = False, fail_appends: bool = False, append_delay: float = 0.0, **kwargs
    ):
        super().__init__(**kwargs)
        self.fail_reads = fail_reads
        self.fail_appends = fail_appends
        self.append_delay = append_delay

    async def read(self, user_id, session_id):
        if self.fail_reads:
            raise PersistenceError("Failed to retrieve chat history")
        return await super().read(user_id, session_id)

    async def append(self, user_id, session_id, message):
        if self.fail_appends:
            raise PersistenceError("Failed to save message")
        if self.append_delay:
            await asyncio.sleep(self.append_delay)
        await super().append(user_id, session_id, message)


@pytest.fixture
def store():
    return InMemoryTranscriptStore(page_size=2)


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def service(store, generator):
    from api.services import ChatService
    return ChatService(store=store, generator=generator)


@pytest.fixture
def client(service):
    """Create a FastAPI test client around an injected chat service."""
    from api.main import create_app
    app = create_app(service=service)
    with TestClient(app) as test_client:
        yield test_client
