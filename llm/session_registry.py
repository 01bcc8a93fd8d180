"""
Session registry for the chat backend.

Maps a (user_id, session_id) key to the in-memory binding a turn runs
against. Bindings hold no durable state and can be evicted and rebuilt from
the transcript store at any time.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from .conversation_store import ConversationTranscript
from .prompt_templates import PromptTemplate
from .providers.base import TextGenerator

logger = logging.getLogger(__name__)


def session_key(user_id: str, session_id: str) -> str:
    return f"{user_id}:{session_id}"


@dataclass
class SessionBinding:
    """Generation context bound to one conversation."""
    user_id: str
    session_id: str
    template: PromptTemplate
    generator: TextGenerator
    transcript: ConversationTranscript
    # Serializes turns on this session; the registry swaps in its per-key lock
    turn_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> str:
        return session_key(self.user_id, self.session_id)


BindingFactory = Callable[[str, str], SessionBinding]


class SessionRegistry:
    """
    Get-or-create registry of session bindings.

    A single lock guards lookup, construction and eviction, so the factory
    runs at most once per key and concurrent callers share one binding.
    There is no TTL or size bound; deletes evict explicitly.

    Turn locks are kept per key and outlive eviction, so a binding rebuilt
    after a delete still queues behind a turn running on the old one.
    """

    def __init__(self):
        self._bindings: Dict[str, SessionBinding] = {}
        self._turn_locks: Dict[str, asyncio.Lock] = {}
        self._lock = threading.Lock()

    def get_or_create(self, user_id: str, session_id: str, factory: BindingFactory) -> SessionBinding:
        key = session_key(user_id, session_id)
        with self._lock:
            binding = self._bindings.get(key)
            if binding is None:
                binding = factory(user_id, session_id)
                binding.turn_lock = self._turn_locks.setdefault(key, binding.turn_lock)
                self._bindings[key] = binding
                logger.info(f"Session bound: {key} (active: {len(self._bindings)})")
            return binding

    def turn_lock(self, user_id: str, session_id: str) -> asyncio.Lock:
        """The lock serializing turns and deletes on one conversation."""
        key = session_key(user_id, session_id)
        with self._lock:
            return self._turn_locks.setdefault(key, asyncio.Lock())

    def get(self, user_id: str, session_id: str) -> Optional[SessionBinding]:
        with self._lock:
            return self._bindings.get(session_key(user_id, session_id))

    def evict(self, user_id: str, session_id: str) -> bool:
        """Remove a binding. Returns True if one was present."""
        key = session_key(user_id, session_id)
        with self._lock:
            removed = self._bindings.pop(key, None) is not None
        if removed:
            logger.info(f"Session evicted: {key}")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._bindings)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._bindings
