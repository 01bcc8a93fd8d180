"""
TranscriptStore protocol for the chat backend.

Abstracts transcript storage so the coordinator can work with either
in-memory dicts or a database backend. Documents are partitioned by
user_id; session_id is the document identity inside the partition.
"""

import logging
from typing import (
    AsyncIterator, Awaitable, Callable, Dict, List, Optional, Protocol, Tuple,
    runtime_checkable,
)

from .messages import ChatMessage, Conversation

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

# (user_id, continuation) -> (documents, next continuation or None)
PageFetcher = Callable[[str, Optional[str]], Awaitable[Tuple[List[Conversation], Optional[str]]]]


class ConversationScan:
    """
    Lazy, restartable scan over one user's partition.

    Nothing is fetched until the scan is iterated, and every iteration
    starts over from the first page. Pages are accumulated before anything
    is yielded, so a failing page discards the partial result and the
    PersistenceError reaches the caller.
    """

    def __init__(self, user_id: str, fetch_page: PageFetcher):
        self.user_id = user_id
        self._fetch_page = fetch_page

    async def collect(self) -> List[Conversation]:
        documents: List[Conversation] = []
        continuation: Optional[str] = None
        pages = 0
        while True:
            page, continuation = await self._fetch_page(self.user_id, continuation)
            documents.extend(page)
            pages += 1
            if continuation is None:
                break
        logger.debug(f"Scanned {len(documents)} conversations for {self.user_id} in {pages} page(s)")
        return documents

    def __aiter__(self) -> AsyncIterator[Conversation]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Conversation]:
        for document in await self.collect():
            yield document


@runtime_checkable
class TranscriptStore(Protocol):
    """Protocol for transcript persistence."""

    async def append(self, user_id: str, session_id: str, message: ChatMessage) -> None:
        """Append a message, creating the conversation if absent."""
        ...

    async def read(self, user_id: str, session_id: str) -> List[ChatMessage]:
        """Ordered messages; empty list when the conversation does not exist."""
        ...

    async def clear(self, user_id: str, session_id: str) -> None:
        """Remove the conversation. No-op when absent."""
        ...

    def list_by_user(self, user_id: str) -> ConversationScan:
        """Scan every conversation in the user's partition."""
        ...


class ConversationTranscript:
    """Transcript accessor bound to one (user_id, session_id)."""

    def __init__(self, store: TranscriptStore, user_id: str, session_id: str):
        self._store = store
        self.user_id = user_id
        self.session_id = session_id

    async def messages(self) -> List[ChatMessage]:
        return await self._store.read(self.user_id, self.session_id)

    async def add(self, message: ChatMessage) -> None:
        await self._store.append(self.user_id, self.session_id, message)

    async def clear(self) -> None:
        await self._store.clear(self.user_id, self.session_id)


class InMemoryTranscriptStore:
    """Transcript store kept in process memory, one dict per partition."""

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE):
        self.page_size = page_size
        self._partitions: Dict[str, Dict[str, List[ChatMessage]]] = {}

    async def append(self, user_id: str, session_id: str, message: ChatMessage) -> None:
        partition = self._partitions.setdefault(user_id, {})
        partition.setdefault(session_id, []).append(message)

    async def read(self, user_id: str, session_id: str) -> List[ChatMessage]:
        return list(self._partitions.get(user_id, {}).get(session_id, []))

    async def clear(self, user_id: str, session_id: str) -> None:
        partition = self._partitions.get(user_id)
        if partition is None:
            return
        partition.pop(session_id, None)
        if not partition:
            del self._partitions[user_id]

    def list_by_user(self, user_id: str) -> ConversationScan:
        return ConversationScan(user_id, self._fetch_page)

    async def _fetch_page(
        self, user_id: str, continuation: Optional[str]
    ) -> Tuple[List[Conversation], Optional[str]]:
        items = list(self._partitions.get(user_id, {}).items())
        start = int(continuation) if continuation else 0
        end = start + self.page_size
        page = [
            Conversation(user_id=user_id, session_id=session_id, messages=list(messages))
            for session_id, messages in items[start:end]
        ]
        next_token = str(end) if end < len(items) else None
        return page, next_token
