"""
Database-backed TranscriptStore for the chat backend.

Implements the TranscriptStore protocol using the repository layer.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.repositories import ConversationRepository

from .conversation_store import ConversationScan, DEFAULT_PAGE_SIZE
from .errors import PersistenceError
from .messages import ChatMessage, Conversation

logger = logging.getLogger(__name__)

# Failures that mean the store is unreachable or the query failed
STORE_ERRORS = (SQLAlchemyError, OSError)


class DbTranscriptStore:
    """Persistent transcript store backed by PostgreSQL or SQLite."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], page_size: int = DEFAULT_PAGE_SIZE):
        self._session_factory = session_factory
        self.page_size = page_size

    async def append(self, user_id: str, session_id: str, message: ChatMessage) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    repo = ConversationRepository(session)
                    doc = await repo.get(user_id, session_id, for_update=True)
                    if doc is None:
                        await repo.create(user_id, session_id, [message.to_dict()])
                    else:
                        await repo.append_message(doc, message.to_dict())
        except STORE_ERRORS as e:
            logger.error(f"Append failed for {user_id}:{session_id}: {e}")
            raise PersistenceError("Failed to save message") from e

    async def read(self, user_id: str, session_id: str) -> List[ChatMessage]:
        try:
            async with self._session_factory() as session:
                doc = await ConversationRepository(session).get(user_id, session_id)
        except STORE_ERRORS as e:
            logger.error(f"Read failed for {user_id}:{session_id}: {e}")
            raise PersistenceError("Failed to retrieve chat history") from e

        if doc is None:
            return []
        return [ChatMessage.from_dict(m) for m in (doc.messages or [])]

    async def clear(self, user_id: str, session_id: str) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    deleted = await ConversationRepository(session).delete(user_id, session_id)
        except STORE_ERRORS as e:
            logger.error(f"Clear failed for {user_id}:{session_id}: {e}")
            raise PersistenceError("Failed to delete conversation") from e

        if not deleted:
            logger.debug(f"Clear called for missing conversation {user_id}:{session_id}")

    def list_by_user(self, user_id: str) -> ConversationScan:
        return ConversationScan(user_id, self._fetch_page)

    async def _fetch_page(
        self, user_id: str, continuation: Optional[str]
    ) -> Tuple[List[Conversation], Optional[str]]:
        try:
            async with self._session_factory() as session:
                # One extra row tells whether another page follows
                rows = await ConversationRepository(session).list_page(
                    user_id, after_session_id=continuation, limit=self.page_size + 1
                )
        except STORE_ERRORS as e:
            logger.error(f"Conversation query failed for {user_id}: {e}")
            raise PersistenceError("Failed to retrieve conversations") from e

        has_more = len(rows) > self.page_size
        rows = rows[:self.page_size]
        page = [
            Conversation(
                user_id=row.user_id,
                session_id=row.session_id,
                messages=[ChatMessage.from_dict(m) for m in (row.messages or [])],
            )
            for row in rows
        ]
        next_token = rows[-1].session_id if has_more else None
        return page, next_token
