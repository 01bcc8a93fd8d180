"""
Repository classes for the chat backend data access layer.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from .models import ConversationDocument

logger = logging.getLogger(__name__)


class ConversationRepository:
    """Data access for conversation documents."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str, session_id: str, for_update: bool = False) -> Optional[ConversationDocument]:
        q = select(ConversationDocument).where(
            ConversationDocument.user_id == user_id,
            ConversationDocument.session_id == session_id,
        )
        if for_update:
            q = q.with_for_update()
        result = await self.session.execute(q)
        return result.scalar_one_or_none()

    async def create(self, user_id: str, session_id: str, messages: List[Dict[str, Any]]) -> ConversationDocument:
        doc = ConversationDocument(user_id=user_id, session_id=session_id, messages=messages)
        self.session.add(doc)
        await self.session.flush()
        return doc

    async def append_message(self, doc: ConversationDocument, message: Dict[str, Any]) -> ConversationDocument:
        # Reassign so the JSON column is flagged dirty
        doc.messages = [*(doc.messages or []), message]
        await self.session.flush()
        return doc

    async def delete(self, user_id: str, session_id: str) -> int:
        result = await self.session.execute(
            delete(ConversationDocument).where(
                ConversationDocument.user_id == user_id,
                ConversationDocument.session_id == session_id,
            )
        )
        return result.rowcount or 0

    async def list_page(
        self, user_id: str, after_session_id: Optional[str] = None, limit: int = 100
    ) -> List[ConversationDocument]:
        """One page of a partition, keyset-paginated on session_id."""
        q = (
            select(ConversationDocument)
            .where(ConversationDocument.user_id == user_id)
            .order_by(ConversationDocument.session_id.asc())
            .limit(limit)
        )
        if after_session_id is not None:
            q = q.where(ConversationDocument.session_id > after_session_id)
        result = await self.session.execute(q)
        return list(result.scalars().all())
