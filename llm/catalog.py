"""
Conversation catalog: per-user conversation summaries.
"""

import logging
from typing import List

from .conversation_store import TranscriptStore
from .messages import ConversationSummary

logger = logging.getLogger(__name__)


class ConversationCatalog:
    """Read path over a user's partition; bypasses the session registry."""

    def __init__(self, store: TranscriptStore):
        self.store = store

    async def list_summaries(self, user_id: str) -> List[ConversationSummary]:
        """Summaries in store scan order. Empty when the user has none."""
        return [
            ConversationSummary(session_id=doc.session_id, message_count=doc.message_count)
            async for doc in self.store.list_by_user(user_id)
        ]
