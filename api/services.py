"""
Service construction and dependency injection for the chat backend API.

ChatService is built explicitly from a transcript store and a text
generator, and is owned by the application instance.
"""

import asyncio
import logging
import time
import uuid
from typing import List, Optional

from fastapi import Request

from config.settings import Settings
from database.session import Database
from llm.catalog import ConversationCatalog
from llm.conversation_store import InMemoryTranscriptStore, TranscriptStore
from llm.db_conversation_store import DbTranscriptStore
from llm.errors import ChatServiceError, require_fields
from llm.messages import ChatMessage, ConversationSummary
from llm.orchestrator import OutputSink, TurnCoordinator, TurnOutcome
from llm.prompt_templates import PromptTemplate
from llm.providers.base import TextGenerator
from llm.providers.openai_provider import OpenAIProvider
from llm.session_registry import SessionRegistry
from .middleware.metrics import record_active_sessions, record_turn

logger = logging.getLogger(__name__)


class ChatService:
    """Entry point for every chat operation exposed over HTTP."""

    def __init__(
        self,
        store: TranscriptStore,
        generator: TextGenerator,
        registry: Optional[SessionRegistry] = None,
        template: Optional[PromptTemplate] = None,
        database: Optional[Database] = None,
    ):
        self.store = store
        self.generator = generator
        self.registry = registry if registry is not None else SessionRegistry()
        self.coordinator = TurnCoordinator(store, generator, self.registry, template)
        self.catalog = ConversationCatalog(store)
        self._database = database

    def start_session(self, user_id: Optional[str], session_id: Optional[str] = None) -> str:
        """Bind a session, generating its id when none is given."""
        require_fields(UserID=user_id)
        session_id = session_id or str(uuid.uuid4())
        self.coordinator.bind(user_id, session_id)
        record_active_sessions(len(self.registry))
        return session_id

    async def stream_turn(
        self, user_id: Optional[str], session_id: Optional[str], message: Optional[str], sink: OutputSink
    ) -> TurnOutcome:
        try:
            outcome = await self.coordinator.run_turn(user_id or "", session_id or "", message or "", sink)
        except asyncio.CancelledError:
            record_turn("cancelled")
            raise
        record_turn(outcome.state.value, outcome.fragments, outcome.duration_ms)
        record_active_sessions(len(self.registry))
        return outcome

    async def get_history(self, user_id: Optional[str], session_id: Optional[str]) -> List[ChatMessage]:
        require_fields(UserID=user_id, SessionID=session_id)
        start = time.time()
        messages = await self.store.read(user_id, session_id)
        logger.info(f"Retrieved {len(messages)} messages for session {session_id} in {time.time() - start:.3f}s")
        return messages

    async def list_conversations(self, user_id: Optional[str]) -> List[ConversationSummary]:
        require_fields(UserID=user_id)
        start = time.time()
        summaries = await self.catalog.list_summaries(user_id)
        logger.info(f"{len(summaries)} conversations retrieved for {user_id} in {time.time() - start:.3f}s")
        return summaries

    async def delete_conversation(self, user_id: Optional[str], session_id: Optional[str]) -> None:
        """
        Clear the transcript and drop the in-memory binding.

        Waits for a turn in flight on the same conversation, so its commit
        cannot land after the clear.
        """
        require_fields(UserID=user_id, SessionID=session_id)
        start = time.time()
        async with self.registry.turn_lock(user_id, session_id):
            await self.store.clear(user_id, session_id)
            self.registry.evict(user_id, session_id)
        record_active_sessions(len(self.registry))
        logger.info(f"Deleted conversation {session_id} for user {user_id} in {time.time() - start:.3f}s")

    async def close(self):
        if self._database:
            await self._database.close()

    def health(self) -> dict:
        return {
            "store": type(self.store).__name__,
            "registry_size": len(self.registry),
        }


async def build_chat_service(settings: Settings) -> ChatService:
    """Wire the production store and generator from settings."""
    database = None
    if settings.database_url:
        database = Database(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
        await database.init()
        store: TranscriptStore = DbTranscriptStore(database.session_factory, page_size=settings.conversation_page_size)
    else:
        logger.warning("DATABASE_URL not set, transcripts are kept in memory")
        store = InMemoryTranscriptStore(page_size=settings.conversation_page_size)

    if settings.is_azure:
        if not settings.azure_openai_endpoint:
            raise ValueError("AZURE_OPENAI_ENDPOINT must be set when LLM_PROVIDER=azure")
        generator = OpenAIProvider(
            api_key=settings.azure_openai_key,
            model_id=settings.llm_model_id,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            azure_endpoint=settings.azure_openai_endpoint,
            api_version=settings.azure_openai_api_version,
        )
    else:
        generator = OpenAIProvider(
            api_key=settings.openai_api_key,
            model_id=settings.llm_model_id,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            base_url=settings.openai_base_url,
        )

    logger.info(f"Chat service ready: store={type(store).__name__}, model={settings.llm_model_id}")
    return ChatService(store=store, generator=generator, database=database)


def get_chat_service(request: Request) -> ChatService:
    """FastAPI dependency returning the application's chat service."""
    service = getattr(request.app.state, "chat_service", None)
    if service is None:
        raise ChatServiceError("Chat service not initialized")
    return service
