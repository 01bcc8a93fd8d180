"""
Conversation module for the chat backend.

This module handles:
- Transcript storage (in-memory and SQL backends)
- Session bindings and per-session turn serialization
- Streaming turn coordination against a text-generation provider
"""

from .catalog import ConversationCatalog
from .conversation_store import ConversationScan, InMemoryTranscriptStore, TranscriptStore
from .errors import (
    ChatServiceError, ContentPolicyError, GenerationError, PersistenceError,
    TransportError, ValidationError,
)
from .messages import ChatMessage, Conversation, ConversationSummary, MessageRole
from .orchestrator import OutputSink, TurnCoordinator, TurnOutcome, TurnState
from .prompt_templates import PromptTemplate
from .session_registry import SessionBinding, SessionRegistry

__all__ = [
    "ChatMessage",
    "ChatServiceError",
    "ContentPolicyError",
    "Conversation",
    "ConversationCatalog",
    "ConversationScan",
    "ConversationSummary",
    "GenerationError",
    "InMemoryTranscriptStore",
    "MessageRole",
    "OutputSink",
    "PersistenceError",
    "PromptTemplate",
    "SessionBinding",
    "SessionRegistry",
    "TranscriptStore",
    "TransportError",
    "TurnCoordinator",
    "TurnOutcome",
    "TurnState",
    "ValidationError",
]
