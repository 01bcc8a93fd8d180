"""
API Routes for the chat backend.
"""

from . import chat, conversations

__all__ = ["chat", "conversations"]
