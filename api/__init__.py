"""
API Module for the chat backend.

FastAPI application with routes for:
- Starting and streaming chat turns
- Transcript history and deletion
- Per-user conversation listing
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
