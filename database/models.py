"""
SQLAlchemy ORM models for the chat backend.

One row per conversation document: partition key user_id, document key
session_id, ordered message list in a JSON body.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationDocument(Base):
    __tablename__ = "conversations"

    user_id = Column(String(128), primary_key=True)  # partition key
    session_id = Column(String(128), primary_key=True)
    messages = Column(JSON, nullable=False, default=list)  # [{"type": ..., "content": ...}]
    created_at = Column(DateTime(timezone=True), default=utcnow)
    last_active_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
