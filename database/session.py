"""
Async database session management for the chat backend.

Provides the async engine and session factory behind the SQL transcript store.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine,
)

from .models import Base

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    """Ensure an async driver is selected."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


class Database:
    """Owns the async engine and session factory for one database URL."""

    def __init__(self, database_url: str, pool_size: int = 5, max_overflow: int = 10):
        self.database_url = normalize_database_url(database_url)
        self.pool_size = pool_size
        self.max_overflow = max_overflow
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    async def init(self):
        """Create the engine and the tables."""
        engine_kwargs = {"echo": False}
        # SQLite uses a static/singleton pool that takes no sizing arguments
        if not self.database_url.startswith("sqlite"):
            engine_kwargs.update(pool_size=self.pool_size, max_overflow=self.max_overflow)

        self._engine = create_async_engine(self.database_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

        # Create tables (use migrations in production)
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database initialized")

    async def close(self):
        """Dispose of the engine."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database connection closed")

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if not self._session_factory:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._session_factory
