"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Manages the async SQLAlchemy engine and sessions.

- Creates the engine and session factory
- Provides a session context manager
- Creates the schema for fresh databases
- Health checks for the connection

============================================================
DATABASE REQUIREMENTS
============================================================
- PostgreSQL (asyncpg) in production
- SQLite (aiosqlite) for development and tests

============================================================
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from core.config import DatabaseConfig
from storage.models import Base


logger = logging.getLogger(__name__)


class Database:
    """
    Async engine and session factory wrapper.

    Usage:
        db = Database(DatabaseConfig(url="sqlite+aiosqlite:///fleet.db"))
        await db.connect()
        await db.create_all()
        async with db.session() as session:
            ...
        await db.disconnect()
    """

    def __init__(self, config: DatabaseConfig):
        self._config = config
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_sqlite(self) -> bool:
        return self._config.url.startswith("sqlite")

    async def connect(self) -> None:
        """Create the engine and session factory."""
        if self._engine is not None:
            return

        engine_kwargs = {"echo": self._config.echo}
        if not self.is_sqlite:
            engine_kwargs["pool_size"] = self._config.pool_size
            engine_kwargs["pool_pre_ping"] = True

        self._engine = create_async_engine(self._config.url, **engine_kwargs)
        self._session_factory = async_sessionmaker(
            self._engine,
            expire_on_commit=False,
        )
        logger.info(f"Database engine created ({self._engine.url.get_backend_name()})")

    async def disconnect(self) -> None:
        """Dispose of the engine and its pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("Database engine disposed")

    def get_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected")
        return self._engine

    async def create_all(self) -> None:
        """Create all tables and indexes that do not exist yet."""
        async with self.get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session scope. Uncommitted work is rolled back on exit."""
        if self._session_factory is None:
            raise RuntimeError("Database is not connected")
        async with self._session_factory() as session:
            yield session

    async def health_check(self) -> bool:
        try:
            async with self.get_engine().connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, RuntimeError) as e:
            logger.error(f"Database health check failed: {e}")
            return False
