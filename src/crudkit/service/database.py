"""
Database handle for crudkit services.

Provides:
- Database: async engine + session factory
- Process-wide handle with explicit init/teardown

Usage:
    database = init_database(Settings.from_env())
    async with database.session() as session:       # reads
        ...
    async with database.transaction() as session:   # writes, one transaction
        ...
    await close_database()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..core.errors import AlreadyInitializedError, DatabaseNotInitializedError
from ..models import Base
from .settings import Settings

logger = logging.getLogger(__name__)


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Create async engine from settings."""
    options: dict[str, Any] = {"echo": settings.sql_echo}
    if settings.pool_max is not None and not settings.database_url.startswith("sqlite"):
        options["pool_size"] = settings.pool_max
    return create_async_engine(settings.database_url, **options)


class Database:
    """
    Async engine and session factory.

    Sessions never expire loaded attributes on commit, so entities returned
    by a write stay readable after the transaction ends.
    """

    def __init__(self, settings: Optional[Settings] = None, *, engine: Optional[AsyncEngine] = None):
        self.settings = settings or Settings()
        self.engine = engine if engine is not None else create_engine_from_settings(self.settings)
        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Session for reads. No explicit transaction."""
        async with self.session_maker() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Session inside one transaction, committed on success, rolled back on error."""
        async with self.session_maker() as session:
            async with session.begin():
                yield session

    async def create_all(self, base: type = Base) -> None:
        """Create tables of all models declared on base."""
        async with self.engine.begin() as conn:
            await conn.run_sync(base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


_database: Optional[Database] = None


def init_database(settings: Optional[Settings] = None, *, engine: Optional[AsyncEngine] = None) -> Database:
    """Initialize the process-wide database. Fails when called twice."""
    global _database
    if _database is not None:
        raise AlreadyInitializedError()
    _database = Database(settings, engine=engine)
    logger.info("Database initialized")
    return _database


def get_database() -> Database:
    if _database is None:
        raise DatabaseNotInitializedError()
    return _database


def is_database_initialized() -> bool:
    return _database is not None


async def close_database() -> None:
    """Dispose the process-wide database, allowing a new init."""
    global _database
    if _database is not None:
        await _database.dispose()
        _database = None
        logger.info("Database closed")
