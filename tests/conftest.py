"""Shared fixtures: in-memory database seeded with a small product catalog."""

from typing import AsyncIterator

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from crudkit import AuthContext, Database
from tests.factories import make_auth, seed


@pytest.fixture
async def database() -> AsyncIterator[Database]:
    """Create an in-memory database with all tables and the catalog."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    database = Database(engine=engine)
    await database.create_all()
    await seed(database)
    yield database
    await database.dispose()


@pytest.fixture
def auth() -> AuthContext:
    return make_auth()
