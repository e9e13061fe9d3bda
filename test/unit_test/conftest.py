"""Shared fixtures for unit tests.

Provides an in-memory SQLite engine with every table created, plus the
session factory the SQL repositories and the SQL job store are built on.
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from relayworks_ai.core.database import create_all, create_engine, create_sessionmaker


@pytest.fixture(scope="function")
async def in_memory_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create in-memory SQLite engine for testing."""
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await create_all(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(in_memory_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_sessionmaker(in_memory_engine)
