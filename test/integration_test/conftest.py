"""Fixtures for opt-in integration tests.

These tests talk to real services and are skipped unless enabled in
``test/.env``:

- ``DATABASE__ENABLE_POSTGRES_TESTS=true`` with ``DATABASE__URL`` pointing at
  a PostgreSQL database runs the SQL job store against it.
- ``TEST__RUN_LLM_TESTS=true`` with ``ANTHROPIC_API_KEY`` set runs the L3
  judge against the real model provider.
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relayworks_ai.core.database import Base, create_all, create_engine, create_sessionmaker
from test.settings import TestSettings


@pytest.fixture(autouse=True)
def _global_offline_http_guard():
    """Integration tests may reach their configured services."""
    yield


@pytest.fixture
async def postgres_session_factory(test_config: TestSettings) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    if not test_config.database.enable_postgres_tests:
        pytest.skip("PostgreSQL tests are disabled (DATABASE__ENABLE_POSTGRES_TESTS)")
    if not test_config.database.url.startswith("postgres"):
        pytest.skip(f"DATABASE__URL is not a PostgreSQL URL: {test_config.database.url}")

    engine = create_engine(test_config.database.url)
    await create_all(engine)
    try:
        yield create_sessionmaker(engine)
    finally:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest.fixture
def llm_enabled(test_config: TestSettings) -> TestSettings:
    if not test_config.test.run_llm_tests:
        pytest.skip("Live model tests are disabled (TEST__RUN_LLM_TESTS)")
    if not test_config.anthropic.api_key:
        pytest.skip("ANTHROPIC_API_KEY is not configured")
    return test_config
