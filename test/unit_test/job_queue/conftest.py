from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from relayworks_ai.job_queue import InMemoryJobStore, JobStore
from relayworks_ai.job_queue.sql import SqlJobStore

from ._fakes import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(params=["memory", "sql"])
def store(
    request: pytest.FixtureRequest, clock: FakeClock, session_factory: async_sessionmaker[AsyncSession]
) -> JobStore:
    if request.param == "memory":
        return InMemoryJobStore(clock=clock)
    return SqlJobStore(session_factory, clock=clock)
