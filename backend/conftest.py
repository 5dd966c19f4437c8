# conftest.py - Global pytest configuration
"""
Shared fixtures for the coordinator test suite.

Tests run against an in-memory SQLite database (aiosqlite) and the in-memory
ephemeral store, so no Postgres or Redis is needed.
"""
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from coordinator.storage.database import Base
from coordinator.storage.ephemeral import InMemoryEphemeralStore
from coordinator.storage import models  # noqa: F401

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def create_test_engine():
    """
    Build a fresh in-memory database with all tables created.

    StaticPool keeps every session on the single in-memory connection; reset on
    return is disabled so one session closing never rolls back another's
    uncommitted write.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        pool_reset_on_return=None,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest.fixture
async def engine():
    engine = await create_test_engine()
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryEphemeralStore(clock=clock)
