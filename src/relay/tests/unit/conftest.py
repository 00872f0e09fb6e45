"""Unit test fixtures with in-memory databases and mocked dependencies."""

from collections.abc import AsyncIterator
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from infrastructure.database.models import Base, utc_now
from infrastructure.outbox import models  # noqa: F401
from infrastructure.outbox.registry import OutboxStoreRegistry
from infrastructure.outbox.store import OutboxStore
from shared_kernel.outbox.retry import RetryPolicy
from shared_kernel.outbox.value_objects import OutboxDatabase, OutboxEvent


class FakeClock:
    """Controllable replacement for utc_now()."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    """Provide a clock starting at the real current time."""
    return FakeClock(utc_now())


@pytest.fixture
def retry_policy() -> RetryPolicy:
    """Provide the default policy: three attempts, 1s base backoff."""
    return RetryPolicy(max_retries=3, base_delay_seconds=1.0, multiplier=2.0)


@pytest_asyncio.fixture
async def engines() -> AsyncIterator[dict[OutboxDatabase, AsyncEngine]]:
    """Provide one in-memory SQLite database per logical database.

    Each engine has its own StaticPool, so the databases never share a
    connection, mirroring the separate PostgreSQL databases in production.
    """
    created: dict[OutboxDatabase, AsyncEngine] = {}
    for database in OutboxDatabase:
        engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        created[database] = engine

    yield created

    for engine in created.values():
        await engine.dispose()


@pytest.fixture
def session_factories(
    engines: dict[OutboxDatabase, AsyncEngine],
) -> dict[OutboxDatabase, async_sessionmaker[AsyncSession]]:
    return {
        database: async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
        for database, engine in engines.items()
    }


@pytest.fixture
def registry(
    session_factories: dict[OutboxDatabase, async_sessionmaker[AsyncSession]],
    retry_policy: RetryPolicy,
    clock: FakeClock,
) -> OutboxStoreRegistry:
    """Provide a registry with a store for each logical database."""
    registry = OutboxStoreRegistry()
    for database, session_factory in session_factories.items():
        registry.register(
            OutboxStore(database, session_factory, retry_policy=retry_policy, clock=clock)
        )
    return registry


@pytest.fixture
def identity_store(registry: OutboxStoreRegistry) -> OutboxStore:
    return registry.get(OutboxDatabase.IDENTITY)


@pytest.fixture
def account_created() -> OutboxEvent:
    """Provide a typical identity event."""
    return OutboxEvent(
        aggregate_type="ACCOUNT",
        aggregate_id="a1",
        event_type="identity.account.created",
        payload={"email": "x@y.com"},
    )
