"""Integration test fixtures for outbox tests against PostgreSQL.

These fixtures require a running PostgreSQL instance with one database
per logical outbox database. Use docker-compose for testing.
"""

import os
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from pydantic import SecretStr
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from infrastructure.database.engines import create_engine_for
from infrastructure.database.models import Base
from infrastructure.outbox import models  # noqa: F401
from infrastructure.settings import DatabaseSettings


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires database)",
    )


@pytest.fixture(scope="session")
def integration_db_settings() -> DatabaseSettings:
    """Database settings for integration tests.

    Override with environment variables:
        RELAY_TEST_DB_HOST, RELAY_TEST_DB_PORT, etc.
    """
    return DatabaseSettings(
        host=os.getenv("RELAY_TEST_DB_HOST", "localhost"),
        port=int(os.getenv("RELAY_TEST_DB_PORT", "5432")),
        database=os.getenv("RELAY_TEST_DB_DATABASE", "identity"),
        username=os.getenv("RELAY_TEST_DB_USERNAME", "identity"),
        password=SecretStr(os.getenv("RELAY_TEST_DB_PASSWORD", "identity_dev_password")),
        pool_size=10,
    )


@pytest_asyncio.fixture
async def pg_engine(integration_db_settings: DatabaseSettings) -> AsyncIterator[AsyncEngine]:
    """Provide an engine with a freshly created, empty outbox table."""
    engine = create_engine_for(integration_db_settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.execute(text("TRUNCATE outbox_events"))

    yield engine

    await engine.dispose()


@pytest.fixture
def pg_session_factory(pg_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(pg_engine, expire_on_commit=False, class_=AsyncSession)
