"""Database engines and session factories, one per logical database.

Engines are created lazily and cached. The identity, auth and legal
databases never share an engine, a session or a transaction.
"""

from __future__ import annotations

import threading

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from infrastructure.database.engines import create_engine_for
from infrastructure.settings import get_database_settings
from shared_kernel.outbox.value_objects import OutboxDatabase

# Module-level engine and sessionmaker instances (created on first use)
_engines: dict[OutboxDatabase, AsyncEngine] = {}
_sessionmakers: dict[OutboxDatabase, async_sessionmaker[AsyncSession]] = {}

# Thread lock for safe engine initialization
_engine_lock = threading.Lock()


def get_engine(database: OutboxDatabase | str) -> AsyncEngine:
    """Get the engine for a logical database (singleton per database).

    Uses double-check locking for thread-safe initialization and creates
    the sessionmaker together with the engine.
    """
    database = OutboxDatabase.parse(database)
    engine = _engines.get(database)
    if engine is None:
        with _engine_lock:
            # Double-check after acquiring lock
            engine = _engines.get(database)
            if engine is None:
                engine = create_engine_for(get_database_settings(database))
                _engines[database] = engine
                _sessionmakers[database] = async_sessionmaker(
                    engine,
                    expire_on_commit=False,
                    class_=AsyncSession,
                )
    return engine


def get_session_factory(
    database: OutboxDatabase | str,
) -> async_sessionmaker[AsyncSession]:
    """Get the cached session factory for a logical database."""
    database = OutboxDatabase.parse(database)
    get_engine(database)
    return _sessionmakers[database]


async def close_database_connections() -> None:
    """Dispose every engine created so far.

    Should be called on application shutdown. Also resets sessionmakers to
    allow reinitialization.
    """
    with _engine_lock:
        engines = list(_engines.values())
        _engines.clear()
        _sessionmakers.clear()

    for engine in engines:
        await engine.dispose()
