"""Ambient transactions per logical database.

`transactional()` opens a transaction and publishes its session in a
ContextVar so that code deeper in the call stack (the outbox writer in
particular) joins it without the session being passed explicitly. The
context is keyed by database: a transaction on `identity` is invisible to
code writing to `auth`.

Usage:
    async with transactional(OutboxDatabase.IDENTITY, session_factory) as session:
        session.add(account)
        await writer.publish(OutboxDatabase.IDENTITY, event)  # same transaction
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from contextvars import ContextVar
from types import MappingProxyType

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shared_kernel.outbox.value_objects import OutboxDatabase

_ambient_sessions: ContextVar[Mapping[OutboxDatabase, AsyncSession]] = ContextVar(
    "outbox_ambient_sessions", default=MappingProxyType({})
)


def current_session(database: OutboxDatabase | str) -> AsyncSession | None:
    """Return the session of the ambient transaction on a database, if any."""
    return _ambient_sessions.get().get(OutboxDatabase.parse(database))


@asynccontextmanager
async def transactional(
    database: OutboxDatabase | str,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Run a block inside one transaction on a logical database.

    Nested calls on the same database join the outer transaction. The
    transaction commits when the outermost block exits normally and rolls
    back if it raises.
    """
    database = OutboxDatabase.parse(database)
    existing = current_session(database)
    if existing is not None:
        yield existing
        return

    async with session_factory() as session:
        async with session.begin():
            sessions = dict(_ambient_sessions.get())
            sessions[database] = session
            token = _ambient_sessions.set(MappingProxyType(sessions))
            try:
                yield session
            finally:
                _ambient_sessions.reset(token)
