"""Outbox writer: appends events inside the business transaction.

The writer never talks to the message bus. A record it appends becomes
visible to the dispatcher only when the surrounding transaction commits,
and disappears with it on rollback.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.transactions import current_session, transactional
from infrastructure.outbox.registry import OutboxStoreRegistry
from infrastructure.outbox.repository import OutboxRepository
from shared_kernel.outbox.observability import (
    DefaultOutboxWriterProbe,
    OutboxWriterProbe,
)
from shared_kernel.outbox.value_objects import (
    OutboxDatabase,
    OutboxEvent,
    OutboxRecord,
)


class OutboxWriter:
    """Appends outbox records to the transaction of the right database.

    The session used for an append is resolved in this order:
    1. The ``session`` argument, when given
    2. The ambient transaction opened with ``transactional()`` for the
       same database
    3. A new transaction on the database's own session factory, committed
       when the append succeeds
    """

    def __init__(
        self,
        registry: OutboxStoreRegistry,
        probe: OutboxWriterProbe | None = None,
    ) -> None:
        self._registry = registry
        self._probe = probe or DefaultOutboxWriterProbe()

    async def publish(
        self,
        database: OutboxDatabase | str,
        event: OutboxEvent,
        session: AsyncSession | None = None,
    ) -> OutboxRecord:
        """Append one event to a database's outbox.

        Args:
            database: Logical database that owns the business write
            event: The event to append
            session: Explicit session of the business transaction

        Returns:
            The record exactly as it was written (status PENDING)

        Raises:
            UnknownOutboxDatabaseError: If the database has no outbox store
            sqlalchemy.exc.SQLAlchemyError: If the insert fails
        """
        records = await self._append(database, [event], session)
        record = records[0]
        self._probe.event_appended(
            OutboxDatabase.parse(database).value,
            record.id,
            record.event_type,
            record.aggregate_id,
        )
        return record

    async def publish_batch(
        self,
        database: OutboxDatabase | str,
        events: Sequence[OutboxEvent],
        session: AsyncSession | None = None,
    ) -> list[OutboxRecord]:
        """Append several events atomically, preserving their order.

        An empty batch returns an empty list without touching the database.
        """
        if not events:
            return []

        records = await self._append(database, events, session)
        self._probe.batch_appended(OutboxDatabase.parse(database).value, len(records))
        return records

    async def _append(
        self,
        database: OutboxDatabase | str,
        events: Sequence[OutboxEvent],
        session: AsyncSession | None,
    ) -> list[OutboxRecord]:
        store = self._registry.get(database)

        if session is None:
            session = current_session(store.database)

        if session is not None:
            return await OutboxRepository(session).append_many(events)

        async with transactional(store.database, store.session_factory) as own_session:
            return await OutboxRepository(own_session).append_many(events)
