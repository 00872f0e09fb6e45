"""Database-parameterized facade over the outbox.

Operations take the logical database as their first argument and are
routed to that database's store. An unknown database raises
UnknownOutboxDatabaseError before anything is touched.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.outbox.registry import OutboxStoreRegistry
from infrastructure.outbox.writer import OutboxWriter
from shared_kernel.outbox.value_objects import (
    OutboxDatabase,
    OutboxEvent,
    OutboxRecord,
    OutboxStats,
)


class OutboxService:
    """Single entry point for writing, dispatch bookkeeping and operations."""

    def __init__(
        self,
        registry: OutboxStoreRegistry,
        writer: OutboxWriter | None = None,
    ) -> None:
        self._registry = registry
        self._writer = writer or OutboxWriter(registry)

    @property
    def databases(self) -> list[OutboxDatabase]:
        return self._registry.databases

    async def publish(
        self,
        database: OutboxDatabase | str,
        event: OutboxEvent,
        session: AsyncSession | None = None,
    ) -> OutboxRecord:
        return await self._writer.publish(database, event, session=session)

    async def publish_batch(
        self,
        database: OutboxDatabase | str,
        events: Sequence[OutboxEvent],
        session: AsyncSession | None = None,
    ) -> list[OutboxRecord]:
        return await self._writer.publish_batch(database, events, session=session)

    async def claim_pending(
        self, database: OutboxDatabase | str, limit: int
    ) -> list[OutboxRecord]:
        return await self._registry.get(database).claim_pending(limit)

    async def mark_as_processing(
        self, database: OutboxDatabase | str, record_id: UUID
    ) -> bool:
        return await self._registry.get(database).mark_as_processing(record_id)

    async def mark_as_completed(
        self, database: OutboxDatabase | str, record_id: UUID
    ) -> bool:
        return await self._registry.get(database).mark_as_completed(record_id)

    async def mark_as_failed(
        self, database: OutboxDatabase | str, record_id: UUID, error: str
    ) -> OutboxRecord | None:
        return await self._registry.get(database).mark_as_failed(record_id, error)

    async def cleanup_completed(
        self, database: OutboxDatabase | str, older_than_days: int = 7
    ) -> int:
        return await self._registry.get(database).cleanup_completed(older_than_days)

    async def recover_stuck(
        self, database: OutboxDatabase | str, older_than_seconds: float
    ) -> int:
        return await self._registry.get(database).recover_stuck(older_than_seconds)

    async def get_stats(self, database: OutboxDatabase | str) -> OutboxStats:
        return await self._registry.get(database).get_stats()

    async def list_failed(
        self, database: OutboxDatabase | str, limit: int = 100
    ) -> list[OutboxRecord]:
        return await self._registry.get(database).list_failed(limit)

    async def replay_failed(
        self, database: OutboxDatabase | str, record_id: UUID
    ) -> bool:
        """Operator action: give a dead letter a fresh retry budget."""
        return await self._registry.get(database).replay_failed(record_id)
