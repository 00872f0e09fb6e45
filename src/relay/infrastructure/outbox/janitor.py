"""Retention cleanup of delivered outbox records."""

from __future__ import annotations

import asyncio

from infrastructure.outbox.dispatcher import describe_error
from infrastructure.outbox.registry import OutboxStoreRegistry
from shared_kernel.outbox.observability import (
    DefaultOutboxJanitorProbe,
    OutboxJanitorProbe,
)
from shared_kernel.outbox.value_objects import OutboxDatabase


class OutboxJanitor:
    """Deletes COMPLETED records past the retention window.

    PENDING, PROCESSING and FAILED records are never deleted. A failure on
    one database is logged and does not stop cleanup of the others; the
    next run retries it.
    """

    def __init__(
        self,
        registry: OutboxStoreRegistry,
        probe: OutboxJanitorProbe | None = None,
        retention_days: int = 7,
        interval_seconds: float = 3600.0,
    ) -> None:
        self._registry = registry
        self._probe = probe or DefaultOutboxJanitorProbe()
        self._retention_days = retention_days
        self._interval = interval_seconds

    @property
    def retention_days(self) -> int:
        return self._retention_days

    async def run_once(self) -> dict[OutboxDatabase, int]:
        """Clean every registered database once.

        Returns:
            Deleted row counts for the databases that were cleaned
            successfully
        """
        deleted: dict[OutboxDatabase, int] = {}
        for store in self._registry:
            try:
                count = await store.cleanup_completed(self._retention_days)
            except Exception as e:
                self._probe.cleanup_failed(store.database.value, describe_error(e))
                continue

            deleted[store.database] = count
            self._probe.cleanup_completed(
                store.database.value, count, self._retention_days
            )
        return deleted

    async def run_forever(self) -> None:
        """Run cleanup every interval_seconds until cancelled."""
        while True:
            await self.run_once()
            await asyncio.sleep(self._interval)
