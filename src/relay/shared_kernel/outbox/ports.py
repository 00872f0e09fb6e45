"""Protocols (ports) for the outbox pattern.

These protocols define the storage capability every logical database must
provide and the message bus capability the dispatcher delivers to. The
dispatch, retry and retention logic is written once against them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable
from uuid import UUID

if TYPE_CHECKING:
    from shared_kernel.outbox.value_objects import (
        OutboxDatabase,
        OutboxRecord,
        OutboxStats,
    )


@runtime_checkable
class IOutboxStore(Protocol):
    """Dispatcher-side access to one database's outbox table.

    Every method runs in its own short transaction. Business code never
    uses this port; it appends through the writer inside its own
    transaction.
    """

    @property
    def database(self) -> "OutboxDatabase":
        """The logical database this store is bound to."""
        ...

    async def claim_pending(self, limit: int) -> list["OutboxRecord"]:
        """Claim up to ``limit`` eligible PENDING records, oldest first.

        Each returned record has already been moved to PROCESSING with an
        atomic conditional update. Records lost to a concurrent claimer are
        silently omitted.
        """
        ...

    async def mark_as_processing(self, record_id: UUID) -> bool:
        """Move a PENDING record to PROCESSING.

        Returns:
            True if this call won the claim, False otherwise
        """
        ...

    async def mark_as_completed(self, record_id: UUID) -> bool:
        """Mark a non-terminal record as delivered.

        Returns:
            False if the record is missing or already terminal (no-op)
        """
        ...

    async def mark_as_failed(
        self, record_id: UUID, error: str
    ) -> "OutboxRecord | None":
        """Record a failed publish attempt.

        Returns:
            The updated record (PENDING for retry, or FAILED once the retry
            budget is spent), or None if the record is missing or terminal
        """
        ...

    async def cleanup_completed(self, older_than_days: int = 7) -> int:
        """Delete COMPLETED records processed before the retention cutoff."""
        ...

    async def recover_stuck(self, older_than_seconds: float) -> int:
        """Return PROCESSING records untouched for too long to PENDING."""
        ...

    async def get_stats(self) -> "OutboxStats":
        """Count records per status."""
        ...

    async def list_failed(self, limit: int = 100) -> list["OutboxRecord"]:
        """List dead-lettered records, oldest first."""
        ...

    async def replay_failed(self, record_id: UUID) -> bool:
        """Reset a FAILED record to PENDING with a fresh retry budget."""
        ...


@runtime_checkable
class MessagePublisher(Protocol):
    """Delivers an outbox record to the message bus.

    Implementations raise on failure; any exception is treated as a failed
    attempt and its message is stored as the record's last_error. Delivery
    is at-least-once, so consumers must tolerate duplicates of the same
    record id.
    """

    async def publish(self, topic: str, record: "OutboxRecord") -> None:
        """Publish a record to a topic."""
        ...

