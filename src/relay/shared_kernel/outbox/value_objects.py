"""Value objects for the outbox pattern.

Value objects are immutable descriptors that provide type safety and
domain semantics for outbox records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from shared_kernel.outbox.exceptions import UnknownOutboxDatabaseError


class OutboxStatus(StrEnum):
    """Lifecycle status of an outbox record.

    PENDING -> PROCESSING -> COMPLETED, or back to PENDING on a retryable
    failure, or FAILED once the retry budget is spent.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        """COMPLETED and FAILED records are never transitioned again."""
        return self in (OutboxStatus.COMPLETED, OutboxStatus.FAILED)


class OutboxDatabase(StrEnum):
    """Logical databases that own an independent outbox table."""

    IDENTITY = "identity"
    AUTH = "auth"
    LEGAL = "legal"

    @classmethod
    def parse(cls, value: OutboxDatabase | str) -> OutboxDatabase:
        """Coerce a string to a known database.

        Raises:
            UnknownOutboxDatabaseError: If the value names no known database
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise UnknownOutboxDatabaseError(
                f"Unknown outbox database: {value!r}. "
                f"Known databases: {sorted(d.value for d in cls)}"
            ) from None


@dataclass(frozen=True)
class OutboxEvent:
    """An event to append to the outbox.

    Attributes:
        aggregate_type: Kind of entity the event concerns (e.g., "Account")
        aggregate_id: Identifier of the entity instance
        event_type: Semantic event name (e.g., "identity.account.created")
        payload: JSON-serializable event body, opaque to the outbox
    """

    aggregate_type: str
    aggregate_id: str
    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class OutboxRecord:
    """Represents a single row in an outbox table.

    This is an immutable value object that captures the state of an outbox
    record as it exists in the database.

    Attributes:
        id: Application-generated UUIDv7
        aggregate_type: Kind of entity the event concerns
        aggregate_id: Identifier of the entity instance
        event_type: Semantic event name
        payload: Serialized event data as a dictionary
        status: Current lifecycle status
        retry_count: Failed publish attempts so far (never decreases
            except through an explicit operator replay)
        last_error: The most recent failure message, if any
        processed_at: When the record reached COMPLETED
        created_at: When the record was inserted; defines dispatch order
        next_attempt_at: Earliest time the record may be claimed again
        updated_at: When the record last changed status
    """

    id: UUID
    aggregate_type: str
    aggregate_id: str
    event_type: str
    payload: dict[str, Any]
    status: OutboxStatus
    created_at: datetime
    retry_count: int = 0
    last_error: str | None = None
    processed_at: datetime | None = None
    next_attempt_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_dead_letter(self) -> bool:
        return self.status is OutboxStatus.FAILED


@dataclass(frozen=True)
class OutboxStats:
    """Record counts per status for one outbox table."""

    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.pending + self.processing + self.completed + self.failed

    @classmethod
    def from_counts(cls, counts: dict[OutboxStatus, int]) -> OutboxStats:
        return cls(
            pending=counts.get(OutboxStatus.PENDING, 0),
            processing=counts.get(OutboxStatus.PROCESSING, 0),
            completed=counts.get(OutboxStatus.COMPLETED, 0),
            failed=counts.get(OutboxStatus.FAILED, 0),
        )

    def as_dict(self) -> dict[str, int]:
        return {
            "pending": self.pending,
            "processing": self.processing,
            "completed": self.completed,
            "failed": self.failed,
        }


@dataclass
class DispatchResult:
    """Outcome of one dispatch pass over a single outbox table.

    Attributes:
        published: Records delivered and marked COMPLETED
        retried: Records that failed and went back to PENDING
        dead_lettered: Records that failed for the last time (FAILED)
        skipped: Records whose outcome could not be recorded because another
            worker or the reaper moved them first
        released: Claimed records handed back to PENDING unpublished because
            the dispatcher was stopping
        duration_ms: Wall time of the pass
        errors: (record id, error message) for every failed publish
    """

    published: int = 0
    retried: int = 0
    dead_lettered: int = 0
    skipped: int = 0
    released: int = 0
    duration_ms: float = 0.0
    errors: list[tuple[UUID, str]] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.published + self.retried + self.dead_lettered + self.skipped

    def as_dict(self) -> dict[str, Any]:
        return {
            "published": self.published,
            "retried": self.retried,
            "dead_lettered": self.dead_lettered,
            "skipped": self.skipped,
            "released": self.released,
            "duration_ms": round(self.duration_ms, 2),
            "errors": len(self.errors),
        }
