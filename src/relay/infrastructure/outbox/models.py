"""SQLAlchemy ORM models for the outbox pattern.

This module provides the database model for the outbox table used in
the transactional outbox pattern. Every logical database carries its own
copy of this table.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Enum, Index, Integer, String, Text, Uuid, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from infrastructure.database.models import Base, as_utc
from shared_kernel.outbox.value_objects import OutboxRecord, OutboxStatus

# Status is stored as its string value; the shared enum is the application
# representation on every backend.
OutboxStatusType = Enum(
    OutboxStatus,
    name="outbox_status",
    native_enum=False,
    length=16,
    values_callable=lambda statuses: [status.value for status in statuses],
    validate_strings=True,
)


class OutboxModel(Base):
    """ORM model for the outbox table.

    Stores domain events that need to be delivered asynchronously to the
    message bus.

    The table uses partial indexes for efficient polling:
    - idx_outbox_events_pending: For claiming pending records in order
    - idx_outbox_events_failed: For monitoring failed records (DLQ)
    - idx_outbox_events_completed: For retention cleanup
    """

    __tablename__ = "outbox_events"
    __table_args__ = (
        Index(
            "idx_outbox_events_pending",
            "created_at",
            "id",
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        Index(
            "idx_outbox_events_failed",
            "updated_at",
            postgresql_where=text("status = 'FAILED'"),
            sqlite_where=text("status = 'FAILED'"),
        ),
        Index(
            "idx_outbox_events_completed",
            "processed_at",
            postgresql_where=text("status = 'COMPLETED'"),
            sqlite_where=text("status = 'COMPLETED'"),
        ),
    )

    # Application-assigned UUIDv7, never generated by the database
    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)
    aggregate_type: Mapped[str] = mapped_column(String(255), nullable=False)
    aggregate_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(String(255), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False
    )
    status: Mapped[OutboxStatus] = mapped_column(
        OutboxStatusType,
        nullable=False,
        default=OutboxStatus.PENDING,
    )
    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    # Backoff: NULL means claimable as soon as the record is PENDING
    next_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    def to_value_object(self) -> OutboxRecord:
        """Convert this ORM model to an OutboxRecord value object.

        Returns:
            An immutable OutboxRecord with all fields copied from this model.
        """
        return OutboxRecord(
            id=self.id,
            aggregate_type=self.aggregate_type,
            aggregate_id=self.aggregate_id,
            event_type=self.event_type,
            payload=self.payload,
            status=OutboxStatus(self.status),
            created_at=as_utc(self.created_at),
            retry_count=self.retry_count,
            last_error=self.last_error,
            processed_at=as_utc(self.processed_at),
            next_attempt_at=as_utc(self.next_attempt_at),
            updated_at=as_utc(self.updated_at),
        )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<OutboxModel("
            f"id={self.id}, "
            f"aggregate_type={self.aggregate_type}, "
            f"event_type={self.event_type}, "
            f"status={self.status}, "
            f"retry_count={self.retry_count}"
            f")>"
        )
