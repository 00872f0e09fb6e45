"""Outbox repository implementation.

This module provides the SQL for one outbox table. It is bound to a
session and never commits: the writer uses it inside the business
transaction, the store uses it inside its own short transactions.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.models import utc_now
from infrastructure.outbox.models import OutboxModel
from shared_kernel.outbox.identifiers import generate_outbox_id
from shared_kernel.outbox.retry import RetryPolicy
from shared_kernel.outbox.value_objects import (
    OutboxEvent,
    OutboxRecord,
    OutboxStatus,
)

_ACTIVE_STATUSES = (OutboxStatus.PENDING, OutboxStatus.PROCESSING)


class OutboxRepository:
    """SQL operations on an outbox table within a caller-owned session.

    The repository only calls session.add(), session.flush() and
    session.execute() - it never calls session.commit(). The caller owns
    the transaction boundary.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with a session.

        Args:
            session: The SQLAlchemy async session (shared with the caller)
        """
        self._session = session

    async def append(
        self, event: OutboxEvent, now: datetime | None = None
    ) -> OutboxRecord:
        """Append an event to the outbox within the current transaction.

        The model is flushed so that constraint and connection errors are
        raised here rather than at commit time.

        Returns:
            The record exactly as it was flushed, including its new id
        """
        records = await self.append_many([event], now=now)
        return records[0]

    async def append_many(
        self, events: Sequence[OutboxEvent], now: datetime | None = None
    ) -> list[OutboxRecord]:
        """Append several events in a single flush.

        All records share created_at; their ids are strictly increasing in
        list order, which preserves the batch order for the claimer.
        """
        now = now or utc_now()
        models = [
            OutboxModel(
                id=generate_outbox_id(),
                aggregate_type=event.aggregate_type,
                aggregate_id=event.aggregate_id,
                event_type=event.event_type,
                payload=event.payload,
                status=OutboxStatus.PENDING,
                retry_count=0,
                last_error=None,
                processed_at=None,
                created_at=now,
                next_attempt_at=None,
                updated_at=now,
            )
            for event in events
        ]

        self._session.add_all(models)
        await self._session.flush()

        return [model.to_value_object() for model in models]

    async def get(self, record_id: UUID) -> OutboxRecord | None:
        model = await self._session.get(OutboxModel, record_id)
        return model.to_value_object() if model is not None else None

    async def fetch_claimable(
        self, limit: int, max_retries: int, now: datetime | None = None
    ) -> list[OutboxRecord]:
        """Fetch claim candidates ordered by creation time.

        Uses FOR UPDATE SKIP LOCKED so that concurrent dispatchers select
        disjoint candidates on PostgreSQL. The actual claim is the
        conditional update in mark_as_processing().

        Args:
            limit: Maximum number of candidates
            max_retries: Records at or beyond this retry count are excluded
            now: Reference time for the backoff filter

        Returns:
            PENDING records whose backoff has elapsed, oldest first
        """
        now = now or utc_now()
        stmt = (
            select(OutboxModel)
            .where(OutboxModel.status == OutboxStatus.PENDING)
            .where(OutboxModel.retry_count < max_retries)
            .where(
                or_(
                    OutboxModel.next_attempt_at.is_(None),
                    OutboxModel.next_attempt_at <= now,
                )
            )
            .order_by(OutboxModel.created_at, OutboxModel.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )

        result = await self._session.execute(stmt)
        models = result.scalars().all()

        return [model.to_value_object() for model in models]

    async def mark_as_processing(
        self, record_id: UUID, now: datetime | None = None
    ) -> bool:
        """Atomically move a PENDING record to PROCESSING.

        Returns:
            True if exactly one row changed, i.e. this caller won the claim
        """
        stmt = (
            update(OutboxModel)
            .where(OutboxModel.id == record_id)
            .where(OutboxModel.status == OutboxStatus.PENDING)
            .values(status=OutboxStatus.PROCESSING, updated_at=now or utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def renew_claim(
        self, record_id: UUID, claimed_at: datetime, now: datetime | None = None
    ) -> bool:
        """Refresh a claim that is still held by the caller.

        A claim is identified by the updated_at written when it was taken.
        If the record was requeued and claimed again since, its updated_at
        is newer and the renewal fails.

        Returns:
            True if the caller still holds the claim
        """
        stmt = (
            update(OutboxModel)
            .where(OutboxModel.id == record_id)
            .where(OutboxModel.status == OutboxStatus.PROCESSING)
            .where(OutboxModel.updated_at <= claimed_at)
            .values(updated_at=now or utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def release_claim(
        self, record_id: UUID, claimed_at: datetime, now: datetime | None = None
    ) -> bool:
        """Return a held, unpublished claim to PENDING without counting a failure."""
        stmt = (
            update(OutboxModel)
            .where(OutboxModel.id == record_id)
            .where(OutboxModel.status == OutboxStatus.PROCESSING)
            .where(OutboxModel.updated_at <= claimed_at)
            .values(status=OutboxStatus.PENDING, updated_at=now or utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def mark_as_completed(
        self, record_id: UUID, now: datetime | None = None
    ) -> bool:
        """Mark a non-terminal record as COMPLETED.

        Returns:
            False if the record does not exist or is already terminal
        """
        now = now or utc_now()
        stmt = (
            update(OutboxModel)
            .where(OutboxModel.id == record_id)
            .where(OutboxModel.status.in_(_ACTIVE_STATUSES))
            .values(
                status=OutboxStatus.COMPLETED,
                processed_at=now,
                next_attempt_at=None,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def record_failure(
        self,
        record_id: UUID,
        error: str,
        policy: RetryPolicy,
        now: datetime | None = None,
    ) -> OutboxRecord | None:
        """Increment the retry count and requeue or dead-letter the record.

        The update is conditional on the retry count that was read, so two
        concurrent failures for the same record cannot both apply.

        Returns:
            The updated record, or None if the record is missing, terminal,
            or was changed concurrently
        """
        current = await self.get(record_id)
        if current is None or current.is_terminal:
            return None

        now = now or utc_now()
        new_retry_count = current.retry_count + 1

        if policy.is_exhausted(new_retry_count):
            new_status = OutboxStatus.FAILED
            next_attempt_at = None
        else:
            new_status = OutboxStatus.PENDING
            next_attempt_at = policy.next_attempt_at(new_retry_count, now)

        stmt = (
            update(OutboxModel)
            .where(OutboxModel.id == record_id)
            .where(OutboxModel.status.in_(_ACTIVE_STATUSES))
            .where(OutboxModel.retry_count == current.retry_count)
            .values(
                status=new_status,
                retry_count=new_retry_count,
                last_error=error,
                next_attempt_at=next_attempt_at,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            return None

        return replace(
            current,
            status=new_status,
            retry_count=new_retry_count,
            last_error=error,
            next_attempt_at=next_attempt_at,
            updated_at=now,
        )

    async def delete_completed_before(self, cutoff: datetime) -> int:
        """Delete COMPLETED records processed before the cutoff.

        The predicate is the only thing standing between the janitor and
        live data: it never matches PENDING, PROCESSING or FAILED rows.
        """
        stmt = (
            delete(OutboxModel)
            .where(OutboxModel.status == OutboxStatus.COMPLETED)
            .where(OutboxModel.processed_at.is_not(None))
            .where(OutboxModel.processed_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def reset_stuck(self, claimed_before: datetime, now: datetime | None = None) -> int:
        """Return PROCESSING records claimed before a cutoff to PENDING.

        The retry count is left as is; the abandoned attempt is not counted
        as a failure.
        """
        stmt = (
            update(OutboxModel)
            .where(OutboxModel.status == OutboxStatus.PROCESSING)
            .where(OutboxModel.updated_at < claimed_before)
            .values(status=OutboxStatus.PENDING, updated_at=now or utc_now())
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0

    async def count_by_status(self) -> dict[OutboxStatus, int]:
        stmt = select(OutboxModel.status, func.count()).group_by(OutboxModel.status)
        result = await self._session.execute(stmt)
        return {OutboxStatus(status): count for status, count in result.all()}

    async def fetch_failed(self, limit: int) -> list[OutboxRecord]:
        stmt = (
            select(OutboxModel)
            .where(OutboxModel.status == OutboxStatus.FAILED)
            .order_by(OutboxModel.created_at, OutboxModel.id)
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [model.to_value_object() for model in result.scalars().all()]

    async def reset_failed(self, record_id: UUID, now: datetime | None = None) -> bool:
        """Give a FAILED record a fresh retry budget.

        last_error is kept so the history of the original failure survives
        the replay.
        """
        stmt = (
            update(OutboxModel)
            .where(OutboxModel.id == record_id)
            .where(OutboxModel.status == OutboxStatus.FAILED)
            .values(
                status=OutboxStatus.PENDING,
                retry_count=0,
                next_attempt_at=None,
                updated_at=now or utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1
