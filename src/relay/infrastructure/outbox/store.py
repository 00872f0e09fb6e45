"""Per-database outbox store used by the dispatcher and janitor.

Each operation runs in its own short transaction on the database's session
factory and commits before returning. Business writes never go through the
store; they use the writer inside the caller's transaction.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from infrastructure.database.models import utc_now
from infrastructure.outbox.repository import OutboxRepository
from shared_kernel.outbox.retry import RetryPolicy
from shared_kernel.outbox.value_objects import (
    OutboxDatabase,
    OutboxRecord,
    OutboxStats,
    OutboxStatus,
)


class OutboxStore:
    """SQLAlchemy implementation of IOutboxStore for one logical database."""

    def __init__(
        self,
        database: OutboxDatabase | str,
        session_factory: async_sessionmaker[AsyncSession],
        retry_policy: RetryPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the store.

        Args:
            database: The logical database this store is bound to
            session_factory: Factory for sessions on that database only
            retry_policy: Retry bound and backoff applied by mark_as_failed
            clock: Source of the current UTC time
        """
        self._database = OutboxDatabase.parse(database)
        self._session_factory = session_factory
        self._retry_policy = retry_policy or RetryPolicy()
        self._clock = clock

    @property
    def database(self) -> OutboxDatabase:
        return self._database

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry_policy

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    async def claim_pending(self, limit: int) -> list[OutboxRecord]:
        """Claim up to ``limit`` eligible records, oldest first.

        Candidates are selected with SKIP LOCKED and each one is then claimed
        with a conditional update, all in one transaction. The returned
        records carry the PROCESSING status they were moved to.
        """
        if limit <= 0:
            return []

        now = self._clock()
        claimed: list[OutboxRecord] = []
        async with self._session_factory() as session, session.begin():
            repository = OutboxRepository(session)
            candidates = await repository.fetch_claimable(
                limit, self._retry_policy.max_retries, now=now
            )
            for candidate in candidates:
                if await repository.mark_as_processing(candidate.id, now=now):
                    claimed.append(_as_processing(candidate, now))
        return claimed

    async def mark_as_processing(self, record_id: UUID) -> bool:
        async with self._session_factory() as session, session.begin():
            return await OutboxRepository(session).mark_as_processing(
                record_id, now=self._clock()
            )

    async def renew_claim(self, record: OutboxRecord) -> OutboxRecord | None:
        """Refresh the claim on a record returned by claim_pending.

        Returns:
            The record with its refreshed updated_at, or None if the claim
            was lost to the stuck-record reaper and another worker
        """
        now = self._clock()
        async with self._session_factory() as session, session.begin():
            renewed = await OutboxRepository(session).renew_claim(
                record.id, record.updated_at, now=now
            )
        return _as_processing(record, now) if renewed else None

    async def release_claims(self, records: list[OutboxRecord]) -> int:
        """Return claimed but unpublished records to PENDING."""
        if not records:
            return 0

        now = self._clock()
        released = 0
        async with self._session_factory() as session, session.begin():
            repository = OutboxRepository(session)
            for record in records:
                if await repository.release_claim(record.id, record.updated_at, now=now):
                    released += 1
        return released

    async def mark_as_completed(self, record_id: UUID) -> bool:
        async with self._session_factory() as session, session.begin():
            return await OutboxRepository(session).mark_as_completed(
                record_id, now=self._clock()
            )

    async def mark_as_failed(self, record_id: UUID, error: str) -> OutboxRecord | None:
        """Record a failed attempt; FAILED once the retry budget is spent."""
        async with self._session_factory() as session, session.begin():
            return await OutboxRepository(session).record_failure(
                record_id, error, self._retry_policy, now=self._clock()
            )

    async def cleanup_completed(self, older_than_days: int = 7) -> int:
        """Delete COMPLETED records processed more than N days ago.

        Raises:
            ValueError: If older_than_days is negative
        """
        if older_than_days < 0:
            raise ValueError("older_than_days must be non-negative")

        cutoff = self._clock() - timedelta(days=older_than_days)
        async with self._session_factory() as session, session.begin():
            return await OutboxRepository(session).delete_completed_before(cutoff)

    async def recover_stuck(self, older_than_seconds: float) -> int:
        now = self._clock()
        cutoff = now - timedelta(seconds=older_than_seconds)
        async with self._session_factory() as session, session.begin():
            return await OutboxRepository(session).reset_stuck(cutoff, now=now)

    async def get_stats(self) -> OutboxStats:
        async with self._session_factory() as session:
            counts = await OutboxRepository(session).count_by_status()
        return OutboxStats.from_counts(counts)

    async def list_failed(self, limit: int = 100) -> list[OutboxRecord]:
        if limit <= 0:
            return []
        async with self._session_factory() as session:
            return await OutboxRepository(session).fetch_failed(limit)

    async def replay_failed(self, record_id: UUID) -> bool:
        async with self._session_factory() as session, session.begin():
            return await OutboxRepository(session).reset_failed(
                record_id, now=self._clock()
            )

    def __repr__(self) -> str:
        return f"<OutboxStore(database={self._database.value})>"


def _as_processing(record: OutboxRecord, now: datetime) -> OutboxRecord:
    return replace(record, status=OutboxStatus.PROCESSING, updated_at=now)
