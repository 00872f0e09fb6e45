"""Observability probes for the outbox writer, dispatcher and janitor.

Following Domain Oriented Observability, probes capture domain-significant
events and metrics without cluttering business logic with logging concerns.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

import structlog

logger = structlog.get_logger()


class OutboxWriterProbe(Protocol):
    """Protocol for outbox writer observability."""

    def event_appended(
        self, database: str, record_id: UUID, event_type: str, aggregate_id: str
    ) -> None:
        """Called when a record is added to the caller's transaction."""
        ...

    def batch_appended(self, database: str, count: int) -> None:
        """Called when a batch of records is added in one flush."""
        ...


class DefaultOutboxWriterProbe:
    """Default writer probe using structlog."""

    def __init__(self) -> None:
        self._log = logger.bind(component="outbox_writer")

    def event_appended(
        self, database: str, record_id: UUID, event_type: str, aggregate_id: str
    ) -> None:
        self._log.debug(
            "outbox_event_appended",
            database=database,
            record_id=str(record_id),
            event_type=event_type,
            aggregate_id=aggregate_id,
        )

    def batch_appended(self, database: str, count: int) -> None:
        self._log.debug("outbox_batch_appended", database=database, count=count)


class OutboxWorkerProbe(Protocol):
    """Protocol for outbox dispatcher observability.

    Implementations can log, emit metrics, or send traces.
    """

    def worker_started(self, databases: list[str]) -> None:
        """Called when the dispatcher starts its loops."""
        ...

    def worker_stopped(self) -> None:
        """Called when the dispatcher stops."""
        ...

    def poll_loop_started(self, database: str) -> None:
        """Called when the poll loop for a database starts."""
        ...

    def poll_loop_error(self, database: str, error: str) -> None:
        """Called when a poll iteration fails; the loop keeps running."""
        ...

    def record_published(
        self, database: str, record_id: UUID, event_type: str, topic: str
    ) -> None:
        """Called when a record was delivered and marked COMPLETED."""
        ...

    def record_retry_scheduled(
        self,
        database: str,
        record_id: UUID,
        error: str,
        retry_count: int,
        max_retries: int,
    ) -> None:
        """Called when a publish failed and the record went back to PENDING."""
        ...

    def record_dead_lettered(
        self, database: str, record_id: UUID, event_type: str, error: str
    ) -> None:
        """Called when a record exhausted its retries and became FAILED."""
        ...

    def record_outcome_skipped(self, database: str, record_id: UUID) -> None:
        """Called when the outcome of a publish could not be recorded.

        This happens when the record was already terminal or was moved by
        another worker between claim and outcome.
        """
        ...

    def batch_dispatched(
        self,
        database: str,
        published: int,
        retried: int,
        dead_lettered: int,
        duration_ms: float,
    ) -> None:
        """Called after a non-empty dispatch pass."""
        ...

    def dispatch_skipped(self, database: str, reason: str) -> None:
        """Called when a poll is skipped (disabled or already running)."""
        ...

    def stuck_records_recovered(self, database: str, count: int) -> None:
        """Called when PROCESSING records were returned to PENDING."""
        ...

    def claim_lost(self, database: str, record_id: UUID) -> None:
        """Called when another worker took over a claim before it was published."""
        ...

    def claims_released(self, database: str, count: int) -> None:
        """Called when unpublished claims were handed back during shutdown."""
        ...

    def stop_timed_out(self, pending_tasks: int) -> None:
        """Called when dispatch passes did not finish within the shutdown timeout."""
        ...


class DefaultOutboxWorkerProbe:
    """Default implementation using structlog.

    Logs all dispatcher events with appropriate log levels.
    """

    def __init__(self) -> None:
        self._log = logger.bind(component="outbox_dispatcher")

    def worker_started(self, databases: list[str]) -> None:
        self._log.info("outbox_dispatcher_started", databases=databases)

    def worker_stopped(self) -> None:
        self._log.info("outbox_dispatcher_stopped")

    def poll_loop_started(self, database: str) -> None:
        self._log.info("outbox_poll_loop_started", database=database)

    def poll_loop_error(self, database: str, error: str) -> None:
        self._log.warning("outbox_poll_loop_error", database=database, error=error)

    def record_published(
        self, database: str, record_id: UUID, event_type: str, topic: str
    ) -> None:
        self._log.info(
            "outbox_record_published",
            database=database,
            record_id=str(record_id),
            event_type=event_type,
            topic=topic,
        )

    def record_retry_scheduled(
        self,
        database: str,
        record_id: UUID,
        error: str,
        retry_count: int,
        max_retries: int,
    ) -> None:
        self._log.warning(
            "outbox_record_retry_scheduled",
            database=database,
            record_id=str(record_id),
            error=error,
            retry_count=retry_count,
            max_retries=max_retries,
        )

    def record_dead_lettered(
        self, database: str, record_id: UUID, event_type: str, error: str
    ) -> None:
        self._log.error(
            "outbox_record_dead_lettered",
            database=database,
            record_id=str(record_id),
            event_type=event_type,
            error=error,
        )

    def record_outcome_skipped(self, database: str, record_id: UUID) -> None:
        self._log.warning(
            "outbox_record_outcome_skipped",
            database=database,
            record_id=str(record_id),
        )

    def batch_dispatched(
        self,
        database: str,
        published: int,
        retried: int,
        dead_lettered: int,
        duration_ms: float,
    ) -> None:
        self._log.info(
            "outbox_batch_dispatched",
            database=database,
            published=published,
            retried=retried,
            dead_lettered=dead_lettered,
            duration_ms=round(duration_ms, 2),
        )

    def dispatch_skipped(self, database: str, reason: str) -> None:
        self._log.debug("outbox_dispatch_skipped", database=database, reason=reason)

    def stuck_records_recovered(self, database: str, count: int) -> None:
        if count > 0:
            self._log.warning(
                "outbox_stuck_records_recovered", database=database, count=count
            )

    def claim_lost(self, database: str, record_id: UUID) -> None:
        self._log.warning(
            "outbox_claim_lost", database=database, record_id=str(record_id)
        )

    def claims_released(self, database: str, count: int) -> None:
        if count > 0:
            self._log.info("outbox_claims_released", database=database, count=count)

    def stop_timed_out(self, pending_tasks: int) -> None:
        self._log.warning("outbox_dispatcher_stop_timed_out", pending_tasks=pending_tasks)


class OutboxJanitorProbe(Protocol):
    """Protocol for retention cleanup observability."""

    def cleanup_completed(self, database: str, deleted: int, older_than_days: int) -> None:
        """Called after a successful cleanup of one database."""
        ...

    def cleanup_failed(self, database: str, error: str) -> None:
        """Called when cleanup of one database failed; retried next run."""
        ...


class DefaultOutboxJanitorProbe:
    """Default janitor probe using structlog."""

    def __init__(self) -> None:
        self._log = logger.bind(component="outbox_janitor")

    def cleanup_completed(self, database: str, deleted: int, older_than_days: int) -> None:
        """Log cleanup results; zero deletions are logged at debug."""
        log = self._log.info if deleted > 0 else self._log.debug
        log(
            "outbox_cleanup_completed",
            database=database,
            deleted=deleted,
            older_than_days=older_than_days,
        )

    def cleanup_failed(self, database: str, error: str) -> None:
        self._log.error("outbox_cleanup_failed", database=database, error=error)
