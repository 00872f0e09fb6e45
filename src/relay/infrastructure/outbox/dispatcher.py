"""Outbox dispatcher: delivers claimed records to the message bus.

The dispatcher runs as background tasks within the FastAPI application,
one poll loop per logical database plus the retention janitor.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from typing import TYPE_CHECKING, Any

from infrastructure.outbox.registry import OutboxStoreRegistry
from shared_kernel.outbox.exceptions import PublishTimeoutError
from shared_kernel.outbox.observability import (
    DefaultOutboxWorkerProbe,
    OutboxWorkerProbe,
)
from shared_kernel.outbox.routing import TopicRouter
from shared_kernel.outbox.value_objects import (
    DispatchResult,
    OutboxDatabase,
    OutboxRecord,
)

if TYPE_CHECKING:
    from infrastructure.outbox.janitor import OutboxJanitor
    from infrastructure.outbox.store import OutboxStore
    from infrastructure.settings import OutboxSettings
    from shared_kernel.outbox.ports import MessagePublisher


def describe_error(exc: BaseException) -> str:
    """Message stored as last_error; falls back to the exception class name."""
    return str(exc) or type(exc).__name__


class OutboxDispatcher:
    """Background worker that claims outbox records and publishes them.

    Every database is polled by its own loop. A dispatch pass:
    1. Returns stuck PROCESSING records to PENDING (when enabled)
    2. Claims a batch of PENDING records, oldest first
    3. Publishes each record with a timeout and records the outcome

    Each claim is renewed right before its publish, so a record that the
    reaper handed to another worker while it waited in this batch is
    skipped rather than published twice. Delivery is still at-least-once:
    a crash between publish and outcome leaves the record PROCESSING until
    the stuck-record reaper requeues it.

    On stop, passes in progress finish the record they are publishing and
    hand the rest of their batch back to PENDING.
    """

    def __init__(
        self,
        registry: OutboxStoreRegistry,
        publisher: MessagePublisher,
        probe: OutboxWorkerProbe | None = None,
        router: TopicRouter | None = None,
        janitor: OutboxJanitor | None = None,
        poll_interval_seconds: float = 1.0,
        batch_size: int = 100,
        publish_timeout_seconds: float = 10.0,
        stuck_recovery_enabled: bool = True,
        stuck_threshold_seconds: float = 300.0,
        processing_enabled: bool = True,
        max_concurrency: int = 1,
        shutdown_timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            registry: Outbox stores, one per logical database
            publisher: Message bus adapter
            probe: Observability probe for logging/metrics
            router: Chooses the topic for each record
            janitor: Retention cleanup started and stopped with the dispatcher
            poll_interval_seconds: Delay between polls of one database
            batch_size: Maximum records claimed per poll
            publish_timeout_seconds: Timeout for a single publish call
            stuck_recovery_enabled: Requeue stuck PROCESSING records before claiming
            stuck_threshold_seconds: Age after which PROCESSING counts as stuck
            processing_enabled: Initial state of the processing toggle
            max_concurrency: Records of one batch published at the same time;
                1 publishes strictly in claim order
            shutdown_timeout_seconds: How long stop() waits for passes in
                progress before cancelling them

        Raises:
            ValueError: If max_concurrency is less than 1
        """
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")

        self._registry = registry
        self._publisher = publisher
        self._probe = probe or DefaultOutboxWorkerProbe()
        self._router = router or TopicRouter()
        self._janitor = janitor
        self._poll_interval = poll_interval_seconds
        self._batch_size = batch_size
        self._publish_timeout = publish_timeout_seconds
        self._stuck_recovery_enabled = stuck_recovery_enabled
        self._stuck_threshold = stuck_threshold_seconds
        self._processing_enabled = processing_enabled
        self._max_concurrency = max_concurrency
        self._shutdown_timeout = shutdown_timeout_seconds
        self._in_flight: set[OutboxDatabase] = set()
        self._last_results: dict[OutboxDatabase, DispatchResult] = {}
        self._running = False
        self._stop_event = asyncio.Event()
        self._poll_tasks: list[asyncio.Task] = []
        self._janitor_task: asyncio.Task | None = None

    @classmethod
    def from_settings(
        cls,
        registry: OutboxStoreRegistry,
        publisher: MessagePublisher,
        settings: OutboxSettings,
        probe: OutboxWorkerProbe | None = None,
        janitor: OutboxJanitor | None = None,
    ) -> OutboxDispatcher:
        return cls(
            registry,
            publisher,
            probe=probe,
            janitor=janitor,
            poll_interval_seconds=settings.poll_interval_seconds,
            batch_size=settings.batch_size,
            publish_timeout_seconds=settings.publish_timeout_seconds,
            stuck_recovery_enabled=settings.stuck_recovery_enabled,
            stuck_threshold_seconds=settings.stuck_threshold_seconds,
            max_concurrency=settings.max_concurrency,
            shutdown_timeout_seconds=settings.shutdown_timeout_seconds,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def processing_enabled(self) -> bool:
        return self._processing_enabled

    def set_processing_enabled(self, enabled: bool) -> None:
        """Pause or resume dispatching without stopping the loops."""
        self._processing_enabled = enabled

    async def start(self) -> None:
        """Start one poll loop per registered database and the janitor loop."""
        if self._running:
            return

        self._running = True
        self._stop_event.clear()
        databases = self._registry.databases
        self._probe.worker_started([database.value for database in databases])

        for database in databases:
            self._poll_tasks.append(asyncio.create_task(self._poll_loop(database)))

        if self._janitor is not None:
            self._janitor_task = asyncio.create_task(self._janitor.run_forever())

    async def stop(self) -> None:
        """Gracefully stop the dispatcher.

        Signals all loops to stop and waits up to shutdown_timeout_seconds
        for passes in progress to finish. Loops still running after that
        are cancelled.
        """
        if not self._running:
            return

        self._running = False
        self._stop_event.set()

        if self._janitor_task is not None:
            self._janitor_task.cancel()
            try:
                await self._janitor_task
            except asyncio.CancelledError:
                pass
            self._janitor_task = None

        if self._poll_tasks:
            _, pending = await asyncio.wait(
                self._poll_tasks, timeout=self._shutdown_timeout
            )
            if pending:
                self._probe.stop_timed_out(len(pending))
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        self._poll_tasks.clear()
        self._probe.worker_stopped()

    async def _poll_loop(self, database: OutboxDatabase) -> None:
        """Dispatch one database every poll_interval_seconds.

        Errors are reported and the loop continues with the next poll.
        """
        self._probe.poll_loop_started(database.value)

        while self._running:
            try:
                await self.dispatch_once(database)
            except Exception as e:
                self._probe.poll_loop_error(database.value, describe_error(e))

            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), self._poll_interval)

    async def dispatch_once(self, database: OutboxDatabase | str) -> DispatchResult:
        """Run a single dispatch pass over one database.

        Returns an empty result when processing is disabled or a pass for
        the same database is already running.

        Raises:
            UnknownOutboxDatabaseError: If the database has no outbox store
        """
        store = self._registry.get(database)
        database = store.database

        if not self._processing_enabled:
            self._probe.dispatch_skipped(database.value, "processing_disabled")
            return DispatchResult()

        if database in self._in_flight:
            self._probe.dispatch_skipped(database.value, "already_running")
            return DispatchResult()

        self._in_flight.add(database)
        try:
            result = await self._dispatch(store)
        finally:
            self._in_flight.discard(database)

        self._last_results[database] = result
        return result

    async def _dispatch(self, store: OutboxStore) -> DispatchResult:
        database = store.database
        started = time.perf_counter()
        result = DispatchResult()

        if self._stuck_recovery_enabled:
            recovered = await store.recover_stuck(self._stuck_threshold)
            self._probe.stuck_records_recovered(database.value, recovered)

        records = await store.claim_pending(self._batch_size)
        if self._max_concurrency > 1:
            await self._dispatch_concurrently(store, records, result)
        else:
            for index, record in enumerate(records):
                if self._stop_event.is_set():
                    await self._release_claims(store, records[index:], result)
                    break
                await self._dispatch_record(store, record, result)

        result.duration_ms = (time.perf_counter() - started) * 1000
        if records:
            self._probe.batch_dispatched(
                database.value,
                published=result.published,
                retried=result.retried,
                dead_lettered=result.dead_lettered,
                duration_ms=result.duration_ms,
            )
        return result

    async def _dispatch_concurrently(
        self,
        store: OutboxStore,
        records: list[OutboxRecord],
        result: DispatchResult,
    ) -> None:
        """Publish a batch with at most max_concurrency publishes in flight.

        Records not yet started when the dispatcher is stopping are released.
        The first error raised while recording an outcome is re-raised once
        every record has been handled.
        """
        semaphore = asyncio.Semaphore(self._max_concurrency)
        unstarted: list[OutboxRecord] = []

        async def dispatch(record: OutboxRecord) -> None:
            async with semaphore:
                if self._stop_event.is_set():
                    unstarted.append(record)
                    return
                await self._dispatch_record(store, record, result)

        outcomes = await asyncio.gather(
            *(dispatch(record) for record in records), return_exceptions=True
        )
        await self._release_claims(store, unstarted, result)

        for outcome in outcomes:
            if isinstance(outcome, Exception):
                raise outcome

    async def _release_claims(
        self,
        store: OutboxStore,
        records: list[OutboxRecord],
        result: DispatchResult,
    ) -> None:
        if not records:
            return
        released = await store.release_claims(records)
        result.released += released
        self._probe.claims_released(store.database.value, released)

    async def _dispatch_record(
        self,
        store: OutboxStore,
        record: OutboxRecord,
        result: DispatchResult,
    ) -> None:
        """Renew the claim, publish the record and store the outcome."""
        database = store.database

        claimed = await store.renew_claim(record)
        if claimed is None:
            result.skipped += 1
            self._probe.claim_lost(database.value, record.id)
            return

        topic = self._router.topic_for(database, claimed)

        try:
            await self._publish(topic, claimed)
        except Exception as e:
            error = describe_error(e)
            result.errors.append((record.id, error))
            await self._handle_publish_failure(store, claimed, error, result)
            return

        if await store.mark_as_completed(record.id):
            result.published += 1
            self._probe.record_published(
                database.value, record.id, record.event_type, topic
            )
        else:
            result.skipped += 1
            self._probe.record_outcome_skipped(database.value, record.id)

    async def _publish(self, topic: str, record: OutboxRecord) -> None:
        try:
            await asyncio.wait_for(
                self._publisher.publish(topic, record),
                timeout=self._publish_timeout,
            )
        except TimeoutError:
            raise PublishTimeoutError(self._publish_timeout) from None

    async def _handle_publish_failure(
        self,
        store: OutboxStore,
        record: OutboxRecord,
        error: str,
        result: DispatchResult,
    ) -> None:
        """Requeue the record with backoff, or dead-letter it."""
        database = store.database
        updated = await store.mark_as_failed(record.id, error)

        if updated is None:
            result.skipped += 1
            self._probe.record_outcome_skipped(database.value, record.id)
        elif updated.is_dead_letter:
            result.dead_lettered += 1
            self._probe.record_dead_lettered(
                database.value, record.id, record.event_type, error
            )
        else:
            result.retried += 1
            self._probe.record_retry_scheduled(
                database.value,
                record.id,
                error,
                updated.retry_count,
                store.retry_policy.max_retries,
            )

    async def get_status(self) -> dict[str, Any]:
        """Report the toggle, running state, stats and last pass per database."""
        databases: dict[str, dict[str, int]] = {}
        for store in self._registry:
            stats = await store.get_stats()
            databases[store.database.value] = stats.as_dict()

        return {
            "running": self._running,
            "processing_enabled": self._processing_enabled,
            "in_flight": sorted(database.value for database in self._in_flight),
            "max_concurrency": self._max_concurrency,
            "databases": databases,
            "last_results": {
                database.value: result.as_dict()
                for database, result in self._last_results.items()
            },
        }
