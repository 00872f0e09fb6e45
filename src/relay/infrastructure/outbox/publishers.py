"""Message bus adapters for the outbox dispatcher."""

from __future__ import annotations

import structlog

from shared_kernel.outbox.value_objects import OutboxRecord

logger = structlog.get_logger()


class LoggingMessagePublisher:
    """Publisher that only logs what would be sent.

    Used in development and wherever no broker is configured. It never
    fails, so every claimed record is marked COMPLETED.
    """

    def __init__(self) -> None:
        self._log = logger.bind(component="outbox_publisher")

    async def publish(self, topic: str, record: OutboxRecord) -> None:
        self._log.info(
            "outbox_message_published",
            topic=topic,
            record_id=str(record.id),
            aggregate_type=record.aggregate_type,
            aggregate_id=record.aggregate_id,
            event_type=record.event_type,
            retry_count=record.retry_count,
        )
