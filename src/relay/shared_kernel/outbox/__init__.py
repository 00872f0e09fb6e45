"""Transactional outbox for the identity platform.

Business transactions append events to the outbox table of their own
database; background workers deliver them to the message bus with
at-least-once semantics, bounded retries and dead-lettering.
"""

from shared_kernel.outbox.exceptions import (
    OutboxError,
    PublishTimeoutError,
    UnknownOutboxDatabaseError,
)
from shared_kernel.outbox.ports import IOutboxStore, MessagePublisher
from shared_kernel.outbox.retry import RetryPolicy
from shared_kernel.outbox.value_objects import (
    DispatchResult,
    OutboxDatabase,
    OutboxEvent,
    OutboxRecord,
    OutboxStats,
    OutboxStatus,
)

__all__ = [
    "DispatchResult",
    "IOutboxStore",
    "MessagePublisher",
    "OutboxDatabase",
    "OutboxError",
    "OutboxEvent",
    "OutboxRecord",
    "OutboxStats",
    "OutboxStatus",
    "PublishTimeoutError",
    "RetryPolicy",
    "UnknownOutboxDatabaseError",
]
