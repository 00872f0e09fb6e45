"""Exceptions for outbox operations."""


class OutboxError(Exception):
    """Base exception for outbox errors."""

    pass


class UnknownOutboxDatabaseError(OutboxError, ValueError):
    """Raised when an operation targets a database with no outbox store."""

    pass


class PublishTimeoutError(OutboxError):
    """Raised when the message bus does not answer within the publish timeout."""

    def __init__(self, timeout_seconds: float):
        super().__init__(f"Publish timed out after {timeout_seconds:g}s")
        self.timeout_seconds = timeout_seconds
