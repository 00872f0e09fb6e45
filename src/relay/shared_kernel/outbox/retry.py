"""Retry policy for failed outbox publishes.

The policy decides two things for a record that just failed: whether it
has exhausted its retry budget, and if not, how long it must wait before a
dispatcher may claim it again.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

DEFAULT_MAX_RETRIES = 3


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries with capped exponential backoff.

    Attributes:
        max_retries: Failed attempts after which a record is dead-lettered
        base_delay_seconds: Delay after the first failure
        multiplier: Growth factor applied per additional failure
        max_delay_seconds: Upper bound for any single delay
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_seconds: float = 1.0
    multiplier: float = 2.0
    max_delay_seconds: float = 300.0

    def __post_init__(self) -> None:
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.base_delay_seconds < 0 or self.max_delay_seconds < 0:
            raise ValueError("retry delays must not be negative")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be >= 1, got {self.multiplier}")

    def is_exhausted(self, retry_count: int) -> bool:
        """Return True once retry_count has reached the budget."""
        return retry_count >= self.max_retries

    def delay_for(self, retry_count: int) -> timedelta:
        """Backoff to apply after the retry_count-th failure.

        retry_count is the count *after* the failure was recorded, so the
        first failure (retry_count=1) waits base_delay_seconds.
        """
        if retry_count <= 0:
            return timedelta(0)
        # Exponent capped so large counts cannot overflow the float
        exponent = min(retry_count - 1, 64)
        seconds = self.base_delay_seconds * self.multiplier**exponent
        return timedelta(seconds=min(seconds, self.max_delay_seconds))

    def next_attempt_at(self, retry_count: int, now: datetime) -> datetime:
        return now + self.delay_for(retry_count)
