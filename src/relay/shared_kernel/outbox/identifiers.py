"""Time-sortable identifiers for outbox records.

Outbox ids are generated by the application before insert so callers can
log and correlate a record immediately. UUID v7 (RFC 9562) puts a
millisecond Unix timestamp in the high 48 bits, so ids sort by creation
time. Within a single millisecond the 12-bit ``rand_a`` field is used as a
counter, which keeps ids from one process strictly increasing; the outbox
relies on that as the tie-break when two records share a ``created_at``.
"""

from __future__ import annotations

import os
import threading
import time
import uuid

_COUNTER_MAX = 0xFFF

_lock = threading.Lock()
_last_ms = -1
_counter = 0


def generate_outbox_id() -> uuid.UUID:
    """Generate a monotonic UUID v7.

    Returns:
        UUID whose version is 7 and which sorts after every id previously
        returned by this process.
    """
    global _last_ms, _counter

    with _lock:
        timestamp_ms = time.time_ns() // 1_000_000
        if timestamp_ms > _last_ms:
            _last_ms = timestamp_ms
            _counter = int.from_bytes(os.urandom(2), "big") & 0x3FF
        else:
            _counter += 1
            if _counter > _COUNTER_MAX:
                # Counter exhausted: borrow the next millisecond
                _last_ms += 1
                _counter = 0
        timestamp_ms = _last_ms
        counter = _counter

    rand_b = int.from_bytes(os.urandom(8), "big") & ((1 << 62) - 1)

    value = (timestamp_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= counter << 64
    value |= 0b10 << 62
    value |= rand_b
    return uuid.UUID(int=value)


def uuid7_timestamp_ms(value: uuid.UUID) -> int:
    """Extract the millisecond Unix timestamp from a UUID v7."""
    if value.version != 7:
        raise ValueError(f"Not a UUID v7: {value}")
    return value.int >> 80
