"""Bandwidth arithmetic and the clock used by the congestion controllers.

Bandwidth is an integer in bits per second. Times and durations are
integer nanoseconds.
"""

from __future__ import annotations

import time
from typing import Protocol

BITS_PER_SECOND = 1
BYTES_PER_SECOND = 8 * BITS_PER_SECOND
INF_BANDWIDTH = (1 << 64) - 1

NANOS_PER_SECOND = 1_000_000_000


def bandwidth_from_delta(num_bytes: int, delta: int) -> int:
    """Bandwidth in bits per second of ``num_bytes`` transferred over ``delta`` nanoseconds."""
    if delta <= 0:
        raise ValueError(f"time delta must be positive, got {delta}")
    return num_bytes * NANOS_PER_SECOND // delta * BYTES_PER_SECOND


class Clock(Protocol):
    """Anything that reports the current time in nanoseconds."""

    def now(self) -> int: ...


class DefaultClock:
    """Clock backed by the system wall clock."""

    def now(self) -> int:
        """Nanoseconds since the Unix epoch."""
        return time.time_ns()