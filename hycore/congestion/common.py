"""Shared congestion-control pieces: packet info records and the pacer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

INITIAL_PACKET_SIZE_IPV4 = 1252
INITIAL_PACKET_SIZE_IPV6 = 1232
MIN_INITIAL_PACKET_SIZE = 1200
MAX_PACKET_BUFFER_SIZE = 1452
MAX_CONGESTION_WINDOW_PACKETS = 10000
PACKETS_PER_CONNECTION_ID = 64
MIN_PACING_DELAY = 1_000_000  # nanoseconds

MAX_BURST_PACKETS = 10
MAX_BURST_PACING_DELAY_MULTIPLIER = 4

_NANOS_PER_SECOND = 1_000_000_000
_BUDGET_CAP = (1 << 62) - 1


@dataclass(frozen=True)
class AckedPacketInfo:
    """A packet reported as acknowledged in a congestion event."""

    packet_number: int
    bytes_acked: int
    receive_time: int | None = None


@dataclass(frozen=True)
class LostPacketInfo:
    """A packet reported as lost in a congestion event."""

    packet_number: int
    bytes_lost: int


def _div_trunc(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


class Pacer:
    """Token-bucket pacer; ``get_bandwidth`` returns the current rate in bytes per second.

    Times are integer nanoseconds; ``None`` stands for "never" / "now".
    """

    def __init__(self, get_bandwidth: Callable[[], int]) -> None:
        self._get_bandwidth = get_bandwidth
        self._budget_at_last_sent = MAX_BURST_PACKETS * INITIAL_PACKET_SIZE_IPV4
        self._max_datagram_size = INITIAL_PACKET_SIZE_IPV4
        self._last_sent_time: int | None = None

    def sent_packet(self, send_time: int, size: int) -> None:
        """Record that a packet of ``size`` bytes was sent at ``send_time``."""
        budget = self.budget(send_time)
        self._budget_at_last_sent = 0 if size > budget else budget - size
        self._last_sent_time = send_time

    def budget(self, now: int) -> int:
        """Bytes that may be sent at ``now`` without exceeding the pacing rate."""
        if self._last_sent_time is None:
            return self._max_burst_size()
        elapsed = now - self._last_sent_time
        budget = self._budget_at_last_sent + _div_trunc(self._get_bandwidth() * elapsed, _NANOS_PER_SECOND)
        if budget < 0:
            budget = _BUDGET_CAP
        return min(self._max_burst_size(), budget)

    def _max_burst_size(self) -> int:
        return max(
            MAX_BURST_PACING_DELAY_MULTIPLIER * MIN_PACING_DELAY * self._get_bandwidth() // _NANOS_PER_SECOND,
            MAX_BURST_PACKETS * self._max_datagram_size,
        )

    def time_until_send(self) -> int | None:
        """When the next packet may be sent, or None if it may be sent now."""
        if self._budget_at_last_sent >= self._max_datagram_size:
            return None
        diff = _NANOS_PER_SECOND * (self._max_datagram_size - self._budget_at_last_sent)
        bandwidth = self._get_bandwidth()
        delay = -(-diff // bandwidth)
        last_sent = self._last_sent_time if self._last_sent_time is not None else 0
        return last_sent + max(MIN_PACING_DELAY, delay)

    def set_max_datagram_size(self, size: int) -> None:
        self._max_datagram_size = size