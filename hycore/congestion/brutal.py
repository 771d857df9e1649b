"""Fixed-rate congestion control that compensates for the observed loss rate."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from hycore.congestion.common import (
    INITIAL_PACKET_SIZE_IPV4,
    AckedPacketInfo,
    LostPacketInfo,
    Pacer,
)

PKT_INFO_SLOT_COUNT = 5  # one slot per second sampled
MIN_SAMPLE_COUNT = 50
MIN_ACK_RATE = 0.8
CONGESTION_WINDOW_MULTIPLIER = 2
NO_RTT_CONGESTION_WINDOW = 10240

DEBUG_ENV = "HYSTERIA_BRUTAL_DEBUG"
DEBUG_PRINT_INTERVAL = 2

_NANOS_PER_SECOND = 1_000_000_000
_NANOS_PER_MILLI = 1_000_000
_TRUE_STRINGS = frozenset({"1", "t", "T", "TRUE", "true", "True"})


class RTTStatsProvider(Protocol):
    """Source of round-trip time measurements, in nanoseconds."""

    def min_rtt(self) -> int: ...

    def smoothed_rtt(self) -> int: ...


@dataclass
class _PacketInfo:
    timestamp: int = 0
    ack_count: int = 0
    loss_count: int = 0


def _debug_enabled() -> bool:
    return os.environ.get(DEBUG_ENV, "") in _TRUE_STRINGS


class BrutalSender:
    """Sends at a fixed rate of ``bps`` bytes per second, raised to offset packet loss.

    Times are integer nanoseconds.
    """

    def __init__(self, bps: int) -> None:
        self._rtt_stats: Optional[RTTStatsProvider] = None
        self._bps = bps
        self._max_datagram_size = INITIAL_PACKET_SIZE_IPV4
        self._slots = [_PacketInfo() for _ in range(PKT_INFO_SLOT_COUNT)]
        self._ack_rate = 1.0
        self._debug = _debug_enabled()
        self._last_ack_print_timestamp = 0
        self._pacer = Pacer(lambda: int(self._bps / self._ack_rate))

    @property
    def ack_rate(self) -> float:
        """Share of recent packets that were acknowledged, clamped to [0.8, 1]."""
        return self._ack_rate

    def set_rtt_stats_provider(self, provider: RTTStatsProvider) -> None:
        self._rtt_stats = provider

    def _rtt(self) -> int:
        if self._rtt_stats is None:
            raise RuntimeError("no RTT stats provider set")
        return self._rtt_stats.smoothed_rtt()

    def time_until_send(self, bytes_in_flight: int) -> Optional[int]:
        """When the next packet may be sent, or None if it may be sent now."""
        return self._pacer.time_until_send()

    def has_pacing_budget(self, now: int) -> bool:
        return self._pacer.budget(now) >= self._max_datagram_size

    def can_send(self, bytes_in_flight: int) -> bool:
        return bytes_in_flight <= self.get_congestion_window()

    def get_congestion_window(self) -> int:
        """Bytes allowed in flight: twice the rate-RTT product, scaled up for loss."""
        rtt = self._rtt()
        if rtt <= 0:
            return NO_RTT_CONGESTION_WINDOW
        cwnd = int(self._bps * (rtt / _NANOS_PER_SECOND) * CONGESTION_WINDOW_MULTIPLIER / self._ack_rate)
        return max(cwnd, self._max_datagram_size)

    def on_packet_sent(
        self,
        sent_time: int,
        bytes_in_flight: int,
        packet_number: int,
        size: int,
        is_retransmittable: bool,
    ) -> None:
        self._pacer.sent_packet(sent_time, size)

    def on_congestion_event_ex(
        self,
        prior_in_flight: int,
        event_time: int,
        acked_packets: Sequence[AckedPacketInfo],
        lost_packets: Sequence[LostPacketInfo],
    ) -> None:
        """Count acked and lost packets in the slot for the current second."""
        timestamp = event_time // _NANOS_PER_SECOND
        slot = self._slots[timestamp % PKT_INFO_SLOT_COUNT]
        if slot.timestamp == timestamp:
            slot.loss_count += len(lost_packets)
            slot.ack_count += len(acked_packets)
        else:
            slot.timestamp = timestamp
            slot.ack_count = len(acked_packets)
            slot.loss_count = len(lost_packets)
        self._update_ack_rate(timestamp)

    def set_max_datagram_size(self, size: int) -> None:
        self._max_datagram_size = size
        self._pacer.set_max_datagram_size(size)
        if self._debug:
            self._debug_print(f"SetMaxDatagramSize: {size}")

    def _update_ack_rate(self, timestamp: int) -> None:
        min_timestamp = timestamp - PKT_INFO_SLOT_COUNT
        recent = [info for info in self._slots if info.timestamp >= min_timestamp]
        ack_count = sum(info.ack_count for info in recent)
        loss_count = sum(info.loss_count for info in recent)
        total = ack_count + loss_count

        if total < MIN_SAMPLE_COUNT:
            self._ack_rate = 1.0
            if self._can_print_ack_rate(timestamp):
                self._last_ack_print_timestamp = timestamp
                self._debug_print(
                    f"Not enough samples (total={total}, ack={ack_count}, loss={loss_count}, "
                    f"rtt={self._rtt_millis()})"
                )
            return

        rate = ack_count / total
        if rate < MIN_ACK_RATE:
            self._ack_rate = MIN_ACK_RATE
            if self._can_print_ack_rate(timestamp):
                self._last_ack_print_timestamp = timestamp
                self._debug_print(
                    f"ACK rate too low: {rate:.2f}, clamped to {MIN_ACK_RATE:.2f} "
                    f"(total={total}, ack={ack_count}, loss={loss_count}, rtt={self._rtt_millis()})"
                )
            return

        self._ack_rate = rate
        if self._can_print_ack_rate(timestamp):
            self._last_ack_print_timestamp = timestamp
            self._debug_print(
                f"ACK rate: {rate:.2f} (total={total}, ack={ack_count}, loss={loss_count}, "
                f"rtt={self._rtt_millis()})"
            )

    def in_slow_start(self) -> bool:
        return False

    def in_recovery(self) -> bool:
        return False

    def _rtt_millis(self) -> int:
        return int(self._rtt() / _NANOS_PER_MILLI)

    def _can_print_ack_rate(self, timestamp: int) -> bool:
        return self._debug and timestamp - self._last_ack_print_timestamp >= DEBUG_PRINT_INTERVAL

    @staticmethod
    def _debug_print(message: str) -> None:
        print(f"[BrutalSender] [{time.strftime('%H:%M:%S')}] {message}")