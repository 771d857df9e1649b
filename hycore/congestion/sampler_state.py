"""State records and helpers behind the bandwidth sampler.

Times are integer nanoseconds, with ``None`` standing for "never set".
Bandwidth is in bits per second, sizes are in bytes.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Optional

from hycore.congestion.bandwidth import INF_BANDWIDTH, NANOS_PER_SECOND
from hycore.congestion.packet_queue import INVALID_PACKET_NUMBER
from hycore.congestion.windowed_filter import WindowedFilter

INF_RTT = (1 << 63) - 1


def bytes_from_bandwidth_and_time_delta(bandwidth: int, delta: int) -> int:
    """Bytes delivered at ``bandwidth`` bits per second over ``delta`` nanoseconds."""
    return bandwidth * delta // (NANOS_PER_SECOND * 8)


def time_delta_from_bytes_and_bandwidth(num_bytes: int, bandwidth: int) -> int:
    """Nanoseconds needed to deliver ``num_bytes`` at ``bandwidth`` bits per second."""
    if bandwidth <= 0:
        raise ValueError(f"bandwidth must be positive, got {bandwidth}")
    return num_bytes * 8 * NANOS_PER_SECOND // bandwidth


def _before(a: Optional[int], b: Optional[int]) -> bool:
    if a is None:
        return b is not None
    return b is not None and a < b


def _after(a: Optional[int], b: Optional[int]) -> bool:
    return _before(b, a)


@dataclass
class SendTimeState:
    """Connection state captured when a packet was sent, reported on ack or loss."""

    is_valid: bool = False
    is_app_limited: bool = False
    total_bytes_sent: int = 0
    total_bytes_acked: int = 0
    total_bytes_lost: int = 0
    bytes_in_flight: int = 0


@dataclass(frozen=True)
class ExtraAckedEvent:
    """Bytes acknowledged beyond what the estimated bandwidth accounts for."""

    extra_acked: int = 0
    bytes_acked: int = 0
    time_delta: int = 0
    round: int = 0


@dataclass
class BandwidthSample:
    """A single bandwidth sample taken when a packet is acknowledged."""

    bandwidth: int = 0
    rtt: int = 0
    send_rate: int = INF_BANDWIDTH
    state_at_send: SendTimeState = field(default_factory=SendTimeState)


@dataclass(frozen=True)
class AckPoint:
    """A point on the ack line: when, and how many bytes were acked by then."""

    ack_time: Optional[int] = None
    total_bytes_acked: int = 0


@dataclass
class ConnectionStateOnSentPacket:
    """A sent packet and the sampler state at the moment it was sent."""

    sent_time: int
    size: int
    total_bytes_sent_at_last_acked_packet: int = 0
    last_acked_packet_sent_time: Optional[int] = None
    last_acked_packet_ack_time: Optional[int] = None
    send_time_state: SendTimeState = field(default_factory=SendTimeState)

    def to_send_time_state(self) -> SendTimeState:
        """A valid copy of the send-time state recorded for this packet."""
        return dataclasses.replace(self.send_time_state, is_valid=True)


@dataclass
class CongestionEventSample:
    """The outcome of one congestion event as seen by the sampler."""

    sample_max_bandwidth: int = 0
    sample_is_app_limited: bool = False
    sample_rtt: int = INF_RTT
    sample_max_inflight: int = 0
    last_packet_send_state: SendTimeState = field(default_factory=SendTimeState)
    extra_acked: int = 0


def _compare_extra_acked(a: ExtraAckedEvent, b: ExtraAckedEvent) -> int:
    if a.extra_acked > b.extra_acked:
        return 1
    if a.extra_acked < b.extra_acked:
        return -1
    return 0


class MaxAckHeightTracker:
    """Tracks ack aggregation: the most bytes acked faster than the estimated bandwidth."""

    def __init__(self, window_length: int) -> None:
        self._filter: WindowedFilter[ExtraAckedEvent] = WindowedFilter(
            window_length, _compare_extra_acked, ExtraAckedEvent()
        )
        self._aggregation_epoch_start_time: Optional[int] = None
        self._aggregation_epoch_bytes = 0
        self._last_sent_packet_number_before_epoch = INVALID_PACKET_NUMBER
        self._num_ack_aggregation_epochs = 0
        self.ack_aggregation_bandwidth_threshold = 1.0
        self.start_new_aggregation_epoch_after_full_round = False
        self.reduce_extra_acked_on_bandwidth_increase = False

    @property
    def num_ack_aggregation_epochs(self) -> int:
        """Aggregation epochs ever started, the current one included."""
        return self._num_ack_aggregation_epochs

    def get(self) -> int:
        """The current maximum ack height in bytes."""
        return self._filter.best().extra_acked

    def _start_epoch(self, bytes_acked: int, ack_time: int, last_sent_packet_number: int) -> int:
        self._aggregation_epoch_bytes = bytes_acked
        self._aggregation_epoch_start_time = ack_time
        self._last_sent_packet_number_before_epoch = last_sent_packet_number
        self._num_ack_aggregation_epochs += 1
        return 0

    def update(
        self,
        bandwidth_estimate: int,
        is_new_max_bandwidth: bool,
        round_trip_count: int,
        last_sent_packet_number: int,
        last_acked_packet_number: int,
        ack_time: int,
        bytes_acked: int,
    ) -> int:
        """Record an ack event; return the extra bytes acked, or 0 when a new epoch starts."""
        if self.reduce_extra_acked_on_bandwidth_increase and is_new_max_bandwidth:
            saved = (self._filter.best(), self._filter.second_best(), self._filter.third_best())
            self._filter.clear()
            for event in saved:
                expected = bytes_from_bandwidth_and_time_delta(bandwidth_estimate, event.time_delta)
                if expected < event.bytes_acked:
                    self._filter.update(
                        dataclasses.replace(event, extra_acked=event.bytes_acked - expected),
                        event.round,
                    )

        force_new_epoch = (
            self.start_new_aggregation_epoch_after_full_round
            and self._last_sent_packet_number_before_epoch != INVALID_PACKET_NUMBER
            and last_acked_packet_number != INVALID_PACKET_NUMBER
            and last_acked_packet_number > self._last_sent_packet_number_before_epoch
        )
        if self._aggregation_epoch_start_time is None or force_new_epoch:
            return self._start_epoch(bytes_acked, ack_time, last_sent_packet_number)

        aggregation_delta = ack_time - self._aggregation_epoch_start_time
        expected_bytes_acked = bytes_from_bandwidth_and_time_delta(bandwidth_estimate, aggregation_delta)
        # Start a new epoch once acks arrive no faster than the max bandwidth.
        if self._aggregation_epoch_bytes <= int(self.ack_aggregation_bandwidth_threshold * expected_bytes_acked):
            return self._start_epoch(bytes_acked, ack_time, last_sent_packet_number)

        self._aggregation_epoch_bytes += bytes_acked
        extra_bytes_acked = self._aggregation_epoch_bytes - expected_bytes_acked
        new_event = ExtraAckedEvent(
            extra_acked=expected_bytes_acked,
            bytes_acked=self._aggregation_epoch_bytes,
            time_delta=aggregation_delta,
        )
        self._filter.update(new_event, round_trip_count)
        return extra_bytes_acked

    def set_filter_window_length(self, length: int) -> None:
        self._filter.set_window_length(length)

    def reset(self, new_height: int, new_time: int) -> None:
        """Replace all tracked heights with ``new_height`` at round ``new_time``."""
        self._filter.reset(ExtraAckedEvent(extra_acked=new_height, round=new_time), new_time)


class RecentAckPoints:
    """The two most recent ack points at distinct times."""

    def __init__(self) -> None:
        self._points = [AckPoint(), AckPoint()]

    def update(self, ack_time: int, total_bytes_acked: int) -> None:
        latest = self._points[1]
        if _before(ack_time, latest.ack_time):
            latest = dataclasses.replace(latest, ack_time=ack_time)
        elif _after(ack_time, latest.ack_time):
            self._points[0] = latest
            latest = dataclasses.replace(latest, ack_time=ack_time)
        self._points[1] = dataclasses.replace(latest, total_bytes_acked=total_bytes_acked)

    def clear(self) -> None:
        self._points = [AckPoint(), AckPoint()]

    def most_recent_point(self) -> AckPoint:
        return self._points[1]

    def less_recent_point(self) -> AckPoint:
        """The older point if it has acked bytes, otherwise the most recent one."""
        if self._points[0].total_bytes_acked != 0:
            return self._points[0]
        return self._points[1]