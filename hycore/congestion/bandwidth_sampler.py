"""Per-packet bandwidth sampling for the BBR congestion controller.

Times are integer nanoseconds, with ``None`` standing for "never set".
Bandwidth is in bits per second, sizes are in bytes.
"""

from __future__ import annotations

from itertools import pairwise
from typing import Optional, Sequence

from hycore.congestion.bandwidth import INF_BANDWIDTH, bandwidth_from_delta
from hycore.congestion.common import AckedPacketInfo, LostPacketInfo
from hycore.congestion.packet_queue import INVALID_PACKET_NUMBER, PacketNumberIndexedQueue
from hycore.congestion.ringbuffer import RingBuffer
from hycore.congestion.sampler_state import (
    AckPoint,
    BandwidthSample,
    CongestionEventSample,
    ConnectionStateOnSentPacket,
    MaxAckHeightTracker,
    RecentAckPoints,
    SendTimeState,
)


class BandwidthSampler:
    """Produces a bandwidth sample for every acknowledged packet.

    A sample is the smaller of the send rate and the ack rate measured
    between the acknowledged packet and the packet acknowledged most
    recently before it was sent. Samples are not filtered. Once
    ``on_app_limited`` is called, packets sent until an ack arrives for a
    packet sent after that call produce app-limited samples.
    """

    def __init__(self, max_ack_height_tracker_window_length: int) -> None:
        self._max_ack_height_tracker = MaxAckHeightTracker(max_ack_height_tracker_window_length)
        self._connection_state_map: PacketNumberIndexedQueue[ConnectionStateOnSentPacket] = (
            PacketNumberIndexedQueue()
        )
        self._recent_ack_points = RecentAckPoints()
        self._a0_candidates: RingBuffer[AckPoint] = RingBuffer()

        self._total_bytes_sent = 0
        self._total_bytes_acked = 0
        self._total_bytes_lost = 0
        self._total_bytes_neutered = 0
        self._total_bytes_sent_at_last_acked_packet = 0
        self._last_acked_packet_sent_time: Optional[int] = None
        self._last_acked_packet_ack_time: Optional[int] = None
        self._last_sent_packet = INVALID_PACKET_NUMBER
        self._last_acked_packet = INVALID_PACKET_NUMBER
        self._is_app_limited = False
        self._end_of_app_limited_phase = INVALID_PACKET_NUMBER
        self._total_bytes_acked_after_last_ack_event = 0
        self._overestimate_avoidance = False
        self.limit_max_ack_height_tracker_by_send_rate = False

    @property
    def total_bytes_sent(self) -> int:
        return self._total_bytes_sent

    @property
    def total_bytes_acked(self) -> int:
        return self._total_bytes_acked

    @property
    def total_bytes_lost(self) -> int:
        return self._total_bytes_lost

    @property
    def total_bytes_neutered(self) -> int:
        return self._total_bytes_neutered

    @property
    def is_app_limited(self) -> bool:
        return self._is_app_limited

    @property
    def end_of_app_limited_phase(self) -> int:
        return self._end_of_app_limited_phase

    @property
    def overestimate_avoidance(self) -> bool:
        """Whether overestimate avoidance is enabled."""
        return self._overestimate_avoidance

    @property
    def start_new_aggregation_epoch_after_full_round(self) -> bool:
        return self._max_ack_height_tracker.start_new_aggregation_epoch_after_full_round

    @start_new_aggregation_epoch_after_full_round.setter
    def start_new_aggregation_epoch_after_full_round(self, value: bool) -> None:
        self._max_ack_height_tracker.start_new_aggregation_epoch_after_full_round = value

    @property
    def reduce_extra_acked_on_bandwidth_increase(self) -> bool:
        return self._max_ack_height_tracker.reduce_extra_acked_on_bandwidth_increase

    @reduce_extra_acked_on_bandwidth_increase.setter
    def reduce_extra_acked_on_bandwidth_increase(self, value: bool) -> None:
        self._max_ack_height_tracker.reduce_extra_acked_on_bandwidth_increase = value

    def max_ack_height(self) -> int:
        return self._max_ack_height_tracker.get()

    def num_ack_aggregation_epochs(self) -> int:
        return self._max_ack_height_tracker.num_ack_aggregation_epochs

    def set_max_ack_height_tracker_window_length(self, length: int) -> None:
        self._max_ack_height_tracker.set_filter_window_length(length)

    def reset_max_ack_height_tracker(self, new_height: int, new_time: int) -> None:
        self._max_ack_height_tracker.reset(new_height, new_time)

    def enable_overestimate_avoidance(self) -> None:
        if self._overestimate_avoidance:
            return
        self._overestimate_avoidance = True
        self._max_ack_height_tracker.ack_aggregation_bandwidth_threshold = 2.0

    def on_packet_sent(
        self,
        sent_time: int,
        packet_number: int,
        size: int,
        bytes_in_flight: int,
        is_retransmittable: bool,
    ) -> None:
        """Record a sent packet together with the current sampler state."""
        self._last_sent_packet = packet_number
        if not is_retransmittable:
            return

        self._total_bytes_sent += size

        # With nothing in flight, the moment this transmission starts serves as
        # the A_0 point; ack compression is not a concern, so the send rate is
        # effectively infinite.
        if bytes_in_flight == 0:
            self._last_acked_packet_ack_time = sent_time
            if self._overestimate_avoidance:
                self._recent_ack_points.clear()
                self._recent_ack_points.update(sent_time, self._total_bytes_acked)
                self._a0_candidates.clear()
                self._a0_candidates.push_back(self._recent_ack_points.most_recent_point())
            self._total_bytes_sent_at_last_acked_packet = self._total_bytes_sent
            self._last_acked_packet_sent_time = sent_time

        self._connection_state_map.emplace(
            packet_number,
            ConnectionStateOnSentPacket(
                sent_time=sent_time,
                size=size,
                total_bytes_sent_at_last_acked_packet=self._total_bytes_sent_at_last_acked_packet,
                last_acked_packet_sent_time=self._last_acked_packet_sent_time,
                last_acked_packet_ack_time=self._last_acked_packet_ack_time,
                send_time_state=SendTimeState(
                    is_valid=True,
                    is_app_limited=self._is_app_limited,
                    total_bytes_sent=self._total_bytes_sent,
                    total_bytes_acked=self._total_bytes_acked,
                    total_bytes_lost=self._total_bytes_lost,
                    bytes_in_flight=bytes_in_flight + size,
                ),
            ),
        )

    def on_congestion_event(
        self,
        ack_time: int,
        acked_packets: Sequence[AckedPacketInfo],
        lost_packets: Sequence[LostPacketInfo],
        max_bandwidth: int,
        est_bandwidth_upper_bound: int,
        round_trip_count: int,
    ) -> CongestionEventSample:
        """Process acked and lost packets of one event and summarise their samples."""
        event_sample = CongestionEventSample()

        last_lost_state = SendTimeState()
        for packet in lost_packets:
            state = self.on_packet_lost(packet.packet_number, packet.bytes_lost)
            if state.is_valid:
                last_lost_state = state

        if not acked_packets:
            event_sample.last_packet_send_state = last_lost_state
            return event_sample

        last_acked_state = SendTimeState()
        max_send_rate = 0
        for packet in acked_packets:
            sample = self._on_packet_acknowledged(ack_time, packet.packet_number)
            if not sample.state_at_send.is_valid:
                continue
            last_acked_state = sample.state_at_send

            if sample.rtt != 0:
                event_sample.sample_rtt = min(event_sample.sample_rtt, sample.rtt)
            if sample.bandwidth > event_sample.sample_max_bandwidth:
                event_sample.sample_max_bandwidth = sample.bandwidth
                event_sample.sample_is_app_limited = sample.state_at_send.is_app_limited
            if sample.send_rate != INF_BANDWIDTH:
                max_send_rate = max(max_send_rate, sample.send_rate)
            inflight_sample = self._total_bytes_acked - last_acked_state.total_bytes_acked
            if inflight_sample > event_sample.sample_max_inflight:
                event_sample.sample_max_inflight = inflight_sample

        if not last_lost_state.is_valid:
            event_sample.last_packet_send_state = last_acked_state
        elif not last_acked_state.is_valid:
            event_sample.last_packet_send_state = last_lost_state
        elif lost_packets[-1].packet_number > acked_packets[-1].packet_number:
            # A late loss alarm can declare a later packet lost after an
            # earlier one was acked.
            event_sample.last_packet_send_state = last_lost_state
        else:
            event_sample.last_packet_send_state = last_acked_state

        is_new_max_bandwidth = event_sample.sample_max_bandwidth > max_bandwidth
        max_bandwidth = max(max_bandwidth, event_sample.sample_max_bandwidth)
        if self.limit_max_ack_height_tracker_by_send_rate:
            max_bandwidth = max(max_bandwidth, max_send_rate)

        event_sample.extra_acked = self._on_ack_event_end(
            min(est_bandwidth_upper_bound, max_bandwidth), is_new_max_bandwidth, round_trip_count
        )
        return event_sample

    def on_packet_lost(self, packet_number: int, bytes_lost: int) -> SendTimeState:
        """Account a lost packet; return its send-time state, invalid if unknown."""
        self._total_bytes_lost += bytes_lost
        sent_packet = self._connection_state_map.get_entry(packet_number)
        if sent_packet is None:
            return SendTimeState()
        return sent_packet.to_send_time_state()

    def on_packet_neutered(self, packet_number: int) -> None:
        """Forget a packet that will be neither acked nor lost."""

        def account(sent_packet: ConnectionStateOnSentPacket) -> None:
            self._total_bytes_neutered += sent_packet.size

        self._connection_state_map.remove(packet_number, account)

    def on_app_limited(self) -> None:
        """Enter the app-limited phase, ending with the last packet sent."""
        self._is_app_limited = True
        self._end_of_app_limited_phase = self._last_sent_packet

    def remove_obsolete_packets(self, least_unacked: int) -> None:
        """Drop records of packets numbered below ``least_unacked``."""
        self._connection_state_map.remove_up_to(least_unacked)

    def _choose_a0_point(self, total_bytes_acked: int) -> Optional[AckPoint]:
        candidates = self._a0_candidates
        if candidates.is_empty():
            return None
        if len(candidates) == 1:
            return candidates.front()

        for index, (previous, point) in enumerate(pairwise(candidates)):
            if point.total_bytes_acked > total_bytes_acked:
                for _ in range(index):
                    candidates.pop_front()
                return previous

        chosen = candidates.back()
        popped = 0
        while popped < len(candidates) - 1:
            candidates.pop_front()
            popped += 1
        return chosen

    def _on_packet_acknowledged(self, ack_time: int, packet_number: int) -> BandwidthSample:
        sample = BandwidthSample()
        self._last_acked_packet = packet_number
        sent_packet = self._connection_state_map.get_entry(packet_number)
        if sent_packet is None:
            return sample

        self._total_bytes_acked += sent_packet.size
        self._total_bytes_sent_at_last_acked_packet = sent_packet.send_time_state.total_bytes_sent
        self._last_acked_packet_sent_time = sent_packet.sent_time
        self._last_acked_packet_ack_time = ack_time
        if self._overestimate_avoidance:
            self._recent_ack_points.update(ack_time, self._total_bytes_acked)

        if self._is_app_limited and (
            self._end_of_app_limited_phase == INVALID_PACKET_NUMBER
            or packet_number > self._end_of_app_limited_phase
        ):
            self._is_app_limited = False

        # Nothing had been acknowledged when this packet was sent: no sample.
        if sent_packet.last_acked_packet_sent_time is None:
            return sample

        send_rate = INF_BANDWIDTH
        if sent_packet.sent_time > sent_packet.last_acked_packet_sent_time:
            send_rate = bandwidth_from_delta(
                sent_packet.send_time_state.total_bytes_sent - sent_packet.total_bytes_sent_at_last_acked_packet,
                sent_packet.sent_time - sent_packet.last_acked_packet_sent_time,
            )

        a0: Optional[AckPoint] = None
        if self._overestimate_avoidance:
            a0 = self._choose_a0_point(sent_packet.send_time_state.total_bytes_acked)
        if a0 is None:
            a0 = AckPoint(
                ack_time=sent_packet.last_acked_packet_ack_time,
                total_bytes_acked=sent_packet.send_time_state.total_bytes_acked,
            )

        # The ack time must be later than A_0 to avoid division by zero.
        if a0.ack_time is None or ack_time - a0.ack_time <= 0:
            return sample

        ack_rate = bandwidth_from_delta(self._total_bytes_acked - a0.total_bytes_acked, ack_time - a0.ack_time)

        sample.bandwidth = min(send_rate, ack_rate)
        # Delayed acknowledgement time is not accounted for in this RTT.
        sample.rtt = ack_time - sent_packet.sent_time
        sample.send_rate = send_rate
        sample.state_at_send = sent_packet.to_send_time_state()
        return sample

    def _on_ack_event_end(self, bandwidth_estimate: int, is_new_max_bandwidth: bool, round_trip_count: int) -> int:
        newly_acked_bytes = self._total_bytes_acked - self._total_bytes_acked_after_last_ack_event
        if newly_acked_bytes == 0:
            return 0
        self._total_bytes_acked_after_last_ack_event = self._total_bytes_acked
        extra_acked = self._max_ack_height_tracker.update(
            bandwidth_estimate,
            is_new_max_bandwidth,
            round_trip_count,
            self._last_sent_packet,
            self._last_acked_packet,
            self._last_acked_packet_ack_time if self._last_acked_packet_ack_time is not None else 0,
            newly_acked_bytes,
        )
        # A new aggregation epoch started: the last ack point of the previous
        # epoch becomes an A_0 candidate.
        if self._overestimate_avoidance and extra_acked == 0:
            self._a0_candidates.push_back(self._recent_ack_points.less_recent_point())
        return extra_acked