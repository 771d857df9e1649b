import pytest

from hycore.congestion.bandwidth import INF_BANDWIDTH, bandwidth_from_delta
from hycore.congestion.bandwidth_sampler import BandwidthSampler
from hycore.congestion.common import AckedPacketInfo, LostPacketInfo
from hycore.congestion.sampler_state import INF_RTT

MS = 1_000_000
SIZE = 1000
DELAY = 10


@pytest.fixture
def sampler():
    return BandwidthSampler(10)


def _ack(sampler, time, packet_number, max_bandwidth=0):
    return sampler.on_congestion_event(
        time, [AckedPacketInfo(packet_number, SIZE)], [], max_bandwidth, INF_BANDWIDTH, 1
    )


def _run_steady(sampler, steps=40):
    """Send one packet per millisecond; each is acked DELAY ms later."""
    samples = {}
    in_flight = 0
    for t in range(1, steps + 1):
        if t > DELAY:
            samples[t - DELAY] = _ack(sampler, t * MS, t - DELAY)
            in_flight -= SIZE
        sampler.on_packet_sent(t * MS, t, SIZE, in_flight, True)
        in_flight += SIZE
    return samples


def test_steady_state_bandwidth_and_rtt(sampler):
    samples = _run_steady(sampler)
    expected = bandwidth_from_delta(SIZE, MS)
    for packet_number in range(21, 31):
        event = samples[packet_number]
        assert event.sample_max_bandwidth == expected
        assert event.sample_rtt == DELAY * MS
        assert event.last_packet_send_state.is_valid
        assert not event.sample_is_app_limited


def test_totals_track_sent_and_acked(sampler):
    samples = _run_steady(sampler, steps=20)
    assert sampler.total_bytes_sent == 20 * SIZE
    assert sampler.total_bytes_acked == len(samples) * SIZE
    assert sampler.total_bytes_lost == 0


def test_non_retransmittable_packets_are_not_counted(sampler):
    sampler.on_packet_sent(MS, 1, SIZE, 0, False)
    assert sampler.total_bytes_sent == 0
    event = _ack(sampler, 5 * MS, 1)
    assert not event.last_packet_send_state.is_valid
    assert sampler.total_bytes_acked == 0


def test_loss_only_event(sampler):
    sampler.on_packet_sent(MS, 1, SIZE, 0, True)
    sampler.on_packet_sent(2 * MS, 2, SIZE, SIZE, True)
    event = sampler.on_congestion_event(5 * MS, [], [LostPacketInfo(2, SIZE)], 0, INF_BANDWIDTH, 1)
    assert event.last_packet_send_state.is_valid
    assert event.last_packet_send_state.total_bytes_sent == 2 * SIZE
    assert event.sample_max_bandwidth == 0
    assert event.sample_rtt == INF_RTT
    assert sampler.total_bytes_lost == SIZE


def test_on_packet_lost_unknown_packet(sampler):
    state = sampler.on_packet_lost(42, 500)
    assert not state.is_valid
    assert sampler.total_bytes_lost == 500


def test_later_lost_packet_wins_last_send_state(sampler):
    sampler.on_packet_sent(MS, 1, SIZE, 0, True)
    sampler.on_packet_sent(2 * MS, 2, SIZE, SIZE, True)
    event = sampler.on_congestion_event(
        10 * MS, [AckedPacketInfo(1, SIZE)], [LostPacketInfo(2, SIZE)], 0, INF_BANDWIDTH, 1
    )
    assert event.last_packet_send_state.total_bytes_sent == 2 * SIZE


def test_neutered_packet_is_forgotten(sampler):
    sampler.on_packet_sent(MS, 1, SIZE, 0, True)
    sampler.on_packet_neutered(1)
    assert sampler.total_bytes_neutered == SIZE
    event = _ack(sampler, 5 * MS, 1)
    assert not event.last_packet_send_state.is_valid
    assert sampler.total_bytes_acked == 0


def test_remove_obsolete_packets(sampler):
    for number in range(1, 6):
        sampler.on_packet_sent(number * MS, number, SIZE, (number - 1) * SIZE, True)
    sampler.remove_obsolete_packets(4)
    assert not _ack(sampler, 20 * MS, 2).last_packet_send_state.is_valid
    assert _ack(sampler, 21 * MS, 4).last_packet_send_state.is_valid


def test_app_limited_phase(sampler):
    sampler.on_packet_sent(MS, 1, SIZE, 0, True)
    sampler.on_app_limited()
    assert sampler.is_app_limited
    assert sampler.end_of_app_limited_phase == 1
    sampler.on_packet_sent(2 * MS, 2, SIZE, SIZE, True)
    _ack(sampler, 10 * MS, 1)
    assert sampler.is_app_limited
    event = _ack(sampler, 11 * MS, 2)
    assert not sampler.is_app_limited
    assert event.last_packet_send_state.is_app_limited


def test_max_ack_height_tracker_reset(sampler):
    sampler.set_max_ack_height_tracker_window_length(3)
    sampler.reset_max_ack_height_tracker(500, 2)
    assert sampler.max_ack_height() == 500


def test_aggregation_epochs_with_zero_bandwidth(sampler):
    for number in range(1, 4):
        sampler.on_packet_sent(number * MS, number, SIZE, (number - 1) * SIZE, True)
    first = _ack(sampler, 10 * MS, 1)
    second = _ack(sampler, 11 * MS, 2)
    assert first.extra_acked == 0
    assert second.extra_acked > 0
    assert sampler.num_ack_aggregation_epochs() == 1


def test_overestimate_avoidance(sampler):
    assert not sampler.overestimate_avoidance
    sampler.enable_overestimate_avoidance()
    sampler.enable_overestimate_avoidance()
    assert sampler.overestimate_avoidance
    samples = _run_steady(sampler)
    expected = bandwidth_from_delta(SIZE, MS)
    for packet_number in range(21, 31):
        bandwidth = samples[packet_number].sample_max_bandwidth
        assert 0 < bandwidth <= expected


def test_sample_max_inflight_is_bounded_by_acked(sampler):
    samples = _run_steady(sampler, steps=30)
    for event in samples.values():
        assert 0 <= event.sample_max_inflight <= sampler.total_bytes_acked