import time

import pytest

from hycore.congestion.bandwidth import (
    BYTES_PER_SECOND,
    NANOS_PER_SECOND,
    DefaultClock,
    bandwidth_from_delta,
)


def test_one_second_gives_bits_per_second():
    assert bandwidth_from_delta(1000, NANOS_PER_SECOND) == 8000


@pytest.mark.parametrize("num_bytes", [0, 1, 1252, 10**6])
def test_bytes_per_second_scaling(num_bytes):
    assert bandwidth_from_delta(num_bytes, NANOS_PER_SECOND) == num_bytes * BYTES_PER_SECOND


def test_longer_delta_gives_lower_bandwidth():
    assert bandwidth_from_delta(5000, 2 * NANOS_PER_SECOND) < bandwidth_from_delta(5000, NANOS_PER_SECOND)


def test_truncates_before_scaling():
    assert bandwidth_from_delta(1, 3 * NANOS_PER_SECOND) == 0


@pytest.mark.parametrize("delta", [0, -1])
def test_non_positive_delta_raises(delta):
    with pytest.raises(ValueError):
        bandwidth_from_delta(100, delta)


def test_default_clock_tracks_wall_clock():
    before = time.time_ns()
    now = DefaultClock().now()
    after = time.time_ns()
    assert before <= now <= after