import threading
from datetime import datetime, timedelta

import pytest

from hycore.utils import AtomicTime, path_mtu_discovery_disabled


def test_atomic_time_initial_value():
    start = datetime(2024, 1, 1)
    assert AtomicTime(start).get() == start


def test_atomic_time_set():
    start = datetime(2024, 1, 1)
    holder = AtomicTime(start)
    later = start + timedelta(seconds=5)
    holder.set(later)
    assert holder.get() == later


def test_atomic_time_concurrent_sets():
    base = datetime(2024, 1, 1)
    values = [base + timedelta(seconds=i) for i in range(20)]
    holder = AtomicTime(base)
    threads = [threading.Thread(target=holder.set, args=(value,)) for value in values]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert holder.get() in values


@pytest.mark.parametrize("platform", ["linux", "win32", "darwin"])
def test_pmtud_enabled_platforms(platform):
    assert path_mtu_discovery_disabled(platform) is False


@pytest.mark.parametrize("platform", ["freebsd13", "openbsd7", "sunos5"])
def test_pmtud_disabled_platforms(platform):
    assert path_mtu_discovery_disabled(platform) is True