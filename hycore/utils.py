"""Small shared helpers: a thread-safe time holder and platform checks."""

from __future__ import annotations

import sys
import threading
from datetime import datetime

_PMTUD_PLATFORMS = ("linux", "win32", "darwin")


class AtomicTime:
    """A datetime value that can be read and replaced safely across threads."""

    def __init__(self, value: datetime) -> None:
        self._lock = threading.Lock()
        self._value = value

    def set(self, value: datetime) -> None:
        with self._lock:
            self._value = value

    def get(self) -> datetime:
        with self._lock:
            return self._value


def path_mtu_discovery_disabled(platform: str | None = None) -> bool:
    """Whether path MTU discovery should be disabled on ``platform``.

    Probe packets are only kept unfragmented on Linux, Windows and macOS,
    so discovery stays enabled there alone.
    """
    name = sys.platform if platform is None else platform
    return not name.startswith(_PMTUD_PLATFORMS)


DISABLE_PATH_MTU_DISCOVERY = path_mtu_discovery_disabled()