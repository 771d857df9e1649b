"""Windowed min/max filter tracking the best three estimates over a time window."""

from __future__ import annotations

from typing import Any, Callable, Generic, NamedTuple, TypeVar

V = TypeVar("V")


def max_filter(a: Any, b: Any) -> int:
    """Comparator that ranks larger values as better."""
    if a > b:
        return 1
    if a < b:
        return -1
    return 0


def min_filter(a: Any, b: Any) -> int:
    """Comparator that ranks smaller values as better."""
    if a < b:
        return 1
    if a > b:
        return -1
    return 0


class _Estimate(NamedTuple):
    sample: Any
    time: Any


class WindowedFilter(Generic[V]):
    """Tracks the best, second-best and third-best samples over a sliding window.

    The measurement time of the n-th best estimate is never earlier than that
    of the (n-1)-th best. ``comparator(a, b)`` returns a positive number when
    ``a`` is better than ``b``, zero when they are equal. ``zero`` is the value
    of an uninitialised estimate; the filter resets whenever its best equals it.
    """

    def __init__(self, window_length: Any, comparator: Callable[[V, V], int], zero: V = 0) -> None:  # type: ignore[assignment]
        self._window_length = window_length
        self._comparator = comparator
        self._zero = zero
        self._estimates = [_Estimate(zero, 0)] * 3

    def set_window_length(self, window_length: Any) -> None:
        """Change the window length without touching current estimates."""
        self._window_length = window_length

    def best(self) -> V:
        return self._estimates[0].sample

    def second_best(self) -> V:
        return self._estimates[1].sample

    def third_best(self) -> V:
        return self._estimates[2].sample

    def _fraction(self, divisor: int) -> Any:
        if isinstance(self._window_length, int):
            return self._window_length // divisor
        return self._window_length / divisor

    def update(self, sample: V, time: Any) -> None:
        """Add a sample, expiring and promoting estimates as needed."""
        estimates = self._estimates
        compare = self._comparator
        window = self._window_length
        if (
            compare(estimates[0].sample, self._zero) == 0
            or compare(sample, estimates[0].sample) >= 0
            or time - estimates[2].time > window
        ):
            self.reset(sample, time)
            return

        if compare(sample, estimates[1].sample) >= 0:
            estimates[1] = _Estimate(sample, time)
            estimates[2] = estimates[1]
        elif compare(sample, estimates[2].sample) >= 0:
            estimates[2] = _Estimate(sample, time)

        if time - estimates[0].time > window:
            # The best has not been refreshed for a whole window: promote.
            estimates[0] = estimates[1]
            estimates[1] = estimates[2]
            estimates[2] = _Estimate(sample, time)
            if time - estimates[0].time > window:
                estimates[0] = estimates[1]
                estimates[1] = estimates[2]
            return

        if compare(estimates[1].sample, estimates[0].sample) == 0 and time - estimates[1].time > self._fraction(4):
            # A quarter of the window passed without a better sample.
            estimates[1] = _Estimate(sample, time)
            estimates[2] = estimates[1]
            return

        if compare(estimates[2].sample, estimates[1].sample) == 0 and time - estimates[2].time > self._fraction(2):
            # Half of the window passed without a better third-best sample.
            estimates[2] = _Estimate(sample, time)

    def reset(self, sample: V, time: Any) -> None:
        """Set all three estimates to ``sample``."""
        self._estimates = [_Estimate(sample, time)] * 3

    def clear(self) -> None:
        """Forget all estimates."""
        self._estimates = [_Estimate(self._zero, 0)] * 3