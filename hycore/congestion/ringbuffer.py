"""A double-ended FIFO with indexed access, used by the congestion controllers."""

from __future__ import annotations

from collections import deque
from typing import Generic, Iterable, Iterator, TypeVar

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """A growable FIFO queue that also allows reading and replacing items by position."""

    def __init__(self, items: Iterable[T] = ()) -> None:
        self._items: deque[T] = deque(items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __repr__(self) -> str:
        return f"RingBuffer({list(self._items)!r})"

    def is_empty(self) -> bool:
        return not self._items

    def push_back(self, item: T) -> None:
        """Append an item at the back."""
        self._items.append(item)

    def pop_front(self) -> T:
        """Remove and return the item at the front."""
        if not self._items:
            raise IndexError("pop from an empty ring buffer")
        return self._items.popleft()

    def _check_index(self, index: int) -> None:
        if not self._items or index < 0 or index >= len(self._items):
            raise IndexError(f"offset {index} out of range for ring buffer of length {len(self._items)}")

    def offset(self, index: int) -> T:
        """Return the item ``index`` places behind the front."""
        self._check_index(index)
        return self._items[index]

    def set_offset(self, index: int, item: T) -> None:
        """Replace the item ``index`` places behind the front."""
        self._check_index(index)
        self._items[index] = item

    def front(self) -> T:
        if not self._items:
            raise IndexError("front of an empty ring buffer")
        return self._items[0]

    def back(self) -> T:
        if not self._items:
            raise IndexError("back of an empty ring buffer")
        return self._items[-1]

    def clear(self) -> None:
        """Remove all items."""
        self._items.clear()