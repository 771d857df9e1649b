"""A queue of mostly consecutive packet-numbered entries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from hycore.congestion.ringbuffer import RingBuffer

T = TypeVar("T")

INVALID_PACKET_NUMBER = -1


@dataclass
class _Slot(Generic[T]):
    present: bool = False
    entry: Optional[T] = None


class PacketNumberIndexedQueue(Generic[T]):
    """Entries keyed by packet number, stored as a deque starting at the lowest present number.

    Entries may be added at or past the end, removed in any order and looked
    up by number. When they are inserted in order every operation is amortised
    O(1). Removing an entry marks it absent; absent entries at the front are
    dropped. A large gap between two inserted numbers allocates a slot for
    every number in between, so this is not a general-purpose container.
    """

    def __init__(self) -> None:
        self._entries: RingBuffer[_Slot[T]] = RingBuffer()
        self._number_of_present_entries = 0
        self._first_packet = INVALID_PACKET_NUMBER

    def emplace(self, packet_number: int, entry: T) -> bool:
        """Insert ``entry`` at ``packet_number``, filling any gap with absent slots.

        Returns False if the number is invalid, the entry is None, or the
        number is not past the last one inserted.
        """
        if packet_number == INVALID_PACKET_NUMBER or entry is None:
            return False

        if self.is_empty():
            self._entries.push_back(_Slot(True, entry))
            self._number_of_present_entries = 1
            self._first_packet = packet_number
            return True

        if packet_number <= self.last_packet():
            return False

        gap = packet_number - self._first_packet - len(self._entries)
        for _ in range(gap):
            self._entries.push_back(_Slot())

        self._entries.push_back(_Slot(True, entry))
        self._number_of_present_entries += 1
        return True

    def get_entry(self, packet_number: int) -> Optional[T]:
        """Return the entry stored at ``packet_number``, or None if there is none."""
        slot = self._slot(packet_number)
        return None if slot is None else slot.entry

    def remove(self, packet_number: int, callback: Optional[Callable[[T], None]] = None) -> bool:
        """Remove the entry at ``packet_number``, passing it to ``callback`` first.

        Returns False if no entry is present at that number.
        """
        slot = self._slot(packet_number)
        if slot is None:
            return False
        if callback is not None:
            callback(slot.entry)  # type: ignore[arg-type]
        slot.present = False
        slot.entry = None
        self._number_of_present_entries -= 1

        if packet_number == self._first_packet:
            self._clear_up()
        return True

    def remove_up_to(self, packet_number: int) -> None:
        """Remove every entry below ``packet_number``, then any absent slots at the front."""
        while (
            not self._entries.is_empty()
            and self._first_packet != INVALID_PACKET_NUMBER
            and self._first_packet < packet_number
        ):
            if self._entries.front().present:
                self._number_of_present_entries -= 1
            self._entries.pop_front()
            self._first_packet += 1
        self._clear_up()

    def is_empty(self) -> bool:
        return self._number_of_present_entries == 0

    def number_of_present_entries(self) -> int:
        return self._number_of_present_entries

    def entry_slots_used(self) -> int:
        """Number of slots held, present or not; proportional to memory use."""
        return len(self._entries)

    def first_packet(self) -> int:
        """Packet number of the first slot, or -1 when the queue holds none."""
        return self._first_packet

    def last_packet(self) -> int:
        """Packet number of the last entry inserted, or -1 when the queue is empty."""
        if self.is_empty():
            return INVALID_PACKET_NUMBER
        return self._first_packet + len(self._entries) - 1

    def _clear_up(self) -> None:
        while not self._entries.is_empty() and not self._entries.front().present:
            self._entries.pop_front()
            self._first_packet += 1
        if self._entries.is_empty():
            self._first_packet = INVALID_PACKET_NUMBER

    def _slot(self, packet_number: int) -> Optional[_Slot[T]]:
        if (
            packet_number == INVALID_PACKET_NUMBER
            or self.is_empty()
            or packet_number < self._first_packet
        ):
            return None
        offset = packet_number - self._first_packet
        if offset >= len(self._entries):
            return None
        slot = self._entries.offset(offset)
        if not slot.present:
            return None
        return slot