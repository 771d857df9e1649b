import pytest

from hycore.congestion.ringbuffer import RingBuffer


def test_fifo_order_survives_growth():
    buffer = RingBuffer()
    for item in range(100):
        buffer.push_back(item)
    assert len(buffer) == 100
    assert [buffer.pop_front() for _ in range(100)] == list(range(100))
    assert buffer.is_empty()


def test_interleaved_push_and_pop():
    buffer = RingBuffer()
    buffer.push_back("a")
    buffer.push_back("b")
    assert buffer.pop_front() == "a"
    buffer.push_back("c")
    assert list(buffer) == ["b", "c"]
    assert buffer.front() == "b"
    assert buffer.back() == "c"


def test_offset_and_set_offset():
    buffer = RingBuffer([10, 20, 30])
    assert buffer.offset(0) == 10
    assert buffer.offset(2) == 30
    buffer.set_offset(1, 99)
    assert list(buffer) == [10, 99, 30]


def test_offset_out_of_range_raises():
    buffer = RingBuffer([1, 2])
    with pytest.raises(IndexError):
        buffer.offset(2)
    with pytest.raises(IndexError):
        buffer.offset(-1)
    with pytest.raises(IndexError):
        buffer.set_offset(5, 0)


def test_empty_buffer_operations_raise():
    buffer = RingBuffer()
    with pytest.raises(IndexError):
        buffer.pop_front()
    with pytest.raises(IndexError):
        buffer.front()
    with pytest.raises(IndexError):
        buffer.back()
    with pytest.raises(IndexError):
        buffer.offset(0)


def test_clear_empties_and_allows_reuse():
    buffer = RingBuffer([1, 2, 3])
    buffer.clear()
    assert buffer.is_empty()
    assert len(buffer) == 0
    buffer.push_back(7)
    assert buffer.front() == 7
    assert buffer.back() == 7