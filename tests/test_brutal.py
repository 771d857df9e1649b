import pytest

from hycore.congestion.brutal import (
    DEBUG_ENV,
    MIN_ACK_RATE,
    NO_RTT_CONGESTION_WINDOW,
    BrutalSender,
)
from hycore.congestion.common import INITIAL_PACKET_SIZE_IPV4, AckedPacketInfo, LostPacketInfo

SECOND = 1_000_000_000


class FakeRTT:
    def __init__(self, rtt):
        self.rtt = rtt

    def min_rtt(self):
        return self.rtt

    def smoothed_rtt(self):
        return self.rtt


def make_sender(bps=1_000_000, rtt=SECOND):
    sender = BrutalSender(bps)
    sender.set_rtt_stats_provider(FakeRTT(rtt))
    return sender


def event(sender, when, acked, lost):
    sender.on_congestion_event_ex(
        0,
        when,
        [AckedPacketInfo(i, 1000) for i in range(acked)],
        [LostPacketInfo(1000 + i, 1000) for i in range(lost)],
    )


def test_window_without_rtt():
    assert make_sender(rtt=0).get_congestion_window() == NO_RTT_CONGESTION_WINDOW


def test_window_without_provider_raises():
    with pytest.raises(RuntimeError):
        BrutalSender(1000).get_congestion_window()


def test_window_floor_is_max_datagram_size():
    sender = make_sender(bps=1)
    assert sender.get_congestion_window() == INITIAL_PACKET_SIZE_IPV4
    sender.set_max_datagram_size(1400)
    assert sender.get_congestion_window() == 1400


def test_can_send_boundary():
    sender = make_sender()
    cwnd = sender.get_congestion_window()
    assert sender.can_send(cwnd)
    assert not sender.can_send(cwnd + 1)


def test_never_slow_start_or_recovery():
    sender = make_sender()
    assert sender.in_slow_start() is False
    assert sender.in_recovery() is False


def test_few_samples_keep_full_rate():
    sender = make_sender()
    before = sender.get_congestion_window()
    event(sender, 100 * SECOND, acked=10, lost=30)
    assert sender.ack_rate == 1.0
    assert sender.get_congestion_window() == before


def test_heavy_loss_is_clamped():
    sender = make_sender()
    before = sender.get_congestion_window()
    event(sender, 100 * SECOND, acked=30, lost=20)
    assert sender.ack_rate == MIN_ACK_RATE
    assert sender.get_congestion_window() * 4 == before * 5


def test_moderate_loss_sets_ack_rate():
    sender = make_sender()
    before = sender.get_congestion_window()
    event(sender, 100 * SECOND, acked=45, lost=5)
    assert sender.ack_rate == pytest.approx(45 / 50)
    after = sender.get_congestion_window()
    assert before < after < before * 5 // 4


def test_events_within_same_second_accumulate():
    sender = make_sender()
    event(sender, 100 * SECOND, acked=20, lost=10)
    assert sender.ack_rate == 1.0
    event(sender, 100 * SECOND + 1, acked=10, lost=10)
    assert sender.ack_rate == MIN_ACK_RATE


def test_old_slots_expire():
    sender = make_sender()
    event(sender, 100 * SECOND, acked=30, lost=20)
    assert sender.ack_rate == MIN_ACK_RATE
    event(sender, 106 * SECOND, acked=1, lost=0)
    assert sender.ack_rate == 1.0


def test_pacing_budget():
    sender = make_sender(bps=1000)
    now = 50 * SECOND
    assert sender.has_pacing_budget(now)
    assert sender.time_until_send(0) is None
    sender.on_packet_sent(now, 0, 1, 100 * INITIAL_PACKET_SIZE_IPV4, True)
    assert not sender.has_pacing_budget(now)
    next_send = sender.time_until_send(0)
    assert next_send is not None and next_send > now
    assert sender.has_pacing_budget(next_send)


def test_debug_output(monkeypatch, capsys):
    monkeypatch.setenv(DEBUG_ENV, "true")
    sender = make_sender()
    sender.set_max_datagram_size(1300)
    out = capsys.readouterr().out
    assert "[BrutalSender]" in out
    assert "SetMaxDatagramSize: 1300" in out


def test_no_debug_output_by_default(monkeypatch, capsys):
    monkeypatch.delenv(DEBUG_ENV, raising=False)
    sender = make_sender()
    sender.set_max_datagram_size(1300)
    event(sender, 100 * SECOND, acked=30, lost=20)
    assert capsys.readouterr().out == ""