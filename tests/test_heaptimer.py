from unittest import mock

import pytest

from emberweb.heaptimer import HeapTimer

MS = 1_000_000


class FakeClock:
    def __init__(self):
        self.now = 0

    def __call__(self):
        return self.now

    def advance_ms(self, ms):
        self.now += ms * MS


@pytest.fixture
def clock():
    fake = FakeClock()
    with mock.patch("emberweb.heaptimer.time.monotonic_ns", fake):
        yield fake


def test_empty_timer_next_tick_is_minus_one(clock):
    timer = HeapTimer()
    assert timer.next_tick() == -1
    assert len(timer) == 0


def test_next_tick_reports_remaining_time(clock):
    timer = HeapTimer()
    timer.add(5, 100, lambda: None)
    assert timer.next_tick() == 100
    clock.advance_ms(40)
    assert timer.next_tick() == 60


def test_tick_fires_expired_in_deadline_order(clock):
    fired = []
    timer = HeapTimer()
    for timer_id, timeout in [(1, 300), (2, 100), (3, 200), (4, 500)]:
        timer.add(timer_id, timeout, lambda t=timer_id: fired.append(t))
    clock.advance_ms(300)
    timer.tick()
    assert fired == [2, 3, 1]
    assert 4 in timer
    assert 1 not in timer
    assert len(timer) == 1


def test_add_existing_id_replaces_deadline_and_callback(clock):
    fired = []
    timer = HeapTimer()
    timer.add(1, 100, lambda: fired.append("old"))
    timer.add(2, 200, lambda: fired.append("two"))
    timer.add(1, 300, lambda: fired.append("new"))
    assert len(timer) == 2
    clock.advance_ms(300)
    timer.tick()
    assert fired == ["two", "new"]


def test_adjust_extends_deadline(clock):
    fired = []
    timer = HeapTimer()
    timer.add(1, 100, lambda: fired.append(1))
    timer.add(2, 150, lambda: fired.append(2))
    timer.adjust(1, 400)
    clock.advance_ms(200)
    timer.tick()
    assert fired == [2]
    assert 1 in timer


def test_adjust_unknown_id_raises(clock):
    timer = HeapTimer()
    with pytest.raises(KeyError):
        timer.adjust(9, 100)


def test_do_work_fires_and_removes(clock):
    fired = []
    timer = HeapTimer()
    timer.add(7, 1000, lambda: fired.append(7))
    timer.add(8, 2000, lambda: fired.append(8))
    timer.do_work(7)
    timer.do_work(42)
    assert fired == [7]
    assert 7 not in timer
    assert 8 in timer


def test_pop_removes_earliest(clock):
    timer = HeapTimer()
    timer.add(1, 300, lambda: None)
    timer.add(2, 100, lambda: None)
    timer.pop()
    assert 2 not in timer
    assert 1 in timer


def test_pop_empty_raises(clock):
    with pytest.raises(IndexError):
        HeapTimer().pop()


def test_clear_removes_everything(clock):
    timer = HeapTimer()
    timer.add(1, 10, lambda: None)
    timer.add(2, 20, lambda: None)
    timer.clear()
    assert len(timer) == 0
    assert timer.next_tick() == -1


def test_negative_id_rejected(clock):
    with pytest.raises(ValueError):
        HeapTimer().add(-1, 10, lambda: None)


def test_many_timers_fire_sorted(clock):
    fired = []
    timer = HeapTimer()
    timeouts = [37, 5, 91, 12, 64, 3, 50, 28, 77, 19]
    for timer_id, timeout in enumerate(timeouts):
        timer.add(timer_id, timeout, lambda t=timeout: fired.append(t))
    clock.advance_ms(max(timeouts))
    timer.tick()
    assert fired == sorted(timeouts)