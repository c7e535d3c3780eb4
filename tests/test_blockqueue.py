import threading
import time

import pytest

from emberweb.blockqueue import BlockDeque, QueueClosed


def test_default_capacity():
    assert BlockDeque().capacity() == 1000


def test_non_positive_capacity_rejected():
    with pytest.raises(ValueError):
        BlockDeque(0)


def test_push_back_pop_is_fifo():
    queue = BlockDeque(10)
    for item in ["a", "b", "c"]:
        queue.push_back(item)
    assert [queue.pop(), queue.pop(), queue.pop()] == ["a", "b", "c"]
    assert queue.empty()


def test_push_front_goes_to_front():
    queue = BlockDeque(10)
    queue.push_back("middle")
    queue.push_front("first")
    queue.push_back("last")
    assert queue.front() == "first"
    assert queue.back() == "last"
    assert len(queue) == 3


def test_full_and_clear():
    queue = BlockDeque(2)
    queue.push_back(1)
    assert not queue.full()
    queue.push_back(2)
    assert queue.full()
    queue.clear()
    assert queue.empty()


def test_front_of_empty_raises():
    with pytest.raises(IndexError):
        BlockDeque(3).front()


def test_pop_with_timeout_raises_when_empty():
    queue = BlockDeque(3)
    with pytest.raises(TimeoutError):
        queue.pop(timeout=0.05)


def test_pop_of_closed_empty_queue_raises():
    queue = BlockDeque(3)
    queue.push_back("dropped")
    queue.close()
    assert queue.empty()
    with pytest.raises(QueueClosed):
        queue.pop()


def test_close_wakes_blocked_consumer():
    queue = BlockDeque(3)
    outcome = []

    def consumer():
        try:
            queue.pop()
        except QueueClosed:
            outcome.append("closed")

    worker = threading.Thread(target=consumer)
    worker.start()
    time.sleep(0.05)
    queue.close()
    worker.join(timeout=2)
    assert outcome == ["closed"]
    assert len(queue) == 0
    with pytest.raises(QueueClosed):
        queue.pop()


def test_producer_blocks_until_space():
    queue = BlockDeque(1)
    queue.push_back("first")
    done = threading.Event()

    def producer():
        queue.push_back("second")
        done.set()

    worker = threading.Thread(target=producer)
    worker.start()
    assert not done.wait(0.05)
    assert queue.pop() == "first"
    assert done.wait(2)
    worker.join(timeout=2)
    assert queue.pop() == "second"


def test_consumer_receives_item_from_other_thread():
    queue = BlockDeque(5)
    received = []
    worker = threading.Thread(target=lambda: received.append(queue.pop(timeout=2)))
    worker.start()
    queue.push_back("message")
    worker.join(timeout=2)
    assert received == ["message"]
    assert queue.empty() is True
    assert len(queue) == 0