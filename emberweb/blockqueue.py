"""Bounded, thread-safe double-ended queue with blocking producers and consumers."""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Generic, Optional, TypeVar

T = TypeVar("T")


class QueueClosed(Exception):
    """Raised by a consumer waiting on a queue that has been closed."""


class BlockDeque(Generic[T]):
    """A deque that blocks producers when full and consumers when empty."""

    def __init__(self, capacity: int = 1000) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._deque: Deque[T] = deque()
        self._capacity = capacity
        self._lock = threading.Lock()
        self._consumer = threading.Condition(self._lock)
        self._producer = threading.Condition(self._lock)
        self._closed = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._deque)

    def capacity(self) -> int:
        return self._capacity

    def clear(self) -> None:
        with self._lock:
            self._deque.clear()

    def empty(self) -> bool:
        with self._lock:
            return not self._deque

    def full(self) -> bool:
        with self._lock:
            return len(self._deque) >= self._capacity

    def close(self) -> None:
        """Drop all items and wake every waiting producer and consumer."""
        with self._lock:
            self._deque.clear()
            self._closed = True
            self._producer.notify_all()
            self._consumer.notify_all()

    def front(self) -> T:
        with self._lock:
            return self._deque[0]

    def back(self) -> T:
        with self._lock:
            return self._deque[-1]

    def push_back(self, item: T) -> None:
        with self._lock:
            while len(self._deque) >= self._capacity:
                self._producer.wait()
            self._deque.append(item)
            self._consumer.notify()

    def push_front(self, item: T) -> None:
        with self._lock:
            while len(self._deque) >= self._capacity:
                self._producer.wait()
            self._deque.appendleft(item)
            self._consumer.notify()

    def pop(self, timeout: Optional[float] = None) -> T:
        """Remove and return the front item, waiting while the queue is empty.

        Raises ``QueueClosed`` if the queue is closed while empty and
        ``TimeoutError`` if ``timeout`` seconds pass without an item.
        """
        with self._lock:
            while not self._deque:
                if self._closed:
                    raise QueueClosed("queue is closed")
                if not self._consumer.wait(timeout):
                    raise TimeoutError("no item arrived before the timeout")
            item = self._deque.popleft()
            self._producer.notify()
            return item

    def flush(self) -> None:
        """Wake one waiting consumer."""
        with self._lock:
            self._consumer.notify()