"""Min-heap of timers keyed by id, each firing a callback on expiry."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, List

TimeoutCallback = Callable[[], None]

_NS_PER_MS = 1_000_000


@dataclass
class _TimerNode:
    timer_id: int
    expires: int
    callback: TimeoutCallback


def _deadline(timeout_ms: int) -> int:
    return time.monotonic_ns() + timeout_ms * _NS_PER_MS


class HeapTimer:
    """Timers ordered by expiry time, with lookup of each timer by id."""

    def __init__(self) -> None:
        self._heap: List[_TimerNode] = []
        self._ref: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._heap)

    def __contains__(self, timer_id: object) -> bool:
        return timer_id in self._ref

    def add(self, timer_id: int, timeout_ms: int, callback: TimeoutCallback) -> None:
        """Add a timer, or reset the deadline and callback of an existing one."""
        if timer_id < 0:
            raise ValueError("timer id must not be negative")
        if timer_id not in self._ref:
            index = len(self._heap)
            self._ref[timer_id] = index
            self._heap.append(_TimerNode(timer_id, _deadline(timeout_ms), callback))
            self._sift_up(index)
        else:
            index = self._ref[timer_id]
            node = self._heap[index]
            node.expires = _deadline(timeout_ms)
            node.callback = callback
            if not self._sift_down(index, len(self._heap)):
                self._sift_up(index)

    def adjust(self, timer_id: int, timeout_ms: int) -> None:
        """Move the deadline of an existing timer to ``timeout_ms`` from now."""
        if timer_id not in self._ref:
            raise KeyError(timer_id)
        index = self._ref[timer_id]
        self._heap[index].expires = _deadline(timeout_ms)
        if not self._sift_down(index, len(self._heap)):
            self._sift_up(index)

    def do_work(self, timer_id: int) -> None:
        """Run the timer's callback now and remove it; unknown ids are ignored."""
        if timer_id not in self._ref:
            return
        node = self._heap[self._ref[timer_id]]
        node.callback()
        if timer_id in self._ref:
            self._delete(self._ref[timer_id])

    def clear(self) -> None:
        self._ref.clear()
        self._heap.clear()

    def tick(self) -> None:
        """Fire and remove every timer whose deadline has passed."""
        while self._heap:
            node = self._heap[0]
            if (node.expires - time.monotonic_ns()) // _NS_PER_MS > 0:
                break
            node.callback()
            if node.timer_id in self._ref:
                self._delete(self._ref[node.timer_id])

    def pop(self) -> None:
        """Remove the timer that expires first."""
        if not self._heap:
            raise IndexError("pop from an empty timer heap")
        self._delete(0)

    def next_tick(self) -> int:
        """Expire due timers, then return milliseconds to the next deadline or -1."""
        self.tick()
        if not self._heap:
            return -1
        remaining = (self._heap[0].expires - time.monotonic_ns()) // _NS_PER_MS
        return max(remaining, 0)

    def _swap(self, i: int, j: int) -> None:
        heap = self._heap
        heap[i], heap[j] = heap[j], heap[i]
        self._ref[heap[i].timer_id] = i
        self._ref[heap[j].timer_id] = j

    def _sift_up(self, index: int) -> None:
        while index > 0:
            parent = (index - 1) // 2
            if self._heap[parent].expires < self._heap[index].expires:
                break
            self._swap(index, parent)
            index = parent

    def _sift_down(self, index: int, n: int) -> bool:
        i = index
        child = i * 2 + 1
        while child < n:
            if child + 1 < n and self._heap[child + 1].expires < self._heap[child].expires:
                child += 1
            if self._heap[i].expires < self._heap[child].expires:
                break
            self._swap(i, child)
            i = child
            child = i * 2 + 1
        return i > index

    def _delete(self, index: int) -> None:
        last = len(self._heap) - 1
        if index < last:
            self._swap(index, last)
            if not self._sift_down(index, last):
                self._sift_up(index)
        node = self._heap.pop()
        del self._ref[node.timer_id]