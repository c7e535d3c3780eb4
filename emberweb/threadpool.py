"""Fixed-size pool of worker threads fed from a shared task queue."""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable, Deque, List

Task = Callable[[], None]

_logger = logging.getLogger(__name__)


class ThreadPool:
    """Runs submitted callables on a fixed number of daemon threads.

    Closing the pool lets workers finish every queued task before they exit.
    """

    def __init__(self, thread_count: int = 8) -> None:
        if thread_count <= 0:
            raise ValueError("thread count must be positive")
        self._tasks: Deque[Task] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self._threads: List[threading.Thread] = []
        for index in range(thread_count):
            thread = threading.Thread(
                target=self._worker, name=f"pool-worker-{index}", daemon=True
            )
            thread.start()
            self._threads.append(thread)

    def add_task(self, task: Task) -> None:
        with self._cond:
            if self._closed:
                raise RuntimeError("thread pool is closed")
            self._tasks.append(task)
            self._cond.notify()

    def close(self) -> None:
        """Stop accepting tasks and wait for workers to drain the queue."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
        current = threading.current_thread()
        for thread in self._threads:
            if thread is not current:
                thread.join()

    def __enter__(self) -> "ThreadPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _worker(self) -> None:
        while True:
            with self._cond:
                while not self._tasks and not self._closed:
                    self._cond.wait()
                if not self._tasks:
                    return
                task = self._tasks.popleft()
            try:
                task()
            except Exception:
                _logger.exception("task raised an exception")