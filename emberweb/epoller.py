"""Thin wrapper around epoll for the server's event loop."""

from __future__ import annotations

import select
from typing import List, Tuple

EPOLLIN = select.EPOLLIN
EPOLLOUT = select.EPOLLOUT
EPOLLERR = select.EPOLLERR
EPOLLHUP = select.EPOLLHUP
EPOLLRDHUP = select.EPOLLRDHUP
EPOLLET = select.EPOLLET
EPOLLONESHOT = select.EPOLLONESHOT

Event = Tuple[int, int]


class Epoller:
    """Registers file descriptors and waits for at most ``max_event`` events at a time."""

    def __init__(self, max_event: int = 1024) -> None:
        if max_event <= 0:
            raise ValueError("max_event must be positive")
        self._epoll = select.epoll(512)
        self._max_event = max_event

    def add_fd(self, fd: int, events: int) -> bool:
        if fd < 0:
            return False
        try:
            self._epoll.register(fd, events)
        except OSError:
            return False
        return True

    def mod_fd(self, fd: int, events: int) -> bool:
        if fd < 0:
            return False
        try:
            self._epoll.modify(fd, events)
        except OSError:
            return False
        return True

    def del_fd(self, fd: int) -> bool:
        if fd < 0:
            return False
        try:
            self._epoll.unregister(fd)
        except OSError:
            return False
        return True

    def wait(self, timeout_ms: int = -1) -> List[Event]:
        """Return ``(fd, events)`` pairs; a negative timeout waits forever."""
        timeout = -1 if timeout_ms < 0 else timeout_ms / 1000
        return self._epoll.poll(timeout, self._max_event)

    def close(self) -> None:
        self._epoll.close()

    def __enter__(self) -> "Epoller":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()