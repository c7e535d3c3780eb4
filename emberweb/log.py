"""Leveled logging to dated files, optionally written by a background thread."""

from __future__ import annotations

import atexit
import os
import threading
import time
from datetime import datetime
from enum import IntEnum
from typing import IO, Optional

from emberweb.blockqueue import BlockDeque, QueueClosed

MAX_LINES = 50000


class LogLevel(IntEnum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3


_TITLES = {
    LogLevel.DEBUG: "[debug]: ",
    LogLevel.INFO: "[info] : ",
    LogLevel.WARN: "[warn] : ",
    LogLevel.ERROR: "[error]: ",
}


class Log:
    """Writes timestamped lines to ``<path>/<YYYY_MM_DD><suffix>``.

    A new file is started when the day changes, and after every
    ``max_lines`` lines within a day (``<date>-<n><suffix>``).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._level = int(LogLevel.INFO)
        self._open = False
        self._async = False
        self._deque: Optional[BlockDeque[str]] = None
        self._writer: Optional[threading.Thread] = None
        self._file: Optional[IO[str]] = None
        self._path = "./log"
        self._suffix = ".log"
        self._line_count = 0
        self._today = 0
        self.max_lines = MAX_LINES

    def init(
        self,
        level: int = LogLevel.INFO,
        path: str = "./log",
        suffix: str = ".log",
        max_queue_size: int = 1024,
    ) -> None:
        """Open the log; a positive ``max_queue_size`` makes writes asynchronous."""
        self._open = True
        self._level = int(level)
        if max_queue_size > 0:
            self._async = True
            if self._deque is None:
                self._deque = BlockDeque(max_queue_size)
                self._writer = threading.Thread(
                    target=self._async_write,
                    args=(self._deque,),
                    name="log-writer",
                    daemon=True,
                )
                self._writer.start()
        else:
            self._async = False

        self._line_count = 0
        now = datetime.now()
        self._path = path
        self._suffix = suffix
        self._today = now.day
        file_name = os.path.join(path, f"{now:%Y_%m_%d}{suffix}")
        with self._lock:
            if self._file is not None:
                self._file.flush()
                self._file.close()
            self._file = self._open_file(file_name)

    def write(self, level: int, fmt: str, *args: object) -> None:
        """Format a line with printf-style ``fmt`` and ``args`` and log it."""
        if self._file is None:
            raise RuntimeError("log is not open")
        now = datetime.now()
        message = fmt % args if args else fmt
        with self._lock:
            if self._today != now.day or (
                self._line_count and self._line_count % self.max_lines == 0
            ):
                tail = f"{now:%Y_%m_%d}"
                if self._today != now.day:
                    new_name = os.path.join(self._path, f"{tail}{self._suffix}")
                    self._today = now.day
                    self._line_count = 0
                else:
                    number = self._line_count // self.max_lines
                    new_name = os.path.join(self._path, f"{tail}-{number}{self._suffix}")
                self._file.flush()
                self._file.close()
                self._file = self._open_file(new_name)

            self._line_count += 1
            title = _TITLES.get(level, _TITLES[LogLevel.INFO])
            line = (
                f"{now:%Y-%m-%d %H:%M:%S}.{now.microsecond:06d} "
                f"{title}{message}\n"
            )
            if self._async and self._deque is not None and not self._deque.full():
                self._deque.push_back(line)
            else:
                self._file.write(line)

    def flush(self) -> None:
        if self._async and self._deque is not None:
            self._deque.flush()
        with self._lock:
            if self._file is not None:
                self._file.flush()

    def close(self) -> None:
        """Drain pending lines, stop the writer thread and close the file."""
        deque, writer = self._deque, self._writer
        if deque is not None and writer is not None:
            while not deque.empty() and writer.is_alive():
                deque.flush()
                time.sleep(0.001)
            deque.close()
            writer.join()
        self._deque = None
        self._writer = None
        with self._lock:
            if self._file is not None:
                self._file.flush()
                self._file.close()
                self._file = None
        self._open = False
        self._async = False

    def is_open(self) -> bool:
        return self._open

    def get_level(self) -> int:
        with self._lock:
            return self._level

    def set_level(self, level: int) -> None:
        with self._lock:
            self._level = int(level)

    def _open_file(self, file_name: str) -> IO[str]:
        try:
            return open(file_name, "a", encoding="utf-8")
        except FileNotFoundError:
            os.makedirs(self._path, exist_ok=True)
            return open(file_name, "a", encoding="utf-8")

    def _async_write(self, deque: BlockDeque[str]) -> None:
        while True:
            try:
                line = deque.pop()
            except QueueClosed:
                return
            with self._lock:
                if self._file is not None:
                    self._file.write(line)


_instance_lock = threading.Lock()
_instance: Optional[Log] = None


def instance() -> Log:
    """Return the process-wide log."""
    global _instance
    with _instance_lock:
        if _instance is None:
            _instance = Log()
            atexit.register(_instance.close)
        return _instance


def _log_base(level: int, fmt: str, args: tuple) -> None:
    log = instance()
    if log.is_open() and log.get_level() <= level:
        log.write(level, fmt, *args)
        log.flush()


def debug(fmt: str, *args: object) -> None:
    _log_base(LogLevel.DEBUG, fmt, args)


def info(fmt: str, *args: object) -> None:
    _log_base(LogLevel.INFO, fmt, args)


def warn(fmt: str, *args: object) -> None:
    _log_base(LogLevel.WARN, fmt, args)


def error(fmt: str, *args: object) -> None:
    _log_base(LogLevel.ERROR, fmt, args)