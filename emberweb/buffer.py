"""Growable byte buffer with separate read and write positions."""

from __future__ import annotations

import os
from typing import Union

BytesLike = Union[bytes, bytearray, memoryview]

_EXTRA_READ_SIZE = 65535


class Buffer:
    """A byte buffer that is read from the front and appended at the back.

    Bytes before the read position are "prependable"; bytes between the read
    and write positions are "readable"; the rest is "writable". When space
    runs out the buffer first compacts, and grows only if that is not enough.
    """

    def __init__(self, init_size: int = 1024) -> None:
        if init_size < 0:
            raise ValueError("initial size must not be negative")
        self._buffer = bytearray(init_size)
        self._read_pos = 0
        self._write_pos = 0

    def readable_bytes(self) -> int:
        return self._write_pos - self._read_pos

    def writable_bytes(self) -> int:
        return len(self._buffer) - self._write_pos

    def prependable_bytes(self) -> int:
        return self._read_pos

    def peek(self) -> bytes:
        """Return a copy of the readable bytes without consuming them."""
        return bytes(self._buffer[self._read_pos:self._write_pos])

    def ensure_writable(self, length: int) -> None:
        if self.writable_bytes() < length:
            self._make_space(length)

    def has_written(self, length: int) -> None:
        if length < 0 or length > self.writable_bytes():
            raise ValueError("cannot mark more bytes written than are writable")
        self._write_pos += length

    def retrieve(self, length: int) -> None:
        if length < 0 or length > self.readable_bytes():
            raise ValueError("cannot retrieve more bytes than are readable")
        self._read_pos += length

    def retrieve_until(self, offset: int) -> None:
        """Consume readable bytes up to ``offset`` counted from the read position."""
        self.retrieve(offset)

    def retrieve_all(self) -> None:
        self._buffer[:] = bytes(len(self._buffer))
        self._read_pos = 0
        self._write_pos = 0

    def retrieve_all_to_str(self) -> str:
        """Consume every readable byte and return it decoded as UTF-8."""
        text = self.peek().decode("utf-8", errors="replace")
        self.retrieve_all()
        return text

    def append(self, data: Union[BytesLike, str, "Buffer"]) -> None:
        if isinstance(data, Buffer):
            data = data.peek()
        elif isinstance(data, str):
            data = data.encode("utf-8")
        length = len(data)
        self.ensure_writable(length)
        self._buffer[self._write_pos:self._write_pos + length] = data
        self._write_pos += length

    def read_fd(self, fd: int) -> int:
        """Read from ``fd`` into the buffer, growing it when needed.

        Returns the number of bytes read; raises ``OSError`` on failure.
        """
        writable = self.writable_bytes()
        extra = bytearray(_EXTRA_READ_SIZE)
        view = memoryview(self._buffer)[self._write_pos:]
        try:
            count = os.readv(fd, [view, extra])
        finally:
            view.release()
        if count <= writable:
            self._write_pos += count
        else:
            self._write_pos = len(self._buffer)
            self.append(extra[:count - writable])
        return count

    def write_fd(self, fd: int) -> int:
        """Write readable bytes to ``fd`` and consume what was written."""
        count = os.write(fd, self._buffer[self._read_pos:self._write_pos])
        self._read_pos += count
        return count

    def _make_space(self, length: int) -> None:
        if self.writable_bytes() + self.prependable_bytes() < length:
            self._buffer.extend(bytes(self._write_pos + length + 1 - len(self._buffer)))
        else:
            readable = self.readable_bytes()
            self._buffer[0:readable] = self._buffer[self._read_pos:self._write_pos]
            self._read_pos = 0
            self._write_pos = readable