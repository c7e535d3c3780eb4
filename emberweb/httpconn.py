"""One client connection: buffered reading, request processing and writing."""

from __future__ import annotations

import os
import socket
import threading
from typing import Optional, Tuple

from emberweb import log
from emberweb.buffer import Buffer
from emberweb.httprequest import HttpRequest
from emberweb.httpresponse import HttpResponse

_WRITE_CONTINUE_THRESHOLD = 10240

Address = Tuple[str, int]


class HttpConn:
    """State of a single HTTP connection.

    ``user_count`` counts connections that are open across the process.
    """

    user_count = 0
    _count_lock = threading.Lock()

    def __init__(self, src_dir: str, user_store=None, is_et: bool = False) -> None:
        self.src_dir = src_dir
        self.is_et = is_et
        self._sock: Optional[socket.socket] = None
        self._fd = -1
        self._addr: Address = ("0.0.0.0", 0)
        self._closed = True
        self._read_buff = Buffer()
        self._write_buff = Buffer()
        self._request = HttpRequest(user_store)
        self._response = HttpResponse()
        self._header = memoryview(b"")
        self._body = memoryview(b"")

    @property
    def fd(self) -> int:
        return self._fd

    @property
    def addr(self) -> Address:
        return self._addr

    @property
    def ip(self) -> str:
        return self._addr[0]

    @property
    def port(self) -> int:
        return self._addr[1]

    def init(self, sock: socket.socket, addr: Address) -> None:
        fd = sock.fileno()
        if fd <= 0:
            raise ValueError("socket is not open")
        with HttpConn._count_lock:
            HttpConn.user_count += 1
            count = HttpConn.user_count
        self._sock = sock
        self._fd = fd
        self._addr = addr
        self._write_buff.retrieve_all()
        self._read_buff.retrieve_all()
        self._closed = False
        log.info("Client[%d](%s:%d) in, userCount:%d", fd, self.ip, self.port, count)

    def read(self) -> int:
        """Read into the request buffer; in edge-triggered mode until the socket is drained.

        Returns the count of the last read (0 when the peer closed). Raises
        ``BlockingIOError`` when a non-blocking socket has no more data.
        """
        while True:
            count = self._read_buff.read_fd(self._fd)
            if count <= 0 or not self.is_et:
                return count

    def write(self) -> int:
        """Send pending head and body bytes; returns the count of the last write.

        Raises ``BlockingIOError`` when a non-blocking socket cannot take more.
        """
        while True:
            count = os.writev(self._fd, [self._header, self._body])
            if count <= 0:
                return count
            header_len = len(self._header)
            if count > header_len:
                self._advance_body(count - header_len)
                if header_len:
                    self._write_buff.retrieve_all()
                    self._replace_header(memoryview(b""))
            else:
                self._replace_header(self._header[count:])
                self._write_buff.retrieve(count)
            if not (self.is_et or self.to_write_bytes() > _WRITE_CONTINUE_THRESHOLD):
                return count

    def close(self) -> None:
        self._release_views()
        self._response.unmap_file()
        if not self._closed:
            self._closed = True
            with HttpConn._count_lock:
                HttpConn.user_count -= 1
                count = HttpConn.user_count
            if self._sock is not None:
                self._sock.close()
            log.info(
                "Client[%d](%s:%d) quit, UserCount:%d", self._fd, self.ip, self.port, count
            )

    def process(self) -> bool:
        """Parse the buffered request and prepare the response; False if nothing was read."""
        self._request.reset()
        if self._read_buff.readable_bytes() <= 0:
            return False
        self._release_views()
        if self._request.parse(self._read_buff):
            log.debug("%s", self._request.path)
            self._response.init(
                self.src_dir, self._request.path, self._request.is_keep_alive(), 200
            )
        else:
            self._response.init(self.src_dir, self._request.path, False, 400)

        self._response.make_response(self._write_buff)
        self._header = memoryview(self._write_buff.peek())
        if self._response.file_len() > 0 and self._response.file is not None:
            self._body = memoryview(self._response.file)
        log.debug(
            "filesize:%d, to %d", self._response.file_len(), self.to_write_bytes()
        )
        return True

    def to_write_bytes(self) -> int:
        return len(self._header) + len(self._body)

    def is_keep_alive(self) -> bool:
        return self._request.is_keep_alive()

    def _replace_header(self, view: memoryview) -> None:
        old, self._header = self._header, view
        old.release()

    def _advance_body(self, count: int) -> None:
        old = self._body
        self._body = old[count:]
        old.release()

    def _release_views(self) -> None:
        self._header.release()
        self._body.release()
        self._header = memoryview(b"")
        self._body = memoryview(b"")