"""HTTP response assembly: status line, headers and a memory-mapped body."""

from __future__ import annotations

import mmap
import os
import stat
from typing import Optional

from emberweb import log
from emberweb.buffer import Buffer

SUFFIX_TYPE = {
    ".html": "text/html",
    ".xml": "text/xml",
    ".xhtml": "application/xhtml+xml",
    ".txt": "text/plain",
    ".rtf": "application/rtf",
    ".pdf": "application/pdf",
    ".word": "application/nsword",
    ".png": "image/png",
    ".gif": "image/gif",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".au": "audio/basic",
    ".mpeg": "video/mpeg",
    ".mpg": "video/mpeg",
    ".avi": "video/x-msvideo",
    ".gz": "application/x-gzip",
    ".tar": "application/x-tar",
    ".css": "text/css ",
    ".js": "text/javascript ",
}

CODE_STATUS = {
    200: "OK",
    400: "Bad Request",
    403: "Forbidden",
    404: "Not Found",
}

CODE_PATH = {
    400: "/400.html",
    403: "/403.html",
    404: "/404.html",
}


def file_type(path: str) -> str:
    """Content type for ``path`` judged by its last extension."""
    idx = path.rfind(".")
    if idx < 0:
        return "text/plain"
    return SUFFIX_TYPE.get(path[idx:], "text/plain")


def _stat_or_none(path: str) -> Optional[os.stat_result]:
    try:
        return os.stat(path)
    except OSError:
        return None


class HttpResponse:
    """Builds the response for one request into a :class:`Buffer`.

    The body file is mapped into memory and exposed as ``file``; it stays
    mapped until :meth:`unmap_file` or the next :meth:`init`.
    """

    def __init__(self) -> None:
        self.code = -1
        self.is_keep_alive = False
        self.path = ""
        self.src_dir = ""
        self.file: Optional[mmap.mmap] = None
        self._stat: Optional[os.stat_result] = None

    def init(
        self, src_dir: str, path: str, is_keep_alive: bool = False, code: int = -1
    ) -> None:
        if not src_dir:
            raise ValueError("source directory must not be empty")
        self.unmap_file()
        self.code = code
        self.is_keep_alive = is_keep_alive
        self.path = path
        self.src_dir = src_dir
        self._stat = None

    @property
    def _full_path(self) -> str:
        return self.src_dir + self.path

    def make_response(self, buff: Buffer) -> None:
        """Resolve the status code and append the whole head to ``buff``."""
        self._stat = _stat_or_none(self._full_path)
        if self._stat is None or stat.S_ISDIR(self._stat.st_mode):
            self.code = 404
        elif not self._stat.st_mode & stat.S_IROTH:
            self.code = 403
        elif self.code == -1:
            self.code = 200
        self._error_html()
        self._add_state_line(buff)
        self._add_header(buff)
        self._add_content(buff)

    def unmap_file(self) -> None:
        if self.file is not None:
            self.file.close()
            self.file = None

    def file_len(self) -> int:
        return self._stat.st_size if self._stat is not None else 0

    def error_content(self, buff: Buffer, message: str) -> None:
        """Append a small HTML error page, with its length header, to ``buff``."""
        status = CODE_STATUS.get(self.code, "Bad Request")
        body = (
            "<html><title>Error</title>"
            '<body bgcolor="ffffff">'
            f"{self.code} : {status}\n"
            f"<p>{message}</p>"
            "<hr><em>TinyWebServer</em></body></html>"
        )
        encoded = body.encode("utf-8")
        buff.append(f"Content-length: {len(encoded)}\r\n\r\n")
        buff.append(encoded)

    def _error_html(self) -> None:
        error_path = CODE_PATH.get(self.code)
        if error_path is not None:
            self.path = error_path
            self._stat = _stat_or_none(self._full_path)

    def _add_state_line(self, buff: Buffer) -> None:
        status = CODE_STATUS.get(self.code)
        if status is None:
            self.code = 400
            status = CODE_STATUS[400]
        buff.append(f"HTTP/1.1 {self.code} {status}\r\n")

    def _add_header(self, buff: Buffer) -> None:
        buff.append("Connection: ")
        if self.is_keep_alive:
            buff.append("keep-alive\r\n")
            buff.append("keep-alive: max=6, timeout=120\r\n")
        else:
            buff.append("close\r\n")
        buff.append(f"Content-type: {file_type(self.path)}\r\n")

    def _add_content(self, buff: Buffer) -> None:
        full = self._full_path
        try:
            fd = os.open(full, os.O_RDONLY)
        except OSError:
            self.error_content(buff, "File NotFound!")
            return
        log.debug("file path %s", full)
        try:
            self._stat = os.fstat(fd)
            size = self._stat.st_size
            if size > 0:
                try:
                    self.file = mmap.mmap(fd, size, access=mmap.ACCESS_READ)
                except (OSError, ValueError):
                    self.error_content(buff, "File NotFound!")
                    return
        finally:
            os.close(fd)
        buff.append(f"Content-length: {size}\r\n\r\n")