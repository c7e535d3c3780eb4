"""Incremental HTTP/1.x request parser with form-login handling."""

from __future__ import annotations

import re
from enum import Enum
from typing import Dict, Optional, Tuple

from emberweb import log
from emberweb.buffer import Buffer

DEFAULT_HTML = frozenset(
    {"/index", "/register", "/login", "/welcome", "/video", "/picture"}
)

DEFAULT_HTML_TAG = {"/register.html": 0, "/login.html": 1}

_CRLF = b"\r\n"
_WORD = re.compile(r"\s*(\S+)")


class ParseState(Enum):
    REQUEST_LINE = 0
    HEADERS = 1
    BODY = 2
    FINISH = 3


def convert_hex(ch: str) -> int:
    """Value of a hexadecimal digit; other characters map to ``ord(ch) - ord('0')``."""
    if "A" <= ch <= "F":
        return ord(ch) - ord("A") + 10
    if "a" <= ch <= "f":
        return ord(ch) - ord("a") + 10
    return ord(ch) - ord("0")


def _scan_word(line: str, pos: int, width: int) -> Tuple[Optional[str], int]:
    """Skip whitespace and take up to ``width`` non-space characters."""
    match = _WORD.match(line, pos)
    if match is None:
        return None, pos
    start = match.start(1)
    word = match.group(1)[:width]
    return word, start + len(word)


def _scan_request_line(line: str) -> Optional[Tuple[str, str, str]]:
    method, pos = _scan_word(line, 0, 15)
    if method is None:
        return None
    path, pos = _scan_word(line, pos, 511)
    if path is None:
        return None
    while pos < len(line) and line[pos].isspace():
        pos += 1
    if not line.startswith("HTTP/", pos):
        return None
    version, _ = _scan_word(line, pos + len("HTTP/"), 15)
    if version is None:
        return None
    return method, path, version


def _c_divmod10(num: int) -> Tuple[int, int]:
    quotient = int(num / 10)
    return quotient, num - quotient * 10


class HttpRequest:
    """State of one request being parsed from a :class:`Buffer`."""

    def __init__(self, user_store=None) -> None:
        self.user_store = user_store
        self.reset()

    def reset(self) -> None:
        self.method = ""
        self.path = ""
        self.version = ""
        self.body = ""
        self.state = ParseState.REQUEST_LINE
        self.headers: Dict[str, str] = {}
        self.post: Dict[str, str] = {}

    def is_keep_alive(self) -> bool:
        return self.headers.get("Connection") == "keep-alive" and self.version == "1.1"

    def parse(self, buff: Buffer) -> bool:
        """Consume CRLF-terminated lines from ``buff``; False on an empty buffer or bad request line."""
        if buff.readable_bytes() <= 0:
            return False
        while buff.readable_bytes() and self.state is not ParseState.FINISH:
            data = buff.peek()
            found = data.find(_CRLF)
            line_end = found if found >= 0 else len(data)
            line = data[:line_end].decode("latin-1")
            if self.state is ParseState.REQUEST_LINE:
                if not self._parse_request_line(line):
                    return False
                self._parse_path()
            elif self.state is ParseState.HEADERS:
                self._parse_header(line)
                if buff.readable_bytes() <= 2:
                    self.state = ParseState.FINISH
            elif self.state is ParseState.BODY:
                self._parse_body(line)
            if line_end == len(data):
                break
            buff.retrieve_until(line_end + 2)
        log.debug("[%s], [%s], [%s]", self.method, self.path, self.version)
        return True

    def get_post(self, key: Optional[str]) -> str:
        if key is None:
            return ""
        return self.post.get(key, "")

    def _parse_request_line(self, line: str) -> bool:
        parts = _scan_request_line(line)
        if parts is None:
            log.error("RequestLine Error: %s", line)
            return False
        self.method, self.path, self.version = parts
        self.state = ParseState.HEADERS
        return True

    def _parse_path(self) -> None:
        if self.path == "/":
            self.path = "/index.html"
        elif self.path in DEFAULT_HTML:
            self.path += ".html"

    def _parse_header(self, line: str) -> None:
        key, sep, value = line.partition(":")
        if not sep:
            self.state = ParseState.BODY
            return
        self.headers[key] = value.lstrip(" ")

    def _parse_body(self, line: str) -> None:
        self.body = line
        self._parse_post()
        self.state = ParseState.FINISH
        log.debug("Body:%s, len:%d", line, len(line))

    def _parse_post(self) -> None:
        if (
            self.method == "POST"
            and self.headers.get("Content-Type") == "application/x-www-form-urlencoded"
        ):
            self._parse_urlencoded()
            tag = DEFAULT_HTML_TAG.get(self.path)
            if tag is not None:
                log.debug("Tag:%d", tag)
                is_login = tag == 1
                if self._user_verify(
                    self.post.get("username", ""), self.post.get("password", ""), is_login
                ):
                    self.path = "/welcome.html"
                else:
                    self.path = "/error.html"

    def _parse_urlencoded(self) -> None:
        if not self.body:
            return
        chars = list(self.body)
        n = len(chars)
        key = ""
        start = 0
        i = 0
        while i < n:
            ch = chars[i]
            if ch == "=":
                key = "".join(chars[start:i])
                start = i + 1
            elif ch == "+":
                chars[i] = " "
            elif ch == "%":
                # Escapes are rewritten in place as two decimal digits.
                if i + 2 < n:
                    num = convert_hex(chars[i + 1]) * 16 + convert_hex(chars[i + 2])
                    tens, units = _c_divmod10(num)
                    chars[i + 2] = chr(units + ord("0"))
                    chars[i + 1] = chr(tens + ord("0"))
                    i += 2
            elif ch == "&":
                value = "".join(chars[start:i])
                start = i + 1
                self.post[key] = value
                log.debug("%s = %s", key, value)
            i += 1
        if key not in self.post and start < i:
            self.post[key] = "".join(chars[start:i])
        self.body = "".join(chars)

    def _user_verify(self, name: str, password: str, is_login: bool) -> bool:
        if not name or not password or self.user_store is None:
            return False
        log.info("Verify name:%s", name)
        return self.user_store.verify(name, password, is_login)