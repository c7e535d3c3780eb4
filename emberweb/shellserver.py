"""Command shell served over a local Unix socket.

A client sends a fixed-size :class:`CmdHeader` followed by a NUL-terminated
argument string. Every registered command whose name starts with the
requested name is run; the reply is the output of the last one that ran.
"""

from __future__ import annotations

import argparse
import os
import re
import socket
import struct
import sys
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, List, Optional

from emberweb import log
from emberweb.log import LogLevel

SHELLBUFFLEN = 256
SOCKET_PATH = "/tmp/mysocket"
CMDNAME_LEN = 16

_HEADER = struct.Struct("=16s3i")
_ACCEPT_POLL_SECONDS = 0.2
_CLIENT_TIMEOUT_SECONDS = 5.0
_LISTEN_BACKLOG = 5
_NUMBER = re.compile(r"\s*([+-]?\d+)")

Callback = Callable[[Any, str], str]


@dataclass
class CmdHeader:
    """Fixed-size header that precedes every shell request."""

    cmdname: str = ""
    argc: int = 0
    argvlen: int = 0
    length: int = 0

    SIZE: ClassVar[int] = _HEADER.size

    def pack(self) -> bytes:
        """Encode the header; the name is cut to 15 bytes and NUL-padded."""
        name = self.cmdname.encode("utf-8")[: CMDNAME_LEN - 1]
        return _HEADER.pack(name, self.argc, self.argvlen, self.length)

    @classmethod
    def unpack(cls, data: bytes) -> "CmdHeader":
        """Decode a header from the start of ``data``."""
        if len(data) < cls.SIZE:
            raise ValueError(
                f"command needs at least {cls.SIZE} bytes, got {len(data)}"
            )
        raw_name, argc, argvlen, length = _HEADER.unpack_from(data)
        name = raw_name.split(b"\0", 1)[0].decode("utf-8", errors="replace")
        return cls(name, argc, argvlen, length)


@dataclass
class _ShellUnit:
    name: bytes
    callback: Callback
    udata: Any


def _limit_reply(text: str) -> str:
    encoded = text.encode("utf-8")[: SHELLBUFFLEN - 1]
    return encoded.decode("utf-8", errors="ignore")


def _test_command(udata: Any, args: str) -> str:
    return "this is test1!\n"


class ShellServer:
    """Accepts one command per connection on a Unix stream socket."""

    def __init__(self, socket_path: str = SOCKET_PATH) -> None:
        self.socket_path = socket_path
        self._units: List[_ShellUnit] = []
        self._lock = threading.Lock()
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self.register("test1", _test_command, "hello")

    def register(self, name: str, callback: Callback, udata: Any = None) -> None:
        """Add a command; the name keeps at most its first 16 bytes."""
        if name is None:
            raise ValueError("command name must not be None")
        unit = _ShellUnit(name.encode("utf-8")[:CMDNAME_LEN], callback, udata)
        with self._lock:
            self._units.append(unit)

    def dispatch(self, data: bytes) -> str:
        """Run the commands matching the request in ``data`` and return the reply."""
        header = CmdHeader.unpack(data)
        payload = bytes(data[CmdHeader.SIZE:]).split(b"\0", 1)[0]
        args = payload.decode("utf-8", errors="replace")
        requested = header.cmdname.encode("utf-8")
        with self._lock:
            units = list(self._units)
        reply = ""
        for unit in units:
            if unit.name.startswith(requested):
                reply = unit.callback(unit.udata, args)
        return _limit_reply(reply)

    def start(self) -> None:
        """Bind the socket and serve from a background thread."""
        if self._thread is not None:
            raise RuntimeError("shell server is already running")
        try:
            os.unlink(self.socket_path)
        except FileNotFoundError:
            pass
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(self.socket_path)
            sock.listen(_LISTEN_BACKLOG)
        except OSError:
            sock.close()
            raise
        sock.settimeout(_ACCEPT_POLL_SECONDS)
        self._sock = sock
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._serve, args=(sock,), name="shell-server", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        """Stop serving, close the socket and remove its file."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None
            try:
                os.unlink(self.socket_path)
            except FileNotFoundError:
                pass

    def _serve(self, sock: socket.socket) -> None:
        while not self._stop.is_set():
            try:
                client, _ = sock.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._stop.is_set():
                    return
                continue
            with client:
                self._handle(client)

    def _handle(self, client: socket.socket) -> None:
        client.settimeout(_CLIENT_TIMEOUT_SECONDS)
        try:
            data = client.recv(SHELLBUFFLEN)
            if not data:
                return
            try:
                reply = self.dispatch(data)
            except ValueError:
                reply = ""
            client.sendall(reply.encode("utf-8"))
        except OSError:
            pass


def _level_help() -> str:
    return "  ".join(f"{level.value}-{level.name}" for level in LogLevel) + "\n"


def set_debug_level(udata: Any, args: str) -> str:
    """Show the log level, or set it from the number after the first space."""
    lines = [f"recvbuf:{args}\n"]
    logger = log.instance()
    _, sep, rest = args.partition(" ")
    if not sep:
        lines.append(f"debuglevel:{logger.get_level()}\n")
        lines.append(_level_help())
        return "".join(lines)
    match = _NUMBER.match(rest)
    level = int(match.group(1)) if match else 0
    if level < min(LogLevel) or level > max(LogLevel):
        lines.append("invalid param!\n")
        lines.append(f"debuglevel:{logger.get_level()}\n")
        return "".join(lines)
    logger.set_level(level)
    lines.append(f"debuglevel: {level}\n")
    return "".join(lines)


def get_debug_level(udata: Any, args: str) -> str:
    """Report the current log level."""
    return f"debuglevel:{log.instance().get_level()}\n"


_COMMANDS = (
    ("setDebugLevel", set_debug_level, None),
    ("getDebugLevel", get_debug_level, None),
)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="emberweb-shell", description="Local command shell.")
    parser.add_argument("--socket-path", default=SOCKET_PATH, help="Unix socket to listen on")
    args = parser.parse_args(argv)
    server = ShellServer(args.socket_path)
    for name, callback, udata in _COMMANDS:
        server.register(name, callback, udata)
    try:
        server.start()
    except OSError as exc:
        print(f"shell server: {exc}", file=sys.stderr)
        return 1
    print("[SHELL] shellserver init!")
    try:
        while True:
            time.sleep(10)
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())