"""Client that sends one command to the shell server and prints the reply.

The command name is the program name (``./`` stripped), or, when run as
``./shelltools``, the first argument. At most one argument is forwarded.
"""

from __future__ import annotations

import socket
import sys
from typing import List, Optional, Sequence

from emberweb.shellserver import SOCKET_PATH, CmdHeader

REQUEST_LEN = 64
_TOOL_PREFIX = "./shelltools"
_RECV_SIZE = 64


def build_request(argv: Sequence[str]) -> bytes:
    """Build the fixed-size request for a command line."""
    if not argv:
        raise ValueError("argv must contain at least the program name")
    args = list(argv)
    tool_mode = len(args) >= 2 and args[0].startswith(_TOOL_PREFIX)
    if tool_mode:
        name = args[1]
    else:
        if "./" in args[0]:
            args[0] = args[0][2:]
        name = args[0]

    argvlen = sum(len(arg.encode("utf-8")) for arg in args)
    header = CmdHeader(name, len(args), argvlen, argvlen)

    payload = args[0].encode("utf-8")
    if (tool_mode and len(args) == 3) or (not tool_mode and len(args) == 2):
        payload += b" " + args[-1].encode("utf-8")

    request = (header.pack() + payload)[:REQUEST_LEN]
    return request.ljust(REQUEST_LEN, b"\0")


def send_command(request: bytes, socket_path: str = SOCKET_PATH) -> bytes:
    """Send ``request`` and return everything the server replies."""
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.connect(socket_path)
        sock.sendall(request)
        chunks = []
        while True:
            chunk = sock.recv(_RECV_SIZE)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def main(argv: Optional[List[str]] = None) -> int:
    args = list(sys.argv if argv is None else argv)
    try:
        request = build_request(args)
    except ValueError as exc:
        print(f"shelltools: {exc}", file=sys.stderr)
        return 1
    try:
        reply = send_command(request)
    except OSError as exc:
        print(f"shelltools: {exc}", file=sys.stderr)
        return 1
    sys.stdout.write(reply.decode("utf-8", errors="replace"))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())