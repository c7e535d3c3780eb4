import os
import shutil
import socket
import tempfile

import pytest

from emberweb import log
from emberweb.shellserver import (
    SHELLBUFFLEN,
    CmdHeader,
    ShellServer,
    get_debug_level,
    set_debug_level,
)


@pytest.fixture
def restore_level():
    logger = log.instance()
    saved = logger.get_level()
    yield logger
    logger.set_level(saved)


@pytest.fixture
def socket_path():
    directory = tempfile.mkdtemp(prefix="sh")
    yield os.path.join(directory, "sock")
    shutil.rmtree(directory, ignore_errors=True)


def _request(name, payload=b""):
    return CmdHeader(name, 1, 0, 0).pack() + payload + b"\0"


def test_header_size_is_fixed_by_layout():
    assert CmdHeader.SIZE == 28
    assert len(CmdHeader("abc", 1, 2, 3).pack()) == CmdHeader.SIZE


def test_header_round_trip():
    header = CmdHeader("getDebugLevel", 2, 17, 17)
    assert CmdHeader.unpack(header.pack() + b"tail") == header


def test_header_name_is_truncated_to_fifteen_bytes():
    header = CmdHeader("a" * 30, 1, 0, 0)
    assert CmdHeader.unpack(header.pack()).cmdname == "a" * 15


def test_unpack_short_data_raises():
    with pytest.raises(ValueError):
        CmdHeader.unpack(b"\0" * (CmdHeader.SIZE - 1))


def test_builtin_test_command():
    server = ShellServer("/unused")
    assert server.dispatch(_request("test1")) == "this is test1!\n"


def test_dispatch_passes_udata_and_args():
    server = ShellServer("/unused")
    seen = []

    def echo(udata, args):
        seen.append((udata, args))
        return f"got {args}"

    server.register("echo", echo, "ctx")
    assert server.dispatch(_request("echo", b"echo 5")) == "got echo 5"
    assert seen == [("ctx", "echo 5")]


def test_dispatch_matches_by_prefix_and_last_wins():
    server = ShellServer("/unused")
    server.register("alpha", lambda u, a: "first", None)
    server.register("alphabet", lambda u, a: "second", None)
    assert server.dispatch(_request("alpha")) == "second"
    assert server.dispatch(_request("alphab")) == "second"


def test_dispatch_without_match_is_empty():
    server = ShellServer("/unused")
    assert server.dispatch(_request("nothing")) == ""


def test_dispatch_short_request_raises():
    server = ShellServer("/unused")
    with pytest.raises(ValueError):
        server.dispatch(b"short")


def test_reply_is_limited_to_buffer():
    server = ShellServer("/unused")
    server.register("big", lambda u, a: "x" * 1000, None)
    assert len(server.dispatch(_request("big"))) == SHELLBUFFLEN - 1


def test_register_none_name_raises():
    server = ShellServer("/unused")
    with pytest.raises(ValueError):
        server.register(None, lambda u, a: "", None)


def test_get_debug_level_reports_current(restore_level):
    restore_level.set_level(2)
    assert get_debug_level(None, "getDebugLevel") == "debuglevel:2\n"


def test_set_debug_level_sets_level(restore_level):
    restore_level.set_level(1)
    reply = set_debug_level(None, "setDebugLevel 3")
    assert reply == "recvbuf:setDebugLevel 3\ndebuglevel: 3\n"
    assert restore_level.get_level() == 3


def test_set_debug_level_rejects_out_of_range(restore_level):
    restore_level.set_level(1)
    reply = set_debug_level(None, "setDebugLevel 9")
    assert "invalid param!\n" in reply
    assert restore_level.get_level() == 1


def test_set_debug_level_without_argument_shows_level(restore_level):
    restore_level.set_level(0)
    reply = set_debug_level(None, "setDebugLevel")
    assert reply.startswith("recvbuf:setDebugLevel\ndebuglevel:0\n")
    assert restore_level.get_level() == 0


def test_server_answers_over_socket(socket_path):
    server = ShellServer(socket_path)
    server.start()
    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as client:
            client.settimeout(5)
            client.connect(socket_path)
            client.sendall(_request("test1"))
            chunks = []
            while True:
                chunk = client.recv(64)
                if not chunk:
                    break
                chunks.append(chunk)
        assert b"".join(chunks) == b"this is test1!\n"
    finally:
        server.stop()
    assert not os.path.exists(socket_path)


def test_start_twice_raises(socket_path):
    server = ShellServer(socket_path)
    server.start()
    try:
        with pytest.raises(RuntimeError):
            server.start()
    finally:
        server.stop()