"""Event-driven HTTP server: epoll loop, worker pool and idle-connection timers."""

from __future__ import annotations

import argparse
import os
import socket
import struct
import threading
from functools import partial
from typing import Dict, List, Optional

from emberweb import log
from emberweb.epoller import (
    EPOLLERR,
    EPOLLET,
    EPOLLHUP,
    EPOLLIN,
    EPOLLONESHOT,
    EPOLLOUT,
    EPOLLRDHUP,
    Epoller,
)
from emberweb.heaptimer import HeapTimer
from emberweb.httpconn import HttpConn
from emberweb.threadpool import ThreadPool
from emberweb.userstore import UserStore

MAX_FD = 65536
_LISTEN_BACKLOG = 6


class WebServer:
    """Serves files from ``src_dir`` and handles form login and registration.

    ``trig_mode`` selects level or edge triggering: 0 = LT/LT, 1 = LT/ET
    (connections edge-triggered), 2 = ET/LT (listener edge-triggered),
    anything else = ET/ET. A positive ``timeout_ms`` closes idle connections.
    """

    def __init__(
        self,
        port: int = 1316,
        trig_mode: int = 3,
        timeout_ms: int = 60000,
        opt_linger: bool = False,
        thread_num: int = 4,
        open_log: bool = True,
        log_level: int = 1,
        log_queue_size: int = 512,
        src_dir: Optional[str] = None,
    ) -> None:
        self.port = port
        self.timeout_ms = timeout_ms
        self._open_linger = opt_linger
        self._closed = False
        self.src_dir = (
            src_dir
            if src_dir is not None
            else os.path.join(os.getcwd(), "resources") + os.sep
        )
        self._timer = HeapTimer()
        self._pool = ThreadPool(thread_num)
        self._epoller = Epoller()
        self._users: Dict[int, HttpConn] = {}
        self._listen_sock: Optional[socket.socket] = None
        self._listen_fd = -1
        self._state_lock = threading.Lock()
        self._running = False
        self._cleaned = False

        self._wake_r, self._wake_w = os.pipe()
        os.set_blocking(self._wake_r, False)
        self._epoller.add_fd(self._wake_r, EPOLLIN)

        HttpConn.user_count = 0
        self.user_store = UserStore()
        self.user_store.load_from_file(os.path.join(self.src_dir, "users.conf"))

        self._init_event_mode(trig_mode)
        if not self._init_socket():
            self._closed = True

        if open_log:
            log.instance().init(log_level, "./log", ".log", log_queue_size)
            if self._closed:
                log.error("========== Server init error!==========")
            else:
                log.info("========== Server init ==========")
                log.info("Port:%d, OpenLinger: %s", port, "true" if opt_linger else "false")
                log.info(
                    "Listen Mode: %s, OpenConn Mode: %s",
                    "ET" if self.listen_event & EPOLLET else "LT",
                    "ET" if self.conn_event & EPOLLET else "LT",
                )
                log.info("LogSys level: %d", log_level)
                log.info("srcDir: %s", self.src_dir)
                log.info("ThreadPool num: %d", thread_num)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def is_et(self) -> bool:
        return bool(self.conn_event & EPOLLET)

    def start(self) -> None:
        """Run the event loop until :meth:`stop` is called, then release everything."""
        with self._state_lock:
            if self._cleaned:
                return
            self._running = True
        try:
            if not self._closed:
                log.info("========== Server start ==========")
            while not self._closed:
                time_ms = self._timer.next_tick() if self.timeout_ms > 0 else -1
                try:
                    events = self._epoller.wait(time_ms)
                except InterruptedError:
                    continue
                for fd, mask in events:
                    self._handle_event(fd, mask)
        finally:
            self._cleanup()

    def stop(self) -> None:
        """Ask the loop to finish; releases resources at once if it is not running."""
        self._closed = True
        with self._state_lock:
            if self._cleaned:
                return
            running = self._running
            if running:
                try:
                    os.write(self._wake_w, b"\0")
                except OSError:
                    pass
        if not running:
            self._cleanup()

    def _handle_event(self, fd: int, mask: int) -> None:
        if fd == self._listen_fd:
            self._deal_listen()
            return
        if fd == self._wake_r:
            self._drain_wake()
            return
        client = self._users.get(fd)
        if client is None:
            return
        if mask & (EPOLLRDHUP | EPOLLHUP | EPOLLERR):
            self._close_conn(client)
        elif mask & EPOLLIN:
            self._deal_read(client)
        elif mask & EPOLLOUT:
            self._deal_write(client)
        else:
            log.error("Unexpected event")

    def _drain_wake(self) -> None:
        while True:
            try:
                if not os.read(self._wake_r, 64):
                    return
            except (BlockingIOError, InterruptedError):
                return
            except OSError:
                return

    def _init_event_mode(self, trig_mode: int) -> None:
        self.listen_event = EPOLLRDHUP
        self.conn_event = EPOLLONESHOT | EPOLLRDHUP
        if trig_mode == 0:
            pass
        elif trig_mode == 1:
            self.conn_event |= EPOLLET
        elif trig_mode == 2:
            self.listen_event |= EPOLLET
        else:
            self.listen_event |= EPOLLET
            self.conn_event |= EPOLLET

    def _init_socket(self) -> bool:
        if self.port > 65535 or self.port < 1024:
            log.error("Port:%d error!", self.port)
            return False
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError:
            log.error("Create socket error!")
            return False

        linger = struct.pack("ii", 1, 1) if self._open_linger else struct.pack("ii", 0, 0)
        steps = (
            (lambda: sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, linger),
             "Init linger error!"),
            (lambda: sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1),
             "set socket setsockopt error!"),
            (lambda: sock.bind(("", self.port)), f"Bind Port:{self.port} error!"),
            (lambda: sock.listen(_LISTEN_BACKLOG), f"Listen port:{self.port} error!"),
        )
        for action, message in steps:
            try:
                action()
            except OSError:
                sock.close()
                log.error("%s", message)
                return False

        if not self._epoller.add_fd(sock.fileno(), self.listen_event | EPOLLIN):
            sock.close()
            log.error("Add listen error!")
            return False

        sock.setblocking(False)
        self._listen_sock = sock
        self._listen_fd = sock.fileno()
        log.info("Server port:%d", self.port)
        return True

    def _deal_listen(self) -> None:
        if self._listen_sock is None:
            return
        while True:
            try:
                sock, addr = self._listen_sock.accept()
            except (BlockingIOError, InterruptedError):
                return
            except OSError:
                return
            if HttpConn.user_count >= MAX_FD:
                self._send_error(sock, "Server busy!")
                log.warn("Clients is full!")
                return
            self._add_client(sock, addr)
            if not self.listen_event & EPOLLET:
                return

    def _add_client(self, sock: socket.socket, addr) -> None:
        fd = sock.fileno()
        client = self._users.get(fd)
        if client is None:
            client = HttpConn(self.src_dir, self.user_store, self.is_et)
            self._users[fd] = client
        sock.setblocking(False)
        client.init(sock, (addr[0], addr[1]))
        if self.timeout_ms > 0:
            self._timer.add(fd, self.timeout_ms, partial(self._close_conn, client))
        self._epoller.add_fd(fd, EPOLLIN | self.conn_event)
        log.info("Client[%d] in!", client.fd)

    def _send_error(self, sock: socket.socket, info: str) -> None:
        try:
            sock.send(info.encode("utf-8"))
        except OSError:
            log.warn("send error to client[%d] error!", sock.fileno())
        sock.close()

    def _close_conn(self, client: HttpConn) -> None:
        log.info("Client[%d] quit!", client.fd)
        self._epoller.del_fd(client.fd)
        client.close()

    def _extend_time(self, client: HttpConn) -> None:
        if self.timeout_ms > 0 and client.fd in self._timer:
            self._timer.adjust(client.fd, self.timeout_ms)

    def _deal_read(self, client: HttpConn) -> None:
        self._extend_time(client)
        self._pool.add_task(partial(self._on_read, client))

    def _deal_write(self, client: HttpConn) -> None:
        self._extend_time(client)
        self._pool.add_task(partial(self._on_write, client))

    def _on_read(self, client: HttpConn) -> None:
        try:
            count = client.read()
        except BlockingIOError:
            count = -1
        except OSError:
            self._close_conn(client)
            return
        else:
            if count <= 0:
                self._close_conn(client)
                return
        self._on_process(client)

    def _on_process(self, client: HttpConn) -> None:
        if client.process():
            self._epoller.mod_fd(client.fd, self.conn_event | EPOLLOUT)
        else:
            self._epoller.mod_fd(client.fd, self.conn_event | EPOLLIN)

    def _on_write(self, client: HttpConn) -> None:
        would_block = False
        try:
            count = client.write()
        except BlockingIOError:
            count = -1
            would_block = True
        except OSError:
            count = -1
        if client.to_write_bytes() == 0:
            if client.is_keep_alive():
                self._on_process(client)
                return
        elif count < 0 and would_block:
            self._epoller.mod_fd(client.fd, self.conn_event | EPOLLOUT)
            return
        self._close_conn(client)

    def _cleanup(self) -> None:
        with self._state_lock:
            if self._cleaned:
                return
            self._cleaned = True
            self._running = False
        self._closed = True
        self._pool.close()
        for client in list(self._users.values()):
            client.close()
        self._users.clear()
        self._timer.clear()
        if self._listen_sock is not None:
            self._listen_sock.close()
            self._listen_sock = None
            self._listen_fd = -1
        self._epoller.close()
        with self._state_lock:
            os.close(self._wake_r)
            os.close(self._wake_w)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="emberweb", description="Small static HTTP server.")
    parser.add_argument("--port", type=int, default=1316, help="listening port")
    parser.add_argument("--trig-mode", type=int, default=3, help="0=LT/LT 1=LT/ET 2=ET/LT 3=ET/ET")
    parser.add_argument("--timeout", type=int, default=60000, help="idle timeout in ms, 0 = none")
    parser.add_argument("--linger", action="store_true", help="enable SO_LINGER")
    parser.add_argument("--threads", type=int, default=4, help="worker threads")
    parser.add_argument("--no-log", action="store_true", help="disable the log file")
    parser.add_argument("--log-level", type=int, default=1, help="0=DEBUG 1=INFO 2=WARN 3=ERROR")
    parser.add_argument("--log-queue", type=int, default=512, help="async log queue size, 0 = sync")
    parser.add_argument("--src-dir", default=None, help="directory of served files")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    server = WebServer(
        args.port,
        args.trig_mode,
        args.timeout,
        args.linger,
        args.threads,
        not args.no_log,
        args.log_level,
        args.log_queue,
        args.src_dir,
    )
    if server.is_closed:
        server.stop()
        return 1
    try:
        server.start()
    except KeyboardInterrupt:
        server.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())