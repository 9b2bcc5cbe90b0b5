from __future__ import annotations

import socket
import threading
from typing import Callable, List, Optional, Tuple

import pytest

Reply = Callable[[str], Optional[bytes]]

LOOPBACK = "127.0.0.1"


def echo(line: str) -> bytes:
    return ("ECHO:" + line).encode("utf-8")


class TcpReplyServer:
    """Line-oriented TCP server; `reply` returning None means never answer."""

    def __init__(self, reply: Reply):
        self.reply = reply
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind((LOOPBACK, 0))
        self.sock.listen()
        self.sock.settimeout(0.1)
        self.port = self.sock.getsockname()[1]
        self.received: List[str] = []
        self._lock = threading.Lock()
        self._conns: List[socket.socket] = []
        self._closed = threading.Event()

    def start(self) -> "TcpReplyServer":
        threading.Thread(target=self._accept_loop, daemon=True).start()
        return self

    def _accept_loop(self) -> None:
        while not self._closed.is_set():
            try:
                conn, _ = self.sock.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            with self._lock:
                self._conns.append(conn)
            threading.Thread(target=self._handle, args=(conn,), daemon=True).start()

    def _handle(self, conn: socket.socket) -> None:
        try:
            with conn, conn.makefile("rb") as f:
                for raw in f:
                    line = raw.decode("utf-8").rstrip("\n")
                    with self._lock:
                        self.received.append(line)
                    data = self.reply(line)
                    if data is not None:
                        conn.sendall(data)
        except OSError:
            pass

    def close(self) -> None:
        self._closed.set()
        with self._lock:
            conns = list(self._conns)
        for conn in conns:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
        self.sock.close()


class UdpReplyServer:
    """Datagram server; each reply is produced on its own thread."""

    def __init__(self, reply: Reply):
        self.reply = reply
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind((LOOPBACK, 0))
        self.sock.settimeout(0.1)
        self.port = self.sock.getsockname()[1]
        self.received: List[Tuple[str, Tuple[str, int]]] = []
        self._lock = threading.Lock()
        self._closed = threading.Event()

    def start(self) -> "UdpReplyServer":
        threading.Thread(target=self._recv_loop, daemon=True).start()
        return self

    def _recv_loop(self) -> None:
        while not self._closed.is_set():
            try:
                data, addr = self.sock.recvfrom(65535)
            except socket.timeout:
                continue
            except OSError:
                return
            line = data.decode("utf-8")
            with self._lock:
                self.received.append((line, addr))
            threading.Thread(target=self._answer, args=(line, addr), daemon=True).start()

    def _answer(self, line: str, addr: Tuple[str, int]) -> None:
        data = self.reply(line)
        if data is None or self._closed.is_set():
            return
        try:
            self.sock.sendto(data, addr)
        except OSError:
            pass

    def close(self) -> None:
        self._closed.set()
        self.sock.close()


@pytest.fixture
def tcp_server():
    servers: List[TcpReplyServer] = []

    def make(reply: Reply = echo) -> TcpReplyServer:
        srv = TcpReplyServer(reply).start()
        servers.append(srv)
        return srv

    yield make
    for srv in servers:
        srv.close()


@pytest.fixture
def udp_server():
    servers: List[UdpReplyServer] = []

    def make(reply: Reply = echo) -> UdpReplyServer:
        srv = UdpReplyServer(reply).start()
        servers.append(srv)
        return srv

    yield make
    for srv in servers:
        srv.close()


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((LOOPBACK, 0))
        return s.getsockname()[1]
