from __future__ import annotations

import socket
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

from .constants import WAKEUP_POLL_S


@dataclass(frozen=True, slots=True)
class Pacing:
    delay_ms: int = 0

    def sleep(self, wakeup: threading.Event) -> bool:
        """Sleep for the pacing delay. Returns True if woken early."""
        if self.delay_ms <= 0:
            return wakeup.is_set()
        return wakeup.wait(self.delay_ms / 1000.0)


def resolve_datagram_target(host: str, port: int) -> Tuple[str, int]:
    infos = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_DGRAM)
    return infos[0][4][:2]


class _Endpoint:
    def __init__(self, sock: socket.socket):
        self.sock = sock

    def interrupt(self) -> None:
        """Wake any thread blocked on this socket without releasing the fd."""
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            # unconnected datagram sockets report ENOTCONN but are still woken
            pass

    def close(self) -> None:
        self.sock.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class TcpConnection(_Endpoint):
    @classmethod
    def connect(
        cls,
        host: str,
        port: int,
        timeout_s: float | None = None,
    ) -> "TcpConnection":
        sock = socket.create_connection((host, port), timeout=timeout_s)
        # the connect timeout must not leak into reply reads
        sock.settimeout(None)
        return cls(sock)

    def send_line(self, data: bytes, terminator: bytes = b"\n") -> None:
        self.sock.sendall(data + terminator)

    def recv(self, bufsize: int) -> bytes:
        return self.sock.recv(bufsize)


class UdpEndpoint(_Endpoint):
    def __init__(self, sock: socket.socket, wakeup: threading.Event | None = None):
        super().__init__(sock)
        self.wakeup = wakeup

    @classmethod
    def sending(cls, wakeup: threading.Event | None = None, poll_s: float = WAKEUP_POLL_S) -> "UdpEndpoint":
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        # shutdown() only wakes an unconnected datagram socket on Linux
        if wakeup is not None:
            sock.settimeout(poll_s)
        return cls(sock, wakeup)

    def sendto(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.sock.sendto(data, addr)

    def recvfrom(self, bufsize: int) -> Tuple[bytes, Optional[Tuple[str, int]]]:
        """Receive one datagram. Returns an empty datagram once woken."""
        while True:
            try:
                return self.sock.recvfrom(bufsize)
            except socket.timeout:
                if self.wakeup is not None and self.wakeup.is_set():
                    return b"", None
