from __future__ import annotations

import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .constants import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_PACING_MS,
    DEFAULT_ROUNDS,
    LINE_TERMINATOR,
    REQUEST_FORMAT,
)
from .net import Pacing, TcpConnection, UdpEndpoint, resolve_datagram_target

logger = logging.getLogger(__name__)


class Transport(str, enum.Enum):
    STREAM = "stream"
    DATAGRAM = "datagram"


class SessionStatus(str, enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SessionCancelled(Exception):
    pass


def log_request(name: str, index: int) -> str:
    return REQUEST_FORMAT.format(name=name, index=index)


@dataclass(frozen=True, slots=True)
class SessionResult:
    name: str
    transport: Transport
    status: SessionStatus
    requests_sent: int
    replies_read: int
    replies: Tuple[bytes, ...] = ()
    error: Optional[BaseException] = None
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is SessionStatus.COMPLETED

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "transport": self.transport.value,
            "status": self.status.value,
            "requests_sent": self.requests_sent,
            "replies_read": self.replies_read,
            "error": repr(self.error) if self.error is not None else None,
            "seconds": self.duration_s,
        }


class LoggingSession:
    """One client's paced request/reply loop over a single owned socket.

    Each round sends one request and performs exactly one reply read before
    the next request goes out. There is no cancellation check between rounds:
    ``cancel()`` wakes whichever blocking point the session is parked on, and
    the session aborts once that call returns.
    """

    transport: Transport

    def __init__(
        self,
        name: str,
        host: str,
        port: int,
        *,
        rounds: int = DEFAULT_ROUNDS,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        pacing_ms: int = DEFAULT_PACING_MS,
        display: Callable[[str], None] = print,
    ):
        self.name = name
        self.host = host
        self.port = port
        self.rounds = rounds
        self.buffer_size = buffer_size
        self.pacing = Pacing(pacing_ms)
        self.display = display

        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._endpoint = None
        self._sent = 0
        self._replies: list[bytes] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r}, {self.host}:{self.port})"

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()
        with self._lock:
            endpoint = self._endpoint
        if endpoint is not None:
            endpoint.interrupt()

    def run(self) -> SessionResult:
        start = time.monotonic()
        status = SessionStatus.COMPLETED
        error: Optional[BaseException] = None
        try:
            self._run_rounds()
        except SessionCancelled as e:
            status, error = SessionStatus.CANCELLED, e
        except OSError as e:
            if self.cancelled:
                status = SessionStatus.CANCELLED
            else:
                status = SessionStatus.FAILED
            error = e

        return SessionResult(
            name=self.name,
            transport=self.transport,
            status=status,
            requests_sent=self._sent,
            replies_read=len(self._replies),
            replies=tuple(self._replies),
            error=error,
            duration_s=time.monotonic() - start,
        )

    def _run_rounds(self) -> None:
        with self._open() as endpoint:
            self._attach(endpoint)
            try:
                for i in range(self.rounds):
                    payload = log_request(self.name, i).encode("utf-8")
                    self._send(endpoint, payload)
                    self._sent += 1
                    logger.debug("[%s] sent request %d", self.name, i)

                    reply = self._receive(endpoint)
                    if self.cancelled:
                        raise SessionCancelled(f"{self.name} cancelled awaiting reply {i}")
                    self._replies.append(reply)
                    self._show(i, reply)

                    if self.pacing.sleep(self._cancelled):
                        raise SessionCancelled(f"{self.name} cancelled after round {i}")
            finally:
                self._attach(None)

    def _attach(self, endpoint) -> None:
        with self._lock:
            self._endpoint = endpoint
        # a cancel that raced the socket open still has to land
        if endpoint is not None and self.cancelled:
            endpoint.interrupt()

    def _show(self, index: int, reply: bytes) -> None:
        if not reply:
            logger.info("[%s] read zero bytes (round %d)", self.name, index)
            return
        logger.debug("[%s] reply %d: %d bytes", self.name, index, len(reply))
        self.display(reply.decode("utf-8", errors="replace"))

    def _open(self):
        raise NotImplementedError

    def _send(self, endpoint, payload: bytes) -> None:
        raise NotImplementedError

    def _receive(self, endpoint) -> bytes:
        raise NotImplementedError


class TcpLoggingSession(LoggingSession):
    transport = Transport.STREAM

    def __init__(self, name: str, host: str, port: int, *, connect_timeout_s: float | None = None, **kwargs):
        super().__init__(name, host, port, **kwargs)
        self.connect_timeout_s = connect_timeout_s

    def _open(self) -> TcpConnection:
        conn = TcpConnection.connect(self.host, self.port, timeout_s=self.connect_timeout_s)
        logger.debug("[%s] connected to %s:%d", self.name, self.host, self.port)
        return conn

    def _send(self, endpoint: TcpConnection, payload: bytes) -> None:
        endpoint.send_line(payload, LINE_TERMINATOR)

    def _receive(self, endpoint: TcpConnection) -> bytes:
        return endpoint.recv(self.buffer_size)


class UdpLoggingSession(LoggingSession):
    transport = Transport.DATAGRAM

    def __init__(self, name: str, host: str, port: int, **kwargs):
        super().__init__(name, host, port, **kwargs)
        self.remote: Optional[Tuple[str, int]] = None
        self._resolve_error: Optional[OSError] = None
        try:
            self.remote = resolve_datagram_target(host, port)
        except OSError as e:
            self._resolve_error = e

    def _open(self) -> UdpEndpoint:
        if self._resolve_error is not None:
            raise self._resolve_error
        return UdpEndpoint.sending(wakeup=self._cancelled)

    def _send(self, endpoint: UdpEndpoint, payload: bytes) -> None:
        endpoint.sendto(payload, self.remote)

    def _receive(self, endpoint: UdpEndpoint) -> bytes:
        data, _ = endpoint.recvfrom(self.buffer_size)
        return data
