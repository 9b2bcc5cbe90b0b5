from __future__ import annotations

import functools
import logging
from concurrent import futures
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .constants import (
    DEFAULT_BUFFER_SIZE,
    DEFAULT_CANCEL_TIMEOUT_S,
    DEFAULT_GRACE_TIMEOUT_S,
    DEFAULT_HOST,
    DEFAULT_PACING_MS,
    DEFAULT_POOL_SIZE,
    DEFAULT_ROUNDS,
    DEFAULT_TCP_PORTS,
    DEFAULT_UDP_PORT,
)
from .pool import SessionPool
from .session import LoggingSession, SessionResult, SessionStatus, TcpLoggingSession, UdpLoggingSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ClientConfig:
    host: str = DEFAULT_HOST
    tcp_ports: Tuple[int, int] = DEFAULT_TCP_PORTS
    udp_port: int = DEFAULT_UDP_PORT
    pool_size: int = DEFAULT_POOL_SIZE
    rounds: int = DEFAULT_ROUNDS
    buffer_size: int = DEFAULT_BUFFER_SIZE
    pacing_ms: int = DEFAULT_PACING_MS
    grace_timeout_s: float = DEFAULT_GRACE_TIMEOUT_S
    cancel_timeout_s: float = DEFAULT_CANCEL_TIMEOUT_S
    connect_timeout_s: Optional[float] = None

    def __post_init__(self) -> None:
        if len(self.tcp_ports) != 2:
            raise ValueError(f"expected two TCP ports, got {self.tcp_ports!r}")
        for port in (*self.tcp_ports, self.udp_port):
            if not 0 < port < 65536:
                raise ValueError(f"port out of range: {port}")
        if self.pool_size < 1:
            raise ValueError(f"pool_size must be positive, got {self.pool_size}")
        if self.rounds < 0 or self.pacing_ms < 0:
            raise ValueError("rounds and pacing_ms must be non-negative")
        if self.buffer_size < 1:
            raise ValueError(f"buffer_size must be positive, got {self.buffer_size}")
        if self.grace_timeout_s < 0 or self.cancel_timeout_s < 0:
            raise ValueError("shutdown bounds must be non-negative")


def log_result(result: SessionResult) -> None:
    if result.status is SessionStatus.COMPLETED:
        logger.info(
            "[%s] completed: %d request(s), %d reply(ies) in %.2fs",
            result.name,
            result.requests_sent,
            result.replies_read,
            result.duration_s,
        )
    elif result.status is SessionStatus.CANCELLED:
        logger.warning(
            "[%s] cancelled after %d request(s), %d reply(ies)",
            result.name,
            result.requests_sent,
            result.replies_read,
        )
    else:
        logger.error(
            "[%s] failed after %d request(s): %s",
            result.name,
            result.requests_sent,
            result.error,
            exc_info=result.error,
        )


class AppClient:
    """Runs the logging clients concurrently against the reactor."""

    def __init__(self, config: Optional[ClientConfig] = None, display: Callable[[str], None] = print):
        self.config = config or ClientConfig()
        self.display = display
        self._pool: Optional[SessionPool] = None
        self._stopped = False

    @property
    def pool(self) -> Optional[SessionPool]:
        return self._pool

    def build_sessions(self) -> List[LoggingSession]:
        cfg = self.config
        common = dict(
            rounds=cfg.rounds,
            buffer_size=cfg.buffer_size,
            pacing_ms=cfg.pacing_ms,
            display=self.display,
        )
        tcp_a, tcp_b = cfg.tcp_ports
        return [
            TcpLoggingSession("Client 1", cfg.host, tcp_a, connect_timeout_s=cfg.connect_timeout_s, **common),
            TcpLoggingSession("Client 2", cfg.host, tcp_b, connect_timeout_s=cfg.connect_timeout_s, **common),
            UdpLoggingSession("Client 3", cfg.host, cfg.udp_port, **common),
            UdpLoggingSession("Client 4", cfg.host, cfg.udp_port, **common),
        ]

    def start(self) -> None:
        if self._pool is not None:
            raise RuntimeError("client already started")
        self._pool = SessionPool(self.config.pool_size)
        for session in self.build_sessions():
            fut = self._pool.submit(session)
            fut.add_done_callback(functools.partial(self._on_done, session.name))
            logger.info("[%s] submitted (%s -> %s:%d)", session.name, session.transport.value, session.host, session.port)

    def stop(self) -> List[SessionResult]:
        """Stop the clients. Blocks for at most the grace and cancel bounds."""
        if self._pool is None:
            return []
        if not self._stopped:
            self._stopped = True
            stuck = self._pool.shutdown(self.config.grace_timeout_s, self.config.cancel_timeout_s)
            if stuck:
                logger.warning("giving up on %d session(s): %s", len(stuck), ", ".join(s.name for s in stuck))
        return self.results()

    def results(self) -> List[SessionResult]:
        if self._pool is None:
            return []
        out = []
        for _, fut in self._pool.entries:
            if fut.done() and not fut.cancelled() and fut.exception() is None:
                out.append(fut.result())
        return out

    def _on_done(self, name: str, fut: futures.Future) -> None:
        if fut.cancelled():
            logger.warning("[%s] dropped before it started", name)
            return
        exc = fut.exception()
        if exc is not None:
            logger.error("[%s] crashed", name, exc_info=exc)
            return
        log_result(fut.result())

    def __enter__(self) -> "AppClient":
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
