from __future__ import annotations

import logging
import threading
from concurrent import futures
from typing import List, Protocol, Set, Tuple

from .constants import DEFAULT_CANCEL_TIMEOUT_S, DEFAULT_GRACE_TIMEOUT_S, DEFAULT_POOL_SIZE
from .session import SessionResult

logger = logging.getLogger(__name__)


class Session(Protocol):
    name: str

    def run(self) -> SessionResult: ...

    def cancel(self) -> None: ...


class SessionPool:
    """Fixed-size worker pool; every session holds one worker until it returns."""

    def __init__(self, size: int = DEFAULT_POOL_SIZE):
        if size < 1:
            raise ValueError(f"pool size must be positive, got {size}")
        self.size = size
        self._executor = futures.ThreadPoolExecutor(max_workers=size, thread_name_prefix="session")
        self._lock = threading.Lock()
        self._entries: List[Tuple[Session, futures.Future]] = []
        self._active = 0
        self.peak_active = 0

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    @property
    def entries(self) -> List[Tuple[Session, futures.Future]]:
        with self._lock:
            return list(self._entries)

    def submit(self, session: Session) -> futures.Future:
        fut = self._executor.submit(self._run, session)
        with self._lock:
            self._entries.append((session, fut))
        return fut

    def _run(self, session: Session) -> SessionResult:
        with self._lock:
            self._active += 1
            self.peak_active = max(self.peak_active, self._active)
        try:
            return session.run()
        finally:
            with self._lock:
                self._active -= 1

    def await_all(self, timeout: float | None = None) -> Tuple[Set[futures.Future], Set[futures.Future]]:
        # dropped work never reaches CANCELLED_AND_NOTIFIED
        live = [fut for _, fut in self.entries if not fut.cancelled()]
        done, not_done = futures.wait(live, timeout=timeout)
        return done, not_done

    def shutdown(
        self,
        grace_timeout_s: float = DEFAULT_GRACE_TIMEOUT_S,
        cancel_timeout_s: float = DEFAULT_CANCEL_TIMEOUT_S,
    ) -> List[Session]:
        """Two-phase bounded shutdown. Returns the sessions that never stopped."""
        self._executor.shutdown(wait=False, cancel_futures=True)

        _, pending = self.await_all(grace_timeout_s)
        if not pending:
            return []

        logger.warning(
            "%d session(s) still running after %.1fs grace; cancelling",
            len(pending),
            grace_timeout_s,
        )
        for session, fut in self.entries:
            if fut not in pending or fut.cancel():
                continue
            try:
                session.cancel()
            except Exception:
                logger.exception("[%s] cancellation failed", session.name)

        _, pending = self.await_all(cancel_timeout_s)
        stuck = [session for session, fut in self.entries if fut in pending and not fut.cancelled()]
        for session in stuck:
            logger.warning("[%s] still running %.1fs after cancellation", session.name, cancel_timeout_s)
        return stuck
