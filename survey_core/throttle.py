from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .config import (
    GLOBAL_MAX_REQUESTS,
    GLOBAL_WINDOW_SEC,
    SESSION_MAX_REQUESTS,
    SESSION_STALE_SEC,
    SESSION_WINDOW_SEC,
)
from .errors import ThrottledError
from .sessions import SessionRegistry

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThrottleStatus:
    session_id: str
    requests_in_window: int
    max_requests: int
    window_ms: int
    next_reset_at: Optional[float] = None

    def to_dict(self) -> dict:
        out = {
            "sessionId": self.session_id,
            "requestsInWindow": self.requests_in_window,
            "maxRequests": self.max_requests,
            "windowMs": self.window_ms,
        }
        if self.next_reset_at is not None:
            out["nextResetAt"] = int(self.next_reset_at * 1000)
        return out


class ThrottlingGate:
    """Admits or rejects LLM-bound requests.

    The origin gate (large budget, long window) is applied before the
    per-session gate. A request that passes the origin gate counts against
    the origin budget even when the session gate then rejects it.
    """

    def __init__(
        self,
        max_requests: int = SESSION_MAX_REQUESTS,
        window: float = SESSION_WINDOW_SEC,
        global_max: int = GLOBAL_MAX_REQUESTS,
        global_window: float = GLOBAL_WINDOW_SEC,
        stale_after: float = SESSION_STALE_SEC,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = int(max_requests)
        self.global_max = int(global_max)
        self.stale_after = float(stale_after)
        self.clock = clock
        self.sessions = SessionRegistry(window=window, clock=clock)
        self.origins = SessionRegistry(window=global_window, clock=clock)

    def new_session(self) -> str:
        return self.sessions.create()

    def admit(self, session_id: str, origin: Optional[str] = None, now: Optional[float] = None) -> int:
        """Record one request or raise :class:`ThrottledError`. Returns the session count."""
        now = self.clock() if now is None else now
        if origin:
            ok, _, retry = self.origins.admit(origin, self.global_max, now)
            if not ok:
                log.info("throttled origin=%s limit=%d retry_after=%.1f", origin, self.global_max, retry)
                raise ThrottledError("global", retry, self.global_max, self.origins.window)
        ok, count, retry = self.sessions.admit(session_id, self.max_requests, now)
        if not ok:
            log.info("throttled session=%s count=%d retry_after=%.1f", session_id, count, retry)
            raise ThrottledError("session", retry, self.max_requests, self.sessions.window)
        log.debug("admitted session=%s count=%d", session_id, count)
        return count

    def status(self, session_id: str, now: Optional[float] = None) -> ThrottleStatus:
        now = self.clock() if now is None else now
        return ThrottleStatus(
            session_id=session_id,
            requests_in_window=self.sessions.count_in_window(session_id, now),
            max_requests=self.max_requests,
            window_ms=int(self.sessions.window * 1000),
            next_reset_at=self.sessions.next_reset_at(session_id, now),
        )

    def sweep(self, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        removed = self.sessions.sweep(now, self.stale_after)
        removed += self.origins.sweep(now, max(self.stale_after, self.origins.window))
        return removed

    @property
    def active_sessions(self) -> int:
        return len(self.sessions)
