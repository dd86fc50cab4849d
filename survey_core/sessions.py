"""In-process throttling counters keyed by session (or origin).

The registry is scoped to a single process. Every read and mutation goes
through one lock so that the check-then-record in :meth:`SessionRegistry.admit`
is atomic: two concurrent requests can never both see "under limit" when only
one slot remains.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .config import SESSION_STALE_SEC, SESSION_WINDOW_SEC, SWEEP_INTERVAL_SEC

log = logging.getLogger(__name__)


@dataclass
class Session:
    created_at: float
    requests: List[float] = field(default_factory=list)

    def prune(self, now: float, window: float) -> None:
        self.requests = [ts for ts in self.requests if now - ts < window]

    def in_window(self, now: float, window: float) -> List[float]:
        return [ts for ts in self.requests if now - ts < window]


class SessionRegistry:
    def __init__(self, window: float = SESSION_WINDOW_SEC, clock: Callable[[], float] = time.time):
        self.window = float(window)
        self.clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def create(self) -> str:
        """Issue a new opaque session id; counters are created lazily on first record."""
        return str(uuid.uuid4())

    def _record_locked(self, session_id: str, now: float) -> int:
        sess = self._sessions.get(session_id)
        if sess is None:
            sess = Session(created_at=now)
            self._sessions[session_id] = sess
        sess.prune(now, self.window)
        sess.requests.append(now)
        return len(sess.requests)

    def record(self, session_id: str, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        with self._lock:
            return self._record_locked(session_id, now)

    def count_in_window(self, session_id: str, now: Optional[float] = None) -> int:
        now = self.clock() if now is None else now
        with self._lock:
            sess = self._sessions.get(session_id)
            if sess is None:
                return 0
            return len(sess.in_window(now, self.window))

    def admit(self, session_id: str, limit: int, now: Optional[float] = None) -> Tuple[bool, int, float]:
        """Atomically check the window and record the request if under `limit`.

        Returns ``(admitted, count, retry_after)``. When denied, nothing is
        recorded and `retry_after` is the time until the oldest in-window
        timestamp expires.
        """
        now = self.clock() if now is None else now
        with self._lock:
            sess = self._sessions.get(session_id)
            current = sess.in_window(now, self.window) if sess is not None else []
            if len(current) >= limit:
                if sess is not None:
                    sess.requests = current
                retry_after = (current[0] + self.window - now) if current else self.window
                return False, len(current), retry_after
            return True, self._record_locked(session_id, now), 0.0

    def next_reset_at(self, session_id: str, now: Optional[float] = None) -> Optional[float]:
        """When the newest in-window request leaves the window (epoch seconds)."""
        now = self.clock() if now is None else now
        with self._lock:
            sess = self._sessions.get(session_id)
            if sess is None:
                return None
            current = sess.in_window(now, self.window)
            if not current:
                return None
            return max(current) + self.window

    def sweep(self, now: Optional[float] = None, stale_after: float = SESSION_STALE_SEC) -> int:
        """Drop every session without a timestamp newer than `stale_after` seconds."""
        now = self.clock() if now is None else now
        cutoff = now - stale_after
        with self._lock:
            stale = [sid for sid, sess in self._sessions.items()
                     if not any(ts > cutoff for ts in sess.requests)]
            for sid in stale:
                del self._sessions[sid]
            remaining = len(self._sessions)
        log.info("sweep removed=%d active=%d", len(stale), remaining)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()


class Sweeper:
    """Runs `sweep_fn` on a fixed interval in a daemon thread, independent of traffic."""

    def __init__(self, sweep_fn: Callable[[], object], interval: float = SWEEP_INTERVAL_SEC):
        self.sweep_fn = sweep_fn
        self.interval = float(interval)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="session-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.sweep_fn()
            except Exception:
                log.exception("session sweep failed")
