"""Fixed-window soft rate limiting.

Limits are advisory: ``hit`` reports whether the caller is over its limit and
the caller decides what to do. The broker only logs. Counters live in this
process; a multi-instance deployment would need a shared TTL store.

Expired windows are dropped every ``sweep_every`` hits, so the map holds
roughly the keys seen within the longest window.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

SWEEP_EVERY_HITS = 256


@dataclass
class _Window:
    started_at: float
    length: float
    count: int = 0

    def expired(self, now: float) -> bool:
        return now - self.started_at >= self.length


class SoftRateLimiter:
    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_every: int = SWEEP_EVERY_HITS,
    ):
        self._clock = clock
        self._sweep_every = max(1, sweep_every)
        self._windows: dict[str, _Window] = {}
        self._hits = 0
        self._lock = threading.Lock()

    def hit(self, key: str, limit: int, window_seconds: float) -> bool:
        """Count one request for ``key``. Returns False once over ``limit``."""
        now = self._clock()
        with self._lock:
            self._hits += 1
            if self._hits % self._sweep_every == 0:
                self._drop_expired(now)
            window = self._windows.get(key)
            if window is None or window.expired(now):
                window = _Window(started_at=now, length=window_seconds)
                self._windows[key] = window
            window.count += 1
            return window.count <= limit

    def count(self, key: str) -> int:
        with self._lock:
            window = self._windows.get(key)
            if window is None or window.expired(self._clock()):
                return 0
            return window.count

    def _drop_expired(self, now: float) -> int:
        expired = [k for k, w in self._windows.items() if w.expired(now)]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Dropped %d expired rate-limit window(s)", len(expired))
        return len(expired)

    def sweep(self) -> int:
        """Drop expired windows. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            return self._drop_expired(now)

    def __len__(self) -> int:
        return len(self._windows)
