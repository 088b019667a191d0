"""Single-use nonce registry with a background expiry sweep.

A nonce is recorded on first redemption with the time its token stops
verifying (``exp`` plus the checker leeway); any later redemption of the same
nonce fails until the record is swept, which happens only after that time.
State is process-local.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)

SHUTDOWN_JOIN_TIMEOUT_SEC = 5.0


class NonceRegistry:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._seen: dict[str, float] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def redeem(self, nonce: str, exp: float) -> bool:
        """Record ``nonce``. Returns False if it was already redeemed."""
        with self._lock:
            if nonce in self._seen:
                return False
            self._seen[nonce] = float(exp)
            return True

    def sweep(self) -> int:
        """Evict nonces whose expiry has passed. Returns the eviction count."""
        now = self._clock()
        with self._lock:
            expired = [n for n, exp in self._seen.items() if exp <= now]
            for nonce in expired:
                del self._seen[nonce]
        if expired:
            logger.debug("Swept %d expired nonce(s)", len(expired))
        return len(expired)

    def __contains__(self, nonce: str) -> bool:
        with self._lock:
            return nonce in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    # -- background sweep ---------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _sweep_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                self.sweep()
            except Exception as e:
                logger.error("Nonce sweep failed: %s", e)

    def start(self, interval: float) -> None:
        """Start the sweep thread (no-op if already running)."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._sweep_loop,
            args=(interval,),
            name="nonce-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.info("Nonce sweeper started (interval %.1fs)", interval)

    def stop(self) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout=SHUTDOWN_JOIN_TIMEOUT_SEC)
        if self._thread.is_alive():
            logger.warning("Nonce sweeper did not stop within %.1fs", SHUTDOWN_JOIN_TIMEOUT_SEC)
        else:
            logger.info("Nonce sweeper stopped")
        self._thread = None
