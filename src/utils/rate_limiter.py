"""
Request throttle for public tile servers.

Tile fetches fan out across worker threads, so the limiter is shared and
guarded by a lock: each worker reserves the next free slot and sleeps
outside the lock until its slot comes up.
"""

import logging
import threading
import time

logger = logging.getLogger(__name__)


class RateLimiter:
    """Minimum-interval limiter shared between threads."""

    def __init__(self, requests_per_second: float, name: str = ""):
        """
        Args:
            requests_per_second: Maximum sustained request rate. 0 disables limiting.
            name: Human-readable name for logging.
        """
        self.min_interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self.name = name or f"limiter({requests_per_second}/s)"
        self._next_slot = 0.0
        self._lock = threading.Lock()

    def wait(self) -> float:
        """
        Block until the caller's reserved slot is reached.

        Returns:
            Seconds waited.
        """
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.min_interval
            wait_time = slot - now

        if wait_time > 0:
            logger.debug(f"[{self.name}] Throttling: waiting {wait_time:.2f}s")
            time.sleep(wait_time)
        return wait_time

    def __enter__(self):
        self.wait()
        return self

    def __exit__(self, *args):
        pass
