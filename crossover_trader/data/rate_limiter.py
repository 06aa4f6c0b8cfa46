"""
Fixed-interval rate limiter

Guarantees a minimum spacing between consecutive calls. Used per-request by
the exchange client and between instruments by the cycle scheduler.
"""

import threading
import time
from typing import Callable


class RateLimiter:
    """
    Fixed-interval gate.

    The first call passes immediately; each later call waits until at least
    `min_interval` seconds have elapsed since the previous one was let through.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize rate limiter.

        Args:
            min_interval: Minimum seconds between calls (0 disables waiting)
            clock: Monotonic time source
            sleep: Sleep function
        """
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")

        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call = None
        self._lock = threading.Lock()

    def wait(self) -> float:
        """
        Block until the next call is allowed.

        Returns:
            Seconds slept
        """
        with self._lock:
            waited = 0.0
            now = self._clock()
            if self._last_call is not None:
                elapsed = now - self._last_call
                if elapsed < self.min_interval:
                    waited = self.min_interval - elapsed
                    self._sleep(waited)
                    now = self._clock()
            self._last_call = now
            return waited

    def reset(self):
        """Forget the previous call so the next one passes immediately."""
        with self._lock:
            self._last_call = None

    def __repr__(self) -> str:
        return f"RateLimiter(min_interval={self.min_interval})"
