"""
Retry with exponential backoff

Retries branch on the ErrorKind tag carried by TraderError, so only failures
the connector classified as transient are repeated.
"""

import time
from typing import Callable, FrozenSet, Iterable, Optional, TypeVar
from loguru import logger

from ..exceptions import ErrorKind, TraderError
from .rate_limiter import RateLimiter


T = TypeVar("T")

TRANSIENT_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.NETWORK})


class RetryPolicy:
    """
    Exponential backoff over tagged errors.

    Delay before retry n (0-based) is base_delay * 2 ** n.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        retry_on: Iterable[ErrorKind] = TRANSIENT_KINDS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize retry policy.

        Args:
            max_retries: Total attempts, including the first
            base_delay: Delay before the first retry in seconds
            retry_on: Error kinds that are retried
            sleep: Sleep function
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")

        self.max_retries = max_retries
        self.base_delay = base_delay
        self.retry_on: FrozenSet[ErrorKind] = frozenset(retry_on)
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)

    def with_kinds(self, retry_on: Iterable[ErrorKind]) -> "RetryPolicy":
        """Copy of this policy retrying a different set of kinds"""
        return RetryPolicy(self.max_retries, self.base_delay, retry_on, self._sleep)

    def call(self, func: Callable[[], T], limiter: Optional[RateLimiter] = None, label: str = "request") -> T:
        """
        Call func, retrying on transient errors.

        Args:
            func: Zero-argument callable
            limiter: Rate limiter consulted before every attempt
            label: Name used in log messages

        Returns:
            Function result

        Raises:
            TraderError: Non-retryable error, or the last error once attempts run out
        """
        for attempt in range(self.max_retries):
            try:
                if limiter is not None:
                    limiter.wait()
                return func()
            except TraderError as e:
                if e.kind not in self.retry_on:
                    raise
                if attempt == self.max_retries - 1:
                    logger.error(f"{label} failed after {self.max_retries} attempts: {e}")
                    raise

                wait_time = self.delay_for(attempt)
                logger.warning(
                    f"{label} failed with {e.kind.value} (attempt {attempt + 1}/{self.max_retries}): {e}. "
                    f"Retrying in {wait_time}s..."
                )
                self._sleep(wait_time)

    def __repr__(self) -> str:
        kinds = sorted(k.value for k in self.retry_on)
        return f"RetryPolicy(max_retries={self.max_retries}, base_delay={self.base_delay}, retry_on={kinds})"
