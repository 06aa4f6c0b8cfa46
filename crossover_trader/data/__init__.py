"""Exchange data access: OKX REST client, rate limiting and retry."""

from .rate_limiter import RateLimiter
from .retry import RetryPolicy, TRANSIENT_KINDS
from .okx_client import OkxClient

__all__ = [
    'RateLimiter',
    'RetryPolicy',
    'TRANSIENT_KINDS',
    'OkxClient',
]
