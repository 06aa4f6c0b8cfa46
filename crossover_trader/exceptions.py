"""
Error taxonomy for the trading engine.

Every error carries an explicit ErrorKind set where the error is raised.
Retry decisions branch on that tag, never on message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Failure categories"""
    RATE_LIMITED = "RATE_LIMITED"      # Exchange refused the request, safe to retry later
    NETWORK = "NETWORK"                # Transport failure, timeout, 5xx
    REJECTED = "REJECTED"              # Exchange answered with a business error
    CONFIGURATION = "CONFIGURATION"    # Credentials or settings missing
    INVARIANT = "INVARIANT"            # Malformed state data


class TraderError(Exception):
    """Base class for all engine errors."""

    default_kind = ErrorKind.REJECTED

    def __init__(self, message: str, kind: Optional[ErrorKind] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.code = code

    def __str__(self) -> str:
        if self.code:
            return f"{self.message} (code: {self.code})"
        return self.message


class ConfigurationError(TraderError):
    """Exchange credentials are absent; a cycle refuses to run."""
    default_kind = ErrorKind.CONFIGURATION


class NetworkError(TraderError):
    """Transient connector-level failure. Kind is NETWORK or RATE_LIMITED."""
    default_kind = ErrorKind.NETWORK


class ExchangeError(TraderError):
    """Non-success response with a business reason. Not retried."""
    default_kind = ErrorKind.REJECTED


class OrderError(TraderError):
    """Order rejected by the exchange."""
    default_kind = ErrorKind.REJECTED


class StateInvariantViolation(TraderError):
    """Position or price data that would break the state model."""
    default_kind = ErrorKind.INVARIANT
