"""
Helper utilities for Crossover Trader
"""

import math
from datetime import datetime, timezone
from decimal import Decimal, ROUND_DOWN
from typing import Any


def format_currency(amount: float, currency: str = "USDT") -> str:
    """Format amount as currency"""
    return f"${amount:,.2f}" if currency == "USD" else f"{amount:,.2f} {currency}"


def format_percentage(value: float, decimals: int = 2) -> str:
    """Format a percentage value with sign"""
    sign = "+" if value >= 0 else ""
    return f"{sign}{value:.{decimals}f}%"


def utc_now() -> datetime:
    """Get current UTC time"""
    return datetime.now(timezone.utc)


def timestamp_to_iso(ts: float) -> str:
    """Convert epoch seconds to an ISO-8601 UTC string"""
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def is_positive_number(value: Any) -> bool:
    """True for finite numbers > 0 (bools excluded)"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


def validate_instrument(inst_id: str) -> str:
    """
    Validate and normalize an OKX instrument id

    Args:
        inst_id: Instrument (e.g., "btc-usdt", "BTC/USDT", "BTC_USDT")

    Returns:
        Normalized spot-style id (e.g., "BTC-USDT")
    """
    normalized = inst_id.strip().upper().replace("/", "-").replace("_", "-")
    if normalized.endswith("-SWAP"):
        normalized = normalized[: -len("-SWAP")]

    parts = normalized.split("-")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Invalid instrument format: {inst_id}")

    return normalized


def swap_instrument(inst_id: str) -> str:
    """Perpetual swap id for an instrument (BTC-USDT -> BTC-USDT-SWAP)"""
    return f"{validate_instrument(inst_id)}-SWAP"


def round_down_to_step(value: float, step: float) -> str:
    """
    Round a quantity down to a lot step and format it for the exchange

    Args:
        value: Raw quantity
        step: Lot size (e.g., 1, 0.1, 0.01)

    Returns:
        Quantity string with the step's precision
    """
    step_dec = Decimal(str(step))
    units = (Decimal(str(value)) / step_dec).to_integral_value(rounding=ROUND_DOWN)
    if step_dec == step_dec.to_integral_value():
        return str(int(units * step_dec))
    return str((units * step_dec).quantize(step_dec))
