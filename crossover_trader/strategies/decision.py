"""Decision policy: turns a signal plus the last position into a trade verdict.

Direction-aware but size-unaware; order sizing comes from the trade config.
"""
from dataclasses import dataclass
from typing import Optional, Union

from .ma_crossover import Signal, SignalType


@dataclass(frozen=True)
class TradeDecision:
    """Whether to trade, and on which side ('buy' or 'sell')."""
    should_trade: bool
    reason: str
    side: Optional[str] = None


def decide(signal: Union[Signal, SignalType], last_position: Optional[str]) -> TradeDecision:
    """
    Decide whether to trade.

    Args:
        signal: Current signal (or bare signal type)
        last_position: 'long', 'short' or None

    Returns:
        TradeDecision
    """
    kind = signal.signal if isinstance(signal, Signal) else signal

    if kind == SignalType.WAIT:
        return TradeDecision(should_trade=False, reason="No clear signal")

    # No pyramiding in the same direction
    if kind == SignalType.BUY and last_position == 'long':
        return TradeDecision(should_trade=False, reason="Already in long position")
    if kind == SignalType.SELL and last_position == 'short':
        return TradeDecision(should_trade=False, reason="Already in short position")

    side = 'buy' if kind == SignalType.BUY else 'sell'
    return TradeDecision(should_trade=True, side=side, reason=f"{kind.value} signal confirmed")
