"""
Moving Average Crossover Strategy

Signal logic:
- Fast MA crossing above Slow MA = BUY (bullish crossover)
- Fast MA crossing below Slow MA = SELL (bearish crossover)
- Fast MA above / below Slow MA without a cross = BUY / SELL (trend continuation)
- Otherwise = WAIT

Comparisons use unrounded MA values. Rounding to 2 decimals is applied to the
reason text only, so nearly-equal averages never read as a false convergence.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd

from .indicators import sma


FAST_MA_PERIOD = 9
SLOW_MA_PERIOD = 21


class SignalType(Enum):
    """Directional trading indication"""
    BUY = "BUY"
    SELL = "SELL"
    WAIT = "WAIT"


@dataclass(frozen=True)
class Signal:
    """Result of one market analysis."""
    signal: SignalType
    reason: str
    fast_ma: Optional[float] = None
    slow_ma: Optional[float] = None
    fast_period: int = FAST_MA_PERIOD
    slow_period: int = SLOW_MA_PERIOD

    def to_dict(self) -> Dict:
        return {
            'signal': self.signal.value,
            'reason': self.reason,
            'fast_ma': None if self.fast_ma is None else round(self.fast_ma, 2),
            'slow_ma': None if self.slow_ma is None else round(self.slow_ma, 2),
            'fast_period': self.fast_period,
            'slow_period': self.slow_period,
        }


class MACrossoverStrategy:
    """
    Stateless signal generator over a closing-price series.

    Requires at least slow_period + 2 prices (oldest first); shorter series
    produce WAIT with an explanatory reason and no MA values.
    """

    name = "MA Crossover"

    def __init__(self, fast_period: int = FAST_MA_PERIOD, slow_period: int = SLOW_MA_PERIOD):
        if fast_period < 1 or slow_period < 1:
            raise ValueError(f"MA periods must be positive: fast={fast_period}, slow={slow_period}")
        if fast_period >= slow_period:
            raise ValueError(f"Fast period ({fast_period}) must be shorter than slow period ({slow_period})")

        self.fast_period = fast_period
        self.slow_period = slow_period

    @property
    def min_prices(self) -> int:
        return self.slow_period + 2

    def analyze(self, prices: Sequence[float]) -> Signal:
        """
        Analyze closing prices and generate a signal.

        Args:
            prices: Close prices, oldest first

        Returns:
            Signal with unrounded fast/slow MA values
        """
        if prices is None or len(prices) < self.min_prices:
            return self._wait("Insufficient data for analysis")

        closes = pd.Series(prices, dtype=float)
        if not np.isfinite(closes.to_numpy()).all():
            return self._wait("Invalid price data for analysis")

        fast = sma(closes, self.fast_period)
        slow = sma(closes, self.slow_period)

        curr_fast, prev_fast = float(fast.iloc[-1]), float(fast.iloc[-2])
        curr_slow, prev_slow = float(slow.iloc[-1]), float(slow.iloc[-2])

        shown_fast = round(curr_fast, 2)
        shown_slow = round(curr_slow, 2)

        if prev_fast <= prev_slow and curr_fast > curr_slow:
            signal = SignalType.BUY
            reason = f"Bullish crossover: Fast MA ({shown_fast}) crossed above Slow MA ({shown_slow})"
        elif prev_fast >= prev_slow and curr_fast < curr_slow:
            signal = SignalType.SELL
            reason = f"Bearish crossover: Fast MA ({shown_fast}) crossed below Slow MA ({shown_slow})"
        elif curr_fast > curr_slow:
            signal = SignalType.BUY
            reason = f"Bullish trend: Fast MA ({shown_fast}) above Slow MA ({shown_slow})"
        elif curr_fast < curr_slow:
            signal = SignalType.SELL
            reason = f"Bearish trend: Fast MA ({shown_fast}) below Slow MA ({shown_slow})"
        else:
            signal = SignalType.WAIT
            reason = f"MAs converging: Fast MA ({shown_fast}) = Slow MA ({shown_slow})"

        return Signal(
            signal=signal,
            reason=reason,
            fast_ma=curr_fast,
            slow_ma=curr_slow,
            fast_period=self.fast_period,
            slow_period=self.slow_period,
        )

    def _wait(self, reason: str) -> Signal:
        return Signal(
            signal=SignalType.WAIT,
            reason=reason,
            fast_period=self.fast_period,
            slow_period=self.slow_period,
        )

    def strategy_info(self) -> Dict:
        """Strategy description for display"""
        return {
            'name': self.name,
            'description': 'Simple Moving Average crossover strategy',
            'fast_period': self.fast_period,
            'slow_period': self.slow_period,
            'rules': [
                f"BUY when {self.fast_period}-MA crosses above {self.slow_period}-MA",
                f"SELL when {self.fast_period}-MA crosses below {self.slow_period}-MA",
            ],
        }

    def __repr__(self) -> str:
        return f"MACrossoverStrategy(fast={self.fast_period}, slow={self.slow_period})"


def analyze(
    prices: Sequence[float],
    fast_period: int = FAST_MA_PERIOD,
    slow_period: int = SLOW_MA_PERIOD,
) -> Signal:
    """Analyze a price series with a one-off strategy instance."""
    return MACrossoverStrategy(fast_period, slow_period).analyze(prices)
