"""Analytics module for Crossover Trader."""

from .trade_history import TradeHistory

__all__ = [
    'TradeHistory',
]
