"""Strategies module for Crossover Trader."""

from .ma_crossover import MACrossoverStrategy, Signal, SignalType, analyze
from .decision import TradeDecision, decide
from . import indicators

__all__ = [
    'MACrossoverStrategy',
    'Signal',
    'SignalType',
    'analyze',
    'TradeDecision',
    'decide',
    'indicators',
]
