"""
Crossover Trader
Multi-instrument moving-average crossover trading engine for OKX perpetual swaps
"""

__version__ = "0.1.0"
