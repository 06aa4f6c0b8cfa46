"""
Technical Indicators

Vectorized technical indicator calculations for strategy use.
"""

import pandas as pd


def sma(data: pd.Series, period: int) -> pd.Series:
    """
    Simple Moving Average.

    Value at index i is the mean of the `period` most recent values up to and
    including i; the first period-1 values are NaN.

    Args:
        data: Price series
        period: MA period

    Returns:
        SMA series
    """
    return data.rolling(window=period).mean()
