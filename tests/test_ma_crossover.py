"""Tests for the moving-average crossover signal generator."""

import math

import pytest

from crossover_trader.strategies import MACrossoverStrategy, SignalType, analyze

from .conftest import BEARISH_PRICES, BULLISH_PRICES


def test_insufficient_data_waits_without_mas() -> None:
    signal = analyze([100.0] * 22)
    assert signal.signal == SignalType.WAIT
    assert signal.reason == "Insufficient data for analysis"
    assert signal.fast_ma is None
    assert signal.slow_ma is None


def test_minimum_length_produces_signal() -> None:
    strategy = MACrossoverStrategy()
    assert strategy.min_prices == 23
    signal = strategy.analyze(BULLISH_PRICES)
    assert signal.fast_ma is not None


def test_bullish_crossover() -> None:
    signal = analyze([10.0] * 22 + [20.0])
    assert signal.signal == SignalType.BUY
    assert signal.reason.startswith("Bullish crossover")


def test_bearish_crossover() -> None:
    signal = analyze([10.0] * 22 + [0.0])
    assert signal.signal == SignalType.SELL
    assert signal.reason.startswith("Bearish crossover")


def test_bullish_trend_continuation() -> None:
    signal = analyze(BULLISH_PRICES)
    assert signal.signal == SignalType.BUY
    assert signal.reason.startswith("Bullish trend")
    assert signal.fast_ma == pytest.approx(2.0)
    assert signal.slow_ma == pytest.approx(34 / 21)


def test_bearish_trend_continuation() -> None:
    signal = analyze(BEARISH_PRICES)
    assert signal.signal == SignalType.SELL
    assert signal.reason.startswith("Bearish trend")


def test_flat_series_is_converging() -> None:
    signal = analyze([5.0] * 30)
    assert signal.signal == SignalType.WAIT
    assert signal.reason.startswith("MAs converging")


def test_mas_are_unrounded_but_reason_is_rounded() -> None:
    signal = analyze(BULLISH_PRICES)
    assert signal.slow_ma != round(signal.slow_ma, 2)
    assert "(1.62)" in signal.reason
    assert signal.to_dict()["slow_ma"] == 1.62


def test_non_finite_prices_wait() -> None:
    signal = analyze([1.0] * 22 + [math.nan])
    assert signal.signal == SignalType.WAIT
    assert signal.reason == "Invalid price data for analysis"


def test_analyze_is_pure() -> None:
    prices = list(BULLISH_PRICES)
    first = analyze(prices)
    second = analyze(prices)
    assert first == second
    assert prices == BULLISH_PRICES


@pytest.mark.parametrize("fast,slow", [(0, 21), (21, 21), (30, 21), (-1, 5)])
def test_invalid_periods_raise(fast: int, slow: int) -> None:
    with pytest.raises(ValueError):
        MACrossoverStrategy(fast, slow)


def test_custom_periods() -> None:
    strategy = MACrossoverStrategy(fast_period=2, slow_period=4)
    signal = strategy.analyze([1.0, 1.0, 1.0, 1.0, 1.0, 3.0])
    assert signal.signal == SignalType.BUY
    assert signal.fast_period == 2
    assert signal.slow_period == 4


def test_strategy_info() -> None:
    info = MACrossoverStrategy().strategy_info()
    assert info["fast_period"] == 9
    assert info["slow_period"] == 21
    assert len(info["rules"]) == 2


def test_step_up_prefixes_move_from_wait_to_crossover_to_trend() -> None:
    # 23 flat bars, then a step from 1 to 2. After k bars at 2 the windows hold
    # fast = ((9 - k) + 2k) / 9 = (9 + k) / 9 and slow = (21 + k) / 21.
    series = [1.0] * 23 + [2.0] * 12

    for n in range(1, 23):
        signal = analyze(series[:n])
        assert signal.signal == SignalType.WAIT
        assert signal.reason == "Insufficient data for analysis"

    flat = analyze(series[:23])
    assert flat.signal == SignalType.WAIT
    assert flat.reason.startswith("MAs converging")
    assert flat.fast_ma == pytest.approx(1.0)
    assert flat.slow_ma == pytest.approx(1.0)

    # k = 1: previous bar had fast == slow == 1
    first = analyze(series[:24])
    assert first.signal == SignalType.BUY
    assert first.reason.startswith("Bullish crossover")
    assert first.fast_ma == pytest.approx(10 / 9)
    assert first.slow_ma == pytest.approx(22 / 21)

    for k in range(2, 10):
        signal = analyze(series[: 23 + k])
        assert signal.signal == SignalType.BUY
        assert signal.reason.startswith("Bullish trend")
        assert signal.fast_ma == pytest.approx((9 + k) / 9)
        assert signal.slow_ma == pytest.approx((21 + k) / 21)


def test_bullish_fixture_prefixes() -> None:
    # The step at bar 10 falls outside the first full window, so the first
    # analyzable prefix is already a trend: fast = 2, slow = (8 + 2 * 13) / 21.
    for n in range(1, len(BULLISH_PRICES)):
        assert analyze(BULLISH_PRICES[:n]).reason == "Insufficient data for analysis"

    signal = analyze(BULLISH_PRICES)
    assert signal.reason.startswith("Bullish trend")
    assert signal.fast_ma == pytest.approx(2.0)
    assert signal.slow_ma == pytest.approx(34 / 21)

    # Two more bars at 2 keep the trend: slow = (6 + 2 * 15) / 21
    extended = analyze(BULLISH_PRICES + [2.0, 2.0])
    assert extended.reason.startswith("Bullish trend")
    assert extended.slow_ma == pytest.approx(36 / 21)
