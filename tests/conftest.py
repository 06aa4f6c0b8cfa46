"""Pytest fixtures: fake clocks, price series and a paper exchange."""

from typing import List

import pytest

from crossover_trader.analytics.trade_history import TradeHistory
from crossover_trader.exceptions import NetworkError
from crossover_trader.live.execution_pipeline import ExecutionPipeline
from crossover_trader.live.simulated_exchange import SimulatedExchange
from crossover_trader.live.state_store import StateStore


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FlakyExchange(SimulatedExchange):
    """Paper exchange whose candle endpoint fails for selected instruments."""

    def __init__(self, failing: List[str], **kwargs) -> None:
        super().__init__(**kwargs)
        self.failing = set(failing)

    def get_candles(self, inst_id, timeframe="1m", limit=100):
        if inst_id in self.failing:
            raise NetworkError(f"Connection reset while fetching {inst_id}")
        return super().get_candles(inst_id, timeframe, limit)


# Fast MA stays above slow MA: BUY (trend)
BULLISH_PRICES = [1.0] * 10 + [2.0] * 13
# Fast MA stays below slow MA: SELL (trend)
BEARISH_PRICES = [2.0] * 10 + [1.0] * 13


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> StateStore:
    return StateStore(cooldown_seconds=30, max_logs=100, clock=clock)


@pytest.fixture
def history(clock: FakeClock) -> TradeHistory:
    return TradeHistory(max_trades=1000, clock=clock)


@pytest.fixture
def exchange() -> SimulatedExchange:
    ex = SimulatedExchange(initial_balance=1000.0)
    ex.set_candles("BTC-USDT", BULLISH_PRICES)
    return ex


@pytest.fixture
def pipeline(exchange: SimulatedExchange, store: StateStore, history: TradeHistory) -> ExecutionPipeline:
    return ExecutionPipeline(exchange, store, trade_history=history)
