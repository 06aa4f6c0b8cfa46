"""Live trading engine for Crossover Trader.

Modules:
- exchange_interface: Abstract exchange API and its data types
- state_store: In-memory engine state (cooldowns, positions, logs, trade config)
- execution_pipeline: Per-instrument analyze/decide/order flow
- cycle_scheduler: Sequential pass over all instruments
- engine: Timer loop and manual position management
- simulated_exchange: Paper trading exchange
- trade_config_file: Trade config persistence
"""
from .exchange_interface import (
    ExchangeConnector, PricePoint, Ticker, StepResult, OrderReceipt, AccountBalance, ExchangePosition,
)
from .state_store import StateStore, InstrumentState, Position, TradeConfig, LogEntry, PositionUpdate
from .execution_pipeline import ExecutionPipeline, InstrumentResult
from .cycle_scheduler import CycleScheduler, CycleReport
from .simulated_exchange import SimulatedExchange
from .trade_config_file import TradeConfigFile
from .engine import TradingEngine, build_engine

__all__ = [
    'ExchangeConnector', 'PricePoint', 'Ticker', 'StepResult', 'OrderReceipt',
    'AccountBalance', 'ExchangePosition',
    'StateStore', 'InstrumentState', 'Position', 'TradeConfig', 'LogEntry', 'PositionUpdate',
    'ExecutionPipeline', 'InstrumentResult',
    'CycleScheduler', 'CycleReport',
    'SimulatedExchange', 'TradeConfigFile',
    'TradingEngine', 'build_engine',
]
