"""Per-instrument execution pipeline.

One run walks a single instrument through:
cooldown check -> fetch market data -> analyze -> decide -> [order] -> state update.

Every failure ends the run for that instrument only. The caller gets an
InstrumentResult and the activity log gets an error entry; nothing is raised.
"""
from dataclasses import dataclass
from typing import Dict, Optional

from loguru import logger

from ..analytics.trade_history import TradeHistory
from ..exceptions import StateInvariantViolation, TraderError
from ..strategies.decision import decide
from ..strategies.ma_crossover import MACrossoverStrategy
from ..utils.helpers import is_positive_number
from .exchange_interface import ExchangeConnector, OrderReceipt
from .state_store import Position, StateStore, TradeConfig


@dataclass
class InstrumentResult:
    """Outcome of one pipeline run."""
    inst_id: str
    executed: bool
    reason: Optional[str] = None
    side: Optional[str] = None
    price: Optional[float] = None
    order_id: Optional[str] = None
    signal: Optional[str] = None
    mode: Optional[str] = None

    def to_dict(self) -> Dict:
        return {k: v for k, v in self.__dict__.items() if v is not None or k in ('inst_id', 'executed')}


class ExecutionPipeline:
    """Runs the trade decision for one instrument at a time."""

    def __init__(
        self,
        connector: ExchangeConnector,
        store: StateStore,
        strategy: Optional[MACrossoverStrategy] = None,
        trade_history: Optional[TradeHistory] = None,
        timeframe: str = "1m",
        candle_limit: int = 100,
    ):
        """
        Args:
            connector: Exchange used for market data and orders
            store: Shared engine state
            strategy: Signal generator (9/21 SMA crossover by default)
            trade_history: Optional sink for executed and closed trades
            timeframe: Candle bar size
            candle_limit: Candles fetched per analysis
        """
        self.connector = connector
        self.store = store
        self.strategy = strategy or MACrossoverStrategy()
        self.trade_history = trade_history
        self.timeframe = timeframe
        self.candle_limit = candle_limit

    def _mode(self) -> str:
        return 'demo' if self.connector.is_demo_mode() else 'live'

    def run(self, inst_id: str) -> InstrumentResult:
        """Process one instrument. Never raises."""
        try:
            return self._run(inst_id)
        except TraderError as e:
            self.store.append_log(f"[{inst_id}] Error: {e}", 'error')
            return InstrumentResult(inst_id=inst_id, executed=False, reason=str(e))
        except Exception as e:
            logger.exception(f"[{inst_id}] Unexpected pipeline error: {e}")
            self.store.append_log(f"[{inst_id}] Error: {e}", 'error')
            return InstrumentResult(inst_id=inst_id, executed=False, reason=str(e))

    def _run(self, inst_id: str) -> InstrumentResult:
        # Cooldown is checked before any network call
        if self.store.is_in_cooldown(inst_id):
            remaining = self.store.cooldown_remaining(inst_id)
            return InstrumentResult(inst_id=inst_id, executed=False, reason=f"cooldown {remaining}s")

        ticker = self.connector.get_ticker(inst_id)
        candles = self.connector.get_candles(inst_id, self.timeframe, self.candle_limit)

        price = ticker.last
        if not is_positive_number(price):
            raise StateInvariantViolation(f"Invalid ticker price for {inst_id}: {price!r}")

        signal = self.strategy.analyze([c.close for c in candles])
        self.store.update_market_price(inst_id, price)
        self.store.set_instrument_signal(inst_id, signal)

        state = self.store.get_instrument_state(inst_id)
        decision = decide(signal, state.last_position)
        if not decision.should_trade:
            return InstrumentResult(
                inst_id=inst_id, executed=False, reason=decision.reason,
                price=price, signal=signal.signal.value,
            )

        return self._execute(inst_id, decision.side, price, signal.signal.value, signal.reason)

    def _execute(self, inst_id: str, side: str, price: float, signal: str, signal_reason: str) -> InstrumentResult:
        cfg = self.store.get_trade_config()
        mode = self._mode()

        self.store.append_log(
            f"[{inst_id}] {signal} signal: {signal_reason}. Placing {side.upper()} order "
            f"({cfg.margin:g} USDT @ {cfg.leverage:g}x)",
            'info',
        )

        try:
            receipt = self.connector.place_market_order(inst_id, side, cfg.margin, cfg.leverage)
        except TraderError as e:
            self.store.append_log(f"[{inst_id}] Order failed: {e}", 'error')
            return InstrumentResult(
                inst_id=inst_id, executed=False, reason=str(e), side=side,
                price=price, signal=signal, mode=mode,
            )

        self._log_steps(inst_id, receipt)
        fill_price = receipt.price if is_positive_number(receipt.price) else price

        update = self.store.add_position(
            inst_id, side, cfg.margin, fill_price, cfg.leverage,
            order_id=receipt.order_id, mode=mode,
        )
        self.store.record_trade(inst_id, side, fill_price, cfg.margin)

        if self.trade_history is not None:
            # History failures are logged only; the fill stands
            try:
                self._record_history(inst_id, side, fill_price, cfg, signal, mode, receipt, update.closed)
            except Exception as e:
                logger.exception(f"[{inst_id}] Trade history write failed: {e}")
                self.store.append_log(f"[{inst_id}] Trade history write failed: {e}", 'error')

        return InstrumentResult(
            inst_id=inst_id,
            executed=True,
            side=side,
            price=fill_price,
            order_id=receipt.order_id,
            signal=signal,
            mode=mode,
        )

    def _record_history(self, inst_id: str, side: str, fill_price: float, cfg: TradeConfig,
                        signal: str, mode: str, receipt: OrderReceipt, closed: Optional[Position]):
        if closed is not None:
            self.trade_history.record(
                mode=mode,
                inst_id=inst_id,
                side='sell' if closed.side == 'long' else 'buy',
                action='close',
                price=fill_price,
                entry_price=closed.entry_price,
                size=closed.size,
                leverage=closed.leverage,
                pnl=round(closed.pnl(fill_price), 4),
                pnl_percent=round(closed.pnl_percent(fill_price), 2),
                reason='flip',
            )
        self.trade_history.record(
            mode=mode,
            inst_id=inst_id,
            side=side,
            action='open',
            price=fill_price,
            size=cfg.margin,
            leverage=cfg.leverage,
            signal=signal,
            order_id=receipt.order_id,
            client_order_id=receipt.client_order_id,
            contracts=receipt.contracts,
        )

    def _log_steps(self, inst_id: str, receipt: OrderReceipt):
        for step in receipt.steps:
            if step.success:
                self.store.append_log(f"[{inst_id}] {step.step}: ok {step.detail}".rstrip(), 'info')
            else:
                self.store.append_log(f"[{inst_id}] {step.step} failed: {step.detail}", 'error')
