"""Trading engine: wires the components together and runs the timer loop.

Orchestrates:
- Cycle scheduling over the configured instruments
- Manual position closes with realized P&L
- Trade configuration updates
- State snapshots for status displays
"""
import threading
from typing import Dict, List, Optional

from loguru import logger

from ..analytics.trade_history import TradeHistory
from ..data import okx_client
from ..data.rate_limiter import RateLimiter
from ..exceptions import TraderError
from ..strategies.ma_crossover import MACrossoverStrategy
from ..utils.config import Config, get_config
from ..utils.helpers import is_positive_number
from .cycle_scheduler import CycleReport, CycleScheduler
from .exchange_interface import ExchangeConnector
from .execution_pipeline import ExecutionPipeline
from .simulated_exchange import SimulatedExchange
from .state_store import Position, StateStore, TradeConfig
from .trade_config_file import TradeConfigFile


class TradingEngine:
    """Main trading engine."""

    def __init__(
        self,
        connector: ExchangeConnector,
        store: StateStore,
        scheduler: CycleScheduler,
        trade_history: Optional[TradeHistory] = None,
        cycle_interval: float = 60.0,
    ):
        self.connector = connector
        self.store = store
        self.scheduler = scheduler
        self.trade_history = trade_history or TradeHistory()
        self.cycle_interval = cycle_interval

        # Auto-trading switch; the loop skips cycles while False
        self.running = False
        self._stop_event = threading.Event()

    # ------------------------------------------------------------------
    # Timer loop
    # ------------------------------------------------------------------

    def start(self, max_cycles: Optional[int] = None):
        """
        Start the trading loop. Blocks until stop() or Ctrl+C.

        Args:
            max_cycles: Stop after this many cycles (None runs forever)
        """
        mode = 'DEMO' if self.connector.is_demo_mode() else 'LIVE'
        logger.info(f"Starting trading engine: mode={mode}, interval={self.cycle_interval}s")
        logger.info(f"Instruments: {self.scheduler.instruments}")

        self._stop_event.clear()
        self.set_running(True)
        cycles = 0

        try:
            while not self._stop_event.is_set():
                if self.running:
                    self.run_cycle()
                    cycles += 1
                    if max_cycles is not None and cycles >= max_cycles:
                        break
                self._stop_event.wait(self.cycle_interval)
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received")
        except Exception as e:
            logger.exception(f"Engine error: {e}")
        finally:
            self.running = False
            logger.info("Engine stopped")

    def stop(self):
        """Signal the engine to stop."""
        self.running = False
        self._stop_event.set()

    def set_running(self, running: bool):
        """Enable or pause automatic trading."""
        if running == self.running:
            return
        self.running = running
        self.store.append_log('Bot started' if running else 'Bot stopped', 'info')

    def run_cycle(self) -> CycleReport:
        """Run one trading cycle now."""
        return self.scheduler.run_cycle()

    # ------------------------------------------------------------------
    # State and configuration
    # ------------------------------------------------------------------

    def get_state(self) -> Dict:
        state = self.store.snapshot()
        state.update({
            'is_running': self.running,
            'configured': self.connector.is_configured(),
            'demo_mode': self.connector.is_demo_mode(),
            'pairs': list(self.scheduler.instruments),
        })
        return state

    def set_trade_config(self, margin: Optional[float] = None, leverage: Optional[float] = None) -> TradeConfig:
        return self.store.set_trade_config(margin=margin, leverage=leverage)

    def get_trade_history(self) -> TradeHistory:
        return self.trade_history

    # ------------------------------------------------------------------
    # Manual closes
    # ------------------------------------------------------------------

    def _exit_price(self, position: Position, prices: Dict[str, float]) -> float:
        """Best available exit price: live ticker, then cached price, then the position's own."""
        if position.inst_id in prices:
            return prices[position.inst_id]

        price = None
        try:
            price = self.connector.get_ticker(position.inst_id).last
        except TraderError as e:
            logger.warning(f"[{position.inst_id}] Ticker unavailable for close, using cached price: {e}")

        if not is_positive_number(price):
            price = self.store.get_market_price(position.inst_id) or position.current_price

        prices[position.inst_id] = price
        return price

    def _record_close(self, position: Position, exit_price: float, reason: str) -> Dict:
        pnl = position.pnl(exit_price)
        pnl_percent = position.pnl_percent(exit_price)

        self.trade_history.record(
            mode=position.mode,
            inst_id=position.inst_id,
            side='sell' if position.side == 'long' else 'buy',
            action='close',
            price=exit_price,
            entry_price=position.entry_price,
            size=position.size,
            leverage=position.leverage,
            pnl=round(pnl, 4),
            pnl_percent=round(pnl_percent, 2),
            order_id=position.order_id,
            reason=reason,
        )
        self.store.append_log(
            f"Closed {position.side.upper()} {position.inst_id} @ ${exit_price} "
            f"(P&L: {pnl:+.2f} USDT, {pnl_percent:+.2f}%)",
            'trade',
        )
        return {
            'position': position.to_dict(),
            'exit_price': exit_price,
            'pnl': round(pnl, 4),
            'pnl_percent': round(pnl_percent, 2),
        }

    def close_position(self, position_id: str) -> Optional[Dict]:
        """
        Close one tracked position.

        Returns:
            Close summary, or None when the id is unknown
        """
        position = next((p for p in self.store.get_positions() if p.id == position_id), None)
        if position is None:
            logger.warning(f"Position not found: {position_id}")
            return None

        exit_price = self._exit_price(position, {})
        closed = self.store.close_position(position_id)
        if closed is None:
            return None
        return self._record_close(closed, exit_price, 'manual')

    def close_all_positions(self) -> List[Dict]:
        """Close every tracked position. Returns one close summary per position."""
        prices: Dict[str, float] = {}
        exits = {p.id: self._exit_price(p, prices) for p in self.store.get_positions()}

        closed = self.store.close_all_positions()
        return [self._record_close(p, exits.get(p.id, p.current_price), 'close_all') for p in closed]

    # ------------------------------------------------------------------
    # Exchange account
    # ------------------------------------------------------------------

    def account(self) -> Dict:
        """Balance and exchange-side positions. Errors are reported, not raised."""
        try:
            balance = self.connector.get_balance()
            positions = self.connector.get_positions()
        except TraderError as e:
            self.store.append_log(f"Failed to fetch account: {e}", 'error')
            return {'error': str(e)}

        return {
            'total_equity': balance.total_equity,
            'available': balance.available,
            'currencies': balance.currencies,
            'positions': [p.__dict__ for p in positions],
        }

    def status(self) -> Dict:
        """Return current engine status."""
        cfg = self.store.get_trade_config()
        return {
            'running': self.running,
            'configured': self.connector.is_configured(),
            'demo_mode': self.connector.is_demo_mode(),
            'instruments': len(self.scheduler.instruments),
            'open_positions': len(self.store.get_positions()),
            'margin': cfg.margin,
            'leverage': cfg.leverage,
            'history_trades': len(self.trade_history),
        }


def build_engine(
    config: Optional[Config] = None,
    paper: bool = False,
    demo: Optional[bool] = None,
    connector: Optional[ExchangeConnector] = None,
) -> TradingEngine:
    """
    Assemble an engine from configuration.

    Args:
        config: Configuration (global instance when None)
        paper: Trade against SimulatedExchange, using OKX public market data
        demo: Override the configured demo mode
        connector: Use this connector instead of building one
    """
    config = config or get_config()

    if connector is None:
        client = okx_client.OkxClient.from_config(config)
        if demo is not None:
            client.set_demo_mode(demo)
        connector = SimulatedExchange(market_data=client) if paper else client

    store = StateStore(
        cooldown_seconds=config.pair_cooldown_seconds,
        max_logs=config.max_logs,
        trade_config=TradeConfig(
            margin=config.default_margin,
            leverage=config.default_leverage,
            max_leverage=config.max_leverage,
        ),
        config_hooks=TradeConfigFile(str(config.trade_config_file)),
    )
    history = TradeHistory(max_trades=config.max_trades)

    params = config.get_strategy_config('ma_crossover')
    strategy = MACrossoverStrategy(
        fast_period=params.get('fast_period', 9),
        slow_period=params.get('slow_period', 21),
    )

    pipeline = ExecutionPipeline(
        connector, store, strategy,
        trade_history=history,
        timeframe=config.candle_timeframe,
        candle_limit=config.candle_limit,
    )
    scheduler = CycleScheduler(
        pipeline, connector, store,
        instruments=config.instruments,
        limiter=RateLimiter(config.instrument_delay),
    )

    return TradingEngine(connector, store, scheduler, trade_history=history, cycle_interval=config.cycle_interval)
