"""In-memory engine state: per-instrument cooldowns and signals, open
positions, trade configuration and a bounded activity log.

One StateStore is constructed at startup and handed to every component that
needs it. Each mutating method is a single in-memory transition with no
network I/O inside it.

Position size convention: `size` is the quote-currency (USDT) margin of a
fill. Notional exposure is size * leverage, and P&L is measured on notional.
"""
import math
import threading
import time
from collections import deque
from dataclasses import dataclass, replace, asdict
from typing import Callable, Deque, Dict, List, Optional, Protocol

from loguru import logger

from ..exceptions import StateInvariantViolation
from ..strategies.ma_crossover import Signal, SignalType
from ..utils.helpers import timestamp_to_iso, is_positive_number


LOG_TYPES = ('info', 'trade', 'error', 'signal')

_LOG_LEVELS = {
    'info': 'INFO',
    'signal': 'INFO',
    'trade': 'SUCCESS',
    'error': 'ERROR',
}

_SIDE_TO_POSITION = {'buy': 'long', 'sell': 'short', 'long': 'long', 'short': 'short'}


@dataclass(frozen=True)
class LogEntry:
    """One activity log line. Never mutated after creation."""
    timestamp: str
    message: str
    type: str = 'info'


@dataclass
class InstrumentState:
    """Per-instrument mutable record, created on first reference."""
    last_position: Optional[str] = None  # 'long', 'short' or None
    last_trade_time: Optional[float] = None
    signal: SignalType = SignalType.WAIT
    last_price: Optional[float] = None
    fast_ma: Optional[float] = None
    slow_ma: Optional[float] = None


@dataclass
class Position:
    """A tracked open position."""
    id: str
    inst_id: str
    side: str  # 'long' or 'short'
    size: float
    leverage: float
    entry_price: float
    current_price: float
    timestamp: str
    order_id: Optional[str] = None
    mode: str = 'live'

    @property
    def direction(self) -> int:
        return 1 if self.side == 'long' else -1

    def pnl_percent(self, price: Optional[float] = None) -> float:
        """Leveraged return in percent at a price (defaults to current price)."""
        price = self.current_price if price is None else price
        return self.direction * (price - self.entry_price) / self.entry_price * 100 * self.leverage

    def pnl(self, price: Optional[float] = None) -> float:
        """P&L in quote currency at a price (defaults to current price)."""
        return self.size * self.pnl_percent(price) / 100

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['pnl_percent'] = round(self.pnl_percent(), 2)
        data['pnl'] = round(self.pnl(), 4)
        return data


@dataclass
class TradeConfig:
    """Global order sizing. Leverage stays within [1, max_leverage]."""
    margin: float = 10.0
    leverage: float = 1.0
    max_leverage: float = 125.0


@dataclass
class PositionUpdate:
    """What a fill did to the positions collection."""
    position: Position
    merged: bool = False
    closed: Optional[Position] = None


class TradeConfigHooks(Protocol):
    """Durable storage for TradeConfig."""

    def load(self) -> Optional[Dict]:
        ...

    def save(self, config: Dict) -> None:
        ...


class StateStore:
    """Shared mutable state for the trading engine."""

    def __init__(
        self,
        cooldown_seconds: float = 30.0,
        max_logs: int = 100,
        trade_config: Optional[TradeConfig] = None,
        config_hooks: Optional[TradeConfigHooks] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize state store.

        Args:
            cooldown_seconds: Minimum seconds between trades on one instrument
            max_logs: Activity log capacity
            trade_config: Initial sizing (defaults apply when None)
            config_hooks: Optional load/save hooks for the trade config
            clock: Wall-clock time source in epoch seconds
        """
        if max_logs < 1:
            raise ValueError(f"max_logs must be >= 1, got {max_logs}")

        self.cooldown_seconds = cooldown_seconds
        self.max_logs = max_logs
        self._clock = clock
        self._hooks = config_hooks
        self._lock = threading.RLock()

        self._instruments: Dict[str, InstrumentState] = {}
        self._positions: List[Position] = []
        self._logs: Deque[LogEntry] = deque(maxlen=max_logs)
        self._market_prices: Dict[str, Dict] = {}
        self._last_trade: Optional[Dict] = None

        self._trade_config = replace(trade_config) if trade_config else TradeConfig()
        self._load_trade_config()

    # ------------------------------------------------------------------
    # Activity log
    # ------------------------------------------------------------------

    def append_log(self, message: str, log_type: str = 'info') -> LogEntry:
        """Add a log entry. Newest entries come first; the oldest is dropped at capacity."""
        if log_type not in LOG_TYPES:
            raise ValueError(f"Unknown log type: {log_type}. Use: {LOG_TYPES}")

        entry = LogEntry(timestamp=timestamp_to_iso(self._clock()), message=message, type=log_type)
        with self._lock:
            self._logs.appendleft(entry)

        logger.log(_LOG_LEVELS[log_type], f"[{log_type.upper()}] {message}")
        return entry

    def get_logs(self, limit: Optional[int] = None) -> List[LogEntry]:
        with self._lock:
            logs = list(self._logs)
        return logs[:limit] if limit is not None else logs

    # ------------------------------------------------------------------
    # Per-instrument state
    # ------------------------------------------------------------------

    def _instrument(self, inst_id: str) -> InstrumentState:
        state = self._instruments.get(inst_id)
        if state is None:
            state = InstrumentState()
            self._instruments[inst_id] = state
        return state

    def get_instrument_state(self, inst_id: str) -> InstrumentState:
        """Copy of an instrument's state, creating it on first reference."""
        with self._lock:
            return replace(self._instrument(inst_id))

    def set_instrument_signal(self, inst_id: str, signal: Signal):
        """Cache the latest signal and MA values for an instrument."""
        with self._lock:
            state = self._instrument(inst_id)
            previous = state.signal
            state.signal = signal.signal
            state.fast_ma = signal.fast_ma
            state.slow_ma = signal.slow_ma

        if previous != signal.signal:
            self.append_log(f"[{inst_id}] Signal changed: {previous.value} -> {signal.signal.value}", 'signal')

    def record_trade(self, inst_id: str, side: str, price: float, size: float):
        """
        Record a confirmed fill: sets the instrument's last position and starts
        its cooldown.
        """
        if side not in ('buy', 'sell'):
            raise StateInvariantViolation(f"Invalid trade side: {side}")

        now = self._clock()
        with self._lock:
            state = self._instrument(inst_id)
            state.last_position = _SIDE_TO_POSITION[side]
            state.last_trade_time = now
            self._last_trade = {
                'inst_id': inst_id,
                'side': side,
                'price': price,
                'size': size,
                'timestamp': timestamp_to_iso(now),
            }

        self.append_log(f"Trade executed: {side.upper()} {inst_id} {size:g} USDT at ${price}", 'trade')

    def is_in_cooldown(self, inst_id: str) -> bool:
        with self._lock:
            state = self._instruments.get(inst_id)
            if state is None or state.last_trade_time is None:
                return False
            return (self._clock() - state.last_trade_time) < self.cooldown_seconds

    def cooldown_remaining(self, inst_id: str) -> int:
        """Whole seconds left in an instrument's cooldown (0 when none)."""
        with self._lock:
            state = self._instruments.get(inst_id)
            if state is None or state.last_trade_time is None:
                return 0
            remaining = self.cooldown_seconds - (self._clock() - state.last_trade_time)
        return max(0, int(round(remaining)))

    # ------------------------------------------------------------------
    # Market prices and positions
    # ------------------------------------------------------------------

    def update_market_price(self, inst_id: str, price: float):
        """Cache the latest price and refresh current_price on the instrument's positions."""
        price = float(price)
        with self._lock:
            self._market_prices[inst_id] = {'price': price, 'timestamp': timestamp_to_iso(self._clock())}
            self._instrument(inst_id).last_price = price
            for pos in self._positions:
                if pos.inst_id == inst_id:
                    pos.current_price = price

    def add_position(
        self,
        inst_id: str,
        side: str,
        size: float,
        price: float,
        leverage: float = 1,
        order_id: Optional[str] = None,
        mode: str = 'live',
    ) -> PositionUpdate:
        """
        Apply a fill to the positions collection.

        An opposite-side position on the instrument is closed first (flip).
        A same-side position is merged with a size-weighted average entry.

        Raises:
            StateInvariantViolation: Side, size, price or leverage is invalid.
                Nothing is mutated in that case.
        """
        position_side = _SIDE_TO_POSITION.get(side)
        if position_side is None:
            raise StateInvariantViolation(f"Invalid position side: {side}")
        for name, value in (('size', size), ('price', price), ('leverage', leverage)):
            if not is_positive_number(value):
                raise StateInvariantViolation(f"Position {name} must be a positive finite number, got {value!r}")

        size, price, leverage = float(size), float(price), float(leverage)
        now = self._clock()

        with self._lock:
            closed = None
            opposite = [p for p in self._positions if p.inst_id == inst_id and p.side != position_side]
            for pos in opposite:
                self._positions.remove(pos)
                closed = pos

            existing = next(
                (p for p in self._positions if p.inst_id == inst_id and p.side == position_side), None
            )
            if existing is not None:
                total_size = existing.size + size
                avg_price = (existing.entry_price * existing.size + price * size) / total_size
                if not math.isfinite(avg_price) or avg_price <= 0:
                    raise StateInvariantViolation(f"Averaged entry price is invalid: {avg_price}")
                existing.size = total_size
                existing.entry_price = avg_price
                existing.leverage = leverage
                existing.current_price = price
                update = PositionUpdate(position=replace(existing), merged=True, closed=closed)
            else:
                position = Position(
                    id=order_id or f"pos_{int(now * 1000)}",
                    inst_id=inst_id,
                    side=position_side,
                    size=size,
                    leverage=leverage,
                    entry_price=price,
                    current_price=price,
                    timestamp=timestamp_to_iso(now),
                    order_id=order_id,
                    mode=mode,
                )
                self._positions.append(position)
                update = PositionUpdate(position=replace(position), merged=False, closed=closed)

        if closed is not None:
            self.append_log(f"Position closed: {closed.side.upper()} {closed.inst_id}", 'trade')
        if update.merged:
            self.append_log(
                f"Position added: {position_side.upper()} {inst_id} (avg: ${update.position.entry_price:.2f})",
                'trade',
            )
        else:
            self.append_log(f"Position opened: {position_side.upper()} {size:g} {inst_id} @ ${price}", 'trade')

        return update

    def close_position(self, position_id: str) -> Optional[Position]:
        """Remove a position by id. Returns the removed position or None."""
        with self._lock:
            pos = next((p for p in self._positions if p.id == position_id), None)
            if pos is None:
                return None
            self._positions.remove(pos)

        self.append_log(f"Position manually closed: {pos.side.upper()} {pos.inst_id}", 'trade')
        return pos

    def close_all_positions(self) -> List[Position]:
        """Remove every position. Returns the removed positions."""
        with self._lock:
            closed = self._positions
            self._positions = []

        self.append_log('All positions cleared', 'info')
        return closed

    def get_positions(self, inst_id: Optional[str] = None) -> List[Position]:
        """Copies of open positions, optionally filtered by instrument."""
        with self._lock:
            return [replace(p) for p in self._positions if inst_id is None or p.inst_id == inst_id]

    def get_market_price(self, inst_id: str) -> Optional[float]:
        with self._lock:
            cached = self._market_prices.get(inst_id)
            return cached['price'] if cached else None

    # ------------------------------------------------------------------
    # Trade configuration
    # ------------------------------------------------------------------

    def get_trade_config(self) -> TradeConfig:
        with self._lock:
            return replace(self._trade_config)

    def set_trade_config(self, margin: Optional[float] = None, leverage: Optional[float] = None) -> TradeConfig:
        """
        Update order sizing.

        Args:
            margin: New margin in USDT; ignored unless a positive number
            leverage: New leverage; clamped into [1, max_leverage]

        Returns:
            The resulting trade config
        """
        changes = []
        with self._lock:
            cfg = self._trade_config
            if margin is not None:
                if is_positive_number(margin):
                    cfg.margin = float(margin)
                    changes.append(f"Trade size updated to {cfg.margin:g} USDT")
                else:
                    logger.debug(f"Ignoring invalid margin: {margin!r}")

            if leverage is not None:
                if isinstance(leverage, (int, float)) and not isinstance(leverage, bool) and math.isfinite(leverage):
                    cfg.leverage = float(min(max(1.0, leverage), cfg.max_leverage))
                    changes.append(f"Leverage updated to {cfg.leverage:g}x")
                else:
                    logger.debug(f"Ignoring invalid leverage: {leverage!r}")

            result = replace(cfg)

        for message in changes:
            self.append_log(message, 'info')
        if changes and self._hooks is not None:
            self._hooks.save({'margin': result.margin, 'leverage': result.leverage})

        return result

    def _load_trade_config(self):
        if self._hooks is None:
            return
        saved = self._hooks.load()
        if not saved:
            return

        # max_leverage always comes from configuration, never from the saved file
        cfg = self._trade_config
        if is_positive_number(saved.get('margin')):
            cfg.margin = float(saved['margin'])
        if is_positive_number(saved.get('leverage')):
            cfg.leverage = float(min(max(1.0, saved['leverage']), cfg.max_leverage))

        logger.info(f"Loaded trade config: {cfg.margin:g} USDT @ {cfg.leverage:g}x")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict:
        """Consistent read-only view of the whole state."""
        with self._lock:
            instruments = {}
            for inst_id, state in self._instruments.items():
                instruments[inst_id] = {
                    'signal': state.signal.value,
                    'last_position': state.last_position,
                    'last_trade_time': timestamp_to_iso(state.last_trade_time) if state.last_trade_time else None,
                    'in_cooldown': self.is_in_cooldown(inst_id),
                    'cooldown_remaining': self.cooldown_remaining(inst_id),
                    'last_price': state.last_price,
                    'fast_ma': None if state.fast_ma is None else round(state.fast_ma, 2),
                    'slow_ma': None if state.slow_ma is None else round(state.slow_ma, 2),
                }

            return {
                'instruments': instruments,
                'positions': [p.to_dict() for p in self._positions],
                'logs': [asdict(entry) for entry in self._logs],
                'trade_config': asdict(self._trade_config),
                'last_trade': dict(self._last_trade) if self._last_trade else None,
                'market_prices': {k: dict(v) for k, v in self._market_prices.items()},
            }

    def reset(self):
        """Clear instruments, positions, prices and logs. Trade config is kept."""
        with self._lock:
            self._instruments = {}
            self._positions = []
            self._market_prices = {}
            self._last_trade = None
            self._logs.clear()

        self.append_log('Bot state reset', 'info')
