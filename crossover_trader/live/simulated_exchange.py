"""Simulated exchange for paper trading. No real orders placed.

Market data comes either from candles loaded into the simulator or from a
delegate connector (e.g. the public OKX endpoints). Orders fill instantly at
the ticker's last price and are tracked as virtual net positions.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional, List, Dict, Sequence, Union

from loguru import logger

from ..exceptions import ExchangeError, OrderError
from .exchange_interface import (
    ExchangeConnector, PricePoint, Ticker, OrderReceipt, StepResult,
    AccountBalance, ExchangePosition,
)


class SimulatedExchange(ExchangeConnector):
    """Paper trading connector. Needs no credentials."""

    def __init__(
        self,
        initial_balance: float = 1000.0,
        market_data: Optional[ExchangeConnector] = None,
    ):
        """
        Args:
            initial_balance: Virtual USDT balance
            market_data: Connector supplying tickers and candles; when None,
                candles must be loaded with set_candles()
        """
        self.initial_balance = initial_balance
        self.cash_balance = initial_balance
        self.market_data = market_data
        self.orders: List[Dict] = []
        self._positions: Dict[str, Dict] = {}
        self._candles: Dict[str, List[PricePoint]] = {}

    def is_configured(self) -> bool:
        return True

    def is_demo_mode(self) -> bool:
        return True

    def set_candles(self, inst_id: str, candles: Sequence[Union[PricePoint, float]], start_ts: int = 0, step_ms: int = 60_000):
        """
        Load candles for an instrument.

        Args:
            inst_id: Instrument id
            candles: PricePoints, or bare close prices (oldest first)
            start_ts: First timestamp for generated candles (ms)
            step_ms: Spacing of generated candles (ms)
        """
        points = []
        for i, item in enumerate(candles):
            if isinstance(item, PricePoint):
                points.append(item)
            else:
                close = float(item)
                points.append(PricePoint(start_ts + i * step_ms, close, close, close, close, 0.0))
        self._candles[inst_id] = points

    def get_candles(self, inst_id: str, timeframe: str = "1m", limit: int = 100) -> List[PricePoint]:
        if self.market_data is not None:
            return self.market_data.get_candles(inst_id, timeframe, limit)
        if inst_id not in self._candles:
            raise ExchangeError(f"No price data for {inst_id}")
        return list(self._candles[inst_id][-limit:])

    def get_ticker(self, inst_id: str) -> Ticker:
        if self.market_data is not None:
            return self.market_data.get_ticker(inst_id)
        candles = self._candles.get(inst_id)
        if not candles:
            raise ExchangeError(f"No price data for {inst_id}")
        last = candles[-1].close
        day = candles[-1440:]
        return Ticker(
            inst_id=inst_id,
            last=last,
            bid=last,
            ask=last,
            high24h=max(c.high for c in day),
            low24h=min(c.low for c in day),
            volume24h=sum(c.volume for c in day),
        )

    def place_market_order(self, inst_id: str, side: str, size: float, leverage: float = 1) -> OrderReceipt:
        if side not in ('buy', 'sell'):
            raise OrderError(f"Order failed: invalid side {side}")
        try:
            fill_price = self.get_ticker(inst_id).last
        except ExchangeError as e:
            raise OrderError(f"Order failed: {e}") from e

        order_id = f"sim_{uuid.uuid4().hex[:12]}"
        self.orders.append({
            'order_id': order_id,
            'inst_id': inst_id,
            'side': side,
            'size': size,
            'leverage': leverage,
            'price': fill_price,
            'time': datetime.now(timezone.utc).isoformat(),
        })
        self._apply_fill(inst_id, side, size, leverage, fill_price)
        logger.info(f"[PAPER] {side.upper()} {inst_id} {size} USDT @ {leverage}x filled at {fill_price} ({order_id})")

        return OrderReceipt(
            order_id=order_id,
            client_order_id=order_id,
            simulated=True,
            price=fill_price,
            steps=[StepResult('set_leverage', True, f"{leverage}x")],
        )

    def _apply_fill(self, inst_id: str, side: str, size: float, leverage: float, price: float):
        """Net-mode bookkeeping: opposite fills close first, then open the remainder."""
        signed = size if side == 'buy' else -size
        pos = self._positions.get(inst_id)

        if pos is None or (pos['size'] > 0) == (signed > 0):
            if pos is None:
                self._positions[inst_id] = {'size': signed, 'entry_price': price, 'leverage': leverage}
            else:
                total = abs(pos['size']) + size
                pos['entry_price'] = (pos['entry_price'] * abs(pos['size']) + price * size) / total
                pos['size'] += signed
                pos['leverage'] = leverage
            return

        # Opposite side: realize P&L on the closed part
        closed = min(abs(pos['size']), size)
        direction = 1 if pos['size'] > 0 else -1
        self.cash_balance += closed * pos['leverage'] * direction * (price - pos['entry_price']) / pos['entry_price']

        remainder = size - closed
        if remainder > 0:
            self._positions[inst_id] = {'size': remainder if side == 'buy' else -remainder,
                                        'entry_price': price, 'leverage': leverage}
        else:
            pos['size'] += signed
            if pos['size'] == 0:
                del self._positions[inst_id]

    def get_balance(self) -> AccountBalance:
        equity = self.cash_balance
        for inst_id, pos in self._positions.items():
            try:
                price = self.get_ticker(inst_id).last
            except ExchangeError:
                continue
            direction = 1 if pos['size'] > 0 else -1
            equity += abs(pos['size']) * pos['leverage'] * direction * (price - pos['entry_price']) / pos['entry_price']
        return AccountBalance(
            total_equity=equity,
            available=self.cash_balance,
            currencies=[{'currency': 'USDT', 'available': self.cash_balance, 'frozen': 0.0, 'total': self.cash_balance}],
        )

    def get_positions(self) -> List[ExchangePosition]:
        positions = []
        for inst_id, pos in self._positions.items():
            try:
                price = self.get_ticker(inst_id).last
            except ExchangeError:
                price = pos['entry_price']
            direction = 1 if pos['size'] > 0 else -1
            pnl_pct = direction * (price - pos['entry_price']) / pos['entry_price'] * 100 * pos['leverage']
            positions.append(ExchangePosition(
                inst_id=f"{inst_id}-SWAP",
                side='long' if direction > 0 else 'short',
                size=abs(pos['size']),
                entry_price=pos['entry_price'],
                current_price=price,
                leverage=pos['leverage'],
                margin=abs(pos['size']),
                unrealized_pnl=abs(pos['size']) * pnl_pct / 100,
                unrealized_pnl_percent=pnl_pct,
                margin_mode='cross',
            ))
        return positions
