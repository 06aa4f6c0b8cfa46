"""Abstract exchange connector interface consumed by the trading core."""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, List, Dict


@dataclass(frozen=True)
class PricePoint:
    """One OHLCV candle. Timestamp is epoch milliseconds."""
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Ticker:
    """Current market snapshot for an instrument."""
    inst_id: str
    last: float
    bid: float
    ask: float
    high24h: float
    low24h: float
    volume24h: float


@dataclass(frozen=True)
class StepResult:
    """Outcome of one preparatory exchange step (account mode, leverage, ...)."""
    step: str
    success: bool
    detail: str = ""


@dataclass
class OrderReceipt:
    """Result of a successful market order."""
    order_id: str
    client_order_id: Optional[str] = None
    simulated: bool = False
    price: Optional[float] = None
    contracts: Optional[str] = None
    steps: List[StepResult] = field(default_factory=list)


@dataclass
class AccountBalance:
    """Exchange account balance."""
    total_equity: float
    available: float
    currencies: List[Dict] = field(default_factory=list)


@dataclass
class ExchangePosition:
    """A position as reported by the exchange."""
    inst_id: str
    side: str  # 'long' or 'short'
    size: float
    entry_price: float
    current_price: float
    leverage: float
    margin: float = 0.0
    unrealized_pnl: float = 0.0
    unrealized_pnl_percent: float = 0.0
    liquidation_price: Optional[float] = None
    margin_mode: Optional[str] = None
    timestamp: Optional[str] = None


class ExchangeConnector(ABC):
    """Exchange access used by the execution pipeline.

    Implementations own authentication, request-level rate limiting and
    retry/backoff. Failures surface as TraderError subclasses:
    NetworkError / ExchangeError for data calls, OrderError for orders.
    """

    @abstractmethod
    def is_configured(self) -> bool:
        """True when credentials for the current mode are present."""
        pass

    @abstractmethod
    def is_demo_mode(self) -> bool:
        """True when orders go to simulated trading."""
        pass

    @abstractmethod
    def get_ticker(self, inst_id: str) -> Ticker:
        """Get current ticker for an instrument."""
        pass

    @abstractmethod
    def get_candles(self, inst_id: str, timeframe: str = "1m", limit: int = 100) -> List[PricePoint]:
        """Get recent candles, oldest first."""
        pass

    @abstractmethod
    def place_market_order(self, inst_id: str, side: str, size: float, leverage: float = 1) -> OrderReceipt:
        """Place a market order.

        Args:
            inst_id: Instrument (e.g., 'BTC-USDT')
            side: 'buy' or 'sell'
            size: Margin in quote currency (USDT)
            leverage: Leverage multiplier
        """
        pass

    @abstractmethod
    def get_balance(self) -> AccountBalance:
        """Get account balance."""
        pass

    @abstractmethod
    def get_positions(self) -> List[ExchangePosition]:
        """Get open positions held on the exchange."""
        pass
