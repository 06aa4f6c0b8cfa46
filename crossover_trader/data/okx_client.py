"""
OKX API Client
Wrapper for the OKX v5 REST API with typed errors, retry logic and rate limiting

Orders are placed on USDT perpetual swaps (BTC-USDT -> BTC-USDT-SWAP) in
cross margin. In demo mode every private request carries the
x-simulated-trading header so OKX executes it on its paper environment.
"""

import base64
import hashlib
import hmac
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlencode

import requests
from loguru import logger

from ..exceptions import (
    ConfigurationError, ErrorKind, ExchangeError, NetworkError, OrderError, TraderError,
)
from ..live.exchange_interface import (
    AccountBalance, ExchangeConnector, ExchangePosition, OrderReceipt, PricePoint, StepResult, Ticker,
)
from ..utils.config import Config, get_config
from ..utils.helpers import round_down_to_step, swap_instrument, timestamp_to_iso
from .rate_limiter import RateLimiter
from .retry import RetryPolicy


BASE_URL = "https://www.okx.com"

# OKX codes meaning "too many requests"
RATE_LIMIT_CODES = frozenset({"50011", "50061"})

# Position mode already set
POSITION_MODE_UNCHANGED = "51020"

MARGIN_ACCOUNT_LEVELS = ("2", "3", "4")


class OkxClient(ExchangeConnector):
    """
    OKX API client for market data and perpetual-swap orders

    Features:
    - HMAC-SHA256 request signing
    - Separate demo / live credentials
    - Automatic retry with exponential backoff on tagged transient errors
    - Rate limiting protection
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        passphrase: Optional[str] = None,
        demo_mode: bool = True,
        demo_credentials: Optional[Dict[str, Optional[str]]] = None,
        base_url: str = BASE_URL,
        timeout: float = 10.0,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        margin_mode: str = "cross",
        position_mode: str = "net_mode",
    ):
        """
        Initialize OKX client

        Args:
            api_key, secret_key, passphrase: Live credentials
            demo_mode: Use OKX simulated trading
            demo_credentials: Demo keys; missing entries fall back to the live ones
            base_url: API host
            timeout: Per-request timeout in seconds
            rate_limiter: Shared request gate (0.1s spacing by default)
            retry_policy: Backoff policy for transient errors
            session: HTTP session
            margin_mode: Margin mode for orders and leverage ('cross' or 'isolated')
            position_mode: 'net_mode' or 'long_short_mode'
        """
        self._live_credentials = {"api_key": api_key, "secret_key": secret_key, "passphrase": passphrase}
        demo_credentials = demo_credentials or {}
        self._demo_credentials = {
            key: demo_credentials.get(key) or value for key, value in self._live_credentials.items()
        }

        self.demo_mode = demo_mode
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.rate_limiter = rate_limiter or RateLimiter(0.1)
        self.retry_policy = retry_policy or RetryPolicy()
        # Orders are retried on rate limits only
        self.order_retry_policy = self.retry_policy.with_kinds({ErrorKind.RATE_LIMITED})
        self.session = session or requests.Session()
        self.margin_mode = margin_mode
        self.position_mode = position_mode

        self._account_mode_set = False
        self._instrument_info: Dict[str, Dict[str, float]] = {}

        logger.info(f"OKX client initialized: {self._mode_label()} mode")

    @classmethod
    def from_config(cls, config: Optional[Config] = None, **kwargs) -> "OkxClient":
        """Build a client from YAML/.env configuration"""
        config = config or get_config()
        live = config.okx_credentials(demo=False)
        demo = config.okx_credentials(demo=True)
        return cls(
            api_key=live["api_key"],
            secret_key=live["secret_key"],
            passphrase=live["passphrase"],
            demo_mode=config.demo_mode,
            demo_credentials=demo,
            base_url=config.base_url,
            timeout=config.request_timeout,
            rate_limiter=RateLimiter(config.min_request_interval),
            retry_policy=RetryPolicy(config.max_retries, config.retry_base_delay),
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Mode and credentials
    # ------------------------------------------------------------------

    def _mode_label(self) -> str:
        return "DEMO" if self.demo_mode else "LIVE"

    def set_demo_mode(self, enabled: bool):
        """Switch between demo and live trading"""
        self.demo_mode = enabled
        self._account_mode_set = False
        logger.info(f"Demo trading mode: {'ENABLED' if enabled else 'DISABLED'}")

    def is_demo_mode(self) -> bool:
        return self.demo_mode

    def _credentials(self) -> Dict[str, Optional[str]]:
        return self._demo_credentials if self.demo_mode else self._live_credentials

    def is_configured(self) -> bool:
        """Check if API credentials for the current mode are configured"""
        return all(self._credentials().values())

    def _sign(self, timestamp: str, method: str, request_path: str, body: str = "") -> str:
        secret = self._credentials()["secret_key"]
        if not secret:
            raise ConfigurationError(f"OKX {self._mode_label()} SECRET_KEY is not configured")
        prehash = f"{timestamp}{method.upper()}{request_path}{body}"
        digest = hmac.new(secret.encode(), prehash.encode(), hashlib.sha256).digest()
        return base64.b64encode(digest).decode()

    def _auth_headers(self, method: str, request_path: str, body: str = "") -> Dict[str, str]:
        creds = self._credentials()
        if not creds["api_key"] or not creds["passphrase"]:
            prefix = "OKX_DEMO_" if self.demo_mode else "OKX_"
            raise ConfigurationError(
                f"OKX {self._mode_label()} API credentials are not configured. "
                f"Set {prefix}API_KEY, {prefix}SECRET_KEY, {prefix}PASSPHRASE in .env"
            )

        timestamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        headers = {
            "OK-ACCESS-KEY": creds["api_key"],
            "OK-ACCESS-SIGN": self._sign(timestamp, method, request_path, body),
            "OK-ACCESS-TIMESTAMP": timestamp,
            "OK-ACCESS-PASSPHRASE": creds["passphrase"],
            "Content-Type": "application/json",
        }
        if self.demo_mode:
            headers["x-simulated-trading"] = "1"
        return headers

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        auth: bool = False,
    ) -> Dict:
        """
        Perform one HTTP request and return the decoded JSON payload.

        Raises:
            NetworkError: Transport failure, HTTP 429 (RATE_LIMITED) or 5xx
            ConfigurationError: Private call without credentials
        """
        request_path = path + (f"?{urlencode(params)}" if params else "")
        body_str = json.dumps(body) if body is not None else ""
        headers = self._auth_headers(method, request_path, body_str) if auth else {}

        try:
            resp = self.session.request(
                method,
                self.base_url + request_path,
                data=body_str or None,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 429:
            raise NetworkError(f"{method} {path}: Too many requests", kind=ErrorKind.RATE_LIMITED, code="429")
        if resp.status_code >= 500:
            raise NetworkError(f"{method} {path}: HTTP {resp.status_code}", code=str(resp.status_code))

        try:
            payload = resp.json()
        except ValueError as e:
            raise NetworkError(f"{method} {path}: invalid JSON response (HTTP {resp.status_code})") from e

        if not isinstance(payload, dict):
            raise NetworkError(f"{method} {path}: unexpected response shape")
        return payload

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        auth: bool = False,
        ok_codes: Iterable[str] = (),
    ) -> List[Dict]:
        """Send a request and check the OKX response code. Returns the `data` list."""
        payload = self._send(method, path, params=params, body=body, auth=auth)
        code = str(payload.get("code", ""))
        if code != "0" and code not in ok_codes:
            msg = payload.get("msg") or "unknown error"
            if code in RATE_LIMIT_CODES:
                raise NetworkError(f"OKX API error: {msg}", kind=ErrorKind.RATE_LIMITED, code=code)
            raise ExchangeError(f"OKX API error: {msg}", code=code)
        return payload.get("data") or []

    def _call(self, label: str, func: Callable[[], Any], policy: Optional[RetryPolicy] = None) -> Any:
        return (policy or self.retry_policy).call(func, limiter=self.rate_limiter, label=label)

    # ------------------------------------------------------------------
    # Public market data
    # ------------------------------------------------------------------

    def get_ticker(self, inst_id: str) -> Ticker:
        """Get current ticker (public endpoint)"""
        data = self._call(
            f"ticker {inst_id}",
            lambda: self._request("GET", "/api/v5/market/ticker", {"instId": inst_id}),
        )
        if not data:
            raise ExchangeError(f"No ticker returned for {inst_id}")

        t = data[0]
        try:
            return Ticker(
                inst_id=t.get("instId", inst_id),
                last=float(t["last"]),
                bid=float(t.get("bidPx") or 0),
                ask=float(t.get("askPx") or 0),
                high24h=float(t.get("high24h") or 0),
                low24h=float(t.get("low24h") or 0),
                volume24h=float(t.get("vol24h") or 0),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ExchangeError(f"Malformed ticker for {inst_id}: {e!r}") from e

    def get_candles(self, inst_id: str, timeframe: str = "1m", limit: int = 100) -> List[PricePoint]:
        """
        Fetch market candles (public endpoint)

        Args:
            inst_id: Instrument ID (e.g., 'BTC-USDT')
            timeframe: Candle bar (e.g., '1m', '5m', '1H')
            limit: Number of candles (OKX max 300)

        Returns:
            Candles, oldest first
        """
        data = self._call(
            f"candles {inst_id}",
            lambda: self._request(
                "GET", "/api/v5/market/candles", {"instId": inst_id, "bar": timeframe, "limit": limit}
            ),
        )

        # OKX rows: [ts, o, h, l, c, vol, volCcy, volCcyQuote, confirm], newest first
        try:
            candles = [
                PricePoint(
                    timestamp=int(row[0]),
                    open=float(row[1]),
                    high=float(row[2]),
                    low=float(row[3]),
                    close=float(row[4]),
                    volume=float(row[5]),
                )
                for row in reversed(data)
            ]
        except (IndexError, TypeError, ValueError) as e:
            raise ExchangeError(f"Malformed candles for {inst_id}: {e!r}") from e
        logger.debug(f"Fetched {len(candles)} candles for {inst_id} ({timeframe})")
        return candles

    def get_instrument_info(self, swap_id: str) -> Dict[str, float]:
        """Contract value and lot sizes for a swap instrument (cached)"""
        if swap_id in self._instrument_info:
            return self._instrument_info[swap_id]

        data = self._call(
            f"instrument {swap_id}",
            lambda: self._request("GET", "/api/v5/public/instruments", {"instType": "SWAP", "instId": swap_id}),
        )
        if not data:
            raise ExchangeError(f"Failed to get instrument info for {swap_id}")

        info = data[0]
        lot_sz = float(info.get("lotSz") or 1)
        contract = {
            "ct_val": float(info["ctVal"]),
            "lot_sz": lot_sz,
            "min_sz": float(info.get("minSz") or lot_sz),
        }
        self._instrument_info[swap_id] = contract
        return contract

    @staticmethod
    def contracts_for(notional: float, price: float, contract: Dict[str, float]) -> str:
        """
        Number of contracts for a quote-currency notional

        Rounded down to the lot size, never below the minimum order size.
        """
        raw = notional / (price * contract["ct_val"])
        contracts = round_down_to_step(raw, contract["lot_sz"])
        if float(contracts) < contract["min_sz"]:
            contracts = round_down_to_step(contract["min_sz"], contract["lot_sz"])
        return contracts

    # ------------------------------------------------------------------
    # Account setup steps (best effort, each reported separately)
    # ------------------------------------------------------------------

    def get_account_config(self) -> Optional[Dict]:
        data = self._call("account config", lambda: self._request("GET", "/api/v5/account/config", auth=True))
        return data[0] if data else None

    def ensure_account_mode(self) -> StepResult:
        """Make sure the account level supports derivatives (single-currency margin or above)"""
        if self._account_mode_set:
            return StepResult("account_mode", True, "already confirmed")

        try:
            config = self.get_account_config()
            if config and str(config.get("acctLv")) in MARGIN_ACCOUNT_LEVELS:
                self._account_mode_set = True
                return StepResult("account_mode", True, f"account level {config.get('acctLv')}")

            logger.info(f"[{self._mode_label()}] Setting account to single-currency margin mode")
            self._call(
                "set account level",
                lambda: self._request("POST", "/api/v5/account/set-account-level", body={"acctLv": "2"}, auth=True),
            )
        except TraderError as e:
            return StepResult("account_mode", False, str(e))

        self._account_mode_set = True
        return StepResult("account_mode", True, "switched to single-currency margin")

    def set_position_mode(self, pos_mode: str = "net_mode") -> StepResult:
        try:
            self._call(
                "set position mode",
                lambda: self._request(
                    "POST", "/api/v5/account/set-position-mode", body={"posMode": pos_mode}, auth=True,
                    ok_codes=(POSITION_MODE_UNCHANGED,),
                ),
            )
        except TraderError as e:
            return StepResult("position_mode", False, str(e))
        return StepResult("position_mode", True, pos_mode)

    def set_leverage(self, swap_id: str, leverage: float) -> StepResult:
        body = {"instId": swap_id, "lever": f"{leverage:g}", "mgnMode": self.margin_mode}
        try:
            data = self._call(
                "set leverage",
                lambda: self._request("POST", "/api/v5/account/set-leverage", body=body, auth=True),
            )
        except TraderError as e:
            return StepResult("set_leverage", False, str(e))

        applied = data[0].get("lever") if data else body["lever"]
        return StepResult("set_leverage", True, f"{applied}x")

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    def place_market_order(self, inst_id: str, side: str, size: float, leverage: float = 1) -> OrderReceipt:
        """
        Place a perpetual-swap market order

        Args:
            inst_id: Instrument ID (e.g., 'BTC-USDT')
            side: 'buy' or 'sell'
            size: Margin in USDT; notional is size * leverage
            leverage: Leverage multiplier

        Raises:
            ConfigurationError: Credentials missing
            OrderError: Pricing failed or the exchange rejected the order
        """
        if not self.is_configured():
            raise ConfigurationError(f"OKX {self._mode_label()} API credentials are not configured")
        if side not in ("buy", "sell"):
            raise OrderError(f"Order failed: invalid side {side}")

        mode = self._mode_label()
        swap_id = swap_instrument(inst_id)
        steps = [self.ensure_account_mode()]

        try:
            price = self.get_ticker(inst_id).last
            contract = self.get_instrument_info(swap_id)
        except TraderError as e:
            raise OrderError(f"Order failed: could not price {swap_id}: {e}", kind=e.kind, code=e.code) from e

        contracts = self.contracts_for(size * leverage, price, contract)
        logger.info(
            f"[{mode}] {swap_id}: {size} USDT @ {leverage}x, price {price} = {contracts} contracts "
            f"(ctVal={contract['ct_val']})"
        )

        steps.append(self.set_position_mode(self.position_mode))
        if leverage > 1:
            steps.append(self.set_leverage(swap_id, leverage))

        client_order_id = f"ct{uuid.uuid4().hex[:30]}"
        body = {
            "instId": swap_id,
            "tdMode": self.margin_mode,
            "side": side,
            "ordType": "market",
            "sz": contracts,
            "clOrdId": client_order_id,
        }

        try:
            result = self._call(f"order {swap_id}", lambda: self._submit_order(body), policy=self.order_retry_policy)
        except NetworkError as e:
            raise OrderError(f"Order failed: {e}", kind=e.kind, code=e.code) from e

        logger.info(f"[{mode}] Order placed successfully: {result.get('ordId')}")
        return OrderReceipt(
            order_id=result["ordId"],
            client_order_id=result.get("clOrdId") or client_order_id,
            simulated=self.demo_mode,
            price=price,
            contracts=contracts,
            steps=steps,
        )

    def _submit_order(self, body: Dict[str, Any]) -> Dict:
        payload = self._send("POST", "/api/v5/trade/order", body=body, auth=True)
        code = str(payload.get("code", ""))
        data = payload.get("data") or [{}]
        detail = data[0] if data else {}

        if code in RATE_LIMIT_CODES or detail.get("sCode") in RATE_LIMIT_CODES:
            raise NetworkError(f"Order rate limited: {payload.get('msg')}", kind=ErrorKind.RATE_LIMITED, code=code)
        if code != "0" or not detail.get("ordId"):
            reason = detail.get("sMsg") or ""
            raise OrderError(f"Order failed: {payload.get('msg') or 'rejected'} ({reason})", code=detail.get("sCode") or code)
        return detail

    # ------------------------------------------------------------------
    # Account data
    # ------------------------------------------------------------------

    def get_balance(self) -> AccountBalance:
        """Get account balance (private endpoint)"""
        logger.debug(f"[{self._mode_label()}] Fetching account balance")
        data = self._call("balance", lambda: self._request("GET", "/api/v5/account/balance", auth=True))
        if not data:
            return AccountBalance(total_equity=0.0, available=0.0)

        details = data[0].get("details") or []
        currencies = []
        for d in details:
            available = float(d.get("availBal") or 0)
            frozen = float(d.get("frozenBal") or 0)
            currencies.append({
                "currency": d.get("ccy"),
                "available": available,
                "frozen": frozen,
                "total": available + frozen,
            })

        return AccountBalance(
            total_equity=float(data[0].get("totalEq") or 0),
            available=sum(c["available"] for c in currencies),
            currencies=[c for c in currencies if c["total"] > 0],
        )

    def get_positions(self) -> List[ExchangePosition]:
        """Get positions held on OKX (private endpoint)"""
        data = self._call("positions", lambda: self._request("GET", "/api/v5/account/positions", auth=True))

        positions = []
        for pos in data:
            contracts = float(pos.get("pos") or 0)
            created = pos.get("cTime")
            positions.append(ExchangePosition(
                inst_id=pos.get("instId"),
                side="long" if contracts > 0 else "short",
                size=abs(contracts),
                entry_price=float(pos.get("avgPx") or 0),
                current_price=float(pos.get("markPx") or pos.get("last") or 0),
                leverage=float(pos.get("lever") or 1),
                margin=float(pos.get("imr") or pos.get("margin") or 0),
                unrealized_pnl=float(pos.get("upl") or 0),
                unrealized_pnl_percent=float(pos.get("uplRatio") or 0) * 100,
                liquidation_price=float(pos["liqPx"]) if pos.get("liqPx") else None,
                margin_mode=pos.get("mgnMode"),
                timestamp=timestamp_to_iso(int(created) / 1000) if created else None,
            ))
        return positions

    def __repr__(self) -> str:
        return f"OkxClient(mode={self._mode_label()}, configured={self.is_configured()})"
