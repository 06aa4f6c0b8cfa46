"""Tests for the OKX REST client, run against a fake HTTP session."""

import base64
import hashlib
import hmac
import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from crossover_trader.data.okx_client import OkxClient
from crossover_trader.data.rate_limiter import RateLimiter
from crossover_trader.data.retry import RetryPolicy
from crossover_trader.exceptions import (
    ConfigurationError, ErrorKind, ExchangeError, NetworkError, OrderError,
)


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, bad_json: bool = False) -> None:
        self.payload = payload
        self.status_code = status_code
        self.bad_json = bad_json

    def json(self) -> Any:
        if self.bad_json:
            raise ValueError("Expecting value")
        return self.payload


def ok(data: Optional[List[Dict]] = None) -> FakeResponse:
    return FakeResponse({"code": "0", "msg": "", "data": data or []})


class FakeSession:
    """Routes requests by URL path. A list of responses is consumed in order; the last one repeats."""

    def __init__(self, routes: Dict[str, Any]) -> None:
        self.routes = {path: list(r) if isinstance(r, list) else [r] for path, r in routes.items()}
        self.calls: List[Dict] = []

    def request(self, method, url, data=None, headers=None, timeout=None):
        parts = urlsplit(url)
        self.calls.append({
            "method": method,
            "path": parts.path,
            "query": parse_qs(parts.query),
            "data": data,
            "headers": headers or {},
            "timeout": timeout,
        })
        queue = self.routes[parts.path]
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    def calls_to(self, path: str) -> List[Dict]:
        return [c for c in self.calls if c["path"] == path]


def make_client(routes: Dict[str, Any], demo_mode: bool = True, **kwargs) -> OkxClient:
    params = dict(
        api_key="key",
        secret_key="secret",
        passphrase="pass",
        demo_mode=demo_mode,
        rate_limiter=RateLimiter(0),
        retry_policy=RetryPolicy(max_retries=3, base_delay=0.0, sleep=lambda s: None),
        session=FakeSession(routes),
    )
    params.update(kwargs)
    return OkxClient(**params)


ORDER_ROUTES = {
    "/api/v5/account/config": ok([{"acctLv": "2", "posMode": "net_mode"}]),
    "/api/v5/market/ticker": ok([{"instId": "BTC-USDT", "last": "50000", "bidPx": "49999", "askPx": "50001"}]),
    "/api/v5/public/instruments": ok([{"instId": "BTC-USDT-SWAP", "ctVal": "0.01", "lotSz": "1", "minSz": "1"}]),
    "/api/v5/account/set-position-mode": FakeResponse({"code": "51020", "msg": "Position mode unchanged", "data": []}),
    "/api/v5/account/set-leverage": ok([{"lever": "5", "mgnMode": "cross"}]),
    "/api/v5/trade/order": ok([{"ordId": "5678", "clOrdId": "ctabc", "sCode": "0", "sMsg": ""}]),
}


# --- Market data ---


def test_candles_are_returned_oldest_first() -> None:
    client = make_client({
        "/api/v5/market/candles": ok([
            ["1700000120000", "3", "3", "3", "3", "10", "0", "0", "1"],
            ["1700000060000", "2", "2", "2", "2", "10", "0", "0", "1"],
            ["1700000000000", "1", "1", "1", "1", "10", "0", "0", "1"],
        ]),
    })
    candles = client.get_candles("BTC-USDT", "1m", 3)

    assert [c.close for c in candles] == [1.0, 2.0, 3.0]
    assert candles[0].timestamp < candles[-1].timestamp
    call = client.session.calls[0]
    assert call["query"] == {"instId": ["BTC-USDT"], "bar": ["1m"], "limit": ["3"]}
    assert call["headers"] == {}


def test_ticker_is_parsed() -> None:
    client = make_client({"/api/v5/market/ticker": ORDER_ROUTES["/api/v5/market/ticker"]})
    ticker = client.get_ticker("BTC-USDT")
    assert ticker.last == 50000.0
    assert ticker.bid == 49999.0
    assert client.session.calls[0]["timeout"] == 10.0


# --- Error classification and retry ---


def test_rate_limit_status_is_retried_then_raised() -> None:
    client = make_client({"/api/v5/market/ticker": FakeResponse({"code": "50011"}, status_code=429)})
    with pytest.raises(NetworkError) as exc:
        client.get_ticker("BTC-USDT")

    assert exc.value.kind == ErrorKind.RATE_LIMITED
    assert len(client.session.calls) == 3


def test_rate_limit_code_is_tagged() -> None:
    client = make_client({"/api/v5/market/ticker": FakeResponse({"code": "50011", "msg": "Too Many Requests"})})
    with pytest.raises(NetworkError) as exc:
        client.get_ticker("BTC-USDT")
    assert exc.value.kind == ErrorKind.RATE_LIMITED
    assert exc.value.code == "50011"


def test_business_error_is_not_retried() -> None:
    client = make_client({"/api/v5/market/ticker": FakeResponse({"code": "51001", "msg": "Instrument ID does not exist"})})
    with pytest.raises(ExchangeError) as exc:
        client.get_ticker("FOO-USDT")

    assert exc.value.kind == ErrorKind.REJECTED
    assert "Instrument ID does not exist" in str(exc.value)
    assert len(client.session.calls) == 1


def test_server_error_recovers_on_retry() -> None:
    client = make_client({
        "/api/v5/market/ticker": [FakeResponse(None, status_code=502), ORDER_ROUTES["/api/v5/market/ticker"]],
    })
    assert client.get_ticker("BTC-USDT").last == 50000.0
    assert len(client.session.calls) == 2


def test_connection_error_is_network_kind() -> None:
    client = make_client({"/api/v5/market/ticker": requests.ConnectionError("connection refused")})
    with pytest.raises(NetworkError) as exc:
        client.get_ticker("BTC-USDT")
    assert exc.value.kind == ErrorKind.NETWORK
    assert len(client.session.calls) == 3


def test_unparseable_body_is_network_kind() -> None:
    client = make_client({"/api/v5/market/ticker": FakeResponse(bad_json=True)})
    with pytest.raises(NetworkError):
        client.get_ticker("BTC-USDT")


@pytest.mark.parametrize(
    "row",
    [{"instId": "BTC-USDT"}, {"instId": "BTC-USDT", "last": ""}, {"instId": "BTC-USDT", "last": None}],
)
def test_malformed_ticker_is_exchange_error(row: Dict) -> None:
    client = make_client({"/api/v5/market/ticker": ok([row])})
    with pytest.raises(ExchangeError, match="Malformed ticker for BTC-USDT"):
        client.get_ticker("BTC-USDT")
    assert len(client.session.calls) == 1


def test_malformed_candles_are_exchange_error() -> None:
    client = make_client({"/api/v5/market/candles": ok([["1700000000000", "1", "1", "1"]])})
    with pytest.raises(ExchangeError, match="Malformed candles for BTC-USDT"):
        client.get_candles("BTC-USDT")


# --- Authentication ---


def test_signature_matches_okx_scheme() -> None:
    client = make_client({})
    expected = base64.b64encode(
        hmac.new(b"secret", b"2024-01-01T00:00:00.000ZGET/api/v5/account/balance", hashlib.sha256).digest()
    ).decode()
    assert client._sign("2024-01-01T00:00:00.000Z", "get", "/api/v5/account/balance") == expected


def test_private_request_headers() -> None:
    client = make_client({"/api/v5/account/balance": ok([{"totalEq": "100", "details": []}])})
    client.get_balance()
    headers = client.session.calls[0]["headers"]

    assert headers["OK-ACCESS-KEY"] == "key"
    assert headers["OK-ACCESS-PASSPHRASE"] == "pass"
    assert headers["OK-ACCESS-TIMESTAMP"].endswith("Z")
    assert headers["x-simulated-trading"] == "1"


def test_live_mode_omits_simulated_header() -> None:
    client = make_client({"/api/v5/account/balance": ok([{"totalEq": "100", "details": []}])}, demo_mode=False)
    client.get_balance()
    assert "x-simulated-trading" not in client.session.calls[0]["headers"]


def test_demo_credentials_fall_back_to_live() -> None:
    client = make_client({}, demo_credentials={"api_key": "demo-key"})
    assert client._credentials() == {"api_key": "demo-key", "secret_key": "secret", "passphrase": "pass"}

    client.set_demo_mode(False)
    assert client._credentials()["api_key"] == "key"


def test_missing_credentials() -> None:
    client = make_client({}, api_key=None, secret_key=None, passphrase=None)
    assert not client.is_configured()
    with pytest.raises(ConfigurationError):
        client.place_market_order("BTC-USDT", "buy", 10)


# --- Orders ---


def test_market_order_flow() -> None:
    client = make_client(dict(ORDER_ROUTES))
    receipt = client.place_market_order("BTC-USDT", "buy", 10, leverage=5)

    assert receipt.order_id == "5678"
    assert receipt.client_order_id == "ctabc"
    assert receipt.simulated
    assert receipt.price == 50000.0
    # 10 USDT * 5x = 50 notional, below one 500 USDT contract: minimum size applies
    assert receipt.contracts == "1"
    assert [(s.step, s.success) for s in receipt.steps] == [
        ("account_mode", True), ("position_mode", True), ("set_leverage", True),
    ]

    session = client.session
    assert session.calls_to("/api/v5/account/set-account-level") == []
    body = json.loads(session.calls_to("/api/v5/trade/order")[0]["data"])
    assert body["instId"] == "BTC-USDT-SWAP"
    assert body["tdMode"] == "cross"
    assert body["ordType"] == "market"
    assert body["side"] == "buy"
    assert body["sz"] == "1"
    assert body["clOrdId"].startswith("ct")


def test_contract_count_rounds_down_to_lot() -> None:
    contract = {"ct_val": 0.01, "lot_sz": 1.0, "min_sz": 1.0}
    assert OkxClient.contracts_for(1499.0, 50000.0, contract) == "2"
    assert OkxClient.contracts_for(10.0, 50000.0, contract) == "1"
    assert OkxClient.contracts_for(75.0, 100.0, {"ct_val": 1.0, "lot_sz": 0.1, "min_sz": 0.1}) == "0.7"


def test_leverage_step_skipped_at_1x() -> None:
    client = make_client(dict(ORDER_ROUTES))
    receipt = client.place_market_order("BTC-USDT", "sell", 10, leverage=1)

    assert client.session.calls_to("/api/v5/account/set-leverage") == []
    assert [s.step for s in receipt.steps] == ["account_mode", "position_mode"]


def test_account_mode_upgraded_once_and_cached() -> None:
    routes = dict(ORDER_ROUTES)
    routes["/api/v5/account/config"] = ok([{"acctLv": "1"}])
    routes["/api/v5/account/set-account-level"] = ok([{"acctLv": "2"}])
    client = make_client(routes)

    client.place_market_order("BTC-USDT", "buy", 10)
    client.place_market_order("BTC-USDT", "buy", 10)

    assert len(client.session.calls_to("/api/v5/account/set-account-level")) == 1
    assert len(client.session.calls_to("/api/v5/account/config")) == 1
    assert len(client.session.calls_to("/api/v5/public/instruments")) == 1

    client.set_demo_mode(True)
    client.place_market_order("BTC-USDT", "buy", 10)
    assert len(client.session.calls_to("/api/v5/account/config")) == 2


def test_failed_setup_step_does_not_block_order() -> None:
    routes = dict(ORDER_ROUTES)
    routes["/api/v5/account/set-leverage"] = FakeResponse({"code": "59000", "msg": "Setting failed"})
    client = make_client(routes)

    receipt = client.place_market_order("BTC-USDT", "buy", 10, leverage=10)
    leverage_step = receipt.steps[-1]
    assert leverage_step.step == "set_leverage"
    assert not leverage_step.success
    assert "Setting failed" in leverage_step.detail
    assert receipt.order_id == "5678"


def test_rejected_order_is_not_retried() -> None:
    routes = dict(ORDER_ROUTES)
    routes["/api/v5/trade/order"] = FakeResponse({
        "code": "1",
        "msg": "Operation failed",
        "data": [{"ordId": "", "sCode": "51008", "sMsg": "Insufficient balance"}],
    })
    client = make_client(routes)

    with pytest.raises(OrderError) as exc:
        client.place_market_order("BTC-USDT", "buy", 10)

    assert exc.value.code == "51008"
    assert "Insufficient balance" in str(exc.value)
    assert len(client.session.calls_to("/api/v5/trade/order")) == 1


def test_rate_limited_order_is_retried() -> None:
    routes = dict(ORDER_ROUTES)
    routes["/api/v5/trade/order"] = [
        FakeResponse({"code": "50011", "msg": "Too Many Requests", "data": []}),
        ORDER_ROUTES["/api/v5/trade/order"],
    ]
    client = make_client(routes)

    receipt = client.place_market_order("BTC-USDT", "buy", 10)
    assert receipt.order_id == "5678"
    assert len(client.session.calls_to("/api/v5/trade/order")) == 2


def test_order_timeout_is_not_retried() -> None:
    routes = dict(ORDER_ROUTES)
    routes["/api/v5/trade/order"] = requests.Timeout("read timed out")
    client = make_client(routes)

    with pytest.raises(OrderError) as exc:
        client.place_market_order("BTC-USDT", "buy", 10)
    assert exc.value.kind == ErrorKind.NETWORK
    assert len(client.session.calls_to("/api/v5/trade/order")) == 1


# --- Account ---


def test_balance_and_positions() -> None:
    client = make_client({
        "/api/v5/account/balance": ok([{
            "totalEq": "1234.5",
            "details": [
                {"ccy": "USDT", "availBal": "1000", "frozenBal": "200"},
                {"ccy": "BTC", "availBal": "0", "frozenBal": "0"},
            ],
        }]),
        "/api/v5/account/positions": ok([{
            "instId": "ETH-USDT-SWAP", "pos": "-3", "avgPx": "2000", "markPx": "1900",
            "lever": "10", "imr": "60", "upl": "3", "uplRatio": "0.05", "liqPx": "2500",
            "mgnMode": "cross", "cTime": "1700000000000",
        }]),
    })

    balance = client.get_balance()
    assert balance.total_equity == 1234.5
    assert balance.available == 1000.0
    assert [c["currency"] for c in balance.currencies] == ["USDT"]

    [pos] = client.get_positions()
    assert pos.side == "short"
    assert pos.size == 3.0
    assert pos.unrealized_pnl_percent == pytest.approx(5.0)
    assert pos.liquidation_price == 2500.0
    assert pos.timestamp.startswith("2023-11-14")
