"""Tests for the loguru sinks, including the trade journal."""

import sys
from pathlib import Path

import pytest
from loguru import logger

from crossover_trader.live.state_store import StateStore
from crossover_trader.utils.logger import add_trade_sink, setup_logger


class StubConfig:
    def __init__(self, logs_dir: Path) -> None:
        self.logs_dir = logs_dir
        self.log_level = "DEBUG"

    def get(self, key, default=None):
        return default


@pytest.fixture
def restore_logger():
    yield
    logger.remove()
    logger.add(sys.stderr)


def test_trade_sink_keeps_only_trade_entries(tmp_path: Path) -> None:
    path = tmp_path / "trades.log"
    sink_id = add_trade_sink(path)
    try:
        store = StateStore()
        store.append_log("Scanning 6 instruments...", "info")
        store.append_log("Trade executed: BUY BTC-USDT @ $50000", "trade")
        store.append_log("[ETH-USDT] Order failed: rejected", "error")
    finally:
        logger.remove(sink_id)

    lines = path.read_text().splitlines()
    assert len(lines) == 1
    assert lines[0].endswith("[TRADE] Trade executed: BUY BTC-USDT @ $50000")


def test_setup_logger_writes_main_log_and_trade_journal(tmp_path: Path, restore_logger) -> None:
    setup_logger(StubConfig(tmp_path))
    logger.debug("debug line")
    logger.success("Closed LONG BTC-USDT")
    logger.remove()

    main_log = (tmp_path / "crossover_trader.log").read_text()
    trades = (tmp_path / "trades.log").read_text()

    assert "Logger initialized" in main_log
    assert "debug line" in main_log
    assert "Closed LONG BTC-USDT" in main_log
    assert "Closed LONG BTC-USDT" in trades
    assert "debug line" not in trades
    assert "Logger initialized" not in trades
