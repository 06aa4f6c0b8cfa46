"""
Logging configuration for Crossover Trader
Uses loguru for structured, colorized logging

Besides the console and the main log file, executed and closed trades
(activity log entries of type 'trade', mirrored at SUCCESS level) are
written to a separate trade journal.
"""

import sys
from pathlib import Path
from typing import Optional, Union
from loguru import logger

from .config import Config, get_config

FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"
TRADE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {message}"


def _is_trade(record) -> bool:
    return record["level"].name == "SUCCESS"


def add_trade_sink(path: Union[str, Path]) -> int:
    """
    Write trade entries (SUCCESS level) to their own file.

    Args:
        path: Trade journal file

    Returns:
        Sink id, for logger.remove()
    """
    return logger.add(
        path,
        rotation="1 week",
        retention="90 days",
        format=TRADE_FORMAT,
        level="SUCCESS",
        filter=_is_trade,
    )


def setup_logger(config: Optional[Config] = None):
    """Configure loguru logger with console, file and trade journal outputs"""
    config = config or get_config()

    # Remove default logger
    logger.remove()

    # Console output with colors
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=config.log_level,
        colorize=True,
    )

    log_file = config.logs_dir / "crossover_trader.log"
    logger.add(
        log_file,
        rotation="10 MB",
        retention="30 days",
        compression="zip",
        format=FILE_FORMAT,
        level=config.log_level,
    )

    trade_file = config.logs_dir / config.get("logging.trade_log", "trades.log")
    add_trade_sink(trade_file)

    logger.info(f"Logger initialized (level {config.log_level})")
    logger.info(f"Log file: {log_file}, trade journal: {trade_file}")

    return logger
