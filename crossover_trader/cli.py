"""Command line entry point for the trading engine.

Usage:
    # Run the timer loop on OKX demo trading
    ct-trade --demo

    # Paper trading against live OKX market data
    ct-trade --paper

    # Single cycle with custom sizing
    ct-trade --once --margin 20 --leverage 5

    # Show status
    ct-trade --status

    # List configured instruments
    ct-trade --list-instruments
"""
import argparse
import json
import sys
from typing import List, Optional

from loguru import logger

from .live.engine import build_engine
from .utils.config import get_config
from .utils.logger import setup_logger


def list_instruments(config) -> None:
    print("\nConfigured instruments:")
    for inst_id in config.instruments:
        print(f"  {inst_id:<12} -> {inst_id}-SWAP")
    print(f"\nTimeframe: {config.candle_timeframe}, candles: {config.candle_limit}, "
          f"cooldown: {config.pair_cooldown_seconds:g}s")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Crossover Trader - OKX MA crossover trading engine')
    parser.add_argument('--once', action='store_true',
                        help='Run a single trading cycle and exit')
    parser.add_argument('--status', action='store_true',
                        help='Show current status and account balance, then exit')
    parser.add_argument('--paper', action='store_true',
                        help='Paper trade locally using live OKX market data')
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--demo', dest='demo', action='store_true', default=None,
                      help='Use OKX demo trading')
    mode.add_argument('--live', dest='demo', action='store_false',
                      help='Use OKX live trading (real funds)')
    parser.add_argument('--margin', type=float,
                        help='Margin per order in USDT')
    parser.add_argument('--leverage', type=float,
                        help='Leverage multiplier (clamped to 1..max_leverage)')
    parser.add_argument('--interval', type=float,
                        help='Seconds between cycles (default from config)')
    parser.add_argument('--list-instruments', action='store_true',
                        help='List configured instruments')
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config = get_config()

    if args.list_instruments:
        list_instruments(config)
        return 0

    setup_logger(config)

    engine = build_engine(config, paper=args.paper, demo=args.demo)
    if args.interval is not None:
        engine.cycle_interval = args.interval
    if args.margin is not None or args.leverage is not None:
        engine.set_trade_config(margin=args.margin, leverage=args.leverage)

    if args.status:
        print("\nEngine Status:")
        for k, v in engine.status().items():
            print(f"  {k}: {v}")
        print("\nAccount:")
        print(json.dumps(engine.account(), indent=2, default=str))
        return 0

    if not engine.connector.is_configured():
        logger.error("OKX API credentials are not configured. See .env.example")
        return 1

    if args.once:
        report = engine.run_cycle()
        print(json.dumps(report.to_dict(), indent=2, default=str))
        # reason is set only when the cycle did not run
        return 1 if report.reason else 0

    mode = 'PAPER' if args.paper else ('DEMO' if engine.connector.is_demo_mode() else 'LIVE')
    cfg = engine.store.get_trade_config()
    print(f"\nStarting {mode} trading: {cfg.margin:g} USDT @ {cfg.leverage:g}x")
    print(f"Instruments: {', '.join(engine.scheduler.instruments)}")
    print(f"Cycle interval: {engine.cycle_interval:g}s")
    print("Press Ctrl+C to stop\n")

    engine.start()
    return 0


if __name__ == '__main__':
    sys.exit(main())
