"""
Trade History

Bounded, most-recent-first record of executed and closed trades with
filtering, statistics and export.
"""

import time
import uuid
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional, Union

import pandas as pd
from loguru import logger

from ..utils.helpers import timestamp_to_iso


DateLike = Union[str, datetime, pd.Timestamp]


class TradeHistory:
    """
    In-memory trade history.

    Each record is a dict with at least: id, timestamp, mode, inst_id, side,
    price, size, action ('open' or 'close'). Close records carry the realized
    pnl and pnl_percent; statistics are computed over those.
    """

    def __init__(self, max_trades: int = 1000, clock: Callable[[], float] = time.time):
        """
        Initialize trade history.

        Args:
            max_trades: Capacity; the oldest record is dropped past it
            clock: Wall-clock time source in epoch seconds
        """
        self.max_trades = max_trades
        self._clock = clock
        self._trades: Deque[Dict] = deque(maxlen=max_trades)

    def record(self, **trade) -> Dict:
        """
        Record a trade.

        Args:
            **trade: Trade fields (mode, inst_id, side, price, size, ...)

        Returns:
            The stored record
        """
        now = self._clock()
        entry = {
            'id': f"trade_{int(now * 1000)}_{uuid.uuid4().hex[:9]}",
            'timestamp': timestamp_to_iso(now),
            'action': 'open',
            **trade,
        }
        self._trades.appendleft(entry)

        mode = str(entry.get('mode', 'live')).upper()
        logger.info(
            f"[TRADE LOG] [{mode}] {entry['action'].upper()} {str(entry.get('side', '')).upper()} "
            f"{entry.get('inst_id')} @ {entry.get('price')}"
        )
        return entry

    def __len__(self) -> int:
        return len(self._trades)

    def _by_mode(self, mode: Optional[str]) -> List[Dict]:
        if mode is None:
            return list(self._trades)
        return [t for t in self._trades if t.get('mode') == mode]

    def get_history(
        self,
        mode: Optional[str] = None,
        inst_id: Optional[str] = None,
        side: Optional[str] = None,
        start: Optional[DateLike] = None,
        end: Optional[DateLike] = None,
        limit: Optional[int] = None,
    ) -> List[Dict]:
        """Filtered trade records, newest first."""
        trades = self._by_mode(mode)

        if inst_id:
            trades = [t for t in trades if t.get('inst_id') == inst_id]
        if side:
            trades = [t for t in trades if t.get('side') == side]
        if start is not None:
            start_ts = pd.Timestamp(start, tz='UTC') if _is_naive(start) else pd.Timestamp(start)
            trades = [t for t in trades if pd.Timestamp(t['timestamp']) >= start_ts]
        if end is not None:
            end_ts = pd.Timestamp(end, tz='UTC') if _is_naive(end) else pd.Timestamp(end)
            trades = [t for t in trades if pd.Timestamp(t['timestamp']) <= end_ts]
        if limit:
            trades = trades[:limit]

        return [dict(t) for t in trades]

    def get_stats(self, mode: Optional[str] = None) -> Dict:
        """
        Calculate trading statistics.

        Returns:
            Dictionary with trade counts, win/loss record over closes,
            total realized P&L, average size and most traded instrument
        """
        trades = self._by_mode(mode)

        if not trades:
            return {
                'total_trades': 0,
                'buy_trades': 0,
                'sell_trades': 0,
                'wins': 0,
                'losses': 0,
                'win_rate': 0.0,
                'total_pnl': 0.0,
                'avg_trade_size': 0.0,
                'most_traded_pair': None,
                'first_trade': None,
                'last_trade': None,
            }

        df = pd.DataFrame(trades)

        closes = df[df['action'] == 'close']
        if 'pnl' in closes.columns:
            realized = pd.to_numeric(closes['pnl'], errors='coerce').dropna()
        else:
            realized = pd.Series(dtype=float)

        wins = int((realized > 0).sum())
        losses = int((realized <= 0).sum())
        decided = wins + losses

        return {
            'total_trades': len(df),
            'buy_trades': int((df['side'] == 'buy').sum()),
            'sell_trades': int((df['side'] == 'sell').sum()),
            'wins': wins,
            'losses': losses,
            'win_rate': round(wins / decided * 100, 1) if decided else 0.0,
            'total_pnl': round(float(realized.sum()), 2),
            'avg_trade_size': round(float(pd.to_numeric(df['size'], errors='coerce').mean()), 2),
            'most_traded_pair': df['inst_id'].value_counts().idxmax(),
            'first_trade': trades[-1]['timestamp'],
            'last_trade': trades[0]['timestamp'],
        }

    def clear(self, mode: Optional[str] = None):
        """Clear history, or only the records of one mode."""
        if mode is None:
            self._trades.clear()
        else:
            keep = [t for t in self._trades if t.get('mode') != mode]
            self._trades.clear()
            self._trades.extend(keep)

        logger.info(f"[TRADE LOG] Cleared {mode or 'all'} trade history")

    def export(self, mode: Optional[str] = None) -> Dict:
        """Export trades and stats as a JSON-serializable dict."""
        return {
            'export_date': timestamp_to_iso(self._clock()),
            'mode': mode or 'all',
            'stats': self.get_stats(mode),
            'trades': self.get_history(mode=mode),
        }

    def recent(self, count: int = 10) -> List[Dict]:
        """Short summaries of the most recent trades."""
        fields = ('id', 'timestamp', 'mode', 'inst_id', 'side', 'action', 'price', 'size', 'signal', 'order_id')
        return [{k: t.get(k) for k in fields} for t in list(self._trades)[:count]]


def _is_naive(value: DateLike) -> bool:
    return pd.Timestamp(value).tzinfo is None
