"""Cycle scheduler: one sequential pass over the configured instruments."""
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from loguru import logger

from ..data.rate_limiter import RateLimiter
from .exchange_interface import ExchangeConnector
from .execution_pipeline import ExecutionPipeline, InstrumentResult
from .state_store import StateStore


@dataclass
class CycleReport:
    """Summary of one cycle. `executed` is True when at least one trade was placed."""
    executed: bool
    trades_executed: int = 0
    total_instruments: int = 0
    results: List[InstrumentResult] = field(default_factory=list)
    reason: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'executed': self.executed,
            'trades_executed': self.trades_executed,
            'total_instruments': self.total_instruments,
            'results': [r.to_dict() for r in self.results],
            'reason': self.reason,
        }


class CycleScheduler:
    """
    Runs the execution pipeline for each instrument in fixed order.

    Instruments are spaced by a rate limiter, and a failure on one instrument
    never stops the others. Only a missing exchange configuration aborts a
    cycle. Overlapping invocations return immediately.
    """

    def __init__(
        self,
        pipeline: ExecutionPipeline,
        connector: ExchangeConnector,
        store: StateStore,
        instruments: Sequence[str],
        limiter: Optional[RateLimiter] = None,
    ):
        self.pipeline = pipeline
        self.connector = connector
        self.store = store
        self.instruments = list(instruments)
        self.limiter = limiter or RateLimiter(0.2)
        self._in_progress = threading.Lock()

    def run_cycle(self, instruments: Optional[Sequence[str]] = None) -> CycleReport:
        """
        Run one trading cycle.

        Args:
            instruments: Override for the configured instrument list

        Returns:
            CycleReport
        """
        if not self._in_progress.acquire(blocking=False):
            logger.warning("Trading cycle skipped: previous cycle still running")
            return CycleReport(executed=False, reason="cycle already in progress")

        try:
            return self._run(list(instruments) if instruments is not None else self.instruments)
        finally:
            self._in_progress.release()

    def _run(self, instruments: List[str]) -> CycleReport:
        if not self.connector.is_configured():
            self.store.append_log('OKX API not configured. Please set API credentials.', 'error')
            return CycleReport(executed=False, total_instruments=len(instruments), reason="not configured")

        self.store.append_log(f"Scanning {len(instruments)} instruments...", 'info')

        results = []
        for inst_id in instruments:
            self.limiter.wait()
            try:
                result = self.pipeline.run(inst_id)
            except Exception as e:
                logger.exception(f"[{inst_id}] Pipeline crashed: {e}")
                self.store.append_log(f"[{inst_id}] Error: {e}", 'error')
                result = InstrumentResult(inst_id=inst_id, executed=False, reason=str(e))
            results.append(result)

        trades = sum(1 for r in results if r.executed)
        self.store.append_log(f"Cycle complete: {trades}/{len(instruments)} trades executed", 'info')

        return CycleReport(
            executed=trades > 0,
            trades_executed=trades,
            total_instruments=len(instruments),
            results=results,
        )
