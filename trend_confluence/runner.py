from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Mapping, Optional, Sequence, Tuple

from .backtest import BacktestSimulator, Evaluator
from .config import Config
from .evaluator import evaluate
from .models import BacktestResult, Candle
from .profiles import StrategyProfile

log = logging.getLogger("runner")

Failure = Tuple[str, str, str]


class BacktestRunner:
    """Runs independent (symbol, profile) backtests concurrently.

    Each run is synchronous and goes to a worker thread; the event loop only
    schedules them. Candle data is shared read-only. One `threading.Event`
    cancels every run cooperatively.
    """

    def __init__(self, cfg: Config, *, evaluator: Evaluator = evaluate):
        self.cfg = cfg
        self.evaluator = evaluator
        self.cancel_event = threading.Event()

    def cancel(self) -> None:
        self.cancel_event.set()

    def _run_one(self, symbol: str, profile: StrategyProfile, candles_by_tf: Mapping[str, Sequence[Candle]]) -> BacktestResult:
        sim = BacktestSimulator(profile, self.cfg.backtest, self.cfg.analysis, evaluator=self.evaluator)
        return sim.run(candles_by_tf, symbol=symbol, cancel_event=self.cancel_event)

    async def run(
        self,
        data: Mapping[str, Mapping[str, Sequence[Candle]]],
        profiles: Sequence[StrategyProfile],
    ) -> Tuple[List[BacktestResult], List[Failure]]:
        """Backtest every symbol in `data` against every profile.

        Results come back in (symbol, profile) input order. A failing run is
        reported as `(symbol, profile_name, error)` and does not stop others.
        """
        concurrency = max(1, int(self.cfg.runner.concurrency))
        jobs = [(sym, p) for sym in data for p in profiles]
        log.info("batch_start runs=%d concurrency=%d", len(jobs), concurrency)

        sem = asyncio.Semaphore(concurrency)
        loop = asyncio.get_running_loop()

        with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="backtest") as pool:

            async def _one(sym: str, profile: StrategyProfile):
                try:
                    async with sem:
                        res = await loop.run_in_executor(pool, self._run_one, sym, profile, data[sym])
                    return res, None
                except Exception as e:
                    return None, (sym, profile.name, repr(e))

            outcomes = await asyncio.gather(*[_one(sym, p) for sym, p in jobs], return_exceptions=False)

        results = [r for r, _ in outcomes if r is not None]
        failures = [f for _, f in outcomes if f is not None]
        if failures:
            for sym, name, err in failures[:10]:
                log.warning("backtest_failed symbol=%s profile=%s err=%s", sym, name, err)
            if len(failures) > 10:
                log.warning("backtest_failed_more count=%d", len(failures) - 10)
        log.info("batch_done ok=%d failed=%d cancelled=%s", len(results), len(failures), self.cancel_event.is_set())
        return results, failures


def run_backtests(
    cfg: Config,
    data: Mapping[str, Mapping[str, Sequence[Candle]]],
    profiles: Optional[Sequence[StrategyProfile]] = None,
    runner: Optional[BacktestRunner] = None,
) -> Tuple[List[BacktestResult], List[Failure]]:
    """Blocking wrapper around `BacktestRunner.run`."""
    runner = runner or BacktestRunner(cfg)
    return asyncio.run(runner.run(data, list(profiles or cfg.profiles)))
