"""Run blocking calls under a wall-clock budget."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BudgetExceeded(Exception):
    """Raised when a call does not finish within its budget."""


class BudgetedRunner:
    """Runs calls on a helper pool and stops waiting once the budget is spent.

    Python threads cannot be killed, so an overrunning call is abandoned: the
    caller gets BudgetExceeded immediately and the helper thread finishes (or
    not) in the background. The helper pool is sized larger than the caller
    pool so a few stuck calls do not starve new ones.

    The budget starts when a helper picks the call up, not when it is queued.
    Once every helper is held by an abandoned call, new calls fail straight
    away instead of queueing behind them.
    """

    def __init__(self, budget_seconds: float | None, max_workers: int, name: str) -> None:
        self.budget_seconds = budget_seconds
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._name = name
        self._abandoned = 0
        self._lock = threading.Lock()

    @property
    def abandoned(self) -> int:
        """Calls that overran and still hold a helper thread."""
        with self._lock:
            return self._abandoned

    def run(self, fn: Callable[..., T], *args: Any) -> T:
        if not self.budget_seconds:
            return fn(*args)

        stuck = self.abandoned
        if stuck >= self.max_workers:
            logger.warning("%s helper pool saturated by %d overrunning calls", self._name, stuck)
            raise BudgetExceeded(f"could not start, helper pool saturated by {stuck} overrunning calls")

        started = threading.Event()

        def call() -> T:
            started.set()
            return fn(*args)

        future: Future = self._executor.submit(call)
        if not started.wait(timeout=self.budget_seconds) and future.cancel():
            raise BudgetExceeded(f"waited {self.budget_seconds:g}s for a free helper")

        try:
            return future.result(timeout=self.budget_seconds)
        except FutureTimeout as exc:
            self._abandon(future)
            logger.warning("%s call exceeded %.1fs budget, abandoning", self._name, self.budget_seconds)
            raise BudgetExceeded(f"exceeded {self.budget_seconds:g}s budget") from exc

    def _abandon(self, future: Future) -> None:
        with self._lock:
            self._abandoned += 1
        future.add_done_callback(self._reclaim)

    def _reclaim(self, future: Future) -> None:
        with self._lock:
            self._abandoned -= 1

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
