"""
Off-thread projection runs with last-request-wins semantics.

Every `submit()` gets a generation token. A result is only delivered if its
token is still the newest one when the run finishes; anything older is
dropped on the floor. Runs that have not started yet are cancelled outright.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from models import load_settings, load_snapshot
from simulation import SimulationResult, run_simulation
from summary import Metrics, Recommendation, recommend, summarize

logger = logging.getLogger(__name__)

COMPLETED = "completed"
FAILED = "failed"
SUPERSEDED = "superseded"


@dataclass
class Projection:
    result: SimulationResult
    metrics: Metrics
    recommendations: List[Recommendation] = field(default_factory=list)


@dataclass
class RunOutcome:
    status: str
    generation: int
    projection: Optional[Projection] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == COMPLETED


def run_projection(snapshot, settings=None) -> Projection:
    """Validate, simulate and summarize in one synchronous call."""
    snap = load_snapshot(snapshot)
    cfg = load_settings(settings)
    result = run_simulation(snap, cfg)
    metrics = summarize(result, snap, cfg)
    return Projection(result=result, metrics=metrics, recommendations=recommend(metrics, result, snap, cfg))


class SimulationRunner:
    """
    One logical run at a time per session. The executor has a single worker,
    so a burst of edits queues at most one live job; older queued jobs are
    cancelled and older finished ones are discarded by generation.
    """

    def __init__(self, on_result: Optional[Callable[[RunOutcome], None]] = None):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="projection")
        self._lock = threading.Lock()
        self._generation = 0
        self._pending: Optional[Future] = None
        self._latest: Optional[RunOutcome] = None
        self._on_result = on_result

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def latest(self) -> Optional[RunOutcome]:
        with self._lock:
            return self._latest

    def submit(self, snapshot, settings=None) -> Future:
        # copy now so later caller edits never leak into this run
        snap = load_snapshot(snapshot).model_copy(deep=True)
        cfg = load_settings(settings)
        with self._lock:
            self._generation += 1
            gen = self._generation
            if self._pending is not None and self._pending.cancel():
                logger.debug("cancelled queued run generation=%d", gen - 1)
            fut = self._executor.submit(self._run, gen, snap, cfg)
            self._pending = fut
        return fut

    def _run(self, gen: int, snap, cfg) -> RunOutcome:
        if gen != self.generation:
            logger.info("run generation=%d superseded before start", gen)
            return RunOutcome(status=SUPERSEDED, generation=gen)
        t0 = time.perf_counter()
        try:
            outcome = RunOutcome(status=COMPLETED, generation=gen, projection=run_projection(snap, cfg))
        except Exception as e:
            logger.exception("projection run generation=%d failed", gen)
            outcome = RunOutcome(status=FAILED, generation=gen, error=f"{type(e).__name__}: {e}")
        logger.info("[timing] run generation=%d status=%s took %.1fms",
                    gen, outcome.status, (time.perf_counter() - t0) * 1000)
        return self._publish(outcome)

    def _publish(self, outcome: RunOutcome) -> RunOutcome:
        with self._lock:
            if outcome.generation != self._generation:
                logger.info("discarding stale result generation=%d (latest=%d)",
                            outcome.generation, self._generation)
                return RunOutcome(status=SUPERSEDED, generation=outcome.generation)
            self._latest = outcome
        if self._on_result is not None:
            self._on_result(outcome)
        return outcome

    def shutdown(self, wait: bool = True):
        self._executor.shutdown(wait=wait)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.shutdown()
