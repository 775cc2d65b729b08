"""
Bounded task pool with first-error-wins aggregation.

Runs a function over a list of items with a fixed number of worker threads.
Once a task fails, tasks that have not started are cancelled; tasks already
running are allowed to finish but are no longer counted. The outcome holds the
results of exactly the tasks that completed before the first failure.
"""
from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, List, Optional, Set, TypeVar

__all__ = ["BoundedPool", "PoolOutcome"]

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class PoolOutcome(Generic[R]):
    """Results completed before the first failure, and that failure if any."""
    results: List[R] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BoundedPool:
    """Fixed-size worker pool."""

    def __init__(self, workers: int = 4, name: str = "pool") -> None:
        if workers < 1:
            raise ValueError(f"workers must be at least 1, got {workers}")
        self.workers = workers
        self.name = name

    def run(self, fn: Callable[[T], R], items: Iterable[T]) -> PoolOutcome[R]:
        """
        Apply ``fn`` to every item, at most ``workers`` at a time.

        Items are submitted lazily so no more than ``workers`` tasks are ever
        queued, which keeps cancellation after a failure cheap.
        """
        outcome: PoolOutcome[R] = PoolOutcome()
        pending: Set[Future] = set()
        it = iter(items)

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix=self.name) as executor:
            def fill() -> None:
                while len(pending) < self.workers:
                    try:
                        item = next(it)
                    except StopIteration:
                        return
                    pending.add(executor.submit(fn, item))

            fill()
            while pending:
                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    pending.discard(future)
                    if outcome.error is not None:
                        continue
                    error = future.exception()
                    if error is not None:
                        outcome.error = error
                    else:
                        outcome.results.append(future.result())

                if outcome.error is not None:
                    for future in pending:
                        future.cancel()
                    logger.debug(f"{self.name}: stopping after first error, waiting for {len(pending)} running tasks")
                    wait(pending)
                    break
                fill()

        return outcome
