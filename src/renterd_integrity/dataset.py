"""
Dataset size balancing.

Keeps the logical size of the synthetic dataset at its target. Excess data is
removed by deleting a random batch; missing data is generated and uploaded over
a bounded worker pool. A call either shrinks or grows, never both, so a shrink
that overshoots is only corrected on the next cycle.
"""
from __future__ import annotations

import logging
import random
import time
from typing import List, NamedTuple, Optional

from .errors import IntegrityCheckError, LocalIOFailure, PartialFailure
from .generator import ContentAddressedGenerator
from .pool import BoundedPool
from .sampler import BatchSampler
from .store.base import ObjectStore
from .timeouts import TimeoutPolicy
from .units import human_readable_size

__all__ = ["BalanceOutcome", "DatasetBalancer"]

logger = logging.getLogger(__name__)


class BalanceOutcome(NamedTuple):
    """
    Bytes added and removed by one balancing pass.

    ``added`` is physical (scaled by the redundancy factor), ``removed`` is
    logical.
    """
    added: int
    removed: int


class DatasetBalancer:
    """Grows or shrinks the dataset to a target logical size."""

    def __init__(
        self,
        *,
        store: ObjectStore,
        sampler: BatchSampler,
        generator: ContentAddressedGenerator,
        policy: TimeoutPolicy,
        prefix: str,
        min_filesize: int,
        max_filesize: int,
        concurrency: int = 4,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not 0 < min_filesize <= max_filesize:
            raise ValueError(f"invalid file size bounds [{min_filesize}, {max_filesize}]")
        self._store = store
        self._sampler = sampler
        self._generator = generator
        self._policy = policy
        self._prefix = prefix.strip("/")
        self._min = min_filesize
        self._max = max_filesize
        self._pool = BoundedPool(concurrency, name="upload")
        self._rng = rng or random.SystemRandom()

    def ensure(self, target: int) -> BalanceOutcome:
        """
        Bring the dataset to ``target`` logical bytes.

        Returns:
            BalanceOutcome with physical bytes added and logical bytes removed

        Raises:
            PartialFailure: If a delete or upload failed after others succeeded;
                carries ``added`` and ``removed``
            IntegrityCheckError: If the stage failed before making progress
        """
        logger.info(f"ensuring data set size matches {human_readable_size(target)}")

        current = self._sampler.current_size()
        logger.info(f"current data set size: {human_readable_size(current)}")

        removed = 0
        if current > target:
            logger.info(f"removing {human_readable_size(current - target)}")
            removed = self._shrink(current - target)
            current = self._sampler.current_size()

        if removed == 0 and current < target:
            logger.info(f"adding {human_readable_size(target - current)}")
            added = self._grow(target - current)
            return BalanceOutcome(added=added, removed=0)

        return BalanceOutcome(added=0, removed=removed)

    def _shrink(self, excess: int) -> int:
        removed = 0
        for entry in self._sampler.sample(excess):
            try:
                self._store.delete(entry.key, timeout=self._policy.deadline())
            except IntegrityCheckError as e:
                if removed:
                    raise PartialFailure(e, added=0, removed=removed) from e
                raise
            removed += entry.size
        return removed

    def plan_sizes(self, missing: int) -> List[int]:
        """
        Random file sizes that together cover ``missing`` bytes.

        Every size lies in ``[min_filesize, max_filesize]``; at least one file is
        planned even when less than ``min_filesize`` is missing.
        """
        missing = max(missing, self._min)
        sizes: List[int] = []
        while missing > 0:
            upper = max(self._min, min(missing, self._max))
            size = self._rng.randint(self._min, upper)
            sizes.append(size)
            missing -= size
        return sizes

    def _grow(self, missing: int) -> int:
        # Redundancy is fetched fresh on every grow, never carried across cycles.
        redundancy = self._store.redundancy_factor(timeout=self._policy.deadline())

        sizes = self.plan_sizes(missing)
        logger.debug(f"uploading {len(sizes)} files with redundancy {redundancy:.2f}")

        outcome = self._pool.run(lambda size: self._upload(size, redundancy), sizes)
        added = int(sum(outcome.results) * redundancy)
        if outcome.error is not None:
            if added:
                raise PartialFailure(outcome.error, added=added, removed=0) from outcome.error
            raise outcome.error
        return added

    def _upload(self, size: int, redundancy: float) -> int:
        """Generate one file, upload it and remove the local copy."""
        physical = int(size * redundancy)
        start = time.monotonic()

        generated = self._generator.generate(size)
        key = f"{self._prefix}/{generated.name}"
        try:
            with open(generated.path, "rb") as f:
                self._store.put(key, f, timeout=self._policy.deadline(physical))
        except OSError as e:
            raise LocalIOFailure(f"failed to read generated file '{generated.path}': {e}") from e
        finally:
            try:
                generated.path.unlink()
            except OSError as e:
                logger.error(f"failed to remove file at path '{generated.path}', err: {e}")

        elapsed = time.monotonic() - start
        logger.debug(f"uploaded {key} ({human_readable_size(size)}) in {elapsed:.1f}s")
        return size
