"""Uniform random batches drawn from the stored dataset."""
from __future__ import annotations

import logging
import random
from typing import List, Optional

from .store.base import ObjectEntry, ObjectStore
from .timeouts import TimeoutPolicy

__all__ = ["BatchSampler", "dataset_size"]

logger = logging.getLogger(__name__)


def dataset_size(entries: List[ObjectEntry]) -> int:
    return sum(e.size for e in entries)


class BatchSampler:
    """
    Lists the whole dataset and picks a random batch of a requested size.

    The same sampler decides what to delete and what to verify, so over time
    every object is equally likely to be checked or aged out.
    """

    def __init__(self, store: ObjectStore, prefix: str, policy: TimeoutPolicy, rng: Optional[random.Random] = None) -> None:
        self._store = store
        self._prefix = prefix
        self._policy = policy
        # SystemRandom shuffles with the OS CSPRNG
        self._rng = rng or random.SystemRandom()

    def entries(self) -> List[ObjectEntry]:
        """Every object currently stored under the dataset prefix."""
        return self._store.list(self._prefix, timeout=self._policy.deadline())

    def current_size(self) -> int:
        return dataset_size(self.entries())

    def sample(self, size: int) -> List[ObjectEntry]:
        """
        Return a shuffled prefix of the dataset whose sizes sum to at least ``size``.

        If the whole dataset is smaller than ``size`` every entry is returned.
        A non-positive size yields an empty batch.
        """
        if size <= 0:
            return []

        entries = list(self.entries())
        self._rng.shuffle(entries)

        batch: List[ObjectEntry] = []
        remaining = size
        for entry in entries:
            batch.append(entry)
            remaining -= entry.size
            if remaining <= 0:
                break

        logger.debug(f"sampled {len(batch)} of {len(entries)} objects for a batch of {size} bytes")
        return batch
