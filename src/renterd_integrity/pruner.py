"""
Ageing out data: logical deletes followed by physical reclamation.

Deleting an object only drops its metadata; the sectors holding it stay on the
hosts until the contracts that reference them are pruned. After deleting a
random batch the pruner asks the bus which contracts hold prunable data and
prunes each of them within a fixed time budget.
"""
from __future__ import annotations

import logging
import time
from typing import NamedTuple

from .errors import IntegrityCheckError, PartialFailure
from .sampler import BatchSampler
from .store.base import ObjectStore
from .timeouts import TimeoutPolicy
from .units import human_readable_size

__all__ = ["PruneOutcome", "Pruner"]

logger = logging.getLogger(__name__)


class PruneOutcome(NamedTuple):
    removed: int
    reclaimed: int
    elapsed: float


class Pruner:
    """Deletes a random batch and reclaims the space it occupied."""

    def __init__(self, *, store: ObjectStore, sampler: BatchSampler, policy: TimeoutPolicy, reclaim_budget: float) -> None:
        self._store = store
        self._sampler = sampler
        self._policy = policy
        self._reclaim_budget = reclaim_budget

    def prune(self, sample_size: int) -> PruneOutcome:
        """
        Delete a random batch of at least ``sample_size`` bytes, then reclaim.

        Returns:
            PruneOutcome with logical bytes removed, physical bytes reclaimed
            and the seconds spent

        Raises:
            PartialFailure: If a delete failed after earlier ones succeeded;
                carries ``removed``
            IntegrityCheckError: If the first delete or the batch listing failed
        """
        start = time.monotonic()

        removed = 0
        for entry in self._sampler.sample(sample_size):
            try:
                self._store.delete(entry.key, timeout=self._policy.deadline())
            except IntegrityCheckError as e:
                if removed:
                    raise PartialFailure(e, removed=removed) from e
                raise
            removed += entry.size
        logger.info(f"removed {human_readable_size(removed)}")

        reclaimed = self.reclaim()
        return PruneOutcome(removed=removed, reclaimed=reclaimed, elapsed=time.monotonic() - start)

    def reclaim(self) -> int:
        """
        Prune every contract holding deleted data.

        A failure is logged and ends reclamation for this cycle; deletes already
        made stand and the bytes reclaimed so far are still reported.
        """
        reclaimed = 0
        try:
            contracts = self._store.prunable_space(timeout=self._policy.deadline())
        except IntegrityCheckError as e:
            logger.error(f"failed to fetch prunable data, err: {e}")
            return 0

        # The call deadline leaves the backend its full budget plus the floor for the round trip.
        timeout = self._reclaim_budget + self._policy.deadline()
        for contract in contracts:
            if contract.prunable <= 0:
                continue
            try:
                outcome = self._store.reclaim(contract.contract_id, self._reclaim_budget, timeout=timeout)
            except IntegrityCheckError as e:
                logger.error(f"failed to prune contract {contract.contract_id}, err: {e}")
                break
            reclaimed += outcome.reclaimed
            logger.debug(
                f"pruned {human_readable_size(outcome.reclaimed)} from contract {contract.contract_id}, "
                f"{human_readable_size(outcome.remaining)} remaining"
            )

        logger.info(f"reclaimed {human_readable_size(reclaimed)}")
        return reclaimed
