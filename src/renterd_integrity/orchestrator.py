"""
Cycle orchestration.

One cycle runs Balance -> Verify -> Prune -> Record. Any stage error skips the
remaining stages and goes straight to Record with the error attached, so a
failing store shows up as failed results and alerts instead of a dead process.
Cycles run strictly one after another on the calling thread; a stop request is
only honoured between cycles.
"""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from .context import ServiceContext
from .errors import IntegrityCheckError, ObjectNotFound, PartialFailure
from .models import Alert, CycleError, Result, Severity, State
from .state import ResultStore
from .units import human_readable_size, mbps

__all__ = ["Stage", "CycleOrchestrator", "clean_start"]

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    IDLE = "idle"
    BALANCING = "balancing"
    VERIFYING = "verifying"
    PRUNING = "pruning"
    RECORDING = "recording"


_STAGE_FAILURES = {
    Stage.BALANCING: "failed to ensure dataset",
    Stage.VERIFYING: "failed to check integrity of the dataset",
    Stage.PRUNING: "failed to prune the dataset",
}


def _progress(exc: BaseException, key: str) -> int:
    if isinstance(exc, PartialFailure):
        return exc.progress.get(key, 0)
    return 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CycleOrchestrator:
    """
    Periodic state machine driving the checker.

    A cycle is due when the latest result completed balancing more than
    ``integrity_check_interval`` ago, or when the latest result never completed
    balancing at all; in that case the next tick retries right away.
    """

    def __init__(
        self,
        ctx: ServiceContext,
        results: ResultStore,
        state: State,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ctx = ctx
        self._settings = ctx.settings
        self._results = results
        self._now = now
        self.state = state
        self.stage = Stage.IDLE

        self._balancer = ctx.balancer()
        self._verifier = ctx.verifier()
        self._pruner = ctx.pruner()

    def is_due(self) -> bool:
        since = self.state.time_since_last_complete(self._now())
        return since is None or since.total_seconds() > self._settings.integrity_check_interval

    def tick(self) -> Optional[Result]:
        """Run a cycle if one is due."""
        if not self.is_due():
            logger.debug(
                f"skipping integrity check, it hasn't been {self._settings.integrity_check_interval:.0f}s since the last check"
            )
            return None
        return self.run_cycle()

    def run(self, stop: threading.Event) -> None:
        """Tick until ``stop`` is set; an in-flight cycle always runs to completion."""
        while not stop.is_set():
            self.tick()
            stop.wait(self._settings.tick_interval)
        logger.info("integrity checker stopped")

    def run_cycle(self) -> Result:
        """Run one full cycle and return its recorded result."""
        logger.info("running integrity checks")
        started_at = self._now()

        uploaded = downloaded = removed = pruned = 0
        upload_speed = download_speed = 0.0
        prune_elapsed = 0.0
        complete = False
        error: Optional[CycleError] = None

        stage_start = time.monotonic()
        try:
            self.stage = Stage.BALANCING
            stage_start = time.monotonic()
            balance = self._balancer.ensure(self._settings.dataset_size)
            uploaded, removed = balance.added, balance.removed
            upload_speed = mbps(uploaded, time.monotonic() - stage_start)
            complete = True

            self.stage = Stage.VERIFYING
            size = self._settings.download_sample_size
            logger.info(
                f"checking integrity of {self._settings.download_pct:g}% of our dataset ({human_readable_size(size)})"
            )
            stage_start = time.monotonic()
            downloaded = self._verifier.verify(size)
            download_speed = mbps(downloaded, time.monotonic() - stage_start)

            self.stage = Stage.PRUNING
            size = self._settings.delete_sample_size
            logger.info(f"pruning {self._settings.delete_pct:g}% of our dataset ({human_readable_size(size)})")
            outcome = self._pruner.prune(size)
            removed += outcome.removed
            pruned = outcome.reclaimed
            prune_elapsed = outcome.elapsed
        except Exception as e:
            elapsed = time.monotonic() - stage_start
            if self.stage is Stage.BALANCING:
                uploaded = _progress(e, "added")
                removed = _progress(e, "removed")
                upload_speed = mbps(uploaded, elapsed)
            elif self.stage is Stage.VERIFYING:
                downloaded = _progress(e, "downloaded")
                download_speed = mbps(downloaded, elapsed)
            elif self.stage is Stage.PRUNING:
                removed += _progress(e, "removed")
            error = CycleError.from_exception(e, context=_STAGE_FAILURES[self.stage])
            logger.error(f"integrity check failed while {self.stage.value}: {e}")

        self.stage = Stage.RECORDING
        result = Result(
            started_at=started_at,
            ended_at=self._now(),
            uploaded=human_readable_size(uploaded),
            downloaded=human_readable_size(downloaded),
            removed=human_readable_size(removed),
            pruned=human_readable_size(pruned),
            upload_speed_mbps=upload_speed,
            download_speed_mbps=download_speed,
            prune_elapsed=prune_elapsed,
            dataset_complete=complete,
            error=error,
        )
        self._record(result)
        self.stage = Stage.IDLE
        return result

    def _record(self, result: Result) -> None:
        self.state.record(result)
        try:
            self._results.save(self.state)
        except OSError as e:
            logger.error(f"failed to save state, err: {e}")

        alert = Alert.for_result(result)
        if alert.severity is Severity.CRITICAL:
            logger.warning(f"registering critical alert: {alert.message}")
        try:
            self._ctx.alerts.publish(alert, timeout=self._ctx.policy.deadline())
        except IntegrityCheckError as e:
            logger.error(f"failed to register alert, err: {e}")


def clean_start(ctx: ServiceContext, results: ResultStore) -> State:
    """Remove every object under the work dir and reset the stored state."""
    prefix = ctx.settings.prefix
    logger.info(f"remove all files from {prefix}/")
    try:
        ctx.store.delete(f"{prefix}/", recursive=True, timeout=ctx.policy.deadline())
    except ObjectNotFound:
        pass
    return results.reset()
