"""
Download-and-rehash integrity verification.

Every object's key embeds the digest of the bytes it was uploaded with, so
verifying an object only needs the object itself: download it, hash it and
compare against its name.
"""
from __future__ import annotations

import logging
import tempfile
import time
from pathlib import Path
from typing import Optional, Union

from .errors import IntegrityCheckError, IntegrityMismatch, LocalIOFailure, PartialFailure
from .generator import DEFAULT_CHUNK_SIZE, digest_from_key, hash_stream
from .sampler import BatchSampler
from .store.base import ObjectEntry, ObjectStore
from .timeouts import TimeoutPolicy
from .units import human_readable_size, mbps

__all__ = ["IntegrityVerifier"]

logger = logging.getLogger(__name__)


class IntegrityVerifier:
    """
    Verifies a random sample of the dataset.

    Downloads are sequential and verification stops at the first mismatch.
    """

    def __init__(
        self,
        *,
        store: ObjectStore,
        sampler: BatchSampler,
        policy: TimeoutPolicy,
        tmp_dir: Optional[Union[str, Path]] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._store = store
        self._sampler = sampler
        self._policy = policy
        self._tmp_dir = Path(tmp_dir) if tmp_dir else None
        self._chunk_size = chunk_size

    def verify(self, sample_size: int) -> int:
        """
        Download a random sample of at least ``sample_size`` bytes and check it.

        Returns:
            Logical bytes downloaded and verified

        Raises:
            IntegrityMismatch: On the first object whose content does not match
                its name (wrapped in PartialFailure when earlier objects passed)
            IntegrityCheckError: For store or local I/O failures
        """
        logger.debug(f"checking integrity of {human_readable_size(sample_size)}")
        batch = self._sampler.sample(sample_size)

        downloaded = 0
        for entry in batch:
            try:
                self.check(entry)
            except IntegrityCheckError as e:
                if isinstance(e, IntegrityMismatch):
                    logger.error(str(e))
                if downloaded:
                    raise PartialFailure(e, downloaded=downloaded) from e
                raise
            downloaded += entry.size

        logger.info(f"verified {len(batch)} objects ({human_readable_size(downloaded)})")
        return downloaded

    def check(self, entry: ObjectEntry) -> None:
        """
        Download one object and compare its digest against its key.

        The local copy is removed whatever the outcome.
        """
        logger.debug(f"downloading file {entry.key} ({human_readable_size(entry.size)})")
        expected = digest_from_key(entry.key)
        start = time.monotonic()

        try:
            if self._tmp_dir is not None:
                self._tmp_dir.mkdir(parents=True, exist_ok=True)
            tmp = tempfile.TemporaryFile(dir=self._tmp_dir)
        except OSError as e:
            raise LocalIOFailure(f"failed to create temporary download file: {e}") from e

        with tmp:
            try:
                self._store.get(entry.key, tmp, timeout=self._policy.deadline(entry.size))
                tmp.seek(0)
                actual = hash_stream(tmp, self._chunk_size)
            except OSError as e:
                raise LocalIOFailure(f"failed to buffer download of '{entry.key}': {e}") from e

        if actual != expected:
            raise IntegrityMismatch(entry.key, expected, actual)

        elapsed = time.monotonic() - start
        logger.debug(f"downloaded file {entry.key} in {elapsed:.1f}s ({mbps(entry.size, elapsed)} mbps)")
