"""
Content-addressed synthetic file generation.

Files are filled with random bytes in bounded chunks and named after the
128-bit BLAKE3 digest of their content, so any later download can be verified
by re-hashing it and comparing against its own name.
"""
from __future__ import annotations

import logging
import os
import secrets
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Union

import blake3

from .errors import LocalIOFailure

__all__ = [
    "DATA_EXTENSION",
    "DIGEST_SIZE",
    "DEFAULT_CHUNK_SIZE",
    "GeneratedFile",
    "ContentAddressedGenerator",
    "new_hasher",
    "hash_stream",
    "digest_from_key",
]

logger = logging.getLogger(__name__)

DATA_EXTENSION = ".data"

# 128-bit digests
DIGEST_SIZE = 16

DEFAULT_CHUNK_SIZE = 64 << 20  # 64 MiB


def new_hasher() -> blake3.blake3:
    return blake3.blake3()


def hash_stream(f: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Hex digest of everything remaining in ``f``, read in ``chunk_size`` pieces."""
    hasher = new_hasher()
    while True:
        chunk = f.read(chunk_size)
        if not chunk:
            break
        hasher.update(chunk)
    return hasher.hexdigest(length=DIGEST_SIZE)


def digest_from_key(key: str) -> str:
    """Digest embedded in an object key: its basename without the extension."""
    name = key.rsplit("/", 1)[-1]
    if name.endswith(DATA_EXTENSION):
        name = name[: -len(DATA_EXTENSION)]
    return name


@dataclass(frozen=True)
class GeneratedFile:
    """A synthetic file on local disk, named ``<digest><extension>``."""
    path: Path
    digest: str
    size: int

    @property
    def name(self) -> str:
        return self.path.name


class ContentAddressedGenerator:
    """
    Writes random files under a local scratch directory.

    The temporary file is only renamed to its content-addressed name once
    every byte has been written and synced; on any failure it is removed.
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.directory = Path(directory) if directory else Path(tempfile.gettempdir()) / "renterd-integrity"
        self.chunk_size = chunk_size

    def generate(self, size: int) -> GeneratedFile:
        """
        Write exactly ``size`` random bytes and return the named file.

        Args:
            size: Number of bytes to generate

        Returns:
            GeneratedFile at ``<directory>/<digest>.data``

        Raises:
            ValueError: If size is negative
            LocalIOFailure: If the file cannot be created, written or renamed
        """
        if size < 0:
            raise ValueError(f"size must be non-negative, got {size}")

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".tmp.", dir=self.directory)
        except OSError as e:
            raise LocalIOFailure(f"failed to create temporary file in '{self.directory}': {e}") from e

        tmp_path = Path(tmp_name)
        hasher = new_hasher()
        try:
            with os.fdopen(fd, "wb") as out:
                remaining = size
                while remaining > 0:
                    chunk = secrets.token_bytes(min(self.chunk_size, remaining))
                    hasher.update(chunk)
                    out.write(chunk)
                    remaining -= len(chunk)
                out.flush()
                os.fsync(out.fileno())

            digest = hasher.hexdigest(length=DIGEST_SIZE)
            dst = self.directory / f"{digest}{DATA_EXTENSION}"
            os.replace(tmp_path, dst)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise LocalIOFailure(f"failed to write random file of {size} bytes: {e}") from e
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise

        logger.debug(f"generated {dst.name} ({size} bytes)")
        return GeneratedFile(path=dst, digest=digest, size=size)
