"""
Error taxonomy for the integrity checker.

Every failure that can end a cycle stage is mapped onto one of these classes so
the orchestrator can record it, pick an alert severity and keep running. Store
adapters translate transport exceptions into this hierarchy at the boundary;
nothing above the adapters sees httpx types.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Stable tags used when persisting and alerting on errors."""
    TIMEOUT = "timeout"
    INTEGRITY_MISMATCH = "integrity_mismatch"
    STORE_UNREACHABLE = "store_unreachable"
    STORE_ERROR = "store_error"
    LOCAL_IO = "local_io"


class IntegrityCheckError(Exception):
    """Base class for all checker errors."""

    kind: ErrorKind = ErrorKind.STORE_ERROR


class StoreTimeout(IntegrityCheckError):
    """
    A remote call exceeded its deadline.

    Aborts the current stage only.
    """

    kind = ErrorKind.TIMEOUT


class StoreUnreachable(IntegrityCheckError):
    """
    The bus or worker could not be reached at startup.

    This is the only condition that is fatal to the process.
    """

    kind = ErrorKind.STORE_UNREACHABLE


class StoreError(IntegrityCheckError):
    """A remote call failed for a reason other than a timeout."""

    kind = ErrorKind.STORE_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ObjectNotFound(StoreError):
    """The requested object or path does not exist in the store."""


class LocalIOFailure(IntegrityCheckError):
    """
    Creating, writing or renaming a local temporary file failed.

    The temporary file is always removed before this is raised.
    """

    kind = ErrorKind.LOCAL_IO


class IntegrityMismatch(IntegrityCheckError):
    """
    Downloaded content does not hash to the digest embedded in its key.

    Always fatal to the cycle and always raised as a critical alert.
    """

    kind = ErrorKind.INTEGRITY_MISMATCH

    def __init__(self, key: str, expected: str, actual: str):
        super().__init__(
            f"hash mismatch for file '{key}', expected '{expected}', got '{actual}'"
        )
        self.key = key
        self.expected = expected
        self.actual = actual


class PartialFailure(IntegrityCheckError):
    """
    A stage failed after making progress.

    Carries the counters reached before the failure so they end up in the
    cycle result. The underlying error is available as ``cause`` (and
    ``__cause__`` when raised with ``from``); ``kind`` is the cause's kind.
    """

    def __init__(self, cause: BaseException, **progress: int):
        super().__init__(str(cause))
        self.cause = cause
        self.progress = dict(progress)

    @property
    def kind(self) -> ErrorKind:  # type: ignore[override]
        return error_kind(self.cause)


def error_kind(exc: BaseException) -> ErrorKind:
    """Return the stable kind tag for any exception."""
    if isinstance(exc, IntegrityCheckError):
        return exc.kind
    if isinstance(exc, OSError):
        return ErrorKind.LOCAL_IO
    return ErrorKind.STORE_ERROR


__all__ = [
    "ErrorKind",
    "IntegrityCheckError",
    "StoreTimeout",
    "StoreUnreachable",
    "StoreError",
    "ObjectNotFound",
    "LocalIOFailure",
    "IntegrityMismatch",
    "PartialFailure",
    "error_kind",
]
