"""
Data models for cycle results, the rolling state and alerts.

These Pydantic models define the persisted ``integrity.json`` format
(camelCase keys, newest result first) and the alert payload sent to the bus.
"""
from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from .errors import ErrorKind, error_kind

__all__ = ["MAX_RESULTS", "ALERT_SOURCE", "CycleError", "Result", "State", "Severity", "Alert"]

MAX_RESULTS = 30

ALERT_SOURCE = "renterd-integrity"


class CycleError(BaseModel):
    """
    Failure half of a cycle outcome.

    Persisted as plain text ``"<kind>: <message>"`` and exposed as structured
    fields when alerting.
    """
    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"

    @classmethod
    def from_exception(cls, exc: BaseException, context: Optional[str] = None) -> CycleError:
        """Tag ``exc`` with its kind, prefixing the message with ``context`` when given."""
        message = str(exc) or type(exc).__name__
        if context:
            message = f"{context}; {message}"
        return cls(kind=error_kind(exc), message=message)

    @classmethod
    def parse(cls, text: str) -> CycleError:
        """Parse the persisted form; untagged text is kept as a store error."""
        prefix, sep, rest = text.partition(": ")
        if sep:
            try:
                return cls(kind=ErrorKind(prefix), message=rest)
            except ValueError:
                pass
        return cls(kind=ErrorKind.STORE_ERROR, message=text)


class Result(BaseModel):
    """Immutable snapshot of one cycle."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    started_at: datetime = Field(alias="startedAt")
    ended_at: datetime = Field(alias="endedAt")

    downloaded: str = ""
    uploaded: str = ""
    removed: str = ""
    pruned: str = ""

    download_speed_mbps: float = Field(default=0.0, alias="downloadSpeedMBPS")
    upload_speed_mbps: float = Field(default=0.0, alias="uploadSpeedMBPS")
    prune_elapsed: float = Field(default=0.0, alias="pruneElapsedTime", description="seconds")

    dataset_complete: bool = Field(default=False, alias="datasetComplete")
    error: Optional[CycleError] = None

    @field_validator("error", mode="before")
    @classmethod
    def _parse_error(cls, v):
        if isinstance(v, str):
            return CycleError.parse(v) if v else None
        return v

    @field_serializer("error")
    def _serialize_error(self, v: Optional[CycleError]) -> Optional[str]:
        return str(v) if v is not None else None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class State(BaseModel):
    """Rolling window of the most recent results, newest first."""

    ok: bool = True
    results: List[Result] = Field(default_factory=list)

    def record(self, result: Result) -> None:
        """Prepend ``result`` and re-apply the window."""
        self.results.insert(0, result)
        self.trim()

    def trim(self) -> None:
        del self.results[MAX_RESULTS:]
        self.ok = all(r.ok for r in self.results)

    def time_since_last_complete(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        """
        Time since the latest cycle started, if that cycle completed balancing.

        Returns None when there is no result or the latest one never completed,
        meaning the next cycle is due immediately.
        """
        if not self.results or not self.results[0].dataset_complete:
            return None
        now = now or datetime.now(timezone.utc)
        return now - self.results[0].started_at


class Severity(str, Enum):
    INFO = "info"
    CRITICAL = "critical"


class Alert(BaseModel):
    """Alert registered with the bus once per cycle; never stored locally."""

    id: str = Field(default_factory=lambda: secrets.token_hex(32))
    severity: Severity
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def for_result(cls, result: Result) -> Alert:
        """
        Build the alert for a finished cycle.

        Integrity mismatches are critical; everything else, success included,
        is informational.
        """
        data: Dict[str, Any] = {"source": ALERT_SOURCE, "result": result.to_json_dict()}
        if result.error is None:
            return cls(severity=Severity.INFO, message="integrity check passed", data=data)

        data["error"] = {"kind": result.error.kind.value, "message": result.error.message}
        severity = Severity.CRITICAL if result.error.kind is ErrorKind.INTEGRITY_MISMATCH else Severity.INFO
        return cls(severity=severity, message=result.error.message, data=data)
