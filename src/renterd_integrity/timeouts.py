"""
Size-scaled deadlines for remote calls.

Every call against the store is bounded by a deadline derived from the number
of bytes it moves. Small and metadata-only calls get the one minute floor;
transfers assume a pessimistic 1 Mbps so large files get proportionally more
time.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import StoreTimeout

__all__ = ["TimeoutPolicy", "Deadline", "MIN_TIMEOUT_S", "SECONDS_PER_BYTE"]

MIN_TIMEOUT_S = 60.0

# 8 bits per byte at 1 Mbps
SECONDS_PER_BYTE = 0.000008


@dataclass(frozen=True)
class TimeoutPolicy:
    """
    Derives per-operation deadlines from payload size.

    Attributes:
        floor_s: Minimum deadline in seconds
        seconds_per_byte: Assumed transfer cost per byte
    """
    floor_s: float = MIN_TIMEOUT_S
    seconds_per_byte: float = SECONDS_PER_BYTE

    def deadline(self, size: Optional[int] = None) -> float:
        """
        Return the deadline in seconds for a call moving ``size`` bytes.

        Fractional seconds of the scaled value are truncated, so the result is
        non-decreasing in size and never below the floor.

        Args:
            size: Payload size in bytes, or None for metadata calls

        Returns:
            Deadline in seconds
        """
        if size is None:
            return self.floor_s
        scaled = float(int(max(size, 0) * self.seconds_per_byte))
        return max(self.floor_s, scaled)


class Deadline:
    """
    Absolute deadline shared by all the I/O steps of one remote call.

    Socket level timeouts only bound each individual read or write; streamed
    transfers check this between chunks so the whole call stays within budget.
    """

    def __init__(self, timeout_s: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.timeout_s = timeout_s
        self._expires_at = clock() + timeout_s

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._clock())

    def expired(self) -> bool:
        return self._clock() >= self._expires_at

    def check(self, what: str) -> None:
        """Raise StoreTimeout if the deadline has passed."""
        if self.expired():
            raise StoreTimeout(f"{what} exceeded its deadline of {self.timeout_s:.0f}s")
