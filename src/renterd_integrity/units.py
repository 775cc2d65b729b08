"""Formatting helpers for byte counts and throughput."""
from __future__ import annotations

__all__ = ["KiB", "MiB", "GiB", "human_readable_size", "mbps"]

KiB = 1 << 10
MiB = 1 << 20
GiB = 1 << 30


def human_readable_size(n: int) -> str:
    """
    Format a byte count for results and log lines.

    Examples:
        >>> human_readable_size(512)
        '512 B'
        >>> human_readable_size(3 * MiB)
        '3145728 bytes (3.0 MiB)'
    """
    unit = 1024
    if n < unit:
        return f"{n} B"
    div, exp = unit, 0
    m = n // unit
    while m >= unit:
        div *= unit
        exp += 1
        m //= unit
    return f"{n} bytes ({n / div:.1f} {'KMGTPE'[exp]}iB)"


def mbps(n: int, seconds: float) -> float:
    """Megabits per second for ``n`` bytes moved in ``seconds``, two decimals."""
    if seconds <= 0:
        return 0.0
    return round(n / seconds * 0.000008, 2)
