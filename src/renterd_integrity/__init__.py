"""
renterd integrity checker.

Keeps a synthetic, content-addressed dataset at a target size on a renterd
node, periodically verifies a random sample of it, ages data out and records
the outcome of every cycle.
"""
from __future__ import annotations

__version__ = "0.1.0"
