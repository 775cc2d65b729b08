"""Store boundary: protocols and the renterd adapters."""
from .base import AlertSink, ByteStream, ObjectEntry, ObjectStore, PrunableContract, ReclaimOutcome

__all__ = ["AlertSink", "ByteStream", "ObjectEntry", "ObjectStore", "PrunableContract", "ReclaimOutcome"]
