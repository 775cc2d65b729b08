# Fake implementations for testing

from .fake_store import FakeAlertSink, FakeObjectStore

__all__ = ["FakeAlertSink", "FakeObjectStore"]
