"""Root pytest configuration for renterd-integrity tests."""
import secrets

import pytest

from renterd_integrity.context import ServiceContext
from renterd_integrity.generator import DATA_EXTENSION, new_hasher, DIGEST_SIZE
from renterd_integrity.settings import Settings
from renterd_integrity.state import ResultStore
from renterd_integrity.timeouts import TimeoutPolicy
from renterd_integrity.units import KiB

from .storage.fakes.fake_store import FakeAlertSink, FakeObjectStore


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (may take significant time)"
    )


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Keep password overrides from the host environment out of the tests."""
    monkeypatch.delenv("RENTERD_BUS_PASSWORD", raising=False)
    monkeypatch.delenv("RENTERD_WORKER_PASSWORD", raising=False)


def seed_object(store, size, prefix="data"):
    """Store a random content-addressed object and return its key."""
    data = secrets.token_bytes(size)
    hasher = new_hasher()
    hasher.update(data)
    key = f"{prefix}/{hasher.hexdigest(length=DIGEST_SIZE)}{DATA_EXTENSION}"
    store.add(key, data)
    return key


# Standardized test fixtures
@pytest.fixture
def settings(tmp_path):
    """Small dataset settings with all local files under tmp_path."""
    return Settings(
        dataset_size=32 * KiB,
        min_filesize=1 * KiB,
        max_filesize=4 * KiB,
        upload_concurrency=2,
        tmp_dir=str(tmp_path / "scratch"),
        state_file=str(tmp_path / "integrity.json"),
        log_file=str(tmp_path / "checker.log"),
    )


@pytest.fixture
def store():
    """In-memory object store with a 3x redundancy factor."""
    return FakeObjectStore(redundancy=3.0)


@pytest.fixture
def alerts():
    return FakeAlertSink()


@pytest.fixture
def policy():
    return TimeoutPolicy()


@pytest.fixture
def ctx(settings, store, alerts):
    """Service context wired to the fakes."""
    return ServiceContext(settings=settings, store=store, alerts=alerts)


@pytest.fixture
def results(settings):
    return ResultStore(settings.state_file)
