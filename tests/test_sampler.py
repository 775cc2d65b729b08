"""Tests for random batch sampling."""
from __future__ import annotations

import random

from renterd_integrity.sampler import BatchSampler, dataset_size
from renterd_integrity.store.base import ObjectEntry
from renterd_integrity.timeouts import TimeoutPolicy

from tests.storage.fakes import FakeObjectStore


def _store_with(sizes):
    store = FakeObjectStore()
    for i, size in enumerate(sizes):
        store.add(f"data/{i:04d}.data", b"x" * size)
    return store


def test_dataset_size():
    assert dataset_size([]) == 0
    assert dataset_size([ObjectEntry("a", 3), ObjectEntry("b", 4)]) == 7


class TestBatchSampler:
    """Test BatchSampler.sample."""

    def test_batch_covers_requested_size(self):
        store = _store_with([100] * 20)
        sampler = BatchSampler(store, "data", TimeoutPolicy(), rng=random.Random(1))

        batch = sampler.sample(250)
        assert len(batch) == 3
        assert sum(e.size for e in batch) >= 250

    def test_batch_is_minimal_prefix(self):
        """Removing the last entry of a batch always drops it below the request."""
        store = _store_with([10, 200, 30, 70, 5, 120, 60])
        sampler = BatchSampler(store, "data", TimeoutPolicy(), rng=random.Random(7))

        for _ in range(20):
            batch = sampler.sample(150)
            assert sum(e.size for e in batch) >= 150
            assert sum(e.size for e in batch[:-1]) < 150

    def test_entries_are_unique(self):
        store = _store_with([10] * 50)
        sampler = BatchSampler(store, "data", TimeoutPolicy())
        batch = sampler.sample(300)
        assert len({e.key for e in batch}) == len(batch)

    def test_request_larger_than_dataset_returns_everything(self):
        store = _store_with([10, 20, 30])
        sampler = BatchSampler(store, "data", TimeoutPolicy())
        assert sorted(e.key for e in sampler.sample(10_000)) == store.keys()

    def test_non_positive_size_returns_empty_batch(self):
        store = _store_with([10, 20])
        sampler = BatchSampler(store, "data", TimeoutPolicy())
        assert sampler.sample(0) == []
        assert sampler.sample(-5) == []
        assert store.ops("list") == []

    def test_empty_dataset(self):
        sampler = BatchSampler(FakeObjectStore(), "data", TimeoutPolicy())
        assert sampler.sample(100) == []
        assert sampler.current_size() == 0

    def test_current_size_only_counts_prefix(self):
        store = _store_with([10, 20])
        store.add("other/x.data", b"y" * 1000)
        sampler = BatchSampler(store, "data", TimeoutPolicy())
        assert sampler.current_size() == 30

    def test_listing_uses_floor_deadline(self):
        store = _store_with([10])
        BatchSampler(store, "data", TimeoutPolicy()).entries()
        assert store.timeouts["list"] == [60.0]

    def test_sampling_does_not_reorder_listing(self):
        store = _store_with([1, 2, 3, 4, 5])
        sampler = BatchSampler(store, "data", TimeoutPolicy(), rng=random.Random(3))
        sampler.sample(3)
        assert [e.key for e in sampler.entries()] == store.keys()
