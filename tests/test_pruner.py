"""Tests for deleting data and reclaiming contract space."""
from __future__ import annotations

import random

import httpx
import pytest

from renterd_integrity.errors import PartialFailure, StoreError
from renterd_integrity.pruner import Pruner
from renterd_integrity.sampler import BatchSampler
from renterd_integrity.settings import Settings
from renterd_integrity.store.renterd import RenterdStore
from renterd_integrity.timeouts import TimeoutPolicy
from renterd_integrity.units import KiB

from tests.conftest import seed_object


def _pruner(store, rng=None, budget=300.0):
    policy = TimeoutPolicy()
    return Pruner(
        store=store,
        sampler=BatchSampler(store, "data", policy, rng=rng),
        policy=policy,
        reclaim_budget=budget,
    )


class TestPrune:
    """Test Pruner.prune."""

    def test_deletes_sample_and_reclaims(self, store):
        for _ in range(10):
            seed_object(store, 1 * KiB)
        store.prunable = {"fcid-1": 3000, "fcid-2": 5000}

        outcome = _pruner(store).prune(3 * KiB)
        assert outcome.removed == 3 * KiB
        assert outcome.reclaimed == 8000
        assert outcome.elapsed >= 0
        assert len(store.keys()) == 7

    def test_zero_sample_still_reclaims(self, store):
        seed_object(store, 1 * KiB)
        store.prunable = {"fcid-1": 100}

        outcome = _pruner(store).prune(0)
        assert outcome.removed == 0
        assert outcome.reclaimed == 100
        assert store.ops("delete") == []

    def test_first_delete_failure_raises(self, store):
        for _ in range(3):
            seed_object(store, 1 * KiB)
        store.fail_delete_keys = set(store.keys())

        with pytest.raises(StoreError) as exc_info:
            _pruner(store).prune(1 * KiB)
        assert not isinstance(exc_info.value, PartialFailure)
        assert store.ops("prunable") == []

    def test_delete_failure_after_progress(self, store):
        for _ in range(4):
            seed_object(store, 1 * KiB)
        order = list(store.keys())
        random.Random(2).shuffle(order)
        store.fail_delete_keys = {order[1]}

        with pytest.raises(PartialFailure) as exc_info:
            _pruner(store, rng=random.Random(2)).prune(4 * KiB)
        assert exc_info.value.progress == {"removed": 1 * KiB}


class TestReclaim:
    """Test Pruner.reclaim."""

    def test_skips_contracts_without_prunable_data(self, store):
        store.prunable = {"fcid-1": 0, "fcid-2": 10}
        assert _pruner(store).reclaim() == 10
        assert [c[1] for c in store.ops("reclaim")] == ["fcid-2"]

    def test_passes_budget_and_extends_call_deadline(self, store):
        store.prunable = {"fcid-1": 10}
        _pruner(store, budget=120.0).reclaim()

        assert store.ops("reclaim") == [("reclaim", "fcid-1", 120.0)]
        assert store.timeouts["reclaim"] == [180.0]

    def test_failure_stops_reclaim_without_raising(self, store):
        store.prunable = {"fcid-1": 10, "fcid-2": 20, "fcid-3": 30}
        store.fail_reclaim = {"fcid-2"}

        assert _pruner(store).reclaim() == 10
        assert [c[1] for c in store.ops("reclaim")] == ["fcid-1", "fcid-2"]

    def test_prunable_listing_failure_reclaims_nothing(self, store, monkeypatch):
        def failing(*, timeout):
            raise StoreError("fetching prunable data failed with status 500", status_code=500)

        monkeypatch.setattr(store, "prunable_space", failing)
        assert _pruner(store).reclaim() == 0


class TestMalformedPrunableListing:
    """A garbled prunable listing from renterd must not undo the delete accounting."""

    def _route_prunable_through_renterd(self, store, monkeypatch):
        def handler(request):
            return httpx.Response(200, text="<html>bad gateway</html>")

        renterd = RenterdStore(settings=Settings(), transport=httpx.MockTransport(handler))
        monkeypatch.setattr(store, "prunable_space", renterd.prunable_space)

    def test_reclaim_returns_zero(self, store, monkeypatch):
        self._route_prunable_through_renterd(store, monkeypatch)
        assert _pruner(store).reclaim() == 0

    def test_prune_keeps_removed_count(self, store, monkeypatch):
        for _ in range(6):
            seed_object(store, 1 * KiB)
        self._route_prunable_through_renterd(store, monkeypatch)

        outcome = _pruner(store).prune(2 * KiB)
        assert outcome.removed == 2 * KiB
        assert outcome.reclaimed == 0
        assert len(store.keys()) == 4
