"""
Service context for the integrity checker.

Holds the store client, alert sink and timeout policy, built once at startup
and handed to every component, so nothing relies on module-level clients.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import httpx

from .dataset import DatasetBalancer
from .generator import ContentAddressedGenerator
from .pruner import Pruner
from .sampler import BatchSampler
from .settings import Settings
from .store.base import AlertSink, ObjectStore
from .store.renterd import BusAlertSink, RenterdStore
from .timeouts import TimeoutPolicy
from .verifier import IntegrityVerifier

__all__ = ["ServiceContext"]


@dataclass
class ServiceContext:
    """
    Shared dependencies for one checker process.

    Components are built on demand from the injected store and settings, so
    tests can build a context around fakes.
    """
    settings: Settings
    store: ObjectStore
    alerts: AlertSink
    policy: TimeoutPolicy = field(default_factory=TimeoutPolicy)

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.BaseTransport] = None) -> ServiceContext:
        """Create a context talking to the renterd node described by ``settings``."""
        return cls(
            settings=settings,
            store=RenterdStore(settings=settings, transport=transport),
            alerts=BusAlertSink(settings=settings, transport=transport),
        )

    def sampler(self) -> BatchSampler:
        return BatchSampler(self.store, self.settings.prefix, self.policy)

    def generator(self) -> ContentAddressedGenerator:
        return ContentAddressedGenerator(self.settings.tmp_dir)

    def balancer(self) -> DatasetBalancer:
        return DatasetBalancer(
            store=self.store,
            sampler=self.sampler(),
            generator=self.generator(),
            policy=self.policy,
            prefix=self.settings.prefix,
            min_filesize=self.settings.min_filesize,
            max_filesize=self.settings.max_filesize,
            concurrency=self.settings.upload_concurrency,
        )

    def verifier(self) -> IntegrityVerifier:
        return IntegrityVerifier(
            store=self.store,
            sampler=self.sampler(),
            policy=self.policy,
            tmp_dir=self.settings.tmp_dir,
        )

    def pruner(self) -> Pruner:
        return Pruner(
            store=self.store,
            sampler=self.sampler(),
            policy=self.policy,
            reclaim_budget=self.settings.reclaim_budget,
        )

    def close(self) -> None:
        for resource in (self.store, self.alerts):
            close = getattr(resource, "close", None)
            if close is not None:
                close()
