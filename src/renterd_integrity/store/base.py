"""
Storage interfaces for the integrity checker.

These protocols define the boundary between the checker and the store it
audits, enabling clean dependency injection and testing with fakes. Every
method takes a ``timeout`` in seconds supplied by the TimeoutPolicy; adapters
must fail with StoreTimeout when the whole call exceeds it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import IO, Iterable, List, Protocol, Union, runtime_checkable

from ..models import Alert

# Upload bodies: an open file or an iterable of chunks
ByteStream = Union[IO[bytes], Iterable[bytes]]

__all__ = [
    "ByteStream",
    "ObjectEntry",
    "PrunableContract",
    "ReclaimOutcome",
    "ObjectStore",
    "AlertSink",
]


@dataclass(frozen=True)
class ObjectEntry:
    """
    A stored object as reported by the store's listing.

    Invariants:
    - key: full object key including the work dir prefix and extension
    - size: logical size in bytes (>= 0)
    """
    key: str
    size: int


@dataclass(frozen=True)
class PrunableContract:
    """Space held by a storage contract that pruning could free."""
    contract_id: str
    prunable: int
    size: int = 0


@dataclass(frozen=True)
class ReclaimOutcome:
    """Bytes freed by one reclaim call and bytes still prunable afterwards."""
    reclaimed: int
    remaining: int


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol for the remote object store being audited."""

    def list(self, prefix: str, *, timeout: float) -> List[ObjectEntry]:
        """
        List every object under ``prefix``.

        Raises:
            StoreTimeout: If the listing exceeds ``timeout``
            StoreError: For other store failures
        """
        ...

    def put(self, key: str, stream: ByteStream, *, timeout: float) -> int:
        """
        Upload ``stream`` under ``key``.

        Returns:
            Number of bytes sent
        """
        ...

    def get(self, key: str, sink: IO[bytes], *, timeout: float) -> int:
        """
        Download ``key`` into ``sink``.

        Returns:
            Number of bytes written to ``sink``

        Raises:
            ObjectNotFound: If the object does not exist
        """
        ...

    def delete(self, key: str, *, recursive: bool = False, timeout: float) -> None:
        """
        Delete ``key``, or everything under it when ``recursive`` is set.

        Raises:
            ObjectNotFound: If nothing exists at ``key``
        """
        ...

    def redundancy_factor(self, *, timeout: float) -> float:
        """Return the ratio of physical to logical bytes used for uploads."""
        ...

    def prunable_space(self, *, timeout: float) -> List[PrunableContract]:
        """Return contracts holding logically deleted data."""
        ...

    def reclaim(self, contract_id: str, budget: float, *, timeout: float) -> ReclaimOutcome:
        """
        Physically free deleted data held by a contract.

        Args:
            contract_id: Contract to prune
            budget: Seconds the backend may spend pruning
            timeout: Deadline for the call itself
        """
        ...

    def check_connectivity(self, *, timeout: float) -> None:
        """
        Verify every API the checker depends on is reachable.

        Raises:
            StoreUnreachable: If any of them is not
        """
        ...


@runtime_checkable
class AlertSink(Protocol):
    """Protocol for delivering alerts to an external system."""

    def publish(self, alert: Alert, *, timeout: float) -> None:
        ...
