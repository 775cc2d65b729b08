"""
renterd HTTP adapters.

Implements the ObjectStore protocol against renterd's bus and worker APIs and
registers alerts with the bus. Both APIs use basic auth with an empty username.

Socket timeouts in httpx bound individual reads and writes only, so streamed
transfers also check a Deadline between chunks to keep the whole call within
the budget handed down by the TimeoutPolicy.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, IO, Iterator, List, Optional
from urllib.parse import quote

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import (
    IntegrityCheckError,
    ObjectNotFound,
    StoreError,
    StoreTimeout,
    StoreUnreachable,
)
from ..models import Alert
from ..settings import Settings
from ..timeouts import Deadline
from .base import AlertSink, ByteStream, ObjectEntry, ObjectStore, PrunableContract, ReclaimOutcome

__all__ = ["RenterdStore", "BusAlertSink"]

logger = logging.getLogger(__name__)

USER_AGENT = "renterd-integrity/0.1.0"

# Transfer chunk size for request and response bodies
TRANSFER_CHUNK = 1 << 20


def _make_client(address: str, password: str, transport: Optional[httpx.BaseTransport]) -> httpx.Client:
    return httpx.Client(
        base_url=address.rstrip("/"),
        auth=("", password),
        transport=transport,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    )


def _translate(e: httpx.HTTPError, what: str) -> IntegrityCheckError:
    """Map an httpx exception onto the checker's error taxonomy."""
    if isinstance(e, httpx.TimeoutException):
        return StoreTimeout(f"{what} timed out: {e}")
    if isinstance(e, httpx.HTTPStatusError):
        code = e.response.status_code
        detail = e.response.text.strip()
        message = f"{what} failed with status {code}" + (f": {detail}" if detail else "")
        if code == 404:
            return ObjectNotFound(message, status_code=code)
        return StoreError(message, status_code=code)
    return StoreError(f"{what} failed: {e}")


@contextmanager
def _decoding(what: str) -> Iterator[None]:
    """Turn a malformed 2xx body into a StoreError."""
    try:
        yield
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise StoreError(f"{what} returned an unexpected response: {e!r}") from e


def _object_path(key: str) -> str:
    return "/objects/" + quote(key.lstrip("/"), safe="/")


def _iter_chunks(stream: ByteStream) -> Iterator[bytes]:
    if hasattr(stream, "read"):
        while True:
            chunk = stream.read(TRANSFER_CHUNK)
            if not chunk:
                break
            yield chunk
    else:
        yield from stream


class RenterdStore(ObjectStore):
    """
    ObjectStore adapter for a renterd node.

    Object operations are scoped to the configured bucket. Metadata requests
    are retried on connection errors; transfers are not retried since a
    failed transfer should surface in the cycle result.
    """

    def __init__(self, *, settings: Settings, transport: Optional[httpx.BaseTransport] = None) -> None:
        """
        Initialize the adapter with settings.

        Args:
            settings: Settings holding bus/worker addresses and credentials
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._bucket = settings.bucket
        self._bus = _make_client(settings.bus_address, settings.bus_password, transport)
        self._worker = _make_client(settings.worker_address, settings.worker_password, transport)
        logger.debug(f"renterd adapter using bus {settings.bus_address}, worker {settings.worker_address}, bucket {self._bucket}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.ConnectError),
        reraise=True,
    )
    def _send(self, client: httpx.Client, method: str, path: str, deadline: Deadline, what: str, **kwargs: Any) -> httpx.Response:
        deadline.check(what)
        response = client.request(method, path, timeout=httpx.Timeout(max(deadline.remaining(), 0.001)), **kwargs)
        response.raise_for_status()
        return response

    def _request(self, client: httpx.Client, method: str, path: str, deadline: Deadline, what: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._send(client, method, path, deadline, what, **kwargs)
        except httpx.HTTPError as e:
            raise _translate(e, what) from e

    def list(self, prefix: str, *, timeout: float) -> List[ObjectEntry]:
        """
        List every object under ``prefix``, following pagination markers.

        A missing prefix is an empty dataset, not an error.
        """
        deadline = Deadline(timeout)
        what = f"listing of '{prefix}'"
        path = _object_path(prefix.strip("/") + "/")

        entries: List[ObjectEntry] = []
        marker = ""
        while True:
            params = {"bucket": self._bucket}
            if marker:
                params["marker"] = marker
            try:
                response = self._request(self._bus, "GET", path, deadline, what, params=params)
            except ObjectNotFound:
                return entries

            with _decoding(what):
                data = response.json()
                objects = data.get("objects") or data.get("entries") or []
                for obj in objects:
                    key = obj.get("key") or obj.get("name") or ""
                    if not key or key.endswith("/"):
                        continue
                    entries.append(ObjectEntry(key=key.lstrip("/"), size=int(obj.get("size", 0))))

                if not data.get("hasMore") or not objects:
                    return entries
                marker = objects[-1].get("key") or objects[-1].get("name")

    def put(self, key: str, stream: ByteStream, *, timeout: float) -> int:
        deadline = Deadline(timeout)
        what = f"upload of '{key}'"
        sent = 0

        def body() -> Iterator[bytes]:
            nonlocal sent
            for chunk in _iter_chunks(stream):
                deadline.check(what)
                sent += len(chunk)
                yield chunk

        try:
            response = self._worker.put(
                _object_path(key),
                params={"bucket": self._bucket},
                content=body(),
                timeout=httpx.Timeout(timeout),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise _translate(e, what) from e
        deadline.check(what)
        return sent

    def get(self, key: str, sink: IO[bytes], *, timeout: float) -> int:
        deadline = Deadline(timeout)
        what = f"download of '{key}'"
        written = 0
        try:
            with self._worker.stream(
                "GET",
                _object_path(key),
                params={"bucket": self._bucket},
                timeout=httpx.Timeout(timeout),
            ) as response:
                if response.is_error:
                    response.read()
                    response.raise_for_status()
                for chunk in response.iter_bytes(TRANSFER_CHUNK):
                    deadline.check(what)
                    sink.write(chunk)
                    written += len(chunk)
        except httpx.HTTPError as e:
            raise _translate(e, what) from e
        return written

    def delete(self, key: str, *, recursive: bool = False, timeout: float) -> None:
        params = {"bucket": self._bucket}
        if recursive:
            params["batch"] = "true"
        self._request(self._bus, "DELETE", _object_path(key), Deadline(timeout), f"deletion of '{key}'", params=params)

    def redundancy_factor(self, *, timeout: float) -> float:
        what = "fetching upload settings"
        response = self._request(self._bus, "GET", "/setting/upload", Deadline(timeout), what)
        with _decoding(what):
            data = response.json()
            redundancy = data.get("redundancy", data)
            min_shards = int(redundancy.get("minShards", 0))
            total_shards = int(redundancy.get("totalShards", 0))
        if min_shards <= 0 or total_shards < min_shards:
            raise StoreError(f"{what} returned invalid redundancy {min_shards}-of-{total_shards}")
        return total_shards / min_shards

    def prunable_space(self, *, timeout: float) -> List[PrunableContract]:
        what = "fetching prunable data"
        response = self._request(self._bus, "GET", "/contracts/prunable", Deadline(timeout), what)
        with _decoding(what):
            return [
                PrunableContract(contract_id=c["id"], prunable=int(c.get("prunable", 0)), size=int(c.get("size", 0)))
                for c in response.json().get("contracts") or []
            ]

    def reclaim(self, contract_id: str, budget: float, *, timeout: float) -> ReclaimOutcome:
        what = f"pruning contract {contract_id}"
        response = self._request(
            self._worker,
            "POST",
            f"/rhp/contract/{contract_id}/prune",
            Deadline(timeout),
            what,
            json={"timeout": int(budget * 1000)},
        )
        with _decoding(what):
            data = response.json()
            error = data.get("error")
            outcome = ReclaimOutcome(reclaimed=int(data.get("pruned", 0)), remaining=int(data.get("remaining", 0)))
        if error:
            raise StoreError(f"{what} failed: {error}")
        return outcome

    def check_connectivity(self, *, timeout: float) -> None:
        for name, client in (("bus", self._bus), ("worker", self._worker)):
            try:
                self._request(client, "GET", "/state", Deadline(timeout), f"fetching {name} state")
            except IntegrityCheckError as e:
                raise StoreUnreachable(f"failed to fetch {name} state, err: {e}") from e

    def close(self) -> None:
        self._bus.close()
        self._worker.close()


class BusAlertSink(AlertSink):
    """Registers alerts with the renterd bus."""

    def __init__(self, *, settings: Settings, transport: Optional[httpx.BaseTransport] = None) -> None:
        self._bus = _make_client(settings.bus_address, settings.bus_password, transport)

    def publish(self, alert: Alert, *, timeout: float) -> None:
        what = "registering alert"
        try:
            response = self._bus.post(
                "/alerts/register",
                json=alert.model_dump(mode="json"),
                timeout=httpx.Timeout(timeout),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise _translate(e, what) from e

    def close(self) -> None:
        self._bus.close()
