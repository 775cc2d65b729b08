"""
Settings and configuration for the renterd integrity checker.

Centralizes configuration values and validates them with fail-fast behavior.
Settings are read once at startup from a YAML file with camelCase keys
(``busAddress``, ``workDir``, ...); bus and worker passwords can be overridden
from the environment.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .units import GiB, MiB

__all__ = ["Settings", "load_settings", "parse_duration"]


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for the integrity checker.

    Store Settings:
        bus_address: renterd bus API base URL
        bus_password: bus API password (basic auth, empty username)
        worker_address: renterd worker API base URL
        worker_password: worker API password
        bucket: bucket holding the synthetic dataset

    Cycle Settings:
        integrity_check_interval: seconds between complete cycles
        tick_interval: seconds between checks whether a cycle is due
        download_pct: percent of the target size verified per cycle
        delete_pct: percent of the target size pruned per cycle
        reclaim_budget: seconds a single contract prune may run

    Dataset Settings:
        dataset_size: target logical dataset size in bytes
        min_filesize: smallest synthetic file in bytes
        max_filesize: largest synthetic file in bytes
        upload_concurrency: concurrent uploads while growing the dataset
        work_dir: remote prefix the dataset lives under
        tmp_dir: local scratch directory (system temp when unset)
        clean_start: wipe the dataset and state before the first cycle

    Local Files:
        state_file: rolling results file
        log_file: JSON-lines log file
    """
    bus_address: str = "http://localhost:9880/api/bus"
    bus_password: str = "test"
    worker_address: str = "http://localhost:9880/api/worker"
    worker_password: str = "test"
    bucket: str = "default"

    integrity_check_interval: float = 3600.0
    tick_interval: float = 60.0
    download_pct: float = 1.0
    delete_pct: float = 1.0
    reclaim_budget: float = 300.0

    dataset_size: int = 10 * GiB
    min_filesize: int = 1 * MiB
    max_filesize: int = 8 * MiB
    upload_concurrency: int = 4
    work_dir: str = "data"
    tmp_dir: Optional[str] = None
    clean_start: bool = False

    state_file: str = "integrity.json"
    log_file: str = "checker.log"

    def __post_init__(self):
        """Validate settings on construction."""
        url_pattern = r"^https?://[a-zA-Z0-9.-]+(?::[0-9]+)?(?:/.*)?$"
        for name in ("bus_address", "worker_address"):
            value = getattr(self, name)
            if not value:
                raise ValueError(f"{name} is required")
            if not re.match(url_pattern, value):
                raise ValueError(f"Invalid {name} format: {value}")

        if not self.bucket:
            raise ValueError("bucket is required")

        work_dir = self.work_dir.strip("/") if self.work_dir else ""
        if not work_dir:
            raise ValueError("work_dir is required")
        if ".." in work_dir.split("/"):
            raise ValueError(f"Invalid work_dir: {self.work_dir}")

        for name in ("integrity_check_interval", "tick_interval", "reclaim_budget"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

        for name in ("download_pct", "delete_pct"):
            value = getattr(self, name)
            if not 0 < value <= 100:
                raise ValueError(f"{name} must be in (0, 100], got {value}")

        for name in ("dataset_size", "min_filesize", "max_filesize"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.min_filesize > self.max_filesize:
            raise ValueError(
                f"min_filesize ({self.min_filesize}) must not exceed max_filesize ({self.max_filesize})"
            )

        if self.upload_concurrency < 1:
            raise ValueError(f"upload_concurrency must be at least 1, got {self.upload_concurrency}")

    @property
    def prefix(self) -> str:
        """Remote prefix, normalized without leading or trailing slashes."""
        return self.work_dir.strip("/")

    @property
    def download_sample_size(self) -> int:
        return int(self.download_pct / 100 * self.dataset_size)

    @property
    def delete_sample_size(self) -> int:
        return int(self.delete_pct / 100 * self.dataset_size)


# YAML key -> (field name, converter)
_YAML_KEYS = {
    "busAddress": ("bus_address", str),
    "busPassword": ("bus_password", str),
    "workerAddress": ("worker_address", str),
    "workerPassword": ("worker_password", str),
    "bucket": ("bucket", str),
    "integrityCheckInterval": ("integrity_check_interval", "duration"),
    "tickInterval": ("tick_interval", "duration"),
    "integrityCheckDownloadPct": ("download_pct", float),
    "integrityCheckDeletePct": ("delete_pct", float),
    "reclaimBudget": ("reclaim_budget", "duration"),
    "datasetSize": ("dataset_size", int),
    "minFilesize": ("min_filesize", int),
    "maxFilesize": ("max_filesize", int),
    "uploadConcurrency": ("upload_concurrency", int),
    "workDir": ("work_dir", str),
    "tmpDir": ("tmp_dir", str),
    "cleanStart": ("clean_start", bool),
    "stateFile": ("state_file", str),
    "logFile": ("log_file", str),
}

# Accepted for compatibility with older config files, not used.
_IGNORED_KEYS = {"healthCheckInterval"}

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds) and Go-style duration strings such as
    ``"1h"``, ``"90m"`` or ``"1h30m15s"``.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos == 0 or pos != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


def _convert(key: str, raw: Any, kind: Any) -> Any:
    if kind == "duration":
        return parse_duration(raw)
    if kind is bool:
        if not isinstance(raw, bool):
            raise ValueError(f"{key} must be a boolean, got {raw!r}")
        return raw
    if kind is int and isinstance(raw, float) and not raw.is_integer():
        raise ValueError(f"{key} must be an integer, got {raw!r}")
    try:
        return kind(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {key}: {raw!r}") from e


def load_settings(path: Union[str, Path], env: Optional[Dict[str, str]] = None) -> Settings:
    """
    Load settings from a YAML config file.

    A missing file yields the defaults. Unknown keys are rejected.

    Environment Variables:
        - RENTERD_BUS_PASSWORD (optional, overrides busPassword)
        - RENTERD_WORKER_PASSWORD (optional, overrides workerPassword)

    Args:
        path: Path to the config file
        env: Environment mapping (defaults to os.environ)

    Returns:
        Validated Settings

    Raises:
        ValueError: If the file is malformed or a value is invalid
    """
    env = os.environ if env is None else env
    path = Path(path)

    values: Dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"failed to decode config file '{path}': {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"config file '{path}' must contain a mapping")

        for key, raw in data.items():
            if key in _IGNORED_KEYS:
                continue
            if key not in _YAML_KEYS:
                raise ValueError(f"unknown config key '{key}' in '{path}'")
            name, kind = _YAML_KEYS[key]
            if raw is None:
                continue
            values[name] = _convert(key, raw, kind)

    settings = Settings(**values)

    overrides = {}
    if env.get("RENTERD_BUS_PASSWORD"):
        overrides["bus_password"] = env["RENTERD_BUS_PASSWORD"]
    if env.get("RENTERD_WORKER_PASSWORD"):
        overrides["worker_password"] = env["RENTERD_WORKER_PASSWORD"]
    if overrides:
        settings = replace(settings, **overrides)
    return settings
