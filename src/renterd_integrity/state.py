"""
Persistence for the rolling results window.

The state file is read once at startup and rewritten after every cycle. Writes
go through a temp file and an atomic rename so a crash never leaves a
truncated file behind.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from .models import State

__all__ = ["ResultStore"]

logger = logging.getLogger(__name__)


class ResultStore:
    """Loads and saves the State JSON document."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def load(self) -> State:
        """
        Read the state file.

        Returns:
            The stored State, or an empty one if the file is missing or empty

        Raises:
            ValueError: If the file exists but is not a valid state document
        """
        if not self.path.exists():
            return State()

        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return State()

        try:
            state = State.model_validate_json(text)
        except ValidationError as e:
            raise ValueError(f"failed to decode state file at '{self.path}': {e}") from e
        state.trim()
        return state

    def save(self, state: State) -> None:
        """Trim ``state`` to the window, recompute ``ok`` and write it atomically."""
        state.trim()
        payload = {
            "ok": state.ok,
            "results": [r.to_json_dict() for r in state.results],
        }

        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.parent / f"{self.path.name}.tmp.{os.getpid()}"
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def reset(self) -> State:
        """Replace the stored state with an empty one and return it."""
        state = State()
        self.save(state)
        logger.info("resetting state")
        return state
