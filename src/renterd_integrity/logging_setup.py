"""
Logging configuration for the checker process.

Logs go to two places: a JSON-lines file for machines and a rich console
handler for people. Library modules only ever call ``logging.getLogger``;
handlers are installed once by the CLI.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

__all__ = ["JsonLineFormatter", "configure_logging"]

ROOT_LOGGER = "renterd_integrity"


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: date, level, component, message."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "date": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="seconds"),
            "level": record.levelname.lower(),
            "component": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def configure_logging(
    log_file: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    console: Optional[Console] = None,
) -> logging.Logger:
    """
    Install the file and console handlers on the package logger.

    Calling this again replaces the handlers instead of stacking them.

    Args:
        log_file: JSON-lines log file, skipped when None
        level: Minimum level for both handlers
        console: Rich console to log to (defaults to stdout)

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(level)
    logger.propagate = False

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(JsonLineFormatter())
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    console_handler = RichHandler(console=console or Console(), show_path=False, rich_tracebacks=False)
    console_handler.setLevel(level)
    logger.addHandler(console_handler)
    return logger
