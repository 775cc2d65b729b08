"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and a wrapper so Typer
commands don't need individual try/except blocks.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

import typer

T = TypeVar("T")

logger = logging.getLogger(__name__)

EXIT_CODES = {
    "StoreUnreachable": 2,
    "ValueError": 3,
    "ValidationError": 3,
}


def exit_code_for(exc: BaseException) -> int:
    """
    Map an exception to the process exit code.

    - 1: unknown error (fallback)
    - 2: store unreachable at startup
    - 3: invalid configuration or state file
    """
    return EXIT_CODES.get(type(exc).__name__, 1)


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Run a command body, turning exceptions into exit codes.

    Raises:
        typer.Exit: With the mapped exit code if ``func`` raises
    """
    try:
        return func()
    except typer.Exit:
        raise
    except Exception as e:
        logger.error(str(e))
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=exit_code_for(e)) from e
