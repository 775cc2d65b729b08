"""
renterd integrity checker CLI.

Commands:
- run: keep the synthetic dataset balanced and audit it until interrupted
- status: print the rolling results window from the state file
"""
from __future__ import annotations

import logging
import signal
import threading

import typer

from .context import ServiceContext
from .logging_setup import configure_logging
from .mappers import run_and_exit
from .orchestrator import CycleOrchestrator, clean_start
from .printers import print_state
from .settings import load_settings
from .state import ResultStore

app = typer.Typer(name="renterd-integrity", help="Integrity checker for renterd")

logger = logging.getLogger(__name__)


def _install_signal_handlers(stop: threading.Event) -> None:
    """Turn SIGINT/SIGTERM into a stop request honoured between cycles."""
    def _handler(signum, frame) -> None:
        logger.info("Shutting down...")
        stop.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


@app.command()
def run(
    config: str = typer.Option("config.yml", "--config", "-c", help="Path to the YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", help="Log per-transfer detail"),
) -> None:
    """Balance, verify and prune the dataset until interrupted."""

    def _run() -> None:
        settings = load_settings(config)
        configure_logging(settings.log_file, logging.DEBUG if verbose else logging.INFO)

        ctx = ServiceContext.from_settings(settings)
        try:
            ctx.store.check_connectivity(timeout=ctx.policy.deadline())

            results = ResultStore(settings.state_file)
            state = results.load()
            if settings.clean_start:
                state = clean_start(ctx, results)

            stop = threading.Event()
            _install_signal_handlers(stop)
            CycleOrchestrator(ctx, results, state).run(stop)
        finally:
            ctx.close()

    run_and_exit(_run)


@app.command()
def status(
    state_file: str = typer.Option("integrity.json", "--state", "-s", help="Path to the state file"),
) -> None:
    """Show the retained results; exits 1 when any of them failed."""

    def _status() -> None:
        state = ResultStore(state_file).load()
        print_state(state)
        if not state.ok:
            raise typer.Exit(code=1)

    run_and_exit(_status)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
