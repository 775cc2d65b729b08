"""Human-readable output for the status command."""
from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.table import Table

from .models import State

_console = Console()


def print_state(state: State, console: Optional[Console] = None) -> None:
    """
    Print the aggregate flag and one row per retained result, newest first.
    """
    console = console or _console
    flag = "[green]ok[/]" if state.ok else "[red]failing[/]"
    console.print(f"[bold]Status:[/] {flag} ({len(state.results)} results)")
    if not state.results:
        return

    table = Table(title="Results")
    table.add_column("Started", style="cyan")
    table.add_column("Uploaded")
    table.add_column("Downloaded")
    table.add_column("Removed")
    table.add_column("Pruned")
    table.add_column("Up Mbps", justify="right")
    table.add_column("Down Mbps", justify="right")
    table.add_column("Complete")
    table.add_column("Error", style="red")

    for r in state.results:
        table.add_row(
            r.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            r.uploaded,
            r.downloaded,
            r.removed,
            r.pruned,
            f"{r.upload_speed_mbps:.2f}",
            f"{r.download_speed_mbps:.2f}",
            "yes" if r.dataset_complete else "no",
            str(r.error) if r.error else "",
        )
    console.print(table)
