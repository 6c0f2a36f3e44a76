# Copyright (c) Syntropy Systems
"""solverbench runs command."""
from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from solverbench.config import require_bench_dir
from solverbench.errors import SolverBenchError
from solverbench.store import ResultStore

console = Console()


def runs(
    last: int = typer.Option(
        20,
        "--last", "-n",
        help="Number of runs to show",
    ),
) -> None:
    """List benchmark runs, newest first."""
    try:
        store = ResultStore.open(require_bench_dir())
        run_list = store.get_runs(limit=last)
    except SolverBenchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if not run_list:
        console.print("[dim]No runs found[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Preset")
    table.add_column("Started")
    table.add_column("Jobs", justify="right")
    table.add_column("Status")

    for bench_run in run_list:
        if bench_run.finished_at is None:
            status = "[blue]incomplete[/blue]"
        elif bench_run.recorded_jobs < bench_run.total_jobs:
            status = "[yellow]stopped[/yellow]"
        else:
            status = "[green]finished[/green]"
        table.add_row(
            bench_run.id,
            bench_run.preset,
            bench_run.started_at,
            f"{bench_run.recorded_jobs}/{bench_run.total_jobs}",
            status,
        )

    console.print(table)
