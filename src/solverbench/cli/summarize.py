# Copyright (c) Syntropy Systems
"""solverbench summarize command."""
from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from solverbench.aggregate import scaling_summary
from solverbench.config import load_config, require_bench_dir
from solverbench.driver import summarize as write_summaries
from solverbench.errors import SolverBenchError
from solverbench.models.results import format_stat
from solverbench.store import ResultStore

console = Console()


def summarize(
    run_id: str = typer.Argument(..., help="Run ID to summarize"),
) -> None:
    """Regenerate a run's summary files from the database and print scaling."""
    try:
        bench_dir = require_bench_dir()
        config = load_config(bench_dir)
        store = ResultStore.open(bench_dir)
        bench_run = store.get_run(run_id)
        if bench_run is None:
            console.print(f"[red]Error:[/red] Run not found: {run_id}")
            raise typer.Exit(1)
        rows = store.rows_for_run(run_id)
        run_dir = write_summaries(
            store,
            bench_run,
            rows,
            baseline_threads=config.baseline_threads,
            parallel_fraction=config.parallel_fraction,
        )
    except SolverBenchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    table = Table(show_header=True, header_style="bold")
    table.add_column("Solver")
    table.add_column("Threads", justify="right")
    table.add_column("Trials", justify="right")
    table.add_column("Time s", justify="right")
    table.add_column("Speedup", justify="right")
    table.add_column("Eff %", justify="right")
    table.add_column("Amdahl", justify="right")
    table.add_column("Overhead", justify="right")

    for row in scaling_summary(rows, config.baseline_threads, config.parallel_fraction):
        table.add_row(
            row.solver,
            str(row.threads),
            str(row.valid_trials),
            format_stat(row.avg_time),
            format_stat(row.avg_speedup, 2),
            format_stat(row.avg_efficiency, 1),
            format_stat(row.amdahl_speedup, 2),
            format_stat(row.overhead, 3),
        )

    console.print(table)
    console.print(f"  [dim]summaries:[/dim] {run_dir}")
