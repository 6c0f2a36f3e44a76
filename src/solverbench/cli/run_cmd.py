# Copyright (c) Syntropy Systems
"""solverbench run command - execute a preset."""
from __future__ import annotations

import signal
from threading import Event
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console

from solverbench.capabilities import detect
from solverbench.config import ExecutionContext, load_config, require_bench_dir
from solverbench.driver import run_all, summarize
from solverbench.environment import collect_host_info
from solverbench.errors import SolverBenchError
from solverbench.matrix import build_matrix
from solverbench.runner import JobRunner
from solverbench.store import ResultStore

if TYPE_CHECKING:
    from types import FrameType

    from solverbench.matrix import JobDescriptor
    from solverbench.models.results import ResultRow

console = Console()

_stop_event = Event()

RESULT_STYLES = {
    "WIN": "green",
    "LOSS": "green",
    "DRAW": "green",
    "TIMEOUT": "yellow",
    "UNKNOWN": "red",
}


def _signal_handler(signum: int, frame: Optional[FrameType]) -> None:
    """Handle SIGINT/SIGTERM: stop after the job in progress is recorded."""
    console.print("\n[yellow]Stop requested, finishing current job...[/yellow]")
    _stop_event.set()


def _print_progress(index: int, total: int, job: JobDescriptor, row: ResultRow) -> None:
    style = RESULT_STYLES.get(row.result.value, "white")
    console.print(
        f"[dim][{index}/{total}][/dim] {job.label}: "
        f"[{style}]{row.result.value}[/{style}] "
        f"{row.time_sec:.3f}s {row.total_nodes} nodes "
        f"[dim]({row.status.value})[/dim]"
    )


def run(
    preset: str = typer.Argument(..., help="Preset to run (e.g. quick, standard, full)"),
    queue: Optional[bool] = typer.Option(
        None,
        "--queue/--no-queue",
        help="Route jobs through the tsp job queue (default: from config)",
    ),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-n", help="Only run the first N jobs of the matrix"
    ),
) -> None:
    """Run every job of a preset, one at a time, and write the summaries."""
    try:
        bench_dir = require_bench_dir()
        config = load_config(bench_dir)
        matrix = build_matrix(config, preset)
    except SolverBenchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    jobs = list(matrix.jobs)
    if limit is not None:
        jobs = jobs[:limit]
    if not jobs:
        console.print("[dim]Preset enumerates no jobs[/dim]")
        return

    capabilities = detect()
    context = ExecutionContext.from_config(config, capabilities, use_job_queue=queue)
    if queue and not capabilities.has_job_queue:
        console.print("[yellow]tsp not found, running jobs directly[/yellow]")

    _stop_event.clear()
    previous_int = signal.signal(signal.SIGINT, _signal_handler)
    previous_term = signal.signal(signal.SIGTERM, _signal_handler)
    try:
        store = ResultStore.open(bench_dir)
        bench_run = store.start_run(
            preset,
            total_jobs=len(jobs),
            host=collect_host_info(),
            capabilities=capabilities.to_dict(),
        )
        console.print(f"[green]Run {bench_run.id}:[/green] {len(jobs)} job(s)")

        rows = run_all(
            jobs,
            JobRunner(context),
            store,
            bench_run.id,
            stop=_stop_event,
            progress=_print_progress,
        )
        store.finish_run(bench_run.id, len(rows))
        finished = store.get_run(bench_run.id) or bench_run
        run_dir = summarize(
            store,
            finished,
            rows,
            baseline_threads=config.baseline_threads,
            parallel_fraction=config.parallel_fraction,
        )
    except SolverBenchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e
    finally:
        signal.signal(signal.SIGINT, previous_int)
        signal.signal(signal.SIGTERM, previous_term)

    valid = sum(1 for row in rows if row.valid)
    console.print(
        f"[green]Recorded {len(rows)}/{len(jobs)} job(s)[/green], {valid} with valid results"
    )
    console.print(f"  [dim]summaries:[/dim] {run_dir}")
