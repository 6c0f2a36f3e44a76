# Copyright (c) Syntropy Systems
"""solverbench plan command - dry run of a preset."""
from __future__ import annotations

import shlex

import typer
from rich.console import Console
from rich.table import Table

from solverbench.capabilities import detect
from solverbench.config import ExecutionContext, load_config
from solverbench.errors import ConfigError
from solverbench.matrix import build_matrix
from solverbench.runner import build_command

console = Console()


def plan(
    preset: str = typer.Argument(..., help="Preset to enumerate (e.g. quick)"),
    show_commands: bool = typer.Option(
        False, "--commands", "-c", help="Print the full command line of each job"
    ),
) -> None:
    """Show the jobs a preset would run, without running them."""
    try:
        config = load_config()
        matrix = build_matrix(config, preset)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if not matrix.jobs:
        console.print("[dim]Preset enumerates no jobs[/dim]")
        return

    context = ExecutionContext.from_config(config, detect())

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Solver")
    table.add_column("Position")
    table.add_column("Threads", justify="right")
    table.add_column("Placement")
    table.add_column("Trial", justify="right")
    if show_commands:
        table.add_column("Command", overflow="fold")

    for index, job in enumerate(matrix, start=1):
        cells = [
            str(index),
            job.solver,
            job.position,
            str(job.threads),
            job.placement,
            str(job.trial),
        ]
        if show_commands:
            cells.append(shlex.join(build_command(job, context)))
        table.add_row(*cells)

    console.print(table)
    worst_case = sum(job.time_limit + context.timeout_grace for job in matrix)
    console.print(
        f"[dim]{len(matrix)} job(s), worst case {worst_case / 3600:.1f}h[/dim]"
    )
