# Copyright (c) Syntropy Systems
"""solverbench parse command - inspect a single solver log."""
from __future__ import annotations

from pathlib import Path
from typing import cast

import typer
from rich.console import Console
from rich.table import Table

from solverbench.parser import OutputFormat, resolve, scan

console = Console()


def parse(
    logfile: Path = typer.Argument(..., help="Solver log to parse"),
    output_format: str = typer.Option(
        "parallel",
        "--format", "-f",
        help="Log grammar: parallel or baseline",
    ),
) -> None:
    """Parse one solver log and print the extracted metrics."""
    if output_format not in ("parallel", "baseline"):
        console.print(f"[red]Error:[/red] Unknown format: {output_format}")
        raise typer.Exit(1)
    try:
        data = logfile.read_bytes()
    except OSError as e:
        console.print(f"[red]Error:[/red] Cannot read {logfile}: {e}")
        raise typer.Exit(1) from e

    log_scan = scan(data, cast("OutputFormat", output_format))
    metrics = resolve(log_scan)

    if not log_scan.parsed:
        missing = []
        if log_scan.summary is None:
            missing.append("summary")
        if log_scan.result is None:
            missing.append("result")
        console.print(f"[yellow]Missing {' and '.join(missing)} line[/yellow]")

    table = Table(show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Result", metrics.status.value)
    table.add_row("Time_Sec", f"{metrics.time_sec:.3f}")
    table.add_row("Total_Nodes", str(metrics.total_nodes))
    table.add_row("NPS", str(metrics.nps))
    table.add_row("Worker_Util", f"{metrics.worker_util:.1f}")
    table.add_row("Subtasks", str(metrics.subtasks))
    for key, value in metrics.extras.items():
        if value:
            table.add_row(f"[dim]{key}[/dim]", f"{value:g}")
    console.print(table)
