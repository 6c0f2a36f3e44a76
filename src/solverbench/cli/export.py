# Copyright (c) Syntropy Systems
"""Export command - export a run's result rows to CSV/JSON."""
from __future__ import annotations

import csv
from pathlib import Path

import typer
from pydantic import TypeAdapter
from rich.console import Console

from solverbench.config import require_bench_dir
from solverbench.errors import SolverBenchError
from solverbench.models.base import JSONValue
from solverbench.models.results import RESULT_COLUMNS, RESULT_EXTRA_COLUMNS
from solverbench.parser import EXTRA_KEYS
from solverbench.store import ResultStore

console = Console()
_EXPORT_ADAPTER = TypeAdapter(dict[str, JSONValue])


def export(
    run_id: str = typer.Argument(..., help="Run ID to export"),
    output: Path = typer.Argument(..., help="Output file path (.csv or .json)"),
    include_extras: bool = typer.Option(
        False, "--extras", "-x", help="Include solver statistics beyond the core columns"
    ),
) -> None:
    """Export the result rows of a run to CSV or JSON format.

    Examples:
        solverbench export quick-20240101-120000-a1b2c3 results.csv
        solverbench export quick-20240101-120000-a1b2c3 results.json --extras

    """
    suffix = output.suffix.lower()
    if suffix not in [".csv", ".json"]:
        console.print("[red]Output must be .csv or .json[/red]")
        raise typer.Exit(1)

    try:
        store = ResultStore.open(require_bench_dir())
        bench_run = store.get_run(run_id)
        rows = store.rows_for_run(run_id) if bench_run is not None else []
    except SolverBenchError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    if bench_run is None:
        console.print(f"[red]Run not found: {run_id}[/red]")
        raise typer.Exit(1)

    if suffix == ".json":
        export_data = {
            "run": bench_run.model_dump(mode="json"),
            "results": [
                row.model_dump(
                    mode="json",
                    by_alias=True,
                    exclude=None if include_extras else {"extras"},
                )
                for row in rows
            ],
        }
        _ = output.write_bytes(_EXPORT_ADAPTER.dump_json(export_data, indent=2))
    else:
        fieldnames = RESULT_COLUMNS + RESULT_EXTRA_COLUMNS
        if include_extras:
            fieldnames = fieldnames + list(EXTRA_KEYS)
        with output.open("w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames, extrasaction="ignore")
            writer.writeheader()
            for row in rows:
                record: dict[str, str] = row.csv_row()
                if include_extras:
                    record.update({k: f"{row.extras.get(k, 0.0):g}" for k in EXTRA_KEYS})
                writer.writerow(record)

    console.print(f"[green]Exported {len(rows)} row(s) to {output}[/green]")
