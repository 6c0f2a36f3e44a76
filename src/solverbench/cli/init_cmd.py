# Copyright (c) Syntropy Systems
"""solverbench init command."""

from pathlib import Path

import typer
import yaml
from rich.console import Console

from solverbench.config import BENCH_DIR_NAME
from solverbench.errors import StoreError
from solverbench.store import init_db

console = Console()

SAMPLE_CONFIG = {
    "eval_file": "eval/eval.dat",
    "positions_dir": "test_positions",
    "time_limit": 600,
    "timeout_grace": 60,
    "kill_grace": 10,
    "baseline_threads": 1,
    "parallel_fraction": 0.9,
    "placement": "interleave",
    "use_job_queue": False,
    "unsupported_inputs": "exclude",
    "solvers": [
        {
            "name": "Sequential",
            "binary": "bin/sequential_solver",
            "kind": "sequential",
            "max_empties": 16,
        },
        {"name": "WorkStealing", "binary": "bin/workstealing_solver"},
        {"name": "Hybrid", "binary": "bin/hybrid_solver"},
    ],
}


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new benchmark project.

    Creates a .solverbench directory with a sample configuration and the
    result database.
    """
    target = path.resolve()
    bench_dir = target / BENCH_DIR_NAME

    if bench_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {bench_dir}")
        return

    bench_dir.mkdir(parents=True)
    runs_dir = bench_dir / "runs"
    runs_dir.mkdir()

    config_path = bench_dir / "config.yaml"
    with config_path.open("w") as f:
        yaml.safe_dump(SAMPLE_CONFIG, f, default_flow_style=False, sort_keys=False)

    db_path = bench_dir / "bench.db"
    try:
        init_db(db_path)
    except StoreError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    console.print(f"[green]Initialized solverbench project:[/green] {bench_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]database:[/dim] {db_path}")
    console.print(f"  [dim]runs:[/dim] {runs_dir}")
