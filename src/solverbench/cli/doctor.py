# Copyright (c) Syntropy Systems
"""solverbench doctor command."""

import os
import sqlite3
from typing import cast

from rich.console import Console

from solverbench.capabilities import detect
from solverbench.config import find_bench_dir, get_db_path, load_config
from solverbench.environment import collect_host_info
from solverbench.errors import ConfigError
from solverbench.store import get_connection

console = Console()

OK = "[green]✓[/green]"
FAIL = "[red]✗[/red]"
WARN = "[yellow]⚠[/yellow]"
INFO = "[dim]•[/dim]"


def doctor() -> None:
    """Check the benchmark setup and diagnose issues.

    Verifies:
    - .solverbench directory and configuration
    - SQLite database is healthy
    - optional tools (numactl, tsp, timeout)
    - solver binaries, evaluation file and positions directory
    """
    issues: list[str] = []
    warnings: list[str] = []

    bench_dir = find_bench_dir()
    if bench_dir is None:
        console.print(f"{FAIL} No .solverbench directory found")
        console.print("  Run [bold]solverbench init[/bold] to initialize a project")
        return

    console.print(f"{OK} solverbench directory: {bench_dir}")

    # Database
    db_path = get_db_path(bench_dir)
    if not db_path.exists():
        console.print(f"{FAIL} Database not found: {db_path}")
        issues.append("Database missing")
    else:
        conn = None
        try:
            conn = get_connection(db_path)
            result = cast(
                "sqlite3.Row | None",
                conn.execute("PRAGMA journal_mode").fetchone(),
            )
            journal_mode = cast("str", result[0]) if result is not None else "unknown"
            if journal_mode.lower() == "wal":
                console.print(f"{OK} SQLite: WAL mode enabled")
            else:
                console.print(f"{WARN} SQLite: journal_mode is {journal_mode}, expected WAL")
                warnings.append("Not using WAL mode")
        except sqlite3.Error as e:
            console.print(f"{FAIL} Database error: {e}")
            issues.append(f"Database error: {e}")
        finally:
            if conn is not None:
                conn.close()

    # Optional tools
    caps = detect()
    for label, present, path in (
        ("numactl (placement)", caps.has_resource_placement, caps.numactl_path),
        ("timeout (time limit)", caps.has_timeout_wrapper, caps.timeout_path),
        ("tsp (job queue)", caps.has_job_queue, caps.tsp_path),
    ):
        if present:
            console.print(f"{OK} {label}: {path}")
        else:
            console.print(f"{WARN} {label}: not found, wrapper will be skipped")
            warnings.append(f"{label.split()[0]} not installed")

    # Host
    host = collect_host_info()
    console.print(
        f"{INFO} Host: {host['hostname']}, {host['cpu_count']} CPUs "
        f"({host['physical_cores']} cores), {host['memory_total_gb']} GB, "
        f"{host['numa_nodes'] or 'unknown'} NUMA node(s)"
    )
    if host["cpu_governor"] is not None:
        console.print(f"{INFO} CPU governor: {host['cpu_governor']}")
    if host["numa_balancing"]:
        console.print(f"{WARN} Automatic NUMA balancing is enabled")
        warnings.append("NUMA balancing enabled")

    # Configuration and inputs
    try:
        config = load_config(bench_dir)
    except ConfigError as e:
        console.print(f"{FAIL} {e}")
        issues.append("Invalid configuration")
    else:
        console.print(f"{OK} Configuration: {len(config.solvers)} solver(s), "
                      f"presets {', '.join(config.presets)}")
        for variant in config.solvers:
            binary = config.resolve(variant.binary)
            if not binary.is_file():
                console.print(f"{FAIL} Solver {variant.name}: {binary} not found")
                issues.append(f"Missing binary for {variant.name}")
            elif not os.access(binary, os.X_OK):
                console.print(f"{FAIL} Solver {variant.name}: {binary} is not executable")
                issues.append(f"{variant.name} not executable")
            else:
                console.print(f"{OK} Solver {variant.name}: {binary}")

        eval_file = config.resolve(config.eval_file)
        if eval_file.is_file():
            console.print(f"{OK} Evaluation file: {eval_file}")
        else:
            console.print(f"{WARN} Evaluation file not found: {eval_file}")
            warnings.append("Evaluation file missing")

        positions_dir = config.resolve(config.positions_dir)
        if positions_dir.is_dir():
            count = len(list(positions_dir.glob("*.pos")))
            console.print(f"{OK} Positions: {count} file(s) in {positions_dir}")
        else:
            console.print(f"{FAIL} Positions directory not found: {positions_dir}")
            issues.append("Positions directory missing")

    # Summary
    console.print()
    if issues:
        console.print(f"[red]Found {len(issues)} issue(s)[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
    elif warnings:
        console.print(f"[yellow]Found {len(warnings)} warning(s)[/yellow]")
        for warning in warnings:
            console.print(f"  - {warning}")
    else:
        console.print("[green]All checks passed[/green]")
