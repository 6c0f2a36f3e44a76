# Copyright (c) Syntropy Systems
"""Pytest fixtures for solverbench tests."""

import os
import stat
import sys
import tempfile
import textwrap
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
import yaml
from fake_solvers import PARALLEL_SOLVER, SEQUENTIAL_SOLVER

# Store original cwd at module load time
_original_cwd = Path.cwd()

SolverFactory = Callable[[str, str], Path]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)
        # Tests may chdir into tmpdir; leave it before it is removed
        os.chdir(_original_cwd)


@pytest.fixture
def make_solver(temp_dir: Path) -> SolverFactory:
    """Factory writing executable fake solvers into temp_dir/bin."""
    bin_dir = temp_dir / "bin"

    def _make(name: str, body: str) -> Path:
        bin_dir.mkdir(exist_ok=True)
        path = bin_dir / name
        path.write_text(f"#!{sys.executable}\n{textwrap.dedent(body)}")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def bench_config() -> dict:
    """Configuration written by bench_project; tests may edit it first."""
    return {
        "eval_file": "eval/eval.dat",
        "positions_dir": "test_positions",
        "time_limit": 5,
        "timeout_grace": 2,
        "kill_grace": 1,
        "placement": "none",
        "unsupported_inputs": "exclude",
        "solvers": [
            {
                "name": "Sequential",
                "binary": "bin/sequential",
                "kind": "sequential",
                "max_empties": 12,
            },
            {"name": "Parallel", "binary": "bin/parallel"},
        ],
        "presets": {
            "tiny": {
                "positions": ["empties_12_id_000"],
                "threads": [1, 2, 4],
                "trials": 1,
            },
            "repeat": {
                "solvers": ["Parallel"],
                "positions": ["empties_12_id_000"],
                "threads": [2],
                "trials": 2,
            },
        },
    }


@pytest.fixture
def bench_project(
    temp_dir: Path,
    make_solver: SolverFactory,
    bench_config: dict,
) -> Generator[Path, None, None]:
    """Create a temporary benchmark project with fake solvers."""
    from solverbench.store import init_db

    bench_dir = temp_dir / ".solverbench"
    bench_dir.mkdir()
    (bench_dir / "runs").mkdir()
    init_db(bench_dir / "bench.db")

    with (bench_dir / "config.yaml").open("w") as f:
        yaml.safe_dump(bench_config, f)

    make_solver("parallel", PARALLEL_SOLVER)
    make_solver("sequential", SEQUENTIAL_SOLVER)

    (temp_dir / "eval").mkdir()
    (temp_dir / "eval" / "eval.dat").write_bytes(b"\x00" * 16)
    positions = temp_dir / "test_positions"
    positions.mkdir()
    for name in ("empties_12_id_000", "empties_14_id_000"):
        (positions / f"{name}.pos").write_text("-" * 64 + " X\n")

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)
