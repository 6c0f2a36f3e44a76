# Copyright (c) Syntropy Systems
"""Append-only result store: SQLite table, per-job logs and summary files."""
from __future__ import annotations

import contextlib
import csv
import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from solverbench.aggregate import CELL_COLUMNS
from solverbench.errors import StoreError
from solverbench.models.results import (
    RESULT_COLUMNS,
    RESULT_EXTRA_COLUMNS,
    ROBUSTNESS_COLUMNS,
    SCALING_COLUMNS,
    SCALING_DETAIL_COLUMNS,
    AggregatedRow,
    BenchRun,
    ResultRow,
    RobustnessRow,
)

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from solverbench.aggregate import CellStats
    from solverbench.matrix import JobDescriptor

logger = logging.getLogger(__name__)

# Nothing here is ever updated or deleted; completion is its own row
SCHEMA = """
CREATE TABLE IF NOT EXISTS runs (
    id TEXT PRIMARY KEY,
    preset TEXT NOT NULL,
    started_at TEXT NOT NULL,
    total_jobs INTEGER DEFAULT 0,
    host TEXT,          -- JSON
    capabilities TEXT,  -- JSON
    run_dir TEXT
);

CREATE TABLE IF NOT EXISTS run_completions (
    run_id TEXT PRIMARY KEY REFERENCES runs(id),
    finished_at TEXT NOT NULL,
    recorded_jobs INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL REFERENCES runs(id),
    seq INTEGER NOT NULL,
    solver TEXT NOT NULL,
    position TEXT NOT NULL,
    empties INTEGER,
    result TEXT NOT NULL,
    time_sec REAL NOT NULL,
    total_nodes INTEGER NOT NULL,
    nps INTEGER NOT NULL,
    worker_util REAL NOT NULL,
    subtasks INTEGER NOT NULL,
    status TEXT NOT NULL,
    threads INTEGER NOT NULL,
    trial INTEGER NOT NULL,
    placement TEXT NOT NULL,
    exit_code INTEGER,
    elapsed_sec REAL NOT NULL,
    log TEXT,
    extras TEXT,  -- JSON
    recorded_at TEXT DEFAULT (datetime('now')),
    UNIQUE (run_id, seq)
);

CREATE INDEX IF NOT EXISTS idx_results_run ON results(run_id, seq);
"""

_RUN_QUERY = """
SELECT runs.*, c.finished_at AS finished_at, COALESCE(c.recorded_jobs, 0) AS recorded_jobs
FROM runs LEFT JOIN run_completions AS c ON c.run_id = runs.id
"""


def get_connection(db_path: Path) -> sqlite3.Connection:
    """
    Get a database connection.

    - isolation_level=None so every INSERT commits immediately
    - WAL mode so readers never block the writer
    - busy_timeout to wait for locks instead of failing immediately
    """
    conn = sqlite3.connect(str(db_path), timeout=5.0, isolation_level=None)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path) -> None:
    """Initialize the database with the schema."""
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = get_connection(db_path)
        try:
            conn.executescript(SCHEMA)
        finally:
            conn.close()
    except (sqlite3.Error, OSError) as e:
        msg = f"Cannot initialise result database {db_path}: {e}"
        raise StoreError(msg) from e


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def new_run_id(preset: str) -> str:
    """Generate a run id such as quick-20240101-120000-a1b2c3."""
    now = datetime.now(timezone.utc)
    rand = str(uuid.uuid4())[:6]
    return f"{preset}-{now.strftime('%Y%m%d-%H%M%S')}-{rand}"


def _write_csv(path: Path, columns: list[str], rows: Sequence[dict[str, str]]) -> None:
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=columns, extrasaction="ignore")
        writer.writeheader()
        writer.writerows(rows)


class ResultStore:
    """Single writer for a bench directory's results.

    Every job becomes exactly one row, appended in the order it finished.
    Rows and logs are never rewritten; the summary files are regenerated
    from the rows as a whole.
    """

    db_path: Path
    runs_dir: Path
    _next_seq: dict[str, int]

    def __init__(self, db_path: Path, runs_dir: Path) -> None:
        self.db_path = db_path
        self.runs_dir = runs_dir
        self._next_seq = {}

    @classmethod
    def open(cls, bench_dir: Path) -> ResultStore:
        """Open (creating if needed) the store inside a .solverbench directory."""
        store = cls(bench_dir / "bench.db", bench_dir / "runs")
        init_db(store.db_path)
        return store

    @contextlib.contextmanager
    def _connection(self, action: str) -> Iterator[sqlite3.Connection]:
        try:
            conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            msg = f"Cannot open {self.db_path} to {action}: {e}"
            raise StoreError(msg) from e
        try:
            yield conn
        except sqlite3.Error as e:
            msg = f"Failed to {action}: {e}"
            raise StoreError(msg) from e
        finally:
            conn.close()

    # --- Runs ---

    def start_run(
        self,
        preset: str,
        *,
        total_jobs: int,
        host: Optional[dict[str, Any]] = None,
        capabilities: Optional[dict[str, Any]] = None,
        run_id: Optional[str] = None,
    ) -> BenchRun:
        """Record a new run and create its directory before any job starts."""
        run_id = run_id or new_run_id(preset)
        run_dir = self.runs_dir / run_id
        try:
            (run_dir / "logs").mkdir(parents=True, exist_ok=False)
        except OSError as e:
            msg = f"Cannot create run directory {run_dir}: {e}"
            raise StoreError(msg) from e

        run = BenchRun(
            id=run_id,
            preset=preset,
            started_at=utcnow(),
            total_jobs=total_jobs,
            host=host or {},
            capabilities=capabilities or {},
            run_dir=str(run_dir),
        )
        with self._connection("record run") as conn:
            conn.execute(
                """
                INSERT INTO runs (id, preset, started_at, total_jobs, host, capabilities, run_dir)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run.id,
                    run.preset,
                    run.started_at,
                    run.total_jobs,
                    json.dumps(run.host),
                    json.dumps(run.capabilities),
                    run.run_dir,
                ),
            )
        self._next_seq[run.id] = 1
        logger.info("Started run %s with %d jobs", run.id, total_jobs)
        return run

    def finish_run(self, run_id: str, recorded_jobs: int) -> None:
        """Record that a run stopped dispatching jobs."""
        with self._connection("record run completion") as conn:
            conn.execute(
                """
                INSERT INTO run_completions (run_id, finished_at, recorded_jobs)
                VALUES (?, ?, ?)
                """,
                (run_id, utcnow(), recorded_jobs),
            )

    def get_run(self, run_id: str) -> Optional[BenchRun]:
        """Get a run by ID."""
        with self._connection("read run") as conn:
            row = conn.execute(f"{_RUN_QUERY} WHERE runs.id = ?", (run_id,)).fetchone()
        if row is None:
            return None
        return BenchRun.model_validate(dict(row))

    def get_runs(self, limit: int = 50) -> list[BenchRun]:
        """List runs, newest first."""
        with self._connection("list runs") as conn:
            rows = conn.execute(
                f"{_RUN_QUERY} ORDER BY runs.started_at DESC, runs.rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [BenchRun.model_validate(dict(row)) for row in rows]

    # --- Logs ---

    def run_dir(self, run_id: str) -> Path:
        """Directory holding a run's logs and summary files."""
        return self.runs_dir / run_id

    def allocate_log(self, run_id: str, job: JobDescriptor) -> tuple[int, Path]:
        """Reserve the next sequence number and log path for a job.

        The path is unique within the run even when the same job repeats.
        """
        if run_id not in self._next_seq:
            with self._connection("read sequence") as conn:
                row = conn.execute(
                    "SELECT COALESCE(MAX(seq), 0) AS last FROM results WHERE run_id = ?",
                    (run_id,),
                ).fetchone()
            self._next_seq[run_id] = int(row["last"]) + 1

        seq = self._next_seq[run_id]
        self._next_seq[run_id] = seq + 1
        return seq, self.run_dir(run_id) / "logs" / f"{seq:04d}_{job.label}.log"

    # --- Results ---

    def append(self, row: ResultRow) -> None:
        """Persist one result row. The only mutation of the results table."""
        if row.run_id is None or row.seq is None:
            msg = "result rows need run_id and seq before they are stored"
            raise ValueError(msg)
        with self._connection("append result") as conn:
            conn.execute(
                """
                INSERT INTO results (
                    run_id, seq, solver, position, empties, result, time_sec,
                    total_nodes, nps, worker_util, subtasks, status, threads,
                    trial, placement, exit_code, elapsed_sec, log, extras
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    row.run_id,
                    row.seq,
                    row.solver,
                    row.position,
                    row.empties,
                    row.result.value,
                    row.time_sec,
                    row.total_nodes,
                    row.nps,
                    row.worker_util,
                    row.subtasks,
                    row.status.value,
                    row.threads,
                    row.trial,
                    row.placement,
                    row.exit_code,
                    row.elapsed_sec,
                    row.log,
                    json.dumps(row.extras),
                ),
            )

    def rows_for_run(self, run_id: str) -> list[ResultRow]:
        """All rows of a run in the order they were recorded."""
        with self._connection("read results") as conn:
            rows = conn.execute(
                "SELECT * FROM results WHERE run_id = ? ORDER BY seq",
                (run_id,),
            ).fetchall()
        return [ResultRow.model_validate(dict(row)) for row in rows]

    # --- Summaries ---

    def write_summary(
        self,
        run: BenchRun,
        rows: Sequence[ResultRow],
        scaling: Sequence[AggregatedRow],
        robustness: Sequence[RobustnessRow],
        cells: Sequence[CellStats] = (),
    ) -> Path:
        """Regenerate every summary file of a run from scratch.

        scaling feeds both scaling_summary.csv and the wider
        scaling_detail.csv; cells are written to cell_stats.csv.

        Returns the run directory.
        """
        run_dir = self.run_dir(run.id)
        try:
            run_dir.mkdir(parents=True, exist_ok=True)
            _write_csv(
                run_dir / "results.csv",
                RESULT_COLUMNS + RESULT_EXTRA_COLUMNS,
                [r.csv_row() for r in rows],
            )
            _write_csv(
                run_dir / "scaling_summary.csv",
                SCALING_COLUMNS,
                [r.csv_row() for r in scaling],
            )
            _write_csv(
                run_dir / "scaling_detail.csv",
                SCALING_DETAIL_COLUMNS,
                [r.detail_row() for r in scaling],
            )
            _write_csv(
                run_dir / "cell_stats.csv",
                CELL_COLUMNS,
                [c.csv_row() for c in cells],
            )
            _write_csv(
                run_dir / "robustness.csv",
                ROBUSTNESS_COLUMNS,
                [r.csv_row() for r in robustness],
            )
            meta = run.model_dump(mode="json")
            meta["rows"] = len(rows)
            with (run_dir / "meta.json").open("w", encoding="utf-8") as f:
                json.dump(meta, f, indent=2)
        except OSError as e:
            msg = f"Cannot write summary files in {run_dir}: {e}"
            raise StoreError(msg) from e
        return run_dir
