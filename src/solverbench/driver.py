# Copyright (c) Syntropy Systems
"""Experiment driver: strictly sequential dispatch of measurement jobs."""
from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

from solverbench.aggregate import cell_stats, robustness_summary, scaling_summary
from solverbench.errors import InvalidTransition, StoreError
from solverbench.models.results import ResultRow
from solverbench.parser import parse

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence
    from pathlib import Path
    from threading import Event

    from solverbench.matrix import JobDescriptor
    from solverbench.models.results import BenchRun
    from solverbench.parser import ParsedMetrics
    from solverbench.runner import JobOutcome, JobRunner
    from solverbench.store import ResultStore

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, "JobDescriptor", ResultRow], None]


class JobState(str, Enum):
    """Lifecycle of one measurement job."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CRASHED = "CRASHED"
    TIMEOUT = "TIMEOUT"
    RECORDED = "RECORDED"


_TERMINAL_RUN_STATES = frozenset({JobState.COMPLETED, JobState.CRASHED, JobState.TIMEOUT})

ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.PENDING: frozenset({JobState.RUNNING}),
    JobState.RUNNING: _TERMINAL_RUN_STATES,
    JobState.COMPLETED: frozenset({JobState.RECORDED}),
    JobState.CRASHED: frozenset({JobState.RECORDED}),
    JobState.TIMEOUT: frozenset({JobState.RECORDED}),
    JobState.RECORDED: frozenset(),
}


class JobTracker:
    """Tracks one job through its lifecycle; there are no retries."""

    job: JobDescriptor
    state: JobState

    def __init__(self, job: JobDescriptor) -> None:
        self.job = job
        self.state = JobState.PENDING

    def advance(self, new_state: JobState) -> None:
        """Move to new_state, raising InvalidTransition if it is not allowed."""
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            msg = f"{self.job.label}: {self.state.value} -> {new_state.value} is not allowed"
            raise InvalidTransition(msg)
        logger.debug("%s: %s -> %s", self.job.label, self.state.value, new_state.value)
        self.state = new_state


def build_row(
    run_id: str,
    seq: int,
    outcome: JobOutcome,
    metrics: ParsedMetrics,
) -> ResultRow:
    """Combine a job's outcome and parsed metrics into its persisted row."""
    job = outcome.job
    return ResultRow(
        run_id=run_id,
        seq=seq,
        solver=job.solver,
        position=job.position,
        empties=job.empties,
        result=metrics.status,
        time_sec=metrics.time_sec,
        total_nodes=metrics.total_nodes,
        nps=metrics.nps,
        worker_util=metrics.worker_util,
        subtasks=metrics.subtasks,
        status=outcome.exit_status,
        threads=job.threads,
        trial=job.trial,
        placement=job.placement,
        exit_code=outcome.exit_code,
        elapsed_sec=outcome.elapsed_sec,
        log=str(outcome.log_path),
        extras=metrics.extras,
    )


def execute_job(
    job: JobDescriptor,
    runner: JobRunner,
    store: ResultStore,
    run_id: str,
) -> ResultRow:
    """Run one job and record it. A job is either fully recorded or never started.

    Crashes, timeouts and unparsable output all end in a recorded row.
    Only a store failure raises (StoreError).
    """
    tracker = JobTracker(job)
    seq, log_path = store.allocate_log(run_id, job)
    job = job.with_log(log_path)

    tracker.advance(JobState.RUNNING)
    try:
        outcome = runner.run(job)
    except OSError as e:
        msg = f"Cannot create log {log_path}: {e}"
        raise StoreError(msg) from e
    tracker.advance(JobState(outcome.exit_status.value))

    metrics = parse(
        outcome.log_text,
        outcome.exit_status,
        output_format="baseline" if job.sequential else "parallel",
    )
    row = build_row(run_id, seq, outcome, metrics)
    store.append(row)
    tracker.advance(JobState.RECORDED)

    logger.info(
        "%s: %s/%s in %.2fs",
        job.label,
        row.result.value,
        row.status.value,
        row.time_sec,
    )
    return row


def iter_run(
    jobs: Sequence[JobDescriptor],
    runner: JobRunner,
    store: ResultStore,
    run_id: str,
    *,
    stop: Optional[Event] = None,
    progress: Optional[ProgressCallback] = None,
) -> Iterator[ResultRow]:
    """Execute jobs one at a time, yielding each row once it is recorded.

    Row N is stored before job N+1 starts. When stop is set, dispatch ends
    after the job in progress has been recorded.
    """
    total = len(jobs)
    for index, job in enumerate(jobs, start=1):
        if stop is not None and stop.is_set():
            logger.warning("Stop requested, %d of %d jobs not started", total - index + 1, total)
            return
        row = execute_job(job, runner, store, run_id)
        if progress is not None:
            progress(index, total, job, row)
        yield row


def run_all(
    jobs: Sequence[JobDescriptor],
    runner: JobRunner,
    store: ResultStore,
    run_id: str,
    *,
    stop: Optional[Event] = None,
    progress: Optional[ProgressCallback] = None,
) -> list[ResultRow]:
    """Execute every job and return the recorded rows in dispatch order."""
    return list(iter_run(jobs, runner, store, run_id, stop=stop, progress=progress))


def summarize(
    store: ResultStore,
    run: BenchRun,
    rows: Iterable[ResultRow],
    *,
    baseline_threads: int,
    parallel_fraction: float,
) -> Path:
    """Aggregate a run's rows and regenerate its summary files."""
    rows = list(rows)
    scaling = scaling_summary(rows, baseline_threads, parallel_fraction)
    robustness = robustness_summary(rows)
    cells = list(cell_stats(rows).values())
    return store.write_summary(run, rows, scaling, robustness, cells)
