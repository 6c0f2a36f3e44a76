# Copyright (c) Syntropy Systems
"""Cross-trial statistics: speedup, efficiency and run-time dispersion.

Only trials whose verdict is WIN, LOSS or DRAW enter any statistic.
Anything whose denominator is zero or missing is reported as None
rather than raised or replaced with a made-up number.
"""
from __future__ import annotations

import statistics
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Optional, Union

from solverbench.models.results import (
    FEATURE_COLUMNS,
    AggregatedRow,
    ResultRow,
    ResultStatus,
    RobustnessRow,
    format_stat,
)
from solverbench.parser import ParsedMetrics

Measurement = Union[ParsedMetrics, ResultRow]


def _verdict(record: Measurement) -> ResultStatus:
    if isinstance(record, ResultRow):
        return record.result
    return record.status


def valid_records(records: Iterable[Measurement]) -> list[Measurement]:
    """Keep the records whose measurements are meaningful."""
    return [r for r in records if _verdict(r).decisive]


def _mean(values: Sequence[float]) -> Optional[float]:
    if not values:
        return None
    return statistics.fmean(values)


def _ratio(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    if numerator is None or denominator is None or denominator == 0:
        return None
    return numerator / denominator


def speedup(baseline_time: Optional[float], time: Optional[float]) -> Optional[float]:
    """Baseline mean time over the measured mean time."""
    if baseline_time is None or baseline_time == 0:
        return None
    return _ratio(baseline_time, time)


def efficiency(speedup_value: Optional[float], threads: int) -> Optional[float]:
    """Speedup per thread, as a percentage."""
    if speedup_value is None or threads <= 0:
        return None
    return speedup_value / threads * 100.0


def amdahl(threads: int, parallel_fraction: float) -> float:
    """Amdahl's law: 1 / ((1 - f) + f / p)."""
    return 1.0 / ((1.0 - parallel_fraction) + parallel_fraction / threads)


def overhead(nodes: Optional[float], baseline_nodes: Optional[float]) -> Optional[float]:
    """Extra search work relative to the baseline: nodes(p) / nodes(base) - 1."""
    ratio = _ratio(nodes, baseline_nodes)
    if ratio is None:
        return None
    return ratio - 1.0


def aggregate(
    records: Sequence[Measurement],
    *,
    solver: str,
    threads: int,
    baseline_time: Optional[float],
    parallel_fraction: float,
    baseline_nodes: Optional[float] = None,
) -> AggregatedRow:
    """Summarise the trials of one (solver, thread count) cell.

    Args:
        records: Parsed trials for the cell; invalid ones are ignored
        solver: Solver name for the row
        threads: Thread count p of the cell
        baseline_time: Mean time of the same solver at the baseline thread
            count, or None when it was never measured
        parallel_fraction: f in Amdahl's law, supplied by the caller
        baseline_nodes: Mean node count at the baseline, for overhead

    """
    valid = valid_records(records)
    mean_time = _mean([r.time_sec for r in valid])
    mean_nodes = _mean([float(r.total_nodes) for r in valid])
    mean_nps = _mean([float(r.nps) for r in valid])
    features: dict[str, float] = {}
    if valid:
        features = {
            key: statistics.fmean([r.extras.get(key, 0.0) for r in valid])
            for key in FEATURE_COLUMNS
        }

    cell_speedup = speedup(baseline_time, mean_time)
    return AggregatedRow(
        threads=threads,
        solver=solver,
        valid_trials=len(valid),
        avg_time=mean_time,
        mean_nodes=mean_nodes,
        mean_nps=mean_nps,
        avg_speedup=cell_speedup,
        avg_efficiency=efficiency(cell_speedup, threads),
        ideal_speedup=float(threads),
        amdahl_speedup=amdahl(threads, parallel_fraction),
        overhead=overhead(mean_nodes, baseline_nodes),
        avg_worker_util=_mean([r.worker_util for r in valid]),
        avg_subtasks=_mean([float(r.subtasks) for r in valid]),
        avg_features=features,
    )


@dataclass(frozen=True)
class CellStats:
    """Trial statistics for one (solver, position, threads) cell."""

    solver: str
    position: str
    threads: int
    valid_trials: int
    mean_time: Optional[float]
    stddev: Optional[float]
    min_time: Optional[float]
    max_time: Optional[float]
    median_time: Optional[float]
    mean_nodes: Optional[float]

    @property
    def cv(self) -> Optional[float]:
        """Coefficient of variation of the run time."""
        return _ratio(self.stddev, self.mean_time)

    @classmethod
    def from_rows(
        cls, solver: str, position: str, threads: int, rows: Iterable[ResultRow]
    ) -> CellStats:
        valid = [r for r in rows if r.valid]
        times = [r.time_sec for r in valid]
        return cls(
            solver=solver,
            position=position,
            threads=threads,
            valid_trials=len(valid),
            mean_time=_mean(times),
            stddev=statistics.pstdev(times) if times else None,
            min_time=min(times) if times else None,
            max_time=max(times) if times else None,
            median_time=statistics.median(times) if times else None,
            mean_nodes=_mean([float(r.total_nodes) for r in valid]),
        )

    def csv_row(self) -> dict[str, str]:
        """Return the cell keyed by cell_stats.csv column names."""
        return {
            "Solver": self.solver,
            "Position": self.position,
            "Threads": str(self.threads),
            "Valid_Trials": str(self.valid_trials),
            "Mean_Time": format_stat(self.mean_time),
            "StdDev": format_stat(self.stddev),
            "CV": format_stat(self.cv, 4),
            "Min": format_stat(self.min_time),
            "Max": format_stat(self.max_time),
            "Median": format_stat(self.median_time),
            "Mean_Nodes": format_stat(self.mean_nodes, 1),
        }


def cell_stats(rows: Iterable[ResultRow]) -> dict[tuple[str, str, int], CellStats]:
    """Group rows by (solver, position, threads), preserving first-seen order."""
    groups: dict[tuple[str, str, int], list[ResultRow]] = {}
    for row in rows:
        groups.setdefault((row.solver, row.position, row.threads), []).append(row)
    return {
        key: CellStats.from_rows(key[0], key[1], key[2], members)
        for key, members in groups.items()
    }


CELL_COLUMNS = [
    "Solver",
    "Position",
    "Threads",
    "Valid_Trials",
    "Mean_Time",
    "StdDev",
    "CV",
    "Min",
    "Max",
    "Median",
    "Mean_Nodes",
]


def scaling_summary(
    rows: Sequence[ResultRow],
    baseline_threads: int,
    parallel_fraction: float,
) -> list[AggregatedRow]:
    """One row per (solver, threads) with position-averaged speedup.

    Speedup is taken per position against the same solver's mean time at
    baseline_threads on that position, then averaged over the positions
    where it could be computed.
    """
    cells = cell_stats(rows)

    order: list[tuple[str, int]] = []
    records: dict[tuple[str, int], list[ResultRow]] = {}
    for row in rows:
        key = (row.solver, row.threads)
        if key not in records:
            order.append(key)
            records[key] = []
        records[key].append(row)

    summary: list[AggregatedRow] = []
    for solver, threads in order:
        speedups: list[float] = []
        overheads: list[float] = []
        for (cell_solver, position, cell_threads), stats in cells.items():
            if cell_solver != solver or cell_threads != threads:
                continue
            base = cells.get((solver, position, baseline_threads))
            if base is None:
                continue
            value = speedup(base.mean_time, stats.mean_time)
            if value is not None:
                speedups.append(value)
            extra = overhead(stats.mean_nodes, base.mean_nodes)
            if extra is not None:
                overheads.append(extra)

        cell = aggregate(
            records[(solver, threads)],
            solver=solver,
            threads=threads,
            baseline_time=None,
            parallel_fraction=parallel_fraction,
        )
        avg_speedup = _mean(speedups)
        summary.append(
            cell.model_copy(
                update={
                    "avg_speedup": avg_speedup,
                    "avg_efficiency": efficiency(avg_speedup, threads),
                    "overhead": _mean(overheads),
                }
            )
        )
    return summary


def robustness_summary(rows: Iterable[ResultRow]) -> list[RobustnessRow]:
    """Run-time dispersion per (solver, empties), in first-seen order."""
    groups: dict[tuple[str, Optional[int]], list[float]] = {}
    for row in rows:
        times = groups.setdefault((row.solver, row.empties), [])
        if row.valid:
            times.append(row.time_sec)

    summary: list[RobustnessRow] = []
    for (solver, empties), times in groups.items():
        mean_time = _mean(times)
        stddev = statistics.pstdev(times) if times else None
        min_time = min(times) if times else None
        max_time = max(times) if times else None
        summary.append(
            RobustnessRow(
                solver=solver,
                empties=empties,
                count=len(times),
                avg_time=mean_time,
                stddev=stddev,
                cv=_ratio(stddev, mean_time),
                min_time=min_time,
                max_time=max_time,
                max_min_ratio=_ratio(max_time, min_time),
                median_time=statistics.median(times) if times else None,
            )
        )
    return summary
