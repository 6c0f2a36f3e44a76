# Copyright (c) Syntropy Systems
"""Tests for cross-trial statistics."""

import pytest

from solverbench.aggregate import (
    CELL_COLUMNS,
    aggregate,
    amdahl,
    cell_stats,
    efficiency,
    overhead,
    robustness_summary,
    scaling_summary,
    speedup,
)
from solverbench.models.results import (
    FEATURE_COLUMNS,
    SCALING_DETAIL_COLUMNS,
    ExitStatus,
    ResultRow,
    ResultStatus,
)
from solverbench.parser import FEATURE_PATTERNS, ParsedMetrics


def metrics(time_sec: float, nodes: int = 1000, status=ResultStatus.WIN) -> ParsedMetrics:
    return ParsedMetrics(
        status=status,
        time_sec=time_sec,
        total_nodes=nodes,
        nps=int(nodes / time_sec) if time_sec else 0,
        measured=status.decisive,
    )


def row(
    solver: str,
    threads: int,
    time_sec: float,
    *,
    position: str = "empties_12_id_000",
    empties: int = 12,
    nodes: int = 1000,
    result=ResultStatus.WIN,
) -> ResultRow:
    decisive = result.decisive
    return ResultRow(
        solver=solver,
        position=position,
        empties=empties,
        result=result,
        time_sec=time_sec if decisive else 0.0,
        total_nodes=nodes if decisive else 0,
        status=ExitStatus.COMPLETED if result is not ResultStatus.TIMEOUT else ExitStatus.TIMEOUT,
        threads=threads,
        trial=1,
    )


class TestFormulas:
    """Tests for the individual formulas."""

    def test_speedup(self):
        assert speedup(8.0, 2.0) == 4.0

    def test_speedup_not_computable(self):
        """Zero or missing operands give None, never a fault."""
        assert speedup(0.0, 2.0) is None
        assert speedup(None, 2.0) is None
        assert speedup(8.0, None) is None
        assert speedup(8.0, 0.0) is None

    def test_efficiency(self):
        assert efficiency(4.0, 8) == 50.0
        assert efficiency(None, 8) is None

    def test_amdahl(self):
        """1 / ((1 - f) + f / p)."""
        assert amdahl(1, 0.9) == pytest.approx(1.0)
        assert amdahl(8, 0.9) == pytest.approx(1 / (0.1 + 0.9 / 8))
        assert amdahl(4, 1.0) == pytest.approx(4.0)

    def test_overhead(self):
        assert overhead(1500.0, 1000.0) == pytest.approx(0.5)
        assert overhead(1500.0, 0.0) is None
        assert overhead(None, 1000.0) is None


class TestAggregate:
    """Tests for aggregate() on a single cell."""

    def test_valid_trials_only(self):
        """Timeouts and unknowns do not enter the means."""
        records = [
            metrics(2.0),
            metrics(4.0),
            ParsedMetrics.unmeasured(ResultStatus.TIMEOUT),
            ParsedMetrics.unmeasured(),
        ]
        result = aggregate(
            records, solver="Hybrid", threads=4, baseline_time=12.0, parallel_fraction=0.9
        )

        assert result.valid_trials == 2
        assert result.avg_time == pytest.approx(3.0)
        assert result.avg_speedup == pytest.approx(4.0)
        assert result.avg_efficiency == pytest.approx(100.0)
        assert result.ideal_speedup == 4.0
        assert result.amdahl_speedup == pytest.approx(1 / (0.1 + 0.9 / 4))

    def test_zero_valid_trials_not_computable(self):
        """A cell of failures is marked, not averaged over zeros."""
        records = [ParsedMetrics.unmeasured(ResultStatus.TIMEOUT)] * 3
        result = aggregate(
            records, solver="Hybrid", threads=8, baseline_time=10.0, parallel_fraction=0.9
        )

        assert result.valid_trials == 0
        assert result.avg_time is None
        assert result.avg_speedup is None
        assert result.avg_efficiency is None
        assert not result.computable
        assert result.csv_row()["Avg_Speedup"] == "NA"

    def test_missing_baseline_not_computable(self):
        result = aggregate(
            [metrics(2.0)], solver="Hybrid", threads=2, baseline_time=None, parallel_fraction=0.9
        )
        assert result.avg_time == pytest.approx(2.0)
        assert result.avg_speedup is None

    def test_overhead_against_baseline_nodes(self):
        result = aggregate(
            [metrics(1.0, nodes=1200)],
            solver="Hybrid",
            threads=2,
            baseline_time=2.0,
            parallel_fraction=0.9,
            baseline_nodes=1000.0,
        )
        assert result.overhead == pytest.approx(0.2)

    def test_behaviour_averages(self):
        """Worker utilisation, subtasks and feature counts are averaged over valid trials."""
        records = [
            ParsedMetrics(
                status=ResultStatus.WIN,
                time_sec=1.0,
                total_nodes=100,
                worker_util=100.0,
                subtasks=40,
                extras={"root_splits": 2.0, "local_heap_fill": 1.0},
            ),
            ParsedMetrics(
                status=ResultStatus.DRAW,
                time_sec=1.0,
                total_nodes=100,
                worker_util=50.0,
                subtasks=20,
                extras={"root_splits": 4.0},
            ),
            ParsedMetrics.unmeasured(ResultStatus.TIMEOUT),
        ]
        result = aggregate(
            records, solver="Hybrid", threads=4, baseline_time=None, parallel_fraction=0.9
        )

        assert result.avg_worker_util == pytest.approx(75.0)
        assert result.avg_subtasks == pytest.approx(30.0)
        assert result.avg_features["root_splits"] == pytest.approx(3.0)
        assert result.avg_features["local_heap_fill"] == pytest.approx(0.5)
        assert result.avg_features["early_spawns"] == 0.0

    def test_behaviour_averages_without_trials(self):
        result = aggregate(
            [ParsedMetrics.unmeasured()],
            solver="Hybrid",
            threads=4,
            baseline_time=None,
            parallel_fraction=0.9,
        )

        assert result.avg_worker_util is None
        assert result.avg_features == {}
        detail = result.detail_row()
        assert detail["Avg_Worker_Util"] == "NA"
        assert detail["Avg_RootSplits"] == "NA"
        assert detail["Overhead"] == "NA"

    def test_feature_columns_cover_parser_counters(self):
        assert set(FEATURE_COLUMNS) == set(FEATURE_PATTERNS)


class TestScalingSummary:
    """Tests for scaling_summary()."""

    def test_per_position_speedup_averaged(self):
        """Speedup is taken per position, then averaged."""
        rows = [
            row("P", 1, 10.0, position="empties_12_id_000"),
            row("P", 1, 40.0, position="empties_14_id_000", empties=14),
            row("P", 4, 5.0, position="empties_12_id_000"),
            row("P", 4, 10.0, position="empties_14_id_000", empties=14),
        ]
        summary = scaling_summary(rows, baseline_threads=1, parallel_fraction=0.9)

        assert [(r.solver, r.threads) for r in summary] == [("P", 1), ("P", 4)]
        assert summary[0].avg_speedup == pytest.approx(1.0)
        # (10/5 + 40/10) / 2
        assert summary[1].avg_speedup == pytest.approx(3.0)
        assert summary[1].avg_efficiency == pytest.approx(75.0)

    def test_solvers_use_their_own_baseline(self):
        rows = [
            row("A", 1, 10.0),
            row("B", 1, 20.0),
            row("A", 2, 5.0),
            row("B", 2, 5.0),
        ]
        summary = {(r.solver, r.threads): r for r in scaling_summary(rows, 1, 0.9)}

        assert summary[("A", 2)].avg_speedup == pytest.approx(2.0)
        assert summary[("B", 2)].avg_speedup == pytest.approx(4.0)

    def test_failed_baseline_not_computable(self):
        """A baseline that timed out yields NA, not a division by zero."""
        rows = [
            row("P", 1, 0.0, result=ResultStatus.TIMEOUT),
            row("P", 2, 3.0),
        ]
        summary = scaling_summary(rows, baseline_threads=1, parallel_fraction=0.9)

        assert summary[0].avg_time is None
        assert summary[1].avg_speedup is None
        assert summary[1].csv_row()["Avg_Efficiency"] == "NA"

    def test_overhead(self):
        rows = [row("P", 1, 10.0, nodes=1000), row("P", 8, 2.0, nodes=1300)]
        summary = scaling_summary(rows, baseline_threads=1, parallel_fraction=0.9)
        assert summary[1].overhead == pytest.approx(0.3)

    def test_detail_row(self):
        rows = [row("P", 1, 10.0, nodes=1000), row("P", 8, 2.0, nodes=1300)]
        summary = scaling_summary(rows, baseline_threads=1, parallel_fraction=0.9)
        detail = summary[1].detail_row()

        assert list(detail) == SCALING_DETAIL_COLUMNS
        assert detail["Threads"] == "8"
        assert detail["Valid_Trials"] == "1"
        assert detail["Mean_Nodes"] == "1300.0"
        assert detail["Mean_NPS"] == "0.0"
        assert detail["Overhead"] == "0.3000"
        assert summary[0].detail_row()["Overhead"] == "0.0000"


class TestCellStats:
    """Tests for per-cell trial statistics."""

    def test_dispersion(self):
        rows = [row("P", 2, 2.0), row("P", 2, 4.0), row("P", 2, 0.0, result=ResultStatus.UNKNOWN)]
        stats = cell_stats(rows)[("P", "empties_12_id_000", 2)]

        assert stats.valid_trials == 2
        assert stats.mean_time == pytest.approx(3.0)
        assert stats.stddev == pytest.approx(1.0)
        assert stats.median_time == pytest.approx(3.0)
        assert stats.cv == pytest.approx(1 / 3)

    def test_csv_row(self):
        rows = [row("P", 2, 2.0), row("P", 2, 0.0, result=ResultStatus.TIMEOUT)]
        stats = cell_stats(rows)[("P", "empties_12_id_000", 2)]
        csv_row = stats.csv_row()

        assert list(csv_row) == CELL_COLUMNS
        assert csv_row["Valid_Trials"] == "1"
        assert csv_row["Mean_Time"] == "2.000"
        assert csv_row["StdDev"] == "0.000"
        assert csv_row["CV"] == "0.0000"

    def test_csv_row_without_trials(self):
        stats = cell_stats([row("P", 2, 0.0, result=ResultStatus.UNKNOWN)])[
            ("P", "empties_12_id_000", 2)
        ]
        csv_row = stats.csv_row()

        assert csv_row["Mean_Time"] == "NA"
        assert csv_row["CV"] == "NA"
        assert csv_row["Median"] == "NA"


class TestRobustnessSummary:
    """Tests for robustness_summary()."""

    def test_groups_by_solver_and_empties(self):
        rows = [
            row("P", 4, 1.0, empties=12),
            row("P", 4, 3.0, empties=12),
            row("P", 4, 10.0, position="empties_14_id_000", empties=14),
        ]
        summary = robustness_summary(rows)

        assert [(r.solver, r.empties) for r in summary] == [("P", 12), ("P", 14)]
        first = summary[0]
        assert first.count == 2
        assert first.avg_time == pytest.approx(2.0)
        assert first.stddev == pytest.approx(1.0)
        assert first.cv == pytest.approx(0.5)
        assert first.max_min_ratio == pytest.approx(3.0)
        assert first.median_time == pytest.approx(2.0)

    def test_zero_times_not_computable(self):
        """Ratios over a zero minimum or mean are NA."""
        rows = [row("P", 1, 0.0), row("P", 1, 0.0)]
        summary = robustness_summary(rows)

        assert summary[0].count == 2
        assert summary[0].cv is None
        assert summary[0].max_min_ratio is None
        assert summary[0].csv_row()["CV"] == "NA"

    def test_no_valid_trials(self):
        rows = [row("P", 1, 0.0, result=ResultStatus.TIMEOUT)]
        summary = robustness_summary(rows)

        assert summary[0].count == 0
        assert summary[0].avg_time is None
        assert summary[0].stddev is None
