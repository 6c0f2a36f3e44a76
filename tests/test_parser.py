# Copyright (c) Syntropy Systems
"""Tests for solver log parsing."""

from solverbench.models.results import ExitStatus, ResultStatus
from solverbench.parser import EXTRA_KEYS, ParsedMetrics, parse, scan

PARALLEL_LOG = """\
Loading evaluation weights from eval/eval.dat
ROOT SPLIT: 9 children spawned
Worker 0: 5,000 nodes, 12 tasks
Worker 1: 4000 nodes, 9 tasks
Worker 2: 0 nodes, 0 tasks
Worker 3: 1000 nodes, 2 tasks
Subtasks spawned: 42, completed: 42
TT: 100 hits, 400 stores, 7 collisions (25.0% hit rate)
LocalHeap: 300 pushes, 290 pops
GlobalChunkQueue: 12 chunks pushed, 11 chunks popped
Export/Import: 5 exported, 4 imported
Total: 10000 nodes in 1.250 seconds (8000 NPS)
Result: WIN
"""


def _zero(metrics: ParsedMetrics) -> bool:
    return (
        metrics.time_sec == 0.0
        and metrics.total_nodes == 0
        and metrics.nps == 0
        and metrics.worker_util == 0.0
        and metrics.subtasks == 0
    )


class TestParse:
    """Tests for parse()."""

    def test_full_parallel_log(self):
        """All recognised lines are extracted."""
        metrics = parse(PARALLEL_LOG)

        assert metrics.status is ResultStatus.WIN
        assert metrics.measured
        assert metrics.total_nodes == 10000
        assert metrics.time_sec == 1.25
        assert metrics.nps == 8000
        assert metrics.subtasks == 42
        assert metrics.worker_util == 75.0

    def test_summary_and_result_lines(self):
        metrics = parse("Total: 4336 nodes in 0.065 seconds (66855 NPS)\nResult: WIN\n")

        assert metrics.status is ResultStatus.WIN
        assert metrics.total_nodes == 4336
        assert metrics.time_sec == 0.065
        assert metrics.nps == 66855
        assert metrics.measured

    def test_non_ascii_noise(self):
        """Unrelated non-ASCII output around the two lines is ignored."""
        log = (
            "Évaluation chargée ✓\n"
            "盤面: ●○●○ → 探索開始\n"
            "Total: 4336 nodes in 0.065 seconds (66855 NPS)\n"
            "ü\xa0…\n"
            "Result: WIN\n"
            "fin ✔\n"
        ).encode("utf-8") + b"\xff\xfe trailing\n"
        metrics = parse(log)

        assert metrics.status is ResultStatus.WIN
        assert metrics.total_nodes == 4336
        assert metrics.time_sec == 0.065
        assert metrics.nps == 66855

    def test_extras(self):
        """Secondary statistics land in extras."""
        extras = parse(PARALLEL_LOG).extras

        assert set(extras) == set(EXTRA_KEYS)
        assert extras["tt_hits"] == 100
        assert extras["tt_hit_rate"] == 25.0
        assert extras["local_pushes"] == 300
        assert extras["global_chunks_popped"] == 11
        assert extras["exported"] == 5
        assert extras["root_splits"] == 1
        assert extras["early_spawns"] == 0

    def test_minimal_log(self):
        """Worker and subtask lines are optional."""
        metrics = parse("Total: 500 nodes in 0.5 seconds (1000 NPS)\nResult: DRAW\n")

        assert metrics.status is ResultStatus.DRAW
        assert metrics.total_nodes == 500
        assert metrics.worker_util == 0.0
        assert metrics.subtasks == 0

    def test_lose_maps_to_loss(self):
        """LOSE is accepted as LOSS."""
        metrics = parse("Total: 1 nodes in 1.0 seconds (1 NPS)\nResult: LOSE\n")
        assert metrics.status is ResultStatus.LOSS

    def test_missing_summary_is_unknown(self):
        """A verdict without a summary line is not a measurement."""
        metrics = parse("Result: WIN\n")

        assert metrics.status is ResultStatus.UNKNOWN
        assert not metrics.measured
        assert _zero(metrics)

    def test_missing_result_is_unknown(self):
        """A summary without a verdict is not a measurement."""
        metrics = parse("Total: 500 nodes in 0.5 seconds (1000 NPS)\n")

        assert metrics.status is ResultStatus.UNKNOWN
        assert _zero(metrics)

    def test_empty_and_garbage(self):
        """Empty or binary logs parse to UNKNOWN without raising."""
        assert parse("").status is ResultStatus.UNKNOWN
        assert parse(b"\xff\xfe\x00garbage\x80").status is ResultStatus.UNKNOWN

    def test_first_match_wins(self):
        """When lines repeat, the first occurrence is used."""
        log = (
            "Total: 100 nodes in 1.0 seconds (100 NPS)\n"
            "Result: WIN\n"
            "Total: 999 nodes in 9.0 seconds (111 NPS)\n"
            "Result: DRAW\n"
        )
        metrics = parse(log)

        assert metrics.status is ResultStatus.WIN
        assert metrics.total_nodes == 100

    def test_timeout_verdict_zeroes_metrics(self):
        """A solver reporting TIMEOUT has no valid measurement."""
        log = "Total: 100 nodes in 1.0 seconds (100 NPS)\nResult: TIMEOUT\n"
        metrics = parse(log)

        assert metrics.status is ResultStatus.TIMEOUT
        assert _zero(metrics)

    def test_crashed_exit_overrides_log(self):
        """A crashed process never yields a valid measurement."""
        metrics = parse(PARALLEL_LOG, ExitStatus.CRASHED)

        assert metrics.status is ResultStatus.UNKNOWN
        assert _zero(metrics)

    def test_timeout_exit_overrides_log(self):
        """A killed process is TIMEOUT whatever it printed."""
        metrics = parse(PARALLEL_LOG, ExitStatus.TIMEOUT)

        assert metrics.status is ResultStatus.TIMEOUT
        assert _zero(metrics)

    def test_baseline_format(self):
        """The sequential grammar is accepted only when asked for."""
        log = "Time: 2.500\nNodes: 1000\nNPS: 400\nResult: WIN\n"

        metrics = parse(log, output_format="baseline")
        assert metrics.status is ResultStatus.WIN
        assert metrics.time_sec == 2.5
        assert metrics.total_nodes == 1000
        assert metrics.nps == 400

        assert parse(log).status is ResultStatus.UNKNOWN

    def test_baseline_nps_derived_when_missing(self):
        """NPS is computed from nodes and time if not printed."""
        metrics = parse("Time: 2.0\nNodes: 1000\nResult: DRAW\n", output_format="baseline")
        assert metrics.nps == 500


class TestScan:
    """Tests for scan()."""

    def test_absent_lines_are_none(self):
        """Missing lines stay distinguishable from measured zeros."""
        log_scan = scan("nothing useful here\n")

        assert log_scan.summary is None
        assert log_scan.result is None
        assert log_scan.worker_util is None
        assert log_scan.subtasks is None
        assert not log_scan.parsed

    def test_measured_zero(self):
        """A printed zero is reported as zero, not None."""
        log_scan = scan("Subtasks spawned: 0, completed: 0\nWorker 0: 0 nodes, 0 tasks\n")

        assert log_scan.subtasks == 0
        assert log_scan.worker_util == 0.0

    def test_feature_lines_counted(self):
        """Each feature trigger line increments its counter."""
        log = "EARLY SPAWN a\nEARLY SPAWN b\nDYNAMIC PARAMS: x\nMID-SEARCH SPAWN\n"
        extras = scan(log).extras

        assert extras["early_spawns"] == 2
        assert extras["dynamic_params"] == 1
        assert extras["mid_spawns"] == 1
