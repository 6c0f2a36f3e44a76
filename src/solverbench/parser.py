# Copyright (c) Syntropy Systems
"""Extraction of metrics from free-form solver logs.

Parsing happens in two steps. scan() reports what the log actually
contains, with None for anything absent, so an unmeasured value stays
distinct from a measured zero. parse() collapses a scan into
ParsedMetrics, where every numeric field is defined and zero stands in
for anything that could not be measured.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Literal

from solverbench.models.results import ExitStatus, ResultStatus

OutputFormat = Literal["parallel", "baseline"]

_NUMBER = r"[-+]?\d+(?:\.\d*)?(?:[eE][-+]?\d+)?"
_COUNT = r"\d[\d,]*"

SUMMARY_PATTERN = re.compile(
    rf"Total:\s*({_COUNT})\s+nodes\s+in\s+({_NUMBER})\s+seconds\s*\(\s*({_NUMBER})\s+NPS\s*\)"
)
RESULT_PATTERN = re.compile(r"\bResult:[ \t]*(WIN|LOSS|LOSE|DRAW|TIMEOUT|UNKNOWN)\b")
WORKER_PATTERN = re.compile(rf"^\W*Worker\s+(\d+):\s+({_COUNT})\s+nodes", re.MULTILINE)
SUBTASKS_PATTERN = re.compile(rf"Subtasks spawned:\s*({_COUNT})")

TT_PATTERN = re.compile(
    rf"TT:\s*({_COUNT})\s+hits,\s*({_COUNT})\s+stores,\s*({_COUNT})\s+collisions"
    rf"\s*\(\s*({_NUMBER})%\s+hit rate\)"
)
LOCAL_HEAP_PATTERN = re.compile(rf"LocalHeap:\s*({_COUNT})\s+pushes,\s*({_COUNT})\s+pops")
GLOBAL_QUEUE_PATTERN = re.compile(
    rf"GlobalChunkQueue:\s*({_COUNT})\s+chunks pushed,\s*({_COUNT})\s+chunks popped"
)
EXPORT_IMPORT_PATTERN = re.compile(
    rf"Export/Import:\s*({_COUNT})\s+exported,\s*({_COUNT})\s+imported"
)

# Feature-trigger lines printed by the parallel solvers in verbose mode
FEATURE_PATTERNS: dict[str, re.Pattern[str]] = {
    "root_splits": re.compile(r"ROOT SPLIT.*spawned"),
    "mid_spawns": re.compile(r"MID-SEARCH SPAWN|periodic spawn"),
    "dynamic_params": re.compile(r"DYNAMIC PARAMS"),
    "early_spawns": re.compile(r"EARLY SPAWN"),
    "local_heap_fill": re.compile(r"LOCAL-HEAP-FILL|local_fill=YES"),
}

# The sequential baseline prints one value per line instead of a Total line
BASELINE_TIME_PATTERN = re.compile(rf"^\s*Time:\s*({_NUMBER})\s*$", re.MULTILINE)
BASELINE_NODES_PATTERN = re.compile(rf"^\s*Nodes:\s*({_COUNT})\s*$", re.MULTILINE)
BASELINE_NPS_PATTERN = re.compile(rf"^\s*NPS:\s*({_NUMBER})\s*$", re.MULTILINE)

EXTRA_KEYS = (
    "tt_hits",
    "tt_stores",
    "tt_collisions",
    "tt_hit_rate",
    "local_pushes",
    "local_pops",
    "global_chunks_pushed",
    "global_chunks_popped",
    "exported",
    "imported",
    *FEATURE_PATTERNS,
)

_RESULT_ALIASES = {"LOSE": ResultStatus.LOSS}


def _count(text: str) -> int:
    return int(text.replace(",", ""))


def _zero_extras() -> dict[str, float]:
    return dict.fromkeys(EXTRA_KEYS, 0.0)


@dataclass(frozen=True)
class SummaryLine:
    """The solver's node/time/throughput summary."""

    total_nodes: int
    time_sec: float
    nps: int


@dataclass(frozen=True)
class LogScan:
    """Everything recognised in a log; None marks an absent line."""

    summary: SummaryLine | None = None
    result: ResultStatus | None = None
    worker_util: float | None = None
    subtasks: int | None = None
    extras: dict[str, float] = field(default_factory=_zero_extras)

    @property
    def parsed(self) -> bool:
        """True when both the summary and result lines were found."""
        return self.summary is not None and self.result is not None


@dataclass(frozen=True)
class ParsedMetrics:
    """Structured metrics for one job, always fully populated.

    When status is not WIN, LOSS or DRAW every numeric field is zero.
    """

    status: ResultStatus
    time_sec: float = 0.0
    total_nodes: int = 0
    nps: int = 0
    worker_util: float = 0.0
    subtasks: int = 0
    extras: dict[str, float] = field(default_factory=_zero_extras)
    measured: bool = False

    @classmethod
    def unmeasured(cls, status: ResultStatus = ResultStatus.UNKNOWN) -> ParsedMetrics:
        """Metrics for a job that produced no usable measurement."""
        if status.decisive:
            status = ResultStatus.UNKNOWN
        return cls(status=status)


def _decode(log_text: str | bytes) -> str:
    if isinstance(log_text, bytes):
        return log_text.decode("utf-8", errors="replace")
    return log_text


def _scan_summary(text: str, output_format: OutputFormat) -> SummaryLine | None:
    match = SUMMARY_PATTERN.search(text)
    if match is not None:
        try:
            return SummaryLine(
                total_nodes=_count(match.group(1)),
                time_sec=float(match.group(2)),
                nps=int(float(match.group(3))),
            )
        except (ValueError, OverflowError):
            return None

    if output_format != "baseline":
        return None

    time_match = BASELINE_TIME_PATTERN.search(text)
    nodes_match = BASELINE_NODES_PATTERN.search(text)
    if time_match is None or nodes_match is None:
        return None
    try:
        time_sec = float(time_match.group(1))
        nodes = _count(nodes_match.group(1))
        nps_match = BASELINE_NPS_PATTERN.search(text)
        if nps_match is not None:
            nps = int(float(nps_match.group(1)))
        else:
            nps = int(nodes / time_sec) if time_sec > 0 else 0
    except (ValueError, OverflowError):
        return None
    return SummaryLine(total_nodes=nodes, time_sec=time_sec, nps=nps)


def _scan_workers(text: str) -> float | None:
    nodes_by_worker: dict[int, int] = {}
    for match in WORKER_PATTERN.finditer(text):
        nodes_by_worker[int(match.group(1))] = _count(match.group(2))
    if not nodes_by_worker:
        return None
    active = sum(1 for nodes in nodes_by_worker.values() if nodes > 0)
    return round(active * 100.0 / len(nodes_by_worker), 1)


def _scan_extras(text: str) -> dict[str, float]:
    extras = _zero_extras()

    tt = TT_PATTERN.search(text)
    if tt is not None:
        extras["tt_hits"] = float(_count(tt.group(1)))
        extras["tt_stores"] = float(_count(tt.group(2)))
        extras["tt_collisions"] = float(_count(tt.group(3)))
        extras["tt_hit_rate"] = float(tt.group(4))

    heap = LOCAL_HEAP_PATTERN.search(text)
    if heap is not None:
        extras["local_pushes"] = float(_count(heap.group(1)))
        extras["local_pops"] = float(_count(heap.group(2)))

    chunks = GLOBAL_QUEUE_PATTERN.search(text)
    if chunks is not None:
        extras["global_chunks_pushed"] = float(_count(chunks.group(1)))
        extras["global_chunks_popped"] = float(_count(chunks.group(2)))

    moves = EXPORT_IMPORT_PATTERN.search(text)
    if moves is not None:
        extras["exported"] = float(_count(moves.group(1)))
        extras["imported"] = float(_count(moves.group(2)))

    lines = text.splitlines()
    for key, pattern in FEATURE_PATTERNS.items():
        extras[key] = float(sum(1 for line in lines if pattern.search(line)))

    return extras


def scan(log_text: str | bytes, output_format: OutputFormat = "parallel") -> LogScan:
    """Report which recognised lines a log contains. Never raises."""
    text = _decode(log_text)

    result: ResultStatus | None = None
    result_match = RESULT_PATTERN.search(text)
    if result_match is not None:
        token = result_match.group(1)
        result = _RESULT_ALIASES.get(token) or ResultStatus(token)

    subtasks: int | None = None
    subtasks_match = SUBTASKS_PATTERN.search(text)
    if subtasks_match is not None:
        subtasks = _count(subtasks_match.group(1))

    return LogScan(
        summary=_scan_summary(text, output_format),
        result=result,
        worker_util=_scan_workers(text),
        subtasks=subtasks,
        extras=_scan_extras(text),
    )


def resolve(log_scan: LogScan, exit_status: ExitStatus | None = None) -> ParsedMetrics:
    """Collapse a scan into ParsedMetrics, zeroing anything unmeasured."""
    if exit_status is ExitStatus.TIMEOUT:
        return ParsedMetrics.unmeasured(ResultStatus.TIMEOUT)
    if exit_status is ExitStatus.CRASHED:
        return ParsedMetrics.unmeasured(ResultStatus.UNKNOWN)

    status = log_scan.result or ResultStatus.UNKNOWN
    if not status.decisive:
        return ParsedMetrics.unmeasured(status)
    if log_scan.summary is None:
        return ParsedMetrics.unmeasured(ResultStatus.UNKNOWN)

    return ParsedMetrics(
        status=status,
        time_sec=log_scan.summary.time_sec,
        total_nodes=log_scan.summary.total_nodes,
        nps=log_scan.summary.nps,
        worker_util=log_scan.worker_util or 0.0,
        subtasks=log_scan.subtasks or 0,
        extras=dict(log_scan.extras),
        measured=True,
    )


def parse(
    log_text: str | bytes,
    exit_status: ExitStatus | None = None,
    *,
    output_format: OutputFormat = "parallel",
) -> ParsedMetrics:
    """Parse a solver log into fully populated metrics. Never raises.

    Args:
        log_text: The job's combined output, verbatim
        exit_status: How the process ended, if known; CRASHED and TIMEOUT
            override whatever the log says
        output_format: "baseline" also accepts the sequential solver's
            Time/Nodes/NPS lines in place of the Total line

    """
    return resolve(scan(log_text, output_format), exit_status)
