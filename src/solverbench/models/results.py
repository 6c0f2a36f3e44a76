# Copyright (c) Syntropy Systems
"""Pydantic models for persisted benchmark records."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field, TypeAdapter, field_validator

from .base import BenchBaseModel, FrozenRecord, JSONValue

NOT_COMPUTABLE = "NA"

_FLOAT_MAP_ADAPTER = TypeAdapter(dict[str, float])
_JSON_OBJECT_ADAPTER = TypeAdapter(dict[str, JSONValue])


class ResultStatus(str, Enum):
    """Solver verdict as read from the log."""

    WIN = "WIN"
    LOSS = "LOSS"
    DRAW = "DRAW"
    UNKNOWN = "UNKNOWN"
    TIMEOUT = "TIMEOUT"

    @property
    def decisive(self) -> bool:
        """True for statuses that carry valid measurements."""
        return self in DECISIVE_STATUSES


DECISIVE_STATUSES = frozenset({ResultStatus.WIN, ResultStatus.LOSS, ResultStatus.DRAW})


class ExitStatus(str, Enum):
    """How the solver process terminated."""

    COMPLETED = "COMPLETED"
    CRASHED = "CRASHED"
    TIMEOUT = "TIMEOUT"


def format_stat(value: float | None, digits: int = 3) -> str:
    """Format a statistic for a summary file, NA when not computable."""
    if value is None:
        return NOT_COMPUTABLE
    return f"{value:.{digits}f}"


class ResultRow(FrozenRecord):
    """One persisted record per executed job."""

    solver: str = Field(alias="Solver")
    position: str = Field(alias="Position")
    empties: Optional[int] = Field(default=None, alias="Empties")
    result: ResultStatus = Field(alias="Result")
    time_sec: float = Field(default=0.0, alias="Time_Sec")
    total_nodes: int = Field(default=0, alias="Total_Nodes")
    nps: int = Field(default=0, alias="NPS")
    worker_util: float = Field(default=0.0, alias="Worker_Util")
    subtasks: int = Field(default=0, alias="Subtasks")
    status: ExitStatus = Field(alias="Status")

    threads: int = Field(alias="Threads")
    trial: int = Field(alias="Trial")
    placement: str = Field(default="none", alias="Placement")
    exit_code: Optional[int] = Field(default=None, alias="Exit_Code")
    elapsed_sec: float = Field(default=0.0, alias="Elapsed_Sec")
    log: str = Field(default="", alias="Log")

    run_id: Optional[str] = None
    seq: Optional[int] = None
    extras: dict[str, float] = Field(default_factory=dict)

    @field_validator("extras", mode="before")
    @classmethod
    def _parse_extras(cls, value: object) -> object:
        if value is None:
            return {}
        if isinstance(value, str):
            return _FLOAT_MAP_ADAPTER.validate_json(value)
        return value

    @property
    def valid(self) -> bool:
        """True when the row's measurements may enter aggregation."""
        return self.result.decisive

    def csv_row(self) -> dict[str, str]:
        """Return the row keyed by persisted column names."""
        return {
            "Solver": self.solver,
            "Position": self.position,
            "Empties": "" if self.empties is None else str(self.empties),
            "Result": self.result.value,
            "Time_Sec": f"{self.time_sec:.3f}",
            "Total_Nodes": str(self.total_nodes),
            "NPS": str(self.nps),
            "Worker_Util": f"{self.worker_util:.1f}",
            "Subtasks": str(self.subtasks),
            "Status": self.status.value,
            "Threads": str(self.threads),
            "Trial": str(self.trial),
            "Placement": self.placement,
            "Exit_Code": "" if self.exit_code is None else str(self.exit_code),
            "Elapsed_Sec": f"{self.elapsed_sec:.3f}",
            "Log": self.log,
        }


RESULT_COLUMNS = [
    "Solver",
    "Position",
    "Empties",
    "Result",
    "Time_Sec",
    "Total_Nodes",
    "NPS",
    "Worker_Util",
    "Subtasks",
    "Status",
]
RESULT_EXTRA_COLUMNS = ["Threads", "Trial", "Placement", "Exit_Code", "Elapsed_Sec", "Log"]


class AggregatedRow(FrozenRecord):
    """Scaling statistics for one (solver, thread count) cell."""

    threads: int = Field(alias="Threads")
    solver: str = Field(alias="Solver")
    valid_trials: int = Field(default=0, alias="Valid_Trials")
    avg_time: Optional[float] = Field(default=None, alias="Avg_Time")
    mean_nodes: Optional[float] = Field(default=None, alias="Mean_Nodes")
    mean_nps: Optional[float] = Field(default=None, alias="Mean_NPS")
    avg_speedup: Optional[float] = Field(default=None, alias="Avg_Speedup")
    avg_efficiency: Optional[float] = Field(default=None, alias="Avg_Efficiency")
    ideal_speedup: float = Field(alias="Ideal_Speedup")
    amdahl_speedup: float = Field(alias="Amdahl_Speedup")
    overhead: Optional[float] = Field(default=None, alias="Overhead")
    avg_worker_util: Optional[float] = Field(default=None, alias="Avg_Worker_Util")
    avg_subtasks: Optional[float] = Field(default=None, alias="Avg_Subtasks")
    avg_features: dict[str, float] = Field(default_factory=dict)

    @property
    def computable(self) -> bool:
        """True when a speedup could be derived for this cell."""
        return self.avg_speedup is not None

    def csv_row(self) -> dict[str, str]:
        """Return the row keyed by persisted column names."""
        return {
            "Threads": str(self.threads),
            "Solver": self.solver,
            "Avg_Time": format_stat(self.avg_time),
            "Avg_Speedup": format_stat(self.avg_speedup),
            "Avg_Efficiency": format_stat(self.avg_efficiency, 2),
            "Ideal_Speedup": str(self.ideal_speedup),
            "Amdahl_Speedup": format_stat(self.amdahl_speedup),
        }

    def detail_row(self) -> dict[str, str]:
        """Search-work and solver-behaviour averages for scaling_detail.csv."""
        row = {
            "Threads": str(self.threads),
            "Solver": self.solver,
            "Valid_Trials": str(self.valid_trials),
            "Mean_Nodes": format_stat(self.mean_nodes, 1),
            "Mean_NPS": format_stat(self.mean_nps, 1),
            "Overhead": format_stat(self.overhead, 4),
            "Avg_Worker_Util": format_stat(self.avg_worker_util, 1),
            "Avg_Subtasks": format_stat(self.avg_subtasks, 1),
        }
        for key, column in FEATURE_COLUMNS.items():
            row[column] = format_stat(self.avg_features.get(key), 2)
        return row


SCALING_COLUMNS = [
    "Threads",
    "Solver",
    "Avg_Time",
    "Avg_Speedup",
    "Avg_Efficiency",
    "Ideal_Speedup",
    "Amdahl_Speedup",
]

# Feature-trigger counters of the parallel solvers, by extras key
FEATURE_COLUMNS = {
    "root_splits": "Avg_RootSplits",
    "mid_spawns": "Avg_MidSpawns",
    "dynamic_params": "Avg_DynamicParams",
    "early_spawns": "Avg_EarlySpawns",
    "local_heap_fill": "Avg_LocalHeapFill",
}

SCALING_DETAIL_COLUMNS = [
    "Threads",
    "Solver",
    "Valid_Trials",
    "Mean_Nodes",
    "Mean_NPS",
    "Overhead",
    "Avg_Worker_Util",
    "Avg_Subtasks",
    *FEATURE_COLUMNS.values(),
]


class RobustnessRow(FrozenRecord):
    """Run-time dispersion for one (solver, empties) group."""

    solver: str = Field(alias="Solver")
    empties: Optional[int] = Field(default=None, alias="Empties")
    count: int = Field(alias="Count")
    avg_time: Optional[float] = Field(default=None, alias="Avg_Time")
    stddev: Optional[float] = Field(default=None, alias="StdDev")
    cv: Optional[float] = Field(default=None, alias="CV")
    min_time: Optional[float] = Field(default=None, alias="Min")
    max_time: Optional[float] = Field(default=None, alias="Max")
    max_min_ratio: Optional[float] = Field(default=None, alias="Max_Min_Ratio")
    median_time: Optional[float] = Field(default=None, alias="Median")

    def csv_row(self) -> dict[str, str]:
        """Return the row keyed by persisted column names."""
        return {
            "Solver": self.solver,
            "Empties": "" if self.empties is None else str(self.empties),
            "Count": str(self.count),
            "Avg_Time": format_stat(self.avg_time),
            "StdDev": format_stat(self.stddev),
            "CV": format_stat(self.cv, 4),
            "Min": format_stat(self.min_time),
            "Max": format_stat(self.max_time),
            "Max_Min_Ratio": format_stat(self.max_min_ratio, 2),
            "Median": format_stat(self.median_time),
        }


ROBUSTNESS_COLUMNS = [
    "Solver",
    "Empties",
    "Count",
    "Avg_Time",
    "StdDev",
    "CV",
    "Min",
    "Max",
    "Max_Min_Ratio",
    "Median",
]


class BenchRun(BenchBaseModel):
    """Metadata for one invocation of the experiment driver."""

    id: str
    preset: str
    started_at: str
    finished_at: Optional[str] = None
    total_jobs: int = 0
    recorded_jobs: int = 0
    host: dict[str, JSONValue] = Field(default_factory=dict)
    capabilities: dict[str, JSONValue] = Field(default_factory=dict)
    run_dir: Optional[str] = None

    @field_validator("host", "capabilities", mode="before")
    @classmethod
    def _parse_json_object(cls, value: object) -> object:
        if value is None:
            return {}
        if isinstance(value, str):
            return _JSON_OBJECT_ADAPTER.validate_json(value)
        return value
