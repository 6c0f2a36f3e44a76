# Copyright (c) Syntropy Systems
"""Configuration management for solverbench."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional, cast

import yaml
from pydantic import Field, ValidationError, field_validator, model_validator
from typing_extensions import Self

from solverbench.capabilities import Capabilities
from solverbench.errors import ConfigError
from solverbench.models.base import BenchBaseModel

BENCH_DIR_NAME = ".solverbench"
PLACEMENT_PATTERN = re.compile(r"^(none|interleave|local|node\d+)$")

DEFAULT_PRESETS: dict[str, dict[str, object]] = {
    "quick": {
        "positions": ["empties_12_id_000"],
        "threads": [1, 2, 4, 8],
        "trials": 1,
    },
    "standard": {
        "empties": [10, 12, 14, 16],
        "instances": 3,
        "threads": [1, 2, 4, 8, 16, 32, 64],
        "trials": 3,
    },
    "full": {
        "empties": [10, 12, 14, 16, 18, 20],
        "instances": 5,
        "threads": [1, 2, 4, 8, 16, 32, 64, 128, 192, 256, 384, 512, 768],
        "trials": 3,
    },
}


class SolverVariant(BenchBaseModel):
    """A solver binary under test."""

    name: str
    binary: str
    kind: Literal["parallel", "sequential"] = "parallel"
    max_empties: Optional[int] = None
    extra_args: list[str] = Field(default_factory=list)

    @property
    def sequential(self) -> bool:
        """True for the single-threaded baseline."""
        return self.kind == "sequential"


class Preset(BenchBaseModel):
    """A named subset of the experiment dimensions."""

    solvers: Optional[list[str]] = None
    positions: Optional[list[str]] = None
    empties: Optional[list[int]] = None
    instances: int = 1
    threads: list[int] = Field(default_factory=lambda: [1])
    trials: int = 1
    placements: Optional[list[str]] = None
    time_limit: Optional[float] = None

    @field_validator("threads")
    @classmethod
    def _check_threads(cls, value: list[int]) -> list[int]:
        if not value:
            msg = "threads must not be empty"
            raise ValueError(msg)
        if any(t < 1 for t in value):
            msg = "thread counts must be positive"
            raise ValueError(msg)
        return value

    @field_validator("trials", "instances")
    @classmethod
    def _check_positive(cls, value: int) -> int:
        if value < 1:
            msg = "must be at least 1"
            raise ValueError(msg)
        return value

    @field_validator("placements")
    @classmethod
    def _check_placements(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        if value is None:
            return None
        for policy in value:
            if not PLACEMENT_PATTERN.match(policy):
                msg = f"Unknown placement policy: {policy}"
                raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _check_positions(self) -> Self:
        if not self.positions and not self.empties:
            msg = "preset needs 'positions' or 'empties'"
            raise ValueError(msg)
        return self

    def position_names(self) -> list[str]:
        """Expand the preset into position names, explicit names first."""
        names = list(self.positions or [])
        for empties in self.empties or []:
            names.extend(
                f"empties_{empties:02d}_id_{instance:03d}"
                for instance in range(self.instances)
            )
        return names


class ExperimentConfig(BenchBaseModel):
    """Experiment configuration loaded from config.yaml."""

    eval_file: str = "eval/eval.dat"
    positions_dir: str = "test_positions"
    time_limit: float = 600.0
    timeout_grace: float = 60.0
    kill_grace: float = 10.0
    baseline_threads: int = 1
    parallel_fraction: float = 0.9
    placement: str = "interleave"
    use_job_queue: bool = False
    unsupported_inputs: Optional[Literal["exclude", "retain"]] = None
    solvers: list[SolverVariant] = Field(default_factory=list)
    presets: dict[str, Preset] = Field(default_factory=dict, validate_default=True)

    # Project root; relative paths above are resolved against it
    root: Path = Field(default_factory=Path.cwd, exclude=True)

    @field_validator("placement")
    @classmethod
    def _check_placement(cls, value: str) -> str:
        if not PLACEMENT_PATTERN.match(value):
            msg = f"Unknown placement policy: {value}"
            raise ValueError(msg)
        return value

    @field_validator("parallel_fraction")
    @classmethod
    def _check_fraction(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            msg = "parallel_fraction must be within [0, 1]"
            raise ValueError(msg)
        return value

    @field_validator("presets", mode="before")
    @classmethod
    def _default_presets(cls, value: object) -> object:
        if not value:
            return dict(DEFAULT_PRESETS)
        return value

    @model_validator(mode="after")
    def _check_consistency(self) -> Self:
        names = [s.name for s in self.solvers]
        if len(names) != len(set(names)):
            msg = "solver names must be unique"
            raise ValueError(msg)
        for preset_name, preset in self.presets.items():
            for solver in preset.solvers or []:
                if solver not in names:
                    msg = f"preset '{preset_name}' references unknown solver '{solver}'"
                    raise ValueError(msg)
        if self.unsupported_inputs is None and any(
            s.max_empties is not None for s in self.solvers
        ):
            msg = (
                "a solver declares max_empties; set unsupported_inputs to "
                "'exclude' or 'retain'"
            )
            raise ValueError(msg)
        return self

    def preset(self, name: str) -> Preset:
        """Look up a preset by name."""
        try:
            return self.presets[name]
        except KeyError:
            known = ", ".join(sorted(self.presets)) or "none"
            msg = f"Unknown preset '{name}' (available: {known})"
            raise ConfigError(msg) from None

    def solver(self, name: str) -> SolverVariant:
        """Look up a solver variant by name."""
        for variant in self.solvers:
            if variant.name == name:
                return variant
        msg = f"Unknown solver '{name}'"
        raise ConfigError(msg)

    def resolve(self, path: str) -> Path:
        """Resolve a configured path against the project root."""
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate
        return self.root / candidate

    def position_path(self, name: str) -> Path:
        """Path of a position file, adding the .pos suffix when missing."""
        filename = name if name.endswith(".pos") else f"{name}.pos"
        return self.resolve(self.positions_dir) / filename


@dataclass(frozen=True)
class ExecutionContext:
    """Everything the job runner needs besides the job itself."""

    capabilities: Capabilities = field(default_factory=Capabilities)
    timeout_grace: float = 60.0
    kill_grace: float = 10.0
    use_job_queue: bool = False

    @classmethod
    def from_config(
        cls,
        config: ExperimentConfig,
        capabilities: Capabilities,
        use_job_queue: bool | None = None,
    ) -> ExecutionContext:
        """Build a context from the loaded configuration."""
        return cls(
            capabilities=capabilities,
            timeout_grace=config.timeout_grace,
            kill_grace=config.kill_grace,
            use_job_queue=config.use_job_queue if use_job_queue is None else use_job_queue,
        )

    @property
    def routes_through_queue(self) -> bool:
        """True when jobs are submitted through the task spooler."""
        return self.use_job_queue and self.capabilities.has_job_queue


def find_bench_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .solverbench directory by walking up from start_path.

    Returns None if no .solverbench directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        bench_dir = current / BENCH_DIR_NAME
        if bench_dir.is_dir():
            return bench_dir
        current = current.parent

    # Check root
    bench_dir = current / BENCH_DIR_NAME
    if bench_dir.is_dir():
        return bench_dir

    return None


def require_bench_dir() -> Path:
    """Get the .solverbench directory or raise an error if not found."""
    bench_dir = find_bench_dir()
    if bench_dir is None:
        msg = "No .solverbench directory found. Run 'solverbench init' first."
        raise ConfigError(msg)
    return bench_dir


def get_db_path(bench_dir: Path | None = None) -> Path:
    """Get the path to the SQLite database."""
    if bench_dir is None:
        bench_dir = require_bench_dir()
    return bench_dir / "bench.db"


def load_config_file(config_path: Path, root: Path | None = None) -> ExperimentConfig:
    """Load and validate an experiment configuration file."""
    try:
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})
    except OSError as e:
        msg = f"Cannot read {config_path}: {e}"
        raise ConfigError(msg) from e
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in {config_path}: {e}"
        raise ConfigError(msg) from e

    if not isinstance(data, dict):
        msg = f"{config_path} must contain a mapping"
        raise ConfigError(msg)

    try:
        config = ExperimentConfig.model_validate(data)
    except ValidationError as e:
        msg = f"Invalid configuration in {config_path}:\n{e}"
        raise ConfigError(msg) from e

    if root is None:
        root = config_path.resolve().parent
    return config.model_copy(update={"root": root})


def load_config(bench_dir: Path | None = None) -> ExperimentConfig:
    """Load configuration from .solverbench/config.yaml.

    Paths in the file are resolved against the directory that contains
    .solverbench.
    """
    if bench_dir is None:
        bench_dir = require_bench_dir()

    config_path = bench_dir / "config.yaml"
    if not config_path.exists():
        msg = f"No config.yaml in {bench_dir}. Run 'solverbench init' first."
        raise ConfigError(msg)

    return load_config_file(config_path, root=bench_dir.resolve().parent)
