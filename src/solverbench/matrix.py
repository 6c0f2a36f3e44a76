# Copyright (c) Syntropy Systems
"""Experiment matrix enumeration and job descriptors."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from solverbench.config import ExperimentConfig, Preset

logger = logging.getLogger(__name__)

POSITION_NAME_PATTERN = re.compile(r"empties_(\d+)_id_(\d+)")
NO_PLACEMENT = "none"


@dataclass(frozen=True)
class JobDescriptor:
    """A single measurement: one solver, one position, one thread count, one trial."""

    solver: str
    binary: Path
    position: str
    position_file: Path
    threads: int
    time_limit: float
    eval_file: Path
    placement: str = NO_PLACEMENT
    trial: int = 1
    sequential: bool = False
    extra_args: tuple[str, ...] = ()
    log_path: Path | None = None

    @property
    def empties(self) -> int | None:
        """Empty-square count encoded in the position name, if any."""
        return parse_position_name(self.position)[0]

    @property
    def label(self) -> str:
        """Short identifier used in log file names and console output."""
        return (
            f"{self.solver}_{self.position}_{self.threads}t_"
            f"{self.placement}_trial{self.trial}"
        )

    def with_log(self, log_path: Path) -> JobDescriptor:
        """Return a copy of this job writing its log to log_path."""
        return replace(self, log_path=log_path)


@dataclass(frozen=True)
class ExperimentMatrix:
    """The enumerated jobs of one preset, fixed for the lifetime of a run."""

    preset: str
    jobs: tuple[JobDescriptor, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.jobs)

    def __iter__(self) -> Iterator[JobDescriptor]:
        return iter(self.jobs)


def parse_position_name(name: str) -> tuple[int | None, int | None]:
    """Extract (empties, instance id) from an empties_NN_id_NNN name."""
    match = POSITION_NAME_PATTERN.search(name)
    if match is None:
        return None, None
    return int(match.group(1)), int(match.group(2))


def placement_args(policy: str) -> list[str]:
    """Map a placement policy to numactl arguments (without the binary)."""
    if policy == NO_PLACEMENT:
        return []
    if policy == "interleave":
        return ["--interleave=all"]
    if policy == "local":
        return ["--localalloc"]
    if policy.startswith("node"):
        node = int(policy[len("node"):])
        return [f"--cpunodebind={node}", f"--membind={node}"]
    msg = f"Unknown placement policy: {policy}"
    raise ValueError(msg)


def _excluded(config: ExperimentConfig, max_empties: int | None, position: str) -> bool:
    if max_empties is None or config.unsupported_inputs != "exclude":
        return False
    empties, _ = parse_position_name(position)
    return empties is not None and empties > max_empties


def enumerate_jobs(config: ExperimentConfig, preset: Preset) -> list[JobDescriptor]:
    """Enumerate the jobs of a preset.

    Order is solver, position, threads, placement, trial. Sequential
    variants run once per position and trial, single-threaded and without
    a placement policy.
    """
    solver_names = preset.solvers or [s.name for s in config.solvers]
    positions = preset.position_names()
    placements = preset.placements or [config.placement]
    time_limit = preset.time_limit if preset.time_limit is not None else config.time_limit
    eval_file = config.resolve(config.eval_file)

    jobs: list[JobDescriptor] = []
    for solver_name in solver_names:
        variant = config.solver(solver_name)
        binary = config.resolve(variant.binary)

        if variant.sequential:
            thread_counts = [1]
            policies = [NO_PLACEMENT]
        else:
            thread_counts = preset.threads
            policies = placements

        for position in positions:
            if _excluded(config, variant.max_empties, position):
                logger.info(
                    "Skipping %s on %s: beyond max_empties=%s",
                    variant.name,
                    position,
                    variant.max_empties,
                )
                continue
            position_file = config.position_path(position)
            for threads in thread_counts:
                for policy in policies:
                    for trial in range(1, preset.trials + 1):
                        jobs.append(
                            JobDescriptor(
                                solver=variant.name,
                                binary=binary,
                                position=position,
                                position_file=position_file,
                                threads=threads,
                                time_limit=time_limit,
                                eval_file=eval_file,
                                placement=policy,
                                trial=trial,
                                sequential=variant.sequential,
                                extra_args=tuple(variant.extra_args),
                            )
                        )

    return jobs


def build_matrix(config: ExperimentConfig, preset_name: str) -> ExperimentMatrix:
    """Enumerate the named preset into an immutable matrix."""
    preset = config.preset(preset_name)
    return ExperimentMatrix(preset=preset_name, jobs=tuple(enumerate_jobs(config, preset)))
