# Copyright (c) Syntropy Systems
"""Solver process runner with timeouts and orphan prevention."""
from __future__ import annotations

import contextlib
import ctypes
import logging
import os
import shlex
import signal
import subprocess
import sys
import time
from dataclasses import dataclass, field
from typing import IO, TYPE_CHECKING

from solverbench.config import ExecutionContext
from solverbench.matrix import placement_args
from solverbench.models.results import ExitStatus

if TYPE_CHECKING:
    from pathlib import Path

    from solverbench.matrix import JobDescriptor

logger = logging.getLogger(__name__)

# Exit statuses of coreutils timeout: 124 after SIGTERM, 128+9 after --kill-after
TIMEOUT_EXIT_CODES = frozenset({124, 128 + signal.SIGKILL})

# Extra seconds the in-process deadline waits beyond the timeout wrapper
BACKSTOP_SLACK = 2.0


class SpawnError(Exception):
    """The solver command could not be started."""


def setup_pdeathsig() -> None:
    """Set PDEATHSIG so child dies when parent dies.

    This prevents orphan solver processes when the harness crashes.
    Only works on Linux.
    """
    if sys.platform != "linux":
        return
    try:
        libc = ctypes.CDLL("libc.so.6", use_errno=True)
        pr_set_pdeathsig = 1
        libc.prctl(pr_set_pdeathsig, signal.SIGKILL)
    except (AttributeError, OSError):
        # Can't set PDEATHSIG, continue without it
        return


def _seconds(value: float) -> str:
    return f"{value:g}"


def solver_args(job: JobDescriptor) -> list[str]:
    """Positional arguments of the solver's command-line contract."""
    if job.sequential:
        return [str(job.position_file), _seconds(job.time_limit)]
    return [
        str(job.position_file),
        str(job.threads),
        _seconds(job.time_limit),
        str(job.eval_file),
        "-v",
        *job.extra_args,
    ]


def build_command(job: JobDescriptor, context: ExecutionContext) -> list[str]:
    """Build the full argv for a job.

    Layout: [queue] [placement] [timeout] solver args. Wrappers whose tool
    was not detected are left out.
    """
    caps = context.capabilities
    argv: list[str] = []

    if context.routes_through_queue:
        argv.extend([caps.tsp_path or "tsp", "-n", "-f"])

    if caps.has_resource_placement and not job.sequential:
        args = placement_args(job.placement)
        if args:
            argv.extend([caps.numactl_path or "numactl", *args])

    if caps.has_timeout_wrapper:
        argv.extend([
            caps.timeout_path or "timeout",
            f"--kill-after={_seconds(context.kill_grace)}",
            _seconds(job.time_limit + context.timeout_grace),
        ])

    argv.append(str(job.binary))
    argv.extend(solver_args(job))
    return argv


def deadline_for(job: JobDescriptor, context: ExecutionContext) -> float:
    """Seconds the runner waits before killing the process group itself."""
    deadline = job.time_limit + context.timeout_grace
    if context.capabilities.has_timeout_wrapper:
        deadline += context.kill_grace + BACKSTOP_SLACK
    return deadline


@dataclass(frozen=True)
class JobOutcome:
    """What happened when a job ran."""

    job: JobDescriptor
    exit_status: ExitStatus
    exit_code: int | None
    elapsed_sec: float
    log_text: str
    log_path: Path
    command: list[str] = field(default_factory=list)


class SolverProcess:
    """Runs one solver command with proper process management.

    Features:
    - Uses start_new_session=True for reliable process group
    - Sets PDEATHSIG on Linux to prevent orphans
    - Connects stdin to /dev/null so the solver can never prompt
    - Captures stdout/stderr to the job log
    - Provides graceful and forceful termination
    """

    command_argv: list[str]
    output_path: Path
    _process: subprocess.Popen[bytes] | None
    _exit_code: int | None
    _output_file: IO[bytes] | None

    def __init__(self, command_argv: list[str], output_path: Path) -> None:
        """Initialize a solver process.

        Args:
            command_argv: Command as list of argv tokens (no shell)
            output_path: Log file receiving combined stdout and stderr

        """
        self.command_argv = command_argv
        self.output_path = output_path
        self._process = None
        self._exit_code = None
        self._output_file = None

    def start(self) -> None:
        """Start the process.

        Raises SpawnError if the command cannot be spawned; the log file is
        created either way. Failing to create the log raises OSError.
        """
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

        # Exclusive create: a job log is never overwritten
        self._output_file = self.output_path.open("xb")

        try:
            self._process = subprocess.Popen(  # noqa: S603
                self.command_argv,
                stdin=subprocess.DEVNULL,
                stdout=self._output_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,  # Creates new process group
                preexec_fn=setup_pdeathsig if sys.platform == "linux" else None,  # noqa: PLW1509
            )
        except OSError as e:
            self._cleanup()
            raise SpawnError(str(e)) from e

    def wait(self, timeout: float | None = None) -> int | None:
        """Wait for the process to finish.

        Returns the exit code, or None if timeout elapsed first.
        """
        if self._process is None:
            return self._exit_code

        try:
            code = self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None
        self._exit_code = code
        self._cleanup()
        return code

    def kill(self, grace_period: float = 10.0) -> int:
        """Kill the process group.

        First sends SIGTERM to the process group, waits for grace_period,
        then sends SIGKILL if still alive.

        Args:
            grace_period: Seconds to wait after SIGTERM before SIGKILL

        Returns:
            Exit code (negative signal number if killed)

        """
        if self._process is None:
            return self._exit_code or 0

        # Already finished?
        if self._process.poll() is not None:
            exit_code = self._process.returncode or 0
            self._exit_code = exit_code
            self._cleanup()
            return exit_code

        try:
            pgid = os.getpgid(self._process.pid)
        except (OSError, ProcessLookupError):
            # Process already gone
            self._cleanup()
            return self._exit_code or -signal.SIGKILL

        with contextlib.suppress(OSError, ProcessLookupError):
            os.killpg(pgid, signal.SIGTERM)

        deadline = time.monotonic() + grace_period
        while time.monotonic() < deadline:
            if self._process.poll() is not None:
                exit_code = self._process.returncode or 0
                self._exit_code = exit_code
                self._cleanup()
                return exit_code
            time.sleep(0.1)

        # Still alive - SIGKILL
        with contextlib.suppress(OSError, ProcessLookupError):
            os.killpg(pgid, signal.SIGKILL)

        with contextlib.suppress(subprocess.TimeoutExpired):
            _ = self._process.wait(timeout=5.0)

        exit_code = self._process.returncode or -signal.SIGKILL
        self._exit_code = exit_code
        self._cleanup()
        return exit_code

    def _cleanup(self) -> None:
        if self._output_file:
            with contextlib.suppress(OSError):
                self._output_file.close()
            self._output_file = None


def classify_exit(
    exit_code: int | None,
    *,
    timed_out: bool,
    wrapped: bool,
) -> ExitStatus:
    """Map a terminated process to COMPLETED, CRASHED or TIMEOUT."""
    if timed_out:
        return ExitStatus.TIMEOUT
    if exit_code == 0:
        return ExitStatus.COMPLETED
    if wrapped and exit_code in TIMEOUT_EXIT_CODES:
        return ExitStatus.TIMEOUT
    return ExitStatus.CRASHED


def read_log(path: Path) -> str:
    """Read a job log verbatim, replacing undecodable bytes."""
    try:
        return path.read_bytes().decode("utf-8", errors="replace")
    except FileNotFoundError:
        return ""


class JobRunner:
    """Executes one measurement job at a time and reports its outcome.

    Crashes and timeouts are outcomes, not exceptions: run() only raises
    for programming errors such as a job without a log destination.
    """

    context: ExecutionContext

    def __init__(self, context: ExecutionContext) -> None:
        self.context = context

    def run(self, job: JobDescriptor) -> JobOutcome:
        """Run a job to completion or deadline and capture its log."""
        if job.log_path is None:
            msg = f"Job {job.label} has no log destination"
            raise ValueError(msg)

        command = build_command(job, self.context)
        wrapped = self.context.capabilities.has_timeout_wrapper
        logger.debug("Running %s: %s", job.label, shlex.join(command))

        process = SolverProcess(command, job.log_path)
        started = time.monotonic()
        try:
            process.start()
        except SpawnError as e:
            elapsed = time.monotonic() - started
            message = f"failed to start {command[0]}: {e}\n"
            with job.log_path.open("a", encoding="utf-8") as f:
                _ = f.write(message)
            logger.warning("Job %s could not start: %s", job.label, e)
            return JobOutcome(
                job=job,
                exit_status=ExitStatus.CRASHED,
                exit_code=None,
                elapsed_sec=elapsed,
                log_text=read_log(job.log_path),
                log_path=job.log_path,
                command=command,
            )

        timed_out = False
        exit_code = process.wait(timeout=deadline_for(job, self.context))
        if exit_code is None:
            timed_out = True
            logger.warning("Job %s exceeded its deadline, killing", job.label)
            exit_code = process.kill(grace_period=self.context.kill_grace)
        elapsed = time.monotonic() - started

        status = classify_exit(exit_code, timed_out=timed_out, wrapped=wrapped)
        if status is ExitStatus.CRASHED:
            logger.warning("Job %s crashed with exit code %s", job.label, exit_code)

        return JobOutcome(
            job=job,
            exit_status=status,
            exit_code=exit_code,
            elapsed_sec=elapsed,
            log_text=read_log(job.log_path),
            log_path=job.log_path,
            command=command,
        )
