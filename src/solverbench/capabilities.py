# Copyright (c) Syntropy Systems
"""Detection of optional acceleration tools."""
from __future__ import annotations

import logging
import shutil
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)

NUMACTL = "numactl"
TASK_SPOOLER = "tsp"
TIMEOUT = "timeout"


@dataclass(frozen=True)
class Capabilities:
    """Tools found on this host.

    A missing tool is a normal outcome: the runner simply omits the
    corresponding wrapper.
    """

    has_resource_placement: bool = False
    has_job_queue: bool = False
    has_timeout_wrapper: bool = False
    numactl_path: str | None = None
    tsp_path: str | None = None
    timeout_path: str | None = None

    def to_dict(self) -> dict[str, bool | str | None]:
        """Convert to a plain dictionary for run metadata."""
        return asdict(self)


def detect() -> Capabilities:
    """Probe the execution environment once.

    Returns a Capabilities value; never raises.
    """
    numactl_path = shutil.which(NUMACTL)
    tsp_path = shutil.which(TASK_SPOOLER)
    timeout_path = shutil.which(TIMEOUT)

    if numactl_path is None:
        logger.warning("numactl not found, jobs will run without placement control")
    if timeout_path is None:
        logger.warning("timeout not found, relying on in-process deadline only")
    if tsp_path is None:
        logger.debug("tsp not found, job queue routing unavailable")

    return Capabilities(
        has_resource_placement=numactl_path is not None,
        has_job_queue=tsp_path is not None,
        has_timeout_wrapper=timeout_path is not None,
        numactl_path=numactl_path,
        tsp_path=tsp_path,
        timeout_path=timeout_path,
    )
