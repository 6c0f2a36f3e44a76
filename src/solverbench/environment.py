# Copyright (c) Syntropy Systems
"""Host snapshot stored with every run (CPU, memory, NUMA, tuning knobs)."""
from __future__ import annotations

import logging
import os
import platform
import socket
from pathlib import Path
from typing import cast

import psutil

logger = logging.getLogger(__name__)

NUMA_NODES_DIR = Path("/sys/devices/system/node")
GOVERNOR_FILE = Path("/sys/devices/system/cpu/cpu0/cpufreq/scaling_governor")
NUMA_BALANCING_FILE = Path("/proc/sys/kernel/numa_balancing")


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text().strip()
    except OSError:
        return None


def count_numa_nodes(nodes_dir: Path = NUMA_NODES_DIR) -> int | None:
    """Number of NUMA nodes, or None when the kernel does not expose them."""
    try:
        nodes = [
            p for p in nodes_dir.iterdir()
            if p.name.startswith("node") and p.name[4:].isdigit()
        ]
    except OSError:
        return None
    return len(nodes) or None


def get_memory_gb() -> tuple[float | None, float | None]:
    """Get (total, available) memory in GB."""
    try:
        mem = psutil.virtual_memory()
        total = cast("int", mem.total)
        available = cast("int", mem.available)
    except (AttributeError, OSError, ValueError):
        return None, None
    return round(total / (1024**3), 2), round(available / (1024**3), 2)


def get_load_average() -> list[float] | None:
    """1, 5 and 15 minute load averages."""
    try:
        return [round(v, 2) for v in os.getloadavg()]
    except (AttributeError, OSError):
        return None


def collect_host_info() -> dict[str, str | int | float | bool | list[float] | None]:
    """Take a snapshot of the host. Every probe tolerates absence."""
    total_gb, available_gb = get_memory_gb()
    balancing = _read_text(NUMA_BALANCING_FILE)

    info: dict[str, str | int | float | bool | list[float] | None] = {
        "hostname": socket.gethostname(),
        "platform": platform.platform(),
        "python": platform.python_version(),
        "cpu_count": psutil.cpu_count(logical=True),
        "physical_cores": psutil.cpu_count(logical=False),
        "memory_total_gb": total_gb,
        "memory_available_gb": available_gb,
        "numa_nodes": count_numa_nodes(),
        "cpu_governor": _read_text(GOVERNOR_FILE),
        "numa_balancing": None if balancing is None else balancing != "0",
        "load_average": get_load_average(),
    }
    if info["numa_balancing"]:
        logger.warning("Automatic NUMA balancing is enabled; placement results may drift")
    if info["cpu_governor"] not in (None, "performance"):
        logger.info("CPU governor is %s, not performance", info["cpu_governor"])
    return info
