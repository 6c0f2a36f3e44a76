# Copyright (c) Syntropy Systems
"""Pydantic models for solverbench records."""

from .results import (
    AggregatedRow,
    BenchRun,
    ExitStatus,
    ResultRow,
    ResultStatus,
    RobustnessRow,
)

__all__ = [
    "AggregatedRow",
    "BenchRun",
    "ExitStatus",
    "ResultRow",
    "ResultStatus",
    "RobustnessRow",
]
