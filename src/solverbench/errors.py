# Copyright (c) Syntropy Systems
"""Exception types for solverbench.

Per-job failures (crashes, timeouts, unparsable logs, undefined statistics)
are values, not exceptions. Only the errors below ever propagate.
"""
from __future__ import annotations


class SolverBenchError(Exception):
    """Base class for solverbench errors."""


class ConfigError(SolverBenchError, ValueError):
    """The experiment configuration is missing or invalid."""


class StoreError(SolverBenchError):
    """The result store could not be written. Fatal to the whole run."""


class InvalidTransition(SolverBenchError):
    """A job was moved between states in an order the lifecycle forbids."""
