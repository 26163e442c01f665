"""
Core contracts and hot-path records for LoadShaper.

This module defines the closed enumerations used across the engine, the
scenario contract consumed from callers, and the immutable sample records
produced by workers and the resource sampler.

Architecture Overview:
- Scenarios are supplied by the caller and selected by weight per request
- Workers record one Sample per completed execution
- The monitor records ResourceSample and ThroughputSample once per tick
- Result values (snapshots, load-test results, analyses) live in results.py
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Protocol

# ============================================================================
# Enums and Constants
# ============================================================================


class Distribution(Enum):
    """Traffic shape used to space out requests."""

    CONSTANT = "constant"
    POISSON = "poisson"
    BURST = "burst"
    REALISTIC = "realistic"


class PhaseKind(Enum):
    """Phases of a load test, in execution order."""

    RAMP_UP = "ramp_up"
    SUSTAIN = "sustain"
    RAMP_DOWN = "ramp_down"


class RegressionSeverity(Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CRITICAL = "critical"


class AnomalySeverity(Enum):
    MEDIUM = "medium"
    HIGH = "high"


class TrendDirection(Enum):
    IMPROVING = "improving"
    DEGRADING = "degrading"
    STABLE = "stable"


class LifecycleEvent(Enum):
    """Events published to live observers during a run."""

    STARTED = "started"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_FAILED = "request_failed"
    METRICS_COLLECTED = "metrics_collected"
    COMPLETED = "completed"


# ============================================================================
# Scenario Contract
# ============================================================================


class ScenarioLike(Protocol):
    """Anything with a name, a relative weight and an execute callable."""

    name: str
    weight: float

    def execute(self) -> Any:
        """Run one unit of work against the system under test."""
        ...


@dataclass(frozen=True)
class Scenario:
    """
    A named, weighted workload.

    ``execute`` may be a coroutine function, which is awaited, or a plain
    callable, which runs in a worker thread. ``validate`` receives the
    outcome and returns False to re-classify a completed call as a failure.
    """

    name: str
    weight: float
    execute: Callable[[], Any]
    validate: Optional[Callable[[Any], bool]] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Scenario name cannot be empty")
        if not callable(self.execute):
            raise ValueError(f"Scenario '{self.name}' execute must be callable")


# ============================================================================
# Sample Records
# ============================================================================


@dataclass(frozen=True, slots=True)
class Sample:
    """One completed scenario execution."""

    timestamp: float  # epoch seconds at completion
    duration_ms: float
    success: bool
    scenario: str = ""
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ResourceSample:
    """Process resource usage taken on the monitor tick."""

    timestamp: float
    cpu_pct: float
    memory_bytes: int
    heap_used_bytes: int
    heap_total_bytes: int


@dataclass(frozen=True, slots=True)
class ThroughputSample:
    """Request and error counts for a single tick, normalised to per-second."""

    timestamp: float
    requests_per_second: float
    errors_per_second: float
