"""
Sample histories and rolling statistics for a load-test run.

The collector keeps three capacity-bounded histories (request samples,
resource samples, per-tick throughput) behind a single append lock. Readers
copy the relevant history under the lock and compute statistics on the copy,
so statistical work never blocks writers.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, Optional, Sequence, Tuple

import numpy as np
import structlog

from loadshaper.protocols import ResourceSample, Sample, ThroughputSample
from loadshaper.results import FinalMetrics, PerformanceSnapshot

logger = structlog.get_logger(__name__)

_BYTES_PER_MB = 1024 * 1024


def percentile(values: Sequence[float], p: float) -> float:
    """
    Linear-interpolated percentile.

    Uses the fractional index ``p/100 * (n - 1)`` over the ascending values and
    interpolates between its floor and ceiling neighbours. Empty input yields 0.
    """
    if len(values) == 0:
        return 0.0
    p = min(max(p, 0.0), 100.0)
    return float(np.percentile(np.asarray(values, dtype=float), p, method="linear"))


def describe(durations: Sequence[float]) -> Dict[str, float]:
    """Average, median, p95, p99, min and max of a latency series."""
    if len(durations) == 0:
        return {"average": 0.0, "median": 0.0, "p95": 0.0, "p99": 0.0, "min": 0.0, "max": 0.0}
    arr = np.asarray(durations, dtype=float)
    p50, p95, p99 = np.percentile(arr, [50, 95, 99], method="linear")
    return {
        "average": float(arr.mean()),
        "median": float(p50),
        "p95": float(p95),
        "p99": float(p99),
        "min": float(arr.min()),
        "max": float(arr.max()),
    }


class ThroughputCounter:
    """
    Per-tick request and error counters.

    Owned by the orchestrator and handed to workers by reference. ``roll``
    converts the counts since the previous roll into a ThroughputSample and
    resets them.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._requests = 0
        self._errors = 0
        self._last_roll = clock()

    def record(self, success: bool) -> None:
        with self._lock:
            self._requests += 1
            if not success:
                self._errors += 1

    def seconds_since_roll(self, now: Optional[float] = None) -> float:
        now = self._clock() if now is None else now
        with self._lock:
            return now - self._last_roll

    def roll(self, now: Optional[float] = None) -> ThroughputSample:
        now = self._clock() if now is None else now
        with self._lock:
            requests, errors = self._requests, self._errors
            elapsed = now - self._last_roll
            self._requests = 0
            self._errors = 0
            self._last_roll = now
        if elapsed <= 0:
            return ThroughputSample(timestamp=now, requests_per_second=0.0, errors_per_second=0.0)
        return ThroughputSample(
            timestamp=now,
            requests_per_second=requests / elapsed,
            errors_per_second=errors / elapsed,
        )


class MetricsCollector:
    """Thread-safe, bounded store of request, resource and throughput samples."""

    def __init__(self, capacity: int = 10_000, clock: Callable[[], float] = time.time) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._clock = clock
        self._lock = threading.Lock()
        self._samples: Deque[Sample] = deque(maxlen=capacity)
        self._resources: Deque[ResourceSample] = deque(maxlen=capacity)
        self._throughput: Deque[ThroughputSample] = deque(maxlen=capacity)
        self._total = 0
        self._failed = 0

    # --- Writers ---

    def record(self, sample: Sample) -> None:
        with self._lock:
            self._samples.append(sample)
            self._total += 1
            if not sample.success:
                self._failed += 1

    def record_resource(self, sample: ResourceSample) -> None:
        with self._lock:
            self._resources.append(sample)

    def record_throughput(self, sample: ThroughputSample) -> None:
        with self._lock:
            self._throughput.append(sample)

    # --- Readers ---

    @property
    def total_requests(self) -> int:
        return self._total

    @property
    def failed_requests(self) -> int:
        return self._failed

    def samples(self) -> Tuple[Sample, ...]:
        with self._lock:
            return tuple(self._samples)

    def resource_samples(self) -> Tuple[ResourceSample, ...]:
        with self._lock:
            return tuple(self._resources)

    def throughput_samples(self) -> Tuple[ThroughputSample, ...]:
        with self._lock:
            return tuple(self._throughput)

    def get_snapshot(self, window_ms: float, now: Optional[float] = None) -> PerformanceSnapshot:
        """
        Summarise samples completed within ``window_ms`` of ``now``.

        Latency statistics are windowed. Throughput, error rate and resource
        fields come from the latest tick and are not windowed. Passing an
        explicit ``now`` makes the result a pure function of the histories.
        """
        now = self._clock() if now is None else now
        cutoff = now - window_ms / 1000.0
        with self._lock:
            window = [s for s in self._samples if cutoff < s.timestamp <= now]
            resource = self._resources[-1] if self._resources else None
            throughput = self._throughput[-1] if self._throughput else None

        stats = describe([s.duration_ms for s in window])
        error_rate = 0.0
        if throughput is not None and throughput.requests_per_second > 0:
            error_rate = throughput.errors_per_second / throughput.requests_per_second * 100.0

        return PerformanceSnapshot(
            timestamp=now,
            window_ms=window_ms,
            sample_count=len(window),
            current_response_time=window[-1].duration_ms if window else 0.0,
            average_response_time=stats["average"],
            median_response_time=stats["median"],
            p95_response_time=stats["p95"],
            p99_response_time=stats["p99"],
            min_response_time=stats["min"],
            max_response_time=stats["max"],
            throughput=throughput.requests_per_second if throughput else 0.0,
            error_rate=error_rate,
            cpu_pct=resource.cpu_pct if resource else 0.0,
            memory_bytes=resource.memory_bytes if resource else 0,
            heap_used_bytes=resource.heap_used_bytes if resource else 0,
            heap_total_bytes=resource.heap_total_bytes if resource else 0,
        )

    def get_summary(self, started_at: datetime, finished_at: datetime) -> FinalMetrics:
        """Whole-run metrics. Counts cover every request; latency stats cover retained samples."""
        with self._lock:
            durations = [s.duration_ms for s in self._samples]
            resources = list(self._resources)
            total, failed = self._total, self._failed

        duration_s = max((finished_at - started_at).total_seconds(), 0.0)
        stats = describe(durations)
        cpu = np.asarray([r.cpu_pct for r in resources], dtype=float)

        return FinalMetrics(
            total_requests=total,
            successful_requests=total - failed,
            failed_requests=failed,
            average_response_time=stats["average"],
            median_response_time=stats["median"],
            p95_response_time=stats["p95"],
            p99_response_time=stats["p99"],
            min_response_time=stats["min"],
            max_response_time=stats["max"],
            throughput=total / duration_s if duration_s > 0 else 0.0,
            error_rate=failed / total * 100.0 if total else 0.0,
            avg_cpu_pct=float(cpu.mean()) if cpu.size else 0.0,
            peak_cpu_pct=float(cpu.max()) if cpu.size else 0.0,
            peak_memory_mb=max((r.memory_bytes for r in resources), default=0) / _BYTES_PER_MB,
            duration_ms=duration_s * 1000.0,
        )

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()
            self._resources.clear()
            self._throughput.clear()
            self._total = 0
            self._failed = 0
        logger.debug("Metrics histories cleared")
