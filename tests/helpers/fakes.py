"""
Deterministic stand-ins for clocks, resource sampling and result construction.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from loadshaper.config import LoadTestConfig, SLARequirements
from loadshaper.protocols import ResourceSample
from loadshaper.results import FinalMetrics, LoadTestResult, PerformanceSnapshot


class FakeClock:
    """Manually advanced epoch clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticResourceSampler:
    """Reports fixed resource usage so SLA checks are independent of the host."""

    def __init__(self, cpu_pct: float = 5.0, memory_bytes: int = 64 * 1024 * 1024) -> None:
        self.cpu_pct = cpu_pct
        self.memory_bytes = memory_bytes
        self.calls = 0

    def sample(self, now: Optional[float] = None) -> ResourceSample:
        self.calls += 1
        return ResourceSample(
            timestamp=now or 0.0,
            cpu_pct=self.cpu_pct,
            memory_bytes=self.memory_bytes,
            heap_used_bytes=self.memory_bytes,
            heap_total_bytes=self.memory_bytes * 2,
        )


def snapshots(
    response_times: Optional[Sequence[float]] = None,
    throughputs: Optional[Sequence[float]] = None,
    cpu: Optional[Sequence[float]] = None,
    start: float = 1_700_000_000.0,
) -> List[PerformanceSnapshot]:
    """Build a one-second time series from whichever columns are given."""
    n = len(response_times or throughputs or cpu or [])
    series = []
    for i in range(n):
        series.append(
            PerformanceSnapshot(
                timestamp=start + i,
                window_ms=1000.0,
                average_response_time=response_times[i] if response_times else 100.0,
                throughput=throughputs[i] if throughputs else 50.0,
                cpu_pct=cpu[i] if cpu else 10.0,
            )
        )
    return series


def make_result(
    *,
    name: str = "checkout",
    average_response_time: float = 100.0,
    p95: float = 150.0,
    p99: float = 200.0,
    throughput: float = 50.0,
    error_rate: float = 0.0,
    total_requests: int = 1000,
    avg_cpu_pct: float = 20.0,
    peak_memory_mb: float = 128.0,
    duration_ms: float = 60_000.0,
    time_series: Optional[List[PerformanceSnapshot]] = None,
    sla_violations: Optional[List[str]] = None,
    recommendations: Optional[List[str]] = None,
) -> LoadTestResult:
    started = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
    failed = int(round(total_requests * error_rate / 100.0))
    return LoadTestResult(
        config=LoadTestConfig(name=name, total_duration=duration_ms / 1000.0, sla=SLARequirements()),
        started_at=started,
        finished_at=started + timedelta(milliseconds=duration_ms),
        final_metrics=FinalMetrics(
            total_requests=total_requests,
            successful_requests=total_requests - failed,
            failed_requests=failed,
            average_response_time=average_response_time,
            median_response_time=average_response_time,
            p95_response_time=p95,
            p99_response_time=p99,
            min_response_time=average_response_time / 2,
            max_response_time=p99,
            throughput=throughput,
            error_rate=error_rate,
            avg_cpu_pct=avg_cpu_pct,
            peak_cpu_pct=avg_cpu_pct,
            peak_memory_mb=peak_memory_mb,
            duration_ms=duration_ms,
        ),
        time_series=time_series or [],
        sla_violations=sla_violations or [],
        recommendations=recommendations or [],
        success=not sla_violations,
    )
