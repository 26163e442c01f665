"""SLA verdicts, bottleneck identification and tuning recommendations for a finished run."""

from __future__ import annotations

from typing import List

from loadshaper.config import SLARequirements
from loadshaper.results import FinalMetrics

CPU_SATURATION_PCT = 80.0
MEMORY_PRESSURE_RATIO = 0.8
TAIL_LATENCY_RATIO = 3.0

LATENCY_ADVICE = [
    "Consider implementing caching for frequently accessed data",
    "Optimize database queries and add appropriate indexes",
]
THROUGHPUT_ADVICE = [
    "Increase connection pool sizes",
    "Consider horizontal scaling of components",
    "Implement request batching where possible",
]
ERROR_ADVICE = [
    "Implement circuit breakers for external dependencies",
    "Add retry logic with exponential backoff",
    "Improve error handling and recovery mechanisms",
]
CPU_ADVICE = ["Profile CPU hot paths or add capacity before raising load further"]
MEMORY_ADVICE = [
    "Monitor for memory leaks in long-running processes",
    "Optimize object lifecycle management",
]


def check_sla(metrics: FinalMetrics, sla: SLARequirements) -> List[str]:
    violations: List[str] = []
    if metrics.p95_response_time > sla.max_response_time_p95:
        violations.append(
            f"P95 latency {metrics.p95_response_time:.1f}ms exceeds target {sla.max_response_time_p95:g}ms"
        )
    if metrics.p99_response_time > sla.max_response_time_p99:
        violations.append(
            f"P99 latency {metrics.p99_response_time:.1f}ms exceeds target {sla.max_response_time_p99:g}ms"
        )
    if metrics.error_rate > sla.max_error_rate_pct:
        violations.append(f"Error rate {metrics.error_rate:.2f}% exceeds target {sla.max_error_rate_pct:g}%")
    if sla.min_throughput > 0 and metrics.throughput < sla.min_throughput:
        violations.append(f"Throughput {metrics.throughput:.1f} req/s below target {sla.min_throughput:g} req/s")
    if metrics.avg_cpu_pct > sla.max_cpu_pct:
        violations.append(f"CPU usage {metrics.avg_cpu_pct:.1f}% exceeds target {sla.max_cpu_pct:g}%")
    if metrics.peak_memory_mb > sla.max_memory_mb:
        violations.append(f"Memory usage {metrics.peak_memory_mb:.1f}MB exceeds target {sla.max_memory_mb:g}MB")
    return violations


def identify_bottlenecks(metrics: FinalMetrics, sla: SLARequirements) -> List[str]:
    bottlenecks: List[str] = []
    if metrics.average_response_time > 0 and metrics.p99_response_time > metrics.average_response_time * TAIL_LATENCY_RATIO:
        ratio = metrics.p99_response_time / metrics.average_response_time
        bottlenecks.append(f"Tail latency: p99 is {ratio:.1f}x the average response time")
    if metrics.p95_response_time > sla.max_response_time_p95:
        bottlenecks.append("Response time: p95 latency above target")
    if metrics.error_rate > sla.max_error_rate_pct:
        bottlenecks.append(f"Errors: {metrics.failed_requests} of {metrics.total_requests} requests failed")
    if sla.min_throughput > 0 and metrics.throughput < sla.min_throughput:
        bottlenecks.append("Throughput: system did not sustain the required request rate")
    if metrics.peak_cpu_pct > CPU_SATURATION_PCT:
        bottlenecks.append(f"CPU saturation: peak {metrics.peak_cpu_pct:.1f}%")
    if metrics.peak_memory_mb > sla.max_memory_mb * MEMORY_PRESSURE_RATIO:
        bottlenecks.append(f"Memory pressure: peak {metrics.peak_memory_mb:.1f}MB")
    return bottlenecks


def recommend(metrics: FinalMetrics, sla: SLARequirements) -> List[str]:
    recommendations: List[str] = []
    if metrics.p95_response_time > sla.max_response_time_p95 or metrics.p99_response_time > sla.max_response_time_p99:
        recommendations.extend(LATENCY_ADVICE)
    if sla.min_throughput > 0 and metrics.throughput < sla.min_throughput:
        recommendations.extend(THROUGHPUT_ADVICE)
    if metrics.error_rate > sla.max_error_rate_pct:
        recommendations.extend(ERROR_ADVICE)
    if metrics.peak_cpu_pct > CPU_SATURATION_PCT:
        recommendations.extend(CPU_ADVICE)
    if metrics.peak_memory_mb > sla.max_memory_mb * MEMORY_PRESSURE_RATIO:
        recommendations.extend(MEMORY_ADVICE)
    return recommendations
