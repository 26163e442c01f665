"""
Structured result values produced by the orchestrator and the analyzer.

All models are frozen; a result is built once and never mutated. They round-trip
through JSON with ``model_dump_json`` / ``model_validate_json`` so a reporting
layer or a later ``analyze`` call can consume them.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from loadshaper.config import LoadTestConfig
from loadshaper.protocols import AnomalySeverity, RegressionSeverity, TrendDirection


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class PerformanceSnapshot(_Frozen):
    """Point-in-time view over a trailing window of samples. Latencies in ms."""

    timestamp: float
    window_ms: float
    sample_count: int = 0
    current_response_time: float = 0.0
    average_response_time: float = 0.0
    median_response_time: float = 0.0
    p95_response_time: float = 0.0
    p99_response_time: float = 0.0
    min_response_time: float = 0.0
    max_response_time: float = 0.0
    throughput: float = 0.0
    error_rate: float = 0.0
    cpu_pct: float = 0.0
    memory_bytes: int = 0
    heap_used_bytes: int = 0
    heap_total_bytes: int = 0


class FinalMetrics(_Frozen):
    """Whole-run aggregate computed at completion."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0
    median_response_time: float = 0.0
    p95_response_time: float = 0.0
    p99_response_time: float = 0.0
    min_response_time: float = 0.0
    max_response_time: float = 0.0
    throughput: float = 0.0
    error_rate: float = 0.0
    avg_cpu_pct: float = 0.0
    peak_cpu_pct: float = 0.0
    peak_memory_mb: float = 0.0
    duration_ms: float = 0.0

    @property
    def peak_memory_bytes(self) -> int:
        return int(self.peak_memory_mb * 1024 * 1024)


class LoadTestResult(_Frozen):
    run_id: str = Field(default_factory=lambda: uuid4().hex)
    config: LoadTestConfig
    started_at: datetime
    finished_at: datetime
    final_metrics: FinalMetrics
    time_series: List[PerformanceSnapshot] = Field(default_factory=list)
    sla_violations: List[str] = Field(default_factory=list)
    bottlenecks: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    success: bool = True
    stopped_early: bool = False


class Regression(_Frozen):
    metric: str
    baseline: float
    current: float
    change: float  # relative change, or percentage points for error rate
    threshold: float
    severity: RegressionSeverity


class Anomaly(_Frozen):
    metric: str
    kind: str  # "spike" or "drop"
    index: int
    timestamp: float
    value: float
    expected: float
    severity: AnomalySeverity
    description: str


class Trend(_Frozen):
    metric: str
    direction: TrendDirection
    slope: float
    rate_per_hour: float
    confidence: float
    start_value: float
    end_value: float


class Insight(_Frozen):
    category: str
    title: str
    description: str
    impact: str  # "medium", "high" or "critical"
    recommendation: str


class AnalysisResult(_Frozen):
    run_id: str
    baseline_run_id: Optional[str] = None
    overall_score: float = Field(ge=0, le=100)
    grade: str
    regressions: List[Regression] = Field(default_factory=list)
    anomalies: List[Anomaly] = Field(default_factory=list)
    trends: List[Trend] = Field(default_factory=list)
    insights: List[Insight] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    key_findings: List[str] = Field(default_factory=list)
    primary_bottleneck: Optional[str] = None
    caveats: List[str] = Field(default_factory=list)
