"""
Post-run statistical analysis of load-test results.

Turns a LoadTestResult (and optionally a baseline result) into regressions,
anomalies, trends, insights and an overall 0-100 score with a letter grade.
"""

from __future__ import annotations

import math
from typing import Dict, List, Optional

import structlog

from loadshaper.analysis.statistics import find_outliers, linear_trend
from loadshaper.config import AnalyzerConfig
from loadshaper.exceptions import AnalyzerInputError
from loadshaper.protocols import AnomalySeverity, RegressionSeverity, TrendDirection
from loadshaper.results import (
    AnalysisResult,
    Anomaly,
    Insight,
    LoadTestResult,
    PerformanceSnapshot,
    Regression,
    Trend,
)

logger = structlog.get_logger(__name__)

REGRESSION_PENALTY: Dict[RegressionSeverity, int] = {
    RegressionSeverity.CRITICAL: 25,
    RegressionSeverity.MAJOR: 15,
    RegressionSeverity.MODERATE: 10,
    RegressionSeverity.MINOR: 5,
}
ANOMALY_PENALTY: Dict[AnomalySeverity, int] = {
    AnomalySeverity.HIGH: 10,
    AnomalySeverity.MEDIUM: 5,
}
SLA_VIOLATION_PENALTY = 15
MAX_ERROR_PENALTY = 30.0
MAX_KEY_FINDINGS = 5
MS_PER_HOUR = 3_600_000.0

_REGRESSION_ADVICE = {
    "Average Response Time": "Profile the slowest scenarios and compare against the baseline build",
    "Throughput": "Check for new contention points such as locks, pools or rate limits",
    "Error Rate": "Investigate error patterns and implement proper error handling",
}


def relative_change(baseline: float, current: float) -> float:
    """(current - baseline) / baseline, with a zero baseline mapping to 1.0 when current grew."""
    if baseline == 0:
        return 1.0 if current > 0 else 0.0
    return (current - baseline) / baseline


def regression_severity(change: float, threshold: float) -> RegressionSeverity:
    ratio = change / threshold
    if ratio > 4:
        return RegressionSeverity.CRITICAL
    if ratio > 2:
        return RegressionSeverity.MAJOR
    if ratio > 1.5:
        return RegressionSeverity.MODERATE
    return RegressionSeverity.MINOR


def grade_for(score: float) -> str:
    if score >= 90:
        return "A"
    if score >= 80:
        return "B"
    if score >= 70:
        return "C"
    if score >= 60:
        return "D"
    return "F"


class PerformanceAnalyzer:
    def __init__(self, config: Optional[AnalyzerConfig] = None) -> None:
        self.config = config or AnalyzerConfig()

    def analyze(self, result: LoadTestResult, baseline: Optional[LoadTestResult] = None) -> AnalysisResult:
        caveats: List[str] = []
        regressions: List[Regression] = []
        if baseline is not None:
            regressions = self.detect_regressions(result, baseline, caveats)

        anomalies = self.detect_anomalies(result.time_series)
        if len(result.time_series) < self.config.min_anomaly_points:
            caveats.append(
                f"Anomaly detection skipped: {len(result.time_series)} snapshots "
                f"(need {self.config.min_anomaly_points})"
            )
        trends = self.analyze_trends(result.time_series, result.final_metrics.duration_ms)
        if len(result.time_series) < self.config.min_trend_points:
            caveats.append(
                f"Trend analysis skipped: {len(result.time_series)} snapshots (need {self.config.min_trend_points})"
            )
        insights = self.generate_insights(result)

        score = self.score(result, regressions, anomalies)
        grade = grade_for(score)

        analysis = AnalysisResult(
            run_id=result.run_id,
            baseline_run_id=baseline.run_id if baseline else None,
            overall_score=score,
            grade=grade,
            regressions=regressions,
            anomalies=anomalies,
            trends=trends,
            insights=insights,
            recommendations=self._recommendations(result, regressions, anomalies, insights),
            key_findings=self._key_findings(regressions, anomalies, trends, insights),
            primary_bottleneck=self._primary_bottleneck(result, insights),
            caveats=caveats,
        )
        logger.info(
            "Analysis complete",
            run_id=result.run_id,
            score=score,
            grade=grade,
            regressions=len(regressions),
            anomalies=len(anomalies),
            caveats=len(caveats),
        )
        return analysis

    # --- Regressions ---

    def detect_regressions(
        self, current: LoadTestResult, baseline: LoadTestResult, caveats: Optional[List[str]] = None
    ) -> List[Regression]:
        caveats = caveats if caveats is not None else []
        if baseline.config.name != current.config.name:
            caveats.append(f"Baseline '{baseline.config.name}' is a different test than '{current.config.name}'")

        cfg = self.config
        checks = (
            ("Average Response Time", "average_response_time", self._latency_regression, cfg.response_time_threshold),
            ("Throughput", "throughput", self._throughput_regression, cfg.throughput_threshold),
            ("Error Rate", "error_rate", self._error_rate_regression, cfg.error_rate_threshold_pp),
        )
        regressions: List[Regression] = []
        for metric, field, check, threshold in checks:
            try:
                base_value = self._metric_value(baseline, field, metric, "baseline")
                cur_value = self._metric_value(current, field, metric, "current")
                regression = check(metric, base_value, cur_value, threshold)
            except AnalyzerInputError as e:
                logger.warning("Regression check skipped", metric=e.metric, reason=e.reason)
                caveats.append(str(e))
                continue
            if regression is not None:
                regressions.append(regression)
        return regressions

    @staticmethod
    def _metric_value(result: LoadTestResult, field: str, metric: str, role: str) -> float:
        if result.final_metrics.total_requests == 0:
            raise AnalyzerInputError(metric, f"{role} run recorded no requests")
        value = getattr(result.final_metrics, field, None)
        if value is None or not math.isfinite(value) or value < 0:
            raise AnalyzerInputError(metric, f"{role} value is missing or invalid")
        return float(value)

    def _latency_regression(self, metric: str, base: float, cur: float, threshold: float) -> Optional[Regression]:
        change = relative_change(base, cur)
        if change <= threshold:
            return None
        return Regression(
            metric=metric,
            baseline=base,
            current=cur,
            change=change,
            threshold=threshold,
            severity=regression_severity(change, threshold),
        )

    def _throughput_regression(self, metric: str, base: float, cur: float, threshold: float) -> Optional[Regression]:
        if base == 0:
            raise AnalyzerInputError(metric, "baseline throughput is zero")
        change = relative_change(base, cur)
        if change >= -threshold:
            return None
        return Regression(
            metric=metric,
            baseline=base,
            current=cur,
            change=change,
            threshold=threshold,
            severity=regression_severity(abs(change), threshold),
        )

    def _error_rate_regression(self, metric: str, base: float, cur: float, threshold: float) -> Optional[Regression]:
        change = cur - base  # percentage points
        if change <= threshold:
            return None
        return Regression(
            metric=metric,
            baseline=base,
            current=cur,
            change=change,
            threshold=threshold,
            severity=regression_severity(change, threshold),
        )

    # --- Anomalies ---

    def detect_anomalies(self, series: List[PerformanceSnapshot]) -> List[Anomaly]:
        if len(series) < self.config.min_anomaly_points:
            return []
        cfg = self.config
        anomalies: List[Anomaly] = []

        specs = (
            ("Response Time", "average_response_time", "upper", "spike", "ms"),
            ("CPU Usage", "cpu_pct", "upper", "spike", "%"),
            ("Throughput", "throughput", "lower", "drop", " req/s"),
        )
        for metric, field, tail, kind, unit in specs:
            values = [float(getattr(s, field)) for s in series]
            for outlier in find_outliers(values, sigma=cfg.anomaly_sigma, high_sigma=cfg.high_anomaly_sigma, tail=tail):
                snapshot = series[outlier.index]
                anomalies.append(
                    Anomaly(
                        metric=metric,
                        kind=kind,
                        index=outlier.index,
                        timestamp=snapshot.timestamp,
                        value=outlier.value,
                        expected=outlier.mean,
                        severity=outlier.severity,
                        description=(
                            f"{metric} {kind} detected: {outlier.value:.2f}{unit} "
                            f"vs expected {outlier.mean:.2f}{unit}"
                        ),
                    )
                )
        return anomalies

    # --- Trends ---

    def analyze_trends(self, series: List[PerformanceSnapshot], duration_ms: float) -> List[Trend]:
        if len(series) < self.config.min_trend_points:
            return []
        return [
            self.trend("Response Time", [s.average_response_time for s in series], duration_ms, higher_is_worse=True),
            self.trend("Throughput", [s.throughput for s in series], duration_ms, higher_is_worse=False),
        ]

    def trend(self, metric: str, values: List[float], duration_ms: float, *, higher_is_worse: bool) -> Trend:
        fit = linear_trend(values)
        n = len(values)
        rate_per_hour = fit.slope * (MS_PER_HOUR / duration_ms) * n if duration_ms > 0 else 0.0

        if abs(fit.slope) < self.config.stable_slope:
            direction = TrendDirection.STABLE
        elif (fit.slope > 0) == higher_is_worse:
            direction = TrendDirection.DEGRADING
        else:
            direction = TrendDirection.IMPROVING

        return Trend(
            metric=metric,
            direction=direction,
            slope=fit.slope,
            rate_per_hour=rate_per_hour,
            confidence=fit.confidence,
            start_value=float(values[0]) if values else 0.0,
            end_value=float(values[-1]) if values else 0.0,
        )

    # --- Insights and scoring ---

    def generate_insights(self, result: LoadTestResult) -> List[Insight]:
        cfg = self.config
        m = result.final_metrics
        insights: List[Insight] = []
        if m.error_rate > cfg.high_error_rate_pct:
            insights.append(
                Insight(
                    category="reliability",
                    title="High Error Rate Detected",
                    description=f"Error rate of {m.error_rate:.2f}% exceeds the {cfg.high_error_rate_pct:g}% threshold",
                    impact="critical" if m.error_rate > cfg.critical_error_rate_pct else "high",
                    recommendation="Investigate error patterns and implement proper error handling",
                )
            )
        if m.average_response_time > 0 and m.p99_response_time > m.average_response_time * cfg.tail_latency_ratio:
            insights.append(
                Insight(
                    category="bottleneck",
                    title="High Response Time Variance",
                    description=(
                        f"P99 latency {m.p99_response_time:.1f}ms is more than {cfg.tail_latency_ratio:g}x "
                        f"the {m.average_response_time:.1f}ms average"
                    ),
                    impact="medium",
                    recommendation="Investigate system capacity and potential resource contention",
                )
            )
        if m.avg_cpu_pct > cfg.high_cpu_pct:
            insights.append(
                Insight(
                    category="scaling",
                    title="High CPU Utilization",
                    description=f"CPU usage at {m.avg_cpu_pct:.1f}% may limit system capacity",
                    impact="high",
                    recommendation="Consider CPU optimization or horizontal scaling",
                )
            )
        return insights

    def score(self, result: LoadTestResult, regressions: List[Regression], anomalies: List[Anomaly]) -> float:
        score = 100.0
        score -= len(result.sla_violations) * SLA_VIOLATION_PENALTY
        error_rate = result.final_metrics.error_rate
        if error_rate > 1:
            score -= min(error_rate * 5, MAX_ERROR_PENALTY)
        score -= sum(REGRESSION_PENALTY[r.severity] for r in regressions)
        score -= sum(ANOMALY_PENALTY[a.severity] for a in anomalies)
        return max(0.0, min(100.0, score))

    def _primary_bottleneck(self, result: LoadTestResult, insights: List[Insight]) -> Optional[str]:
        for insight in insights:
            if insight.impact == "critical":
                return insight.title
        m = result.final_metrics
        if m.avg_cpu_pct > self.config.high_cpu_pct:
            return "CPU Usage"
        if m.peak_memory_mb > self.config.high_memory_mb:
            return "Memory Usage"
        if m.error_rate > self.config.high_error_rate_pct:
            return "Error Rate"
        if m.p95_response_time > result.config.sla.max_response_time_p95:
            return "Response Time"
        return None

    def _key_findings(
        self,
        regressions: List[Regression],
        anomalies: List[Anomaly],
        trends: List[Trend],
        insights: List[Insight],
    ) -> List[str]:
        findings: List[str] = []
        for r in regressions:
            verb = "increased" if r.change > 0 else "decreased"
            if r.metric == "Error Rate":
                findings.append(f"{r.metric} {verb} by {abs(r.change):.1f} points ({r.severity.value})")
            else:
                findings.append(f"{r.metric} {verb} by {abs(r.change) * 100:.1f}% ({r.severity.value})")
        findings.extend(i.title for i in insights if i.impact in ("critical", "high"))
        high = [a for a in anomalies if a.severity is AnomalySeverity.HIGH]
        if high:
            findings.append(f"{len(high)} high-severity anomalies detected")
        for t in trends:
            if t.direction is TrendDirection.DEGRADING:
                findings.append(f"{t.metric} degrading at {abs(t.rate_per_hour):.2f}/hour (confidence {t.confidence:.2f})")
        return findings[:MAX_KEY_FINDINGS]

    def _recommendations(
        self,
        result: LoadTestResult,
        regressions: List[Regression],
        anomalies: List[Anomaly],
        insights: List[Insight],
    ) -> List[str]:
        recommendations: List[str] = list(result.recommendations)
        recommendations.extend(i.recommendation for i in insights)
        recommendations.extend(_REGRESSION_ADVICE[r.metric] for r in regressions)
        if any(a.metric == "CPU Usage" for a in anomalies):
            recommendations.append("Implement CPU monitoring and alerting")
        if any(a.metric == "Response Time" for a in anomalies):
            recommendations.append("Review application performance and database queries")
        return list(dict.fromkeys(recommendations))
