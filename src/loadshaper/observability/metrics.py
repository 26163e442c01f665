"""
Defines and manages Prometheus metrics for LoadShaper.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

import psutil
import structlog
from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Gauge as _OrigGauge
from prometheus_client import Histogram as _OrigHistogram
from prometheus_client import start_http_server

if TYPE_CHECKING:
    from loadshaper.config.config import MonitoringConfig

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Re-importing this module (as the test suite does) must not raise duplicate
# registration errors, so existing collectors are reused by name.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        # Counters register under their base name without the _total suffix.
        lookup = name[: -len("_total")] if metric_cls is _OrigCounter and name.endswith("_total") else name
        existing = _PROM_REGISTRY._names_to_collectors.get(lookup)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            return _PROM_REGISTRY._names_to_collectors[lookup]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Gauge = _duplicate_safe_factory(_OrigGauge)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    return {
        "requests_total": Counter(
            "loadshaper_requests_total",
            "Total scenario executions by scenario and outcome",
            ["scenario", "outcome"],
        ),
        "request_duration_seconds": Histogram(
            "loadshaper_request_duration_seconds",
            "Scenario execution latency",
            ["scenario"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
        ),
        "active_workers": Gauge(
            "loadshaper_active_workers",
            "Number of workers running in the current phase step",
        ),
        "cpu_usage_percent": Gauge(
            "loadshaper_cpu_usage_percent",
            "CPU utilisation of the load generator process",
        ),
        "memory_usage_bytes": Gauge(
            "loadshaper_memory_usage_bytes",
            "Resident memory of the load generator process",
        ),
        "sla_violations_total": Counter(
            "loadshaper_sla_violations_total",
            "Total SLA violations detected at run completion",
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()


class MetricsManager:
    """Manages the Prometheus exporter and the system gauges."""

    def __init__(self, config: MonitoringConfig) -> None:
        self.config = config
        self._started = False

    def start(self) -> None:
        """Starts the Prometheus HTTP exporter if a port is configured."""
        if self.config.prometheus_port and not self._started:
            logger.info("Starting Prometheus metrics server", port=self.config.prometheus_port)
            start_http_server(self.config.prometheus_port)
            self._started = True

    def update_resource_metrics(self, cpu_pct: float, memory_bytes: int) -> None:
        METRICS["cpu_usage_percent"].set(cpu_pct)
        METRICS["memory_usage_bytes"].set(memory_bytes)

    def update_system_metrics(self) -> None:
        """Updates the gauges from a fresh psutil reading of this process."""
        try:
            proc = psutil.Process()
            self.update_resource_metrics(proc.cpu_percent(interval=None), proc.memory_info().rss)
        except psutil.Error as e:
            logger.warning("Error updating system metrics", error=str(e))

    def get_current_metrics(self) -> Dict[str, Any]:
        return {
            "active_workers": METRICS["active_workers"]._value.get(),
            "cpu_usage_percent": METRICS["cpu_usage_percent"]._value.get(),
            "memory_usage_bytes": METRICS["memory_usage_bytes"]._value.get(),
            "sla_violations_total": METRICS["sla_violations_total"]._value.get(),
        }
