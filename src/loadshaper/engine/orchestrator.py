"""
Top-level load-test orchestration.

The orchestrator validates the plan and scenario set, walks the phase steps
through a WorkerPool, samples resources and throughput on a fixed tick, and
produces a LoadTestResult with SLA verdicts once all phases finish or a stop
is requested.
"""

from __future__ import annotations

import asyncio
import contextlib
import random
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Mapping, Optional, Sequence
from uuid import uuid4

import structlog

from loadshaper.config import LoadTestConfig, Settings, load_test_config
from loadshaper.engine.scheduler import PhaseScheduler
from loadshaper.engine.sla import check_sla, identify_bottlenecks, recommend
from loadshaper.engine.workers import WorkerPool
from loadshaper.metrics import MetricsCollector, ResourceSampler, ThroughputCounter
from loadshaper.observability import EventBus, MetricsManager, Subscription, increment
from loadshaper.protocols import LifecycleEvent, ScenarioLike
from loadshaper.results import LoadTestResult, PerformanceSnapshot
from loadshaper.traffic import ScenarioSelector, TrafficShaper, resolve_strategy


class LoadTestOrchestrator:
    """
    Runs a single load test.

    Configuration problems (bad plan, empty scenario set, non-positive weights,
    unknown distribution) raise ConfigurationError from the constructor, before
    any worker is started.
    """

    def __init__(
        self,
        config: LoadTestConfig | Mapping[str, Any],
        scenarios: Sequence[ScenarioLike],
        *,
        settings: Optional[Settings] = None,
        events: Optional[EventBus] = None,
        rng: Optional[random.Random] = None,
        resource_sampler: Optional[ResourceSampler] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config if isinstance(config, LoadTestConfig) else load_test_config(config)
        self.settings = settings or Settings()
        self.distribution = resolve_strategy(self.config.distribution)
        rng = rng or random.Random()
        self.selector = ScenarioSelector(scenarios, rng=rng)
        self.shaper = TrafficShaper(self.settings.traffic, rng=rng)
        self.scheduler = PhaseScheduler(self.config)
        self.events = events or EventBus()
        self.collector = MetricsCollector(self.settings.metrics.history_capacity, clock=clock)
        self.metrics_manager = MetricsManager(self.settings.monitoring)
        self._resource_sampler = resource_sampler
        self._clock = clock
        self._stop_event = asyncio.Event()
        self._time_series: Deque[PerformanceSnapshot] = deque(maxlen=self.settings.metrics.history_capacity)
        self._counter: Optional[ThroughputCounter] = None
        self._running = False
        self.logger = structlog.get_logger(self.__class__.__name__)

    def subscribe(self, event: LifecycleEvent | str, callback: Callable[[LifecycleEvent, Dict[str, Any]], None]) -> Subscription:
        return self.events.subscribe(event, callback)

    def unsubscribe(self, handle: Subscription) -> bool:
        return self.events.unsubscribe(handle)

    def stop(self) -> None:
        """Ask every worker to stop before its next iteration. Must be called on the event loop thread."""
        if not self._stop_event.is_set():
            self.logger.info("Stop requested", test=self.config.name)
        self._stop_event.set()

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self) -> LoadTestResult:
        if self._running:
            raise RuntimeError("Load test is already running")
        self._running = True
        self._stop_event.clear()
        run_id = uuid4().hex
        structlog.contextvars.bind_contextvars(run_id=run_id)
        try:
            return await self._run(run_id)
        finally:
            structlog.contextvars.unbind_contextvars("run_id")
            self._running = False

    async def _run(self, run_id: str) -> LoadTestResult:
        cfg = self.config
        self.collector.clear()
        self._time_series.clear()
        if self._resource_sampler is None:
            self._resource_sampler = ResourceSampler()
        self._counter = ThroughputCounter(clock=self._clock)
        self.shaper.reset(self._clock())
        self.metrics_manager.start()

        pool = WorkerPool(
            selector=self.selector,
            shaper=self.shaper,
            collector=self.collector,
            counter=self._counter,
            distribution=self.distribution,
            events=self.events,
            stop_event=self._stop_event,
            clock=self._clock,
        )

        started_at = datetime.now(timezone.utc)
        self.logger.info(
            "Load test started",
            test=cfg.name,
            concurrency=cfg.concurrency,
            target_rate=cfg.target_rate,
            distribution=self.distribution.value,
            budget_seconds=cfg.wall_clock_budget,
        )
        self.events.emit(
            LifecycleEvent.STARTED,
            {"run_id": run_id, "name": cfg.name, "config": cfg, "started_at": started_at},
        )

        monitor = asyncio.create_task(self._monitor_loop())
        try:
            for step in self.scheduler.steps():
                if self._stop_event.is_set():
                    break
                issued = await pool.run_step(step)
                self.logger.debug("Phase step complete", phase=step.phase.value, step=step.index, requests=issued)
        finally:
            monitor.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await monitor
            # Snapshots cover whole ticks; a trailing partial tick only counts toward the summary.
            if not self._time_series or self._counter.seconds_since_roll() >= self.settings.metrics.tick_interval_seconds:
                self._collect_tick()

        finished_at = datetime.now(timezone.utc)
        final = self.collector.get_summary(started_at, finished_at)
        violations = check_sla(final, cfg.sla)
        if violations:
            increment("sla_violations_total", len(violations))

        result = LoadTestResult(
            run_id=run_id,
            config=cfg,
            started_at=started_at,
            finished_at=finished_at,
            final_metrics=final,
            time_series=list(self._time_series),
            sla_violations=violations,
            bottlenecks=identify_bottlenecks(final, cfg.sla),
            recommendations=recommend(final, cfg.sla),
            success=not violations,
            stopped_early=self._stop_event.is_set(),
        )

        self.logger.info(
            "Load test completed",
            test=cfg.name,
            requests=final.total_requests,
            error_rate=round(final.error_rate, 3),
            p95_ms=round(final.p95_response_time, 3),
            throughput=round(final.throughput, 3),
            sla_violations=len(violations),
            success=result.success,
        )
        self.events.emit(LifecycleEvent.COMPLETED, {"run_id": run_id, "result": result})
        return result

    async def _monitor_loop(self) -> None:
        interval = self.settings.metrics.tick_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self._collect_tick()

    def _collect_tick(self) -> PerformanceSnapshot:
        assert self._counter is not None and self._resource_sampler is not None
        now = self._clock()
        self.collector.record_throughput(self._counter.roll(now))
        resource = self._resource_sampler.sample(now)
        self.collector.record_resource(resource)
        self.metrics_manager.update_resource_metrics(resource.cpu_pct, resource.memory_bytes)

        snapshot = self.collector.get_snapshot(self.settings.metrics.snapshot_window_ms, now=now)
        self._time_series.append(snapshot)
        self.events.emit(LifecycleEvent.METRICS_COLLECTED, {"snapshot": snapshot})
        return snapshot


async def run_load_test(
    config: LoadTestConfig | Mapping[str, Any],
    scenarios: Sequence[ScenarioLike],
    **kwargs: Any,
) -> LoadTestResult:
    """Convenience wrapper: build an orchestrator and run it once."""
    return await LoadTestOrchestrator(config, scenarios, **kwargs).run()
