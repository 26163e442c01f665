"""
Concurrent worker loops for a single phase step.

Each worker repeatedly selects a scenario, runs it, records a Sample and
waits out the shaped inter-request delay. Workers stop starting new work at
the step deadline or when the global stop event is set; a request already in
flight is allowed to finish and is recorded.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any, Callable, Optional

import structlog

from loadshaper.engine.scheduler import PhaseStep
from loadshaper.exceptions import ScenarioExecutionError
from loadshaper.metrics import MetricsCollector, ThroughputCounter
from loadshaper.observability import EventBus, gauge, histogram, increment
from loadshaper.protocols import Distribution, LifecycleEvent, Sample, ScenarioLike
from loadshaper.traffic import ScenarioSelector, TrafficShaper


class WorkerPool:
    def __init__(
        self,
        selector: ScenarioSelector,
        shaper: TrafficShaper,
        collector: MetricsCollector,
        counter: ThroughputCounter,
        distribution: Distribution,
        events: Optional[EventBus] = None,
        stop_event: Optional[asyncio.Event] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.selector = selector
        self.shaper = shaper
        self.collector = collector
        self.counter = counter
        self.distribution = distribution
        self.events = events or EventBus()
        self.stop_event = stop_event or asyncio.Event()
        self._clock = clock
        self.logger = structlog.get_logger(self.__class__.__name__)

    async def run_step(self, step: PhaseStep) -> int:
        """Run ``step.concurrency`` workers until the step deadline. Returns requests issued."""
        if self.stop_event.is_set():
            return 0
        loop = asyncio.get_running_loop()
        deadline = loop.time() + step.duration
        before = self.collector.total_requests

        self.logger.debug(
            "Starting phase step",
            phase=step.phase.value,
            step=step.index,
            concurrency=step.concurrency,
            rate=step.rate,
            duration=step.duration,
        )
        gauge("active_workers", step.concurrency)
        try:
            async with asyncio.TaskGroup() as tg:
                for i in range(step.concurrency):
                    tg.create_task(self._worker(f"{step.phase.value}-{step.index}-{i}", step, deadline))
        except* Exception as eg:
            for e in eg.exceptions:
                self.logger.error("Worker crashed", phase=step.phase.value, error=str(e))
            raise
        finally:
            gauge("active_workers", 0)

        return self.collector.total_requests - before

    async def _worker(self, worker_id: str, step: PhaseStep, deadline: float) -> None:
        loop = asyncio.get_running_loop()
        rate = step.per_worker_rate
        while not self.stop_event.is_set() and loop.time() < deadline:
            started = loop.time()
            delay_ms = self.shaper.next_delay(self.distribution, rate, self._clock())

            scenario = self.selector.select()
            sample = await self.execute(scenario)
            self._record(sample)

            wait = min(delay_ms / 1000.0 - (loop.time() - started), deadline - loop.time())
            if wait > 0:
                await self._sleep(wait)
        self.logger.debug("Worker finished", worker_id=worker_id)

    async def _sleep(self, seconds: float) -> None:
        """Sleep that returns early when the stop event is set."""
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def execute(self, scenario: ScenarioLike) -> Sample:
        """Run one scenario and turn its outcome (or exception) into a Sample."""
        start = time.perf_counter()
        duration_ms: Optional[float] = None
        try:
            outcome = await _call(scenario.execute)
            duration_ms = (time.perf_counter() - start) * 1000.0
            validate = getattr(scenario, "validate", None)
            if validate is not None and not validate(outcome):
                raise ScenarioExecutionError(scenario.name, "validation rejected outcome")
        except ScenarioExecutionError as e:
            return self._failed(scenario, start, duration_ms, e)
        except Exception as e:
            error = ScenarioExecutionError(scenario.name, f"{type(e).__name__}: {e}")
            return self._failed(scenario, start, duration_ms, error)

        return Sample(timestamp=self._clock(), duration_ms=duration_ms, success=True, scenario=scenario.name)

    def _failed(
        self, scenario: ScenarioLike, start: float, duration_ms: Optional[float], error: ScenarioExecutionError
    ) -> Sample:
        if duration_ms is None:
            duration_ms = (time.perf_counter() - start) * 1000.0
        self.logger.debug("Scenario failed", scenario=scenario.name, error=error.message)
        return Sample(
            timestamp=self._clock(),
            duration_ms=duration_ms,
            success=False,
            scenario=scenario.name,
            error=error.message,
        )

    def _record(self, sample: Sample) -> None:
        self.collector.record(sample)
        self.counter.record(sample.success)

        outcome = "success" if sample.success else "failure"
        increment("requests_total", labels={"scenario": sample.scenario, "outcome": outcome})
        histogram("request_duration_seconds", sample.duration_ms / 1000.0, labels={"scenario": sample.scenario})

        event = LifecycleEvent.REQUEST_COMPLETED if sample.success else LifecycleEvent.REQUEST_FAILED
        self.events.emit(
            event,
            {
                "scenario": sample.scenario,
                "duration_ms": sample.duration_ms,
                "timestamp": sample.timestamp,
                "error": sample.error,
            },
        )


async def _call(execute: Callable[[], Any]) -> Any:
    if inspect.iscoroutinefunction(execute):
        return await execute()
    result = await asyncio.to_thread(execute)
    if inspect.isawaitable(result):
        return await result
    return result
