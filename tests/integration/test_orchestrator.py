"""
End-to-end runs of the orchestrator with real timing and in-process scenarios.
"""

import asyncio
import time

import pytest

from loadshaper.analysis import PerformanceAnalyzer
from loadshaper.config import MetricsConfig, MonitoringConfig, Settings
from loadshaper.engine import LoadTestOrchestrator, run_load_test
from loadshaper.exceptions import ConfigurationError
from loadshaper.protocols import LifecycleEvent, Scenario
from loadshaper.results import LoadTestResult


def _orchestrator(config, scenarios, fast_settings, resource_sampler, rng=None, **kwargs):
    return LoadTestOrchestrator(
        config,
        scenarios,
        settings=fast_settings,
        resource_sampler=resource_sampler,
        rng=rng,
        **kwargs,
    )


@pytest.mark.integration
class TestOrchestratorRuns:
    @pytest.mark.asyncio
    async def test_constant_rate_single_worker(self, ok_scenario, fast_settings, resource_sampler):
        """One worker at 10 req/s for one second issues about ten requests."""
        config = {"name": "smoke", "total_duration": 1.0, "concurrency": 1, "target_rate": 10}
        result = await _orchestrator(config, [ok_scenario], fast_settings, resource_sampler).run()

        m = result.final_metrics
        assert 9 <= m.total_requests <= 11
        assert m.failed_requests == 0
        assert m.error_rate == 0.0
        assert result.sla_violations == []
        assert result.success is True
        assert result.stopped_early is False
        assert result.config.name == "smoke"
        assert len(result.time_series) >= 5
        assert resource_sampler.calls == len(result.time_series)
        assert result.time_series[-1].memory_bytes == resource_sampler.memory_bytes
        assert 900 <= m.duration_ms < 2000

    @pytest.mark.asyncio
    async def test_weighted_mix_is_respected(self, mixed_scenarios, fast_settings, resource_sampler, rng):
        config = {"total_duration": 1.0, "concurrency": 4, "target_rate": 200}
        orchestrator = _orchestrator(config, mixed_scenarios, fast_settings, resource_sampler, rng=rng)
        await orchestrator.run()

        names = [s.scenario for s in orchestrator.collector.samples()]
        assert len(names) > 100
        assert names.count("browse") / len(names) == pytest.approx(0.75, abs=0.1)

    @pytest.mark.asyncio
    async def test_lifecycle_events(self, ok_scenario, fast_settings, resource_sampler):
        orchestrator = _orchestrator(
            {"total_duration": 0.5, "concurrency": 2, "target_rate": 20}, [ok_scenario], fast_settings, resource_sampler
        )
        seen = []
        for event in LifecycleEvent:
            orchestrator.subscribe(event, lambda e, payload: seen.append(e))

        result = await orchestrator.run()

        assert seen[0] is LifecycleEvent.STARTED
        assert seen[-1] is LifecycleEvent.COMPLETED
        assert seen.count(LifecycleEvent.REQUEST_COMPLETED) == result.final_metrics.total_requests
        assert seen.count(LifecycleEvent.METRICS_COLLECTED) == len(result.time_series)
        assert LifecycleEvent.REQUEST_FAILED not in seen

    @pytest.mark.asyncio
    async def test_stop_ends_run_early(self, ok_scenario, fast_settings, resource_sampler):
        orchestrator = _orchestrator(
            {"total_duration": 10.0, "concurrency": 2, "target_rate": 10}, [ok_scenario], fast_settings, resource_sampler
        )
        asyncio.get_running_loop().call_later(0.3, orchestrator.stop)

        started = time.monotonic()
        result = await orchestrator.run()

        assert time.monotonic() - started < 2.0
        assert result.stopped_early is True
        assert result.final_metrics.total_requests > 0
        assert orchestrator.is_running is False

    @pytest.mark.asyncio
    async def test_run_after_stop_starts_fresh(self, ok_scenario, fast_settings, resource_sampler):
        orchestrator = _orchestrator(
            {"total_duration": 0.5, "concurrency": 1, "target_rate": 20}, [ok_scenario], fast_settings, resource_sampler
        )
        asyncio.get_running_loop().call_later(0.1, orchestrator.stop)
        first = await orchestrator.run()
        assert first.stopped_early is True

        second = await orchestrator.run()
        assert second.stopped_early is False
        assert 8 <= second.final_metrics.total_requests <= 12
        assert second.run_id != first.run_id

    @pytest.mark.asyncio
    async def test_time_series_throughput_is_steady(self, ok_scenario, resource_sampler):
        """Every snapshot covers a whole tick, so none reads far off the configured rate."""
        settings = Settings(
            metrics=MetricsConfig(tick_interval_seconds=0.25, snapshot_window_ms=1000.0),
            monitoring=MonitoringConfig(log_level="WARNING"),
        )
        config = {"total_duration": 2.1, "concurrency": 2, "target_rate": 40}
        result = await _orchestrator(config, [ok_scenario], settings, resource_sampler).run()

        throughputs = [s.throughput for s in result.time_series]
        assert len(throughputs) >= 6
        for value in throughputs:
            assert value == pytest.approx(40.0, rel=0.3)
        assert result.final_metrics.total_requests >= 80

    @pytest.mark.asyncio
    async def test_short_run_still_records_one_snapshot(self, ok_scenario, resource_sampler):
        settings = Settings(metrics=MetricsConfig(tick_interval_seconds=5.0))
        result = await _orchestrator(
            {"total_duration": 0.2, "concurrency": 1, "target_rate": 10}, [ok_scenario], settings, resource_sampler
        ).run()
        assert len(result.time_series) == 1
        assert result.time_series[0].sample_count == result.final_metrics.total_requests

    @pytest.mark.asyncio
    async def test_ramped_run(self, ok_scenario, fast_settings, resource_sampler):
        config = {
            "total_duration": 0.5,
            "ramp_up_duration": 0.5,
            "ramp_down_duration": 0.5,
            "ramp_steps": 5,
            "concurrency": 4,
            "target_rate": 40,
        }
        started = time.monotonic()
        result = await _orchestrator(config, [ok_scenario], fast_settings, resource_sampler).run()

        assert time.monotonic() - started >= 1.4
        assert result.final_metrics.total_requests >= 20
        assert result.success is True

    @pytest.mark.asyncio
    async def test_failing_scenario_violates_error_sla(self, fast_settings, resource_sampler):
        async def broken():
            raise ConnectionResetError("peer reset")

        result = await _orchestrator(
            {"total_duration": 0.5, "concurrency": 1, "target_rate": 20},
            [Scenario(name="broken", weight=1, execute=broken)],
            fast_settings,
            resource_sampler,
        ).run()

        assert result.final_metrics.error_rate == 100.0
        assert "Error rate 100.00% exceeds target 1%" in result.sla_violations
        assert result.success is False
        assert any(b.startswith("Errors:") for b in result.bottlenecks)
        assert result.recommendations

    @pytest.mark.asyncio
    async def test_concurrent_run_is_rejected(self, ok_scenario, fast_settings, resource_sampler):
        orchestrator = _orchestrator(
            {"total_duration": 5.0, "concurrency": 1, "target_rate": 10}, [ok_scenario], fast_settings, resource_sampler
        )
        first = asyncio.create_task(orchestrator.run())
        await asyncio.sleep(0.05)

        with pytest.raises(RuntimeError, match="already running"):
            await orchestrator.run()

        orchestrator.stop()
        result = await first
        assert result.stopped_early is True

    @pytest.mark.asyncio
    async def test_run_load_test_helper(self, ok_scenario, fast_settings, resource_sampler):
        result = await run_load_test(
            {"total_duration": 0.3, "concurrency": 1, "target_rate": 10, "distribution": "poisson"},
            [ok_scenario],
            settings=fast_settings,
            resource_sampler=resource_sampler,
        )
        assert result.config.distribution.value == "poisson"
        assert result.final_metrics.total_requests >= 1


@pytest.mark.integration
class TestOrchestratorValidation:
    def test_unknown_distribution(self, ok_scenario):
        with pytest.raises(ConfigurationError, match="distribution"):
            LoadTestOrchestrator({"distribution": "zipf"}, [ok_scenario])

    def test_empty_scenarios(self):
        with pytest.raises(ConfigurationError, match="At least one scenario"):
            LoadTestOrchestrator({}, [])


@pytest.mark.integration
class TestResultAnalysis:
    @pytest.mark.asyncio
    async def test_result_round_trips_and_analyzes(self, ok_scenario, fast_settings, resource_sampler):
        result = await _orchestrator(
            {"total_duration": 1.2, "concurrency": 1, "target_rate": 10}, [ok_scenario], fast_settings, resource_sampler
        ).run()

        restored = LoadTestResult.model_validate_json(result.model_dump_json())
        assert restored == result

        analysis = PerformanceAnalyzer(fast_settings.analyzer).analyze(restored, baseline=result)
        assert analysis.run_id == result.run_id
        assert analysis.regressions == []
        assert 0 <= analysis.overall_score <= 100
        assert len(analysis.trends) == 2
