"""
Shared test configuration for LoadShaper.

Provides settings tuned for short runs, deterministic collaborators and
task cleanup so that no worker or monitor task outlives its test.
"""

# Standard library imports
import asyncio
import os
import random
from typing import AsyncGenerator, List

# Third-party imports
import pytest
import pytest_asyncio

# Local imports
from helpers.fakes import StaticResourceSampler
from loadshaper.config import LazySettings, MetricsConfig, MonitoringConfig, Settings
from loadshaper.protocols import Scenario

# Keep host environment overrides out of Settings() in tests
for _key in [k for k in os.environ if k.startswith("LOADSHAPER_")]:
    del os.environ[_key]

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")
    config.addinivalue_line("markers", "slow: Tests that take more than a few seconds")


# ============================================================================
# Core Test Fixtures
# ============================================================================


@pytest_asyncio.fixture(autouse=True)
async def cleanup_tasks() -> AsyncGenerator[None, None]:
    """Cancel any task a test leaves behind."""
    tasks_before = asyncio.all_tasks()
    yield
    new_tasks = asyncio.all_tasks() - tasks_before

    for task in new_tasks:
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                print(f"Unexpected error during task cleanup: {e}")


@pytest.fixture(autouse=True)
def reset_lazy_settings():
    """Each test sees the global settings proxy unloaded."""
    LazySettings.reset()
    yield
    LazySettings.reset()


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with a short monitor tick so sub-second runs still produce snapshots."""
    return Settings(
        metrics=MetricsConfig(tick_interval_seconds=0.1, snapshot_window_ms=1000.0),
        monitoring=MonitoringConfig(log_level="WARNING"),
    )


@pytest.fixture
def resource_sampler() -> StaticResourceSampler:
    return StaticResourceSampler()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def ok_scenario() -> Scenario:
    async def execute():
        return {"status": 200}

    return Scenario(name="ok", weight=1, execute=execute)


@pytest.fixture
def mixed_scenarios() -> List[Scenario]:
    async def browse():
        return "page"

    async def checkout():
        return "receipt"

    return [
        Scenario(name="browse", weight=3, execute=browse),
        Scenario(name="checkout", weight=1, execute=checkout),
    ]
