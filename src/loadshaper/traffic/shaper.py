"""
Inter-request delay computation for the supported traffic shapes.

All delays are returned in milliseconds. ``now`` is epoch seconds; the shaper
never reads a clock itself, so callers control time in tests.
"""

from __future__ import annotations

import math
import random
from datetime import datetime, timezone
from typing import Optional

import structlog

from loadshaper.config import TrafficConfig
from loadshaper.exceptions import ConfigurationError
from loadshaper.protocols import Distribution

logger = structlog.get_logger(__name__)


def resolve_strategy(strategy: Distribution | str) -> Distribution:
    """Map a strategy name onto the Distribution enum, raising ConfigurationError if unknown."""
    if isinstance(strategy, Distribution):
        return strategy
    try:
        return Distribution(str(strategy).strip().lower())
    except ValueError:
        valid = ", ".join(d.value for d in Distribution)
        raise ConfigurationError(f"Unknown distribution strategy '{strategy}' (expected one of: {valid})") from None


class TrafficShaper:
    """
    Computes the wait before a worker's next request.

    The burst strategy cycles relative to ``origin``, which defaults to the
    first ``now`` the shaper sees and is reset at the start of each run.
    """

    def __init__(
        self,
        config: Optional[TrafficConfig] = None,
        rng: Optional[random.Random] = None,
        origin: Optional[float] = None,
    ) -> None:
        self.config = config or TrafficConfig()
        self._rng = rng or random.Random()
        self._origin = origin
        self._peak_hours = frozenset(self.config.peak_hours)

    def reset(self, origin: float) -> None:
        self._origin = origin

    def next_delay(self, strategy: Distribution | str, target_rate: float, now: float) -> float:
        strategy = resolve_strategy(strategy)
        if target_rate <= 0:
            raise ConfigurationError(f"Target rate must be positive, got {target_rate}")

        if strategy is Distribution.CONSTANT:
            return 1000.0 / target_rate
        if strategy is Distribution.POISSON:
            return self._poisson_delay(target_rate)
        if strategy is Distribution.BURST:
            return self._burst_delay(target_rate, now)
        return self._realistic_delay(target_rate, now)

    def _poisson_delay(self, target_rate: float) -> float:
        lam = target_rate / 1000.0
        # 1 - U lies in (0, 1], so the log is always finite.
        return -math.log(1.0 - self._rng.random()) / lam

    def _burst_delay(self, target_rate: float, now: float) -> float:
        if self._origin is None:
            self._origin = now
        burst = self.config.burst_window_seconds
        cycle = burst + self.config.quiet_window_seconds
        interval_ms = 1000.0 / (target_rate * self.config.burst_multiplier)
        if self.config.quiet_window_seconds == 0:
            return interval_ms

        position = (now - self._origin) % cycle
        until_next_burst_ms = (cycle - position) * 1000.0
        if position >= burst:
            return until_next_burst_ms
        if position + interval_ms / 1000.0 >= burst:
            return until_next_burst_ms
        return interval_ms

    def peak_multiplier(self, now: float) -> float:
        hour = datetime.fromtimestamp(now, tz=timezone.utc).hour
        return self.config.peak_multiplier if hour in self._peak_hours else self.config.off_peak_multiplier

    def _realistic_delay(self, target_rate: float, now: float) -> float:
        jitter = self.config.jitter
        variation = self._rng.uniform(1.0 - jitter, 1.0 + jitter)
        effective_rate = target_rate * self.peak_multiplier(now) * variation
        return max(1000.0 / effective_rate, self.config.min_delay_ms)
