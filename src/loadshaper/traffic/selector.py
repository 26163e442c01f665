"""Weighted scenario selection by cumulative-weight sampling."""

from __future__ import annotations

import bisect
import math
import random
from itertools import accumulate
from typing import List, Optional, Sequence

from loadshaper.exceptions import ConfigurationError
from loadshaper.protocols import ScenarioLike


def validate_scenarios(scenarios: Sequence[ScenarioLike]) -> None:
    """Raise ConfigurationError for an empty set, bad weights or duplicate names."""
    if not scenarios:
        raise ConfigurationError("At least one scenario is required")
    seen = set()
    for scenario in scenarios:
        weight = getattr(scenario, "weight", None)
        if not isinstance(weight, (int, float)) or isinstance(weight, bool) or not math.isfinite(weight) or weight <= 0:
            raise ConfigurationError(f"Scenario '{scenario.name}' must have a positive weight, got {weight!r}")
        if scenario.name in seen:
            raise ConfigurationError(f"Duplicate scenario name '{scenario.name}'")
        seen.add(scenario.name)


class ScenarioSelector:
    """
    Picks scenarios with probability weight / total weight.

    The cumulative table is built once; each pick is a single uniform draw
    scaled to the total weight and located by binary search. A draw landing
    exactly on a boundary resolves to the earlier scenario.
    """

    def __init__(self, scenarios: Sequence[ScenarioLike], rng: Optional[random.Random] = None) -> None:
        validate_scenarios(scenarios)
        self.scenarios: List[ScenarioLike] = list(scenarios)
        self._cumulative: List[float] = list(accumulate(float(s.weight) for s in self.scenarios))
        self.total_weight = self._cumulative[-1]
        self._rng = rng or random.Random()

    def probability(self, name: str) -> float:
        for scenario in self.scenarios:
            if scenario.name == name:
                return scenario.weight / self.total_weight
        raise KeyError(name)

    def pick(self, u: float) -> ScenarioLike:
        """Select using a caller-supplied uniform draw in [0, 1)."""
        draw = u * self.total_weight
        index = bisect.bisect_left(self._cumulative, draw)
        return self.scenarios[min(index, len(self.scenarios) - 1)]

    def select(self) -> ScenarioLike:
        return self.pick(self._rng.random())


def select(scenarios: Sequence[ScenarioLike], random_uniform01: float) -> ScenarioLike:
    """One-shot selection; builds the table on every call."""
    return ScenarioSelector(scenarios).pick(random_uniform01)
