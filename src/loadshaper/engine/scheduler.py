"""Phase planning: ramp-up, sustain and ramp-down as discrete steps."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator, List

from loadshaper.config import LoadTestConfig
from loadshaper.protocols import PhaseKind


@dataclass(frozen=True)
class PhaseStep:
    """One contiguous block of work at fixed concurrency and rate."""

    phase: PhaseKind
    index: int  # k in 1..n for ramps, 1 for sustain
    steps: int
    concurrency: int
    rate: float  # requests/second across all workers
    duration: float  # seconds

    @property
    def per_worker_rate(self) -> float:
        return self.rate / self.concurrency


class PhaseScheduler:
    """
    Splits a test plan into PhaseSteps.

    Ramp step k of n runs ceil(C * k / n) workers at target_rate * k / n for
    phase_duration / n seconds. Ramp-down walks k from n down to 1. Ramps
    with zero duration are skipped.
    """

    def __init__(self, config: LoadTestConfig) -> None:
        self.config = config

    def _ramp(self, phase: PhaseKind, duration: float, ks: range) -> Iterator[PhaseStep]:
        n = self.config.ramp_steps
        for k in ks:
            yield PhaseStep(
                phase=phase,
                index=k,
                steps=n,
                concurrency=max(1, math.ceil(self.config.concurrency * k / n)),
                rate=self.config.target_rate * k / n,
                duration=duration / n,
            )

    def steps(self) -> Iterator[PhaseStep]:
        cfg = self.config
        n = cfg.ramp_steps
        if cfg.ramp_up_duration > 0:
            yield from self._ramp(PhaseKind.RAMP_UP, cfg.ramp_up_duration, range(1, n + 1))
        yield PhaseStep(
            phase=PhaseKind.SUSTAIN,
            index=1,
            steps=1,
            concurrency=cfg.concurrency,
            rate=cfg.target_rate,
            duration=cfg.total_duration,
        )
        if cfg.ramp_down_duration > 0:
            yield from self._ramp(PhaseKind.RAMP_DOWN, cfg.ramp_down_duration, range(n, 0, -1))

    def plan(self) -> List[PhaseStep]:
        return list(self.steps())

    def __iter__(self) -> Iterator[PhaseStep]:
        return self.steps()
