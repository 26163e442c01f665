"""Series statistics used by the analyzer: sigma outliers and least-squares trends."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Sequence

import numpy as np

from loadshaper.protocols import AnomalySeverity


@dataclass(frozen=True)
class Outlier:
    index: int
    value: float
    mean: float
    std: float
    severity: AnomalySeverity


@dataclass(frozen=True)
class LinearFit:
    slope: float
    intercept: float
    correlation: float  # Pearson r between index and value

    @property
    def confidence(self) -> float:
        return abs(self.correlation)


def find_outliers(
    values: Sequence[float],
    *,
    sigma: float = 2.0,
    high_sigma: float = 3.0,
    tail: Literal["upper", "lower"] = "upper",
) -> List[Outlier]:
    """
    Flag values beyond ``sigma`` population standard deviations of the mean.

    ``tail="upper"`` finds spikes above mean + sigma*std. ``tail="lower"``
    finds drops below mean - sigma*std, and only when that bound is positive.
    A zero-variance series flags nothing.
    """
    if len(values) == 0:
        return []
    arr = np.asarray(values, dtype=float)
    mean = float(arr.mean())
    std = float(arr.std())  # ddof=0, population
    if std == 0.0 or not np.isfinite(std):
        return []

    outliers: List[Outlier] = []
    if tail == "upper":
        bound, high = mean + sigma * std, mean + high_sigma * std
        hits = np.flatnonzero(arr > bound)
        for i in hits:
            severity = AnomalySeverity.HIGH if arr[i] > high else AnomalySeverity.MEDIUM
            outliers.append(Outlier(int(i), float(arr[i]), mean, std, severity))
    else:
        bound, high = mean - sigma * std, mean - high_sigma * std
        if bound <= 0:
            return []
        hits = np.flatnonzero(arr < bound)
        for i in hits:
            severity = AnomalySeverity.HIGH if arr[i] < high else AnomalySeverity.MEDIUM
            outliers.append(Outlier(int(i), float(arr[i]), mean, std, severity))
    return outliers


def linear_trend(values: Sequence[float]) -> LinearFit:
    """Ordinary least squares over (index, value) pairs."""
    n = len(values)
    if n < 2:
        return LinearFit(slope=0.0, intercept=float(values[0]) if n else 0.0, correlation=0.0)
    y = np.asarray(values, dtype=float)
    x = np.arange(n, dtype=float)
    dx = x - x.mean()
    dy = y - y.mean()
    sxx = float(dx @ dx)
    syy = float(dy @ dy)
    sxy = float(dx @ dy)
    slope = sxy / sxx
    intercept = float(y.mean()) - slope * float(x.mean())
    denom = np.sqrt(sxx * syy)
    correlation = sxy / denom if denom > 0 else 0.0
    return LinearFit(slope=slope, intercept=intercept, correlation=float(correlation))
