"""
LoadShaper - Phased load-test orchestration and statistical performance analysis.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .analysis import PerformanceAnalyzer
from .config import LoadTestConfig, SLARequirements, Settings
from .engine import LoadTestOrchestrator
from .protocols import Distribution, Scenario

__all__ = [
    "__version__",
    "Distribution",
    "LoadTestConfig",
    "LoadTestOrchestrator",
    "PerformanceAnalyzer",
    "SLARequirements",
    "Scenario",
    "Settings",
]
