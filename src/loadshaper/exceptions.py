"""
Error taxonomy for LoadShaper.

Configuration errors are fatal and raised before any worker starts. Scenario
execution errors are folded into failed samples. Analyzer input errors skip
the affected comparison and become caveats on the analysis.
"""


class LoadShaperError(Exception):
    """Base exception for all LoadShaper errors."""

    pass


class ConfigurationError(LoadShaperError):
    """Raised when a test plan, scenario set or strategy is invalid."""

    pass


class ScenarioExecutionError(LoadShaperError):
    """Raised when a scenario's execute call throws or its validation rejects the outcome."""

    def __init__(self, scenario: str, message: str) -> None:
        super().__init__(f"{scenario}: {message}")
        self.scenario = scenario
        self.message = message


class AnalyzerInputError(LoadShaperError):
    """Raised when a baseline and current result cannot be compared for a metric."""

    def __init__(self, metric: str, reason: str) -> None:
        super().__init__(f"Cannot compare {metric}: {reason}")
        self.metric = metric
        self.reason = reason
