from .selector import ScenarioSelector, select, validate_scenarios
from .shaper import TrafficShaper, resolve_strategy

__all__ = ["ScenarioSelector", "TrafficShaper", "resolve_strategy", "select", "validate_scenarios"]
