from .collector import MetricsCollector, ThroughputCounter, describe, percentile
from .resources import ResourceSampler

__all__ = ["MetricsCollector", "ResourceSampler", "ThroughputCounter", "describe", "percentile"]
