from .config import (
    AnalyzerConfig,
    LazySettings,
    LoadTestConfig,
    MetricsConfig,
    MonitoringConfig,
    Settings,
    SLARequirements,
    TrafficConfig,
    find_config_file,
    get_settings,
    load_test_config,
    settings,
)

__all__ = [
    "AnalyzerConfig",
    "LazySettings",
    "LoadTestConfig",
    "MetricsConfig",
    "MonitoringConfig",
    "Settings",
    "SLARequirements",
    "TrafficConfig",
    "find_config_file",
    "get_settings",
    "load_test_config",
    "settings",
]
