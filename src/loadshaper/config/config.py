"""
Configuration management for LoadShaper using Pydantic.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Mapping, cast

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from loadshaper.exceptions import ConfigurationError
from loadshaper.protocols import Distribution

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Test Plan Models ---


class SLARequirements(BaseModel):
    """Thresholds a run is checked against. Latencies in ms, error rate in percent."""

    model_config = ConfigDict(frozen=True)

    max_response_time_p95: float = Field(default=1000.0, gt=0, description="Maximum p95 latency (ms).")
    max_response_time_p99: float = Field(default=2000.0, gt=0, description="Maximum p99 latency (ms).")
    max_error_rate_pct: float = Field(default=1.0, ge=0, description="Maximum error rate (0-100).")
    min_throughput: float = Field(default=0.0, ge=0, description="Minimum requests per second.")
    max_cpu_pct: float = Field(default=100.0, gt=0, description="Maximum average CPU utilisation.")
    max_memory_mb: float = Field(default=4096.0, gt=0, description="Maximum peak memory (MB).")


class LoadTestConfig(BaseModel):
    """A single load-test plan. Durations are in seconds."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="load-test", min_length=1)
    total_duration: float = Field(default=60.0, description="Sustained phase length in seconds.")
    concurrency: int = Field(default=10, description="Target number of concurrent workers.")
    ramp_up_duration: float = Field(default=0.0, ge=0, description="Ramp-up length in seconds.")
    ramp_down_duration: float = Field(default=0.0, ge=0, description="Ramp-down length in seconds.")
    target_rate: float = Field(default=10.0, description="Target requests per second across all workers.")
    distribution: Distribution = Field(default=Distribution.CONSTANT)
    sla: SLARequirements = Field(default_factory=SLARequirements)
    ramp_steps: int = Field(default=10, ge=1, description="Discrete steps per ramp phase.")

    @field_validator("total_duration", "target_rate")
    @classmethod
    def ensure_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("concurrency")
    @classmethod
    def ensure_positive_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("distribution", mode="before")
    @classmethod
    def normalise_distribution(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def wall_clock_budget(self) -> float:
        """Upper bound on the life of a run, in seconds."""
        return self.ramp_up_duration + self.total_duration + self.ramp_down_duration

    @classmethod
    def from_yaml(cls, path: Path) -> LoadTestConfig:
        path = Path(path)
        log.debug("Loading test plan from YAML file: %s", path)
        if not path.is_file():
            raise ConfigurationError(f"Test plan not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Test plan {path} is not valid YAML: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Test plan {path} must be a mapping")
        return load_test_config(data)


def load_test_config(data: Mapping[str, Any]) -> LoadTestConfig:
    """Validate a raw mapping into a LoadTestConfig, raising ConfigurationError on failure."""
    try:
        return LoadTestConfig.model_validate(dict(data))
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid load test configuration: {problems}") from e


# --- Engine Tuning Models ---


class TrafficConfig(BaseModel):
    """Tuning for the traffic shaper's burst and realistic strategies."""

    peak_hours: List[int] = Field(
        default_factory=lambda: [9, 10, 14, 15, 20, 21],
        description="UTC hours that receive the peak multiplier.",
    )
    peak_multiplier: float = Field(default=2.5, gt=0)
    off_peak_multiplier: float = Field(default=1.0, gt=0)
    jitter: float = Field(default=0.2, ge=0, lt=1, description="Uniform +/- fraction applied per request.")
    min_delay_ms: float = Field(default=10.0, ge=0, description="Floor on realistic inter-request delay.")
    burst_window_seconds: float = Field(default=1.0, gt=0)
    quiet_window_seconds: float = Field(default=4.0, ge=0)
    burst_multiplier: float = Field(default=5.0, gt=0)

    @field_validator("peak_hours")
    @classmethod
    def validate_hours(cls, v: List[int]) -> List[int]:
        for hour in v:
            if not 0 <= hour <= 23:
                raise ValueError(f"Peak hour {hour} must be between 0 and 23")
        return sorted(set(v))


class AnalyzerConfig(BaseModel):
    """Thresholds for regression, anomaly, trend and insight detection."""

    response_time_threshold: float = Field(default=0.10, gt=0, description="Relative increase in avg latency.")
    throughput_threshold: float = Field(default=0.05, gt=0, description="Relative decrease in throughput.")
    error_rate_threshold_pp: float = Field(default=2.0, gt=0, description="Increase in error rate, points.")
    anomaly_sigma: float = Field(default=2.0, gt=0)
    high_anomaly_sigma: float = Field(default=3.0, gt=0)
    stable_slope: float = Field(default=0.001, ge=0)
    min_trend_points: int = Field(default=5, ge=2)
    min_anomaly_points: int = Field(default=11, ge=2, description="Snapshots required before outlier detection.")
    high_error_rate_pct: float = Field(default=5.0, ge=0)
    critical_error_rate_pct: float = Field(default=10.0, ge=0)
    tail_latency_ratio: float = Field(default=3.0, gt=1)
    high_cpu_pct: float = Field(default=80.0, gt=0)
    high_memory_mb: float = Field(default=1000.0, gt=0)

    @model_validator(mode="after")
    def check_sigma_order(self) -> AnalyzerConfig:
        if self.high_anomaly_sigma < self.anomaly_sigma:
            raise ValueError("high_anomaly_sigma must not be below anomaly_sigma")
        return self


class MetricsConfig(BaseModel):
    history_capacity: int = Field(default=10_000, ge=1, description="Samples kept per history.")
    tick_interval_seconds: float = Field(default=1.0, gt=0)
    snapshot_window_ms: float = Field(default=10_000.0, gt=0)


class MonitoringConfig(BaseModel):
    """Configuration for logging and metrics export."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(default=None, description="Path to log file. If None, logs to console.")
    prometheus_port: int | None = Field(
        default=None,
        description="Port for Prometheus metrics exporter. None to disable.",
    )

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Settings Class ---


class Settings(BaseSettings):
    project_name: str = "LoadShaper"
    traffic: TrafficConfig = Field(default_factory=TrafficConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="LOADSHAPER_", env_nested_delimiter="__", case_sensitive=False)

    @classmethod
    def from_yaml(cls, path: Path) -> Settings:
        log.debug("Loading settings from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Settings file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data: Dict[str, Any] | None = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Settings file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        try:
            return cls.model_validate(yaml_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid settings in {path}: {e}") from e


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    for path in (current_dir / "loadshaper.yaml", current_dir / "loadshaper.yml"):
        if path.exists():
            return path
    return None


# --- Lazy Settings Loader ---


class LazySettings:
    """
    A proxy for the Settings object that delays loading and validation until
    an attribute is first accessed.
    """

    _settings: ClassVar[Settings | None] = None
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __getattr__(self, name: str) -> Any:
        return getattr(self.resolve(), name)

    def resolve(self) -> Settings:
        """Load the settings on first use and return the shared instance."""
        if self.__class__._settings is None:
            with self.__class__._lock:
                if self.__class__._settings is None:
                    self.__class__._settings = self._load_with_fallback()
        return self.__class__._settings

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._settings = None

    def _load_with_fallback(self) -> Settings:
        config_path = find_config_file()
        if config_path:
            try:
                log.info("Lazy loading settings from: %s", config_path)
                return Settings.from_yaml(config_path)
            except (ConfigurationError, FileNotFoundError, yaml.YAMLError) as e:
                log.error(
                    "Failed to load settings from '%s': %s. Falling back to defaults.",
                    config_path,
                    e,
                )
        return Settings()


settings: "Settings" = cast("Settings", LazySettings())


def get_settings() -> Settings:
    """Return the lazily loaded global settings (``loadshaper.yaml`` in the working directory, else defaults)."""
    return cast(LazySettings, settings).resolve()
