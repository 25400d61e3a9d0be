"""Configuration schema models for the battery health assessment engine.

This module defines Pydantic models for configuration validation and runtime
settings of the test protocol, the measurement extractors, the constant-power
controller, the temperature normalizer and the composite scorer.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from batthealth.utils.enums import LoadProfile, PowerPreset


class LogLevel(str, Enum):
    """Valid logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class HealthTestConfig(BaseModel):
    """Configuration for the test protocol sequenced by the orchestrator."""

    min_start_soc_percent: int = Field(default=85, ge=1, le=100, description="Minimum SOC required to start")
    calibration_duration_s: float = Field(default=150.0, ge=0.0, le=3600.0, description="Rest baseline duration")
    pulse_duration_s: float = Field(default=10.0, gt=0.0, le=120.0, description="Load pulse duration")
    rest_duration_s: float = Field(default=25.0, ge=0.0, le=600.0, description="Rest after each pulse")
    pulse_soc_targets: list[int] = Field(default=[80, 60, 40, 20], description="SOC levels for pulse series")
    pulse_profiles: list[LoadProfile] = Field(
        default=[LoadProfile.LIGHT, LoadProfile.MEDIUM, LoadProfile.HEAVY],
        description="Load profiles of one pulse series, ascending intensity",
    )
    energy_window_checkpoints: list[int] = Field(
        default=[80], description="Pulse targets after which a constant-power energy window runs"
    )
    energy_window_span_percent: int = Field(default=30, ge=1, le=95, description="SOC span of an energy window")
    min_window_end_soc_percent: int = Field(default=5, ge=0, le=50, description="Lowest energy window end SOC")
    power_preset: PowerPreset = Field(default=PowerPreset.MEDIUM, description="C-rate preset of the CP window")
    nominal_voltage_v: float = Field(default=11.1, gt=0.0, le=100.0, description="Pack nominal voltage")

    @field_validator("pulse_soc_targets")
    @classmethod
    def validate_pulse_soc_targets(cls, v: list[int]) -> list[int]:
        """Validate SOC targets are non-empty, in range and strictly descending."""
        if not v:
            raise ValueError("At least one pulse SOC target is required")
        if any(t < 1 or t > 100 for t in v):
            raise ValueError("Pulse SOC targets must be between 1 and 100")
        if any(a <= b for a, b in zip(v, v[1:], strict=False)):
            raise ValueError("Pulse SOC targets must be strictly descending")
        return v

    @field_validator("pulse_profiles")
    @classmethod
    def validate_pulse_profiles(cls, v: list[LoadProfile]) -> list[LoadProfile]:
        """Validate at least one pulse profile is configured."""
        if not v:
            raise ValueError("At least one pulse profile is required")
        return v

    @model_validator(mode="after")
    def validate_checkpoints(self) -> "HealthTestConfig":
        """Validate energy window checkpoints are pulse targets."""
        unknown = set(self.energy_window_checkpoints) - set(self.pulse_soc_targets)
        if unknown:
            raise ValueError(f"Energy window checkpoints {sorted(unknown)} are not pulse SOC targets")
        return self


class DCIRConfig(BaseModel):
    """Configuration for pulse-based internal resistance extraction."""

    window_seconds: float = Field(default=3.0, gt=0.0, le=60.0, description="Post-pulse averaging window")
    baseline_seconds: float = Field(default=3.0, gt=0.0, le=60.0, description="Pre-pulse averaging window")
    min_current_step_ma: float = Field(default=50.0, gt=0.0, description="Smallest resolvable current step")
    max_pulse_duration_s: float = Field(default=30.0, gt=0.0, le=600.0, description="Longest accepted window")
    max_resistance_mohm: float = Field(default=10000.0, gt=0.0, description="Implausibility ceiling")
    min_window_samples: int = Field(default=2, ge=1, le=100, description="Samples needed on each side")


class OCVConfig(BaseModel):
    """Configuration for open-circuit voltage reconstruction and knee detection."""

    bin_size_percent: float = Field(default=2.0, gt=0.0, le=50.0, description="SOC bin width")
    min_dcir_points: int = Field(default=3, ge=1, le=1000, description="DCIR points required for a curve")
    min_bins_for_knee: int = Field(default=5, ge=3, le=100, description="Bins required to look for a knee")
    knee_slope_multiplier: float = Field(default=2.0, gt=1.0, le=50.0, description="Slope / median slope ratio")
    knee_floor_soc_percent: float = Field(default=20.0, ge=0.0, le=100.0, description="Knee SOC with no penalty")
    knee_penalty_span_percent: float = Field(default=30.0, gt=0.0, le=100.0, description="SOC span to full penalty")


class ControllerConfig(BaseModel):
    """Configuration for the constant-power PI controller."""

    kp: float = Field(default=0.10, ge=0.0, le=10.0, description="Proportional gain (duty per W)")
    ki: float = Field(default=0.02, ge=0.0, le=10.0, description="Integral gain (duty per W*s)")
    max_integral: float = Field(default=1.0, gt=0.0, le=1.0, description="Anti-windup bound")
    tick_interval_s: float = Field(default=1.0, gt=0.0, le=60.0, description="Control period")
    initial_duty: float = Field(default=0.5, ge=0.0, le=1.0, description="Duty cycle at start")
    stable_error: float = Field(default=0.10, gt=0.0, lt=1.0, description="Relative error to count as on target")
    unstable_error: float = Field(default=0.20, gt=0.0, lt=1.0, description="Relative error that drops stability")
    stable_hold_s: float = Field(default=30.0, ge=0.0, le=3600.0, description="Time on target before stable")
    saturation_error: float = Field(default=0.50, gt=0.0, le=10.0, description="Miss that makes saturation fatal")
    saturation_ticks: int = Field(default=3, ge=1, le=100, description="Consecutive saturated ticks to fail")
    quality_window: int = Field(default=30, ge=2, le=3600, description="Samples in the quality metric")
    history_size: int = Field(default=60, ge=2, le=3600, description="Retained power samples")

    @model_validator(mode="after")
    def validate_hysteresis(self) -> "ControllerConfig":
        """Validate the stable band is tighter than the unstable band."""
        if self.stable_error >= self.unstable_error:
            raise ValueError("stable_error must be smaller than unstable_error")
        return self


class NormalizerConfig(BaseModel):
    """Configuration for the self-learning temperature normalizer."""

    reference_temperature_c: float = Field(default=25.0, ge=-20.0, le=60.0, description="Reference temperature")
    soh_slope_per_degree: float = Field(default=0.15, description="Default SOH correction, %-points per C")
    dcir_slope_percent_per_degree: float = Field(default=-2.5, description="Default DCIR correction, % per C")
    min_temperature_c: float = Field(default=10.0, ge=-40.0, le=80.0, description="Lowest correctable temperature")
    max_temperature_c: float = Field(default=50.0, ge=-40.0, le=80.0, description="Highest correctable temperature")
    max_observations: int = Field(default=200, ge=1, le=100000, description="Observation log cap")
    min_observations: int = Field(default=8, ge=2, le=10000, description="Observations before a SOH re-fit")
    min_dcir_observations: int = Field(default=4, ge=2, le=10000, description="Observations before a DCIR re-fit")
    soh_slope_bound: float = Field(default=1.0, gt=0.0, le=10.0, description="SOH slope safety bound")
    dcir_slope_bound: float = Field(default=10.0, gt=0.0, le=100.0, description="DCIR slope safety bound")
    storage_dir: str | None = Field(default=None, description="Directory for learned coefficients")

    @model_validator(mode="after")
    def validate_range(self) -> "NormalizerConfig":
        """Validate the temperature range is ordered."""
        if self.min_temperature_c >= self.max_temperature_c:
            raise ValueError("min_temperature_c must be smaller than max_temperature_c")
        return self


class ScoringConfig(BaseModel):
    """Configuration for the DCIR and stability sub-scores of the composite score."""

    dcir50_baseline_mohm: float = Field(default=60.0, gt=0.0, description="Healthy DCIR at 50% SOC")
    dcir50_penalty_per_mohm: float = Field(default=0.5, gt=0.0, description="Score points per mOhm above")
    dcir20_baseline_mohm: float = Field(default=90.0, gt=0.0, description="Healthy DCIR at 20% SOC")
    dcir20_penalty_per_mohm: float = Field(default=1.0 / 3.0, gt=0.0, description="Score points per mOhm above")
    stability_zero_drops_per_hour: float = Field(default=5.0, gt=0.0, description="Drop rate giving zero")


class LoggingConfig(BaseModel):
    """Configuration for logging parameters."""

    level: LogLevel = Field(default=LogLevel.INFO, description="Logging level")
    file_path: str | None = Field(default=None, description="Optional log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=1000, description="Maximum log file size in MB")
    backup_count: int = Field(default=5, ge=0, le=100, description="Number of backup log files to keep")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s", description="Log message format"
    )
    enable_console: bool = Field(default=True, description="Enable console output")

    model_config = ConfigDict(use_enum_values=True)


class BatteryHealthConfig(BaseModel):
    """Main configuration model for the battery health assessment engine."""

    version: str = Field(default="0.1.0", description="Configuration version")
    test: HealthTestConfig = Field(default_factory=HealthTestConfig, description="Test protocol")
    dcir: DCIRConfig = Field(default_factory=DCIRConfig, description="DCIR extraction")
    ocv: OCVConfig = Field(default_factory=OCVConfig, description="OCV reconstruction")
    controller: ControllerConfig = Field(default_factory=ControllerConfig, description="Constant-power control")
    normalizer: NormalizerConfig = Field(default_factory=NormalizerConfig, description="Temperature normalizer")
    scoring: ScoringConfig = Field(default_factory=ScoringConfig, description="Composite score")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate version format."""
        if not v or not isinstance(v, str):
            raise ValueError("Version must be a non-empty string")
        # Basic semantic version validation
        parts = v.split(".")
        if len(parts) != 3:
            raise ValueError("Version must be in format X.Y.Z")
        try:
            for part in parts:
                int(part)
        except ValueError:
            raise ValueError("Version parts must be integers") from None
        return v

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",  # Don't allow extra fields
        json_schema_extra={
            "example": {
                "version": "0.1.0",
                "test": {
                    "min_start_soc_percent": 85,
                    "calibration_duration_s": 150.0,
                    "pulse_duration_s": 10.0,
                    "rest_duration_s": 25.0,
                    "pulse_soc_targets": [80, 60, 40, 20],
                    "energy_window_checkpoints": [80],
                    "energy_window_span_percent": 30,
                    "power_preset": "0.2C",
                },
                "controller": {"kp": 0.10, "ki": 0.02, "stable_hold_s": 30.0},
                "normalizer": {"max_observations": 200, "storage_dir": "~/.batthealth"},
                "logging": {"level": "INFO", "enable_console": True},
            }
        },
    )
