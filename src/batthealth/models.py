"""Immutable data models for the battery health assessment engine.

Readings flow in from the battery source, measurement points are produced by the
extractors, and a single ``HealthTestResult`` is produced per completed run. All
models are frozen Pydantic models so a recorded value can never change after
the fact.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from batthealth.utils.enums import ControlState, DegradationTrend, HealthTestState, PowerPreset
from batthealth.utils.types import DEFAULT_NOMINAL_VOLTAGE_V, MAX_SOC_PERCENT, MIN_SOC_PERCENT, W, mA


class Reading(BaseModel):
    """A single battery gauge sample.

    Current is signed: negative while discharging, positive while charging.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="Sample time")
    soc: int = Field(..., ge=MIN_SOC_PERCENT, le=MAX_SOC_PERCENT, description="State of charge in percent")
    is_charging: bool = Field(default=False, description="Whether the battery is charging")
    voltage_v: float = Field(..., ge=0.0, description="Terminal voltage in volts")
    current_ma: float = Field(..., description="Battery current in mA, negative while discharging")
    temperature_c: float = Field(default=25.0, ge=-50.0, le=120.0, description="Battery temperature in Celsius")

    @property
    def power_w(self) -> W:
        """Signed instantaneous power in watts."""
        return self.voltage_v * self.current_ma / 1000.0

    @property
    def discharge_power_w(self) -> W:
        """Magnitude of the instantaneous power in watts."""
        return abs(self.power_w)

    @property
    def discharge_current_ma(self) -> mA:
        """Current with the discharge direction positive."""
        return -self.current_ma


class BatterySnapshot(Reading):
    """A reading plus the static and power-source facts needed to start a test."""

    external_power: bool = Field(default=False, description="Whether an external power adapter is connected")
    design_capacity_mah: float | None = Field(default=None, gt=0.0, description="Design capacity in mAh")
    max_capacity_mah: float | None = Field(default=None, gt=0.0, description="Current full-charge capacity in mAh")
    nominal_voltage_v: float = Field(default=DEFAULT_NOMINAL_VOLTAGE_V, gt=0.0, description="Pack nominal voltage")

    def to_reading(self) -> Reading:
        """Strip the snapshot down to a plain reading."""
        return Reading(**self.model_dump(include=set(Reading.model_fields)))


class DCIRPoint(BaseModel):
    """Internal resistance estimated from one load pulse."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="Time of the pulse edge")
    soc: float = Field(..., ge=MIN_SOC_PERCENT, le=MAX_SOC_PERCENT, description="Mean SOC across the pulse window")
    resistance_mohm: float = Field(..., ge=0.0, description="Estimated DC internal resistance in mOhm")
    voltage_before_v: float = Field(..., description="Mean voltage before the pulse")
    voltage_after_v: float = Field(..., description="Mean voltage during the pulse")
    current_before_ma: float = Field(..., description="Mean current before the pulse")
    current_after_ma: float = Field(..., description="Mean current during the pulse")
    quality: float = Field(default=100.0, ge=0.0, le=100.0, description="Confidence in the estimate")


class OCVPoint(BaseModel):
    """Reconstructed open-circuit voltage of one SOC bin."""

    model_config = ConfigDict(frozen=True)

    soc_bin: float = Field(..., ge=0.0, le=100.0, description="Center of the SOC bin in percent")
    ocv_v: float = Field(..., gt=0.0, description="Mean reconstructed open-circuit voltage")
    sample_count: int = Field(default=1, ge=1, description="Readings averaged into the bin")


class Observation(BaseModel):
    """One completed test as seen by the temperature normalizer."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(..., description="When the test finished")
    temperature_c: float = Field(..., description="Average test temperature")
    soh_energy: float = Field(..., description="Raw SOH-by-energy in percent")
    dcir_at_50: float | None = Field(default=None, description="Raw DCIR at 50% SOC in mOhm")


class NormalizerCoefficients(BaseModel):
    """Learned temperature correction state."""

    model_config = ConfigDict(frozen=True)

    soh_slope_per_degree: float = Field(default=0.15, description="SOH change in %-points per Celsius")
    dcir_slope_percent_per_degree: float = Field(default=-2.5, description="DCIR change in percent per Celsius")
    min_temperature_c: float = Field(default=10.0, description="Lowest correctable temperature")
    max_temperature_c: float = Field(default=50.0, description="Highest correctable temperature")
    observation_count: int = Field(default=0, ge=0, description="Observations behind the last fit")
    updated_at: datetime | None = Field(default=None, description="Time of the last fit")

    def in_range(self, temperature_c: float) -> bool:
        """Whether ``temperature_c`` lies in the correctable range."""
        return self.min_temperature_c <= temperature_c <= self.max_temperature_c


class NormalizationResult(BaseModel):
    """Temperature-corrected measurements."""

    model_config = ConfigDict(frozen=True)

    normalized_soh: float = Field(..., ge=0.0, le=100.0)
    normalized_dcir: float | None = Field(default=None)
    quality: float = Field(..., ge=0.0, le=100.0)
    temperature_delta_c: float = Field(default=0.0)
    applied: bool = Field(default=True, description="False when the temperature was out of range")


class HealthComparison(BaseModel):
    """Change between two temperature-normalized tests."""

    model_config = ConfigDict(frozen=True)

    soh_change: float
    dcir_change: float | None = None
    trend: DegradationTrend
    recommendation: str


class ControllerState(BaseModel):
    """Snapshot of the constant-power controller."""

    model_config = ConfigDict(frozen=True)

    state: ControlState = Field(default=ControlState.IDLE)
    target_power_w: float = Field(default=0.0, ge=0.0)
    measured_power_w: float = Field(default=0.0, ge=0.0)
    duty_cycle: float = Field(default=0.0, ge=0.0, le=1.0)
    integral: float = Field(default=0.0, ge=-1.0, le=1.0)
    control_quality: float = Field(default=0.0, ge=0.0, le=100.0)

    @property
    def error_percent(self) -> float:
        """Relative power error in percent."""
        if self.target_power_w <= 0:
            return 0.0
        return abs(self.measured_power_w - self.target_power_w) / self.target_power_w * 100.0


class DCIRAnalysis(BaseModel):
    """Aggregate of all DCIR points of a run."""

    model_config = ConfigDict(frozen=True)

    dcir_at_50: float | None = None
    dcir_at_20: float | None = None
    trend_mohm_per_percent: float = 0.0
    degradation_score: float = Field(default=100.0, ge=0.0, le=100.0)
    point_count: int = 0
    average_quality: float = 0.0


class OCVAnalysis(BaseModel):
    """OCV curve shape summary."""

    model_config = ConfigDict(frozen=True)

    knee_soc: float | None = None
    knee_index: float = Field(default=100.0, ge=0.0, le=100.0)
    average_ocv_v: float | None = None
    voltage_gradient_mv_per_percent: float = 0.0
    early_degradation: bool = False


class EnergyAnalysis(BaseModel):
    """Energy delivered over constant-power windows."""

    model_config = ConfigDict(frozen=True)

    energy_wh: float = Field(default=0.0, ge=0.0)
    average_power_w: float = Field(default=0.0, ge=0.0)
    duration_hours: float = Field(default=0.0, ge=0.0)
    soc_span_percent: float = Field(default=0.0, ge=0.0)
    soh_energy_percent: float = Field(default=0.0, ge=0.0)


class MicroDropStats(BaseModel):
    """Unexplained SOC drops observed during the run."""

    model_config = ConfigDict(frozen=True)

    total: int = Field(default=0, ge=0)
    above_20_percent: int = Field(default=0, ge=0)
    below_20_percent: int = Field(default=0, ge=0)
    observed_hours: float = Field(default=0.0, ge=0.0)
    rate_per_hour: float = Field(default=0.0, ge=0.0)
    rate_above_20_per_hour: float = Field(default=0.0, ge=0.0)
    rate_below_20_per_hour: float = Field(default=0.0, ge=0.0)

    @property
    def unstable_under_load(self) -> bool:
        """A drop starting at or above 20% SOC points at a weak cell."""
        return self.above_20_percent > 0


class HealthTestStatus(BaseModel):
    """Pollable progress readout of a test run."""

    model_config = ConfigDict(frozen=True)

    state: HealthTestState = Field(default=HealthTestState.IDLE)
    target_soc: int | None = Field(default=None)
    step: str = Field(default="")
    progress: float = Field(default=0.0, ge=0.0, le=1.0)


class HealthTestResult(BaseModel):
    """Final outcome of one completed health test. Created once and never mutated."""

    model_config = ConfigDict(frozen=True)

    started_at: datetime
    finished_at: datetime
    duration_s: float = Field(..., ge=0.0)

    energy_delivered_wh: float = Field(..., ge=0.0)
    average_power_w: float = Field(default=0.0, ge=0.0)
    target_power_w: float = Field(default=0.0, ge=0.0)
    power_preset: PowerPreset | None = None
    power_control_quality: float = Field(default=0.0, ge=0.0, le=100.0)

    soh_energy_percent: float = Field(..., ge=0.0)
    soh_capacity_percent: float = Field(..., ge=0.0)

    dcir_at_50_mohm: float | None = None
    dcir_at_20_mohm: float | None = None
    dcir_points: tuple[DCIRPoint, ...] = ()
    dcir_degradation_score: float = Field(default=100.0, ge=0.0, le=100.0)

    ocv_curve: tuple[OCVPoint, ...] = ()
    knee_soc: float | None = None
    knee_index: float = Field(default=100.0, ge=0.0, le=100.0)
    early_degradation: bool = False

    micro_drops: MicroDropStats = Field(default_factory=MicroDropStats)
    stability_score: float = Field(default=100.0, ge=0.0, le=100.0)

    average_temperature_c: float
    temperature_quality: float = Field(..., ge=0.0, le=100.0)
    normalized_soh_percent: float = Field(..., ge=0.0, le=100.0)
    normalized_dcir_at_50_mohm: float | None = None
    normalization_quality: float = Field(..., ge=0.0, le=100.0)

    health_score: float = Field(..., ge=0.0, le=100.0)
    recommendation: str

    @field_validator("finished_at")
    @classmethod
    def validate_finished_at(cls, v: datetime, info: ValidationInfo) -> datetime:
        """Validate the run does not end before it starts."""
        started = info.data.get("started_at")
        if started is not None and v < started:
            raise ValueError("finished_at must not be earlier than started_at")
        return v

    @property
    def is_healthy(self) -> bool:
        """Score of 70 or more."""
        return self.health_score >= 70.0

    @property
    def needs_attention(self) -> bool:
        """Score between 50 and 70."""
        return 50.0 <= self.health_score < 70.0

    @property
    def is_critical(self) -> bool:
        """Score below 50."""
        return self.health_score < 50.0
