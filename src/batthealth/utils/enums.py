"""Domain enumerations for the battery health assessment engine.

This module defines enumerations for the states, load profiles and failure
reasons shared by the controller, the test orchestrator and the analysis code.
"""

from enum import Enum


class HealthTestState(Enum):
    """Phases of a battery health test run."""

    IDLE = "IDLE"
    CALIBRATING = "CALIBRATING"
    PULSE_TESTING = "PULSE_TESTING"
    ENERGY_WINDOW = "ENERGY_WINDOW"
    ANALYZING = "ANALYZING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"

    @property
    def is_active(self) -> bool:
        """Whether the run is in progress."""
        return self not in (HealthTestState.IDLE, HealthTestState.COMPLETED, HealthTestState.ERROR)


class ControlState(Enum):
    """Constant-power controller states."""

    IDLE = "IDLE"
    STABILIZING = "STABILIZING"
    STABLE = "STABLE"
    ERROR = "ERROR"


class LoadProfile(Enum):
    """Synthetic load levels understood by a load actuator."""

    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"


class StopReason(Enum):
    """Why the load actuator was told to stop."""

    USER_STOPPED = "USER_STOPPED"
    PULSE_COMPLETE = "PULSE_COMPLETE"
    CONTROLLER_STOPPED = "CONTROLLER_STOPPED"
    TEST_FAILED = "TEST_FAILED"


class PowerPreset(Enum):
    """Constant-power discharge presets expressed as a C-rate."""

    LIGHT = "0.1C"
    MEDIUM = "0.2C"
    HEAVY = "0.3C"

    @property
    def c_rate(self) -> float:
        """C-rate multiplier of the preset."""
        return {"0.1C": 0.1, "0.2C": 0.2, "0.3C": 0.3}[self.value]


class FailureReason(Enum):
    """Short user-facing reasons a test run can fail."""

    LOW_BATTERY = "LOW_BATTERY"
    CHARGING = "CHARGING"
    EXTERNAL_POWER = "EXTERNAL_POWER"
    ALREADY_RUNNING = "ALREADY_RUNNING"
    INSUFFICIENT_LOAD = "INSUFFICIENT_LOAD"
    EXCESS_LOAD = "EXCESS_LOAD"


class RejectionReason(Enum):
    """Why a DCIR pulse or OCV bin was dropped."""

    INDEX_OUT_OF_RANGE = "INDEX_OUT_OF_RANGE"
    TOO_FEW_SAMPLES = "TOO_FEW_SAMPLES"
    WEAK_CURRENT_STEP = "WEAK_CURRENT_STEP"
    CHARGING_IN_WINDOW = "CHARGING_IN_WINDOW"
    WINDOW_TOO_LONG = "WINDOW_TOO_LONG"
    NEGATIVE_RESISTANCE = "NEGATIVE_RESISTANCE"
    IMPLAUSIBLE_RESISTANCE = "IMPLAUSIBLE_RESISTANCE"
    INVALID_VOLTAGE = "INVALID_VOLTAGE"


class DegradationTrend(Enum):
    """Direction of health change between two temperature-normalized tests."""

    ACCELERATING = "ACCELERATING"
    NORMAL = "NORMAL"
    STABLE = "STABLE"
    IMPROVING = "IMPROVING"
