"""Tests for domain enumeration definitions."""

from enum import Enum

import pytest
from batthealth.utils.enums import (
    ControlState,
    DegradationTrend,
    FailureReason,
    HealthTestState,
    LoadProfile,
    PowerPreset,
    RejectionReason,
    StopReason,
)


class TestHealthTestStateEnum:
    """Test HealthTestState enumeration."""

    def test_all_states_exist(self):
        """Test all run phases are defined in order."""
        assert [state.value for state in HealthTestState] == [
            "IDLE",
            "CALIBRATING",
            "PULSE_TESTING",
            "ENERGY_WINDOW",
            "ANALYZING",
            "COMPLETED",
            "ERROR",
        ]

    @pytest.mark.parametrize(
        "state",
        [
            HealthTestState.CALIBRATING,
            HealthTestState.PULSE_TESTING,
            HealthTestState.ENERGY_WINDOW,
            HealthTestState.ANALYZING,
        ],
    )
    def test_active_states(self, state):
        """Test in-progress phases are active."""
        assert state.is_active

    @pytest.mark.parametrize("state", [HealthTestState.IDLE, HealthTestState.COMPLETED, HealthTestState.ERROR])
    def test_terminal_states(self, state):
        """Test idle and terminal phases are not active."""
        assert not state.is_active


class TestPowerPresetEnum:
    """Test PowerPreset enumeration."""

    def test_preset_values(self):
        """Test presets are labelled by C-rate."""
        assert PowerPreset("0.2C") == PowerPreset.MEDIUM
        assert [preset.value for preset in PowerPreset] == ["0.1C", "0.2C", "0.3C"]

    def test_c_rate(self):
        """Test the numeric C-rate of each preset."""
        assert PowerPreset.LIGHT.c_rate == 0.1
        assert PowerPreset.MEDIUM.c_rate == 0.2
        assert PowerPreset.HEAVY.c_rate == 0.3


class TestLoadEnums:
    """Test load profile and stop reason enumerations."""

    def test_load_profiles(self):
        """Test the three actuator load levels."""
        assert [profile.value for profile in LoadProfile] == ["light", "medium", "heavy"]

    def test_stop_reasons(self):
        """Test every stop reason is defined."""
        assert {reason.name for reason in StopReason} == {
            "USER_STOPPED",
            "PULSE_COMPLETE",
            "CONTROLLER_STOPPED",
            "TEST_FAILED",
        }


class TestReasonEnums:
    """Test failure and rejection reasons."""

    def test_failure_reasons(self):
        """Test start guard and control failure reasons exist."""
        for name in ("LOW_BATTERY", "CHARGING", "EXTERNAL_POWER", "INSUFFICIENT_LOAD", "EXCESS_LOAD"):
            assert FailureReason[name].value == name

    def test_rejection_reasons(self):
        """Test DCIR and OCV rejection reasons exist."""
        assert RejectionReason.WEAK_CURRENT_STEP.value == "WEAK_CURRENT_STEP"
        assert RejectionReason.IMPLAUSIBLE_RESISTANCE.value == "IMPLAUSIBLE_RESISTANCE"

    def test_value_lookup(self):
        """Test members are found by value."""
        assert ControlState("STABLE") == ControlState.STABLE
        assert DegradationTrend("ACCELERATING") == DegradationTrend.ACCELERATING
        with pytest.raises(ValueError):
            ControlState("RUNNING")


class TestEnumTypes:
    """Test every domain enumeration is a proper Enum."""

    @pytest.mark.parametrize(
        "enum_class",
        [
            HealthTestState,
            ControlState,
            LoadProfile,
            StopReason,
            PowerPreset,
            FailureReason,
            RejectionReason,
            DegradationTrend,
        ],
    )
    def test_is_enum(self, enum_class):
        """Test the class is an Enum with members."""
        assert issubclass(enum_class, Enum)
        assert len(enum_class) >= 3
