"""Tests for C-rate power presets."""

import pytest
from batthealth.engine.presets import (
    all_target_powers,
    design_energy_wh,
    equivalent_c_rate,
    format_power,
    suggest_preset,
    target_power,
)
from batthealth.utils.enums import PowerPreset


class TestTargetPower:
    """Test preset target power."""

    def test_design_energy(self):
        """Test design energy at the default 11.1 V."""
        assert design_energy_wh(5000) == pytest.approx(55.5)

    def test_medium_preset(self):
        """Test 0.2C of a 55.5 Wh pack is 11.1 W."""
        assert target_power(PowerPreset.MEDIUM, 5000) == pytest.approx(11.1)

    def test_custom_voltage(self):
        """Test the nominal voltage scales the target."""
        assert target_power(PowerPreset.LIGHT, 5000, 7.4) == pytest.approx(3.7)

    def test_clamped(self):
        """Test targets are clamped to 1-50 W."""
        assert target_power(PowerPreset.HEAVY, 100000) == 50.0
        assert target_power(PowerPreset.LIGHT, 100) == 1.0

    @pytest.mark.parametrize("capacity", [None, 0, -10])
    def test_unknown_capacity_falls_back(self, capacity):
        """Test an unknown capacity gives 5 W."""
        assert target_power(PowerPreset.HEAVY, capacity) == 5.0

    def test_all_target_powers(self):
        """Test every preset is listed in ascending power."""
        targets = all_target_powers(5000)
        assert list(targets) == [PowerPreset.LIGHT, PowerPreset.MEDIUM, PowerPreset.HEAVY]
        assert targets[PowerPreset.HEAVY] == pytest.approx(16.65)


class TestCRate:
    """Test C-rate conversion and preset suggestion."""

    def test_equivalent_c_rate(self):
        """Test power converts back to its C-rate."""
        assert equivalent_c_rate(11.1, 5000) == pytest.approx(0.2)
        assert equivalent_c_rate(11.1, None) == 0.0
        assert equivalent_c_rate(0.0, 5000) == 0.0

    def test_suggest_preset(self):
        """Test the closest preset is suggested."""
        assert suggest_preset(16.0, 5000) == PowerPreset.HEAVY
        assert suggest_preset(6.0, 5000) == PowerPreset.LIGHT
        assert suggest_preset(0.3, 5000) is None

    def test_format_power(self):
        """Test the human readable form."""
        assert format_power(11.1, 5000) == "11.1W (0.20C)"
