"""Tests for domain constants and typing utilities."""

from datetime import datetime, timedelta

import batthealth.utils.types as types
import pytest


class TestElectricalTypes:
    """Test electrical type definitions and constants."""

    def test_aliases_exist(self):
        """Test that electrical type aliases are defined."""
        for alias in ("V", "mA", "A", "W", "Wh", "mAh", "mOhm", "Ohm"):
            assert hasattr(types, alias)

    def test_current_conversion(self):
        """Test current unit conversion functions."""
        assert types.ma_to_a(1500.0) == 1.5
        assert types.ma_to_a(-250.0) == -0.25
        assert types.a_to_ma(2.0) == 2000.0

    def test_resistance_conversion(self):
        """Test resistance unit conversion functions."""
        assert types.ohm_to_mohm(0.08) == pytest.approx(80.0)
        assert types.mohm_to_ohm(120.0) == pytest.approx(0.12)

    def test_energy_conversion(self):
        """Test energy unit conversion functions."""
        assert types.joules_to_wh(3600.0) == 1.0
        assert types.mah_to_wh(5000.0, 11.1) == pytest.approx(55.5)

    def test_power_constants(self):
        """Test target power limits are ordered."""
        assert types.MIN_TARGET_POWER_W < types.FALLBACK_TARGET_POWER_W < types.MAX_TARGET_POWER_W
        assert types.DEFAULT_NOMINAL_VOLTAGE_V == 11.1


class TestThermalTypes:
    """Test thermal constants."""

    def test_reference_temperature(self):
        """Test the normalization reference."""
        assert types.REFERENCE_TEMPERATURE_C == 25.0
        assert types.MIN_NORMALIZED_DCIR_MOHM == 10.0
        assert types.OUT_OF_RANGE_NORMALIZATION_QUALITY == 20.0


class TestSocTypes:
    """Test state of charge constants."""

    def test_soc_range(self):
        """Test SOC limits and DCIR targets."""
        assert types.MIN_SOC_PERCENT == 0
        assert types.MAX_SOC_PERCENT == 100
        assert types.DCIR_TARGET_SOCS == (50, 20)


class TestTimeTypes:
    """Test time helpers."""

    def test_seconds_between(self):
        """Test signed differences between timestamps."""
        start = datetime(2024, 1, 1, 12, 0, 0)
        assert types.seconds_between(start, start + timedelta(minutes=2)) == 120.0
        assert types.seconds_between(start + timedelta(seconds=5), start) == -5.0

    def test_micro_drop_constants(self):
        """Test the micro-drop detector settings."""
        assert types.MICRO_DROP_WINDOW_S == 120.0
        assert types.MICRO_DROP_THRESHOLD_PERCENT == 2


class TestClamp:
    """Test value clamping."""

    @pytest.mark.parametrize(
        "value,expected",
        [(-1.0, 0.0), (0.0, 0.0), (0.4, 0.4), (1.0, 1.0), (7.5, 1.0)],
    )
    def test_clamp(self, value, expected):
        """Test values are clamped to the closed interval."""
        assert types.clamp(value, 0.0, 1.0) == expected
