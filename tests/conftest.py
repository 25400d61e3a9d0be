"""Shared fixtures for the battery health engine tests."""

from datetime import datetime, timedelta

import pytest
from batthealth.models import BatterySnapshot, DCIRPoint, Reading

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def make_reading():
    """Factory for readings ``seconds`` after the base time."""

    def _make(
        seconds: float,
        soc: int = 80,
        voltage_v: float = 11.5,
        current_ma: float = -500.0,
        is_charging: bool = False,
        temperature_c: float = 25.0,
    ) -> Reading:
        return Reading(
            timestamp=BASE_TIME + timedelta(seconds=seconds),
            soc=soc,
            is_charging=is_charging,
            voltage_v=voltage_v,
            current_ma=current_ma,
            temperature_c=temperature_c,
        )

    return _make


@pytest.fixture
def make_snapshot():
    """Factory for battery snapshots at the base time."""

    def _make(soc: int = 90, is_charging: bool = False, external_power: bool = False, **kwargs) -> BatterySnapshot:
        return BatterySnapshot(
            timestamp=BASE_TIME,
            soc=soc,
            is_charging=is_charging,
            external_power=external_power,
            voltage_v=kwargs.pop("voltage_v", 12.0),
            current_ma=kwargs.pop("current_ma", -400.0),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_dcir_point():
    """Factory for DCIR points."""

    def _make(soc: float, resistance_mohm: float, seconds: float = 0.0) -> DCIRPoint:
        return DCIRPoint(
            timestamp=BASE_TIME + timedelta(seconds=seconds),
            soc=soc,
            resistance_mohm=resistance_mohm,
            voltage_before_v=11.5,
            voltage_after_v=11.4,
            current_before_ma=-500.0,
            current_after_ma=-1500.0,
        )

    return _make


@pytest.fixture
def pulse_readings(make_reading):
    """Clean 1 Hz pulse: 500 mA baseline for 11 s, then 2500 mA through an 80 mOhm pack.

    The last pre-pulse sample is at index 10.
    """

    def _make(
        resistance_mohm: float = 80.0,
        base_ma: float = -500.0,
        pulse_ma: float = -2500.0,
        ocv: float = 11.54,
        length: int = 21,
    ) -> list[Reading]:
        readings = []
        for t in range(length):
            current = base_ma if t <= 10 else pulse_ma
            voltage = ocv + current / 1000.0 * resistance_mohm / 1000.0
            readings.append(make_reading(t, soc=50, voltage_v=voltage, current_ma=current))
        return readings

    return _make
