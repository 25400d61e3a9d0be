"""Synthetic battery pack for the simulation harness.

This module provides the SimulatedBattery class that models a laptop pack as an
open-circuit voltage source behind an SOC-dependent internal resistance, with
coulomb counting, a constant background load and a slowly oscillating
temperature. Readings produced by the model have exactly the shape the engine
consumes from a real battery source.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any

import numpy as np
from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from batthealth.models import BatterySnapshot, Reading
from batthealth.utils.types import DEFAULT_NOMINAL_VOLTAGE_V, W, mohm_to_ohm

logger = logging.getLogger(__name__)

# Three-cell Li-ion pack, volts per SOC percent
DEFAULT_OCV_SOC_POINTS = [0.0, 5.0, 10.0, 20.0, 30.0, 40.0, 50.0, 60.0, 70.0, 80.0, 90.0, 100.0]
DEFAULT_OCV_VOLTAGES = [9.0, 9.9, 10.35, 10.65, 10.86, 11.04, 11.19, 11.4, 11.64, 11.88, 12.18, 12.54]
DEFAULT_RESISTANCE_SOC_POINTS = [0.0, 20.0, 50.0, 100.0]
DEFAULT_RESISTANCE_MOHM = [160.0, 110.0, 80.0, 70.0]


class SimulatedBattery(BaseModel):
    """Battery pack model.

    The terminal voltage is ``OCV(soc) - I x R(soc)`` where the current is solved
    from the power drawn by the background load plus the external load. Charge
    is counted in mAh; the reported SOC is the rounded integer percentage.
    """

    design_capacity_mah: float = Field(default=5000.0, gt=0.0, description="Design capacity in mAh")
    max_capacity_mah: float = Field(default=4500.0, gt=0.0, description="Full-charge capacity in mAh")
    nominal_voltage_v: float = Field(default=DEFAULT_NOMINAL_VOLTAGE_V, gt=0.0, description="Nominal voltage")
    initial_soc_percent: float = Field(default=90.0, ge=0.0, le=100.0, description="SOC at the start")

    ocv_soc_points: list[float] = Field(default_factory=lambda: list(DEFAULT_OCV_SOC_POINTS))
    ocv_voltages: list[float] = Field(default_factory=lambda: list(DEFAULT_OCV_VOLTAGES))
    resistance_soc_points: list[float] = Field(default_factory=lambda: list(DEFAULT_RESISTANCE_SOC_POINTS))
    resistance_mohm: list[float] = Field(default_factory=lambda: list(DEFAULT_RESISTANCE_MOHM))

    base_load_w: W = Field(default=3.0, ge=0.0, description="Background system load in watts")
    ambient_temperature_c: float = Field(default=25.0, ge=-40.0, le=80.0, description="Mean pack temperature")
    temperature_swing_c: float = Field(default=0.0, ge=0.0, le=20.0, description="Temperature oscillation amplitude")
    temperature_period_s: float = Field(default=3600.0, gt=0.0, description="Temperature oscillation period")

    is_charging: bool = Field(default=False, description="Whether the pack is charging")
    external_power: bool = Field(default=False, description="Whether an adapter is connected")

    # Mutable simulation state
    charge_mah: float = Field(default=0.0, ge=0.0, description="Remaining charge in mAh")
    elapsed_s: float = Field(default=0.0, ge=0.0, description="Simulated seconds")
    voltage_v: float = Field(default=0.0, ge=0.0, description="Last terminal voltage")
    current_ma: float = Field(default=0.0, description="Last current, negative while discharging")

    @field_validator("ocv_voltages", "resistance_mohm")
    @classmethod
    def validate_curve_lengths(cls, v: list[float], info: ValidationInfo) -> list[float]:
        """Validate each curve has as many values as SOC points."""
        points_field = "ocv_soc_points" if info.field_name == "ocv_voltages" else "resistance_soc_points"
        points = info.data.get(points_field)
        if points is not None and len(points) != len(v):
            raise ValueError(f"{info.field_name} must have one value per entry of {points_field}")
        if len(v) < 2:
            raise ValueError(f"{info.field_name} needs at least two points")
        return v

    @field_validator("ocv_soc_points", "resistance_soc_points")
    @classmethod
    def validate_soc_points(cls, v: list[float]) -> list[float]:
        """Validate SOC breakpoints are ascending."""
        if any(a >= b for a, b in zip(v, v[1:], strict=False)):
            raise ValueError("SOC breakpoints must be strictly ascending")
        return v

    @model_validator(mode="after")
    def validate_capacity(self) -> "SimulatedBattery":
        """Validate the full-charge capacity is plausible for the design capacity."""
        if self.max_capacity_mah > self.design_capacity_mah * 1.2:
            raise ValueError("Full-charge capacity cannot exceed design capacity by more than 20%")
        return self

    def model_post_init(self, __context: Any) -> None:
        """Fill the pack to its initial SOC and settle the terminal voltage."""
        self.charge_mah = self.max_capacity_mah * self.initial_soc_percent / 100.0
        self._settle(self.base_load_w)

    # Electrical model

    @property
    def soc_percent(self) -> float:
        """Exact state of charge in percent."""
        return self.charge_mah / self.max_capacity_mah * 100.0

    @property
    def reported_soc(self) -> int:
        """State of charge as a gauge would report it."""
        return int(min(100, max(0, round(self.soc_percent))))

    @property
    def temperature_c(self) -> float:
        phase = 2.0 * math.pi * self.elapsed_s / self.temperature_period_s
        return self.ambient_temperature_c + self.temperature_swing_c * math.sin(phase)

    def open_circuit_voltage(self, soc_percent: float | None = None) -> float:
        soc = self.soc_percent if soc_percent is None else soc_percent
        return float(np.interp(soc, self.ocv_soc_points, self.ocv_voltages))

    def internal_resistance_mohm(self, soc_percent: float | None = None) -> float:
        soc = self.soc_percent if soc_percent is None else soc_percent
        return float(np.interp(soc, self.resistance_soc_points, self.resistance_mohm))

    def solve_current(self, power_w: W) -> float:
        """Discharge current in amps that delivers ``power_w`` at the terminals.

        Solves ``P = (OCV - I x R) x I``; beyond the pack's maximum power point the
        current at that point is returned.
        """
        if power_w <= 0:
            return 0.0
        ocv = self.open_circuit_voltage()
        resistance = mohm_to_ohm(self.internal_resistance_mohm())
        if resistance <= 0:
            return power_w / ocv
        discriminant = ocv * ocv - 4.0 * resistance * power_w
        if discriminant < 0:
            logger.warning(f"Requested {power_w:.1f} W exceeds the pack's maximum power")
            return ocv / (2.0 * resistance)
        return (ocv - math.sqrt(discriminant)) / (2.0 * resistance)

    def _settle(self, power_w: W) -> None:
        current_a = self.solve_current(power_w)
        resistance = mohm_to_ohm(self.internal_resistance_mohm())
        self.voltage_v = max(0.0, self.open_circuit_voltage() - current_a * resistance)
        self.current_ma = -current_a * 1000.0

    def step(self, dt: float, load_power_w: W = 0.0) -> None:
        """Advance the model by ``dt`` seconds with ``load_power_w`` drawn on top of the base load."""
        if dt <= 0:
            return
        if self.is_charging:
            self.elapsed_s += dt
            return

        self._settle(self.base_load_w + max(0.0, load_power_w))
        # A*s to mAh
        drawn_mah = -self.current_ma / 1000.0 * dt / 3.6
        self.charge_mah = max(0.0, self.charge_mah - drawn_mah)
        self.elapsed_s += dt

    # Readings

    def reading(self, timestamp: datetime) -> Reading:
        """Gauge reading at ``timestamp``."""
        return Reading(
            timestamp=timestamp,
            soc=self.reported_soc,
            is_charging=self.is_charging,
            voltage_v=self.voltage_v,
            current_ma=self.current_ma,
            temperature_c=self.temperature_c,
        )

    def snapshot(self, timestamp: datetime) -> BatterySnapshot:
        """Reading plus capacity and power-source facts."""
        return BatterySnapshot(
            timestamp=timestamp,
            soc=self.reported_soc,
            is_charging=self.is_charging,
            voltage_v=self.voltage_v,
            current_ma=self.current_ma,
            temperature_c=self.temperature_c,
            external_power=self.external_power,
            design_capacity_mah=self.design_capacity_mah,
            max_capacity_mah=self.max_capacity_mah,
            nominal_voltage_v=self.nominal_voltage_v,
        )

    def __str__(self) -> str:
        return f"SimulatedBattery(soc={self.soc_percent:.1f}%, V={self.voltage_v:.3f}, I={self.current_ma:.0f}mA)"
