"""Type definitions and constants for the battery health assessment engine.

This module provides type aliases, domain constants, and unit conversion
helpers shared by the analysis, control and orchestration layers.
"""

from datetime import datetime
from typing import TypeAlias

# =============================================================================
# Electrical Type Definitions and Aliases
# =============================================================================

V: TypeAlias = float  # Volts
mA: TypeAlias = float  # Milliamps, negative while discharging
A: TypeAlias = float  # Amps
W: TypeAlias = float  # Watts
Wh: TypeAlias = float  # Watt-hours
mAh: TypeAlias = float  # Milliamp-hours
mOhm: TypeAlias = float  # Milliohms
Ohm: TypeAlias = float  # Ohms

# Electrical Constants
DEFAULT_NOMINAL_VOLTAGE_V: float = 11.1  # Three-cell laptop pack
MIN_TARGET_POWER_W: float = 1.0
MAX_TARGET_POWER_W: float = 50.0
FALLBACK_TARGET_POWER_W: float = 5.0
MIN_CONTROLLABLE_POWER_W: float = 0.1

# =============================================================================
# Thermal Type Definitions
# =============================================================================

Celsius: TypeAlias = float

# Thermal Constants
REFERENCE_TEMPERATURE_C: float = 25.0
OUT_OF_RANGE_NORMALIZATION_QUALITY: float = 20.0
MIN_NORMALIZED_DCIR_MOHM: float = 10.0

# =============================================================================
# State of Charge Type Definitions
# =============================================================================

Percent: TypeAlias = float
SOC: TypeAlias = int  # Integer percent as reported by the battery gauge

MIN_SOC_PERCENT: int = 0
MAX_SOC_PERCENT: int = 100
DCIR_TARGET_SOCS: tuple[int, int] = (50, 20)

# =============================================================================
# Time Type Definitions
# =============================================================================

Timestamp: TypeAlias = datetime
Seconds: TypeAlias = float

SECONDS_PER_HOUR: float = 3600.0
MICRO_DROP_WINDOW_S: float = 120.0
MICRO_DROP_THRESHOLD_PERCENT: int = 2

# =============================================================================
# Conversion Functions
# =============================================================================


def ma_to_a(milliamps: mA) -> A:
    """Convert milliamps to amps."""
    return milliamps / 1000.0


def a_to_ma(amps: A) -> mA:
    """Convert amps to milliamps."""
    return amps * 1000.0


def ohm_to_mohm(ohms: Ohm) -> mOhm:
    """Convert ohms to milliohms."""
    return ohms * 1000.0


def mohm_to_ohm(milliohms: mOhm) -> Ohm:
    """Convert milliohms to ohms."""
    return milliohms / 1000.0


def joules_to_wh(joules: float) -> Wh:
    """Convert joules (watt-seconds) to watt-hours."""
    return joules / SECONDS_PER_HOUR


def mah_to_wh(milliamp_hours: mAh, voltage_v: V) -> Wh:
    """Convert a charge capacity to energy at the given voltage."""
    return milliamp_hours * voltage_v / 1000.0


def seconds_between(start: Timestamp, end: Timestamp) -> Seconds:
    """Signed number of seconds from ``start`` to ``end``."""
    return (end - start).total_seconds()


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp ``value`` to the closed interval [lower, upper]."""
    return max(lower, min(upper, value))
