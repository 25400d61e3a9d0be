"""C-rate power presets for constant-power discharge windows."""

from batthealth.utils.enums import PowerPreset
from batthealth.utils.types import (
    DEFAULT_NOMINAL_VOLTAGE_V,
    FALLBACK_TARGET_POWER_W,
    MAX_TARGET_POWER_W,
    MIN_TARGET_POWER_W,
    clamp,
    mah_to_wh,
)


def design_energy_wh(design_capacity_mah: float, nominal_voltage_v: float = DEFAULT_NOMINAL_VOLTAGE_V) -> float:
    """Design energy of a pack in watt-hours."""
    return mah_to_wh(design_capacity_mah, nominal_voltage_v)


def target_power(
    preset: PowerPreset,
    design_capacity_mah: float | None,
    nominal_voltage_v: float = DEFAULT_NOMINAL_VOLTAGE_V,
) -> float:
    """Constant-power target of ``preset`` for a pack.

    The target is the preset C-rate times the design energy, clamped to
    [1, 50] W. An unknown capacity falls back to 5 W.

    Args:
        preset: C-rate preset
        design_capacity_mah: Design capacity, or None when unknown
        nominal_voltage_v: Pack nominal voltage

    Returns:
        Target discharge power in watts
    """
    if not design_capacity_mah or design_capacity_mah <= 0:
        return FALLBACK_TARGET_POWER_W
    watts = preset.c_rate * design_energy_wh(design_capacity_mah, nominal_voltage_v)
    return clamp(watts, MIN_TARGET_POWER_W, MAX_TARGET_POWER_W)


def all_target_powers(
    design_capacity_mah: float | None, nominal_voltage_v: float = DEFAULT_NOMINAL_VOLTAGE_V
) -> dict[PowerPreset, float]:
    """Target power of every preset."""
    return {preset: target_power(preset, design_capacity_mah, nominal_voltage_v) for preset in PowerPreset}


def equivalent_c_rate(
    power_w: float, design_capacity_mah: float | None, nominal_voltage_v: float = DEFAULT_NOMINAL_VOLTAGE_V
) -> float:
    """C-rate that ``power_w`` represents for a pack, 0 when unknown."""
    if not design_capacity_mah or design_capacity_mah <= 0 or power_w <= 0:
        return 0.0
    return power_w / design_energy_wh(design_capacity_mah, nominal_voltage_v)


def suggest_preset(power_w: float, design_capacity_mah: float | None) -> PowerPreset | None:
    """Preset whose target is closest to the current draw; None below 0.5 W."""
    if power_w <= 0.5:
        return None
    targets = all_target_powers(design_capacity_mah)
    return min(targets, key=lambda preset: abs(power_w - targets[preset]))


def format_power(power_w: float, design_capacity_mah: float | None) -> str:
    """Human readable power with its C-rate, e.g. ``"10.0W (0.20C)"``."""
    return f"{power_w:.1f}W ({equivalent_c_rate(power_w, design_capacity_mah):.2f}C)"
