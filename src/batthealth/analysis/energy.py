"""Delivered-energy integration.

Energy is the trapezoidal integral of instantaneous power over consecutive
reading pairs. Discharge current is negative, so the sign of the net integral
is dropped and the result is always non-negative.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime

from batthealth.models import EnergyAnalysis, Reading
from batthealth.utils.logger import logger
from batthealth.utils.types import SECONDS_PER_HOUR, Wh, clamp, joules_to_wh, seconds_between


class EnergyIntegrator:
    """Trapezoidal power integrator."""

    def integrate(self, samples: Sequence[Reading]) -> Wh:
        """Integrate power over ``samples`` into watt-hours.

        Pairs with a non-positive time delta are skipped.

        Args:
            samples: Readings ordered by timestamp

        Returns:
            Delivered energy in Wh, 0.0 for fewer than two samples
        """
        if len(samples) < 2:
            return 0.0

        joules = 0.0
        for prev, curr in zip(samples, samples[1:], strict=False):
            dt = seconds_between(prev.timestamp, curr.timestamp)
            if dt <= 0:
                continue
            joules += (prev.power_w + curr.power_w) / 2.0 * dt

        return joules_to_wh(abs(joules))

    def integrate_intervals(self, samples: Sequence[Reading], intervals: Iterable[tuple[int, int]]) -> Wh:
        """Integrate each ``[start, end)`` index interval separately and sum the results.

        Intervals are integrated independently so the gap between two windows is
        never bridged.
        """
        total = 0.0
        for start, end in intervals:
            if start < 0 or end > len(samples) or start >= end:
                logger.debug("Skipping invalid energy interval [%d, %d)", start, end)
                continue
            total += self.integrate(samples[start:end])
        return total

    def analyze(
        self,
        samples: Sequence[Reading],
        design_energy_wh: Wh | None = None,
        intervals: Iterable[tuple[int, int]] | None = None,
    ) -> EnergyAnalysis:
        """Summarize energy delivered over ``intervals`` (or all samples).

        SOH-by-energy extrapolates the delivered energy to a full 0-100% discharge
        and compares it against the design energy. The SOC span is floored at 1%.

        Args:
            samples: Readings ordered by timestamp
            design_energy_wh: Design energy of the pack, or None when unknown
            intervals: Index intervals to analyze; the whole sequence when None

        Returns:
            Energy analysis; SOH is reported as 100 when the design energy is unknown
        """
        windows = list(intervals) if intervals is not None else [(0, len(samples))]

        energy = 0.0
        duration_s = 0.0
        soc_span = 0.0
        for start, end in windows:
            if start < 0 or end > len(samples) or end - start < 2:
                continue
            window = samples[start:end]
            energy += self.integrate(window)
            duration_s += max(0.0, seconds_between(window[0].timestamp, window[-1].timestamp))
            soc_span += max(0, window[0].soc - window[-1].soc)

        duration_hours = duration_s / SECONDS_PER_HOUR
        average_power = energy / duration_hours if duration_hours > 0 else 0.0

        soh = 100.0
        if design_energy_wh is not None and design_energy_wh > 0 and energy > 0:
            estimated_full_wh = energy * 100.0 / max(1.0, soc_span)
            soh = clamp(estimated_full_wh / design_energy_wh * 100.0, 0.0, 100.0)

        return EnergyAnalysis(
            energy_wh=energy,
            average_power_w=average_power,
            duration_hours=duration_hours,
            soc_span_percent=soc_span,
            soh_energy_percent=soh,
        )


def analyze_energy(samples: Sequence[Reading], design_energy_wh: Wh | None = None) -> EnergyAnalysis:
    """Convenience wrapper around ``EnergyIntegrator.analyze`` for a single window."""
    return EnergyIntegrator().analyze(samples, design_energy_wh)


def average_power_over_period(samples: Sequence[Reading], period_s: float = 900.0, now: datetime | None = None) -> float:
    """Mean discharge power of the samples in the last ``period_s`` seconds.

    ``now`` defaults to the timestamp of the last sample.
    """
    if not samples:
        return 0.0
    reference = now if now is not None else samples[-1].timestamp
    recent = [s for s in samples if 0.0 <= seconds_between(s.timestamp, reference) <= period_s]
    if not recent:
        return 0.0
    return sum(s.discharge_power_w for s in recent) / len(recent)


def estimated_time_remaining(
    soc_percent: int, power_w: float, max_capacity_mah: float, nominal_voltage_v: float = 11.1
) -> float | None:
    """Hours of runtime left at ``power_w``, or None when it cannot be estimated."""
    if power_w <= 0 or soc_percent <= 0 or max_capacity_mah <= 0:
        return None
    remaining_wh = max_capacity_mah * nominal_voltage_v * soc_percent / (1000.0 * 100.0)
    return remaining_wh / power_w
