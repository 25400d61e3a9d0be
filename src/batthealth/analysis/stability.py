"""Micro-drop detection.

A micro-drop is a fall of two or more SOC points within two minutes while not
charging. Healthy packs discharge smoothly; sudden gauge drops point at weak
cells collapsing under load.
"""

from collections.abc import Sequence

from batthealth.models import MicroDropStats, Reading
from batthealth.utils.types import (
    MICRO_DROP_THRESHOLD_PERCENT,
    MICRO_DROP_WINDOW_S,
    SECONDS_PER_HOUR,
    clamp,
    seconds_between,
)

LOW_SOC_BOUNDARY_PERCENT = 20


def find_micro_drops(
    samples: Sequence[Reading],
    threshold_percent: int = MICRO_DROP_THRESHOLD_PERCENT,
    window_s: float = MICRO_DROP_WINDOW_S,
) -> list[tuple[int, int]]:
    """Locate micro-drop events as ``(start_index, end_index)`` pairs.

    From each non-charging start sample the window is scanned forward; the first
    non-charging sample at least ``threshold_percent`` below the start closes an
    event and the scan resumes from there, so one fall is counted once.
    """
    events: list[tuple[int, int]] = []
    i = 0
    while i < len(samples):
        start = samples[i]
        if start.is_charging:
            i += 1
            continue

        end = None
        for j in range(i + 1, len(samples)):
            if seconds_between(start.timestamp, samples[j].timestamp) > window_s:
                break
            if samples[j].is_charging:
                continue
            if start.soc - samples[j].soc >= threshold_percent:
                end = j
                break

        if end is None:
            i += 1
        else:
            events.append((i, end))
            i = end
    return events


def micro_drop_stats(samples: Sequence[Reading]) -> MicroDropStats:
    """Count micro-drops and convert them to rates per hour of non-charging time.

    Time and events are split at 20% SOC by the SOC at which they start.
    """
    if len(samples) < 2:
        return MicroDropStats()

    hours_above = 0.0
    hours_below = 0.0
    for prev, curr in zip(samples, samples[1:], strict=False):
        dt = seconds_between(prev.timestamp, curr.timestamp) / SECONDS_PER_HOUR
        if dt <= 0 or prev.is_charging or curr.is_charging:
            continue
        if prev.soc >= LOW_SOC_BOUNDARY_PERCENT:
            hours_above += dt
        else:
            hours_below += dt

    events = find_micro_drops(samples)
    above = sum(1 for start, _ in events if samples[start].soc >= LOW_SOC_BOUNDARY_PERCENT)
    below = len(events) - above
    observed = hours_above + hours_below

    return MicroDropStats(
        total=len(events),
        above_20_percent=above,
        below_20_percent=below,
        observed_hours=observed,
        rate_per_hour=len(events) / max(1e-6, observed),
        rate_above_20_per_hour=above / hours_above if hours_above > 0 else 0.0,
        rate_below_20_per_hour=below / hours_below if hours_below > 0 else 0.0,
    )


def stability_score(stats: MicroDropStats, zero_at_drops_per_hour: float = 5.0) -> float:
    """0-100 stability score falling linearly to 0 at ``zero_at_drops_per_hour``.

    The rate is taken over at least one hour so a short session with a single
    drop is not scored as a catastrophic rate.
    """
    rate = stats.total / max(1.0, stats.observed_hours)
    return clamp(100.0 - rate * (100.0 / zero_at_drops_per_hour), 0.0, 100.0)
