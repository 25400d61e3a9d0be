"""Pulse-based DC internal resistance estimation.

A load pulse produces a current step and a matching voltage sag. Averaging a
short baseline before the pulse edge and a short window after it gives
R = dV / dI. Estimates that fail an acceptance check are dropped and the reason
is logged; they never abort a run.
"""

from collections import Counter
from collections.abc import Sequence
from statistics import median

from batthealth.analysis.regression import linear_slope
from batthealth.config.schema import DCIRConfig
from batthealth.models import DCIRAnalysis, DCIRPoint, Reading
from batthealth.utils.enums import RejectionReason
from batthealth.utils.logger import logger
from batthealth.utils.types import DCIR_TARGET_SOCS, clamp, ma_to_a, ohm_to_mohm, seconds_between


class DCIRExtractor:
    """Estimate internal resistance from load pulses and aggregate the results.

    Attributes:
        config: Window sizes and acceptance thresholds
        rejections: Count of dropped estimates per reason
    """

    def __init__(self, config: DCIRConfig | None = None):
        self.config = config or DCIRConfig()
        self.rejections: Counter[RejectionReason] = Counter()

    def estimate(
        self, samples: Sequence[Reading], pulse_start_index: int, window_seconds: float | None = None
    ) -> DCIRPoint | None:
        """Estimate resistance around the pulse edge at ``pulse_start_index``.

        The baseline covers ``[t0 - baseline_seconds, t0]`` and the loaded window
        covers ``(t0, t0 + window_seconds]`` where ``t0`` is the timestamp of the
        sample at ``pulse_start_index`` (the last sample before load was applied).

        Args:
            samples: Readings ordered by timestamp
            pulse_start_index: Index of the last pre-pulse sample
            window_seconds: Loaded window length; the configured value when None

        Returns:
            The DCIR point, or None when the pulse is rejected
        """
        point, reason = self.evaluate(samples, pulse_start_index, window_seconds)
        if reason is not None:
            self.rejections[reason] += 1
            logger.debug("DCIR pulse at index %d rejected: %s", pulse_start_index, reason.value)
        return point

    def evaluate(
        self, samples: Sequence[Reading], pulse_start_index: int, window_seconds: float | None = None
    ) -> tuple[DCIRPoint | None, RejectionReason | None]:
        """Like ``estimate`` but returns the rejection reason instead of logging it."""
        cfg = self.config
        window = window_seconds if window_seconds is not None else cfg.window_seconds

        if pulse_start_index < 0 or pulse_start_index >= len(samples) - 1:
            return None, RejectionReason.INDEX_OUT_OF_RANGE

        t0 = samples[pulse_start_index].timestamp
        before: list[Reading] = []
        after: list[Reading] = []
        for sample in samples:
            offset = seconds_between(t0, sample.timestamp)
            if -cfg.baseline_seconds <= offset <= 0:
                before.append(sample)
            elif 0 < offset <= window:
                after.append(sample)

        if len(before) < cfg.min_window_samples or len(after) < cfg.min_window_samples:
            return None, RejectionReason.TOO_FEW_SAMPLES

        if any(s.is_charging for s in before) or any(s.is_charging for s in after):
            return None, RejectionReason.CHARGING_IN_WINDOW

        span = seconds_between(before[0].timestamp, after[-1].timestamp)
        if span > cfg.max_pulse_duration_s:
            return None, RejectionReason.WINDOW_TOO_LONG

        if any(s.voltage_v <= 0 for s in before) or any(s.voltage_v <= 0 for s in after):
            return None, RejectionReason.INVALID_VOLTAGE

        v_before = _mean([s.voltage_v for s in before])
        v_after = _mean([s.voltage_v for s in after])
        i_before = _mean([s.current_ma for s in before])
        i_after = _mean([s.current_ma for s in after])
        soc_before = _mean([float(s.soc) for s in before])
        soc_after = _mean([float(s.soc) for s in after])

        # Discharge current is negative, so a heavier load makes i_after more negative.
        delta_i_ma = i_before - i_after
        delta_v = v_before - v_after

        if abs(delta_i_ma) < cfg.min_current_step_ma:
            return None, RejectionReason.WEAK_CURRENT_STEP

        resistance = ohm_to_mohm(delta_v / ma_to_a(delta_i_ma))
        if resistance <= 0:
            return None, RejectionReason.NEGATIVE_RESISTANCE
        if resistance >= cfg.max_resistance_mohm:
            return None, RejectionReason.IMPLAUSIBLE_RESISTANCE

        quality = min(100.0, (abs(delta_i_ma) / 100.0) * (abs(delta_v) * 1000.0 / 10.0) * 10.0)
        soc_change = abs(soc_after - soc_before)
        if soc_change > 1.0:
            quality *= 1.0 - min(0.5, soc_change / 10.0)

        point = DCIRPoint(
            timestamp=t0,
            soc=(soc_before + soc_after) / 2.0,
            resistance_mohm=resistance,
            voltage_before_v=v_before,
            voltage_after_v=v_after,
            current_before_ma=i_before,
            current_after_ma=i_after,
            quality=clamp(quality, 0.0, 100.0),
        )
        return point, None

    def analyze(self, points: Sequence[DCIRPoint], targets: Sequence[int] = DCIR_TARGET_SOCS) -> DCIRAnalysis:
        """Aggregate DCIR points into per-target medians, a trend and a degradation score.

        Each point goes to the target SOC it is nearest to; ties go to the target
        listed first. A target with no points reports None.
        """
        return analyze_dcir(points, targets)


def analyze_dcir(points: Sequence[DCIRPoint], targets: Sequence[int] = DCIR_TARGET_SOCS) -> DCIRAnalysis:
    """Aggregate DCIR points. See ``DCIRExtractor.analyze``."""
    buckets: dict[int, list[float]] = {target: [] for target in targets}
    for point in points:
        nearest = min(targets, key=lambda target: abs(point.soc - target))
        buckets[nearest].append(point.resistance_mohm)

    medians = {target: (median(values) if values else None) for target, values in buckets.items()}
    dcir_50 = medians.get(50)
    dcir_20 = medians.get(20)

    trend = linear_slope([p.soc for p in points], [p.resistance_mohm for p in points]) or 0.0

    return DCIRAnalysis(
        dcir_at_50=dcir_50,
        dcir_at_20=dcir_20,
        trend_mohm_per_percent=trend,
        degradation_score=degradation_score(dcir_50, dcir_20, trend),
        point_count=len(points),
        average_quality=_mean([p.quality for p in points]) if points else 0.0,
    )


def degradation_score(dcir_at_50: float | None, dcir_at_20: float | None, trend: float) -> float:
    """Stepwise 0-100 degradation score from absolute resistance and its SOC trend."""
    score = 100.0

    if dcir_at_50 is not None:
        if dcir_at_50 > 300:
            score -= 40
        elif dcir_at_50 > 200:
            score -= 20
        elif dcir_at_50 > 150:
            score -= 10

    if dcir_at_20 is not None:
        if dcir_at_20 > 500:
            score -= 30
        elif dcir_at_20 > 350:
            score -= 15
        elif dcir_at_20 > 250:
            score -= 5

    # mOhm per %SOC
    steepness = abs(trend)
    if steepness > 5.0:
        score -= 20
    elif steepness > 3.0:
        score -= 10
    elif steepness > 2.0:
        score -= 5

    return clamp(score, 0.0, 100.0)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)
