"""Composite health score.

The weights are fixed so scores from different runs and devices stay comparable.
Every term is clamped to [0, 100] before weighting and the weighted sum is
clamped again.
"""

import math

from batthealth.config.schema import ScoringConfig
from batthealth.utils.types import clamp

SOH_ENERGY_WEIGHT = 0.40
DCIR_WEIGHT = 0.25
SOH_CAPACITY_WEIGHT = 0.20
STABILITY_WEIGHT = 0.10
TEMPERATURE_WEIGHT = 0.05

RECOMMENDATIONS: tuple[tuple[float, str], ...] = (
    (85.0, "Battery health is excellent. No action required."),
    (70.0, "Battery health is good. Monitor periodically."),
    (50.0, "Battery health is fair. Consider replacement planning."),
)
POOR_RECOMMENDATION = "Battery health is poor. Replacement recommended soon."


class CompositeScorer:
    """Combine the health sub-scores into one 0-100 score."""

    def __init__(self, config: ScoringConfig | None = None):
        self.config = config or ScoringConfig()

    def dcir_score(self, dcir_at_50: float | None, dcir_at_20: float | None) -> float:
        """DCIR sub-score: 100 at or below the healthy baselines, falling linearly above them.

        With both resistances present the two scores are averaged; with neither the
        sub-score is 100.
        """
        cfg = self.config
        scores = []
        if dcir_at_50 is not None:
            scores.append(
                clamp(100.0 - (dcir_at_50 - cfg.dcir50_baseline_mohm) * cfg.dcir50_penalty_per_mohm, 0.0, 100.0)
            )
        if dcir_at_20 is not None:
            scores.append(
                clamp(100.0 - (dcir_at_20 - cfg.dcir20_baseline_mohm) * cfg.dcir20_penalty_per_mohm, 0.0, 100.0)
            )
        if not scores:
            return 100.0
        return sum(scores) / len(scores)

    def score(
        self,
        normalized_soh_energy: float,
        soh_capacity: float,
        dcir_at_50: float | None,
        dcir_at_20: float | None,
        stability_score: float,
        temperature_quality: float,
    ) -> float:
        """Weighted composite health score in [0, 100].

        Args:
            normalized_soh_energy: Temperature-normalized SOH-by-energy
            soh_capacity: SOH-by-capacity
            dcir_at_50: DCIR at 50% SOC in mOhm, if measured
            dcir_at_20: DCIR at 20% SOC in mOhm, if measured
            stability_score: Micro-drop stability sub-score
            temperature_quality: Test temperature suitability

        Returns:
            The composite score
        """
        terms = (
            (SOH_ENERGY_WEIGHT, normalized_soh_energy),
            (DCIR_WEIGHT, self.dcir_score(dcir_at_50, dcir_at_20)),
            (SOH_CAPACITY_WEIGHT, soh_capacity),
            (STABILITY_WEIGHT, stability_score),
            (TEMPERATURE_WEIGHT, temperature_quality),
        )
        total = sum(weight * clamp(_finite(value), 0.0, 100.0) for weight, value in terms)
        return clamp(total, 0.0, 100.0)


def recommendation_for(health_score: float) -> str:
    """Short recommendation text for a composite score."""
    for threshold, text in RECOMMENDATIONS:
        if health_score >= threshold:
            return text
    return POOR_RECOMMENDATION


def _finite(value: float) -> float:
    # NaN is not ordered, so clamp() alone cannot bound it
    if math.isnan(value):
        return 0.0
    return value
