"""Tests for micro-drop detection and the stability score."""

import pytest
from batthealth.analysis.stability import find_micro_drops, micro_drop_stats, stability_score
from batthealth.models import MicroDropStats


def soc_series(make_reading, socs, step_s=30, charging_at=()):
    return [
        make_reading(i * step_s, soc=soc, is_charging=i in charging_at) for i, soc in enumerate(socs)
    ]


class TestFindMicroDrops:
    """Test micro-drop event detection."""

    def test_sudden_drop_detected(self, make_reading):
        """Test a 3-point fall within a minute is one event."""
        samples = soc_series(make_reading, [80, 80, 77, 77, 77])
        assert find_micro_drops(samples) == [(0, 2)]

    def test_gradual_discharge_ignored(self, make_reading):
        """Test a steady 1% per 90 s discharge has no events."""
        samples = soc_series(make_reading, list(range(80, 60, -1)), step_s=90)
        assert find_micro_drops(samples) == []

    def test_fall_outside_window_ignored(self, make_reading):
        """Test a 2-point fall spread over more than two minutes is not counted."""
        samples = soc_series(make_reading, [80, 79, 78], step_s=70)
        assert find_micro_drops(samples) == []

    def test_one_fall_counted_once(self, make_reading):
        """Test a long fall is not counted from every sample inside it."""
        samples = soc_series(make_reading, [80, 79, 78, 78, 78], step_s=10)
        assert len(find_micro_drops(samples)) == 1

    def test_charging_samples_skipped(self, make_reading):
        """Test charging samples neither start nor end an event."""
        samples = soc_series(make_reading, [80, 70, 80, 80], charging_at=(1,))
        assert find_micro_drops(samples) == []

    def test_threshold_argument(self, make_reading):
        """Test a custom threshold."""
        samples = soc_series(make_reading, [80, 78, 78])
        assert find_micro_drops(samples, threshold_percent=3) == []
        assert find_micro_drops(samples, threshold_percent=2) == [(0, 1)]


class TestMicroDropStats:
    """Test micro-drop statistics."""

    def test_rates_split_at_20_percent(self, make_reading):
        """Test events and time are split by the SOC they start at."""
        high = [make_reading(i * 30, soc=50) for i in range(60)] + [make_reading(1800, soc=47)]
        low = [make_reading(2400 + i * 30, soc=19) for i in range(60)] + [make_reading(4200, soc=16)]
        stats = micro_drop_stats(high + low)
        assert stats.total == 2
        assert stats.above_20_percent == 1
        assert stats.below_20_percent == 1
        assert stats.observed_hours == pytest.approx(4200 / 3600)
        assert stats.rate_above_20_per_hour == pytest.approx(1 / (2400 / 3600))
        assert stats.rate_below_20_per_hour == pytest.approx(2.0)
        assert stats.unstable_under_load is True

    def test_too_few_samples(self, make_reading):
        """Test a single sample gives empty statistics."""
        stats = micro_drop_stats([make_reading(0)])
        assert stats.total == 0
        assert stats.rate_per_hour == 0.0

    def test_charging_time_excluded(self, make_reading):
        """Test time spent charging does not count as observed."""
        samples = soc_series(make_reading, [80, 80, 80, 80], step_s=600, charging_at=(2,))
        assert micro_drop_stats(samples).observed_hours == pytest.approx(600 / 3600)


class TestStabilityScore:
    """Test the stability sub-score."""

    def test_no_drops(self):
        """Test a clean run scores 100."""
        assert stability_score(MicroDropStats(observed_hours=2.0)) == 100.0

    def test_short_session_rate_floor(self):
        """Test one drop in half an hour is rated over a full hour."""
        assert stability_score(MicroDropStats(total=1, observed_hours=0.5)) == pytest.approx(80.0)

    def test_saturates_at_zero(self):
        """Test five or more drops per hour score 0."""
        assert stability_score(MicroDropStats(total=10, observed_hours=2.0)) == 0.0
        assert stability_score(MicroDropStats(total=30, observed_hours=2.0)) == 0.0

    def test_configurable_zero_point(self):
        """Test the rate that scores zero can be changed."""
        stats = MicroDropStats(total=2, observed_hours=1.0)
        assert stability_score(stats, zero_at_drops_per_hour=10.0) == pytest.approx(80.0)
