"""Tests for the self-learning temperature normalizer and its coefficient stores."""

import json
from datetime import datetime, timedelta

import pytest
from batthealth.analysis.temperature import (
    InMemoryCoefficientStore,
    JsonCoefficientStore,
    TemperatureNormalizer,
    should_normalize,
    temperature_quality,
)
from batthealth.config.schema import NormalizerConfig
from batthealth.errors import PersistenceError
from batthealth.models import NormalizerCoefficients
from batthealth.utils.enums import DegradationTrend

TEMPERATURES = [15.0, 18.0, 21.0, 24.0, 26.0, 29.0, 32.0, 35.0]
START = datetime(2024, 1, 1)


def record_series(normalizer, soh_fn, dcir_fn=None, temperatures=TEMPERATURES):
    for day, temperature in enumerate(temperatures):
        normalizer.record_observation(
            soh_fn(temperature),
            dcir_fn(temperature) if dcir_fn else None,
            temperature,
            timestamp=START + timedelta(days=day),
        )


class FailingStore(InMemoryCoefficientStore):
    """Store whose writes always fail."""

    def save_coefficients(self, coefficients):
        raise PersistenceError("disk full")

    def save_observations(self, observations):
        raise PersistenceError("disk full")


class TestNormalize:
    """Test the linear temperature correction."""

    def test_identity_at_reference(self):
        """Test no correction is applied at 25 C."""
        result = TemperatureNormalizer().normalize(87.5, 95.0, 25.0)
        assert result.normalized_soh == 87.5
        assert result.normalized_dcir == pytest.approx(95.0)
        assert result.quality == 100.0
        assert result.applied is True

    def test_soh_correction_uses_slope(self):
        """Test warm tests are corrected down and cold tests up."""
        normalizer = TemperatureNormalizer()
        assert normalizer.normalize(80.0, None, 30.0).normalized_soh == pytest.approx(80.0 - 5 * 0.15)
        assert normalizer.normalize(80.0, None, 20.0).normalized_soh == pytest.approx(80.0 + 5 * 0.15)

    def test_monotonic_in_temperature(self):
        """Test normalized SOH falls steadily as temperature rises."""
        normalizer = TemperatureNormalizer()
        values = [normalizer.normalize(80.0, None, t).normalized_soh for t in (15.0, 20.0, 25.0, 30.0, 35.0)]
        assert all(a > b for a, b in zip(values, values[1:]))

    def test_quality_falls_with_deviation(self):
        """Test quality drops with distance from the reference and floors at 50."""
        normalizer = TemperatureNormalizer()
        assert normalizer.normalize(80.0, None, 30.0).quality == pytest.approx(85.0)
        assert normalizer.normalize(80.0, None, 45.0).quality == pytest.approx(50.0)

    def test_dcir_correction(self):
        """Test DCIR is corrected multiplicatively."""
        result = TemperatureNormalizer().normalize(80.0, 100.0, 35.0)
        assert result.normalized_dcir == pytest.approx(125.0)

    def test_dcir_floor(self):
        """Test the normalized DCIR never drops below 10 mOhm."""
        normalizer = TemperatureNormalizer(NormalizerConfig(dcir_slope_percent_per_degree=9.0))
        assert normalizer.normalize(80.0, 20.0, 40.0).normalized_dcir == pytest.approx(10.0)

    def test_missing_dcir_stays_missing(self):
        """Test no DCIR in means no DCIR out."""
        assert TemperatureNormalizer().normalize(80.0, None, 30.0).normalized_dcir is None

    def test_soh_clamped(self):
        """Test normalized SOH stays within 0-100."""
        normalizer = TemperatureNormalizer()
        assert normalizer.normalize(99.9, None, 10.0).normalized_soh == 100.0
        assert normalizer.normalize(0.2, None, 40.0).normalized_soh == 0.0

    def test_out_of_range_refused(self):
        """Test out-of-range temperatures return raw values with low quality."""
        result = TemperatureNormalizer().normalize(80.0, 100.0, 5.0)
        assert result.normalized_soh == 80.0
        assert result.normalized_dcir == 100.0
        assert result.quality == 20.0
        assert result.applied is False


class TestSelfLearning:
    """Test re-fitting of the correction slopes."""

    def test_no_refit_below_minimum(self):
        """Test seven observations leave the default slopes in place."""
        normalizer = TemperatureNormalizer()
        record_series(normalizer, lambda t: 80.0 + 0.5 * (t - 25.0), temperatures=TEMPERATURES[:7])
        assert normalizer.coefficients.soh_slope_per_degree == pytest.approx(0.15)

    def test_refit_soh_and_dcir(self):
        """Test both slopes are fitted by least squares once enough history exists."""
        normalizer = TemperatureNormalizer()
        record_series(normalizer, lambda t: 80.0 + 0.5 * (t - 25.0), lambda t: 100.0 - 3.0 * (t - 25.0))
        assert normalizer.coefficients.soh_slope_per_degree == pytest.approx(0.5)
        assert normalizer.coefficients.dcir_slope_percent_per_degree == pytest.approx(-3.0)
        assert normalizer.coefficients.observation_count == 8
        assert normalizer.coefficients.updated_at == START + timedelta(days=7)

    def test_dcir_needs_enough_values(self):
        """Test the DCIR slope is not fitted from fewer than four values."""
        normalizer = TemperatureNormalizer()
        for day, temperature in enumerate(TEMPERATURES):
            dcir = 100.0 - 3.0 * (temperature - 25.0) if day < 3 else None
            normalizer.record_observation(80.0 + 0.5 * (temperature - 25.0), dcir, temperature)
        assert normalizer.coefficients.soh_slope_per_degree == pytest.approx(0.5)
        assert normalizer.coefficients.dcir_slope_percent_per_degree == pytest.approx(-2.5)

    def test_slopes_clamped_to_bounds(self):
        """Test pathological fits are clamped to the safety bounds."""
        normalizer = TemperatureNormalizer()
        record_series(normalizer, lambda t: 50.0 + 5.0 * (t - 25.0), lambda t: 100.0 + 40.0 * (t - 25.0))
        assert normalizer.coefficients.soh_slope_per_degree == pytest.approx(1.0)
        assert normalizer.coefficients.dcir_slope_percent_per_degree == pytest.approx(10.0)

    def test_observation_log_capped(self):
        """Test only the most recent observations are kept."""
        normalizer = TemperatureNormalizer(NormalizerConfig(max_observations=10))
        for i in range(15):
            normalizer.record_observation(80.0, None, 20.0 + i % 5, timestamp=START + timedelta(days=i))
        assert len(normalizer.observations) == 10
        assert normalizer.observations[0].timestamp == START + timedelta(days=5)

    def test_reset(self):
        """Test reset restores defaults and clears history."""
        store = InMemoryCoefficientStore()
        normalizer = TemperatureNormalizer(store=store)
        record_series(normalizer, lambda t: 80.0 + 0.5 * (t - 25.0))
        normalizer.reset()
        assert normalizer.coefficients.soh_slope_per_degree == pytest.approx(0.15)
        assert len(normalizer.observations) == 0
        assert store.observations == []
        assert store.coefficients.observation_count == 0


class TestPersistence:
    """Test coefficient stores and persistence fallbacks."""

    def test_json_store_round_trip(self, tmp_path):
        """Test learned state survives a new normalizer instance."""
        store = JsonCoefficientStore(tmp_path)
        record_series(TemperatureNormalizer(store=store), lambda t: 80.0 + 0.5 * (t - 25.0))
        assert store.coefficients_path.exists()
        assert store.observations_path.exists()

        reloaded = TemperatureNormalizer(store=JsonCoefficientStore(tmp_path))
        assert reloaded.coefficients.soh_slope_per_degree == pytest.approx(0.5)
        assert len(reloaded.observations) == 8

    def test_missing_files_use_defaults(self, tmp_path):
        """Test an empty directory yields default coefficients."""
        normalizer = TemperatureNormalizer(store=JsonCoefficientStore(tmp_path / "absent"))
        assert normalizer.coefficients == normalizer.default_coefficients()
        assert len(normalizer.observations) == 0

    def test_corrupt_files_use_defaults(self, tmp_path):
        """Test unreadable content falls back to defaults without raising."""
        (tmp_path / JsonCoefficientStore.COEFFICIENTS_FILE).write_text("{not json", encoding="utf-8")
        (tmp_path / JsonCoefficientStore.OBSERVATIONS_FILE).write_text('[{"timestamp": 3}]', encoding="utf-8")
        normalizer = TemperatureNormalizer(store=JsonCoefficientStore(tmp_path))
        assert normalizer.coefficients.soh_slope_per_degree == pytest.approx(0.15)
        assert len(normalizer.observations) == 0

    def test_stored_slopes_clamped_to_bounds(self, tmp_path):
        """Test out-of-bound stored slopes cannot distort normalization."""
        store = JsonCoefficientStore(tmp_path)
        store.save_coefficients(
            NormalizerCoefficients(
                soh_slope_per_degree=25.0,
                dcir_slope_percent_per_degree=-400.0,
                min_temperature_c=-40.0,
                max_temperature_c=80.0,
            )
        )
        normalizer = TemperatureNormalizer(store=store)

        assert normalizer.coefficients.soh_slope_per_degree == pytest.approx(1.0)
        assert normalizer.coefficients.dcir_slope_percent_per_degree == pytest.approx(-10.0)
        assert normalizer.coefficients.min_temperature_c == 10.0
        assert normalizer.coefficients.max_temperature_c == 50.0

        result = normalizer.normalize(80.0, 100.0, 28.0)
        assert result.normalized_soh == pytest.approx(77.0)
        assert result.normalized_dcir == pytest.approx(130.0)
        assert normalizer.normalize(80.0, 100.0, 60.0).applied is False

    def test_unknown_fields_tolerated(self, tmp_path):
        """Test files written by a newer version still load."""
        payload = NormalizerCoefficients(soh_slope_per_degree=0.3).model_dump(mode="json")
        payload["future_field"] = 1
        store = JsonCoefficientStore(tmp_path)
        store.coefficients_path.write_text(json.dumps(payload), encoding="utf-8")
        assert TemperatureNormalizer(store=store).coefficients.soh_slope_per_degree == pytest.approx(0.3)

    def test_write_failure_not_raised(self):
        """Test persistence errors never surface to the caller."""
        normalizer = TemperatureNormalizer(store=FailingStore())
        normalizer.record_observation(80.0, 90.0, 25.0)
        assert len(normalizer.observations) == 1

    def test_stores_are_isolated(self):
        """Test separately constructed normalizers do not share state."""
        first = TemperatureNormalizer()
        second = TemperatureNormalizer()
        record_series(first, lambda t: 80.0 + 0.5 * (t - 25.0))
        assert second.coefficients.soh_slope_per_degree == pytest.approx(0.15)


class TestTemperatureHelpers:
    """Test temperature quality, normalization need and test comparison."""

    @pytest.mark.parametrize(
        ("temperature", "expected"),
        [(25.0, 100.0), (20.0, 100.0), (17.0, 82.0), (33.0, 82.0), (12.0, 52.0), (0.0, 20.0), (45.0, 20.0)],
    )
    def test_temperature_quality(self, temperature, expected):
        """Test the piecewise temperature quality score."""
        assert temperature_quality(temperature) == pytest.approx(expected)

    def test_should_normalize(self):
        """Test a spread over 2 C requires normalization."""
        assert should_normalize([24.0, 25.5]) is False
        assert should_normalize([20.0, 25.0]) is True
        assert should_normalize([]) is False

    def test_compare_tests(self):
        """Test a 5-point SOH loss is classified as accelerating."""
        comparison = TemperatureNormalizer().compare_tests((90.0, 100.0, 25.0), (85.0, 110.0, 25.0))
        assert comparison.soh_change == pytest.approx(-5.0)
        assert comparison.dcir_change == pytest.approx(10.0)
        assert comparison.trend == DegradationTrend.ACCELERATING

    def test_compare_tests_corrects_temperature(self):
        """Test two tests differing only by the temperature effect are stable."""
        comparison = TemperatureNormalizer().compare_tests((80.0, None, 25.0), (80.75, None, 30.0))
        assert comparison.soh_change == pytest.approx(0.0, abs=1e-9)
        assert comparison.trend == DegradationTrend.STABLE
        assert comparison.dcir_change is None
