"""Tests for OCV curve reconstruction and knee detection."""

import pytest
from batthealth.analysis.ocv import OCVCurveBuilder
from batthealth.config.schema import OCVConfig


def knee_voltage(soc: int) -> float:
    """Gentle 10 mV/% slope above 30% SOC, 60 mV/% below it."""
    if soc >= 30:
        return 11.0 + 0.01 * soc
    return 11.3 - 0.06 * (30 - soc)


def linear_voltage(soc: int) -> float:
    return 10.0 + 0.02 * soc


@pytest.fixture
def dcir_points(make_dcir_point):
    return [make_dcir_point(80, 100.0), make_dcir_point(50, 100.0), make_dcir_point(20, 100.0)]


@pytest.fixture
def curve_readings(make_reading):
    """One rest reading per integer SOC from 99 down to 0."""

    def _make(voltage_fn, current_ma: float = 0.0):
        return [
            make_reading(99 - soc, soc=soc, voltage_v=voltage_fn(soc), current_ma=current_ma)
            for soc in range(99, -1, -1)
        ]

    return _make


class TestOCVCurve:
    """Test OCV reconstruction."""

    def test_reconstruct_adds_ir_drop(self, make_reading, make_dcir_point):
        """Test the IR drop of the nearest-SOC point is added back."""
        reading = make_reading(0, soc=48, voltage_v=11.0, current_ma=-2000.0)
        points = [make_dcir_point(80, 50.0), make_dcir_point(50, 100.0)]
        assert OCVCurveBuilder.reconstruct(reading, points) == pytest.approx(11.2)

    def test_insufficient_dcir_points(self, curve_readings, make_dcir_point):
        """Test too few DCIR points produce no curve."""
        builder = OCVCurveBuilder()
        points = [make_dcir_point(50, 100.0)]
        assert builder.build_curve(points, curve_readings(linear_voltage)) == []

        analysis = builder.analyze(curve_readings(linear_voltage), points)
        assert analysis.knee_soc is None
        assert analysis.knee_index == 100.0
        assert analysis.average_ocv_v is None

    def test_bins_ordered_and_positive(self, curve_readings, dcir_points):
        """Test one point per populated bin, strictly ascending SOC."""
        curve = OCVCurveBuilder().build_curve(dcir_points, curve_readings(linear_voltage))
        assert len(curve) == 50
        socs = [p.soc_bin for p in curve]
        assert all(a < b for a, b in zip(socs, socs[1:]))
        assert all(p.ocv_v > 0 for p in curve)
        assert all(p.sample_count == 2 for p in curve)
        assert curve[0].soc_bin == 1.0
        assert curve[0].ocv_v == pytest.approx((linear_voltage(0) + linear_voltage(1)) / 2)

    def test_custom_bin_size(self, curve_readings, dcir_points):
        """Test the bin width argument."""
        curve = OCVCurveBuilder().build_curve(dcir_points, curve_readings(linear_voltage), bin_size_percent=10.0)
        assert len(curve) == 10
        assert curve[0].soc_bin == 5.0

    def test_invalid_bin_size(self, curve_readings, dcir_points):
        """Test a non-positive bin width is refused."""
        with pytest.raises(ValueError):
            OCVCurveBuilder().build_curve(dcir_points, curve_readings(linear_voltage), bin_size_percent=0.0)

    def test_loaded_readings_reconstructed(self, curve_readings, dcir_points):
        """Test readings under load reconstruct to the rest curve."""
        loaded = curve_readings(lambda soc: linear_voltage(soc) - 0.2, current_ma=-2000.0)
        curve = OCVCurveBuilder().build_curve(dcir_points, loaded)
        assert curve[10].ocv_v == pytest.approx(linear_voltage(20) + 0.01, abs=1e-9)

    def test_charging_readings_ignored(self, make_reading, dcir_points):
        """Test charging samples do not enter the curve."""
        readings = [
            make_reading(0, soc=50, voltage_v=11.0, current_ma=0.0),
            make_reading(1, soc=60, voltage_v=12.0, current_ma=800.0, is_charging=True),
        ]
        curve = OCVCurveBuilder().build_curve(dcir_points, readings)
        assert [p.soc_bin for p in curve] == [51.0]


class TestKneeDetection:
    """Test knee detection and the knee index."""

    def test_knee_found(self, curve_readings, dcir_points):
        """Test the highest-SOC steep segment marks the knee."""
        builder = OCVCurveBuilder()
        analysis = builder.analyze(curve_readings(knee_voltage), dcir_points)
        assert analysis.knee_soc == pytest.approx(31.0)
        assert analysis.knee_index == pytest.approx(100.0 * (1 - 11.0 / 30.0))
        assert analysis.early_degradation is False

    def test_no_knee_on_linear_curve(self, curve_readings, dcir_points):
        """Test a uniform slope has no knee and a neutral index."""
        analysis = OCVCurveBuilder().analyze(curve_readings(linear_voltage), dcir_points)
        assert analysis.knee_soc is None
        assert analysis.knee_index == 100.0
        assert analysis.voltage_gradient_mv_per_percent == pytest.approx(20.0)

    def test_multiplier_is_tunable(self, curve_readings, dcir_points):
        """Test a large multiplier hides the knee."""
        builder = OCVCurveBuilder(OCVConfig(knee_slope_multiplier=20.0))
        assert builder.analyze(curve_readings(knee_voltage), dcir_points).knee_soc is None

    def test_short_curve_has_no_knee(self, curve_readings, dcir_points):
        """Test a curve with too few bins is not searched."""
        builder = OCVCurveBuilder()
        curve = builder.build_curve(dcir_points, curve_readings(knee_voltage))[:4]
        assert builder.find_knee(curve) is None

    def test_knee_index_penalizes_early_knee(self):
        """Test the index falls as the knee moves to higher SOC."""
        builder = OCVCurveBuilder()
        assert builder.knee_index(None) == 100.0
        assert builder.knee_index(10.0) == 100.0
        assert builder.knee_index(35.0) == pytest.approx(50.0)
        assert builder.knee_index(50.0) == 0.0
        assert builder.knee_index(70.0) == 0.0
        assert builder.knee_index(25.0) > builder.knee_index(30.0) > builder.knee_index(40.0)

    def test_early_knee_flags_degradation(self, curve_readings, dcir_points):
        """Test a knee above 40% SOC sets the early degradation flag."""

        def early(soc: int) -> float:
            if soc >= 46:
                return 11.0 + 0.01 * soc
            return 11.46 - 0.06 * (46 - soc)

        analysis = OCVCurveBuilder().analyze(curve_readings(early), dcir_points)
        assert analysis.knee_soc == pytest.approx(47.0)
        assert analysis.knee_index == pytest.approx(10.0)
        assert analysis.early_degradation is True
