"""Open-circuit voltage reconstruction and knee detection.

Terminal voltage under load sits below the open-circuit voltage by the IR drop.
Adding back ``|I| x R`` (R from the DCIR point nearest in SOC) and averaging per
SOC bin yields an OCV-vs-SOC curve. The knee is where that curve starts to fall
off markedly faster than it does on average.
"""

import math
from collections.abc import Sequence
from statistics import median

from batthealth.config.schema import OCVConfig
from batthealth.models import DCIRPoint, OCVAnalysis, OCVPoint, Reading
from batthealth.utils.logger import logger
from batthealth.utils.types import clamp, ma_to_a, mohm_to_ohm


class OCVCurveBuilder:
    """Build OCV curves from readings and DCIR points and summarize their shape."""

    def __init__(self, config: OCVConfig | None = None):
        self.config = config or OCVConfig()

    def build_curve(
        self, dcir_points: Sequence[DCIRPoint], readings: Sequence[Reading], bin_size_percent: float | None = None
    ) -> list[OCVPoint]:
        """Reconstruct the OCV curve, one point per populated SOC bin, ascending SOC.

        Returns an empty curve when fewer than ``min_dcir_points`` DCIR points are
        available. Charging readings are ignored.
        """
        bin_size = bin_size_percent if bin_size_percent is not None else self.config.bin_size_percent
        if bin_size <= 0:
            raise ValueError("bin_size_percent must be positive")

        if len(dcir_points) < self.config.min_dcir_points:
            logger.debug(
                "OCV curve skipped: %d DCIR points, %d required", len(dcir_points), self.config.min_dcir_points
            )
            return []

        sums: dict[float, float] = {}
        counts: dict[float, int] = {}
        for reading in readings:
            if reading.is_charging:
                continue
            ocv = self.reconstruct(reading, dcir_points)
            if not math.isfinite(ocv) or ocv <= 0:
                continue
            center = math.floor(reading.soc / bin_size) * bin_size + bin_size / 2.0
            center = clamp(center, 0.0, 100.0)
            sums[center] = sums.get(center, 0.0) + ocv
            counts[center] = counts.get(center, 0) + 1

        return [
            OCVPoint(soc_bin=center, ocv_v=sums[center] / counts[center], sample_count=counts[center])
            for center in sorted(sums)
        ]

    @staticmethod
    def reconstruct(reading: Reading, dcir_points: Sequence[DCIRPoint]) -> float:
        """Open-circuit voltage of one reading using the nearest-SOC resistance.

        With discharge current negative, ``V - I x R`` raises the voltage back up
        by the IR drop.
        """
        if not dcir_points:
            return reading.voltage_v
        nearest = min(dcir_points, key=lambda p: abs(p.soc - reading.soc))
        return reading.voltage_v - ma_to_a(reading.current_ma) * mohm_to_ohm(nearest.resistance_mohm)

    def find_knee(self, curve: Sequence[OCVPoint]) -> float | None:
        """SOC of the knee, or None when the curve is too short or has no knee.

        Local slopes are taken between consecutive bins. The knee is the upper bin
        of the highest-SOC segment whose slope magnitude exceeds
        ``knee_slope_multiplier`` times the median slope magnitude.
        """
        if len(curve) < self.config.min_bins_for_knee:
            return None

        ordered = sorted(curve, key=lambda p: p.soc_bin)
        segments: list[tuple[float, float]] = []
        for lower, upper in zip(ordered, ordered[1:], strict=False):
            d_soc = upper.soc_bin - lower.soc_bin
            if d_soc <= 0:
                continue
            segments.append((upper.soc_bin, abs((upper.ocv_v - lower.ocv_v) / d_soc)))

        if not segments:
            return None

        typical = median(slope for _, slope in segments)
        if typical <= 1e-9:
            return None

        threshold = self.config.knee_slope_multiplier * typical
        steep = [soc for soc, slope in segments if slope > threshold]
        return max(steep) if steep else None

    def knee_index(self, knee_soc: float | None) -> float:
        """0-100 index, 100 when there is no knee or it sits at or below the floor SOC."""
        if knee_soc is None:
            return 100.0
        earliness = clamp(
            (knee_soc - self.config.knee_floor_soc_percent) / self.config.knee_penalty_span_percent, 0.0, 1.0
        )
        return (1.0 - earliness) * 100.0

    def analyze(
        self, readings: Sequence[Reading], dcir_points: Sequence[DCIRPoint], curve: Sequence[OCVPoint] | None = None
    ) -> OCVAnalysis:
        """Summarize the OCV curve of ``readings``.

        Args:
            readings: Session readings
            dcir_points: Accepted DCIR points of the session
            curve: A curve already built from the same inputs, to avoid rebuilding it

        Returns:
            Knee SOC and index, mean OCV, mean voltage gradient and early degradation flag
        """
        if curve is None:
            curve = self.build_curve(dcir_points, readings)
        if not curve:
            return OCVAnalysis()

        knee = self.find_knee(curve)
        index = self.knee_index(knee)

        gradient = 0.0
        if len(curve) >= 2 and curve[-1].soc_bin > curve[0].soc_bin:
            gradient = (curve[-1].ocv_v - curve[0].ocv_v) * 1000.0 / (curve[-1].soc_bin - curve[0].soc_bin)

        return OCVAnalysis(
            knee_soc=knee,
            knee_index=index,
            average_ocv_v=sum(p.ocv_v for p in curve) / len(curve),
            voltage_gradient_mv_per_percent=gradient,
            early_degradation=(knee if knee is not None else 25.0) > 40.0 or index < 50.0,
        )
