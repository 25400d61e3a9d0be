"""Temperature normalization of health measurements.

Capacity rises slightly and resistance falls as a pack warms, so results from
tests run at different ambient temperatures are corrected linearly toward a
25 C reference. The correction slopes start from textbook defaults and are
re-fitted from the device's own history of test observations.
"""

import json
from collections import deque
from collections.abc import Iterable, Sequence
from datetime import datetime
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter, ValidationError

from batthealth.analysis.regression import linear_slope
from batthealth.config.schema import NormalizerConfig
from batthealth.errors import PersistenceError
from batthealth.models import HealthComparison, NormalizationResult, NormalizerCoefficients, Observation
from batthealth.utils.enums import DegradationTrend
from batthealth.utils.logger import logger
from batthealth.utils.types import MIN_NORMALIZED_DCIR_MOHM, OUT_OF_RANGE_NORMALIZATION_QUALITY, clamp

_OBSERVATIONS = TypeAdapter(list[Observation])

TREND_RECOMMENDATIONS: dict[DegradationTrend, str] = {
    DegradationTrend.ACCELERATING: "Accelerated degradation detected. Consider replacement planning.",
    DegradationTrend.NORMAL: "Normal degradation rate. Continue monitoring.",
    DegradationTrend.STABLE: "Battery condition is stable.",
    DegradationTrend.IMPROVING: "Apparent improvement may indicate measurement variation.",
}


class CoefficientStore(Protocol):
    """Persistence for learned coefficients and the observation log."""

    def load_coefficients(self) -> NormalizerCoefficients | None: ...

    def save_coefficients(self, coefficients: NormalizerCoefficients) -> None: ...

    def load_observations(self) -> list[Observation]: ...

    def save_observations(self, observations: Sequence[Observation]) -> None: ...


class InMemoryCoefficientStore:
    """Store that keeps everything in process memory."""

    def __init__(self):
        self.coefficients: NormalizerCoefficients | None = None
        self.observations: list[Observation] = []

    def load_coefficients(self) -> NormalizerCoefficients | None:
        return self.coefficients

    def save_coefficients(self, coefficients: NormalizerCoefficients) -> None:
        self.coefficients = coefficients

    def load_observations(self) -> list[Observation]:
        return list(self.observations)

    def save_observations(self, observations: Sequence[Observation]) -> None:
        self.observations = list(observations)


class JsonCoefficientStore:
    """Store that keeps two JSON files in a directory.

    A missing, unreadable or malformed file reads as "nothing stored", so a
    corrupt file falls back to the default coefficients instead of failing.
    """

    COEFFICIENTS_FILE = "coefficients.json"
    OBSERVATIONS_FILE = "observations.json"

    def __init__(self, directory: str | Path):
        self.directory = Path(directory).expanduser()

    @property
    def coefficients_path(self) -> Path:
        return self.directory / self.COEFFICIENTS_FILE

    @property
    def observations_path(self) -> Path:
        return self.directory / self.OBSERVATIONS_FILE

    def _read(self, path: Path) -> str | None:
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e

    def _write(self, path: Path, payload: str) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(path.suffix + ".tmp")
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e

    def load_coefficients(self) -> NormalizerCoefficients | None:
        try:
            raw = self._read(self.coefficients_path)
            if raw is None:
                return None
            return NormalizerCoefficients.model_validate_json(raw)
        except (PersistenceError, ValidationError) as e:
            logger.warning(f"Ignoring stored temperature coefficients: {e}")
            return None

    def save_coefficients(self, coefficients: NormalizerCoefficients) -> None:
        self._write(self.coefficients_path, coefficients.model_dump_json(indent=2))

    def load_observations(self) -> list[Observation]:
        try:
            raw = self._read(self.observations_path)
            if raw is None:
                return []
            return _OBSERVATIONS.validate_json(raw)
        except (PersistenceError, ValidationError) as e:
            logger.warning(f"Ignoring stored temperature observations: {e}")
            return []

    def save_observations(self, observations: Sequence[Observation]) -> None:
        payload = json.dumps(_OBSERVATIONS.dump_python(list(observations), mode="json"), indent=2)
        self._write(self.observations_path, payload)


class TemperatureNormalizer:
    """Linear temperature correction with self-learned slopes.

    Attributes:
        config: Reference temperature, default slopes, bounds and caps
        store: Where coefficients and observations are persisted
        coefficients: The slopes currently in use
        observations: Most recent observations, capped at ``max_observations``
    """

    def __init__(self, config: NormalizerConfig | None = None, store: CoefficientStore | None = None):
        self.config = config or NormalizerConfig()
        self.store: CoefficientStore = store if store is not None else InMemoryCoefficientStore()

        stored = self.store.load_coefficients()
        self.coefficients = self.bounded(stored) if stored is not None else self.default_coefficients()
        self.observations: deque[Observation] = deque(
            self.store.load_observations(), maxlen=self.config.max_observations
        )

    def default_coefficients(self) -> NormalizerCoefficients:
        cfg = self.config
        return NormalizerCoefficients(
            soh_slope_per_degree=cfg.soh_slope_per_degree,
            dcir_slope_percent_per_degree=cfg.dcir_slope_percent_per_degree,
            min_temperature_c=cfg.min_temperature_c,
            max_temperature_c=cfg.max_temperature_c,
        )

    def bounded(self, coefficients: NormalizerCoefficients) -> NormalizerCoefficients:
        """Clamp stored slopes to the safety bounds and take the valid range from the config."""
        cfg = self.config
        soh_slope = clamp(coefficients.soh_slope_per_degree, -cfg.soh_slope_bound, cfg.soh_slope_bound)
        dcir_slope = clamp(coefficients.dcir_slope_percent_per_degree, -cfg.dcir_slope_bound, cfg.dcir_slope_bound)
        if (
            soh_slope != coefficients.soh_slope_per_degree
            or dcir_slope != coefficients.dcir_slope_percent_per_degree
        ):
            logger.warning(
                f"Stored temperature slopes out of bounds (SOH {coefficients.soh_slope_per_degree:+.3f}, "
                f"DCIR {coefficients.dcir_slope_percent_per_degree:+.3f}), clamping"
            )
        return coefficients.model_copy(
            update={
                "soh_slope_per_degree": soh_slope,
                "dcir_slope_percent_per_degree": dcir_slope,
                "min_temperature_c": cfg.min_temperature_c,
                "max_temperature_c": cfg.max_temperature_c,
            }
        )

    def normalize(
        self, soh_energy: float, dcir_at_50: float | None, average_temperature: float
    ) -> NormalizationResult:
        """Correct SOH and DCIR@50% to the reference temperature.

        Outside the valid temperature range the raw values are returned with a
        low fixed quality rather than extrapolating the correction.

        Args:
            soh_energy: Raw SOH-by-energy in percent
            dcir_at_50: Raw DCIR at 50% SOC in mOhm, if measured
            average_temperature: Mean test temperature in Celsius

        Returns:
            The normalized values and a 0-100 quality
        """
        coefficients = self.coefficients
        if not coefficients.in_range(average_temperature):
            logger.debug(f"Temperature {average_temperature:.1f}C outside correctable range, not normalizing")
            return NormalizationResult(
                normalized_soh=clamp(soh_energy, 0.0, 100.0),
                normalized_dcir=dcir_at_50,
                quality=OUT_OF_RANGE_NORMALIZATION_QUALITY,
                temperature_delta_c=average_temperature - self.config.reference_temperature_c,
                applied=False,
            )

        delta = average_temperature - self.config.reference_temperature_c
        normalized_soh = clamp(soh_energy - delta * coefficients.soh_slope_per_degree, 0.0, 100.0)

        normalized_dcir = None
        if dcir_at_50 is not None:
            corrected = dcir_at_50 * (1.0 - delta * coefficients.dcir_slope_percent_per_degree / 100.0)
            normalized_dcir = max(MIN_NORMALIZED_DCIR_MOHM, corrected)

        return NormalizationResult(
            normalized_soh=normalized_soh,
            normalized_dcir=normalized_dcir,
            quality=max(50.0, 100.0 - abs(delta) * 3.0),
            temperature_delta_c=delta,
        )

    def record_observation(
        self,
        soh_energy: float,
        dcir_at_50: float | None,
        temperature: float,
        timestamp: datetime | None = None,
    ) -> None:
        """Append an observation, re-fit when enough history exists and persist.

        Persistence failures are logged and otherwise ignored.
        """
        observation = Observation(
            timestamp=timestamp or datetime.now(),
            temperature_c=temperature,
            soh_energy=soh_energy,
            dcir_at_50=dcir_at_50,
        )
        self.observations.append(observation)

        if len(self.observations) >= self.config.min_observations:
            self._refit()

        self._persist()

    def _refit(self) -> None:
        cfg = self.config
        observations = list(self.observations)
        soh_slope = self.coefficients.soh_slope_per_degree
        dcir_slope = self.coefficients.dcir_slope_percent_per_degree

        fitted = linear_slope([o.temperature_c for o in observations], [o.soh_energy for o in observations])
        if fitted is not None:
            soh_slope = clamp(fitted, -cfg.soh_slope_bound, cfg.soh_slope_bound)

        with_dcir = [o for o in observations if o.dcir_at_50 is not None]
        if len(with_dcir) >= cfg.min_dcir_observations:
            values = [o.dcir_at_50 for o in with_dcir]
            mean_dcir = sum(values) / len(values)
            fitted = linear_slope([o.temperature_c for o in with_dcir], values)
            if fitted is not None and mean_dcir > 0:
                dcir_slope = clamp(fitted / mean_dcir * 100.0, -cfg.dcir_slope_bound, cfg.dcir_slope_bound)

        self.coefficients = self.coefficients.model_copy(
            update={
                "soh_slope_per_degree": soh_slope,
                "dcir_slope_percent_per_degree": dcir_slope,
                "observation_count": len(observations),
                "updated_at": observations[-1].timestamp,
            }
        )
        logger.info(
            f"Re-fitted temperature slopes from {len(observations)} observations: "
            f"SOH {soh_slope:+.3f} %/C, DCIR {dcir_slope:+.3f} %/C"
        )

    def _persist(self) -> None:
        try:
            self.store.save_observations(list(self.observations))
            self.store.save_coefficients(self.coefficients)
        except PersistenceError as e:
            logger.warning(f"Could not persist temperature coefficients: {e}")

    def reset(self) -> None:
        """Forget all observations and go back to the default slopes."""
        self.coefficients = self.default_coefficients()
        self.observations.clear()
        self._persist()
        logger.info("Temperature normalizer reset to default coefficients")

    def compare_tests(
        self,
        first: tuple[float, float | None, float],
        second: tuple[float, float | None, float],
    ) -> HealthComparison:
        """Compare two tests given as ``(soh_energy, dcir_at_50, temperature)`` after normalizing both.

        The DCIR change is reported in percent of the first test's value.
        """
        a = self.normalize(*first)
        b = self.normalize(*second)

        soh_change = b.normalized_soh - a.normalized_soh
        dcir_change = None
        if a.normalized_dcir is not None and b.normalized_dcir is not None and a.normalized_dcir > 0:
            dcir_change = (b.normalized_dcir - a.normalized_dcir) / a.normalized_dcir * 100.0

        if soh_change < -2.0:
            trend = DegradationTrend.ACCELERATING
        elif soh_change < -0.5:
            trend = DegradationTrend.NORMAL
        elif soh_change > 1.0:
            trend = DegradationTrend.IMPROVING
        else:
            trend = DegradationTrend.STABLE

        return HealthComparison(
            soh_change=soh_change,
            dcir_change=dcir_change,
            trend=trend,
            recommendation=TREND_RECOMMENDATIONS[trend],
        )


def temperature_quality(temperature: float) -> float:
    """How suitable the ambient temperature was for testing, 0-100."""
    if 20.0 <= temperature <= 30.0:
        return 100.0
    if 15.0 <= temperature <= 35.0:
        distance = min(abs(temperature - 20.0), abs(temperature - 30.0))
        return max(70.0, 100.0 - distance * 6.0)
    if 10.0 <= temperature <= 40.0:
        distance = min(abs(temperature - 15.0), abs(temperature - 35.0))
        return max(40.0, 70.0 - distance * 6.0)
    return 20.0


def should_normalize(temperatures: Iterable[float]) -> bool:
    """Whether tests spread over more than 2 C need normalizing before comparison."""
    values = list(temperatures)
    if not values:
        return False
    return max(values) - min(values) > 2.0
