"""batthealth - Battery Health Assessment Engine."""

from .analysis import CompositeScorer, DCIRExtractor, EnergyIntegrator, OCVCurveBuilder, TemperatureNormalizer
from .controllers import ConstantPowerController
from .engine import HealthTestOrchestrator
from .models import HealthTestResult, Reading

__version__ = "0.1.0"
__description__ = "Battery health assessment by pulse DCIR, constant-power energy and OCV analysis"

__all__ = [
    "CompositeScorer",
    "ConstantPowerController",
    "DCIRExtractor",
    "EnergyIntegrator",
    "HealthTestOrchestrator",
    "HealthTestResult",
    "OCVCurveBuilder",
    "Reading",
    "TemperatureNormalizer",
]
