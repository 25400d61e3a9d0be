"""Measurement extraction and scoring for the battery health assessment engine.

This module provides the numeric components that turn a stream of readings into
health metrics: energy integration, DCIR estimation, OCV reconstruction,
temperature normalization, micro-drop statistics and the composite score.
"""

from .dcir import DCIRExtractor, analyze_dcir, degradation_score
from .energy import EnergyIntegrator, analyze_energy, average_power_over_period, estimated_time_remaining
from .ocv import OCVCurveBuilder
from .scoring import CompositeScorer, recommendation_for
from .stability import find_micro_drops, micro_drop_stats, stability_score
from .temperature import (
    CoefficientStore,
    InMemoryCoefficientStore,
    JsonCoefficientStore,
    TemperatureNormalizer,
    should_normalize,
    temperature_quality,
)

__all__ = [
    "EnergyIntegrator",
    "analyze_energy",
    "average_power_over_period",
    "estimated_time_remaining",
    "DCIRExtractor",
    "analyze_dcir",
    "degradation_score",
    "OCVCurveBuilder",
    "TemperatureNormalizer",
    "CoefficientStore",
    "InMemoryCoefficientStore",
    "JsonCoefficientStore",
    "temperature_quality",
    "should_normalize",
    "find_micro_drops",
    "micro_drop_stats",
    "stability_score",
    "CompositeScorer",
    "recommendation_for",
]
