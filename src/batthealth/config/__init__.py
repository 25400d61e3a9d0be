"""Configuration module for the battery health assessment engine.

This module provides configuration loading capabilities using Pydantic models
to read YAML configuration files for runtime settings.
"""

from .loaders import ConfigLoader, YamlConfigLoader, load_config_from_dict, load_config_from_yaml
from .schema import (
    BatteryHealthConfig,
    ControllerConfig,
    DCIRConfig,
    HealthTestConfig,
    LoggingConfig,
    LogLevel,
    NormalizerConfig,
    OCVConfig,
    ScoringConfig,
)

__all__ = [
    # Configuration schema models
    "BatteryHealthConfig",
    "HealthTestConfig",
    "DCIRConfig",
    "OCVConfig",
    "ControllerConfig",
    "NormalizerConfig",
    "ScoringConfig",
    "LoggingConfig",
    "LogLevel",
    # Configuration loaders
    "ConfigLoader",
    "YamlConfigLoader",
    # Convenience functions
    "load_config_from_yaml",
    "load_config_from_dict",
]
