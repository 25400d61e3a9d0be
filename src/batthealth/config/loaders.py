"""Configuration loaders for the battery health assessment engine.

This module provides configuration loading functionality using YAML files
with Pydantic validation for runtime settings.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .schema import BatteryHealthConfig

ENV_PREFIX = "BATTHEALTH_"
ENV_NESTING_SEPARATOR = "__"


class ConfigLoader(ABC):
    """Abstract base class for configuration loaders."""

    @abstractmethod
    def load_config(self, config_path: str | Path) -> BatteryHealthConfig:
        """Load configuration from a file.

        Args:
            config_path: Path to the configuration file

        Returns:
            Loaded and validated configuration

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ValidationError: If the config validation fails
        """
        pass

    @abstractmethod
    def load_config_from_dict(self, config_dict: dict[str, Any]) -> BatteryHealthConfig:
        """Load configuration from a dictionary.

        Args:
            config_dict: Configuration data as dictionary

        Returns:
            Loaded and validated configuration

        Raises:
            ValidationError: If the config validation fails
        """
        pass


class YamlConfigLoader(ConfigLoader):
    """YAML configuration loader implementation."""

    SECTIONS = ("test", "dcir", "ocv", "controller", "normalizer", "scoring", "logging")

    def __init__(self, safe_load: bool = True):
        """Initialize YAML configuration loader.

        Args:
            safe_load: Whether to use safe YAML loading (default: True)
        """
        self.safe_load = safe_load

    def _read_yaml(self, config_path: Path) -> dict[str, Any]:
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if not config_path.is_file():
            raise ValueError(f"Configuration path is not a file: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                if self.safe_load:
                    config_dict = yaml.safe_load(f)
                else:
                    config_dict = yaml.load(f, Loader=yaml.FullLoader)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Failed to parse YAML file {config_path}: {e}") from e
        except OSError as e:
            raise OSError(f"Failed to read configuration file {config_path}: {e}") from e

        if config_dict is None:
            raise ValueError(f"Configuration file {config_path} is empty")

        if not isinstance(config_dict, dict):
            raise ValueError(f"Configuration file {config_path} must contain a YAML mapping")

        return config_dict

    def load_config(self, config_path: str | Path) -> BatteryHealthConfig:
        """Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Loaded and validated configuration

        Raises:
            FileNotFoundError: If the config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
            ValidationError: If the config validation fails
        """
        return self.load_config_from_dict(self._read_yaml(Path(config_path)))

    def load_config_from_dict(self, config_dict: dict[str, Any]) -> BatteryHealthConfig:
        """Load configuration from a dictionary.

        Args:
            config_dict: Configuration data as dictionary

        Returns:
            Loaded and validated configuration

        Raises:
            ValidationError: If the config validation fails
        """
        if not isinstance(config_dict, dict):
            raise ValueError("Configuration data must be a dictionary")

        try:
            return BatteryHealthConfig(**config_dict)
        except ValidationError:
            raise
        except TypeError as e:
            raise ValueError(f"Failed to create configuration: {e}") from e

    def validate_config_structure(self, config_dict: dict[str, Any]) -> dict[str, Any]:
        """Validate and normalize configuration structure.

        Args:
            config_dict: Raw configuration dictionary

        Returns:
            Validated and normalized configuration dictionary

        Raises:
            ValueError: If configuration structure is invalid
        """
        if not isinstance(config_dict, dict):
            raise ValueError("Configuration must be a dictionary")

        # Ensure all sections exist (even if empty)
        for section in self.SECTIONS:
            if section not in config_dict:
                config_dict[section] = {}

        for section in self.SECTIONS:
            if not isinstance(config_dict[section], dict):
                raise ValueError(f"Configuration section '{section}' must be a dictionary")

        return config_dict

    def merge_with_defaults(self, config_dict: dict[str, Any]) -> dict[str, Any]:
        """Merge configuration with default values.

        Args:
            config_dict: User-provided configuration dictionary

        Returns:
            Configuration dictionary merged with defaults
        """
        default_dict = BatteryHealthConfig().model_dump(mode="json")
        return self._deep_merge(default_dict, config_dict)

    def _deep_merge(self, base: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
        """Deep merge two dictionaries.

        Args:
            base: Base dictionary
            update: Dictionary to merge into base

        Returns:
            Merged dictionary
        """
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def env_overrides(self, env_prefix: str = ENV_PREFIX) -> dict[str, Any]:
        """Collect nested overrides from environment variables.

        ``BATTHEALTH_CONTROLLER__KP=0.2`` becomes ``{"controller": {"kp": "0.2"}}``.
        Values stay strings; Pydantic coerces them during validation.

        Args:
            env_prefix: Environment variable prefix (default: "BATTHEALTH_")

        Returns:
            Nested override dictionary
        """
        overrides: dict[str, Any] = {}
        for key, value in os.environ.items():
            if not key.startswith(env_prefix):
                continue
            path = key[len(env_prefix) :].lower().split(ENV_NESTING_SEPARATOR)
            if not all(path):
                continue
            if path[0] not in BatteryHealthConfig.model_fields:
                continue
            node = overrides
            for part in path[:-1]:
                node = node.setdefault(part, {})
            if isinstance(node, dict):
                node[path[-1]] = value
        return overrides

    def load_config_with_env_override(
        self, config_path: str | Path | None = None, env_prefix: str = ENV_PREFIX
    ) -> BatteryHealthConfig:
        """Load configuration with environment variable overrides.

        Args:
            config_path: Path to the YAML configuration file, or None for defaults
            env_prefix: Environment variable prefix (default: "BATTHEALTH_")

        Returns:
            Loaded configuration with environment overrides

        Raises:
            FileNotFoundError: If the config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
            ValidationError: If the config validation fails
        """
        base = self._read_yaml(Path(config_path)) if config_path is not None else {}
        merged = self._deep_merge(self.merge_with_defaults(base), self.env_overrides(env_prefix))
        return self.load_config_from_dict(merged)

    def save_config(self, config: BatteryHealthConfig, config_path: str | Path) -> None:
        """Save configuration to a YAML file.

        Args:
            config: Configuration to save
            config_path: Path to save the configuration file

        Raises:
            OSError: If saving fails
        """
        config_path = Path(config_path)

        # Create parent directories if they don't exist
        config_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(config_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(config.model_dump(mode="json"), f, default_flow_style=False, sort_keys=False, indent=2)
        except OSError as e:
            raise OSError(f"Failed to save configuration to {config_path}: {e}") from e

    def generate_example_config(self, config_path: str | Path) -> None:
        """Generate an example configuration file.

        Args:
            config_path: Path to save the example configuration file
        """
        self.save_config(BatteryHealthConfig(), config_path)


def load_config_from_yaml(config_path: str | Path) -> BatteryHealthConfig:
    """Convenience function to load configuration from YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        Loaded and validated configuration

    Raises:
        FileNotFoundError: If the config file doesn't exist
        yaml.YAMLError: If YAML parsing fails
        ValidationError: If the config validation fails
    """
    loader = YamlConfigLoader()
    return loader.load_config(config_path)


def load_config_from_dict(config_dict: dict[str, Any]) -> BatteryHealthConfig:
    """Convenience function to load configuration from dictionary.

    Args:
        config_dict: Configuration data as dictionary

    Returns:
        Loaded and validated configuration

    Raises:
        ValidationError: If the config validation fails
    """
    loader = YamlConfigLoader()
    return loader.load_config_from_dict(config_dict)
