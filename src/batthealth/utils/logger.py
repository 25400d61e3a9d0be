"""Logging utilities for the battery health assessment engine.

This module provides the package logger and a helper that applies a
``LoggingConfig`` (level, rotating log file, console toggle) to it.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from batthealth.config.schema import LoggingConfig

# Create a default logger
logger = logging.getLogger("batthealth")

# Configure logging if not already configured
if not logger.handlers:
    # Create console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)

    # Create formatter
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    console_handler.setFormatter(formatter)

    # Add handler to logger
    logger.addHandler(console_handler)
    logger.setLevel(logging.INFO)


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """Apply a logging configuration to the package logger.

    Existing handlers are replaced, so calling this twice does not duplicate output.

    Args:
        config: Logging section of the engine configuration

    Returns:
        The configured package logger
    """
    level_name = getattr(config.level, "value", config.level)
    level = getattr(logging, str(level_name), logging.INFO)
    formatter = logging.Formatter(config.format)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if config.enable_console:
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setLevel(level)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if config.file_path:
        log_path = Path(config.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.setLevel(level)
    return logger


__all__ = ["logger", "configure_logging"]
