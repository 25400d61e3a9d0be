"""Utility modules for the battery health assessment engine.

This module provides domain-specific enumerations, type definitions and the
package logger.
"""

from . import enums, types

__all__ = ["enums", "types"]
