"""Load controllers for the battery health assessment engine.

This module provides the abstract controller interface and the constant-power
PI controller used during energy-window discharges.
"""

from .base import BaseController
from .constant_power import ConstantPowerController, select_load_profile

__all__ = [
    "BaseController",
    "ConstantPowerController",
    "select_load_profile",
]
