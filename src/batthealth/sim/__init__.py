"""Simulation harness for the battery health assessment engine.

This module provides a synthetic battery pack, a synthetic load actuator and a
session runner that drives the health test orchestrator second by second on a
manual clock.
"""

from .battery import SimulatedBattery
from .load import SimulatedLoad
from .runner import SessionRunner

__all__ = ["SimulatedBattery", "SimulatedLoad", "SessionRunner"]
