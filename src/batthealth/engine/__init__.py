"""Test sequencing for the battery health assessment engine.

This module provides the cooperative scheduler, the load actuator interface,
the C-rate power presets and the health test orchestrator.
"""

from .actuator import LoadActuator
from .orchestrator import HealthTestOrchestrator
from .presets import design_energy_wh, equivalent_c_rate, suggest_preset, target_power
from .scheduler import ManualClock, Scheduler, SystemClock, TimerHandle

__all__ = [
    "LoadActuator",
    "HealthTestOrchestrator",
    "design_energy_wh",
    "equivalent_c_rate",
    "suggest_preset",
    "target_power",
    "ManualClock",
    "Scheduler",
    "SystemClock",
    "TimerHandle",
]
