"""Load actuator interface.

The engine never generates load itself. It sends fire-and-forget commands to an
actuator that owns the actual CPU/GPU load generation.
"""

from typing import Protocol, runtime_checkable

from batthealth.utils.enums import LoadProfile, StopReason


@runtime_checkable
class LoadActuator(Protocol):
    """Controllable synthetic load."""

    def start(self, profile: LoadProfile) -> None:
        """Begin generating load with ``profile``."""
        ...

    def stop(self, reason: StopReason) -> None:
        """Stop generating load."""
        ...

    def set_intensity(self, duty: float) -> None:
        """Set the duty cycle, 0.0 (off) to 1.0 (full profile load)."""
        ...
