"""Synthetic load actuator for the simulation harness.

The real actuator spins CPU/GPU work; this one only turns the profile and duty
cycle it is commanded into the extra watts the simulated battery has to supply.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, field_validator

from batthealth.utils.enums import LoadProfile, StopReason
from batthealth.utils.types import W, clamp

logger = logging.getLogger(__name__)


class SimulatedLoad(BaseModel):
    """Load actuator drawing ``profile power x duty`` watts while running.

    Every command is appended to ``commands`` so tests can inspect what the
    engine asked for.
    """

    profile_power_w: dict[LoadProfile, float] = Field(
        default_factory=lambda: {LoadProfile.LIGHT: 5.0, LoadProfile.MEDIUM: 10.0, LoadProfile.HEAVY: 20.0},
        description="Full-intensity power of each profile in watts",
    )
    profile: LoadProfile | None = Field(default=None, description="Profile currently running")
    intensity: float = Field(default=0.0, ge=0.0, le=1.0, description="Current duty cycle")
    running: bool = Field(default=False, description="Whether load is being generated")
    commands: list[tuple[str, Any]] = Field(default_factory=list, description="Received commands, in order")

    @field_validator("profile_power_w")
    @classmethod
    def validate_profile_power(cls, v: dict[LoadProfile, float]) -> dict[LoadProfile, float]:
        """Validate every profile has a non-negative power."""
        missing = set(LoadProfile) - set(v)
        if missing:
            raise ValueError(f"Missing power for profiles: {sorted(p.value for p in missing)}")
        if any(power < 0 for power in v.values()):
            raise ValueError("Profile power must be non-negative")
        return v

    def start(self, profile: LoadProfile) -> None:
        self.commands.append(("start", profile))
        self.profile = profile
        self.running = True
        logger.debug(f"Simulated load started: {profile.value}")

    def stop(self, reason: StopReason) -> None:
        self.commands.append(("stop", reason))
        self.running = False
        self.intensity = 0.0
        logger.debug(f"Simulated load stopped: {reason.value}")

    def set_intensity(self, duty: float) -> None:
        self.commands.append(("set_intensity", duty))
        self.intensity = clamp(duty, 0.0, 1.0)

    @property
    def power_w(self) -> W:
        """Watts currently drawn by the load."""
        if not self.running or self.profile is None:
            return 0.0
        return self.profile_power_w[self.profile] * self.intensity

    def commands_named(self, name: str) -> list[Any]:
        """Arguments of every received command called ``name``."""
        return [argument for command, argument in self.commands if command == name]
