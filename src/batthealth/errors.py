"""Error taxonomy for the battery health assessment engine.

Failures that reach the user are always a short ``FailureReason`` plus an
optional numeric detail. Measurement rejections never leave the extractors and
persistence problems are recovered inside the coefficient stores.
"""

from pydantic import BaseModel, ConfigDict, Field

from batthealth.models import BatterySnapshot
from batthealth.utils.enums import FailureReason

FAILURE_MESSAGES: dict[FailureReason, str] = {
    FailureReason.LOW_BATTERY: "Battery level too low to start the test",
    FailureReason.CHARGING: "Battery is charging",
    FailureReason.EXTERNAL_POWER: "External power adapter is connected",
    FailureReason.ALREADY_RUNNING: "A test is already running",
    FailureReason.INSUFFICIENT_LOAD: "Cannot generate sufficient load",
    FailureReason.EXCESS_LOAD: "Cannot reduce load sufficiently",
}


class HealthTestFailure(BaseModel):
    """User-facing description of why a run stopped in the error state."""

    model_config = ConfigDict(frozen=True)

    reason: FailureReason
    detail: float | None = Field(default=None, description="Optional numeric context, e.g. the current SOC")

    @property
    def message(self) -> str:
        base = FAILURE_MESSAGES[self.reason]
        if self.detail is None:
            return base
        return f"{base} ({self.detail:g})"

    def __str__(self) -> str:
        return self.message


class BatteryHealthError(Exception):
    """Base class for engine errors."""


class _FailureError(BatteryHealthError):
    def __init__(self, reason: FailureReason, detail: float | None = None):
        self.failure = HealthTestFailure(reason=reason, detail=detail)
        super().__init__(self.failure.message)

    @property
    def reason(self) -> FailureReason:
        return self.failure.reason

    @property
    def detail(self) -> float | None:
        return self.failure.detail


class PreconditionError(_FailureError):
    """A start guard failed: low battery, charging or external power."""


class ControlError(_FailureError):
    """The constant-power controller saturated without reaching its target."""


class PersistenceError(BatteryHealthError):
    """Learned coefficients could not be read or written."""


def check_preconditions(snapshot: BatterySnapshot, min_soc_percent: int = 85) -> HealthTestFailure | None:
    """Return the first violated start guard, or None when the test may start.

    Args:
        snapshot: Battery state at the moment of the start request
        min_soc_percent: Minimum state of charge required

    Returns:
        The failure describing the violated guard, or None
    """
    if snapshot.soc < min_soc_percent:
        return HealthTestFailure(reason=FailureReason.LOW_BATTERY, detail=snapshot.soc)
    if snapshot.is_charging:
        return HealthTestFailure(reason=FailureReason.CHARGING)
    if snapshot.external_power:
        return HealthTestFailure(reason=FailureReason.EXTERNAL_POWER)
    return None


def require_preconditions(snapshot: BatterySnapshot, min_soc_percent: int = 85) -> None:
    """Raise ``PreconditionError`` when a start guard is violated.

    Raises:
        PreconditionError: If the battery is low, charging or on external power
    """
    failure = check_preconditions(snapshot, min_soc_percent)
    if failure is not None:
        raise PreconditionError(failure.reason, failure.detail)


__all__ = [
    "FAILURE_MESSAGES",
    "HealthTestFailure",
    "BatteryHealthError",
    "PreconditionError",
    "ControlError",
    "PersistenceError",
    "check_preconditions",
    "require_preconditions",
]
