"""Constant-power PI controller.

This module implements the feedback loop that holds battery discharge power at
a target wattage by adjusting the duty cycle of an external load actuator.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from batthealth.config.schema import ControllerConfig
from batthealth.controllers.base import BaseController
from batthealth.errors import ControlError
from batthealth.models import ControllerState
from batthealth.utils.enums import ControlState, FailureReason, LoadProfile, StopReason
from batthealth.utils.logger import logger
from batthealth.utils.types import MIN_CONTROLLABLE_POWER_W, clamp

if TYPE_CHECKING:
    from batthealth.engine.actuator import LoadActuator
    from batthealth.engine.scheduler import Scheduler, TimerHandle

# Target power bands of the synthetic load profiles, in watts
LIGHT_PROFILE_MAX_W = 8.0
MEDIUM_PROFILE_MAX_W = 15.0


def select_load_profile(target_power_w: float) -> LoadProfile:
    """Pick the lightest load profile able to reach ``target_power_w``."""
    if target_power_w <= LIGHT_PROFILE_MAX_W:
        return LoadProfile.LIGHT
    if target_power_w <= MEDIUM_PROFILE_MAX_W:
        return LoadProfile.MEDIUM
    return LoadProfile.HEAVY


class ConstantPowerController(BaseController):
    """PI controller driving a load actuator's duty cycle toward a target power.

    The controller ticks at a fixed period independent of the reading cadence.
    Measured power is pushed in with ``report_power``; a tick without a fresh
    measurement holds the last duty cycle. Saturation at a duty bound while
    still missing the target by more than ``saturation_error`` for
    ``saturation_ticks`` ticks is a control failure.

    State machine: IDLE -> STABILIZING -> STABLE, with STABLE -> STABILIZING when
    the error grows past ``unstable_error`` and ERROR from either active state.
    """

    def __init__(
        self,
        actuator: LoadActuator,
        config: ControllerConfig | None = None,
        scheduler: Scheduler | None = None,
        on_error: Callable[[ControlError], None] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize constant-power controller.

        Args:
            actuator: Load actuator receiving profile and intensity commands
            config: Gains, tolerances and window sizes
            scheduler: Scheduler used to tick the control law; ticks are manual when None
            on_error: Called with the ControlError when regulation fails; the error
                is raised from ``tick`` instead when no callback is set
            clock: Source of timestamps for the performance history
        """
        super().__init__(clock=clock)
        self.controller_type = "constant_power"
        self.actuator = actuator
        self.config = config or ControllerConfig()
        self.scheduler = scheduler
        self.on_error = on_error

        self._tick_handle: TimerHandle | None = None
        self._state = ControlState.IDLE
        self._target_power_w = 0.0
        self._measured_power_w = 0.0
        self._pending_power_w: float | None = None
        self._duty = 0.0
        self._integral = 0.0
        self._elapsed_s = 0.0
        self._within_tolerance_since: float | None = None
        self._saturated_ticks = 0
        self._history: deque[float] = deque(maxlen=self.config.history_size)
        self._profile: LoadProfile | None = None
        self.last_error: ControlError | None = None

    # Properties

    @property
    def state(self) -> ControlState:
        return self._state

    @property
    def target_power_w(self) -> float:
        return self._target_power_w

    @property
    def measured_power_w(self) -> float:
        return self._measured_power_w

    @property
    def duty_cycle(self) -> float:
        return self._duty

    @property
    def integral(self) -> float:
        return self._integral

    @property
    def profile(self) -> LoadProfile | None:
        return self._profile

    @property
    def power_error_w(self) -> float:
        return self._target_power_w - self._measured_power_w

    @property
    def error_percent(self) -> float:
        """Signed power error in percent of the target."""
        if self._target_power_w <= 0:
            return 0.0
        return self.power_error_w / self._target_power_w * 100.0

    @property
    def control_quality(self) -> float:
        """0-100 score from the mean error and the spread of recent power samples.

        Fewer than 10 samples score a neutral 50.
        """
        if len(self._history) < 10:
            return 50.0

        recent = list(self._history)[-self.config.quality_window :]
        mean = sum(recent) / len(recent)
        std_dev = math.sqrt(sum((p - mean) ** 2 for p in recent) / len(recent))

        relative_error = abs(mean - self._target_power_w) / max(MIN_CONTROLLABLE_POWER_W, self._target_power_w)
        spread = std_dev / max(MIN_CONTROLLABLE_POWER_W, mean)

        error_penalty = min(50.0, relative_error * 200.0)
        spread_penalty = min(30.0, spread * 300.0)
        return max(0.0, 100.0 - error_penalty - spread_penalty)

    def is_active(self) -> bool:
        return self._state in (ControlState.STABILIZING, ControlState.STABLE)

    # Control lifecycle

    def start(self, target_power_w: float, profile: LoadProfile | None = None) -> bool:
        """Start regulating toward ``target_power_w``.

        Args:
            target_power_w: Target discharge power in watts
            profile: Load profile to run; chosen from the target when None

        Returns:
            True if the controller started

        Raises:
            ValueError: If the target is below the controllable minimum
        """
        if target_power_w < MIN_CONTROLLABLE_POWER_W:
            raise ValueError(f"Target power must be at least {MIN_CONTROLLABLE_POWER_W} W, got {target_power_w}")
        if self.is_active():
            logger.warning(f"{self.__class__.__name__} already running, ignoring start")
            return False

        self._clear_accumulators()
        self._target_power_w = target_power_w
        self._duty = self.config.initial_duty
        self._profile = profile or select_load_profile(target_power_w)
        self.last_error = None
        self._state = ControlState.STABILIZING

        self.actuator.start(self._profile)
        self.actuator.set_intensity(self._duty)
        self.control_actions_count += 1

        if self.scheduler is not None:
            interval = self.config.tick_interval_s
            self._tick_handle = self.scheduler.call_every(interval, self.tick, interval)

        logger.info(f"Constant-power control started: target {target_power_w:.2f} W, profile {self._profile.value}")
        return True

    def stop(self) -> None:
        """Stop regulating, zero the actuator and reset all accumulators.

        Calling ``stop`` on an idle controller does nothing.
        """
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None

        if self._state == ControlState.IDLE and self._profile is None:
            return

        self.actuator.set_intensity(0.0)
        self.actuator.stop(StopReason.CONTROLLER_STOPPED)
        self.control_actions_count += 1

        self._clear_accumulators()
        self._state = ControlState.IDLE
        logger.info("Constant-power control stopped")

    def reset(self) -> None:
        """Stop and forget the performance history."""
        self.stop()
        self.performance_history.clear()
        self.control_actions_count = 0
        self.last_error = None

    def _clear_accumulators(self) -> None:
        self._target_power_w = 0.0
        self._measured_power_w = 0.0
        self._pending_power_w = None
        self._duty = 0.0
        self._integral = 0.0
        self._elapsed_s = 0.0
        self._within_tolerance_since = None
        self._saturated_ticks = 0
        self._history.clear()
        self._profile = None

    def update_target_power(self, target_power_w: float) -> None:
        """Change the target while running.

        A change of more than 20% resets the integral term and restarts
        stabilization.
        """
        if target_power_w < MIN_CONTROLLABLE_POWER_W:
            return

        previous = self._target_power_w
        self._target_power_w = target_power_w
        if abs(target_power_w - previous) > previous * 0.2:
            self._integral = 0.0
            self._within_tolerance_since = None
            if self._state == ControlState.STABLE:
                self._state = ControlState.STABILIZING
        logger.info(f"Constant-power target changed from {previous:.2f} W to {target_power_w:.2f} W")

    def report_power(self, power_w: float) -> None:
        """Record the latest measured discharge power in watts."""
        self._pending_power_w = abs(power_w)

    # Control law

    def tick(self, dt: float) -> None:
        """Run one control period.

        Args:
            dt: Seconds since the previous tick

        Raises:
            ControlError: If regulation failed and no ``on_error`` callback is set
        """
        if not self.is_active():
            return

        self._elapsed_s += dt
        measurement = self._pending_power_w
        self._pending_power_w = None

        if measurement is None:
            # Stale or missing reading: hold the last command
            self.actuator.set_intensity(self._duty)
            self.control_actions_count += 1
            logger.debug("No fresh power reading, holding duty cycle %.3f", self._duty)
            return

        cfg = self.config
        self._measured_power_w = measurement
        self._history.append(measurement)

        error = self._target_power_w - measurement
        self._integral = clamp(self._integral + error * cfg.ki * dt, -cfg.max_integral, cfg.max_integral)
        self._duty = clamp(self._duty + error * cfg.kp + self._integral, 0.0, 1.0)

        self.actuator.set_intensity(self._duty)
        self.control_actions_count += 1
        self.last_update_time = self._clock()

        if self._check_saturation(measurement):
            return
        self._update_state(abs(error) / max(MIN_CONTROLLABLE_POWER_W, self._target_power_w))
        self._update_performance_history(self.get_performance_metrics())

    def _check_saturation(self, measurement: float) -> bool:
        cfg = self.config
        reason = None
        if self._duty >= 0.99 and measurement < self._target_power_w * (1.0 - cfg.saturation_error):
            reason = FailureReason.INSUFFICIENT_LOAD
        elif self._duty <= 0.01 and measurement > self._target_power_w * (1.0 + cfg.saturation_error):
            reason = FailureReason.EXCESS_LOAD

        if reason is None:
            self._saturated_ticks = 0
            return False

        self._saturated_ticks += 1
        if self._saturated_ticks < cfg.saturation_ticks:
            return False

        error = ControlError(reason, round(measurement, 2))
        self._fail(error)
        return True

    def _fail(self, error: ControlError) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        self.actuator.set_intensity(0.0)
        self._state = ControlState.ERROR
        self.last_error = error
        logger.error(f"Constant-power control failed: {error}")

        if self.on_error is not None:
            self.on_error(error)
        else:
            raise error

    def _update_state(self, relative_error: float) -> None:
        cfg = self.config
        if self._state == ControlState.STABILIZING:
            if relative_error < cfg.stable_error:
                if self._within_tolerance_since is None:
                    self._within_tolerance_since = self._elapsed_s
                elif self._elapsed_s - self._within_tolerance_since >= cfg.stable_hold_s:
                    self._state = ControlState.STABLE
                    logger.info(f"Constant-power control stable at {self._measured_power_w:.2f} W")
            else:
                self._within_tolerance_since = None
        elif self._state == ControlState.STABLE and relative_error > cfg.unstable_error:
            self._state = ControlState.STABILIZING
            self._within_tolerance_since = None
            logger.info(f"Constant-power control lost target: error {relative_error * 100:.1f}%")

    # Reporting

    def get_state(self) -> ControllerState:
        return ControllerState(
            state=self._state,
            target_power_w=self._target_power_w,
            measured_power_w=self._measured_power_w,
            duty_cycle=self._duty,
            integral=self._integral,
            control_quality=self.control_quality,
        )

    def get_performance_metrics(self) -> dict[str, Any]:
        return {
            "target_power_w": self._target_power_w,
            "measured_power_w": self._measured_power_w,
            "power_error_w": self.power_error_w,
            "duty_cycle": self._duty,
            "integral": self._integral,
            "control_quality": self.control_quality,
        }
