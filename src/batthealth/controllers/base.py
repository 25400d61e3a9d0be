"""Abstract base controller interface for load control."""

import statistics
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from batthealth.models import ControllerState
from batthealth.utils.enums import ControlState
from batthealth.utils.logger import logger


class BaseController(ABC):
    """Abstract base class for load controllers.

    This class defines the common interface that controller implementations
    follow to drive an external load actuator: starting at a target, ticking
    the control law, reporting state and performance, and stopping.

    Attributes:
        controller_type: String identifier for the controller type
        performance_history: Historical performance metrics
        last_update_time: Wall time of the last control tick
        control_actions_count: Number of commands sent to the actuator
    """

    MAX_HISTORY_ENTRIES = 1000

    def __init__(self, clock: Callable[[], datetime] | None = None):
        """Initialize base controller.

        Args:
            clock: Source of timestamps for the performance history
        """
        self.controller_type: str = "base"
        self.performance_history: list[dict[str, Any]] = []
        self.last_update_time: datetime | None = None
        self.control_actions_count: int = 0
        self._clock = clock or datetime.now

        logger.debug(f"Initialized {self.__class__.__name__}")

    @abstractmethod
    def start(self, target_power_w: float) -> bool:
        """Start regulating toward ``target_power_w``.

        Returns:
            True if the controller started
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop regulating, zero the actuator and clear internal accumulators."""
        pass

    @abstractmethod
    def tick(self, dt: float) -> None:
        """Run one control period of ``dt`` seconds."""
        pass

    @abstractmethod
    def get_state(self) -> ControllerState:
        """Snapshot of the controller state."""
        pass

    @abstractmethod
    def get_performance_metrics(self) -> dict[str, Any]:
        """Current performance indicators such as power error and control quality."""
        pass

    @abstractmethod
    def reset(self) -> None:
        """Reset controller to initial state.

        This method clears all internal state and history,
        returning the controller to its initial condition.
        """
        pass

    # Common utility methods that can be used by all controllers

    def is_active(self) -> bool:
        """Whether the controller is regulating."""
        return self.get_state().state in (ControlState.STABILIZING, ControlState.STABLE)

    def is_stable(self) -> bool:
        """Whether the controller holds its target."""
        return self.get_state().state == ControlState.STABLE

    def _update_performance_history(self, metrics: dict[str, Any]) -> None:
        """Update performance history with latest metrics.

        Args:
            metrics: Latest performance metrics to record
        """
        timestamp_metrics = {"timestamp": self._clock(), **metrics}
        self.performance_history.append(timestamp_metrics)

        # Keep only last 1000 entries to prevent memory growth
        if len(self.performance_history) > self.MAX_HISTORY_ENTRIES:
            self.performance_history = self.performance_history[-self.MAX_HISTORY_ENTRIES :]

    def get_performance_summary(self) -> dict[str, Any]:
        """Get summary statistics of controller performance over time.

        Returns:
            Dictionary containing summary statistics like mean, std dev,
            min, max values for key performance metrics
        """
        if not self.performance_history:
            return {}

        # Extract numeric metrics
        numeric_metrics: dict[str, list[float]] = {}
        for entry in self.performance_history:
            for key, value in entry.items():
                if isinstance(value, int | float) and not isinstance(value, bool) and key != "timestamp":
                    numeric_metrics.setdefault(key, []).append(value)

        # Calculate summary statistics
        summary: dict[str, Any] = {}
        for metric, values in numeric_metrics.items():
            if values:
                summary[metric] = {
                    "mean": statistics.mean(values),
                    "std_dev": statistics.stdev(values) if len(values) > 1 else 0.0,
                    "min": min(values),
                    "max": max(values),
                    "count": len(values),
                }

        summary["total_entries"] = len(self.performance_history)
        summary["time_span_seconds"] = (
            (self.performance_history[-1]["timestamp"] - self.performance_history[0]["timestamp"]).total_seconds()
            if len(self.performance_history) > 1
            else 0
        )

        return summary

    def __str__(self) -> str:
        """String representation of controller."""
        return f"{self.__class__.__name__}({self.get_state().state.value}, actions={self.control_actions_count})"

    def __repr__(self) -> str:
        """Detailed string representation of controller."""
        return (
            f"{self.__class__.__name__}("
            f"type='{self.controller_type}', "
            f"state={self.get_state().state.value}, "
            f"actions={self.control_actions_count}, "
            f"history_entries={len(self.performance_history)})"
        )
