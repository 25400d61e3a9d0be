"""Session runner for simulated health tests.

This module wires a simulated battery and load to a health test orchestrator
on a manual clock and steps the whole system forward in fixed increments:
advance the clock, draw the load from the battery, push the resulting reading
and run whatever the scheduler has due.
"""

from collections.abc import Callable
from datetime import datetime

from batthealth.analysis.temperature import TemperatureNormalizer
from batthealth.config.schema import BatteryHealthConfig
from batthealth.engine.orchestrator import HealthTestOrchestrator
from batthealth.engine.scheduler import ManualClock, Scheduler
from batthealth.models import HealthTestResult
from batthealth.sim.battery import SimulatedBattery
from batthealth.sim.load import SimulatedLoad
from batthealth.utils.enums import HealthTestState
from batthealth.utils.logger import logger


class SessionRunner:
    """Drive one simulated battery through health test runs.

    Attributes:
        battery: Simulated pack
        load: Simulated load actuator
        clock: Manual clock shared by the scheduler and the readings
        scheduler: Scheduler of the orchestrator and its controller
        orchestrator: The orchestrator under test
        step_s: Seconds per simulation step
        steps: Steps run so far
    """

    def __init__(
        self,
        battery: SimulatedBattery | None = None,
        load: SimulatedLoad | None = None,
        config: BatteryHealthConfig | None = None,
        normalizer: TemperatureNormalizer | None = None,
        step_s: float = 1.0,
        start_time: datetime | None = None,
    ):
        if step_s <= 0:
            raise ValueError("step_s must be positive")

        self.battery = battery or SimulatedBattery()
        self.load = load or SimulatedLoad()
        self.clock = ManualClock(start_time)
        self.scheduler = Scheduler(self.clock)
        self.orchestrator = HealthTestOrchestrator(
            self.load,
            self.scheduler,
            config=config,
            normalizer=normalizer,
        )
        self.step_s = step_s
        self.steps = 0

    @property
    def elapsed_s(self) -> float:
        return self.clock.monotonic()

    def start(self) -> bool:
        """Start a run from the battery's current state."""
        return self.orchestrator.start(self.battery.snapshot(self.clock.now()))

    def step(self) -> None:
        """Advance the simulation by one step."""
        self.clock.advance(self.step_s)
        self.battery.step(self.step_s, self.load.power_w)
        self.orchestrator.on_reading(self.battery.reading(self.clock.now()))
        self.scheduler.run_pending()
        self.steps += 1

    def run_for(self, seconds: float) -> None:
        """Step for ``seconds`` of simulated time regardless of the test state."""
        target = self.elapsed_s + seconds
        while self.elapsed_s < target:
            self.step()

    def run_until(self, predicate: Callable[[HealthTestOrchestrator], bool], max_duration_s: float) -> bool:
        """Step until ``predicate(orchestrator)`` holds or ``max_duration_s`` passes.

        Returns:
            True if the predicate was met
        """
        deadline = self.elapsed_s + max_duration_s
        while self.elapsed_s < deadline:
            if predicate(self.orchestrator):
                return True
            self.step()
        return predicate(self.orchestrator)

    def run(self, max_duration_s: float = 6 * 3600.0) -> HealthTestResult | None:
        """Start a run and step it to completion.

        Args:
            max_duration_s: Simulated time after which an unfinished run is stopped

        Returns:
            The run's result, or None when it failed, never started or timed out
        """
        if not self.start():
            return None

        finished = self.run_until(lambda o: not o.is_running, max_duration_s)
        if not finished:
            logger.warning(f"Simulated session did not finish within {max_duration_s:.0f} s, stopping")
            self.orchestrator.stop()
            return None

        if self.orchestrator.state != HealthTestState.COMPLETED:
            return None
        return self.orchestrator.result
