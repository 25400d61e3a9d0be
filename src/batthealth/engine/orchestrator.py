"""Health test orchestration.

The orchestrator is the state machine that sequences one health test run:

    IDLE -> CALIBRATING -> PULSE_TESTING(80) -> ENERGY_WINDOW(80->50)
         -> PULSE_TESTING(60) -> PULSE_TESTING(40) -> PULSE_TESTING(20)
         -> ANALYZING -> COMPLETED | ERROR

Readings are pushed in by the battery source and buffered; timed transitions
(calibration, pulse and rest periods) are scheduled on a cooperative
``Scheduler``. Everything runs on the caller's thread, one event at a time.
"""

from collections import deque
from collections.abc import Callable

from batthealth.analysis.dcir import DCIRExtractor
from batthealth.analysis.energy import EnergyIntegrator
from batthealth.analysis.ocv import OCVCurveBuilder
from batthealth.analysis.scoring import CompositeScorer, recommendation_for
from batthealth.analysis.stability import micro_drop_stats, stability_score
from batthealth.analysis.temperature import TemperatureNormalizer, temperature_quality
from batthealth.config.schema import BatteryHealthConfig
from batthealth.controllers.constant_power import ConstantPowerController
from batthealth.engine.actuator import LoadActuator
from batthealth.engine.presets import design_energy_wh, target_power
from batthealth.engine.scheduler import Scheduler, TimerHandle
from batthealth.errors import ControlError, HealthTestFailure, check_preconditions
from batthealth.models import BatterySnapshot, DCIRPoint, HealthTestResult, HealthTestStatus, Reading
from batthealth.utils.enums import HealthTestState, StopReason
from batthealth.utils.logger import logger
from batthealth.utils.types import clamp, seconds_between


class HealthTestOrchestrator:
    """Runs the calibration, pulse, energy-window and analysis phases of a test.

    Attributes:
        actuator: Load actuator driven during pulses and energy windows
        scheduler: Scheduler for timed transitions and controller ticks
        config: Engine configuration
        normalizer: Temperature normalizer, shared across runs so it keeps learning
        controller: Constant-power controller for energy windows
        result: Result of the last completed run
        failure: Reason the last run ended in ERROR
    """

    def __init__(
        self,
        actuator: LoadActuator,
        scheduler: Scheduler,
        config: BatteryHealthConfig | None = None,
        normalizer: TemperatureNormalizer | None = None,
        on_result: Callable[[HealthTestResult], None] | None = None,
        on_state_change: Callable[[HealthTestState], None] | None = None,
    ):
        self.actuator = actuator
        self.scheduler = scheduler
        self.config = config or BatteryHealthConfig()
        self.normalizer = normalizer or TemperatureNormalizer(self.config.normalizer)
        self.on_result = on_result
        self.on_state_change = on_state_change

        self.controller = ConstantPowerController(
            actuator,
            self.config.controller,
            scheduler=scheduler,
            on_error=self._on_control_error,
            clock=scheduler.clock.now,
        )
        self.dcir = DCIRExtractor(self.config.dcir)
        self.ocv = OCVCurveBuilder(self.config.ocv)
        self.energy = EnergyIntegrator()
        self.scorer = CompositeScorer(self.config.scoring)

        self.result: HealthTestResult | None = None
        self.failure: HealthTestFailure | None = None

        self._state = HealthTestState.IDLE
        self._step = ""
        self._run_id = 0
        self._queue: deque[Reading] = deque()
        self._processing = False
        self._handles: list[TimerHandle] = []
        self._reset_run_data()

    def _reset_run_data(self) -> None:
        self._snapshot: BatterySnapshot | None = None
        self._samples: list[Reading] = []
        self._dcir_points: list[DCIRPoint] = []
        self._cp_intervals: list[list[int | None]] = []
        self._target_index = 0
        self._series_running = False
        self._pulse_index = 0
        self._pulse_start_index = 0
        self._window_end_soc: int | None = None
        self._target_power_w = 0.0
        self._control_quality = 0.0

    # State

    @property
    def state(self) -> HealthTestState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state.is_active

    @property
    def samples(self) -> tuple[Reading, ...]:
        """Readings recorded in the current run."""
        return tuple(self._samples)

    @property
    def dcir_points(self) -> tuple[DCIRPoint, ...]:
        """DCIR points accepted in the current run."""
        return tuple(self._dcir_points)

    @property
    def target_soc(self) -> int | None:
        """SOC the current pulse phase waits for, if any."""
        if self._state != HealthTestState.PULSE_TESTING:
            return None
        return self.config.test.pulse_soc_targets[self._target_index]

    @property
    def waiting_for_soc(self) -> bool:
        """True while idling until the battery discharges to the next pulse target."""
        return self._state == HealthTestState.PULSE_TESTING and not self._series_running

    def _set_state(self, state: HealthTestState, step: str) -> None:
        previous = self._state
        self._state = state
        self._step = step
        if previous != state:
            logger.info(f"Health test: {previous.value} -> {state.value} ({step})")
            if self.on_state_change is not None:
                self.on_state_change(state)

    def status(self) -> HealthTestStatus:
        """Pollable progress readout."""
        return HealthTestStatus(
            state=self._state,
            target_soc=self.target_soc,
            step=self._step,
            progress=self._progress(),
        )

    def _progress(self) -> float:
        if self._state == HealthTestState.COMPLETED:
            return 1.0
        if not self._state.is_active or self._snapshot is None or not self._samples:
            return 0.0
        if self._state == HealthTestState.ANALYZING:
            return 0.99
        start_soc = self._snapshot.soc
        final_soc = self.config.test.pulse_soc_targets[-1]
        span = max(1, start_soc - final_soc)
        return clamp((start_soc - self._samples[-1].soc) / span, 0.0, 0.98)

    # Run control

    def start(self, snapshot: BatterySnapshot) -> bool:
        """Start a test run from the battery state in ``snapshot``.

        Starting while a run is active does nothing. A violated precondition puts
        the orchestrator in ERROR with the failure recorded and no other effect.

        Returns:
            True if the run started
        """
        if self._state.is_active:
            logger.warning("Health test already running, ignoring start request")
            return False

        failure = check_preconditions(snapshot, self.config.test.min_start_soc_percent)
        if failure is not None:
            self.failure = failure
            self._set_state(HealthTestState.ERROR, failure.message)
            logger.error(f"Health test not started: {failure.message}")
            return False

        self._run_id += 1
        self._reset_run_data()
        self._queue.clear()
        self.failure = None
        self.result = None
        self._snapshot = snapshot
        self._samples.append(snapshot.to_reading())

        self._set_state(HealthTestState.CALIBRATING, "Calibrating resting baseline")
        self._schedule(self.config.test.calibration_duration_s, self._finish_calibration)
        return True

    def stop(self) -> None:
        """Cancel the run, release the actuator and return to IDLE.

        Pending timed transitions are cancelled and the run's data is discarded;
        a cancelled run produces no result.
        """
        was_active = self._state.is_active
        self._run_id += 1
        self._cancel_scheduled()
        self.controller.stop()
        if was_active:
            self.actuator.stop(StopReason.USER_STOPPED)
            logger.info("Health test stopped by user")
        self._queue.clear()
        self._reset_run_data()
        self._set_state(HealthTestState.IDLE, "")

    def _fail(self, failure: HealthTestFailure) -> None:
        self._run_id += 1
        self._cancel_scheduled()
        self.controller.stop()
        self.actuator.stop(StopReason.TEST_FAILED)
        self._queue.clear()
        self._reset_run_data()
        self.failure = failure
        self._set_state(HealthTestState.ERROR, failure.message)
        logger.error(f"Health test failed: {failure.message}")

    def _on_control_error(self, error: ControlError) -> None:
        if self._state.is_active:
            self._fail(error.failure)

    # Scheduling

    def _schedule(self, delay: float, callback: Callable[[], None]) -> None:
        run_id = self._run_id

        def fire() -> None:
            if run_id != self._run_id:
                return
            callback()

        self._handles = [h for h in self._handles if not h.done]
        handle = self.scheduler.call_later(delay, fire)
        self._handles.append(handle)

    def _cancel_scheduled(self) -> None:
        for handle in self._handles:
            handle.cancel()
        self._handles.clear()

    # Reading intake

    def submit(self, reading: Reading) -> None:
        """Queue a reading without processing it."""
        self._queue.append(reading)

    def process_pending(self) -> int:
        """Process queued readings in arrival order.

        Returns:
            Number of readings processed
        """
        if self._processing:
            return 0
        self._processing = True
        processed = 0
        try:
            while self._queue:
                self._handle_reading(self._queue.popleft())
                processed += 1
        finally:
            self._processing = False
        return processed

    def on_reading(self, reading: Reading) -> None:
        """Queue ``reading`` and process everything queued."""
        self.submit(reading)
        self.process_pending()

    def _handle_reading(self, reading: Reading) -> None:
        if not self._state.is_active or self._state == HealthTestState.ANALYZING:
            return
        if self._samples and reading.timestamp <= self._samples[-1].timestamp:
            logger.debug(f"Dropping out-of-order reading at {reading.timestamp.isoformat()}")
            return

        self._samples.append(reading)

        if self._state == HealthTestState.PULSE_TESTING and not self._series_running:
            target = self.config.test.pulse_soc_targets[self._target_index]
            if reading.soc <= target:
                self._begin_pulse_series()
            else:
                self._step = f"Waiting for {target}% SOC (current {reading.soc}%)"
        elif self._state == HealthTestState.ENERGY_WINDOW and self._window_end_soc is not None:
            self.controller.report_power(reading.discharge_power_w)
            if reading.soc <= self._window_end_soc:
                self._close_energy_window()

    # Phases

    def _finish_calibration(self) -> None:
        self._target_index = 0
        self._enter_pulse_phase()

    def _enter_pulse_phase(self) -> None:
        target = self.config.test.pulse_soc_targets[self._target_index]
        self._series_running = False
        self._set_state(HealthTestState.PULSE_TESTING, f"Waiting for {target}% SOC")
        if self._samples and self._samples[-1].soc <= target:
            self._begin_pulse_series()

    def _begin_pulse_series(self) -> None:
        self._series_running = True
        self._pulse_index = 0
        self._start_pulse()

    def _start_pulse(self) -> None:
        cfg = self.config.test
        profile = cfg.pulse_profiles[self._pulse_index]
        target = cfg.pulse_soc_targets[self._target_index]
        self._pulse_start_index = len(self._samples) - 1
        self._step = f"Pulse {self._pulse_index + 1}/{len(cfg.pulse_profiles)} ({profile.value}) at {target}% SOC"
        logger.info(self._step)

        self.actuator.start(profile)
        self.actuator.set_intensity(1.0)
        self._schedule(cfg.pulse_duration_s, self._end_pulse)

    def _end_pulse(self) -> None:
        cfg = self.config.test
        point = self.dcir.estimate(self._samples, self._pulse_start_index)
        if point is not None:
            self._dcir_points.append(point)
            logger.info(f"DCIR {point.resistance_mohm:.1f} mOhm at {point.soc:.1f}% SOC")

        self.actuator.stop(StopReason.PULSE_COMPLETE)
        self._step = f"Resting after pulse {self._pulse_index + 1}/{len(cfg.pulse_profiles)}"
        self._schedule(cfg.rest_duration_s, self._after_rest)

    def _after_rest(self) -> None:
        cfg = self.config.test
        self._pulse_index += 1
        if self._pulse_index < len(cfg.pulse_profiles):
            self._start_pulse()
            return

        self._series_running = False
        target = cfg.pulse_soc_targets[self._target_index]
        if target in cfg.energy_window_checkpoints:
            self._open_energy_window(target)
        else:
            self._advance_target()

    def _open_energy_window(self, from_soc: int) -> None:
        cfg = self.config.test
        snapshot = self._snapshot
        self._window_end_soc = max(cfg.min_window_end_soc_percent, from_soc - cfg.energy_window_span_percent)
        self._target_power_w = target_power(
            cfg.power_preset,
            snapshot.design_capacity_mah if snapshot else None,
            snapshot.nominal_voltage_v if snapshot else cfg.nominal_voltage_v,
        )
        self._cp_intervals.append([len(self._samples), None])
        self._set_state(
            HealthTestState.ENERGY_WINDOW,
            f"Constant-power discharge to {self._window_end_soc}% at {self._target_power_w:.1f} W",
        )
        self.controller.start(self._target_power_w)

    def _close_energy_window(self) -> None:
        self._cp_intervals[-1][1] = len(self._samples)
        self._control_quality = self.controller.control_quality
        self.controller.stop()
        self._window_end_soc = None
        self._step = "Resting after constant-power discharge"
        self._schedule(self.config.test.rest_duration_s, self._advance_target)

    def _advance_target(self) -> None:
        self._target_index += 1
        if self._target_index < len(self.config.test.pulse_soc_targets):
            self._enter_pulse_phase()
        else:
            self._analyze()

    # Analysis

    def _analyze(self) -> None:
        self._handles = [h for h in self._handles if not h.done]
        self._set_state(HealthTestState.ANALYZING, "Analyzing results")
        result = self._build_result()
        self.result = result
        self._set_state(HealthTestState.COMPLETED, "Test completed")
        logger.info(f"Health test completed: score {result.health_score:.1f}")
        if self.on_result is not None:
            self.on_result(result)

    def _build_result(self) -> HealthTestResult:
        samples = self._samples
        snapshot = self._snapshot
        design_mah = snapshot.design_capacity_mah if snapshot else None
        max_mah = snapshot.max_capacity_mah if snapshot else None
        nominal_v = snapshot.nominal_voltage_v if snapshot else self.config.test.nominal_voltage_v

        dcir = self.dcir.analyze(self._dcir_points)
        curve = self.ocv.build_curve(self._dcir_points, samples)
        ocv = self.ocv.analyze(samples, self._dcir_points, curve=curve)

        intervals = [(start, end) for start, end in self._cp_intervals if end is not None]
        average_ocv = ocv.average_ocv_v if ocv.average_ocv_v is not None else nominal_v
        design_wh = design_energy_wh(design_mah, average_ocv) if design_mah else None
        energy = self.energy.analyze(samples, design_wh, intervals)

        soh_capacity = 100.0
        if design_mah and max_mah:
            soh_capacity = clamp(max_mah / design_mah * 100.0, 0.0, 100.0)

        drops = micro_drop_stats(samples)
        stability = stability_score(drops, self.config.scoring.stability_zero_drops_per_hour)

        average_temperature = sum(s.temperature_c for s in samples) / len(samples)
        temp_quality = temperature_quality(average_temperature)

        normalized = self.normalizer.normalize(energy.soh_energy_percent, dcir.dcir_at_50, average_temperature)
        self.normalizer.record_observation(
            energy.soh_energy_percent, dcir.dcir_at_50, average_temperature, timestamp=samples[-1].timestamp
        )

        health = self.scorer.score(
            normalized.normalized_soh,
            soh_capacity,
            normalized.normalized_dcir,
            dcir.dcir_at_20,
            stability,
            temp_quality,
        )

        return HealthTestResult(
            started_at=samples[0].timestamp,
            finished_at=samples[-1].timestamp,
            duration_s=seconds_between(samples[0].timestamp, samples[-1].timestamp),
            energy_delivered_wh=energy.energy_wh,
            average_power_w=energy.average_power_w,
            target_power_w=self._target_power_w,
            power_preset=self.config.test.power_preset if intervals else None,
            power_control_quality=self._control_quality,
            soh_energy_percent=energy.soh_energy_percent,
            soh_capacity_percent=soh_capacity,
            dcir_at_50_mohm=dcir.dcir_at_50,
            dcir_at_20_mohm=dcir.dcir_at_20,
            dcir_points=tuple(self._dcir_points),
            dcir_degradation_score=dcir.degradation_score,
            ocv_curve=tuple(curve),
            knee_soc=ocv.knee_soc,
            knee_index=ocv.knee_index,
            early_degradation=ocv.early_degradation,
            micro_drops=drops,
            stability_score=stability,
            average_temperature_c=average_temperature,
            temperature_quality=temp_quality,
            normalized_soh_percent=normalized.normalized_soh,
            normalized_dcir_at_50_mohm=normalized.normalized_dcir,
            normalization_quality=normalized.quality,
            health_score=health,
            recommendation=recommendation_for(health),
        )
