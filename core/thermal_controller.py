# -*- coding: utf-8 -*-
"""
Adaptive PID thermal controller.

Driven synchronously once per telemetry tick by the telemetry source. Each
cycle selects targets, runs the CPU and GPU PID axes, periodically retunes
their gains from the recent temperature history and applies the emergency
override. Hardware writes go through an injected fan sink and are
best-effort; a faulty cycle is counted and skipped, never fatal.
"""
import math
import sys
import time
from typing import Any, List, Optional

from .qt import QObject, Signal

from .models import (
    TelemetrySample, ThermalSnapshot, ThermalAlert, ControlCycleResult, ControllerHealth
)
from .pid_controller import AxisController, population_variance, create_cpu_axis, create_gpu_axis
from .ring_history import RingHistory
from .target_adapter import TargetTemperatureAdapter
from config.settings import (
    MAX_FAN_RPM, THERMAL_HISTORY_CAPACITY, GAIN_ADAPTATION_INTERVAL_CYCLES,
    GAIN_ADAPTATION_MIN_SAMPLES, CPU_CRITICAL_TEMP_C, GPU_CRITICAL_TEMP_C,
    VRM_CRITICAL_TEMP_C, ALERT_KIND_THERMAL_EMERGENCY, HEALTHY_ERROR_RATE
)


class ThermalController(QObject):
    """Runs one PID control cycle per telemetry sample."""

    # Emitted with a ThermalAlert when any critical ceiling is reached
    emergency_alert = Signal(object)

    def __init__(self,
                 fan_sink: Optional[Any] = None,
                 target_adapter: Optional[TargetTemperatureAdapter] = None,
                 cpu_axis: Optional[AxisController] = None,
                 gpu_axis: Optional[AxisController] = None,
                 history_capacity: int = THERMAL_HISTORY_CAPACITY,
                 adaptation_interval: int = GAIN_ADAPTATION_INTERVAL_CYCLES,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self._fan_sink = fan_sink
        self.target_adapter = target_adapter or TargetTemperatureAdapter()
        self.cpu_axis = cpu_axis or create_cpu_axis()
        self.gpu_axis = gpu_axis or create_gpu_axis()
        self._history: RingHistory[ThermalSnapshot] = RingHistory(history_capacity)
        self._adaptation_interval = max(1, adaptation_interval)

        self._total_cycles: int = 0
        self._completed_cycles: int = 0
        self._total_errors: int = 0
        self._is_running: bool = False
        self._start_time: Optional[float] = None
        self._last_result: Optional[ControlCycleResult] = None

    # --- Lifecycle ---
    def start(self):
        self._is_running = True
        self._start_time = time.monotonic()

    def stop(self):
        self._is_running = False

    @property
    def history(self) -> RingHistory[ThermalSnapshot]:
        return self._history

    @property
    def last_result(self) -> Optional[ControlCycleResult]:
        return self._last_result

    def get_health(self) -> ControllerHealth:
        error_rate = self._total_errors / self._total_cycles if self._total_cycles else 0.0
        uptime = time.monotonic() - self._start_time if self._start_time is not None else 0.0
        return ControllerHealth(
            total_cycles=self._total_cycles,
            total_errors=self._total_errors,
            error_rate=error_rate,
            is_running=self._is_running,
            is_healthy=self._is_running and error_rate < HEALTHY_ERROR_RATE,
            uptime_s=uptime,
        )

    # --- Control cycle ---
    def execute_cycle(self, sample: TelemetrySample) -> Optional[ControlCycleResult]:
        """
        Runs one control cycle for `sample`.

        Returns:
            The cycle result, or None if the cycle faulted and was skipped.
        """
        self._total_cycles += 1
        try:
            result, alert = self._run_cycle(sample)
        except Exception as e:
            self._total_errors += 1
            print(f"Thermal control cycle {self._total_cycles} failed and was skipped: {e}", file=sys.stderr)
            return None

        self._last_result = result
        if alert is not None:
            print(f"EMERGENCY THERMAL RESPONSE: CPU={alert.cpu_temp}°C, GPU={alert.gpu_temp}°C, "
                  f"VRM={alert.vrm_temp}°C ({', '.join(alert.triggered_by)})", file=sys.stderr)
            self.emergency_alert.emit(alert)
        self._actuate(result)
        return result

    def _run_cycle(self, sample: TelemetrySample):
        for name in ('cpu_temp', 'gpu_temp', 'vrm_temp'):
            value = getattr(sample, name)
            if not math.isfinite(value):
                raise ValueError(f"non-finite {name}: {value}")

        cpu_target, gpu_target = self.target_adapter.update(sample)

        # Compute both axes before touching any state
        cpu_rpm, cpu_state = self.cpu_axis.compute(sample.cpu_temp, cpu_target)
        gpu_rpm, gpu_state = self.gpu_axis.compute(sample.gpu_temp, gpu_target)
        snapshot = ThermalSnapshot(
            timestamp=sample.timestamp,
            cpu_temp=sample.cpu_temp,
            gpu_temp=sample.gpu_temp,
            fan_speed=sample.fan_speed_rpm,
        )

        self.cpu_axis.commit(cpu_state)
        self.gpu_axis.commit(gpu_state)
        self._history.add(snapshot)
        self._completed_cycles += 1

        # Faulted cycles don't count toward the adaptation schedule
        if self._completed_cycles % self._adaptation_interval == 0:
            self.adapt_gains()

        triggered = self._critical_sensors(sample)
        if not triggered:
            return ControlCycleResult(cpu_rpm, gpu_rpm, cpu_target, gpu_target), None

        alert = ThermalAlert(
            kind=ALERT_KIND_THERMAL_EMERGENCY,
            timestamp=sample.timestamp,
            cpu_temp=sample.cpu_temp,
            gpu_temp=sample.gpu_temp,
            vrm_temp=sample.vrm_temp,
            triggered_by=tuple(triggered),
        )
        return ControlCycleResult(MAX_FAN_RPM, MAX_FAN_RPM, cpu_target, gpu_target, emergency=True), alert

    def _critical_sensors(self, sample: TelemetrySample) -> List[str]:
        triggered = []
        if sample.cpu_temp >= CPU_CRITICAL_TEMP_C: triggered.append('cpu')
        if sample.gpu_temp >= GPU_CRITICAL_TEMP_C: triggered.append('gpu')
        if sample.vrm_temp >= VRM_CRITICAL_TEMP_C: triggered.append('vrm')
        return triggered

    def _actuate(self, result: ControlCycleResult):
        """Hands the cycle's speeds to the fan sink. Failures are logged only."""
        if self._fan_sink is None:
            return
        try:
            if result.emergency:
                self._fan_sink.apply_max_speed()
            else:
                self._fan_sink.apply_fan_speeds(result.cpu_fan_rpm, result.gpu_fan_rpm)
        except Exception as e:
            print(f"Failed to apply fan speeds (CPU={result.cpu_fan_rpm}, GPU={result.gpu_fan_rpm}): {e}", file=sys.stderr)

    # --- Gain adaptation ---
    def adapt_gains(self) -> bool:
        """
        Retunes both axes from the variance of the recorded history.
        Does nothing until enough snapshots exist.

        Returns:
            True if adaptation ran.
        """
        snapshots = self._history.snapshot()
        if len(snapshots) < GAIN_ADAPTATION_MIN_SAMPLES:
            return False
        try:
            cpu_variance = population_variance([s.cpu_temp for s in snapshots])
            gpu_variance = population_variance([s.gpu_temp for s in snapshots])
            cpu_result = self.cpu_axis.adapt(cpu_variance)
            gpu_result = self.gpu_axis.adapt(gpu_variance)
        except Exception as e:
            print(f"PID gain adaptation error (non-critical): {e}", file=sys.stderr)
            return False
        print(f"PID gains adapted: CPU {cpu_result} (variance {cpu_variance:.2f}), "
              f"GPU {gpu_result} (variance {gpu_variance:.2f})")
        return True
