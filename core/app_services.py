# -*- coding: utf-8 -*-
"""
Central service layer (AppServices) wiring the thermal controller, the fan-curve
learning engine, the GPU lifecycle controller and persistence together.
The telemetry source calls `on_telemetry` once per tick.
"""

import sys
from typing import Optional, Any

from .qt import QObject, Slot

from .models import TelemetrySample, ControlCycleResult, FanSpeedSuggestion, PowerMode
from .path_manager import PathManager
from .target_adapter import TargetTemperatureAdapter
from .thermal_controller import ThermalController
from .fan_curve_learning import AdaptiveFanCurveEngine
from .gpu_controller import GPUController
from .training_store import JsonTrainingStore
from tools.config_manager import ConfigManager
from config.settings import (
    APP_NAME, APP_VERSION,
    MAX_FAN_RPM, MAX_FAN_PERCENT, LEARNING_SAMPLE_WINDOW_S, TREND_WINDOW_SNAPSHOTS
)


class AppServices(QObject):
    """Owns every controller and coordinates startup, per-tick work and shutdown."""

    def __init__(self,
                 paths: PathManager,
                 fan_sink: Optional[Any] = None,
                 gpu_controller: Optional[GPUController] = None,
                 training_store: Optional[JsonTrainingStore] = None,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self._is_shutting_down = False
        self.paths = paths
        self.paths.ensure_base_dir()

        self.config_manager = ConfigManager(paths.controller_config)
        config = self.config_manager.load_config()

        self.thermal_controller = ThermalController(
            fan_sink=fan_sink,
            target_adapter=TargetTemperatureAdapter(
                policy=config["target_hysteresis_policy"],
                band_percent=config["target_hysteresis_band_percent"]
            ),
            history_capacity=config["history_capacity"],
            adaptation_interval=config["gain_adaptation_interval_cycles"],
            parent=self
        )
        self.learning_engine = AdaptiveFanCurveEngine(learning_enabled=config["learning_enabled"])
        self.training_store = training_store or JsonTrainingStore(paths.training_data)
        self.gpu_controller = gpu_controller or GPUController(parent=self)

        # Start of the current learning window
        self._window_start: Optional[TelemetrySample] = None

    def initialize(self):
        """Loads learned data and starts the controllers."""
        self.learning_engine.load_samples(self.training_store.load_training_samples())
        print(self.learning_engine.stats())

        self.thermal_controller.start()

        if not self._start_gpu_monitoring():
            print("No discrete NVIDIA GPU detected; GPU lifecycle monitoring disabled.")
        print(f"{APP_NAME} {APP_VERSION} initialized.")

    def _start_gpu_monitoring(self) -> bool:
        """Starts the GPU refresh loop if a supported GPU is present. Idempotent."""
        if not self.gpu_controller.is_supported():
            return False
        self.gpu_controller.start(
            delay=self.config_manager.get("gpu_refresh_delay_s"),
            interval=self.config_manager.get("gpu_refresh_interval_s")
        )
        return True

    def shutdown(self):
        """Stops background work and persists learned data. Safe to call more than once."""
        if self._is_shutting_down: return
        self._is_shutting_down = True

        self.thermal_controller.stop()
        self.gpu_controller.stop(wait_for_finish=True, timeout=self.config_manager.get("gpu_stop_timeout_s"))

        samples = self.learning_engine.export_samples()
        if samples:
            self.training_store.save_training_samples(samples)

        self.gpu_controller.dispose()

    # --- Per-tick work ---
    def on_telemetry(self, sample: TelemetrySample) -> Optional[ControlCycleResult]:
        """Runs the control cycle for one tick and feeds the learning engine."""
        if self._is_shutting_down: return None
        result = self.thermal_controller.execute_cycle(sample)
        try:
            self._learn_from(sample)
        except Exception as e:
            print(f"Adaptive learning update failed (non-critical): {e}", file=sys.stderr)
        return result

    def _learn_from(self, sample: TelemetrySample):
        """Folds each learning window into one (temperature, fan speed, effectiveness) record."""
        start = self._window_start
        if start is None:
            self._window_start = sample
            return
        duration = (sample.timestamp - start.timestamp).total_seconds()
        if duration < 0:
            # Clock went backwards: restart the window
            self._window_start = sample
            return
        if duration < LEARNING_SAMPLE_WINDOW_S:
            return

        fan_percent = max(0.0, min(float(MAX_FAN_PERCENT), start.fan_speed_rpm / MAX_FAN_RPM * 100.0))
        effectiveness = self.learning_engine.cooling_effectiveness(
            start.cpu_temp, sample.cpu_temp, fan_percent, duration)
        self.learning_engine.record(start.cpu_temp, fan_percent, effectiveness)
        self._window_start = sample

    def temperature_trend(self) -> float:
        """CPU temperature change across the most recent history entries."""
        recent = self.thermal_controller.history.snapshot()[-TREND_WINDOW_SNAPSHOTS:]
        if len(recent) < 2:
            return 0.0
        return recent[-1].cpu_temp - recent[0].cpu_temp

    def suggest_fan_speed(self, current_speed_percent: int,
                          power_mode: PowerMode = PowerMode.BALANCE) -> Optional[FanSpeedSuggestion]:
        """Suggestion for the latest recorded temperature, or None before the first tick."""
        recent = self.thermal_controller.history.snapshot()
        if not recent:
            return None
        return self.learning_engine.suggest(recent[-1].cpu_temp, current_speed_percent,
                                            self.temperature_trend(), power_mode)

    @Slot()
    def on_hybrid_mode_changed(self):
        """Re-detects GPU capability after a graphics-mode switch and starts polling if it became available."""
        self.gpu_controller.invalidate_capability_cache()
        if self._is_shutting_down:
            return
        self.gpu_controller.refresh_now()
        self._start_gpu_monitoring()
