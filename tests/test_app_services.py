"""
Tests for the AppServices composition root.
"""

import json

import pytest

from core.app_services import AppServices
from core.capability_cache import CapabilityCache
from core.gpu_controller import GPUController
from core.models import GPUState, PowerMode
from core.path_manager import PathManager


@pytest.fixture
def paths(tmp_path):
    return PathManager(str(tmp_path / "legion"))


@pytest.fixture
def gpu_controller(driver_session):
    return GPUController(driver_factory=lambda: driver_session, hybrid_probe=lambda: False,
                         capability_cache=CapabilityCache())


@pytest.fixture
def services(paths, fan_sink, gpu_controller):
    svc = AppServices(paths, fan_sink=fan_sink, gpu_controller=gpu_controller)
    yield svc
    svc.shutdown()


class TestLifecycle:
    def test_initialize_starts_gpu_loop_when_supported(self, services):
        services.initialize()
        assert services.thermal_controller.get_health().is_running
        assert services.gpu_controller.is_started

    def test_initialize_skips_gpu_loop_when_unsupported(self, paths, fan_sink, unavailable_session):
        gpu = GPUController(driver_factory=lambda: unavailable_session, hybrid_probe=lambda: False,
                            capability_cache=CapabilityCache())
        svc = AppServices(paths, fan_sink=fan_sink, gpu_controller=gpu)
        svc.initialize()
        assert not gpu.is_started
        svc.shutdown()

    def test_hybrid_mode_change_starts_gpu_loop_once_gpu_appears(self, paths, fan_sink, unavailable_session):
        gpu = GPUController(driver_factory=lambda: unavailable_session, hybrid_probe=lambda: False,
                            capability_cache=CapabilityCache())
        svc = AppServices(paths, fan_sink=fan_sink, gpu_controller=gpu)
        svc.initialize()
        assert not gpu.is_started

        unavailable_session.init_error = None
        svc.on_hybrid_mode_changed()
        assert gpu.is_supported()
        assert gpu.get_last_known_state() == GPUState.INACTIVE
        assert gpu.is_started

        svc.on_hybrid_mode_changed()
        assert gpu.is_started
        svc.shutdown()
        assert not gpu.is_started

    def test_shutdown_is_idempotent_and_saves_learning(self, services, paths, make_sample):
        services.initialize()
        for i in range(5):
            services.on_telemetry(make_sample(cpu=70.0 - i, fan_rpm=2750.0, offset_s=i * 60.0))
        services.shutdown()
        services.shutdown()

        assert not services.gpu_controller.is_started
        saved = json.loads(open(paths.training_data, encoding="utf-8").read())
        assert saved
        assert services.on_telemetry(make_sample()) is None

    def test_learned_data_survives_restart(self, paths, fan_sink, gpu_controller, make_sample):
        first = AppServices(paths, fan_sink=fan_sink, gpu_controller=gpu_controller)
        first.initialize()
        for i in range(3):
            first.on_telemetry(make_sample(cpu=72.0, fan_rpm=2750.0, offset_s=i * 60.0))
        first.shutdown()

        second = AppServices(paths, fan_sink=fan_sink,
                             gpu_controller=GPUController(driver_factory=lambda: None, capability_cache=CapabilityCache()))
        second.learning_engine.load_samples(second.training_store.load_training_samples())
        assert second.learning_engine.unique_temperature_points() == 1
        assert second.learning_engine.data_point_count() == 2
        assert second.learning_engine.get_data_points()[0].temperature_bucket == 70

    def test_config_file_drives_controllers(self, paths, fan_sink, gpu_controller):
        paths.ensure_base_dir()
        with open(paths.controller_config, "w", encoding="utf-8") as f:
            json.dump({"history_capacity": 40, "target_hysteresis_policy": "deadband",
                       "learning_enabled": False}, f)
        svc = AppServices(paths, fan_sink=fan_sink, gpu_controller=gpu_controller)
        assert svc.thermal_controller.history.capacity == 40
        assert svc.thermal_controller.target_adapter.policy == "deadband"
        assert svc.learning_engine.learning_enabled is False


class TestTelemetry:
    def test_runs_control_cycle(self, services, fan_sink, make_sample):
        result = services.on_telemetry(make_sample(cpu=80.0))
        assert result.cpu_fan_rpm == 2277
        assert len(fan_sink.speed_calls) == 1

    def test_learning_window_records_effectiveness(self, services, make_sample):
        services.on_telemetry(make_sample(cpu=80.0, fan_rpm=2750.0, offset_s=0.0))
        services.on_telemetry(make_sample(cpu=78.0, fan_rpm=2750.0, offset_s=30.0))
        assert services.learning_engine.data_point_count() == 0

        services.on_telemetry(make_sample(cpu=77.5, fan_rpm=2750.0, offset_s=60.0))
        (point,) = services.learning_engine.get_data_points()
        # 50% fan for 60 s expects a 5 degree drop; 2.5 observed
        assert point.temperature_bucket == 80
        assert point.mean_fan_speed == pytest.approx(50.0)
        assert point.mean_cooling_effectiveness == pytest.approx(50.0)

    def test_trend_and_suggestion(self, services, make_sample):
        assert services.suggest_fan_speed(40) is None
        for i, temp in enumerate([60.0, 61.0, 62.0, 63.0, 64.0]):
            services.on_telemetry(make_sample(cpu=temp, offset_s=i * 0.1))
        assert services.temperature_trend() == pytest.approx(4.0)
        suggestion = services.suggest_fan_speed(40, PowerMode.BALANCE)
        assert suggestion.should_adjust
        assert suggestion.recommended_speed == 83

    def test_hybrid_mode_change_reprobes_and_refreshes(self, services, driver_session):
        services.gpu_controller.is_supported()
        driver_session.device = None
        services.on_hybrid_mode_changed()
        assert services.gpu_controller.get_last_known_state() == GPUState.NVIDIA_GPU_NOT_FOUND
        assert services.gpu_controller.is_supported() is False
