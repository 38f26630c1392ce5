"""
Tests for the thermal control cycle: targets, PID, emergency override,
fault isolation and periodic gain adaptation.
"""

import math

import pytest

from config.settings import MAX_FAN_RPM, ALERT_KIND_THERMAL_EMERGENCY
from core.thermal_controller import ThermalController


@pytest.fixture
def controller(fan_sink):
    ctrl = ThermalController(fan_sink=fan_sink)
    ctrl.start()
    return ctrl


@pytest.fixture
def alerts(controller):
    received = []
    controller.emergency_alert.connect(received.append)
    return received


class TestEmergencyOverride:
    def test_cpu_sequence_triggers_exactly_at_95(self, controller, alerts, fan_sink, make_sample):
        results = [controller.execute_cycle(make_sample(cpu=t, offset_s=i))
                   for i, t in enumerate([60.0, 65.0, 70.0, 95.0])]

        assert [r.emergency for r in results] == [False, False, False, True]
        assert results[-1].cpu_fan_rpm == MAX_FAN_RPM
        assert results[-1].gpu_fan_rpm == MAX_FAN_RPM
        assert results[-1].cpu_target_temp == 75.0
        assert len(alerts) == 1
        assert alerts[0].kind == ALERT_KIND_THERMAL_EMERGENCY
        assert alerts[0].cpu_temp == 95.0
        assert alerts[0].triggered_by == ("cpu",)
        assert fan_sink.max_calls == 1
        assert len(fan_sink.speed_calls) == 3

    def test_pid_state_survives_emergency(self, controller, make_sample):
        controller.execute_cycle(make_sample(cpu=96.0))
        assert controller.cpu_axis.state.last_error == pytest.approx(21.0)
        result = controller.execute_cycle(make_sample(cpu=80.0))
        assert not result.emergency
        assert controller.cpu_axis.state.integral == pytest.approx(26.0)

    @pytest.mark.parametrize("kwargs,sensor", [
        ({"gpu": 87.0}, "gpu"),
        ({"vrm": 90.0}, "vrm"),
    ])
    def test_each_ceiling_is_inclusive(self, controller, alerts, make_sample, kwargs, sensor):
        result = controller.execute_cycle(make_sample(**kwargs))
        assert result.emergency
        assert alerts[0].triggered_by == (sensor,)

    def test_multiple_sensors_reported_together(self, controller, alerts, make_sample):
        controller.execute_cycle(make_sample(cpu=99.0, gpu=90.0, vrm=91.0))
        assert alerts[0].triggered_by == ("cpu", "gpu", "vrm")

    def test_just_below_ceilings_is_normal(self, controller, alerts, make_sample):
        result = controller.execute_cycle(make_sample(cpu=94.9, gpu=86.9, vrm=89.9))
        assert not result.emergency
        assert alerts == []


class TestFaultIsolation:
    def test_non_finite_reading_skips_cycle(self, controller, make_sample):
        controller.execute_cycle(make_sample(cpu=80.0))
        state_before = controller.cpu_axis.state

        assert controller.execute_cycle(make_sample(cpu=math.nan)) is None
        assert controller.cpu_axis.state == state_before
        assert len(controller.history) == 1

        health = controller.get_health()
        assert health.total_cycles == 2
        assert health.total_errors == 1

        assert controller.execute_cycle(make_sample(cpu=80.0)) is not None
        assert len(controller.history) == 2

    def test_fan_sink_failure_is_not_a_cycle_fault(self, controller, fan_sink, make_sample):
        fan_sink.fail = True
        result = controller.execute_cycle(make_sample(cpu=80.0))
        assert result is not None
        assert controller.last_result == result
        assert controller.get_health().total_errors == 0

    def test_runs_without_fan_sink(self, make_sample):
        controller = ThermalController()
        assert controller.execute_cycle(make_sample()) is not None


class TestHealth:
    def test_healthy_below_error_rate(self, controller, make_sample):
        for _ in range(20):
            controller.execute_cycle(make_sample())
        controller.execute_cycle(make_sample(cpu=math.inf))
        health = controller.get_health()
        assert health.error_rate == pytest.approx(1 / 21)
        assert health.is_healthy

    def test_unhealthy_at_high_error_rate(self, controller, make_sample):
        controller.execute_cycle(make_sample())
        controller.execute_cycle(make_sample(cpu=math.nan))
        assert not controller.get_health().is_healthy

    def test_stopped_controller_is_not_healthy(self, controller, make_sample):
        controller.execute_cycle(make_sample())
        controller.stop()
        health = controller.get_health()
        assert not health.is_running
        assert not health.is_healthy


class TestGainAdaptationSchedule:
    def test_adapts_on_interval_once_history_is_full_enough(self, fan_sink, make_sample):
        controller = ThermalController(fan_sink=fan_sink, adaptation_interval=100)
        for _ in range(99):
            controller.execute_cycle(make_sample(cpu=70.0, gpu=65.0))
        assert controller.cpu_axis.gains.kp == pytest.approx(1.5)

        controller.execute_cycle(make_sample(cpu=70.0, gpu=65.0))
        # Flat temperatures have zero variance: both loops sharpen
        assert controller.cpu_axis.gains.kp == pytest.approx(1.5 * 1.02)
        assert controller.gpu_axis.gains.kp == pytest.approx(1.2 * 1.02)

    def test_faulted_cycle_does_not_shift_adaptation_schedule(self, fan_sink, make_sample):
        controller = ThermalController(fan_sink=fan_sink, adaptation_interval=100)
        for _ in range(99):
            controller.execute_cycle(make_sample(cpu=70.0, gpu=65.0))
        assert controller.execute_cycle(make_sample(cpu=math.nan)) is None
        assert controller.cpu_axis.gains.kp == pytest.approx(1.5)

        controller.execute_cycle(make_sample(cpu=70.0, gpu=65.0))
        assert controller.cpu_axis.gains.kp == pytest.approx(1.5 * 1.02)
        assert controller.get_health().total_cycles == 101

    def test_skips_adaptation_with_too_little_history(self, make_sample):
        controller = ThermalController(adaptation_interval=10)
        for _ in range(50):
            controller.execute_cycle(make_sample())
        assert controller.cpu_axis.gains.kp == pytest.approx(1.5)
        assert controller.adapt_gains() is False

    def test_oscillating_history_damps(self, make_sample):
        controller = ThermalController(adaptation_interval=1000)
        for i in range(120):
            controller.execute_cycle(make_sample(cpu=60.0 if i % 2 else 80.0, gpu=55.0 if i % 2 else 75.0))
        assert controller.adapt_gains() is True
        assert controller.cpu_axis.gains.kp == pytest.approx(1.5 * 0.95)
        assert controller.gpu_axis.gains.kd == pytest.approx(0.25 * 0.9)

    def test_history_is_bounded(self, make_sample):
        controller = ThermalController(history_capacity=50)
        for i in range(80):
            controller.execute_cycle(make_sample(cpu=50.0 + i * 0.1))
        snapshots = controller.history.snapshot()
        assert len(snapshots) == 50
        assert snapshots[-1].cpu_temp == pytest.approx(57.9)
