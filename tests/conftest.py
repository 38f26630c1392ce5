"""
Shared fixtures and hardware fakes for the thermal and GPU lifecycle tests.
"""

from datetime import datetime, timedelta

import pytest

from core.capability_cache import CapabilityCache
from core.gpu_driver import GPUDriverUnavailableError
from core.models import BoundProcess, TelemetrySample


class FakeFanSink:
    """Records fan writes; can be told to fail."""

    def __init__(self):
        self.speed_calls = []
        self.max_calls = 0
        self.fail = False

    def apply_fan_speeds(self, cpu_rpm, gpu_rpm):
        if self.fail:
            raise OSError("EC write failed")
        self.speed_calls.append((cpu_rpm, gpu_rpm))

    def apply_max_speed(self):
        if self.fail:
            raise OSError("EC write failed")
        self.max_calls += 1


class FakeDriverSession:
    """Scriptable stand-in for NvmlDriverSession."""

    def __init__(self, *, init_error=None, device="gpu0", name="NVIDIA GeForce RTX 4070 Laptop GPU",
                 pstate=8, pstate_error=None, display=False, processes=(), platform_id="PCI\\VEN_10DE&DEV_2820\\4&1",
                 process_error=None, unload_error=None):
        self.init_error = init_error
        self.device = device
        self.name = name
        self.pstate = pstate
        self.pstate_error = pstate_error
        self.display = display
        self.processes = list(processes)
        self.platform_id = platform_id
        self.process_error = process_error
        self.unload_error = unload_error
        self.initialized = 0
        self.unloaded = 0

    def initialize(self):
        self.initialized += 1
        if self.init_error is not None:
            raise self.init_error

    def unload(self):
        self.unloaded += 1
        if self.unload_error is not None:
            raise self.unload_error

    def get_device(self):
        return self.device

    def get_device_name(self, device):
        return self.name

    def get_performance_state(self, device):
        if self.pstate_error is not None:
            raise self.pstate_error
        return self.pstate

    def is_display_connected(self, device):
        return self.display

    def get_bound_processes(self, device):
        if self.process_error is not None:
            raise self.process_error
        return list(self.processes)

    def get_platform_id(self, device):
        return self.platform_id


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def make_sample():
    """Factory for telemetry samples with sensible idle defaults."""
    base = datetime(2024, 1, 1, 12, 0, 0)

    def _make(cpu=60.0, gpu=60.0, vrm=60.0, cpu_util=10.0, gpu_util=10.0,
              on_battery=False, fan_rpm=2000.0, offset_s=0.0):
        return TelemetrySample(
            timestamp=base + timedelta(seconds=offset_s),
            cpu_temp=cpu,
            gpu_temp=gpu,
            vrm_temp=vrm,
            cpu_utilization=cpu_util,
            gpu_utilization=gpu_util,
            on_battery=on_battery,
            fan_speed_rpm=fan_rpm,
        )
    return _make


@pytest.fixture
def fan_sink():
    return FakeFanSink()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def capability_cache(clock):
    return CapabilityCache(ttl_s=60.0, clock=clock)


@pytest.fixture
def driver_session():
    """A healthy, idle GPU. Tests tweak attributes before refreshing."""
    return FakeDriverSession()


@pytest.fixture
def unavailable_session():
    return FakeDriverSession(init_error=GPUDriverUnavailableError("NVML library not found"))


@pytest.fixture
def bound_processes():
    return [BoundProcess(pid=4242, name="game.exe"), BoundProcess(pid=4343, name="render.exe")]
