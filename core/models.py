# -*- coding: utf-8 -*-
"""
Value types exchanged between the thermal controller, the learning engine,
the GPU lifecycle controller and their collaborators.

Everything handed to a caller or a signal subscriber is frozen so that no
live controller state leaks out.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


@dataclass(frozen=True)
class TelemetrySample:
    """One fused telemetry reading, pushed once per tick."""
    timestamp: datetime
    cpu_temp: float
    gpu_temp: float
    vrm_temp: float
    cpu_utilization: float
    gpu_utilization: float
    on_battery: bool
    fan_speed_rpm: float


@dataclass(frozen=True)
class ThermalSnapshot:
    timestamp: datetime
    cpu_temp: float
    gpu_temp: float
    fan_speed: float


@dataclass(frozen=True)
class ThermalAlert:
    """Payload of an emergency alert; carries the readings that tripped it."""
    kind: str
    timestamp: datetime
    cpu_temp: float
    gpu_temp: float
    vrm_temp: float
    triggered_by: Tuple[str, ...]


@dataclass(frozen=True)
class ControlCycleResult:
    cpu_fan_rpm: int
    gpu_fan_rpm: int
    cpu_target_temp: float
    gpu_target_temp: float
    emergency: bool = False


@dataclass(frozen=True)
class ControllerHealth:
    total_cycles: int
    total_errors: int
    error_rate: float
    is_running: bool
    is_healthy: bool
    uptime_s: float


class PowerMode(Enum):
    QUIET = "quiet"
    BALANCE = "balance"
    PERFORMANCE = "performance"
    CUSTOM = "custom"


@dataclass
class FanCurveDataPoint:
    temperature_bucket: int
    mean_fan_speed: float
    mean_cooling_effectiveness: float
    sample_count: int


@dataclass(frozen=True)
class FanSpeedSuggestion:
    should_adjust: bool
    recommended_speed: int
    reason: str


@dataclass(frozen=True)
class LearningStats:
    total_samples: int
    unique_temperature_buckets: int
    average_effectiveness: float
    learning_enabled: bool
    has_sufficient_data: bool
    last_load_time: Optional[datetime]

    def __str__(self) -> str:
        return (f"Adaptive learning: {self.total_samples} samples across "
                f"{self.unique_temperature_buckets} temps, avg effectiveness: "
                f"{self.average_effectiveness:.1f}%, sufficient: {self.has_sufficient_data}")


@dataclass(frozen=True)
class TrainingSample:
    """Persisted learning record. Fan speeds are raw 0-255 duty values."""
    timestamp: datetime
    temp_before: int
    temp_after: int
    fan_speed_before: int
    fan_speed_after: int
    cooling_effectiveness: int
    duration_seconds: int = 60
    workload: str = "unknown"
    power_level: int = 0
    sample_count: int = 1


class GPUState(Enum):
    UNKNOWN = "unknown"
    NVIDIA_GPU_NOT_FOUND = "nvidia_gpu_not_found"
    POWERED_OFF = "powered_off"
    INACTIVE = "inactive"
    ACTIVE = "active"
    MONITOR_CONNECTED = "monitor_connected"


@dataclass(frozen=True)
class BoundProcess:
    pid: int
    name: str


@dataclass(frozen=True)
class GPUStatus:
    state: GPUState
    performance_state: Optional[str] = None
    processes: Tuple[BoundProcess, ...] = field(default_factory=tuple)
    device_name: Optional[str] = None
