# -*- coding: utf-8 -*-
"""
Global constants and default settings for the thermal and GPU lifecycle core.
"""
from typing import Dict, Any, Tuple

# ==============================================================================
# Application info
# ==============================================================================
APP_NAME: str = "LegionThermalCore"
APP_VERSION: str = "1.0.0"

# ==============================================================================
# Files (resolved by core.path_manager.PathManager)
# ==============================================================================
CONTROLLER_CONFIG_FILE_NAME: str = "controller_config.json"
TRAINING_DATA_FILE_NAME: str = "thermal_training_data.json"

# ==============================================================================
# Fan actuation limits (RPM domain)
# ==============================================================================
MIN_FAN_RPM: int = 0
MAX_FAN_RPM: int = 5500
PID_BASE_FAN_RPM: float = 2000.0 # minimum for active cooling
PID_CORRECTION_SCALE: float = 30.0 # correction units -> RPM

# ==============================================================================
# PID control
# ==============================================================================
AXIS_CPU: str = "cpu"
AXIS_GPU: str = "gpu"

INTEGRAL_LIMIT: float = 100.0 # anti-windup clamp, independent of Ki

# Initial gains (kp, ki, kd)
DEFAULT_CPU_GAINS: Tuple[float, float, float] = (1.5, 0.05, 0.3)
DEFAULT_GPU_GAINS: Tuple[float, float, float] = (1.2, 0.04, 0.25)

# Hard gain bounds ((kp_min, kp_max), (ki_min, ki_max), (kd_min, kd_max))
CPU_GAIN_BOUNDS: Tuple[Tuple[float, float], ...] = ((0.5, 3.0), (0.01, 0.2), (0.1, 1.0))
GPU_GAIN_BOUNDS: Tuple[Tuple[float, float], ...] = ((0.5, 2.5), (0.01, 0.15), (0.1, 0.8))

# ==============================================================================
# Gain adaptation
# ==============================================================================
# 300 snapshots at a 100 ms tick (10 Hz) is a 30 s learning window.
THERMAL_HISTORY_CAPACITY: int = 300
GAIN_ADAPTATION_INTERVAL_CYCLES: int = 100 # every 10 s at 10 Hz
GAIN_ADAPTATION_MIN_SAMPLES: int = 100

# Variance thresholds (degC^2): above HIGH damps, below LOW sharpens
CPU_VARIANCE_HIGH: float = 20.0
CPU_VARIANCE_LOW: float = 5.0
GPU_VARIANCE_HIGH: float = 15.0
GPU_VARIANCE_LOW: float = 3.0

DAMP_KP_FACTOR: float = 0.95
DAMP_KD_FACTOR: float = 0.9
SHARPEN_KP_FACTOR: float = 1.02
SHARPEN_KD_FACTOR: float = 1.01

# ==============================================================================
# Target temperatures
# ==============================================================================
HEAVY_CPU_UTILIZATION_PERCENT: float = 70.0
HEAVY_GPU_UTILIZATION_PERCENT: float = 50.0

TARGETS_HEAVY: Tuple[float, float] = (70.0, 65.0) # (cpu, gpu) tighter headroom under load
TARGETS_BATTERY: Tuple[float, float] = (80.0, 75.0) # quieter on battery
TARGETS_BALANCED: Tuple[float, float] = (75.0, 70.0)

TARGET_POLICY_NONE: str = "none"
TARGET_POLICY_DEADBAND: str = "deadband"
TARGET_POLICIES: Tuple[str, ...] = (TARGET_POLICY_NONE, TARGET_POLICY_DEADBAND)

# ==============================================================================
# Emergency override (inclusive ceilings, degC)
# ==============================================================================
CPU_CRITICAL_TEMP_C: float = 95.0
GPU_CRITICAL_TEMP_C: float = 87.0
VRM_CRITICAL_TEMP_C: float = 90.0
ALERT_KIND_THERMAL_EMERGENCY: str = "ThermalEmergency"

# Health: error rate at or above this marks the controller unhealthy
HEALTHY_ERROR_RATE: float = 0.05

# ==============================================================================
# Adaptive fan curve learning (percent domain)
# ==============================================================================
MIN_FAN_PERCENT: int = 0
MAX_FAN_PERCENT: int = 100
LEARNING_BUCKET_SIZE_C: int = 5
LEARNING_MAX_BUCKETS: int = 500
LEARNING_THRESHOLD_SAMPLES: int = 50
LEARNING_NEIGHBOR_RANGE_C: int = 10
LEARNING_MAX_NEIGHBORS: int = 3
LEARNING_SAMPLE_WINDOW_S: float = 60.0 # telemetry span folded into one learned sample
TREND_WINDOW_SNAPSHOTS: int = 10 # history entries used for the temperature trend

CURVE_START_TEMP_C: int = 30
CURVE_END_TEMP_C: int = 90
CURVE_STEP_C: int = 6

FALLBACK_MIN_SPEED_PERCENT: int = 30
FALLBACK_MAX_SPEED_PERCENT: int = 100
POWER_MODE_SPEED_BIAS: int = 10

TREND_FAST_C: int = 2 # degC per sample window considered "fast"
TREND_HEATING_BOOST: int = 15
TREND_COOLING_CUT: int = 10
SUGGESTION_DEADBAND_PERCENT: int = 5
HIGH_TEMP_REASON_C: int = 80
LOW_TEMP_REASON_C: int = 50

NEUTRAL_EFFECTIVENESS: int = 50
EXPECTED_DROP_PER_MINUTE_AT_FULL_SPEED_C: float = 10.0

RAW_DUTY_MAX: int = 255 # persisted fan speeds are 0-255 duty values
EXPORTED_SAMPLE_DURATION_S: int = 60

# ==============================================================================
# GPU lifecycle
# ==============================================================================
GPU_REFRESH_DELAY_S: float = 1.0
GPU_REFRESH_INTERVAL_S: float = 5.0
GPU_STOP_TIMEOUT_S: float = 2.0
GPU_CAPABILITY_CACHE_TTL_S: float = 60.0
GPU_PROCESS_KILL_TIMEOUT_S: float = 5.0
GPU_RESTART_COMMAND_TIMEOUT_S: float = 30.0
GPU_REFRESH_THREAD_NAME: str = "GPURefreshThread"

GPU_LABEL_POWERED_ON: str = "Powered On"
GPU_LABEL_POWERED_OFF: str = "Powered Off"
GPU_LABEL_UNKNOWN: str = "Unknown"

NVIDIA_PCI_VENDOR_ID: int = 0x10DE

# ==============================================================================
# WMI configuration
# ==============================================================================
WMI_CIMV2_NAMESPACE: str = r"root\cimv2"
WMI_VIDEO_CONTROLLER_CLASS: str = "Win32_VideoController"
WMI_PNP_ENTITY_CLASS: str = "Win32_PnPEntity"

# ==============================================================================
# Default controller settings (user-overridable through controller_config.json)
# ==============================================================================
DEFAULT_CONTROLLER_SETTINGS: Dict[str, Any] = {
    "history_capacity": THERMAL_HISTORY_CAPACITY,
    "gain_adaptation_interval_cycles": GAIN_ADAPTATION_INTERVAL_CYCLES,
    "target_hysteresis_policy": TARGET_POLICY_NONE,
    "target_hysteresis_band_percent": 5.0,
    "learning_enabled": True,
    "gpu_refresh_delay_s": GPU_REFRESH_DELAY_S,
    "gpu_refresh_interval_s": GPU_REFRESH_INTERVAL_S,
    "gpu_stop_timeout_s": GPU_STOP_TIMEOUT_S,
}
