# -*- coding: utf-8 -*-
"""
Selects the per-axis target temperatures from the latest telemetry sample.
"""
from typing import Tuple

from .models import TelemetrySample
from config.settings import (
    HEAVY_CPU_UTILIZATION_PERCENT, HEAVY_GPU_UTILIZATION_PERCENT,
    TARGETS_HEAVY, TARGETS_BATTERY, TARGETS_BALANCED,
    TARGET_POLICY_NONE, TARGET_POLICY_DEADBAND, TARGET_POLICIES
)


class TargetTemperatureAdapter:
    """
    Heavy workload lowers both targets, battery power raises them, anything
    else gets the balanced defaults.

    With the "none" policy the classification is a pure function of the
    sample, so utilization hovering at a threshold makes the targets chatter.
    The "deadband" policy keeps a heavy classification until both
    utilizations drop `band_percent` below their thresholds.
    """
    def __init__(self, policy: str = TARGET_POLICY_NONE, band_percent: float = 5.0):
        if policy not in TARGET_POLICIES:
            raise ValueError(f"Unknown target hysteresis policy: {policy}")
        self._policy = policy
        self._band = max(0.0, band_percent)
        self._is_heavy = False
        self.cpu_target: float = TARGETS_BALANCED[0]
        self.gpu_target: float = TARGETS_BALANCED[1]

    @property
    def policy(self) -> str:
        return self._policy

    def _classify_heavy(self, sample: TelemetrySample) -> bool:
        enters_heavy = (sample.cpu_utilization > HEAVY_CPU_UTILIZATION_PERCENT or
                        sample.gpu_utilization > HEAVY_GPU_UTILIZATION_PERCENT)
        if self._policy != TARGET_POLICY_DEADBAND or not self._is_heavy:
            return enters_heavy
        # Already heavy: stay heavy until both fall clear of the band
        return (sample.cpu_utilization > HEAVY_CPU_UTILIZATION_PERCENT - self._band or
                sample.gpu_utilization > HEAVY_GPU_UTILIZATION_PERCENT - self._band)

    def update(self, sample: TelemetrySample) -> Tuple[float, float]:
        """Recomputes and returns (cpu_target, gpu_target) for this cycle."""
        self._is_heavy = self._classify_heavy(sample)
        if self._is_heavy:
            targets = TARGETS_HEAVY
        elif sample.on_battery:
            targets = TARGETS_BATTERY
        else:
            targets = TARGETS_BALANCED
        self.cpu_target, self.gpu_target = targets
        return targets

    def reset(self):
        self._is_heavy = False
        self.cpu_target, self.gpu_target = TARGETS_BALANCED
