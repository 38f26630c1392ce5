# -*- coding: utf-8 -*-
"""
Per-axis PID fan control and variance-driven gain adaptation.

One `AxisController` type serves both the CPU and the GPU axis; they differ
only in the gains, bounds and variance thresholds they are built with.
"""
from dataclasses import dataclass, replace
from typing import Sequence, Tuple

import numpy as np

from config.settings import (
    AXIS_CPU, AXIS_GPU,
    MIN_FAN_RPM, MAX_FAN_RPM, PID_BASE_FAN_RPM, PID_CORRECTION_SCALE, INTEGRAL_LIMIT,
    DEFAULT_CPU_GAINS, DEFAULT_GPU_GAINS, CPU_GAIN_BOUNDS, GPU_GAIN_BOUNDS,
    CPU_VARIANCE_HIGH, CPU_VARIANCE_LOW, GPU_VARIANCE_HIGH, GPU_VARIANCE_LOW,
    DAMP_KP_FACTOR, DAMP_KD_FACTOR, SHARPEN_KP_FACTOR, SHARPEN_KD_FACTOR
)

Range = Tuple[float, float]

ADAPT_DAMPED = "damped"
ADAPT_SHARPENED = "sharpened"
ADAPT_UNCHANGED = "unchanged"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


@dataclass
class PIDGains:
    kp: float
    ki: float
    kd: float


@dataclass(frozen=True)
class GainBounds:
    kp: Range
    ki: Range
    kd: Range

    def clamp(self, gains: PIDGains) -> PIDGains:
        return PIDGains(
            kp=_clamp(gains.kp, *self.kp),
            ki=_clamp(gains.ki, *self.ki),
            kd=_clamp(gains.kd, *self.kd),
        )


@dataclass(frozen=True)
class ControlState:
    last_error: float = 0.0
    integral: float = 0.0


def population_variance(values: Sequence[float]) -> float:
    """Population variance (divides by N); 0.0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return float(np.var(np.asarray(values, dtype=float)))


class AxisController:
    """
    PID control law for one cooling axis.

    `compute` is side-effect free: it returns the fan speed together with the
    control state the step would produce, and `commit` installs that state.
    The thermal controller commits only after every axis has computed, so a
    fault mid-cycle leaves no axis half-updated.
    """
    def __init__(self, name: str, gains: PIDGains, bounds: GainBounds,
                 variance_high: float, variance_low: float):
        self.name = name
        self._bounds = bounds
        self._gains = bounds.clamp(gains)
        self._variance_high = variance_high
        self._variance_low = variance_low
        self._state = ControlState()

    @property
    def gains(self) -> PIDGains:
        """Copy of the current gains."""
        return replace(self._gains)

    @property
    def bounds(self) -> GainBounds:
        return self._bounds

    @property
    def state(self) -> ControlState:
        return self._state

    def compute(self, current_temp: float, target_temp: float) -> Tuple[int, ControlState]:
        error = current_temp - target_temp

        p_term = self._gains.kp * error

        integral = _clamp(self._state.integral + error, -INTEGRAL_LIMIT, INTEGRAL_LIMIT)
        i_term = self._gains.ki * integral

        d_term = self._gains.kd * (error - self._state.last_error)

        correction = p_term + i_term + d_term
        fan_speed = _clamp(PID_BASE_FAN_RPM + correction * PID_CORRECTION_SCALE, MIN_FAN_RPM, MAX_FAN_RPM)

        return int(fan_speed), ControlState(last_error=error, integral=integral)

    def commit(self, state: ControlState):
        self._state = state

    def step(self, current_temp: float, target_temp: float) -> int:
        """Computes and immediately commits one control step."""
        fan_speed, state = self.compute(current_temp, target_temp)
        self.commit(state)
        return fan_speed

    def reset(self):
        self._state = ControlState()

    def adapt(self, variance: float) -> str:
        """
        Retunes Kp and Kd from the observed temperature variance.
        High variance means oscillation and damps the loop; low variance means
        a sluggish loop and sharpens it. Ki is only ever clamped.
        """
        result = ADAPT_UNCHANGED
        gains = replace(self._gains)
        if variance > self._variance_high:
            gains.kp *= DAMP_KP_FACTOR
            gains.kd *= DAMP_KD_FACTOR
            result = ADAPT_DAMPED
        elif variance < self._variance_low:
            gains.kp *= SHARPEN_KP_FACTOR
            gains.kd *= SHARPEN_KD_FACTOR
            result = ADAPT_SHARPENED
        self._gains = self._bounds.clamp(gains)
        return result


def _gains_from_tuple(values: Tuple[float, float, float]) -> PIDGains:
    kp, ki, kd = values
    return PIDGains(kp=kp, ki=ki, kd=kd)


def _bounds_from_tuple(values: Tuple[Range, ...]) -> GainBounds:
    kp, ki, kd = values
    return GainBounds(kp=kp, ki=ki, kd=kd)


def create_cpu_axis() -> AxisController:
    return AxisController(AXIS_CPU, _gains_from_tuple(DEFAULT_CPU_GAINS), _bounds_from_tuple(CPU_GAIN_BOUNDS),
                          CPU_VARIANCE_HIGH, CPU_VARIANCE_LOW)


def create_gpu_axis() -> AxisController:
    return AxisController(AXIS_GPU, _gains_from_tuple(DEFAULT_GPU_GAINS), _bounds_from_tuple(GPU_GAIN_BOUNDS),
                          GPU_VARIANCE_HIGH, GPU_VARIANCE_LOW)
