# -*- coding: utf-8 -*-
"""
Adaptive fan-curve learning.

Builds an empirical temperature -> fan speed map from observed cooling
outcomes, synthesizes fan curves from it and suggests speed corrections with
a trend-based lookahead. Speeds are percentages here. The engine performs no
I/O; samples come in and go out through `load_samples`/`export_samples`.
"""
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

import numpy as np

from .models import FanCurveDataPoint, FanSpeedSuggestion, LearningStats, PowerMode, TrainingSample
from config.settings import (
    MIN_FAN_PERCENT, MAX_FAN_PERCENT,
    LEARNING_BUCKET_SIZE_C, LEARNING_MAX_BUCKETS, LEARNING_THRESHOLD_SAMPLES,
    LEARNING_NEIGHBOR_RANGE_C, LEARNING_MAX_NEIGHBORS,
    CURVE_START_TEMP_C, CURVE_END_TEMP_C, CURVE_STEP_C,
    FALLBACK_MIN_SPEED_PERCENT, FALLBACK_MAX_SPEED_PERCENT, POWER_MODE_SPEED_BIAS,
    TREND_FAST_C, TREND_HEATING_BOOST, TREND_COOLING_CUT, SUGGESTION_DEADBAND_PERCENT,
    HIGH_TEMP_REASON_C, LOW_TEMP_REASON_C,
    NEUTRAL_EFFECTIVENESS, EXPECTED_DROP_PER_MINUTE_AT_FULL_SPEED_C,
    RAW_DUTY_MAX, EXPORTED_SAMPLE_DURATION_S
)

# Type hint, same layout as a fan table: [[temperature, speed], ...]
FanTable = List[List[int]]


def temperature_bucket(temperature: float) -> int:
    """Rounds a temperature down to its 5-degree bucket."""
    return int(temperature // LEARNING_BUCKET_SIZE_C) * LEARNING_BUCKET_SIZE_C


class AdaptiveFanCurveEngine:
    """Learns fan speeds per temperature bucket from recorded cooling outcomes."""

    def __init__(self, learning_enabled: bool = True):
        self.learning_enabled = learning_enabled
        self._buckets: Dict[int, FanCurveDataPoint] = {}
        self._last_load_time: Optional[datetime] = None

    # --- Recording ---
    def record(self, temperature: float, fan_speed: float, effectiveness: float):
        """Merges one observation into its bucket's running averages."""
        if not self.learning_enabled:
            return
        self._merge(temperature_bucket(temperature), fan_speed, effectiveness, 1)

    def _merge(self, key: int, fan_speed: float, effectiveness: float, weight: int):
        """Folds `weight` observations with the given means into bucket `key`."""
        existing = self._buckets.get(key)
        if existing is None:
            self._buckets[key] = FanCurveDataPoint(
                temperature_bucket=key,
                mean_fan_speed=float(fan_speed),
                mean_cooling_effectiveness=float(effectiveness),
                sample_count=weight,
            )
        else:
            n = existing.sample_count
            total = n + weight
            existing.mean_fan_speed = (existing.mean_fan_speed * n + fan_speed * weight) / total
            existing.mean_cooling_effectiveness = (existing.mean_cooling_effectiveness * n + effectiveness * weight) / total
            existing.sample_count = total

        # Bound memory: drop the least confident bucket
        if len(self._buckets) > LEARNING_MAX_BUCKETS:
            weakest = min(self._buckets.values(), key=lambda p: p.sample_count)
            del self._buckets[weakest.temperature_bucket]

    # --- Queries ---
    def optimal_speed_for(self, temperature: float, power_mode: PowerMode = PowerMode.BALANCE) -> int:
        """
        Averages up to three nearest learned buckets within +/-10 degrees, or
        falls back to a linear estimate, then applies the power-mode bias.
        """
        nearby = sorted(
            (p for k, p in self._buckets.items() if abs(k - temperature) <= LEARNING_NEIGHBOR_RANGE_C),
            key=lambda p: abs(p.temperature_bucket - temperature)
        )[:LEARNING_MAX_NEIGHBORS]

        if nearby:
            base_speed = int(np.mean([p.mean_fan_speed for p in nearby]))
        else:
            base_speed = int(max(FALLBACK_MIN_SPEED_PERCENT,
                                 min(FALLBACK_MAX_SPEED_PERCENT, (temperature - 30) * 2)))

        if power_mode == PowerMode.QUIET:
            return max(FALLBACK_MIN_SPEED_PERCENT, base_speed - POWER_MODE_SPEED_BIAS)
        if power_mode == PowerMode.PERFORMANCE:
            return min(MAX_FAN_PERCENT, base_speed + POWER_MODE_SPEED_BIAS)
        return base_speed

    def generate_curve(self, power_mode: PowerMode = PowerMode.BALANCE) -> Optional[FanTable]:
        """
        Synthesizes a fan table from 30 to 90 degrees in 6-degree steps.

        Returns:
            [[temperature, speed], ...] or None while learning is disabled or
            fewer than the threshold number of samples have been recorded.
        """
        if not self.learning_enabled:
            return None
        if self.data_point_count() < LEARNING_THRESHOLD_SAMPLES:
            return None

        return [[temp, self.optimal_speed_for(temp, power_mode)]
                for temp in range(CURVE_START_TEMP_C, CURVE_END_TEMP_C + 1, CURVE_STEP_C)]

    def suggest(self, temperature: float, current_speed: int, trend: float,
                power_mode: PowerMode = PowerMode.BALANCE) -> FanSpeedSuggestion:
        """
        Suggests a fan speed for the current conditions.

        Args:
            temperature: Current temperature.
            current_speed: Currently applied fan speed percentage.
            trend: Temperature trend; positive is heating, negative is cooling.
            power_mode: Active power mode.
        """
        if not self.learning_enabled:
            return FanSpeedSuggestion(False, current_speed, "Adaptive fan curves disabled")

        optimal = self.optimal_speed_for(temperature, power_mode)
        if trend > TREND_FAST_C:
            optimal = min(MAX_FAN_PERCENT, optimal + TREND_HEATING_BOOST)
        elif trend < -TREND_FAST_C:
            optimal = max(FALLBACK_MIN_SPEED_PERCENT, optimal - TREND_COOLING_CUT)

        if abs(optimal - current_speed) < SUGGESTION_DEADBAND_PERCENT:
            return FanSpeedSuggestion(False, current_speed, "Current fan speed is optimal")

        return FanSpeedSuggestion(True, optimal, self._adjustment_reason(temperature, trend, optimal, current_speed))

    def _adjustment_reason(self, temp: float, trend: float, recommended: int, current: int) -> str:
        if trend > TREND_FAST_C:
            return f"Temperature rising rapidly ({temp}°C) - increasing fan to {recommended}%"
        if trend < -TREND_FAST_C:
            return f"Temperature dropping ({temp}°C) - reducing fan to {recommended}% for quieter operation"
        if temp > HIGH_TEMP_REASON_C:
            return f"High temperature ({temp}°C) - increasing fan to {recommended}% for safety"
        if temp < LOW_TEMP_REASON_C and current > LOW_TEMP_REASON_C:
            return f"Low temperature ({temp}°C) - reducing fan to {recommended}% to save power"
        return f"Learned optimal fan speed for {temp}°C is {recommended}%"

    @staticmethod
    def cooling_effectiveness(temp_before: float, temp_after: float, fan_speed: float, duration_s: float) -> int:
        """
        Scores (0-100) how much of the expected temperature drop for this fan
        speed and duration was actually observed.
        """
        temp_drop = temp_before - temp_after
        expected_drop = (fan_speed / 100.0) * (duration_s / 60.0) * EXPECTED_DROP_PER_MINUTE_AT_FULL_SPEED_C
        if expected_drop <= 0:
            return NEUTRAL_EFFECTIVENESS
        effectiveness = int((temp_drop / expected_drop) * 100)
        return max(0, min(100, effectiveness))

    # --- Diagnostics ---
    def data_point_count(self) -> int:
        """Total samples recorded across all buckets."""
        return sum(p.sample_count for p in self._buckets.values())

    def unique_temperature_points(self) -> int:
        return len(self._buckets)

    def get_data_points(self) -> List[FanCurveDataPoint]:
        """Copies of all buckets, ordered by temperature."""
        return [replace(p) for _, p in sorted(self._buckets.items())]

    def stats(self) -> LearningStats:
        total = self.data_point_count()
        average = float(np.mean([p.mean_cooling_effectiveness for p in self._buckets.values()])) if self._buckets else 0.0
        return LearningStats(
            total_samples=total,
            unique_temperature_buckets=len(self._buckets),
            average_effectiveness=average,
            learning_enabled=self.learning_enabled,
            has_sufficient_data=total >= LEARNING_THRESHOLD_SAMPLES,
            last_load_time=self._last_load_time,
        )

    def clear(self):
        self._buckets.clear()
        print("Cleared all adaptive fan curve learning data.")

    # --- Persistence boundary ---
    def load_samples(self, samples: Iterable[TrainingSample]) -> int:
        """
        Rebuilds the learned map by replaying persisted samples. Each sample
        carries the number of observations it summarizes.

        Returns:
            Number of stored records replayed.
        """
        if not self.learning_enabled:
            return 0
        samples = list(samples)
        if not samples:
            print("No thermal training data to load.")
            return 0

        self._buckets.clear()
        for sample in samples:
            self._merge(temperature_bucket(sample.temp_before),
                        sample.fan_speed_before * MAX_FAN_PERCENT / RAW_DUTY_MAX,
                        sample.cooling_effectiveness,
                        max(1, sample.sample_count))
        self._last_load_time = datetime.now(timezone.utc)
        print(f"Loaded {len(samples)} thermal training samples into {len(self._buckets)} temperature buckets.")
        return len(samples)

    def export_samples(self) -> List[TrainingSample]:
        """Flattens the learned map into one training sample per bucket."""
        now = datetime.now(timezone.utc)
        exported = []
        for point in self._buckets.values():
            duty = int(round(max(MIN_FAN_PERCENT, min(MAX_FAN_PERCENT, point.mean_fan_speed)) * RAW_DUTY_MAX / MAX_FAN_PERCENT))
            exported.append(TrainingSample(
                timestamp=now,
                temp_before=point.temperature_bucket,
                temp_after=point.temperature_bucket,
                fan_speed_before=duty,
                fan_speed_after=duty,
                cooling_effectiveness=int(round(point.mean_cooling_effectiveness)),
                duration_seconds=EXPORTED_SAMPLE_DURATION_S,
                sample_count=point.sample_count,
            ))
        return exported
