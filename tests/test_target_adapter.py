"""
Tests for workload/power based target temperature selection.
"""

import pytest

from config.settings import TARGETS_BALANCED, TARGETS_BATTERY, TARGETS_HEAVY
from core.target_adapter import TargetTemperatureAdapter


class TestTargetSelection:
    def test_balanced_by_default(self, make_sample):
        adapter = TargetTemperatureAdapter()
        assert adapter.update(make_sample()) == TARGETS_BALANCED

    def test_heavy_cpu_load(self, make_sample):
        adapter = TargetTemperatureAdapter()
        assert adapter.update(make_sample(cpu_util=85.0)) == TARGETS_HEAVY
        assert (adapter.cpu_target, adapter.gpu_target) == TARGETS_HEAVY

    def test_heavy_gpu_load(self, make_sample):
        adapter = TargetTemperatureAdapter()
        assert adapter.update(make_sample(gpu_util=60.0)) == TARGETS_HEAVY

    def test_battery_when_not_heavy(self, make_sample):
        adapter = TargetTemperatureAdapter()
        assert adapter.update(make_sample(on_battery=True)) == TARGETS_BATTERY

    def test_heavy_wins_over_battery(self, make_sample):
        adapter = TargetTemperatureAdapter()
        assert adapter.update(make_sample(cpu_util=90.0, on_battery=True)) == TARGETS_HEAVY

    def test_thresholds_are_exclusive(self, make_sample):
        adapter = TargetTemperatureAdapter()
        assert adapter.update(make_sample(cpu_util=70.0, gpu_util=50.0)) == TARGETS_BALANCED

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError):
            TargetTemperatureAdapter(policy="smooth")


class TestHysteresisPolicy:
    def test_no_policy_flips_at_threshold(self, make_sample):
        adapter = TargetTemperatureAdapter(policy="none")
        adapter.update(make_sample(cpu_util=71.0))
        assert adapter.update(make_sample(cpu_util=69.0)) == TARGETS_BALANCED

    def test_deadband_holds_heavy_inside_band(self, make_sample):
        adapter = TargetTemperatureAdapter(policy="deadband", band_percent=5.0)
        adapter.update(make_sample(cpu_util=71.0))
        assert adapter.update(make_sample(cpu_util=69.0)) == TARGETS_HEAVY
        assert adapter.update(make_sample(cpu_util=66.0)) == TARGETS_HEAVY

    def test_deadband_releases_below_band(self, make_sample):
        adapter = TargetTemperatureAdapter(policy="deadband", band_percent=5.0)
        adapter.update(make_sample(cpu_util=71.0))
        assert adapter.update(make_sample(cpu_util=64.0, gpu_util=40.0)) == TARGETS_BALANCED

    def test_deadband_does_not_lower_entry_threshold(self, make_sample):
        adapter = TargetTemperatureAdapter(policy="deadband", band_percent=5.0)
        assert adapter.update(make_sample(cpu_util=68.0)) == TARGETS_BALANCED

    def test_reset_restores_balanced(self, make_sample):
        adapter = TargetTemperatureAdapter(policy="deadband")
        adapter.update(make_sample(cpu_util=95.0))
        adapter.reset()
        assert (adapter.cpu_target, adapter.gpu_target) == TARGETS_BALANCED
        assert adapter.update(make_sample(cpu_util=68.0)) == TARGETS_BALANCED
