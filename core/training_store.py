# -*- coding: utf-8 -*-
"""
JSON-file persistence for thermal training samples.
"""
import json
import os
import sys
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import TrainingSample


def _sample_to_dict(sample: TrainingSample) -> Dict[str, Any]:
    data = asdict(sample)
    data["timestamp"] = sample.timestamp.isoformat()
    return data


def _sample_from_dict(data: Any) -> Optional[TrainingSample]:
    """Parses one stored sample; returns None for malformed entries."""
    if not isinstance(data, dict):
        return None
    try:
        return TrainingSample(
            timestamp=datetime.fromisoformat(data["timestamp"]),
            temp_before=int(data["temp_before"]),
            temp_after=int(data["temp_after"]),
            fan_speed_before=int(data["fan_speed_before"]),
            fan_speed_after=int(data["fan_speed_after"]),
            cooling_effectiveness=int(data["cooling_effectiveness"]),
            duration_seconds=int(data.get("duration_seconds", 60)),
            workload=str(data.get("workload", "unknown")),
            power_level=int(data.get("power_level", 0)),
            sample_count=max(1, int(data.get("sample_count", 1))),
        )
    except (KeyError, TypeError, ValueError):
        return None


class JsonTrainingStore:
    """Loads and saves training samples as a JSON list."""

    def __init__(self, filename: str):
        self.filename = filename

    def load_training_samples(self) -> List[TrainingSample]:
        """Returns the stored samples, or an empty list if the file is missing or unreadable."""
        if not os.path.exists(self.filename):
            return []
        try:
            with open(self.filename, 'r', encoding='utf-8') as f:
                raw = json.load(f)
        except (json.JSONDecodeError, IOError, UnicodeDecodeError) as e:
            print(f"Error loading training data from {self.filename}: {e}", file=sys.stderr)
            return []

        if not isinstance(raw, list):
            print(f"Training data in {self.filename} is not a list; ignoring it.", file=sys.stderr)
            return []

        samples = [s for s in (_sample_from_dict(item) for item in raw) if s is not None]
        skipped = len(raw) - len(samples)
        if skipped:
            print(f"Warning: Skipped {skipped} malformed training samples in {self.filename}.", file=sys.stderr)
        return samples

    def save_training_samples(self, samples: List[TrainingSample]) -> bool:
        """Writes all samples, replacing the file. Failures are logged, not raised."""
        try:
            directory = os.path.dirname(self.filename)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.filename, 'w', encoding='utf-8') as f:
                json.dump([_sample_to_dict(s) for s in samples], f, indent=4, ensure_ascii=False)
            return True
        except (IOError, TypeError) as e:
            print(f"Error saving training data to {self.filename}: {e}", file=sys.stderr)
            return False
