# tools/config_manager.py
# -*- coding: utf-8 -*-
"""
Manages controller configuration loading, saving and validation.
"""

import json
import os
import sys
from typing import Dict, List, Optional, Any

# Import settings for defaults
from config.settings import (
    APP_VERSION,
    DEFAULT_CONTROLLER_SETTINGS,
    TARGET_POLICIES
)

# Type Hinting
ConfigDict = Dict[str, Any]

# --- Validation Helper Functions (Module-level) ---

def _validate_numeric(value: Any, default: Any, min_val: Optional[float] = None, max_val: Optional[float] = None) -> Any:
    """Validates a numeric value against a type and optional range."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    if min_val is not None and value < min_val:
        return default
    if max_val is not None and value > max_val:
        return default
    return value

def _validate_int(value: Any, default: int, min_val: int = 1) -> int:
    """Validates a positive integer (whole floats such as 300.0 are accepted)."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value if value >= min_val else default

def _validate_choice(value: Any, default: str, choices: List[str]) -> str:
    """Validates a string value against a list of allowed choices."""
    return value if isinstance(value, str) and value in choices else default

# Per-key validators; keys without an entry are type-checked against the default
_VALIDATORS = {
    "history_capacity": lambda v, d: _validate_int(v, d),
    "gain_adaptation_interval_cycles": lambda v, d: _validate_int(v, d),
    "target_hysteresis_policy": lambda v, d: _validate_choice(v, d, list(TARGET_POLICIES)),
    "target_hysteresis_band_percent": lambda v, d: _validate_numeric(v, d, 0, 50),
    "gpu_refresh_delay_s": lambda v, d: _validate_numeric(v, d, min_val=0),
    "gpu_refresh_interval_s": lambda v, d: _validate_numeric(v, d, min_val=0),
    "gpu_stop_timeout_s": lambda v, d: _validate_numeric(v, d, min_val=0),
}

# --- ConfigManager Class ---

class ConfigManager:
    """Handles loading, saving and validation of the controller configuration file."""

    def __init__(self, filename: str):
        """
        Args:
            filename: Absolute path of the JSON configuration file.
        """
        self.filename = filename
        self.config: ConfigDict = self._get_default_config()

    def _get_default_config(self) -> ConfigDict:
        """Returns a fresh copy of the default configuration."""
        return dict(DEFAULT_CONTROLLER_SETTINGS)

    def validate(self, loaded: Any) -> ConfigDict:
        """
        Validates a loaded dictionary key by key. Invalid or missing values
        fall back to their defaults; unknown keys are dropped.
        """
        validated = self._get_default_config()
        if not isinstance(loaded, dict):
            return validated

        for key, default_value in validated.items():
            loaded_value = loaded.get(key)
            if loaded_value is None:
                continue
            validator = _VALIDATORS.get(key)
            if validator is not None:
                validated[key] = validator(loaded_value, default_value)
            elif isinstance(loaded_value, type(default_value)):
                validated[key] = loaded_value
            else:
                print(f"Warning: Invalid value for '{key}' in {self.filename}: {loaded_value!r}. Using default.",
                      file=sys.stderr)
        return validated

    def load_config(self) -> ConfigDict:
        """
        Loads configuration from the file, validates it and applies defaults.
        Writes a default file if none exists yet.
        """
        try:
            if not os.path.exists(self.filename):
                self.config = self._get_default_config()
                self.save_config()
                return self.config

            print(f"Loading configuration from: {self.filename}")
            with open(self.filename, 'r', encoding='utf-8') as f:
                loaded_config = json.load(f)

            if not isinstance(loaded_config, dict):
                raise ValueError("Config file is not a valid JSON object.")

            self.config = self.validate(loaded_config)
            return self.config

        except (json.JSONDecodeError, IOError, TypeError, ValueError) as e:
            print(f"Error loading configuration from {self.filename}: {e}. Using defaults.", file=sys.stderr)
            self.config = self._get_default_config()
            return self.config

    def save_config(self):
        """Saves the current configuration to the file."""
        try:
            to_save = self.validate(self.config)
            to_save["app_version"] = APP_VERSION

            directory = os.path.dirname(self.filename)
            if directory:
                os.makedirs(directory, exist_ok=True)

            with open(self.filename, 'w', encoding='utf-8') as f:
                json.dump(to_save, f, indent=4, ensure_ascii=False)

        except (IOError, TypeError) as e:
            print(f"Error saving configuration to {self.filename}: {e}", file=sys.stderr)

    def get(self, key: str, default: Any = None) -> Any:
        """Gets a configuration value."""
        return self.config.get(key, default)

    def set(self, key: str, value: Any):
        """Sets a configuration value; it is validated on the next save."""
        self.config[key] = value
