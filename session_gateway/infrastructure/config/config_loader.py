"""
Configuration Loader - Bridge Between JSON Config and AppSettings
================================================================
Loads configuration from a JSON file and maps known sections onto AppSettings.
"""

import json
import os
from pathlib import Path
from typing import Any

from .settings import AppSettings

SECTIONS = ("sessions", "webhook", "transport", "persistence", "api", "logging")


def _resolve_env_vars(data: Any) -> Any:
    """Replace ``"${VAR}"`` string values with the environment value (empty if unset)."""
    if isinstance(data, dict):
        return {k: _resolve_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [_resolve_env_vars(i) for i in data]
    if isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        return os.getenv(data[2:-1], "")
    return data


def load_app_settings_from_json(config_path: str = "config/config.json") -> AppSettings:
    """
    Load AppSettings from a JSON configuration file.

    Values present in the file win over environment variables; sections missing
    from the file keep their env/default values.

    Args:
        config_path: Path to the JSON file

    Returns:
        Configured AppSettings instance
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = json.load(f)

        resolved = _resolve_env_vars(config_data)
        defaults = AppSettings()
        overrides = {}

        for section in SECTIONS:
            values = resolved.get(section)
            if not isinstance(values, dict):
                continue
            current = getattr(defaults, section).model_dump()
            current.update(values)
            overrides[section] = type(getattr(defaults, section))(**current)

        for key in ("app_name", "debug"):
            if key in resolved:
                overrides[key] = resolved[key]

        return defaults.model_copy(update=overrides)

    except Exception as e:
        print(f"[WARNING] Failed to load JSON config from {config_path}: {e}")
        print("[INFO] Using default AppSettings configuration")
        return AppSettings()


def get_settings_from_working_directory() -> AppSettings:
    """
    Load settings from config.json relative to the working directory.

    ``SESSION_GATEWAY_CONFIG`` overrides the search path.

    Returns:
        Configured AppSettings instance
    """
    explicit = os.getenv("SESSION_GATEWAY_CONFIG")
    possible_paths = [explicit] if explicit else [
        "config/config.json",
        "../config/config.json",
    ]

    for config_path in possible_paths:
        if Path(config_path).exists():
            return load_app_settings_from_json(config_path)

    return AppSettings()
