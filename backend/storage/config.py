"""Playback and display settings (autoplay, interval, text size)."""

import json
from pathlib import Path
from typing import Any

from .core import data_dir

_CONFIG_DEFAULTS: dict[str, Any] = {
    "autoPlay": False,
    "autoPlayIntervalSec": 5,
    "textSize": 18,
}


def _config_path() -> Path:
    return data_dir() / "config.json"


def _valid(key: str, value: Any) -> bool:
    if key == "autoPlay":
        return isinstance(value, bool)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if key == "autoPlayIntervalSec":
        return value > 0
    return True


def get_config() -> dict[str, Any]:
    """Read settings, returning defaults merged with valid stored values."""
    config = dict(_CONFIG_DEFAULTS)
    path = _config_path()
    if path.is_file():
        stored = json.loads(path.read_text())
        for key in _CONFIG_DEFAULTS:
            if key in stored and _valid(key, stored[key]):
                config[key] = stored[key]
    return config


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge valid fields into settings and persist. Returns full settings.

    Raises ValueError naming the first invalid field.
    """
    config = get_config()
    for key, value in fields.items():
        if key not in _CONFIG_DEFAULTS:
            continue
        if not _valid(key, value):
            raise ValueError(f"Invalid value for {key}")
        config[key] = value
    _config_path().write_text(json.dumps(config, indent=2))
    return config
