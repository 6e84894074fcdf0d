"""
Configuration management for homesense.

Config is stored in ~/.homesense/config.json (HOMESENSE_CONFIG overrides the
path). Environment variables take precedence over the file.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

CONFIG_DIR = Path.home() / ".homesense"
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_INTERVAL = 10.0
DEFAULT_BUS = 1

DEFAULT_SENSORS = {
    "scd4x": {"enabled": True, "address": 0x62},
    "sen5x": {"enabled": True, "address": 0x69},
    "pmsa003i": {"enabled": True, "address": 0x12},
    "bme68x": {"enabled": True, "address": 0x77},
}

DEFAULT_CONFIG = {
    "interval": None,
    "i2c_bus": None,
    "sensors": None,
}


@dataclass
class SensorConfig:
    """One sensor entry.

    Args:
        name: Driver family name (scd4x, sen5x, pmsa003i, bme68x).
        address: 7-bit I2C address.
        enabled: Whether the runner initializes it.
    """

    name: str
    address: int
    enabled: bool = True


def get_config_path() -> Path:
    """Get the path to the config file."""
    env_path = os.environ.get("HOMESENSE_CONFIG")
    if env_path:
        return Path(env_path)
    return CONFIG_FILE


def load_config() -> dict:
    """Load config from file, falling back to defaults."""
    path = get_config_path()
    if not path.exists():
        return DEFAULT_CONFIG.copy()

    try:
        with open(path, "r") as f:
            config = json.load(f)
            # Merge with defaults to handle missing keys
            return {**DEFAULT_CONFIG, **config}
    except (json.JSONDecodeError, IOError):
        return DEFAULT_CONFIG.copy()


def save_config(config: dict) -> None:
    """Save config to file."""
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(config, f, indent=2)


def get_interval() -> float:
    """Seconds between polling cycles."""
    # Environment variable takes precedence
    env_interval = os.environ.get("HOMESENSE_INTERVAL")
    if env_interval:
        return float(env_interval)

    config = load_config()
    return float(config.get("interval") or DEFAULT_INTERVAL)


def get_bus_number() -> int:
    """I2C bus number (/dev/i2c-N)."""
    env_bus = os.environ.get("HOMESENSE_I2C_BUS")
    if env_bus:
        return int(env_bus)

    config = load_config()
    bus = config.get("i2c_bus")
    return DEFAULT_BUS if bus is None else int(bus)


def _parse_address(value) -> int:
    # JSON has no hex literals; accept "0x62" as well as 98
    if isinstance(value, str):
        return int(value, 0)
    return int(value)


def get_sensor_configs(config: Optional[dict] = None) -> Dict[str, SensorConfig]:
    """Per-sensor settings, defaults overlaid with the config file entries."""
    if config is None:
        config = load_config()
    overrides = config.get("sensors") or {}

    result = {}
    for name, defaults in DEFAULT_SENSORS.items():
        entry = {**defaults, **overrides.get(name, {})}
        result[name] = SensorConfig(
            name=name,
            address=_parse_address(entry["address"]),
            enabled=bool(entry["enabled"]),
        )
    return result


def get_default_address(name: str) -> Optional[int]:
    defaults = DEFAULT_SENSORS.get(name)
    return defaults["address"] if defaults else None
