"""
Settings loader (``carbon_config.loader``).

Reads one YAML settings file into a ``GatewaySettings``.  Internal to the
config package; runtime callers use ``carbon_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown frequency, non-integer offset or grace -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from carbon_config.schema import GatewaySettings
from carbon_kernel.domain.collection import CollectionFrequency


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form; identical input, identical hash."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def parse_settings(data: dict[str, Any], name: str = "default") -> GatewaySettings:
    defaults = GatewaySettings()
    gateway = data.get("gateway", data)

    frequency = gateway.get(
        "default_collection_frequency", defaults.default_collection_frequency.value
    )
    try:
        frequency_enum = CollectionFrequency(frequency)
    except ValueError:
        raise ValueError(f"Unknown collection frequency: {frequency!r}") from None

    date_formats = gateway.get("date_formats", list(defaults.date_formats))
    if not date_formats or not all(isinstance(f, str) for f in date_formats):
        raise ValueError("date_formats must be a non-empty list of strftime patterns")

    return GatewaySettings(
        name=name,
        database_url=str(gateway.get("database_url", defaults.database_url)),
        wall_clock_utc_offset_minutes=_int(
            gateway, "wall_clock_utc_offset_minutes", defaults.wall_clock_utc_offset_minutes
        ),
        device_utc_offset_minutes=_int(
            gateway, "device_utc_offset_minutes", defaults.device_utc_offset_minutes
        ),
        overdue_grace_hours=_int(gateway, "overdue_grace_hours", defaults.overdue_grace_hours),
        default_collection_frequency=frequency_enum,
        log_level=str(gateway.get("log_level", defaults.log_level)).upper(),
        date_formats=tuple(date_formats),
        time_format=str(gateway.get("time_format", defaults.time_format)),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path, name: str = "default") -> GatewaySettings:
    return parse_settings(load_yaml_file(path), name=name)
