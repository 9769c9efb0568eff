"""
Gateway settings schema.

Frozen dataclass parsed from a YAML settings file by ``carbon_config.loader``.
Defaults apply to every key the file omits.
"""

from __future__ import annotations

from dataclasses import dataclass

from carbon_kernel.domain.collection import CollectionFrequency


@dataclass(frozen=True)
class GatewaySettings:
    name: str = "default"
    database_url: str = "sqlite+pysqlite:///:memory:"
    # Manual and file-import dates are wall-clock times at this offset (IST).
    wall_clock_utc_offset_minutes: int = 330
    # API and IoT devices report server-side dates in UTC.
    device_utc_offset_minutes: int = 0
    overdue_grace_hours: int = 0
    default_collection_frequency: CollectionFrequency = CollectionFrequency.MONTHLY
    log_level: str = "INFO"
    date_formats: tuple[str, ...] = ("%d/%m/%Y", "%Y-%m-%d")
    time_format: str = "%H:%M:%S"
    checksum: str = ""
