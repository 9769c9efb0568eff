"""
carbon_config -- single public entrypoint for gateway settings.

``get_active_config()`` is the only way runtime code obtains settings.
Settings sets live in ``carbon_config/sets/<name>.yaml``; every successful
load emits a ``gateway_config_loaded`` log line carrying the set name and
the checksum of the parsed document, so a log stream can be tied back to
the exact settings in force.

``apply_settings()`` puts a loaded set into effect: logging at its level
and the module-level engine bound to its database.
"""

from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import Engine

from carbon_config.loader import load_settings
from carbon_config.schema import GatewaySettings
from carbon_kernel.db.engine import init_engine_from_url
from carbon_kernel.logging_config import configure_logging, get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    config_dir: Path | None = None,
    name: str = "default",
) -> GatewaySettings:
    """
    Load the named settings set.

    Raises:
        FileNotFoundError: no ``<name>.yaml`` in the config directory.
        ValueError: a setting failed validation.
    """
    path = (config_dir or _DEFAULT_CONFIG_DIR) / f"{name}.yaml"
    settings = load_settings(path, name=name)
    _logger.info(
        "gateway_config_loaded",
        extra={
            "config_name": settings.name,
            "checksum": settings.checksum,
            "default_collection_frequency": settings.default_collection_frequency.value,
        },
    )
    return settings


def apply_settings(settings: GatewaySettings) -> Engine:
    """Configure logging at the set's level, then initialize the engine."""
    configure_logging(level=settings.log_level)
    return init_engine_from_url(settings.database_url)


__all__ = ["GatewaySettings", "apply_settings", "get_active_config"]
