"""Payload normalization and recorded-at resolution."""

from carbon_ingestion.mapping.engine import (
    NormalizedPayload,
    is_numeric,
    normalize,
    parse_number,
    unwrap,
)
from carbon_ingestion.mapping.recorded_at import parse_recorded_at

__all__ = [
    "NormalizedPayload",
    "is_numeric",
    "normalize",
    "parse_number",
    "parse_recorded_at",
    "unwrap",
]
