"""JSON column helpers shared by the gateway models."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


def to_json_safe(obj: Any) -> Any:
    """Convert values to JSON-serializable form (Decimal -> str, etc.)."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {str(k): to_json_safe(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_json_safe(v) for v in obj]
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    return obj


def decimals_from_json(data: dict[str, Any] | None) -> dict[str, Decimal]:
    if not data:
        return {}
    return {name: Decimal(str(value)) for name, value in data.items()}
