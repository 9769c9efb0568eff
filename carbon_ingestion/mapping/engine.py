"""
Payload normalizer: heterogeneous source payload -> canonical fields.

Pure apart from one warning log for unknown categories.  Looks up the
scope's ``CategoryRule`` and, for every canonical field, takes the first
alias present in the payload.

Coercion:
    - File import: every found numeric value goes through ``parse_number``,
      so empty or invalid cells become 0.
    - Other channels: a found value is used when numeric, otherwise the
      field's default applies (usually 0; 1 for ``occupancyEF`` and
      ``usePattern``).
    - Text fields (``treatmentType``, ``customerType``) pass through as
      strings on every channel.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from carbon_kernel.domain.org_chart import IngestionChannel, ScopeConfig
from carbon_kernel.logging_config import get_logger

from carbon_ingestion.domain.categories import CanonicalField, FieldKind, find_rule

logger = get_logger("ingestion.normalizer")

_WRAPPER_KEY = "dataValues"


@dataclass(frozen=True)
class NormalizedPayload:
    values: dict[str, Decimal] = field(default_factory=dict)
    attributes: dict[str, str] = field(default_factory=dict)
    category_known: bool = True

    @property
    def is_empty(self) -> bool:
        return not self.values and not self.attributes


# -----------------------------------------------------------------------------
# Coercion helpers (pure)
# -----------------------------------------------------------------------------


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    return number if number.is_finite() else None


def is_numeric(value: Any) -> bool:
    """True when ``value`` reads as a finite number."""
    return _to_decimal(value) is not None


def parse_number(value: Any) -> Decimal:
    """File-import coercion: anything that is not a finite number becomes 0."""
    number = _to_decimal(value)
    return Decimal("0") if number is None else number


def unwrap(raw: Mapping[str, Any]) -> Mapping[str, Any]:
    """Payloads may nest their fields under ``dataValues``."""
    inner = raw.get(_WRAPPER_KEY)
    if isinstance(inner, Mapping):
        return inner
    return raw


def _first_present(source: Mapping[str, Any], canonical: CanonicalField) -> tuple[bool, Any]:
    for key in canonical.aliases:
        if source.get(key) is not None:
            return True, source[key]
    return False, None


# -----------------------------------------------------------------------------
# Normalization
# -----------------------------------------------------------------------------


def normalize(
    raw: Mapping[str, Any],
    scope: ScopeConfig,
    channel: IngestionChannel,
) -> NormalizedPayload:
    """Map ``raw`` onto the canonical field set of ``scope``'s category."""
    rule = find_rule(scope)
    if rule is None:
        logger.warning(
            "unknown_category",
            extra={
                "scope_id": scope.scope_id,
                "scope_tier": scope.scope_tier,
                "category_name": scope.category_name,
                "activity": scope.activity,
            },
        )
        return NormalizedPayload(category_known=False)

    source = unwrap(raw)
    values: dict[str, Decimal] = {}
    attributes: dict[str, str] = {}

    for canonical in rule.fields:
        found, value = _first_present(source, canonical)

        if canonical.kind is FieldKind.TEXT:
            text = str(value) if found else str(canonical.default)
            for name in canonical.output_names:
                attributes[name] = text
            continue

        if not found:
            number = canonical.default
        elif channel is IngestionChannel.FILE_IMPORT:
            number = parse_number(value)
        else:
            coerced = _to_decimal(value)
            number = canonical.default if coerced is None else coerced

        for name in canonical.output_names:
            values[name] = Decimal(number)

    return NormalizedPayload(values=values, attributes=attributes)
