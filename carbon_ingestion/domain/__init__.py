"""Ingestion domain: category field rules and pipeline result types."""

from carbon_ingestion.domain.categories import (
    CATEGORY_RULES,
    CanonicalField,
    CategoryRule,
    FieldKind,
    find_rule,
)
from carbon_ingestion.domain.types import (
    BatchReport,
    BatchStatus,
    ErrorDetail,
    IngestionResult,
    IngestionStatus,
    ItemOutcome,
)

__all__ = [
    "BatchReport",
    "BatchStatus",
    "CATEGORY_RULES",
    "CanonicalField",
    "CategoryRule",
    "ErrorDetail",
    "FieldKind",
    "IngestionResult",
    "IngestionStatus",
    "ItemOutcome",
    "find_rule",
]
