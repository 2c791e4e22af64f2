"""Normalization, filtering and de-duplication stages for visit records."""

from .deduplication import deduplicate
from .filtering import VisitFilter, apply_filter
from .normalizer import (
    NormalizationRules,
    is_treatment_performed,
    is_valid_visit_date,
    normalize_document,
    normalize_documents,
    normalize_fields,
    normalize_row,
    normalize_sheet_values,
    sheet_source_id,
)
from .resilience import NO_RETRY, RetryPolicy, call_async_with_retry

__all__ = [
    "NO_RETRY",
    "NormalizationRules",
    "RetryPolicy",
    "VisitFilter",
    "apply_filter",
    "call_async_with_retry",
    "deduplicate",
    "is_treatment_performed",
    "is_valid_visit_date",
    "normalize_document",
    "normalize_documents",
    "normalize_fields",
    "normalize_row",
    "normalize_sheet_values",
    "sheet_source_id",
]
