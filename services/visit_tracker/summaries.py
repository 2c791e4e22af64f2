"""Chart aggregates computed over reconciled visits."""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence

from shared.models.visit import (
    FeeBreakdown,
    Gender,
    GenderBreakdown,
    TreatmentCount,
    VisitRecord,
    VisitSummary,
    classify_gender,
)

__all__ = ["summarize_visits"]

_FEE_BPJS = "bpjs"
_FEE_UMUM = "umum"


def _gender_breakdown(records: Sequence[VisitRecord], *, by_month: bool) -> list[GenderBreakdown]:
    buckets: dict[str, GenderBreakdown] = {}
    for record in records:
        label = record.visit_month if by_month else record.visit_date
        bucket = buckets.setdefault(label, GenderBreakdown(label=label))
        gender = classify_gender(record.gender)
        if gender is Gender.MALE:
            bucket.male += 1
        elif gender is Gender.FEMALE:
            bucket.female += 1
    return [buckets[label] for label in sorted(buckets)]


def _fee_breakdown(records: Sequence[VisitRecord]) -> list[FeeBreakdown]:
    buckets: dict[str, FeeBreakdown] = {}
    for record in records:
        bucket = buckets.setdefault(record.visit_month, FeeBreakdown(label=record.visit_month))
        fee = record.fee_category.strip().casefold()
        if fee == _FEE_BPJS:
            bucket.bpjs += 1
        elif fee == _FEE_UMUM:
            bucket.umum += 1
    return [buckets[label] for label in sorted(buckets)]


def _treatment_counts(
    records: Sequence[VisitRecord], treatment_columns: Sequence[str]
) -> list[TreatmentCount]:
    counts: Counter[str] = Counter()
    for record in records:
        counts.update(record.treatments)
    return [
        TreatmentCount(name=column, count=counts[column])
        for column in treatment_columns
        if counts[column]
    ]


def summarize_visits(
    records: Iterable[VisitRecord],
    treatment_columns: Sequence[str],
    *,
    failed_sources: Sequence[str] = (),
) -> VisitSummary:
    """Aggregate ``records`` into the dashboard's daily, monthly, fee and treatment series."""

    materialized = list(records)
    return VisitSummary(
        total=len(materialized),
        daily=_gender_breakdown(materialized, by_month=False),
        monthly=_gender_breakdown(materialized, by_month=True),
        fees=_fee_breakdown(materialized),
        treatments=_treatment_counts(materialized, treatment_columns),
        failed_sources=list(failed_sources),
    )
