"""Date and month predicates over the reconciled visit stream."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional

from shared.http.errors import InvalidVisitFilterError
from shared.models.visit import VisitRecord

__all__ = ["VisitFilter", "apply_filter"]

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")


@dataclass(frozen=True)
class VisitFilter:
    """Exact ``date`` or ``month`` prefix; ``date`` wins when both are set."""

    date: Optional[str] = None
    month: Optional[str] = None

    @classmethod
    def from_query(cls, date: str | None = None, month: str | None = None) -> "VisitFilter":
        """Validate raw query parameters; blank values count as absent."""

        cleaned_date = (date or "").strip() or None
        cleaned_month = (month or "").strip() or None
        if cleaned_date is not None and not _DATE_PATTERN.match(cleaned_date):
            raise InvalidVisitFilterError("tanggal", cleaned_date, expected="YYYY-MM-DD")
        if cleaned_date is None and cleaned_month is not None:
            if not _MONTH_PATTERN.match(cleaned_month):
                raise InvalidVisitFilterError("month", cleaned_month, expected="YYYY-MM")
        return cls(date=cleaned_date, month=cleaned_month)

    @property
    def is_empty(self) -> bool:
        return not self.date and not self.month

    def matches(self, record: VisitRecord) -> bool:
        if self.date:
            return record.visit_date == self.date
        if self.month:
            return record.visit_date.startswith(self.month)
        return True


def apply_filter(
    records: Iterable[VisitRecord], visit_filter: VisitFilter | None = None
) -> list[VisitRecord]:
    """Return the records matching ``visit_filter`` in their original order."""

    if visit_filter is None or visit_filter.is_empty:
        return list(records)
    return [record for record in records if visit_filter.matches(record)]
