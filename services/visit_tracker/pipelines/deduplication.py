"""Collapse visits that share the ``(visit date, record number)`` key."""

from __future__ import annotations

from collections.abc import Iterable

from shared.models.visit import VisitRecord
from shared.observability.logger import get_logger

__all__ = ["deduplicate"]

logger = get_logger(__name__)


def deduplicate(records: Iterable[VisitRecord]) -> list[VisitRecord]:
    """Keep the first record seen for each composite key.

    Later duplicates are dropped whole; no fields are merged.
    """

    seen: set[tuple[str, str]] = set()
    unique: list[VisitRecord] = []
    for record in records:
        key = record.dedup_key
        if key in seen:
            logger.debug(
                "visit_duplicate_dropped",
                source_id=record.source_id,
                origin=record.origin_tag.value,
            )
            continue
        seen.add(key)
        unique.append(record)
    return unique
