"""Merge the document store and spreadsheet into one visit stream.

Sources are read concurrently. Each stream is normalized on its own, then the
streams are concatenated with the document store first and the sheets in
their configured order, filtered, and de-duplicated. A source that fails is
reported in ``failed_sources`` instead of failing the whole read.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from itertools import chain
from typing import Awaitable

from services.visit_tracker.clients.document_store import (
    DOCUMENT_STORE_SOURCE,
    DocumentStoreError,
    VisitDocumentStore,
)
from services.visit_tracker.clients.spreadsheet import (
    SPREADSHEET_SOURCE,
    SpreadsheetError,
    SpreadsheetSource,
)
from shared.http.errors import VisitSourceError
from shared.models.visit import VisitRecord
from shared.observability.logger import get_logger

from .deduplication import deduplicate
from .filtering import VisitFilter, apply_filter
from .normalizer import NormalizationRules, normalize_documents, normalize_sheet_values
from .resilience import NO_RETRY, RetryPolicy, call_async_with_retry

__all__ = [
    "ReconciliationResult",
    "VisitReconciler",
    "sheet_read_policy",
    "sheet_source_label",
]

logger = get_logger(__name__)

_SOURCE_ERRORS = (DocumentStoreError, SpreadsheetError)


def sheet_source_label(sheet_name: str) -> str:
    return f"{SPREADSHEET_SOURCE}:{sheet_name}"


def sheet_read_policy(attempts: int = 3) -> RetryPolicy:
    """Retry only spreadsheet failures, ``attempts`` times in total."""

    if attempts <= 1:
        return NO_RETRY
    return RetryPolicy(attempts=attempts, retry_exceptions=(SpreadsheetError,))


_DEFAULT_SHEET_POLICY = sheet_read_policy()


@dataclass
class ReconciliationResult:
    records: list[VisitRecord] = field(default_factory=list)
    failed_sources: list[str] = field(default_factory=list)


class VisitReconciler:
    """Read every configured source and return one de-duplicated stream."""

    def __init__(
        self,
        document_store: VisitDocumentStore,
        spreadsheet: SpreadsheetSource | None = None,
        *,
        rules: NormalizationRules | None = None,
        sheet_read_policy: RetryPolicy | None = None,
    ) -> None:
        self._document_store = document_store
        self._spreadsheet = spreadsheet
        self._rules = rules or NormalizationRules()
        self._sheet_read_policy = sheet_read_policy or _DEFAULT_SHEET_POLICY

    @property
    def rules(self) -> NormalizationRules:
        return self._rules

    async def _read_documents(self) -> list[VisitRecord]:
        documents = await self._document_store.find_visits()
        return normalize_documents(documents, self._rules)

    async def _read_sheet(
        self, spreadsheet: SpreadsheetSource, sheet_name: str
    ) -> list[VisitRecord]:
        values = await call_async_with_retry(
            spreadsheet.read_sheet, sheet_name, policy=self._sheet_read_policy
        )
        return normalize_sheet_values(sheet_name, values, self._rules)

    def _readers(self) -> list[tuple[str, Awaitable[list[VisitRecord]]]]:
        readers: list[tuple[str, Awaitable[list[VisitRecord]]]] = [
            (DOCUMENT_STORE_SOURCE, self._read_documents())
        ]
        spreadsheet = self._spreadsheet
        if spreadsheet is not None:
            readers.extend(
                (sheet_source_label(name), self._read_sheet(spreadsheet, name))
                for name in spreadsheet.sheet_names
            )
        return readers

    async def reconcile(self, visit_filter: VisitFilter | None = None) -> ReconciliationResult:
        readers = self._readers()
        outcomes = await asyncio.gather(
            *(reader for _, reader in readers), return_exceptions=True
        )

        streams: list[list[VisitRecord]] = []
        failed: list[str] = []
        for (label, _), outcome in zip(readers, outcomes):
            if isinstance(outcome, _SOURCE_ERRORS):
                logger.warning("visit_source_failed", source=label, error=str(outcome))
                failed.append(label)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            streams.append(outcome)

        if not streams:
            raise VisitSourceError(
                "all",
                detail="No visit source could be read.",
                reason=", ".join(failed),
            )

        merged = list(chain.from_iterable(streams))
        records = deduplicate(apply_filter(merged, visit_filter))
        logger.info(
            "visits_reconciled",
            read=len(merged),
            returned=len(records),
            failed_sources=failed or None,
        )
        return ReconciliationResult(records=records, failed_sources=failed)
