"""Visit operations exposed by the HTTP layer and the export script."""

from __future__ import annotations

from typing import Any

from services.visit_tracker.clients.document_store import (
    DOCUMENT_STORE_SOURCE,
    DocumentStoreError,
    VisitDocumentStore,
)
from services.visit_tracker.clients.spreadsheet import SpreadsheetSource
from services.visit_tracker.deletion import DeletionOutcome, DeletionRouter
from services.visit_tracker.pipelines.filtering import VisitFilter
from services.visit_tracker.pipelines.normalizer import (
    FIELD_ALIASES,
    NormalizationRules,
    is_treatment_performed,
    is_valid_visit_date,
    normalize_document,
)
from services.visit_tracker.pipelines.reconcile import ReconciliationResult, VisitReconciler
from services.visit_tracker.pipelines.resilience import RetryPolicy
from services.visit_tracker.summaries import summarize_visits
from shared.http.errors import IncompleteVisitError, VisitSourceError
from shared.models.visit import VisitRecord, VisitSubmission, VisitSummary
from shared.observability.audit import record_visit_audit
from shared.observability.logger import get_logger

__all__ = ["VisitService", "build_visit_document"]

logger = get_logger(__name__)

_PERFORMED = "Yes"
_NOT_PERFORMED = "No"


def _column(field_name: str) -> str:
    """Return the stored column name for a canonical field."""

    return FIELD_ALIASES[field_name][0]


def build_visit_document(
    submission: VisitSubmission, treatment_columns: tuple[str, ...]
) -> dict[str, Any]:
    """Validate ``submission`` and shape it like the clinic's stored documents."""

    missing = submission.missing_required_fields()
    if missing:
        raise IncompleteVisitError(missing)
    if not is_valid_visit_date(submission.visit_date):
        raise IncompleteVisitError(
            ["visitDate"], detail="Visit date must be a real date in YYYY-MM-DD format."
        )

    listed = {item.casefold() for item in submission.treatments}
    extra = submission.model_extra or {}
    known = {column.casefold() for column in treatment_columns}
    unknown = sorted(listed - known)
    if unknown:
        logger.warning("visit_unknown_treatments_ignored", treatments=unknown)

    document: dict[str, Any] = {
        _column("visit_date"): submission.visit_date,
        _column("patient_name"): submission.patient_name,
        _column("record_number"): submission.record_number,
        _column("gender"): submission.gender,
        _column("fee_category"): submission.fee_category,
    }
    for column in treatment_columns:
        performed = (
            column.casefold() in listed
            or is_treatment_performed(submission.treatment_flags.get(column))
            or is_treatment_performed(extra.get(column))
        )
        document[column] = _PERFORMED if performed else _NOT_PERFORMED
    document[_column("other_notes")] = submission.other_notes
    return document


class VisitService:
    """Read, create, delete and summarize visits across both sources."""

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
        self._reconciler = VisitReconciler(
            document_store,
            spreadsheet,
            rules=self._rules,
            sheet_read_policy=sheet_read_policy,
        )
        self._deletion_router = DeletionRouter(document_store, spreadsheet)

    @property
    def rules(self) -> NormalizationRules:
        return self._rules

    async def list_visits(self, visit_filter: VisitFilter | None = None) -> ReconciliationResult:
        return await self._reconciler.reconcile(visit_filter)

    async def summarize(self, visit_filter: VisitFilter | None = None) -> VisitSummary:
        result = await self._reconciler.reconcile(visit_filter)
        return summarize_visits(
            result.records,
            self._rules.treatment_columns,
            failed_sources=result.failed_sources,
        )

    async def create_visit(self, submission: VisitSubmission) -> VisitRecord:
        document = build_visit_document(submission, self._rules.treatment_columns)
        try:
            inserted_id = await self._document_store.insert_visit(document)
        except DocumentStoreError as exc:
            await record_visit_audit(
                "visit_created", origin=DOCUMENT_STORE_SOURCE, success=False
            )
            raise VisitSourceError(DOCUMENT_STORE_SOURCE, detail=str(exc)) from exc

        record = normalize_document({**document, "_id": inserted_id}, self._rules)
        if record is None:  # pragma: no cover - build_visit_document enforces the same rules
            raise IncompleteVisitError(["visitDate", "patientName"])
        await record_visit_audit(
            "visit_created",
            source_id=record.source_id,
            origin=record.origin_tag.value,
            success=True,
        )
        return record

    async def delete_visit(self, identifier: str | None) -> DeletionOutcome:
        try:
            outcome = await self._deletion_router.delete(identifier)
        except VisitSourceError:
            await record_visit_audit(
                "visit_deleted", source_id=identifier, success=False
            )
            raise
        await record_visit_audit(
            "visit_deleted",
            source_id=outcome.source_id,
            origin=outcome.origin.value,
            success=True,
        )
        return outcome

    async def ping(self) -> bool:
        return await self._document_store.ping()

    def close(self) -> None:
        self._document_store.close()
        if self._spreadsheet is not None:
            self._spreadsheet.close()
