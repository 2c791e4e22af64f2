from __future__ import annotations

from typing import Any, Mapping

import pytest
from bson import ObjectId

from services.visit_tracker.clients.document_store import DocumentStoreError, InMemoryVisitStore
from services.visit_tracker.clients.spreadsheet import InMemorySpreadsheet
from services.visit_tracker.pipelines.filtering import VisitFilter
from services.visit_tracker.pipelines.resilience import NO_RETRY
from services.visit_tracker.service import VisitService, build_visit_document
from services.visit_tracker.summaries import summarize_visits
from shared.config.settings import DEFAULT_TREATMENT_COLUMNS
from shared.http.errors import IncompleteVisitError, VisitSourceError
from shared.models.visit import (
    FeeBreakdown,
    GenderBreakdown,
    OriginTag,
    TreatmentCount,
    VisitSubmission,
)


def _submission(**overrides: Any) -> VisitSubmission:
    payload: dict[str, Any] = {
        "visitDate": "2024-03-08",
        "patientName": "Hana",
        "recordNumber": "RM10",
        "gender": "Perempuan",
        "feeCategory": "UMUM",
        "treatments": ["obat", "Scaling"],
        "otherNotes": "kontrol ulang",
    }
    payload.update(overrides)
    return VisitSubmission.model_validate(payload)


def test_build_visit_document_uses_clinic_column_names() -> None:
    document = build_visit_document(_submission(), DEFAULT_TREATMENT_COLUMNS)

    assert list(document) == [
        "Tanggal Kunjungan",
        "Nama Pasien",
        "No.RM",
        "Kelamin",
        "Biaya",
        *DEFAULT_TREATMENT_COLUMNS,
        "Lainnya",
    ]
    assert document["Tanggal Kunjungan"] == "2024-03-08"
    assert document["Obat"] == "Yes"
    assert document["Scaling"] == "Yes"
    assert document["Rujuk"] == "No"
    assert document["Lainnya"] == "kontrol ulang"


def test_build_visit_document_reads_flags_from_every_input_shape() -> None:
    submission = VisitSubmission.model_validate(
        {
            "Tanggal Kunjungan": "2024-03-08",
            "Nama Pasien": "Hana",
            "No.RM": 10,
            "treatmentFlags": {"Rujuk": True, "Obat": False},
            "Tambal Tetap": "yes",
            "Tindakan": "Cabut Anak, Laser",
        }
    )

    document = build_visit_document(submission, DEFAULT_TREATMENT_COLUMNS)

    assert document["No.RM"] == "10"
    assert document["Rujuk"] == "Yes"
    assert document["Tambal Tetap"] == "Yes"
    assert document["Cabut Anak"] == "Yes"
    assert document["Obat"] == "No"
    assert "Laser" not in document


def test_build_visit_document_lists_missing_fields() -> None:
    with pytest.raises(IncompleteVisitError) as excinfo:
        build_visit_document(
            _submission(patientName="", recordNumber=None), DEFAULT_TREATMENT_COLUMNS
        )

    assert excinfo.value.status_code == 400
    assert excinfo.value.fields == ["patientName", "recordNumber"]


@pytest.mark.parametrize("visit_date", ["2024-03-00", "08/03/2024"])
def test_build_visit_document_rejects_dates_the_reader_would_drop(visit_date: str) -> None:
    with pytest.raises(IncompleteVisitError) as excinfo:
        build_visit_document(_submission(visitDate=visit_date), DEFAULT_TREATMENT_COLUMNS)

    assert excinfo.value.fields == ["visitDate"]


class _RecordingAudit:
    def __init__(self) -> None:
        self.entries: list[Any] = []

    async def persist(self, audit: Any) -> None:
        self.entries.append(audit)


@pytest.fixture
def audit(monkeypatch: pytest.MonkeyPatch) -> _RecordingAudit:
    repository = _RecordingAudit()
    monkeypatch.setattr(
        "shared.observability.audit._DEFAULT_REPOSITORY", repository, raising=True
    )
    return repository


@pytest.mark.anyio("asyncio")
async def test_create_visit_is_visible_to_the_next_read(
    document_store: InMemoryVisitStore,
    spreadsheet: InMemorySpreadsheet,
    audit: _RecordingAudit,
) -> None:
    service = VisitService(document_store, spreadsheet, sheet_read_policy=NO_RETRY)

    record = await service.create_visit(_submission())
    listed = await service.list_visits(VisitFilter(date="2024-03-08"))

    assert ObjectId.is_valid(record.source_id)
    assert record.origin_tag is OriginTag.DOCUMENT_STORE
    assert record.treatment_summary == "Obat, Scaling"
    assert [visit.source_id for visit in listed.records] == [record.source_id]
    assert [(entry.event, entry.success) for entry in audit.entries] == [("visit_created", True)]


@pytest.mark.anyio("asyncio")
async def test_create_visit_store_failure_is_audited(audit: _RecordingAudit) -> None:
    class _FullStore(InMemoryVisitStore):
        async def insert_visit(self, document: Mapping[str, Any]) -> str:
            raise DocumentStoreError("disk full", operation="insert")

    service = VisitService(_FullStore())

    with pytest.raises(VisitSourceError):
        await service.create_visit(_submission())

    assert [(entry.event, entry.success) for entry in audit.entries] == [("visit_created", False)]


@pytest.mark.anyio("asyncio")
async def test_delete_visit_is_audited_with_origin(
    document_store: InMemoryVisitStore,
    spreadsheet: InMemorySpreadsheet,
    audit: _RecordingAudit,
) -> None:
    service = VisitService(document_store, spreadsheet, sheet_read_policy=NO_RETRY)

    outcome = await service.delete_visit("April:2")

    assert outcome.origin is OriginTag.SPREADSHEET
    assert audit.entries[0].source_id == "April:2"
    assert audit.entries[0].origin == "spreadsheet"


@pytest.mark.anyio("asyncio")
async def test_summarize_counts_reconciled_visits(
    document_store: InMemoryVisitStore, spreadsheet: InMemorySpreadsheet
) -> None:
    service = VisitService(document_store, spreadsheet, sheet_read_policy=NO_RETRY)

    summary = await service.summarize()

    assert summary.total == 3
    assert summary.daily == [
        GenderBreakdown(label="2024-03-05", male=1, female=1),
        GenderBreakdown(label="2024-04-01", male=0, female=1),
    ]
    assert summary.monthly == [
        GenderBreakdown(label="2024-03", male=1, female=1),
        GenderBreakdown(label="2024-04", male=0, female=1),
    ]
    assert summary.fees == [
        FeeBreakdown(label="2024-03", bpjs=1, umum=1),
        FeeBreakdown(label="2024-04", bpjs=1, umum=0),
    ]
    assert summary.treatments == [
        TreatmentCount(name="Obat", count=2),
        TreatmentCount(name="Scaling", count=1),
        TreatmentCount(name="Rujuk", count=1),
    ]


def test_summarize_visits_of_nothing_is_empty() -> None:
    summary = summarize_visits([], DEFAULT_TREATMENT_COLUMNS, failed_sources=["spreadsheet:Maret"])

    assert summary.total == 0
    assert summary.daily == []
    assert summary.treatments == []
    assert summary.failed_sources == ["spreadsheet:Maret"]
