from __future__ import annotations

from pathlib import Path
from typing import Any, AsyncIterator

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient

from services.visit_tracker.app import create_app
from services.visit_tracker.clients.document_store import DocumentStoreError, InMemoryVisitStore
from services.visit_tracker.clients.spreadsheet import InMemorySpreadsheet
from shared.config.settings import ConfigurationError, Settings


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.setenv("SHEETS_READ_ATTEMPTS", "1")
    return Settings()


@pytest.fixture
async def client(
    settings: Settings,
    document_store: InMemoryVisitStore,
    spreadsheet: InMemorySpreadsheet,
) -> AsyncIterator[AsyncClient]:
    app = create_app(settings, document_store=document_store, spreadsheet=spreadsheet)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.mark.anyio("asyncio")
async def test_get_data_returns_reconciled_visits(client: AsyncClient) -> None:
    response = await client.get("/api/get-data")

    assert response.status_code == 200
    body = response.json()
    assert body["failedSources"] == []
    assert [visit["patientName"] for visit in body["data"]] == ["Ani", "Budi", "Citra"]
    first = body["data"][0]
    assert first["visitDate"] == "2024-03-05"
    assert first["recordNumber"] == "RM01"
    assert first["originTag"] == "document-store"
    assert first["treatmentSummary"] == "Obat"
    assert body["data"][1]["sourceId"] == "Maret:2"


@pytest.mark.anyio("asyncio")
async def test_get_data_filters_by_date_then_month(client: AsyncClient) -> None:
    by_date = await client.get("/api/get-data", params={"tanggal": "2024-04-01"})
    by_month = await client.get("/api/get-data", params={"month": "2024-03"})

    assert [visit["sourceId"] for visit in by_date.json()["data"]] == ["April:2"]
    assert [visit["patientName"] for visit in by_month.json()["data"]] == ["Ani", "Budi"]


@pytest.mark.anyio("asyncio")
async def test_get_data_rejects_malformed_filter(client: AsyncClient) -> None:
    response = await client.get("/api/get-data", params={"tanggal": "05-03-2024"})

    assert response.status_code == 400
    problem = response.json()
    assert problem["status"] == 400
    assert problem["parameter"] == "tanggal"
    assert problem["message"] == problem["detail"]


@pytest.mark.anyio("asyncio")
async def test_get_data_reports_partial_results(
    settings: Settings,
    document_store: InMemoryVisitStore,
    sheet_rows: dict[str, list[list[Any]]],
) -> None:
    spreadsheet = InMemorySpreadsheet(sheet_rows, sheet_names=["Maret", "Hilang"])
    app = create_app(settings, document_store=document_store, spreadsheet=spreadsheet)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/get-data")

    assert response.status_code == 200
    assert response.json()["failedSources"] == ["spreadsheet:Hilang"]


@pytest.mark.anyio("asyncio")
async def test_get_data_fails_when_no_source_is_readable(settings: Settings) -> None:
    class _OfflineStore(InMemoryVisitStore):
        async def find_visits(self) -> list[dict[str, Any]]:
            raise DocumentStoreError("server selection timeout", operation="find")

        async def ping(self) -> bool:
            return False

    app = create_app(settings, document_store=_OfflineStore())

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/get-data")
        health = await client.get("/health")

    assert response.status_code == 500
    assert response.json()["reason"] == "document-store"
    assert health.json()["database"] == "unreachable"


@pytest.mark.anyio("asyncio")
async def test_submit_data_creates_visit(
    client: AsyncClient, document_store: InMemoryVisitStore
) -> None:
    response = await client.post(
        "/api/submit-data",
        json={
            "Tanggal Kunjungan": "2024-03-09",
            "Nama Pasien": "Indra",
            "No.RM": "RM11",
            "Kelamin": "Laki-Laki",
            "Biaya": "BPJS",
            "treatments": ["Cabut Dewasa"],
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "success"
    assert body["data"]["treatmentSummary"] == "Cabut Dewasa"
    assert ObjectId.is_valid(body["data"]["sourceId"])
    assert document_store.documents[-1]["Nama Pasien"] == "Indra"

    listed = await client.get("/api/get-data", params={"tanggal": "2024-03-09"})
    assert [visit["sourceId"] for visit in listed.json()["data"]] == [body["data"]["sourceId"]]


@pytest.mark.anyio("asyncio")
async def test_submit_data_rejects_incomplete_visit(
    client: AsyncClient, document_store: InMemoryVisitStore
) -> None:
    response = await client.post("/api/submit-data", json={"patientName": "Joko"})

    assert response.status_code == 400
    assert response.json()["fields"] == ["visitDate", "recordNumber"]
    assert len(document_store.documents) == 1


@pytest.mark.anyio("asyncio")
async def test_submit_data_rejects_malformed_body(client: AsyncClient) -> None:
    response = await client.post(
        "/api/submit-data", content="not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400
    assert response.json()["title"] == "Request Validation Failed"


@pytest.mark.anyio("asyncio")
async def test_delete_data_routes_by_identifier(
    client: AsyncClient,
    document_store: InMemoryVisitStore,
    spreadsheet: InMemorySpreadsheet,
    stored_visit_id: ObjectId,
) -> None:
    removed_document = await client.delete("/api/delete-data", params={"index": str(stored_visit_id)})
    removed_row = await client.delete(
        "/api/delete-data", params={"index": '{"sheetName": "April", "rowIndex": 2}'}
    )

    assert removed_document.status_code == 200
    assert removed_document.json()["message"] == "Visit deleted from document-store."
    assert removed_row.status_code == 200
    assert document_store.documents == []
    assert len(spreadsheet.rows("April")) == 1


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    "params, status_code",
    [
        ({}, 400),
        ({"index": "Maret:1"}, 400),
        ({"index": "Maret:\u00b2"}, 400),
        ({"index": "garbage"}, 400),
        ({"index": "65f1c0ffee0000000000ffff"}, 404),
        ({"index": "Juni:2"}, 404),
        ({"index": "Maret:99"}, 404),
    ],
)
async def test_delete_data_error_statuses(
    client: AsyncClient, params: dict[str, str], status_code: int
) -> None:
    response = await client.delete("/api/delete-data", params=params)

    assert response.status_code == status_code
    assert response.json()["status"] == status_code


@pytest.mark.anyio("asyncio")
async def test_summary_endpoint(client: AsyncClient) -> None:
    response = await client.get("/api/summary", params={"month": "2024-03"})

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert body["fees"] == [{"label": "2024-03", "bpjs": 1, "umum": 1}]
    assert body["failedSources"] == []


@pytest.mark.anyio("asyncio")
async def test_health_and_request_id(client: AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "visit_tracker", "database": "ok"}
    assert response.headers["X-Request-ID"] == "req-123"
    assert "X-Response-Time" in response.headers


def test_create_app_requires_mongodb_uri(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("MONGODB_URI", "VISIT_TRACKER_MONGODB_URI"):
        monkeypatch.delenv(name, raising=False)

    with pytest.raises(ConfigurationError):
        create_app(Settings())


@pytest.mark.parametrize("credentials_body", [None, "{not json"])
def test_create_app_refuses_unreadable_sheets_credentials(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, credentials_body: str | None
) -> None:
    credentials_file = tmp_path / "service-account.json"
    if credentials_body is not None:
        credentials_file.write_text(credentials_body, encoding="utf-8")
    for name in (
        "VISIT_TRACKER_MONGODB_URI",
        "VISIT_TRACKER_SPREADSHEET_ID",
        "VISIT_TRACKER_SHEET_NAMES",
        "VISIT_TRACKER_SHEETS_CREDENTIALS_PATH",
        "VISIT_TRACKER_SHEETS_CREDENTIALS_INFO",
        "GOOGLE_CREDENTIALS_INFO",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/klinik")
    monkeypatch.setenv("GOOGLE_SPREADSHEET_ID", "sheet-123")
    monkeypatch.setenv("GOOGLE_SHEET_NAMES", "Maret")
    monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", str(credentials_file))

    with pytest.raises(ConfigurationError):
        create_app(Settings())
