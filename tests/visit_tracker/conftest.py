from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest
from bson import ObjectId

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from services.visit_tracker.clients.document_store import InMemoryVisitStore  # noqa: E402
from services.visit_tracker.clients.spreadsheet import InMemorySpreadsheet  # noqa: E402

SHEET_HEADER = [
    "Tanggal Kunjungan",
    "Nama Pasien",
    "No.RM",
    "Kelamin",
    "Biaya",
    "Obat",
    "Cabut Anak",
    "Cabut Dewasa",
    "Tambal Sementara",
    "Tambal Tetap",
    "Scaling",
    "Rujuk",
    "Lainnya",
]

STORED_VISIT_ID = ObjectId("65f1c0ffee0000000000a001")


@pytest.fixture
def anyio_backend() -> str:
    """Limit ``pytest-anyio`` to the asyncio backend for these tests."""

    return "asyncio"


@pytest.fixture
def stored_visit_id() -> ObjectId:
    return STORED_VISIT_ID


@pytest.fixture
def sheet_header() -> list[str]:
    return list(SHEET_HEADER)


@pytest.fixture
def stored_documents() -> list[dict[str, Any]]:
    return [
        {
            "_id": STORED_VISIT_ID,
            "Tanggal Kunjungan": "2024-03-05",
            "Nama Pasien": "Ani",
            "No.RM": "RM01",
            "Kelamin": "Perempuan",
            "Biaya": "BPJS",
            "Obat": "Yes",
            "Cabut Anak": "No",
            "Cabut Dewasa": "No",
            "Tambal Sementara": "No",
            "Tambal Tetap": "No",
            "Scaling": "No",
            "Rujuk": "No",
            "Lainnya": "",
        }
    ]


@pytest.fixture
def sheet_rows(sheet_header: list[str]) -> dict[str, list[list[Any]]]:
    return {
        "Maret": [
            sheet_header,
            ["2024-03-05", "Budi", "RM02", "Laki-Laki", "UMUM", "", "", "", "", "", "yes", ""],
            # Same visit as the stored document; the document store copy wins.
            ["2024-03-05", "Ani (sheet)", "RM01", "Perempuan", "BPJS", "Yes"],
            ["2024-03-00", "Dodi", "RM04", "Laki-Laki", "UMUM"],
        ],
        "April": [
            sheet_header,
            ["2024-04-01", "Citra", "RM03", "perempuan", "bpjs", "Yes", "", "", "", "", "", "Yes"],
        ],
    }


@pytest.fixture
def document_store(stored_documents: list[dict[str, Any]]) -> InMemoryVisitStore:
    return InMemoryVisitStore(stored_documents)


@pytest.fixture
def spreadsheet(sheet_rows: dict[str, list[list[Any]]]) -> InMemorySpreadsheet:
    return InMemorySpreadsheet(sheet_rows, sheet_names=["Maret", "April"])
