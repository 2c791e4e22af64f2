from __future__ import annotations

from datetime import datetime

import pytest
from bson import ObjectId

from services.visit_tracker.pipelines.normalizer import (
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
from shared.models.visit import OriginTag


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-03-05", True),
        (" 2024-03-05 ", True),
        ("2024-03-00", False),
        ("-", False),
        ("", False),
        ("05/03/2024", False),
        ("2024-3-5", False),
        ("2024-03-05T10:00", False),
    ],
)
def test_is_valid_visit_date(value: str, expected: bool) -> None:
    assert is_valid_visit_date(value) is expected


@pytest.mark.parametrize(
    "value, expected",
    [
        ("Yes", True),
        ("x", True),
        ("no", False),
        (" NO ", False),
        ("", False),
        (None, False),
        (True, True),
        (False, False),
    ],
)
def test_is_treatment_performed(value: object, expected: bool) -> None:
    assert is_treatment_performed(value) is expected


def test_sheet_source_id_counts_the_header_row() -> None:
    assert sheet_source_id("Maret", 0) == "Maret:2"
    assert sheet_source_id("Maret", 7) == "Maret:9"


def test_normalize_row_builds_record_with_ordered_summary(sheet_header: list[str]) -> None:
    row = ["2024-03-05", "Budi", "RM02", "Laki-Laki", "UMUM", "No", "", "", "", "", "yes", "Yes", "kontrol"]

    record = normalize_row(row, sheet_header, sheet_name="Maret", row_index=0)

    assert record is not None
    assert record.source_id == "Maret:2"
    assert record.origin_tag is OriginTag.SPREADSHEET
    assert record.treatment_summary == "Scaling, Rujuk"
    assert record.treatment_flags["Obat"] is False
    assert list(record.treatment_flags) == [
        "Obat",
        "Cabut Anak",
        "Cabut Dewasa",
        "Tambal Sementara",
        "Tambal Tetap",
        "Scaling",
        "Rujuk",
    ]
    assert record.other_notes == "kontrol"


def test_normalize_row_pads_short_rows(sheet_header: list[str]) -> None:
    record = normalize_row(
        ["2024-03-05", "Budi", "RM02"], sheet_header, sheet_name="Maret", row_index=3
    )

    assert record is not None
    assert record.source_id == "Maret:5"
    assert record.gender == ""
    assert record.treatment_summary == ""
    assert not any(record.treatment_flags.values())


@pytest.mark.parametrize("visit_date", ["2024-03-00", "-", "", "5 Maret 2024"])
def test_normalize_row_rejects_unusable_dates(sheet_header: list[str], visit_date: str) -> None:
    row = [visit_date, "Budi", "RM02", "Laki-Laki", "UMUM"]

    assert normalize_row(row, sheet_header, sheet_name="Maret", row_index=0) is None


def test_patient_name_requirement_is_configurable(sheet_header: list[str]) -> None:
    row = ["2024-03-05", "", "RM02"]

    strict = normalize_row(row, sheet_header, sheet_name="Maret", row_index=0)
    lenient = normalize_row(
        row,
        sheet_header,
        sheet_name="Maret",
        row_index=0,
        rules=NormalizationRules(require_patient_name=False),
    )

    assert strict is None
    assert lenient is not None
    assert lenient.patient_name == ""


def test_gender_spellings_are_canonicalised() -> None:
    record = normalize_fields(
        {"Tanggal Kunjungan": "2024-03-05", "Nama Pasien": "Budi", "Kelamin": "laki - laki"},
        source_id="Maret:2",
        origin=OriginTag.SPREADSHEET,
    )

    assert record is not None
    assert record.gender == "Laki-Laki"


def test_field_names_match_case_insensitively() -> None:
    record = normalize_fields(
        {"tanggal kunjungan": "2024-03-05", "NAMA PASIEN": "Ani", "no.rm": "RM01", "obat": "Yes"},
        source_id="x:2",
        origin=OriginTag.SPREADSHEET,
    )

    assert record is not None
    assert record.record_number == "RM01"
    assert record.treatment_summary == "Obat"


def test_normalize_sheet_values_keeps_row_positions_for_rejected_rows(
    sheet_header: list[str],
) -> None:
    values = [
        sheet_header,
        ["2024-03-00", "Dodi", "RM04"],
        ["2024-03-06", "Eka", "RM05"],
    ]

    records = normalize_sheet_values("Maret", values)

    assert [record.source_id for record in records] == ["Maret:3"]


def test_normalize_sheet_values_handles_empty_sheet() -> None:
    assert normalize_sheet_values("Kosong", []) == []
    assert normalize_sheet_values("Kosong", [["Tanggal Kunjungan"]]) == []


def test_normalize_document_uses_native_id_and_joined_treatments() -> None:
    document_id = ObjectId()
    record = normalize_document(
        {
            "_id": document_id,
            "Tanggal Kunjungan": datetime(2024, 3, 5, 9, 30),
            "Nama Pasien": "Ani",
            "No.RM": 1234,
            "Tindakan": "Obat, rujuk",
        }
    )

    assert record is not None
    assert record.source_id == str(document_id)
    assert record.origin_tag is OriginTag.DOCUMENT_STORE
    assert record.visit_date == "2024-03-05"
    assert record.record_number == "1234"
    assert record.treatment_summary == "Obat, Rujuk"


def test_normalize_documents_skips_documents_without_id_or_date() -> None:
    records = normalize_documents(
        [
            {"Tanggal Kunjungan": "2024-03-05", "Nama Pasien": "Tanpa Id"},
            {"_id": ObjectId(), "Tanggal Kunjungan": "-", "Nama Pasien": "Tanpa Tanggal"},
            {"_id": ObjectId(), "tanggal": "2024-03-07", "nama": "Fajar"},
        ]
    )

    assert [record.patient_name for record in records] == ["Fajar"]
