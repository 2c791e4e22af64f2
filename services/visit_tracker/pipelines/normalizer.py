"""Map raw spreadsheet rows and stored documents onto :class:`VisitRecord`.

Every source boundary goes through :func:`normalize_fields`, so the rules for
rejecting a visit and deriving its treatment summary live in one place:

* the visit date must be ``YYYY-MM-DD`` with a day other than ``00``;
* an empty patient name rejects the visit when ``require_patient_name`` is set;
* a treatment column counts as performed when its trimmed value is non-empty
  and not ``"no"`` (case-insensitive).
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from shared.config.settings import DEFAULT_TREATMENT_COLUMNS, ReconciliationSettings
from shared.models.visit import Gender, OriginTag, VisitRecord, classify_gender
from shared.observability.logger import get_logger

__all__ = [
    "FIELD_ALIASES",
    "NormalizationRules",
    "is_treatment_performed",
    "is_valid_visit_date",
    "normalize_document",
    "normalize_documents",
    "normalize_fields",
    "normalize_row",
    "normalize_sheet_values",
    "sheet_source_id",
]

logger = get_logger(__name__)

_DATE_SHAPE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "visit_date": ("Tanggal Kunjungan", "tanggal", "visitDate"),
    "patient_name": ("Nama Pasien", "nama", "patientName"),
    "record_number": ("No.RM", "No. RM", "noRM", "recordNumber"),
    "gender": ("Kelamin", "Jenis Kelamin", "gender"),
    "fee_category": ("Biaya", "feeCategory"),
    "other_notes": ("Lainnya", "otherNotes"),
}

# Pre-joined treatment text written by older dashboard builds.
_SUMMARY_ALIASES: tuple[str, ...] = ("Tindakan", "treatmentSummary")

# Sheet rows address the header as row 1 and the first data row as row 2.
SHEET_ROW_OFFSET = 2


@dataclass(frozen=True)
class NormalizationRules:
    """Validation switches applied to every source."""

    require_patient_name: bool = True
    treatment_columns: tuple[str, ...] = DEFAULT_TREATMENT_COLUMNS

    @classmethod
    def from_settings(cls, settings: ReconciliationSettings) -> "NormalizationRules":
        return cls(
            require_patient_name=settings.require_patient_name,
            treatment_columns=tuple(settings.treatment_columns),
        )


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def _key(name: str) -> str:
    return name.strip().casefold()


def is_valid_visit_date(value: str) -> bool:
    """Return whether ``value`` is a ``YYYY-MM-DD`` date with a real day."""

    candidate = value.strip()
    if not candidate or candidate == "-":
        return False
    if not _DATE_SHAPE.match(candidate):
        return False
    return candidate[8:10] != "00"


def is_treatment_performed(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = _text(value)
    return bool(text) and text.casefold() != "no"


def sheet_source_id(sheet_name: str, row_index: int) -> str:
    """Return the structural identifier for the ``row_index``-th data row."""

    return f"{sheet_name}:{row_index + SHEET_ROW_OFFSET}"


def _lookup(fields: Mapping[str, Any], aliases: Iterable[str]) -> str:
    for alias in aliases:
        if _key(alias) in fields:
            return _text(fields[_key(alias)])
    return ""


def _treatment_flags(fields: Mapping[str, Any], columns: Sequence[str]) -> dict[str, bool]:
    listed = {
        _key(item)
        for item in _lookup(fields, _SUMMARY_ALIASES).split(",")
        if item.strip()
    }
    return {
        column: is_treatment_performed(fields.get(_key(column))) or _key(column) in listed
        for column in columns
    }


def _canonical_gender(value: str) -> str:
    gender = classify_gender(value)
    if gender is Gender.MALE:
        return Gender.MALE.value
    if gender is Gender.FEMALE:
        return Gender.FEMALE.value
    return value


def _rejection_reason(visit_date: str, patient_name: str, rules: NormalizationRules) -> str | None:
    if not visit_date or visit_date == "-":
        return "missing_visit_date"
    if not is_valid_visit_date(visit_date):
        return "invalid_visit_date"
    if rules.require_patient_name and not patient_name:
        return "missing_patient_name"
    return None


def normalize_fields(
    fields: Mapping[str, Any],
    *,
    source_id: str,
    origin: OriginTag,
    rules: NormalizationRules | None = None,
) -> VisitRecord | None:
    """Build a :class:`VisitRecord` from named source fields.

    Field names are matched case-insensitively against :data:`FIELD_ALIASES`.
    Returns ``None`` when the record is rejected.
    """

    resolved_rules = rules or NormalizationRules()
    keyed = {_key(str(name)): value for name, value in fields.items()}

    visit_date = _lookup(keyed, FIELD_ALIASES["visit_date"])
    patient_name = _lookup(keyed, FIELD_ALIASES["patient_name"])
    reason = _rejection_reason(visit_date, patient_name, resolved_rules)
    if reason is not None:
        logger.debug("visit_record_rejected", source_id=source_id, reason=reason)
        return None

    return VisitRecord(
        visit_date=visit_date,
        patient_name=patient_name,
        record_number=_lookup(keyed, FIELD_ALIASES["record_number"]),
        gender=_canonical_gender(_lookup(keyed, FIELD_ALIASES["gender"])),
        fee_category=_lookup(keyed, FIELD_ALIASES["fee_category"]),
        treatment_flags=_treatment_flags(keyed, resolved_rules.treatment_columns),
        other_notes=_lookup(keyed, FIELD_ALIASES["other_notes"]),
        source_id=source_id,
        origin_tag=origin,
    )


def normalize_row(
    row: Sequence[Any],
    header: Sequence[Any],
    *,
    sheet_name: str,
    row_index: int,
    rules: NormalizationRules | None = None,
) -> VisitRecord | None:
    """Normalize one positional sheet row against its ``header``.

    ``row_index`` is zero-based over the data rows (the header excluded).
    Short rows are padded with empty cells; cells past the header are ignored.
    """

    padded = list(row) + [""] * max(0, len(header) - len(row))
    fields = {
        _text(name): padded[position]
        for position, name in enumerate(header)
        if _text(name)
    }
    return normalize_fields(
        fields,
        source_id=sheet_source_id(sheet_name, row_index),
        origin=OriginTag.SPREADSHEET,
        rules=rules,
    )


def normalize_sheet_values(
    sheet_name: str,
    values: Sequence[Sequence[Any]],
    rules: NormalizationRules | None = None,
) -> list[VisitRecord]:
    """Normalize a whole sheet whose first row is the header."""

    if not values:
        return []
    header, *rows = values
    records: list[VisitRecord] = []
    for row_index, row in enumerate(rows):
        record = normalize_row(
            row, header, sheet_name=sheet_name, row_index=row_index, rules=rules
        )
        if record is not None:
            records.append(record)
    return records


def normalize_document(
    document: Mapping[str, Any], rules: NormalizationRules | None = None
) -> VisitRecord | None:
    """Normalize a stored document, keyed by its native ``_id``."""

    native_id = document.get("_id")
    if native_id is None:
        logger.warning("visit_document_without_id")
        return None
    fields = {name: value for name, value in document.items() if name != "_id"}
    return normalize_fields(
        fields,
        source_id=str(native_id),
        origin=OriginTag.DOCUMENT_STORE,
        rules=rules,
    )


def normalize_documents(
    documents: Iterable[Mapping[str, Any]], rules: NormalizationRules | None = None
) -> list[VisitRecord]:
    records: list[VisitRecord] = []
    for document in documents:
        record = normalize_document(document, rules)
        if record is not None:
            records.append(record)
    return records
