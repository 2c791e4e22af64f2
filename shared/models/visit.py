"""Canonical visit record models shared by the visit tracker services."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


def to_camel(value: str) -> str:
    """Convert ``snake_case`` ``value`` into ``camelCase`` for JSON aliases."""

    first, *rest = value.split("_")
    return first + "".join(token.capitalize() for token in rest)


class CamelModel(BaseModel):
    """Base model applying camelCase aliases and ignoring unknown fields."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class OriginTag(str, Enum):
    """Backing system a visit record was read from."""

    DOCUMENT_STORE = "document-store"
    SPREADSHEET = "spreadsheet"

    def __str__(self) -> str:  # pragma: no cover - trivial wrapper
        return self.value


class Gender(str, Enum):
    MALE = "Laki-Laki"
    FEMALE = "Perempuan"


_GENDER_ALIASES: dict[str, Gender] = {
    "laki-laki": Gender.MALE,
    "laki - laki": Gender.MALE,
    "perempuan": Gender.FEMALE,
}


def classify_gender(value: str | None) -> Optional[Gender]:
    """Return the :class:`Gender` for ``value`` or ``None`` when unrecognized."""

    if not value:
        return None
    return _GENDER_ALIASES.get(value.strip().casefold())


class VisitRecord(CamelModel):
    """One normalized clinic visit, regardless of the source it came from.

    ``treatment_flags`` is ordered by the configured treatment columns, which
    is what keeps ``treatment_summary`` stable across sources.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    visit_date: str = Field(description="Visit date formatted as YYYY-MM-DD")
    patient_name: str = Field(default="", description="Patient full name")
    record_number: str = Field(default="", description="Medical record number (No.RM)")
    gender: str = Field(default="", description="Gender label as recorded by the clinic")
    fee_category: str = Field(default="", description="Fee category such as BPJS or UMUM")
    treatment_flags: dict[str, bool] = Field(
        default_factory=dict, description="Treatment columns and whether each was performed"
    )
    other_notes: str = Field(default="", description="Free text notes (Lainnya)")
    source_id: str = Field(description="Native document id or '<sheet>:<row>'")
    origin_tag: OriginTag = Field(description="Backing system that produced the record")

    @computed_field(alias="treatmentSummary")  # type: ignore[prop-decorator]
    @property
    def treatment_summary(self) -> str:
        return ", ".join(name for name, performed in self.treatment_flags.items() if performed)

    @property
    def treatments(self) -> list[str]:
        return [name for name, performed in self.treatment_flags.items() if performed]

    @property
    def visit_month(self) -> str:
        return self.visit_date[:7]

    @property
    def dedup_key(self) -> tuple[str, str]:
        """Composite key identifying the same visit across sources."""

        return self.visit_date.strip(), self.record_number.strip()


def _as_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class VisitSubmission(BaseModel):
    """Payload accepted by the create endpoint.

    Both camelCase keys and the clinic's original column names are accepted.
    Treatment flag columns (``"Obat": "Yes"``) land in ``model_extra``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    visit_date: str = Field(
        default="",
        validation_alias=AliasChoices("visitDate", "visit_date", "Tanggal Kunjungan", "tanggal"),
    )
    patient_name: str = Field(
        default="",
        validation_alias=AliasChoices("patientName", "patient_name", "Nama Pasien"),
    )
    record_number: str = Field(
        default="",
        validation_alias=AliasChoices("recordNumber", "record_number", "No.RM"),
    )
    gender: str = Field(default="", validation_alias=AliasChoices("gender", "Kelamin"))
    fee_category: str = Field(
        default="",
        validation_alias=AliasChoices("feeCategory", "fee_category", "Biaya"),
    )
    treatments: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("treatments", "Tindakan", "treatmentSummary"),
    )
    treatment_flags: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("treatmentFlags", "treatment_flags"),
    )
    other_notes: str = Field(
        default="",
        validation_alias=AliasChoices("otherNotes", "other_notes", "Lainnya"),
    )

    @field_validator(
        "visit_date",
        "patient_name",
        "record_number",
        "gender",
        "fee_category",
        "other_notes",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        value = _as_text(value)
        return value.strip() if isinstance(value, str) else value

    @field_validator("treatments", mode="before")
    @classmethod
    def _split_treatments(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    def missing_required_fields(self) -> list[str]:
        required = {
            "visitDate": self.visit_date,
            "patientName": self.patient_name,
            "recordNumber": self.record_number,
        }
        return [name for name, value in required.items() if not value]


class VisitListResponse(CamelModel):
    data: list[VisitRecord] = Field(default_factory=list)
    failed_sources: list[str] = Field(
        default_factory=list,
        description="Sources that could not be read; the data is partial when non-empty",
    )


class VisitMutationResponse(CamelModel):
    status: str = "success"
    message: str
    data: Optional[VisitRecord] = None


class GenderBreakdown(CamelModel):
    label: str
    male: int = 0
    female: int = 0


class FeeBreakdown(CamelModel):
    label: str
    bpjs: int = 0
    umum: int = 0


class TreatmentCount(CamelModel):
    name: str
    count: int = 0


class VisitSummary(CamelModel):
    """Chart-ready aggregates over a reconciled set of visits."""

    total: int = 0
    daily: list[GenderBreakdown] = Field(default_factory=list)
    monthly: list[GenderBreakdown] = Field(default_factory=list)
    fees: list[FeeBreakdown] = Field(default_factory=list)
    treatments: list[TreatmentCount] = Field(default_factory=list)
    failed_sources: list[str] = Field(default_factory=list)


__all__ = [
    "CamelModel",
    "FeeBreakdown",
    "Gender",
    "GenderBreakdown",
    "OriginTag",
    "TreatmentCount",
    "VisitListResponse",
    "VisitMutationResponse",
    "VisitRecord",
    "VisitSubmission",
    "VisitSummary",
    "classify_gender",
    "to_camel",
]
