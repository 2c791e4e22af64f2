"""Route a delete request to the source that owns the visit."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from services.visit_tracker.clients.document_store import (
    DOCUMENT_STORE_SOURCE,
    DocumentStoreError,
    VisitDocumentStore,
    is_native_identifier,
)
from services.visit_tracker.clients.spreadsheet import (
    SPREADSHEET_SOURCE,
    SpreadsheetError,
    SpreadsheetSource,
)
from services.visit_tracker.pipelines.normalizer import SHEET_ROW_OFFSET
from shared.http.errors import (
    InvalidVisitIdentifierError,
    VisitNotFoundError,
    VisitSourceError,
)
from shared.models.visit import OriginTag
from shared.observability.logger import get_logger

__all__ = ["DeletionOutcome", "DeletionRouter", "SheetRowRef", "parse_identifier"]

logger = get_logger(__name__)


@dataclass(frozen=True)
class SheetRowRef:
    """A data row addressed by sheet name and 1-based sheet row number."""

    sheet_name: str
    row_number: int

    @property
    def source_id(self) -> str:
        return f"{self.sheet_name}:{self.row_number}"


VisitTarget = Union[str, SheetRowRef]


@dataclass(frozen=True)
class DeletionOutcome:
    source_id: str
    origin: OriginTag


def _row_number(identifier: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidVisitIdentifierError(identifier, detail="Row index must be an integer.")
    if isinstance(value, int):
        row_number = value
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        # isdigit alone accepts superscripts such as "²" that int() rejects.
        row_number = int(value.strip())
    else:
        raise InvalidVisitIdentifierError(identifier, detail="Row index must be an integer.")
    if row_number < SHEET_ROW_OFFSET:
        raise InvalidVisitIdentifierError(
            identifier,
            detail=f"Row index must be {SHEET_ROW_OFFSET} or greater; row 1 is the header.",
        )
    return row_number


def _parse_json_reference(identifier: str) -> SheetRowRef:
    try:
        payload = json.loads(identifier)
    except json.JSONDecodeError as exc:
        raise InvalidVisitIdentifierError(identifier, detail="Identifier is not valid JSON.") from exc
    if not isinstance(payload, dict):
        raise InvalidVisitIdentifierError(
            identifier, detail="Identifier JSON must be an object."
        )
    sheet_name = payload.get("sheetName")
    if not isinstance(sheet_name, str) or not sheet_name.strip():
        raise InvalidVisitIdentifierError(identifier, detail="Identifier is missing 'sheetName'.")
    return SheetRowRef(sheet_name.strip(), _row_number(identifier, payload.get("rowIndex")))


def parse_identifier(identifier: str | None) -> VisitTarget:
    """Classify ``identifier`` as a native document id or a sheet row.

    Accepted forms: a 24 character ObjectId, ``{"sheetName": ..., "rowIndex": ...}``
    and ``<sheet name>:<row>``. Row numbers are the 1-based sheet rows surfaced
    in ``sourceId``.
    """

    cleaned = (identifier or "").strip()
    if not cleaned:
        raise InvalidVisitIdentifierError(None, detail="A visit identifier must be provided.")
    if is_native_identifier(cleaned):
        return cleaned
    if cleaned.startswith("{"):
        return _parse_json_reference(cleaned)

    sheet_name, separator, row = cleaned.rpartition(":")
    if not separator or not sheet_name.strip():
        raise InvalidVisitIdentifierError(cleaned, detail="Visit identifier is not recognised.")
    return SheetRowRef(sheet_name.strip(), _row_number(cleaned, row))


class DeletionRouter:
    """Issue exactly one delete against the source that owns a visit."""

    def __init__(
        self,
        document_store: VisitDocumentStore,
        spreadsheet: SpreadsheetSource | None = None,
    ) -> None:
        self._document_store = document_store
        self._spreadsheet = spreadsheet

    async def delete(self, identifier: str | None) -> DeletionOutcome:
        target = parse_identifier(identifier)
        if isinstance(target, SheetRowRef):
            return await self._delete_sheet_row(target)
        return await self._delete_document(target)

    async def _delete_document(self, document_id: str) -> DeletionOutcome:
        try:
            deleted = await self._document_store.delete_visit(document_id)
        except DocumentStoreError as exc:
            raise VisitSourceError(DOCUMENT_STORE_SOURCE, detail=str(exc)) from exc
        if not deleted:
            raise VisitNotFoundError(document_id, origin=OriginTag.DOCUMENT_STORE.value)
        logger.info("visit_deleted", source_id=document_id, origin=OriginTag.DOCUMENT_STORE.value)
        return DeletionOutcome(source_id=document_id, origin=OriginTag.DOCUMENT_STORE)

    async def _delete_sheet_row(self, target: SheetRowRef) -> DeletionOutcome:
        spreadsheet = self._spreadsheet
        if spreadsheet is None or target.sheet_name not in spreadsheet.sheet_names:
            raise VisitNotFoundError(target.source_id, origin=OriginTag.SPREADSHEET.value)
        try:
            deleted = await spreadsheet.delete_row(target.sheet_name, target.row_number)
        except SpreadsheetError as exc:
            raise VisitSourceError(SPREADSHEET_SOURCE, detail=str(exc)) from exc
        if not deleted:
            raise VisitNotFoundError(target.source_id, origin=OriginTag.SPREADSHEET.value)
        logger.info("visit_deleted", source_id=target.source_id, origin=OriginTag.SPREADSHEET.value)
        return DeletionOutcome(source_id=target.source_id, origin=OriginTag.SPREADSHEET)
