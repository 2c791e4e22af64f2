"""Clients for the visit tracker's backing sources."""

from .document_store import (
    DOCUMENT_STORE_SOURCE,
    DocumentStoreError,
    InMemoryVisitStore,
    MongoVisitStore,
    VisitDocumentStore,
    is_native_identifier,
)
from .spreadsheet import (
    SPREADSHEET_SOURCE,
    GoogleSheetsConfig,
    GoogleSheetsSource,
    InMemorySpreadsheet,
    SpreadsheetError,
    SpreadsheetSource,
)

__all__ = [
    "DOCUMENT_STORE_SOURCE",
    "DocumentStoreError",
    "GoogleSheetsConfig",
    "GoogleSheetsSource",
    "InMemorySpreadsheet",
    "InMemoryVisitStore",
    "MongoVisitStore",
    "SPREADSHEET_SOURCE",
    "SpreadsheetError",
    "SpreadsheetSource",
    "VisitDocumentStore",
    "is_native_identifier",
]
