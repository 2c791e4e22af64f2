"""Google Sheets access for the supplementary visit source."""

from __future__ import annotations

import asyncio
import threading
from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

import google.auth
import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from shared.config.settings import ConfigurationError, SheetsSettings
from shared.observability.logger import get_logger

__all__ = [
    "GoogleSheetsConfig",
    "GoogleSheetsSource",
    "InMemorySpreadsheet",
    "SPREADSHEET_SOURCE",
    "SpreadsheetError",
    "SpreadsheetSource",
]

logger = get_logger(__name__)

SPREADSHEET_SOURCE = "spreadsheet"
SHEETS_SCOPES = ("https://www.googleapis.com/auth/spreadsheets",)

# Failures of the discovery client, its httplib2 transport or the credential
# refresh all surface as SpreadsheetError for the caller.
TRANSPORT_ERRORS = (HttpError, httplib2.HttpLib2Error, GoogleAuthError, OSError)
CREDENTIAL_ERRORS = (GoogleAuthError, OSError, ValueError)


class SpreadsheetError(RuntimeError):
    """Raised when the spreadsheet service rejects or cannot serve a call."""

    def __init__(self, message: str, *, sheet_name: str | None = None) -> None:
        super().__init__(message)
        self.sheet_name = sheet_name


class SpreadsheetSource(ABC):
    """Named sheets whose first row is a header, addressed by 1-based rows."""

    name = SPREADSHEET_SOURCE

    def __init__(self, sheet_names: Sequence[str]) -> None:
        self.sheet_names = list(sheet_names)

    @abstractmethod
    async def read_sheet(self, sheet_name: str) -> list[list[Any]]:
        """Return every row of ``sheet_name``, header included."""

    @abstractmethod
    async def delete_row(self, sheet_name: str, row_number: int) -> bool:
        """Remove ``row_number`` from ``sheet_name``; ``False`` when absent."""

    def close(self) -> None:
        return None


def _quote_sheet(sheet_name: str) -> str:
    return "'" + sheet_name.replace("'", "''") + "'"


def _load_credentials(config: "GoogleSheetsConfig") -> Any:
    if config.credentials_info:
        return service_account.Credentials.from_service_account_info(
            config.credentials_info, scopes=SHEETS_SCOPES
        )
    if config.credentials_path:
        return service_account.Credentials.from_service_account_file(
            config.credentials_path, scopes=SHEETS_SCOPES
        )
    credentials, _project = google.auth.default(scopes=SHEETS_SCOPES)
    return credentials


@dataclass
class GoogleSheetsConfig:
    """Values required to reach one spreadsheet."""

    spreadsheet_id: str
    sheet_names: list[str] = field(default_factory=list)
    credentials_path: Optional[str] = None
    credentials_info: Optional[dict[str, Any]] = None

    @classmethod
    def from_settings(cls, settings: SheetsSettings) -> "GoogleSheetsConfig":
        return cls(
            spreadsheet_id=settings.spreadsheet_id or "",
            sheet_names=settings.names,
            credentials_path=settings.credentials_path,
            credentials_info=settings.credentials_info,
        )


class GoogleSheetsSource(SpreadsheetSource):
    """Spreadsheet source backed by the Google Sheets v4 API.

    The discovery client is synchronous, so calls run in worker threads. Its
    httplib2 transport is not thread-safe, hence the lock around ``execute``.
    """

    def __init__(
        self,
        config: GoogleSheetsConfig,
        *,
        service: Any | None = None,
        credentials: Any | None = None,
    ) -> None:
        super().__init__(config.sheet_names)
        self._config = config
        self._service = service
        self._credentials = credentials
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: SheetsSettings) -> "GoogleSheetsSource":
        """Build a source whose credentials are loaded up front.

        Unreadable or missing credentials raise :class:`ConfigurationError`
        so a misconfigured deployment refuses to start.
        """

        config = GoogleSheetsConfig.from_settings(settings)
        try:
            credentials = _load_credentials(config)
        except CREDENTIAL_ERRORS as exc:
            logger.error(
                "spreadsheet_credentials_invalid",
                credentials_path=config.credentials_path,
                error=str(exc),
            )
            raise ConfigurationError(
                f"Google Sheets credentials could not be loaded: {exc}"
            ) from exc
        return cls(config, credentials=credentials)

    def _get_service(self) -> Any:
        if self._service is None:
            if self._credentials is None:
                try:
                    self._credentials = _load_credentials(self._config)
                except ValueError as exc:
                    raise GoogleAuthError(f"Invalid service account credentials: {exc}") from exc
            self._service = build(
                "sheets",
                "v4",
                credentials=self._credentials,
                cache_discovery=False,
            )
        return self._service

    def _call(
        self,
        make_request: Callable[[Any], Any],
        *,
        sheet_name: str,
        operation: str,
    ) -> Any:
        try:
            with self._lock:
                return make_request(self._get_service()).execute()
        except TRANSPORT_ERRORS as exc:
            status = getattr(getattr(exc, "resp", None), "status", None)
            logger.warning(
                "spreadsheet_call_failed",
                operation=operation,
                sheet=sheet_name,
                status=status,
                error_type=type(exc).__name__,
            )
            reason = f"status {status}" if status is not None else type(exc).__name__
            raise SpreadsheetError(
                f"Sheets {operation} on '{sheet_name}' failed with {reason}.",
                sheet_name=sheet_name,
            ) from exc

    def _read_sheet_sync(self, sheet_name: str) -> list[list[Any]]:
        payload = self._call(
            lambda service: service.spreadsheets()
            .values()
            .get(spreadsheetId=self._config.spreadsheet_id, range=_quote_sheet(sheet_name)),
            sheet_name=sheet_name,
            operation="read",
        )
        return payload.get("values", [])

    def _sheet_id(self, sheet_name: str) -> int | None:
        payload = self._call(
            lambda service: service.spreadsheets().get(
                spreadsheetId=self._config.spreadsheet_id,
                fields="sheets.properties(sheetId,title)",
            ),
            sheet_name=sheet_name,
            operation="metadata",
        )
        for sheet in payload.get("sheets", []):
            properties = sheet.get("properties", {})
            if properties.get("title") == sheet_name:
                return properties.get("sheetId")
        return None

    def _delete_row_sync(self, sheet_name: str, row_number: int) -> bool:
        sheet_id = self._sheet_id(sheet_name)
        if sheet_id is None:
            return False

        existing = self._call(
            lambda service: service.spreadsheets().values().get(
                spreadsheetId=self._config.spreadsheet_id,
                range=f"{_quote_sheet(sheet_name)}!A{row_number}:{row_number}",
            ),
            sheet_name=sheet_name,
            operation="row-lookup",
        )
        if not existing.get("values"):
            return False

        body = {
            "requests": [
                {
                    "deleteDimension": {
                        "range": {
                            "sheetId": sheet_id,
                            "dimension": "ROWS",
                            "startIndex": row_number - 1,
                            "endIndex": row_number,
                        }
                    }
                }
            ]
        }
        self._call(
            lambda service: service.spreadsheets().batchUpdate(
                spreadsheetId=self._config.spreadsheet_id, body=body
            ),
            sheet_name=sheet_name,
            operation="delete",
        )
        return True

    async def read_sheet(self, sheet_name: str) -> list[list[Any]]:
        return await asyncio.to_thread(self._read_sheet_sync, sheet_name)

    async def delete_row(self, sheet_name: str, row_number: int) -> bool:
        return await asyncio.to_thread(self._delete_row_sync, sheet_name, row_number)

    def close(self) -> None:
        if self._service is not None:
            self._service.close()
            self._service = None


class InMemorySpreadsheet(SpreadsheetSource):
    """Spreadsheet held in memory as ``{sheet name: rows}``."""

    def __init__(
        self,
        sheets: dict[str, list[list[Any]]],
        *,
        sheet_names: Sequence[str] | None = None,
    ) -> None:
        super().__init__(sheet_names if sheet_names is not None else list(sheets))
        self._sheets = {name: [list(row) for row in rows] for name, rows in sheets.items()}

    def rows(self, sheet_name: str) -> list[list[Any]]:
        return deepcopy(self._sheets.get(sheet_name, []))

    async def read_sheet(self, sheet_name: str) -> list[list[Any]]:
        if sheet_name not in self._sheets:
            raise SpreadsheetError(f"Sheet '{sheet_name}' does not exist.", sheet_name=sheet_name)
        return deepcopy(self._sheets[sheet_name])

    async def delete_row(self, sheet_name: str, row_number: int) -> bool:
        rows = self._sheets.get(sheet_name)
        # Row 1 is the header and is never addressable as a visit.
        if rows is None or row_number < 2 or row_number > len(rows):
            return False
        del rows[row_number - 1]
        return True
