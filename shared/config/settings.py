"""Application configuration powered by ``pydantic-settings``."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TREATMENT_COLUMNS: tuple[str, ...] = (
    "Obat",
    "Cabut Anak",
    "Cabut Dewasa",
    "Tambal Sementara",
    "Tambal Tetap",
    "Scaling",
    "Rujuk",
)


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or inconsistent."""


class AppSettings(BaseSettings):
    """Runtime configuration for the FastAPI application instance."""

    service_name: str = Field(
        default="visit_tracker",
        description="Identifier attached to log entries and health payloads.",
        validation_alias=AliasChoices("VISIT_TRACKER_SERVICE_NAME", "SERVICE_NAME"),
    )
    host: str = Field(
        default="0.0.0.0",
        description="Hostname or interface the HTTP server binds to.",
        validation_alias=AliasChoices("VISIT_TRACKER_HOST", "HOST"),
    )
    port: int = Field(
        default=8000,
        description="Port the HTTP server listens on.",
        validation_alias=AliasChoices("VISIT_TRACKER_PORT", "PORT"),
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class LoggingSettings(BaseSettings):
    """Logging configuration for the service."""

    level: str = Field(
        default="info",
        description="Logging verbosity level (e.g. debug, info, warning).",
        validation_alias=AliasChoices("VISIT_TRACKER_LOG_LEVEL", "LOG_LEVEL"),
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class MongoSettings(BaseSettings):
    """Connection settings for the visit document store."""

    uri: Optional[str] = Field(
        default=None,
        description="MongoDB connection string. Required to serve traffic.",
        validation_alias=AliasChoices("VISIT_TRACKER_MONGODB_URI", "MONGODB_URI"),
    )
    database: Optional[str] = Field(
        default=None,
        description="Database name; the default database of the URI is used when unset.",
        validation_alias=AliasChoices("VISIT_TRACKER_MONGODB_DATABASE", "MONGODB_DATABASE"),
    )
    collection: str = Field(
        default="Data Pasien",
        description="Collection holding visit documents.",
        validation_alias=AliasChoices(
            "VISIT_TRACKER_MONGODB_COLLECTION", "MONGODB_COLLECTION"
        ),
    )
    server_selection_timeout_ms: int = Field(
        default=10000,
        description="How long the driver waits for a reachable server.",
        validation_alias=AliasChoices(
            "VISIT_TRACKER_MONGODB_TIMEOUT_MS", "MONGODB_TIMEOUT_MS"
        ),
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class SheetsSettings(BaseSettings):
    """Google Sheets configuration for the supplementary visit source."""

    spreadsheet_id: Optional[str] = Field(
        default=None,
        description="Spreadsheet identifier. The spreadsheet source is disabled when unset.",
        validation_alias=AliasChoices(
            "VISIT_TRACKER_SPREADSHEET_ID", "GOOGLE_SPREADSHEET_ID"
        ),
    )
    sheet_names: str = Field(
        default="",
        description="Comma separated list of sheet (tab) names to read, in priority order.",
        validation_alias=AliasChoices("VISIT_TRACKER_SHEET_NAMES", "GOOGLE_SHEET_NAMES"),
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Filesystem path to a service account JSON credential.",
        validation_alias=AliasChoices(
            "VISIT_TRACKER_SHEETS_CREDENTIALS_PATH", "GOOGLE_APPLICATION_CREDENTIALS"
        ),
    )
    credentials_info: Optional[dict[str, Any]] = Field(
        default=None,
        description="Service account credential payload supplied inline as JSON.",
        validation_alias=AliasChoices(
            "VISIT_TRACKER_SHEETS_CREDENTIALS_INFO", "GOOGLE_CREDENTIALS_INFO"
        ),
    )
    read_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts made for each sheet read before the sheet is reported as failed.",
        validation_alias=AliasChoices(
            "VISIT_TRACKER_SHEETS_READ_ATTEMPTS", "SHEETS_READ_ATTEMPTS"
        ),
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def enabled(self) -> bool:
        return bool(self.spreadsheet_id and self.names)

    @property
    def names(self) -> list[str]:
        """Return the configured sheet names with blanks removed."""

        return [name.strip() for name in self.sheet_names.split(",") if name.strip()]


class ReconciliationSettings(BaseSettings):
    """Rules applied while normalizing records from every source."""

    require_patient_name: bool = Field(
        default=True,
        description="Drop records whose patient name is empty.",
        validation_alias=AliasChoices(
            "VISIT_TRACKER_REQUIRE_PATIENT_NAME", "REQUIRE_PATIENT_NAME"
        ),
    )
    treatment_columns: tuple[str, ...] = Field(
        default=DEFAULT_TREATMENT_COLUMNS,
        description="Ordered treatment flag columns collapsed into the treatment summary.",
        validation_alias=AliasChoices(
            "VISIT_TRACKER_TREATMENT_COLUMNS", "TREATMENT_COLUMNS"
        ),
    )

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


class Settings(BaseSettings):
    """Aggregated settings namespace for the visit tracker service."""

    app: AppSettings = Field(default_factory=AppSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    mongo: MongoSettings = Field(default_factory=MongoSettings)
    sheets: SheetsSettings = Field(default_factory=SheetsSettings)
    reconciliation: ReconciliationSettings = Field(
        default_factory=ReconciliationSettings
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance for application use."""

    return Settings()


__all__ = [
    "AppSettings",
    "ConfigurationError",
    "DEFAULT_TREATMENT_COLUMNS",
    "LoggingSettings",
    "MongoSettings",
    "ReconciliationSettings",
    "Settings",
    "SheetsSettings",
    "get_settings",
]
