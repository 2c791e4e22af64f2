"""FastAPI application serving clinic visit records."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request, status

from services.visit_tracker.clients.document_store import MongoVisitStore, VisitDocumentStore
from services.visit_tracker.clients.spreadsheet import GoogleSheetsSource, SpreadsheetSource
from services.visit_tracker.pipelines.filtering import VisitFilter
from services.visit_tracker.pipelines.normalizer import NormalizationRules
from services.visit_tracker.pipelines.reconcile import sheet_read_policy
from services.visit_tracker.service import VisitService
from shared.config.settings import ConfigurationError, Settings, get_settings
from shared.http.errors import register_exception_handlers
from shared.models.visit import (
    VisitListResponse,
    VisitMutationResponse,
    VisitSubmission,
    VisitSummary,
)
from shared.observability.logger import configure_logging, get_logger
from shared.observability.middleware import CorrelationIdMiddleware, RequestTimingMiddleware

__all__ = ["create_app", "get_visit_service"]

logger = get_logger(__name__)


def get_visit_service(request: Request) -> VisitService:
    """Return the :class:`VisitService` bound to the running application."""

    service: VisitService | None = getattr(request.app.state, "visit_service", None)
    if service is None:
        raise RuntimeError("Visit service is not initialised; the application lifespan did not run.")
    return service


def _build_router() -> APIRouter:
    router = APIRouter(prefix="/api", tags=["visits"])

    @router.get("/get-data", response_model=VisitListResponse)
    async def read_visits(
        tanggal: Optional[str] = Query(default=None, description="Exact visit date (YYYY-MM-DD)"),
        month: Optional[str] = Query(default=None, description="Visit month prefix (YYYY-MM)"),
        service: VisitService = Depends(get_visit_service),
    ) -> VisitListResponse:
        """Return reconciled visits, optionally narrowed to a date or month."""

        result = await service.list_visits(VisitFilter.from_query(tanggal, month))
        return VisitListResponse(data=result.records, failed_sources=result.failed_sources)

    @router.get("/summary", response_model=VisitSummary)
    async def read_summary(
        tanggal: Optional[str] = Query(default=None),
        month: Optional[str] = Query(default=None),
        service: VisitService = Depends(get_visit_service),
    ) -> VisitSummary:
        """Return chart aggregates over the reconciled visits."""

        return await service.summarize(VisitFilter.from_query(tanggal, month))

    @router.post(
        "/submit-data",
        response_model=VisitMutationResponse,
        status_code=status.HTTP_201_CREATED,
    )
    async def submit_visit(
        submission: VisitSubmission,
        service: VisitService = Depends(get_visit_service),
    ) -> VisitMutationResponse:
        record = await service.create_visit(submission)
        return VisitMutationResponse(message="Visit saved.", data=record)

    @router.delete("/delete-data", response_model=VisitMutationResponse)
    async def delete_visit(
        index: Optional[str] = Query(default=None, description="Visit identifier (sourceId)"),
        service: VisitService = Depends(get_visit_service),
    ) -> VisitMutationResponse:
        outcome = await service.delete_visit(index)
        return VisitMutationResponse(
            message=f"Visit deleted from {outcome.origin.value}.",
        )

    return router


def create_app(
    settings: Settings | None = None,
    *,
    document_store: VisitDocumentStore | None = None,
    spreadsheet: SpreadsheetSource | None = None,
) -> FastAPI:
    """Create the visit tracker application.

    Injected sources are used as-is and never closed by the app. Otherwise
    the MongoDB and Google Sheets clients are opened in the lifespan and
    closed on shutdown. A missing ``MONGODB_URI`` or unreadable sheets
    credentials abort startup.
    """

    resolved = settings or get_settings()
    configure_logging(service_name=resolved.app.service_name, level=resolved.logging.level)

    if document_store is None and not resolved.mongo.uri:
        logger.error("visit_tracker_configuration_invalid", missing="MONGODB_URI")
        raise ConfigurationError("MONGODB_URI environment variable not set.")

    rules = NormalizationRules.from_settings(resolved.reconciliation)
    read_policy = sheet_read_policy(resolved.sheets.read_attempts)

    # Credentials are loaded here so a bad sheets configuration stops startup.
    owned_sheets: SpreadsheetSource | None = None
    if spreadsheet is None and document_store is None and resolved.sheets.enabled:
        owned_sheets = GoogleSheetsSource.from_settings(resolved.sheets)

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        owned: list[VisitDocumentStore | SpreadsheetSource] = []
        if application.state.visit_service is None:
            store = MongoVisitStore.from_settings(resolved.mongo)
            owned.append(store)
            sheets = spreadsheet or owned_sheets
            if owned_sheets is not None:
                owned.append(owned_sheets)
            application.state.visit_service = VisitService(
                store, sheets, rules=rules, sheet_read_policy=read_policy
            )
        logger.info(
            "visit_tracker_started",
            sheets=resolved.sheets.names if resolved.sheets.enabled else None,
            require_patient_name=rules.require_patient_name,
        )
        try:
            yield
        finally:
            for client in owned:
                client.close()
            logger.info("visit_tracker_stopped")

    application = FastAPI(title="Clinic Visit Tracker", lifespan=lifespan)
    application.state.visit_service = None
    if document_store is not None:
        application.state.visit_service = VisitService(
            document_store, spreadsheet, rules=rules, sheet_read_policy=read_policy
        )

    application.add_middleware(RequestTimingMiddleware)
    application.add_middleware(CorrelationIdMiddleware)
    register_exception_handlers(application)

    @application.get("/health", tags=["health"])
    async def health(request: Request) -> dict[str, str]:
        """Return service liveness and document store reachability."""

        service: VisitService | None = request.app.state.visit_service
        database = "unknown"
        if service is not None:
            database = "ok" if await service.ping() else "unreachable"
        return {"status": "ok", "service": resolved.app.service_name, "database": database}

    application.include_router(_build_router())
    return application
