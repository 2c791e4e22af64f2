"""Audit trail for mutations of visit records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

import structlog

from .logger import get_logger, get_request_id

__all__ = [
    "AuditRepository",
    "StdoutAuditRepository",
    "VisitAudit",
    "get_audit_repository",
    "record_visit_audit",
]


@dataclass(slots=True)
class VisitAudit:
    """Structured payload describing a create or delete of a visit record."""

    event: str
    source_id: str | None = None
    origin: str | None = None
    success: bool | None = None
    request_id: str | None = None
    service: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "event": self.event,
            "sourceId": self.source_id,
            "origin": self.origin,
            "success": self.success,
            "requestId": self.request_id,
            "service": self.service,
            "metadata": dict(self.metadata),
            "createdAt": self.created_at.isoformat(),
        }


class AuditRepository(Protocol):
    async def persist(self, audit: VisitAudit) -> None:  # pragma: no cover - interface definition
        """Persist ``audit`` to the underlying storage backend."""


class StdoutAuditRepository:
    """Write audit entries to the structured log stream."""

    def __init__(self) -> None:
        self._logger = get_logger("audit")

    async def persist(self, audit: VisitAudit) -> None:
        payload = audit.to_dict()
        payload["audit_event"] = payload.pop("event")
        self._logger.info("visit_audit", **payload)


_DEFAULT_REPOSITORY: AuditRepository | None = None


def get_audit_repository() -> AuditRepository:
    global _DEFAULT_REPOSITORY
    if _DEFAULT_REPOSITORY is None:
        _DEFAULT_REPOSITORY = StdoutAuditRepository()
    return _DEFAULT_REPOSITORY


async def record_visit_audit(
    event: str,
    *,
    source_id: str | None = None,
    origin: str | None = None,
    success: bool | None = None,
    metadata: dict[str, Any] | None = None,
    repository: AuditRepository | None = None,
) -> VisitAudit:
    """Build an audit entry bound to the current request and persist it."""

    repo = repository or get_audit_repository()
    context = structlog.contextvars.get_contextvars()
    entry = VisitAudit(
        event=event,
        source_id=source_id,
        origin=origin,
        success=success,
        request_id=get_request_id(),
        service=context.get("service"),
        metadata=dict(metadata or {}),
    )
    await repo.persist(entry)
    return entry
