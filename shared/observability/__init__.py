"""Observability utilities shared across the visit tracker services."""

from .audit import (
    AuditRepository,
    StdoutAuditRepository,
    VisitAudit,
    get_audit_repository,
    record_visit_audit,
)
from .logger import (
    configure_logging,
    generate_request_id,
    get_logger,
    get_request_id,
    request_context,
)
from .middleware import CorrelationIdMiddleware, RequestTimingMiddleware

__all__ = [
    "AuditRepository",
    "CorrelationIdMiddleware",
    "RequestTimingMiddleware",
    "StdoutAuditRepository",
    "VisitAudit",
    "configure_logging",
    "generate_request_id",
    "get_audit_repository",
    "get_logger",
    "get_request_id",
    "record_visit_audit",
    "request_context",
]
