"""HTTP helpers and exception definitions used across services."""

from .errors import (
    IncompleteVisitError,
    InvalidVisitFilterError,
    InvalidVisitIdentifierError,
    ProblemDetails,
    ProblemDetailsException,
    VisitNotFoundError,
    VisitSourceError,
    register_exception_handlers,
)

__all__ = [
    "IncompleteVisitError",
    "InvalidVisitFilterError",
    "InvalidVisitIdentifierError",
    "ProblemDetails",
    "ProblemDetailsException",
    "VisitNotFoundError",
    "VisitSourceError",
    "register_exception_handlers",
]
