"""Problem details and custom exceptions for HTTP responses."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Mapping, cast

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from shared.observability.logger import get_logger

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

logger = get_logger(__name__)

_PROBLEM_FIELDS = {"type", "title", "status", "detail", "instance"}
_PROBLEM_BASE = "https://visit-tracker.local/problems"


class ProblemDetails(BaseModel):
    """Representation of an RFC 7807 problem details payload.

    ``message`` repeats ``detail`` for dashboard clients that read the error
    text from that key.
    """

    type: str = Field(default="about:blank", description="URI identifying the error type")
    title: str = Field(default="An error occurred", description="Short human-readable summary")
    status: int = Field(default=status.HTTP_500_INTERNAL_SERVER_ERROR)
    detail: str | None = Field(default=None, description="Detailed description of the error")
    message: str | None = Field(default=None, description="Alias of ``detail``")
    instance: str | None = Field(
        default=None, description="URI identifying the specific occurrence"
    )
    errors: list[Any] | None = Field(
        default=None, description="Detailed validation errors when applicable"
    )

    model_config = ConfigDict(extra="allow")

    def model_post_init(self, __context: Any) -> None:
        if self.message is None:
            self.message = self.detail or self.title


class ProblemDetailsException(RuntimeError):
    """Base exception carrying structured problem details metadata."""

    default_status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_title = "Service Error"
    default_type = "about:blank"

    def __init__(
        self,
        detail: str | None = None,
        *,
        status_code: int | None = None,
        title: str | None = None,
        type_uri: str | None = None,
        instance: str | None = None,
        extensions: Mapping[str, Any] | None = None,
    ) -> None:
        message = detail or title or self.default_title
        super().__init__(message)
        self.detail = detail or message
        self.status_code = status_code or self.default_status_code
        self.title = title or self.default_title
        self.problem_type = type_uri or self.default_type
        self.instance = instance
        self.extensions = dict(extensions or {})

    def to_problem_details(self, *, instance: str | None = None) -> ProblemDetails:
        return ProblemDetails(
            type=self.problem_type,
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=instance or self.instance,
            **self.extensions,
        )


class InvalidVisitIdentifierError(ProblemDetailsException):
    """Raised when a delete request carries a missing or malformed identifier."""

    default_status_code = status.HTTP_400_BAD_REQUEST
    default_title = "Invalid Visit Identifier"
    default_type = f"{_PROBLEM_BASE}/invalid-identifier"

    def __init__(self, identifier: str | None, *, detail: str | None = None) -> None:
        self.identifier = identifier
        super().__init__(
            detail=detail or "A valid visit identifier must be provided.",
            extensions={"identifier": identifier} if identifier else None,
        )


class InvalidVisitFilterError(ProblemDetailsException):
    """Raised when a date or month filter does not have the expected shape."""

    default_status_code = status.HTTP_400_BAD_REQUEST
    default_title = "Invalid Visit Filter"
    default_type = f"{_PROBLEM_BASE}/invalid-filter"

    def __init__(self, parameter: str, value: str, *, expected: str) -> None:
        super().__init__(
            detail=f"Query parameter '{parameter}' must use the {expected} format.",
            extensions={"parameter": parameter, "value": value},
        )


class IncompleteVisitError(ProblemDetailsException):
    """Raised when a submitted visit is missing required fields."""

    default_status_code = status.HTTP_400_BAD_REQUEST
    default_title = "Incomplete Visit"
    default_type = f"{_PROBLEM_BASE}/incomplete-visit"

    def __init__(self, fields: list[str], *, detail: str | None = None) -> None:
        self.fields = list(fields)
        message = detail or (
            "Visit date, patient name and record number are required. Missing: "
            + ", ".join(self.fields)
        )
        super().__init__(detail=message, extensions={"fields": self.fields})


class VisitNotFoundError(ProblemDetailsException):
    """Raised when no stored visit matches the requested identifier."""

    default_status_code = status.HTTP_404_NOT_FOUND
    default_title = "Visit Not Found"
    default_type = f"{_PROBLEM_BASE}/visit-not-found"

    def __init__(self, identifier: str, *, origin: str | None = None) -> None:
        self.identifier = identifier
        extensions: dict[str, Any] = {"identifier": identifier}
        if origin:
            extensions["origin"] = origin
        super().__init__(
            detail=f"Visit '{identifier}' was not found.",
            extensions=extensions,
        )


class VisitSourceError(ProblemDetailsException):
    """Raised when a backing store rejects or cannot serve a request."""

    default_status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_title = "Visit Source Error"
    default_type = f"{_PROBLEM_BASE}/source-error"

    def __init__(
        self,
        source: str,
        *,
        detail: str | None = None,
        reason: str | None = None,
    ) -> None:
        self.source = source
        self.reason = reason
        extensions: dict[str, Any] = {"source": source}
        if reason:
            extensions["reason"] = reason
        super().__init__(
            detail=detail or f"The '{source}' source could not complete the request.",
            extensions=extensions,
        )


def _problem_response(problem: ProblemDetails) -> JSONResponse:
    payload = problem.model_dump(mode="json", exclude_none=True)
    status_code = payload.get("status", status.HTTP_500_INTERNAL_SERVER_ERROR)
    return JSONResponse(payload, status_code=status_code)


def _status_title(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:  # pragma: no cover - non-standard status codes
        return "HTTP Error"


def _normalize_detail(detail: Any) -> tuple[str | None, dict[str, Any]]:
    if isinstance(detail, Mapping):
        detail_value = detail.get("detail") or detail.get("message")
        normalized = str(detail_value) if detail_value is not None else None
        extras = {
            k: v for k, v in detail.items() if k not in _PROBLEM_FIELDS | {"message"}
        }
        return normalized, extras
    if isinstance(detail, list):
        return None, {"errors": detail}
    if detail is None:
        return None, {}
    return str(detail), {}


def _http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    http_error = cast(StarletteHTTPException, exc)
    detail, extras = _normalize_detail(http_error.detail)
    problem = ProblemDetails(
        title=_status_title(http_error.status_code),
        status=http_error.status_code,
        detail=detail,
        instance=str(request.url),
        **extras,
    )
    return _problem_response(problem)


def _validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    validation_error = cast(RequestValidationError, exc)
    problem = ProblemDetails(
        type=f"{_PROBLEM_BASE}/request-validation",
        title="Request Validation Failed",
        status=status.HTTP_400_BAD_REQUEST,
        detail="One or more request parameters failed validation.",
        instance=str(request.url),
        errors=validation_error.errors(),
    )
    return _problem_response(problem)


def _problem_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    problem_exception = cast(ProblemDetailsException, exc)
    problem = problem_exception.to_problem_details(instance=str(request.url))
    return _problem_response(problem)


def _unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", error=str(exc), path=str(request.url))
    problem = ProblemDetails(
        type=f"{_PROBLEM_BASE}/internal-server-error",
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred while processing the request.",
        instance=str(request.url),
    )
    return _problem_response(problem)


def register_exception_handlers(app: FastAPI) -> None:
    """Register shared exception handlers that emit RFC 7807 problem details."""

    app.add_exception_handler(ProblemDetailsException, _problem_exception_handler)
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
