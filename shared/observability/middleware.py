"""FastAPI middleware for request correlation and latency logging."""

from __future__ import annotations

import time
from typing import Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from .logger import generate_request_id, get_logger, request_context

__all__ = ["CorrelationIdMiddleware", "RequestTimingMiddleware"]

_MAX_REQUEST_ID_LENGTH = 128


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Reuse or mint a request identifier and echo it on the response."""

    def __init__(self, app: ASGIApp, *, header_name: str = "X-Request-ID") -> None:
        super().__init__(app)
        self.header_name = header_name
        self._candidate_headers = list(
            dict.fromkeys([header_name, "X-Request-ID", "X-Correlation-ID"])
        )

    def _resolve_request_id(self, request: Request) -> str:
        for header in self._candidate_headers:
            value = (request.headers.get(header) or "").strip()
            if value:
                return value[:_MAX_REQUEST_ID_LENGTH]
        return generate_request_id()

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = self._resolve_request_id(request)
        request.state.request_id = request_id

        with request_context(request_id=request_id):
            response = await call_next(request)

        response.headers.setdefault(self.header_name, request_id)
        return response


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Measure request latency and emit one structured entry per request."""

    def __init__(self, app: ASGIApp, *, header_name: str = "X-Response-Time") -> None:
        super().__init__(app)
        self._header_name = header_name
        self._logger = get_logger("http")

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000.0
            self._logger.exception(
                "http_request_failed",
                method=request.method,
                path=request.url.path,
                duration_ms=duration_ms,
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        if self._header_name:
            response.headers[self._header_name] = f"{duration_ms / 1000.0:.6f}s"

        self._logger.info(
            "http_request_completed",
            method=request.method,
            path=request.url.path,
            query=str(request.url.query) or None,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 3),
        )
        return response
