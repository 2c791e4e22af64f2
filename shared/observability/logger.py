"""Logging helpers integrating structlog and loguru with request context."""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from types import FrameType
from typing import Any, Iterator, Mapping, TextIO

import structlog
from loguru import logger as loguru_logger

__all__ = [
    "configure_logging",
    "generate_request_id",
    "get_logger",
    "get_request_id",
    "request_context",
]

_REQUEST_ID: ContextVar[str | None] = ContextVar("request_id", default=None)
_CONFIGURED: bool = False
_SERVICE_NAME: str | None = None
_SINK_ID: int | None = None
_SINK: tuple[TextIO, int] | None = None


def _format_record(record: Mapping[str, Any]) -> str:
    """Return the loguru line template for a single record."""

    timestamp = record["time"].isoformat()
    level = record["level"].name
    extra = record.get("extra") or {}
    service = extra.get("service", "-")
    request_id = extra.get("request_id") or "-"
    message = record.get("message", "")
    if not isinstance(message, str):
        message = str(message)
    # The return value is itself treated as a format template by loguru and
    # structlog renders JSON, so braces must be escaped.
    message = message.replace("{", "{{").replace("}", "}}")
    return f"{timestamp} | {level:<8} | {service} | {request_id} | {message}\n"


def _coerce_level(level: str | int) -> tuple[int, str]:
    """Normalize ``level`` to logging and loguru compatible representations."""

    if isinstance(level, int):
        numeric = level
    else:
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        numeric = resolved
    name = logging.getLevelName(numeric)
    if not isinstance(name, str):  # pragma: no cover - custom numeric levels
        name = "INFO"
    return numeric, name


def get_request_id() -> str | None:
    """Return the request identifier bound to the current context, if any."""

    return _REQUEST_ID.get()


def generate_request_id() -> str:
    return uuid.uuid4().hex


class LoguruInterceptHandler(logging.Handler):
    """Forward standard library log records (uvicorn, pymongo) to loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - thin wrapper
        level: str | int
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame: FrameType | None = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        bound = loguru_logger.bind(logger=record.name)
        request_id = get_request_id()
        if request_id:
            bound = bound.bind(request_id=request_id)

        bound.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _install_sink(target: TextIO, level_name: str) -> None:
    global _SINK_ID

    if _SINK_ID is None:
        loguru_logger.remove()
    else:
        loguru_logger.remove(_SINK_ID)
    _SINK_ID = loguru_logger.add(
        target,
        level=level_name,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        format=_format_record,
    )


def configure_logging(
    *,
    service_name: str | None = None,
    level: str | int = "INFO",
    sink: TextIO | None = None,
) -> None:
    """Route structlog and standard logging through a single loguru sink.

    ``sink`` defaults to stdout. Command line tools that print their result
    to stdout pass ``sys.stderr`` instead. Later calls swap the sink when the
    target or level changes and update the bound ``service_name``.
    """

    global _CONFIGURED, _SERVICE_NAME, _SINK

    numeric_level, level_name = _coerce_level(level)
    target = sink if sink is not None else sys.stdout

    if _SINK is None or _SINK[0] is not target or _SINK[1] != numeric_level:
        _install_sink(target, level_name)
        _SINK = (target, numeric_level)

    if not _CONFIGURED:
        logging.basicConfig(
            handlers=[LoguruInterceptHandler()],
            level=numeric_level,
            force=True,
        )
        logging.captureWarnings(True)
        _configure_structlog()
        _CONFIGURED = True
    logging.getLogger().setLevel(numeric_level)

    if service_name:
        _SERVICE_NAME = service_name
        loguru_logger.configure(extra={"service": service_name})
        structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog bound logger with the given ``name``."""

    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)


@contextmanager
def request_context(request_id: str | None = None, **extra: Any) -> Iterator[str]:
    """Bind ``request_id`` and ``extra`` to every log entry emitted in the block.

    Values that were already bound before entering are restored on exit.
    """

    rid = request_id or generate_request_id()
    token = _REQUEST_ID.set(rid)
    values = dict(extra)
    if _SERVICE_NAME and "service" not in values:
        values["service"] = _SERVICE_NAME

    context_api = structlog.contextvars
    previous = context_api.get_contextvars()
    context_api.bind_contextvars(request_id=rid, **values)
    bound_keys = ["request_id", *values.keys()]

    with loguru_logger.contextualize(request_id=rid, **extra):
        try:
            yield rid
        finally:
            context_api.unbind_contextvars(*bound_keys)
            restore = {key: previous[key] for key in bound_keys if key in previous}
            if restore:
                context_api.bind_contextvars(**restore)
            _REQUEST_ID.reset(token)
