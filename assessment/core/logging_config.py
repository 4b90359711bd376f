"""
Logging setup for the assessment service.

Development output is a plain one-line format. Production output is one JSON
object per line, carrying the request id and any bound session context, so
log aggregators can group every entry for one request or one session.

Context binding:
    from assessment.core.logging_config import bind_log_context

    with bind_log_context(session_id=session.id, test_id=session.test_id):
        ...  # every log entry in here carries both ids
"""
import json
import logging
import logging.config
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Generator, Mapping, Optional

from assessment.core.config import settings

# Set per request by RequestLoggingMiddleware
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Fields bound by bind_log_context, merged into every JSON entry
_bound_context: ContextVar[Mapping[str, Any]] = ContextVar("log_context", default={})

# LogRecord extras that are copied into JSON output; anything else is dropped
STRUCTURED_FIELDS = (
    "test_id",
    "session_id",
    "user_id",
    "question_id",
    "status",
    "strategy",
    "method",
    "path",
    "status_code",
    "duration_ms",
)


@contextmanager
def bind_log_context(**fields: Any) -> Generator[None, None, None]:
    """Attach ``fields`` to every entry logged inside the block.

    Nested bindings add to the outer ones; inner values win on conflict.
    Only names in STRUCTURED_FIELDS reach the output.
    """
    token = _bound_context.set({**_bound_context.get(), **fields})
    try:
        yield
    finally:
        _bound_context.reset(token)


def current_log_context() -> Dict[str, Any]:
    """Fields bound in the current context."""
    return dict(_bound_context.get())


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_context.get()
        if request_id:
            entry["request_id"] = request_id

        bound = _bound_context.get()
        for name in STRUCTURED_FIELDS:
            # Explicit extras on the record override bound context
            if hasattr(record, name):
                entry[name] = getattr(record, name)
            elif name in bound:
                entry[name] = bound[name]

        if record.levelno >= logging.ERROR:
            entry["source"] = f"{record.pathname}:{record.lineno}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def build_logging_config(log_level: int, json_output: bool, debug: bool = False) -> Dict[str, Any]:
    """dictConfig payload for the given level and output style."""
    handler = {
        "class": "logging.StreamHandler",
        "level": log_level,
        "formatter": "json" if json_output else "plain",
        "stream": sys.stdout,
    }

    def quiet(level: int) -> Dict[str, Any]:
        return {"level": level, "handlers": ["console"], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {
                "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {"()": JSONFormatter},
        },
        "handlers": {"console": handler},
        "root": {"level": log_level, "handlers": ["console"]},
        "loggers": {
            "assessment": {
                "level": log_level,
                "handlers": ["console"],
                "propagate": False,
            },
            "uvicorn.access": quiet(logging.WARNING if debug else logging.INFO),
            "sqlalchemy.engine": quiet(logging.WARNING),
        },
    }


def setup_logging() -> None:
    """Apply the logging configuration derived from settings."""
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.config.dictConfig(
        build_logging_config(
            log_level,
            json_output=settings.ENV == "production",
            debug=settings.DEBUG,
        )
    )
