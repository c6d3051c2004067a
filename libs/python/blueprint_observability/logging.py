"""JSON logging with fields bound per operation."""

from __future__ import annotations

import json
import logging
import logging.config
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Mapping
from uuid import UUID

LOG_LEVEL_ENV_VAR = "BLUEPRINT_LOG_LEVEL"
CAPTURE_WARNINGS_ENV_VAR = "BLUEPRINT_CAPTURE_WARNINGS"
_TRUTHY = {"1", "true", "t", "yes", "y", "on"}

_BOUND_FIELDS: ContextVar[Dict[str, Any]] = ContextVar("blueprint_log_fields", default={})

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName", "bound_fields"}


def env_flag(name: str, default: bool = False) -> bool:
    """Interpret an environment variable as a boolean switch."""

    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


class ContextFilter(logging.Filter):
    """Attach the service name and the fields bound by :func:`log_context`."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401 - inherited docstring
        record.bound_fields = dict(_BOUND_FIELDS.get())
        if not hasattr(record, "service"):
            record.service = self.service_name
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Bound context comes first, explicit ``extra`` values override it, and
    extras that cannot be serialised are dropped rather than failing the log
    call.
    """

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - inherited docstring
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        self._merge(payload, getattr(record, "bound_fields", {}))
        self._merge(payload, {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS})

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = self.formatStack(record.stack_info)
        return json.dumps(payload, ensure_ascii=True)

    @classmethod
    def _merge(cls, payload: dict[str, Any], fields: Mapping[str, Any]) -> None:
        for key, value in fields.items():
            if value is None or key.startswith("_"):
                continue
            value = to_json_value(value)
            try:
                json.dumps(value)
            except (TypeError, ValueError):
                continue
            payload[key] = value


def to_json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    return value


def _logging_config(service_name: str, level: str | int) -> dict[str, Any]:
    handlers = ["default"]
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"json": {"()": "blueprint_observability.logging.JsonFormatter"}},
        "filters": {
            "context": {
                "()": "blueprint_observability.logging.ContextFilter",
                "service_name": service_name,
            }
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
                "formatter": "json",
                "filters": ["context"],
            }
        },
        "root": {"level": level, "handlers": handlers},
        "loggers": {
            name: {"handlers": handlers, "level": level, "propagate": False}
            for name in ("uvicorn", "uvicorn.error", "uvicorn.access")
        },
    }


def setup_logging(
    service_name: str,
    level: str | int | None = None,
    *,
    capture_warnings: bool | None = None,
) -> None:
    """Configure JSON logging for the current process.

    ``level`` falls back to ``BLUEPRINT_LOG_LEVEL`` and then ``INFO``;
    ``capture_warnings`` falls back to ``BLUEPRINT_CAPTURE_WARNINGS``.
    """

    resolved_level = level or os.getenv(LOG_LEVEL_ENV_VAR, "INFO").upper()
    logging.config.dictConfig(_logging_config(service_name, resolved_level))

    if capture_warnings is None:
        capture_warnings = env_flag(CAPTURE_WARNINGS_ENV_VAR)
    if capture_warnings:
        logging.captureWarnings(True)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind ``fields`` to every record logged inside the block.

    Passing ``None`` for a key unbinds it for the duration of the block.
    """

    merged = {**_BOUND_FIELDS.get(), **fields}
    token = _BOUND_FIELDS.set({key: value for key, value in merged.items() if value is not None})
    try:
        yield
    finally:
        _BOUND_FIELDS.reset(token)
