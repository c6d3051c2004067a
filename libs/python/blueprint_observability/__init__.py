"""Shared observability helpers used across blueprint services."""

from .logging import env_flag, log_context, setup_logging
from .metrics import (
    observe_operation,
    observe_structure_counts,
    record_gem_change,
    setup_fastapi_metrics,
)

__all__ = [
    "setup_logging",
    "log_context",
    "env_flag",
    "setup_fastapi_metrics",
    "observe_operation",
    "observe_structure_counts",
    "record_gem_change",
]
