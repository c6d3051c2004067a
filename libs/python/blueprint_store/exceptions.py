"""Custom exceptions raised by store implementations."""

from __future__ import annotations


class StoreError(RuntimeError):
    """Base error raised for persistence failures."""


class StoreConfigError(StoreError):
    """Raised when configuration is missing or invalid."""


class StoreIntegrityError(StoreError):
    """Raised when a write would leave rows pointing at a missing parent."""
