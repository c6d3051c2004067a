"""Reusable validation helpers."""

from __future__ import annotations

from typing import Iterable, Optional, Protocol


class TextLengthError(ValueError):
    """Raised when a free-text field exceeds the configured length."""


class OrderingError(ValueError):
    """Raised when sibling ``order`` values are not contiguous from zero."""


class _Ordered(Protocol):
    order: int


def clean_optional_text(value: Optional[str], *, limit: int, field_name: str) -> Optional[str]:
    """Normalise an optional free-text value.

    Args:
        value: Raw text supplied by a client, possibly ``None``.
        limit: Maximum number of characters permitted after stripping.
        field_name: Name used in the raised error message.

    Returns:
        The stripped text, or ``None`` when nothing but whitespace was given.

    Raises:
        TextLengthError: If the stripped text is longer than ``limit``.
    """

    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned:
        return None
    if len(cleaned) > limit:
        raise TextLengthError(f"{field_name} exceeds maximum length: {len(cleaned)} > {limit}")
    return cleaned


def ensure_contiguous_order(items: Iterable[_Ordered], *, group: str) -> None:
    """Check that ``order`` values run 0..n-1 in sequence."""

    actual = [item.order for item in items]
    expected = list(range(len(actual)))
    if actual != expected:
        raise OrderingError(f"{group} order must be contiguous starting at 0, got {actual}")
