"""Shared validation helpers for frozen dataclass models.

Private module. Used by ``__post_init__`` methods in sibling model modules
so invalid instances never escape the constructor.
"""

from __future__ import annotations

from typing import Any


def validate_non_negative_int(value: Any, name: str) -> None:
    """Raise if *value* is not a non-negative ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def validate_str_not_empty(value: Any, name: str) -> None:
    """Raise if *value* is not a non-empty ``str`` without null bytes."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if "\x00" in value:
        raise ValueError(f"{name} contains null bytes")
    if not value:
        raise ValueError(f"{name} must not be empty")


def validate_optional_str(value: Any, name: str) -> None:
    """Raise ``TypeError`` if *value* is neither ``None`` nor a ``str``."""
    if value is not None and not isinstance(value, str):
        raise TypeError(f"{name} must be a str or None, got {type(value).__name__}")
