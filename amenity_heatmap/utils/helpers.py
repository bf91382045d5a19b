"""
Helper utilities for the amenity heatmap service.

This module provides general utility functions used across the application.
"""

import math
from collections.abc import Callable, Hashable, Iterable
from datetime import UTC, datetime
from typing import Any, TypeVar

from amenity_heatmap.utils.error_handling import ValidationError

T = TypeVar("T")


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def coerce_float(value: Any, name: str) -> float:
    """
    Convert a request value to a finite float.

    Args:
        value: Raw value (number or numeric string)
        name: Parameter name used in the error message

    Returns:
        The value as a float

    Raises:
        ValidationError: If the value is missing, non-numeric or not finite
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Invalid parameter: {name} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid parameter: {name} must be a number") from e
    if not math.isfinite(number):
        raise ValidationError(f"Invalid parameter: {name} must be finite")
    return number


def split_csv(raw: str | Iterable[str] | None) -> list[str]:
    """
    Split a comma separated string (or list of strings) into trimmed items.

    Empty items are dropped.
    """
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else list(raw)
    return [str(item).strip() for item in items if str(item).strip()]


def dedupe_by(items: Iterable[T], key: Callable[[T], Hashable]) -> list[T]:
    """Keep the first item for every key, preserving order."""
    seen: set[Hashable] = set()
    unique: list[T] = []
    for item in items:
        item_key = key(item)
        if item_key not in seen:
            seen.add(item_key)
            unique.append(item)
    return unique
