"""Validation utilities for nullable numeric inputs."""

import math
from typing import Any


def is_finite_number(value: Any) -> bool:
    """Check if value is a real, finite number (bools excluded)."""
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except (TypeError, ValueError):
        return False


def finite_or_none(value: Any) -> float | None:
    """Return value as float if finite, otherwise None."""
    if not is_finite_number(value):
        return None
    return float(value)
