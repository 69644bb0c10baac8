"""
Input validation for reservation entry points.
Every public mutation validates through here before touching a store.
"""

import math
from typing import Any

from .errors import InventoryValidationError


def validate_id(value: Any, field: str = "id") -> str:
    """Return a stripped, non-empty string id."""
    if value is None:
        raise InventoryValidationError(f"{field} is required", field=field)
    if not isinstance(value, str):
        raise InventoryValidationError(f"{field} must be a string", field=field)
    stripped = value.strip()
    if not stripped:
        raise InventoryValidationError(f"{field} cannot be empty", field=field)
    return stripped


def validate_quantity(value: Any, field: str = "quantity", allow_zero: bool = True) -> float:
    """
    Coerce ``value`` to a finite, non-negative float.

    Numeric strings are accepted (form input arrives as text); booleans are not.
    """
    if isinstance(value, bool):
        raise InventoryValidationError(f"{field} must be a number", field=field)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InventoryValidationError(f"{field} must be a number, got {value!r}", field=field) from None
    if not math.isfinite(number):
        raise InventoryValidationError(f"{field} must be a finite number", field=field)
    if number < 0:
        raise InventoryValidationError(f"{field} cannot be negative", field=field)
    if not allow_zero and number == 0:
        raise InventoryValidationError(f"{field} must be positive", field=field)
    return number


def validate_positive_quantity(value: Any, field: str = "quantity") -> float:
    return validate_quantity(value, field=field, allow_zero=False)
