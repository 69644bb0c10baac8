"""
Quantity helpers shared by the reservation core.
"""

import math

DEFAULT_PRECISION = 3


def round_quantity(value: float, precision: int = DEFAULT_PRECISION) -> float:
    """Round a quantity to ``precision`` decimals; non-finite input becomes 0."""
    if value is None or not isinstance(value, int | float) or not math.isfinite(value):
        return 0.0
    rounded = round(float(value), precision)
    return 0.0 if rounded == 0 else rounded  # avoid -0.0


def sum_quantities(values, precision: int = DEFAULT_PRECISION) -> float:
    """Float-safe sum rounded to ``precision`` decimals."""
    return round_quantity(math.fsum(values), precision)
