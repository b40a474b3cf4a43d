"""Derived rates and rounding."""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal


def round_half_away(value: float | int | None, places: int = 2) -> float | None:
    """Round half away from zero. None and non-finite values come back as None.

    Goes through the shortest repr of the float so that e.g. 2.675 rounds
    to 2.68 rather than inheriting binary representation error.
    """
    if value is None:
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def rate(numerator: float | int | None, denominator: float | int | None, places: int = 4) -> float | None:
    """numerator / denominator rounded to `places`; None when the denominator is 0."""
    if not denominator:
        return None
    return round_half_away((numerator or 0) / denominator, places)


def percent(numerator: float | int | None, denominator: float | int | None, places: int = 2) -> float:
    """Percentage for KPI cards; 0.0 rather than None when there is nothing to divide."""
    if not denominator:
        return 0.0
    return round_half_away((numerator or 0) / denominator * 100, places)
