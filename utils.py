"""
utils.py

General-purpose utilities used across the Carbon Footprint Tracker.

Provided helpers:
- format_emissions(emissions): format a float as a kg CO₂ string.
- round_half_up(value, digits): round half away from zero (2.345 -> 2.35, -0.125 -> -0.13).
- safe_ratio(numerator, denominator): percentage that is 0 for a zero denominator.
- days_between(start, end): ceiling of the day difference (may be negative).
- friendly_message(emissions): quick status blurb by daily footprint size.
- safe_float(value, default): coerce any input to float with a default fallback.
"""

from __future__ import annotations

import datetime
import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

SECONDS_PER_DAY = 24 * 60 * 60


def format_emissions(emissions: float) -> str:
    """Format a number of kilograms CO₂ with 2 decimals and unit.

    Example: 12.345 -> "12.35 kg CO₂"
    """
    return f"{emissions:.2f} kg CO₂"


def round_half_up(value: float, digits: int = 2) -> float:
    """Round half away from zero.

    Python's round() uses banker's rounding on the binary value, so 2.675 -> 2.67.
    Going through the shortest decimal repr gives the "x100, round, /100" answer
    users expect: 2.675 -> 2.68, -0.125 -> -0.13.
    """
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def safe_ratio(numerator: float, denominator: float, scale: float = 100.0) -> float:
    """numerator / denominator * scale, or 0 when the denominator is zero."""
    if not denominator:
        return 0.0
    return numerator * scale / denominator


def days_between(start: datetime.datetime, end: datetime.datetime) -> int:
    """Ceiling of (end - start) in days. Negative once end has passed."""
    return math.ceil((end - start).total_seconds() / SECONDS_PER_DAY)


def friendly_message(emissions: float) -> str:
    """Return a short status message for a daily footprint value.

    Thresholds are intentionally simple and can be tuned later.
    """
    if emissions > 50:
        return "🚨 High footprint today! Try to reduce energy or transport use."
    elif emissions > 20:
        return "🌱 Moderate footprint. Small changes can make a big difference!"
    else:
        return "🌍 Low footprint today, great job!"


def safe_float(value: Any, default: float = 0.0) -> float:
    """Best-effort conversion to float with a default fallback.

    Examples:
    - safe_float("3.14") -> 3.14
    - safe_float(None)   -> 0.0 (default)
    - safe_float("abc", default=1.0) -> 1.0
    """
    try:
        return float(value)
    except (TypeError, ValueError):
        return float(default)


def capitalize(word: str) -> str:
    return word[:1].upper() + word[1:]
