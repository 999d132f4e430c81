"""
units.py

Converts a quantity's raw value + unit into the canonical unit a calculation
needs: km (distance), kWh (energy) or kg (weight).

convert_unit() answers "do I know this unit for this dimension?" and returns
None when it does not. to_canonical() is the default-resolution step: unknown
units pass through unchanged, which the footprint calculator relies on.
"""

from typing import Callable, Dict, Optional

DISTANCE = "distance"
ENERGY = "energy"
WEIGHT = "weight"

# Quantity unit enum grouped by physical dimension.
UNIT_GROUPS: Dict[str, tuple] = {
    "distance": ("km", "miles", "m"),
    "volume": ("L", "gallons", "ml"),
    "time": ("hours", "minutes", "days"),
    "weight": ("kg", "lbs", "g"),
    "energy": ("kWh", "MWh", "BTU"),
    "count": ("items", "pieces", "servings"),
}
VALID_UNITS = tuple(u for units in UNIT_GROUPS.values() for u in units)

CANONICAL_UNITS: Dict[str, str] = {
    DISTANCE: "km",
    ENERGY: "kWh",
    WEIGHT: "kg",
}

# Converters into the canonical unit, per dimension.
CONVERSIONS: Dict[str, Dict[str, Callable[[float], float]]] = {
    DISTANCE: {
        "km": lambda v: v,
        "miles": lambda v: v * 1.60934,
        "m": lambda v: v / 1000,
    },
    ENERGY: {
        "kWh": lambda v: v,
        "MWh": lambda v: v * 1000,
        "BTU": lambda v: v * 0.000293071,
    },
    WEIGHT: {
        "kg": lambda v: v,
        "lbs": lambda v: v * 0.453592,
        "g": lambda v: v / 1000,
    },
}

# Average serving weight; an approximation, only meaningful for food.
KG_PER_SERVING = 0.25


def convert_unit(value: float, unit: str, dimension: str, allow_servings: bool = False) -> Optional[float]:
    """Convert value to the canonical unit of dimension.

    Returns None when unit is not recognized for that dimension.
    """
    if dimension == WEIGHT and allow_servings and unit == "servings":
        return value * KG_PER_SERVING
    convert = CONVERSIONS.get(dimension, {}).get(unit)
    if convert is None:
        return None
    return convert(value)


def to_canonical(value: float, unit: str, dimension: str, allow_servings: bool = False) -> float:
    """Like convert_unit(), but unknown units pass through unconverted."""
    converted = convert_unit(value, unit, dimension, allow_servings=allow_servings)
    if converted is None:
        return value
    return converted
