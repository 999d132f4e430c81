"""
co2_engine.py

The engine that estimates CO₂ emissions for logged activities.

- calculate_footprint(category, quantity, details) returns the footprint (kg CO₂,
  rounded to 2 decimals) and the emission factor that was applied.
- calculate_co2(activities) returns the total emissions of many activities.
- calculate_co2_breakdown(activities) returns per-category emissions for
  deeper insights and debugging.
- apply_footprint(activity) recomputes and stores the result on an Activity;
  every create/update goes through it so the stored footprint is never stale.

Notes for readers:
- Factors come from emission_factors.py; units are converted by units.py.
- Missing or unknown detail values fall back to each table's default factor.
- Units are NOT checked against the category: a food activity logged in km
  skips conversion and is multiplied by the food factor (with a warning).
"""

from dataclasses import dataclass, replace
from typing import Dict, Iterable, Mapping, Optional, Union

import emission_factors as ef
import units
from models import (
    CATEGORIES,
    ENERGY,
    FOOD,
    TRANSPORT,
    WASTE,
    Activity,
    ActivityDetails,
    Quantity,
    parse_details,
)
from utils import round_half_up


@dataclass(frozen=True)
class FootprintResult:
    carbon_footprint: float
    emission_factor: float


def _canonical_amount(quantity: Quantity, dimension: str, allow_servings: bool = False) -> float:
    amount = quantity.value
    if amount < 0:
        print(f"⚠️ Warning: negative amount ({amount}) for {quantity.unit}; treating as 0.")
        amount = 0.0
    converted = units.convert_unit(amount, quantity.unit, dimension, allow_servings=allow_servings)
    if converted is None:
        print(
            f"⚠️ Warning: unit '{quantity.unit}' is not a {dimension} unit; "
            f"using the value as {units.CANONICAL_UNITS[dimension]}."
        )
    return units.to_canonical(amount, quantity.unit, dimension, allow_servings=allow_servings)


def _factor(table: Mapping[str, float], key: Optional[str], default: float, label: str) -> float:
    if key and ef.lookup_factor(table, key) is None:
        print(f"⚠️ Warning: {label} '{key}' not found in emission factors; using default {default}.")
    return ef.resolve_factor(table, key, default)


def _transport(quantity: Quantity, details) -> FootprintResult:
    km = _canonical_amount(quantity, units.DISTANCE)
    factor = _factor(ef.TRANSPORT_FACTORS, getattr(details, "transport_mode", None),
                     ef.DEFAULT_TRANSPORT_FACTOR, "transport mode")
    return FootprintResult(km * factor, factor)


def _energy(quantity: Quantity, details) -> FootprintResult:
    kwh = _canonical_amount(quantity, units.ENERGY)
    factor = _factor(ef.ENERGY_FACTORS, getattr(details, "energy_source", None),
                     ef.DEFAULT_ENERGY_FACTOR, "energy source")
    return FootprintResult(kwh * factor, factor)


def _food(quantity: Quantity, details) -> FootprintResult:
    kg = _canonical_amount(quantity, units.WEIGHT, allow_servings=True)
    factor = _factor(ef.FOOD_FACTORS, getattr(details, "food_type", None),
                     ef.DEFAULT_FOOD_FACTOR, "food type")
    return FootprintResult(kg * factor, factor)


def _waste(quantity: Quantity, details) -> FootprintResult:
    kg = _canonical_amount(quantity, units.WEIGHT)
    waste_type = getattr(details, "waste_type", None) or ef.GENERAL_WASTE
    if waste_type == ef.GENERAL_WASTE:
        factor = _factor(ef.GENERAL_WASTE_DISPOSAL_FACTORS, getattr(details, "disposal_method", None),
                         ef.DEFAULT_WASTE_FACTOR, "disposal method")
    else:
        factor = _factor(ef.WASTE_TYPE_FACTORS, waste_type, ef.DEFAULT_WASTE_FACTOR, "waste type")
    return FootprintResult(kg * factor, factor)


_CALCULATORS = {
    TRANSPORT: _transport,
    ENERGY: _energy,
    FOOD: _food,
    WASTE: _waste,
}


def calculate_footprint(
    category: str,
    quantity: Union[Quantity, Mapping],
    details: Union[ActivityDetails, Mapping, None] = None,
) -> FootprintResult:
    """
    Calculate the carbon footprint of a single activity.

    Parameters
    - category: transport | energy | food | waste | other
    - quantity: Quantity or {"value": 100, "unit": "km"}
    - details: the category's details variant or a raw mapping, e.g.
      {"transportMode": "car_gasoline"}

    Returns
    - FootprintResult with the footprint (kg CO₂, 2 decimals, half away from
      zero) and the factor used. "other" and unknown categories give 0 / 0.
    """
    if isinstance(quantity, Mapping):
        quantity = Quantity(quantity.get("value"), quantity.get("unit"))

    calculator = _CALCULATORS.get(category)
    if calculator is None:
        if category not in CATEGORIES:
            print(f"⚠️ Warning: '{category}' is not a known activity category; footprint is 0.")
        return FootprintResult(0.0, 0.0)

    result = calculator(quantity, parse_details(category, details))
    return FootprintResult(round_half_up(result.carbon_footprint, 2), result.emission_factor)


def apply_footprint(activity: Activity) -> Activity:
    """Return a copy of activity with carbon_footprint/emission_factor recomputed."""
    details = parse_details(activity.category, activity.details)
    result = calculate_footprint(activity.category, activity.quantity, details)
    return replace(
        activity,
        details=details,
        carbon_footprint=result.carbon_footprint,
        emission_factor=result.emission_factor,
    )


def calculate_co2(activities: Iterable[Activity]) -> float:
    """
    Calculate total CO₂ emissions for a set of already-calculated activities.

    Returns
    - Total emissions (kg CO₂) rounded to 2 decimals.
    """
    total_emissions = 0.0
    for activity in activities:
        total_emissions += activity.carbon_footprint
    return round_half_up(total_emissions, 2)


def calculate_co2_breakdown(activities: Iterable[Activity]) -> Dict[str, float]:
    """
    Return per-category emissions (kg CO₂) for insight and debugging.

    Only categories that appear in activities are returned.
    """
    breakdown: Dict[str, float] = {}
    for activity in activities:
        breakdown[activity.category] = breakdown.get(activity.category, 0.0) + activity.carbon_footprint

    # more precision here to help users debug contributions
    return {category: round(kg, 4) for category, kg in breakdown.items()}
