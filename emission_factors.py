"""
emission_factors.py

Static emission factor tables (kg CO₂ per canonical unit) shared by the
footprint calculator and the "list available factors" reference read.

- Each table maps a detail value (transport mode, energy source, ...) to a factor.
- lookup_factor() returns None for a missing/unknown key; resolve_factor() is the
  single step that applies the table's documented default.
- Bump EMISSION_FACTORS_VERSION whenever a value changes so stored
  activities can be traced back to the table that produced them.
"""

from typing import Dict, Mapping, Optional

EMISSION_FACTORS_VERSION = "2024.1"

# Transport (kg CO₂ per km)
TRANSPORT_FACTORS: Dict[str, float] = {
    "car_gasoline": 0.21,
    "car_diesel": 0.17,
    "car_electric": 0.05,
    "car_hybrid": 0.12,
    "bus": 0.08,
    "train": 0.04,
    "plane_domestic": 0.25,
    "plane_international": 0.30,
    "motorcycle": 0.15,
    "bicycle": 0.0,
    "walking": 0.0,
}
DEFAULT_TRANSPORT_FACTOR = TRANSPORT_FACTORS["car_gasoline"]

# Energy (kg CO₂ per kWh)
ENERGY_FACTORS: Dict[str, float] = {
    "coal": 0.82,
    "natural_gas": 0.49,
    "solar": 0.05,
    "wind": 0.02,
    "hydro": 0.03,
    "nuclear": 0.06,
    "grid_average": 0.45,
}
DEFAULT_ENERGY_FACTOR = ENERGY_FACTORS["grid_average"]

# Food (kg CO₂ per kg of food)
FOOD_FACTORS: Dict[str, float] = {
    "beef": 27.0,
    "pork": 12.1,
    "chicken": 6.9,
    "fish": 6.1,
    "dairy_milk": 3.2,
    "dairy_cheese": 13.5,
    "vegetables": 2.0,
    "fruits": 1.1,
    "grains": 1.4,
    "processed_food": 3.5,
}
DEFAULT_FOOD_FACTOR = 2.0

# Waste (kg CO₂ per kg of waste)
GENERAL_WASTE_DISPOSAL_FACTORS: Dict[str, float] = {
    "landfill": 0.5,
    "incineration": 0.3,
}
WASTE_TYPE_FACTORS: Dict[str, float] = {
    "recycling": -0.1,  # negative: saves emissions
    "compost": 0.1,
    "hazardous": 2.0,
}
DEFAULT_WASTE_FACTOR = 0.5
GENERAL_WASTE = "general_waste"

# Enum values accepted in activity details (validation and UI pick-lists).
TRANSPORT_MODES = tuple(TRANSPORT_FACTORS)
ENERGY_SOURCES = tuple(ENERGY_FACTORS)
FOOD_TYPES = tuple(FOOD_FACTORS)
WASTE_TYPES = (GENERAL_WASTE,) + tuple(WASTE_TYPE_FACTORS)
DISPOSAL_METHODS = ("landfill", "incineration", "recycling", "composting")

_DESCRIPTIONS: Dict[str, str] = {
    "car_gasoline": "Gasoline car",
    "car_diesel": "Diesel car",
    "car_electric": "Electric car",
    "car_hybrid": "Hybrid car",
    "bus": "Public bus",
    "train": "Train",
    "plane_domestic": "Domestic flight",
    "plane_international": "International flight",
    "motorcycle": "Motorcycle",
    "bicycle": "Bicycle",
    "walking": "Walking",
    "coal": "Coal power",
    "natural_gas": "Natural gas",
    "solar": "Solar power",
    "wind": "Wind power",
    "hydro": "Hydroelectric",
    "nuclear": "Nuclear power",
    "grid_average": "Grid average",
    "beef": "Beef",
    "pork": "Pork",
    "chicken": "Chicken",
    "fish": "Fish",
    "dairy_milk": "Milk",
    "dairy_cheese": "Cheese",
    "vegetables": "Vegetables",
    "fruits": "Fruits",
    "grains": "Grains",
    "processed_food": "Processed food",
    "general_waste_landfill": "General waste to landfill",
    "general_waste_incineration": "General waste incineration",
    "recycling": "Recycling (saves emissions)",
    "compost": "Composting",
    "hazardous": "Hazardous waste",
}


def lookup_factor(table: Mapping[str, float], key: Optional[str]) -> Optional[float]:
    """Return the factor for key, or None when key is missing or not in the table.

    A known factor of 0.0 (bicycle, walking) is returned as 0.0, not None.
    """
    if not key:
        return None
    return table.get(key)


def resolve_factor(table: Mapping[str, float], key: Optional[str], default: float) -> float:
    """Apply the table default when lookup_factor() finds nothing."""
    factor = lookup_factor(table, key)
    if factor is None:
        return default
    return factor


def _describe(table: Mapping[str, float], unit: str, prefix: str = "") -> Dict[str, Dict]:
    out = {}
    for key, factor in table.items():
        name = f"{prefix}{key}"
        out[name] = {
            "factor": factor,
            "unit": unit,
            "description": _DESCRIPTIONS.get(name, name.replace("_", " ").capitalize()),
        }
    return out


def list_emission_factors() -> Dict[str, Dict[str, Dict]]:
    """Reference view of every factor, grouped by category.

    Built from the same tables the calculator reads, so the two never drift.
    """
    waste = _describe(GENERAL_WASTE_DISPOSAL_FACTORS, "kg CO2/kg", prefix="general_waste_")
    waste.update(_describe(WASTE_TYPE_FACTORS, "kg CO2/kg"))
    return {
        "transport": _describe(TRANSPORT_FACTORS, "kg CO2/km"),
        "energy": _describe(ENERGY_FACTORS, "kg CO2/kWh"),
        "food": _describe(FOOD_FACTORS, "kg CO2/kg"),
        "waste": waste,
    }
