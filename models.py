"""
models.py

Value objects shared by the calculator, goal evaluator, tip generator and store.

Activity details are a tagged union keyed by category: each category gets its
own dataclass with only the fields that matter to it, so a food activity can
never carry a transport mode.
"""

from __future__ import annotations

import datetime as dt
import math
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Union

import emission_factors as ef
from units import VALID_UNITS
from utils import safe_float

TRANSPORT = "transport"
ENERGY = "energy"
FOOD = "food"
WASTE = "waste"
OTHER = "other"
CATEGORIES = (TRANSPORT, ENERGY, FOOD, WASTE, OTHER)
ALL = "all"

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500

WEEKLY_GOAL = "weekly"
EMISSION_GOAL = "emission"
GOAL_STATUSES = ("active", "completed", "abandoned")


class ActivityValidationError(ValueError):
    """Raised when an activity submission fails basic field validation."""

    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


@dataclass(frozen=True)
class Quantity:
    value: float
    unit: str

    def __post_init__(self):
        value = safe_float(self.value, default=math.nan)
        if not math.isfinite(value):
            raise ValueError(f"Quantity value must be a finite number, got {self.value!r}")
        object.__setattr__(self, "value", value)


@dataclass(frozen=True)
class TransportDetails:
    transport_mode: Optional[str] = None
    fuel_efficiency: Optional[float] = None  # km/L or mpg


@dataclass(frozen=True)
class EnergyDetails:
    energy_source: Optional[str] = None


@dataclass(frozen=True)
class FoodDetails:
    food_type: Optional[str] = None


@dataclass(frozen=True)
class WasteDetails:
    waste_type: Optional[str] = None
    disposal_method: Optional[str] = None


@dataclass(frozen=True)
class NoDetails:
    pass


ActivityDetails = Union[TransportDetails, EnergyDetails, FoodDetails, WasteDetails, NoDetails]

DETAIL_TYPES = {
    TRANSPORT: TransportDetails,
    ENERGY: EnergyDetails,
    FOOD: FoodDetails,
    WASTE: WasteDetails,
}

# camelCase keys as sent by clients -> dataclass field names
_DETAIL_ALIASES = {
    "transportMode": "transport_mode",
    "fuelEfficiency": "fuel_efficiency",
    "energySource": "energy_source",
    "foodType": "food_type",
    "wasteType": "waste_type",
    "disposalMethod": "disposal_method",
}


def parse_details(category: str, raw: Any) -> ActivityDetails:
    """Build the details variant for category from a raw mapping.

    Unknown keys are dropped. A malformed (non-mapping) value gives the empty
    variant so the calculator falls back to its defaults.
    """
    cls = DETAIL_TYPES.get(category, NoDetails)
    if isinstance(raw, (TransportDetails, EnergyDetails, FoodDetails, WasteDetails, NoDetails)):
        if isinstance(raw, cls):
            return raw
        raw = details_to_dict(raw)
    if not isinstance(raw, Mapping):
        return cls()
    fields = cls.__dataclass_fields__
    kwargs = {}
    for key, value in raw.items():
        name = _DETAIL_ALIASES.get(key, key)
        if name in fields and value not in (None, ""):
            kwargs[name] = value
    if "fuel_efficiency" in kwargs:
        kwargs["fuel_efficiency"] = safe_float(kwargs["fuel_efficiency"], default=0.0)
    return cls(**kwargs)


def details_to_dict(details: ActivityDetails) -> Dict[str, Any]:
    return {k: v for k, v in asdict(details).items() if v is not None}


@dataclass
class Activity:
    user_id: str
    name: str
    category: str
    quantity: Quantity
    description: str = ""
    details: ActivityDetails = field(default_factory=NoDetails)
    date: dt.datetime = field(default_factory=dt.datetime.now)
    carbon_footprint: float = 0.0
    emission_factor: float = 0.0
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_record(self) -> Dict[str, Any]:
        """Flat row for the CSV store."""
        row = {
            "id": self.id,
            "user_id": self.user_id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "quantity_value": self.quantity.value,
            "quantity_unit": self.quantity.unit,
            "date": self.date,
            "carbon_footprint": self.carbon_footprint,
            "emission_factor": self.emission_factor,
        }
        for name in _DETAIL_ALIASES.values():
            row[name] = getattr(self.details, name, None)
        return row

    @classmethod
    def from_record(cls, row: Mapping[str, Any]) -> "Activity":
        category = row["category"]
        raw_details = {k: v for k, v in row.items() if k in _DETAIL_ALIASES.values() and _present(v)}
        date = row["date"]
        if hasattr(date, "to_pydatetime"):
            date = date.to_pydatetime()
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            name=str(row["name"]),
            category=category,
            description="" if not _present(row.get("description")) else str(row["description"]),
            quantity=Quantity(row["quantity_value"], str(row["quantity_unit"])),
            details=parse_details(category, raw_details),
            date=date,
            carbon_footprint=float(row["carbon_footprint"]),
            emission_factor=float(row["emission_factor"]),
        )


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return value != ""


@dataclass
class Goal:
    """A weekly reduction goal or a fixed emission goal."""

    kind: str
    user_id: str
    start_date: dt.datetime
    end_date: dt.datetime
    target_emissions: float
    baseline_emissions: float
    category: str = ALL
    status: str = "active"
    # weekly reduction goals
    goal_type: Optional[str] = None
    target_reduction: Optional[float] = None
    # fixed emission goals
    timeframe: Optional[str] = None
    created_at: dt.datetime = field(default_factory=dt.datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("start_date", "end_date", "created_at"):
            data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Goal":
        kwargs = dict(data)
        for key in ("start_date", "end_date", "created_at"):
            if isinstance(kwargs.get(key), str):
                kwargs[key] = dt.datetime.fromisoformat(kwargs[key])
        return cls(**kwargs)


@dataclass(frozen=True)
class GoalStatus:
    current_emissions: float
    target_emissions: float
    baseline_emissions: float
    progress_percentage: float
    is_on_track: bool
    days_remaining: int
    activities_logged: int
    remaining_budget: float
    reduction_achieved: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentEmissions": self.current_emissions,
            "targetEmissions": self.target_emissions,
            "baselineEmissions": self.baseline_emissions,
            "progressPercentage": self.progress_percentage,
            "isOnTrack": self.is_on_track,
            "daysRemaining": self.days_remaining,
            "activitiesLogged": self.activities_logged,
            "remainingBudget": self.remaining_budget,
            "reductionAchieved": self.reduction_achieved,
        }


@dataclass(frozen=True)
class Tip:
    """A tip or insight. Never persisted; built fresh per event."""

    type: str  # info | success | warning | alert
    title: str
    message: str
    priority: str  # low | medium | high
    category: Optional[str] = None
    actionable: bool = False
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Trend:
    direction: str  # increasing | decreasing | stable
    absolute_change: float
    percentage_change: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction,
            "change": self.absolute_change,
            "percentageChange": self.percentage_change,
        }


def validate_activity(
    name: Any,
    category: Any,
    description: Any,
    quantity: Any,
    details: Any = None,
) -> None:
    """Basic field validation for a submitted activity.

    quantity may be a Quantity or a {"value", "unit"} mapping. Raises
    ActivityValidationError listing every problem found.
    """
    errors: List[str] = []

    if not name or not str(name).strip():
        errors.append("Activity name is required")
    elif len(str(name)) > MAX_NAME_LENGTH:
        errors.append(f"Activity name cannot exceed {MAX_NAME_LENGTH} characters")

    if category not in CATEGORIES:
        errors.append(f"Activity type must be one of: {', '.join(CATEGORIES)}")

    if not description or not str(description).strip():
        errors.append("Description is required")
    elif len(str(description)) > MAX_DESCRIPTION_LENGTH:
        errors.append(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")

    if isinstance(quantity, Quantity):
        value, unit = quantity.value, quantity.unit
    elif isinstance(quantity, Mapping):
        value, unit = quantity.get("value"), quantity.get("unit")
    else:
        value, unit = None, None

    if value is None or unit is None:
        errors.append("Quantity must include both value and unit")
    else:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            errors.append("Quantity value must be a valid number")
        elif value <= 0:
            errors.append("Quantity value must be greater than 0")
        if unit not in VALID_UNITS:
            errors.append(f"Quantity unit must be one of: {', '.join(VALID_UNITS)}")

    if details is not None and category in DETAIL_TYPES:
        errors.extend(_validate_details(category, details))

    if errors:
        raise ActivityValidationError(errors)


_DETAIL_ENUMS = {
    "transport_mode": ("Transport mode", ef.TRANSPORT_MODES),
    "energy_source": ("Energy source", ef.ENERGY_SOURCES),
    "food_type": ("Food type", ef.FOOD_TYPES),
    "waste_type": ("Waste type", ef.WASTE_TYPES),
    "disposal_method": ("Disposal method", ef.DISPOSAL_METHODS),
}


def _validate_details(category: str, details: Any) -> List[str]:
    if isinstance(details, Mapping):
        values = {_DETAIL_ALIASES.get(k, k): v for k, v in details.items()}
    elif isinstance(details, DETAIL_TYPES[category]):
        values = details_to_dict(details)
    else:
        return ["Activity details must be an object"]

    errors = []
    allowed = DETAIL_TYPES[category].__dataclass_fields__
    for key, (label, choices) in _DETAIL_ENUMS.items():
        value = values.get(key)
        if key in allowed and value and value not in choices:
            errors.append(f"{label} must be one of: {', '.join(choices)}")

    fuel = values.get("fuel_efficiency")
    if category == TRANSPORT and fuel is not None:
        if isinstance(fuel, bool) or not isinstance(fuel, (int, float)) or not math.isfinite(fuel) or fuel <= 0:
            errors.append("Fuel efficiency must be a positive number")
    return errors
