import datetime as dt

import pandas as pd
import pytest

from models import (
    EMISSION_GOAL,
    Activity,
    ActivityValidationError,
    EnergyDetails,
    FoodDetails,
    Goal,
    NoDetails,
    Quantity,
    TransportDetails,
    Trend,
    WasteDetails,
    details_to_dict,
    parse_details,
    validate_activity,
)


def test_parse_details_accepts_camel_and_snake_case():
    assert parse_details("transport", {"transportMode": "bus", "fuelEfficiency": "12.5"}) == TransportDetails(
        transport_mode="bus", fuel_efficiency=12.5
    )
    assert parse_details("waste", {"waste_type": "recycling"}) == WasteDetails(waste_type="recycling")


def test_parse_details_drops_fields_of_other_categories():
    details = parse_details("food", {"foodType": "fish", "transportMode": "bus"})
    assert details == FoodDetails(food_type="fish")
    assert details_to_dict(details) == {"food_type": "fish"}


def test_parse_details_malformed_gives_empty_variant():
    assert parse_details("energy", "grid_average") == EnergyDetails()
    assert parse_details("transport", None) == TransportDetails()
    assert parse_details("other", {"foodType": "fish"}) == NoDetails()


def test_parse_details_converts_variant_of_another_category():
    assert parse_details("energy", TransportDetails(transport_mode="bus")) == EnergyDetails()
    same = FoodDetails(food_type="beef")
    assert parse_details("food", same) is same


def test_validate_activity_collects_every_error():
    with pytest.raises(ActivityValidationError) as excinfo:
        validate_activity("", "travel", "x" * 501, {"value": 0, "unit": "parsecs"})
    errors = excinfo.value.errors
    assert "Activity name is required" in errors
    assert any(e.startswith("Activity type must be one of") for e in errors)
    assert "Description cannot exceed 500 characters" in errors
    assert "Quantity value must be greater than 0" in errors
    assert any(e.startswith("Quantity unit must be one of") for e in errors)


def test_validate_activity_checks_detail_enums_and_fuel_efficiency():
    with pytest.raises(ActivityValidationError) as excinfo:
        validate_activity(
            "Drive", "transport", "to work", {"value": 10, "unit": "km"},
            {"transportMode": "rocket", "fuelEfficiency": -3},
        )
    assert any(e.startswith("Transport mode must be one of") for e in excinfo.value.errors)
    assert "Fuel efficiency must be a positive number" in excinfo.value.errors


def test_validate_activity_passes_good_input():
    validate_activity("Commute", "transport", "train to work", Quantity(30, "km"), {"transportMode": "train"})
    validate_activity("Groceries", "food", "weekly shop", {"value": 2, "unit": "servings"})


def test_validate_activity_rejects_non_numeric_and_long_name():
    with pytest.raises(ActivityValidationError) as excinfo:
        validate_activity("n" * 101, "food", "desc", {"value": "2", "unit": "kg"})
    assert "Activity name cannot exceed 100 characters" in excinfo.value.errors
    assert "Quantity value must be a valid number" in excinfo.value.errors


@pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
def test_validate_activity_rejects_non_finite_values(value):
    with pytest.raises(ActivityValidationError) as excinfo:
        validate_activity("Drive", "transport", "trip", {"value": value, "unit": "km"},
                          {"transportMode": "car_gasoline", "fuelEfficiency": value})
    assert "Quantity value must be a valid number" in excinfo.value.errors
    assert "Fuel efficiency must be a positive number" in excinfo.value.errors


def test_activity_record_round_trip_through_dataframe():
    activity = Activity(
        user_id="u1",
        name="Flight",
        category="transport",
        quantity=Quantity(800, "km"),
        description="work trip",
        details=TransportDetails(transport_mode="plane_domestic"),
        date=dt.datetime(2025, 2, 3, 9, 30),
        carbon_footprint=200.0,
        emission_factor=0.25,
    )
    row = pd.DataFrame([activity.to_record()]).to_dict(orient="records")[0]
    restored = Activity.from_record(row)
    assert restored == activity


def test_goal_dict_round_trip_keeps_dates():
    goal = Goal(
        kind=EMISSION_GOAL,
        user_id="u1",
        start_date=dt.datetime(2025, 1, 1),
        end_date=dt.datetime(2025, 1, 8),
        target_emissions=30.0,
        baseline_emissions=40.0,
        timeframe="weekly",
        created_at=dt.datetime(2025, 1, 1),
    )
    data = goal.to_dict()
    assert data["end_date"] == "2025-01-08T00:00:00"
    assert Goal.from_dict(data) == goal


def test_trend_to_dict_uses_wire_names():
    assert Trend("increasing", 4.0, 20.0).to_dict() == {
        "direction": "increasing",
        "change": 4.0,
        "percentageChange": 20.0,
    }
