import datetime as dt
from types import SimpleNamespace
import pytest

import ai_tips
from models import EMISSION_GOAL, Activity, FoodDetails, Goal, Quantity, TransportDetails
from openai import OpenAIError
from unittest.mock import patch

NOW = dt.datetime(2025, 6, 15, 12, 0)


def _act(footprint, days_ago=0.0, category="transport", details=None, user_id="u1"):
    return Activity(
        user_id=user_id,
        name="a",
        category=category,
        quantity=Quantity(1, "km"),
        details=details or TransportDetails(),
        date=NOW - dt.timedelta(days=days_ago),
        carbon_footprint=footprint,
    )


def _goal(target, start=NOW - dt.timedelta(days=1), days=7, category="all"):
    return Goal(
        kind=EMISSION_GOAL,
        user_id="u1",
        start_date=start,
        end_date=start + dt.timedelta(days=days),
        target_emissions=target,
        baseline_emissions=0,
        category=category,
        timeframe="weekly",
    )


class FakeChoice:
    def __init__(self, content):
        self.message = SimpleNamespace(content=content)


class FakeResponse:
    def __init__(self, content):
        self.choices = [FakeChoice(content)]


@pytest.fixture(autouse=True)
def _fresh_gpt_cache():
    ai_tips._generate_eco_tip_cached.cache_clear()
    yield
    ai_tips._generate_eco_tip_cached.cache_clear()


# -----------------------------
# Per-activity tip cascade
# -----------------------------
def test_exhausted_budget_is_warning_regardless_of_other_tiers():
    # 25 kg logged against a 20 kg budget: remaining -5
    activity = _act(0.5)
    history = [activity, _act(24.5, days_ago=0.2)]
    tip = ai_tips.activity_tip(activity, _goal(20), history, NOW)
    assert tip.type == "warning"
    assert tip.priority == "high"
    assert "exceeded your weekly emission goal by 5.0 kg" in tip.message
    assert tip.suggestions == ai_tips.ALTERNATIVE_SUGGESTIONS["transport"]


def test_within_ten_percent_of_budget_is_alert():
    activity = _act(5)
    history = [activity, _act(90, days_ago=0.5)]
    tip = ai_tips.activity_tip(activity, _goal(100), history, NOW)
    assert tip.type == "alert"
    assert tip.title == "Approaching Goal Limit"
    assert tip.suggestions == ai_tips.LOW_EMISSION_SUGGESTIONS["transport"]


def test_above_personal_average_is_optimization_info():
    activity = _act(20)
    # the older activity sits before the goal but inside the 30-day average window
    history = [activity, _act(4, days_ago=10)]
    tip = ai_tips.activity_tip(activity, _goal(100), history, NOW)
    assert tip.type == "info"
    assert tip.title == "Optimization Opportunity"
    assert "You have 80.0 kg remaining" in tip.message
    assert tip.suggestions == ["Look for more efficient options"]


def test_optimization_suggestions_are_targeted_and_capped():
    beef = _act(30, category="food", details=FoodDetails(food_type="beef"))
    assert ai_tips.optimization_suggestions(beef)[0] == "Try chicken or fish alternatives"
    car = _act(30, details=TransportDetails(transport_mode="car_gasoline"))
    assert len(ai_tips.optimization_suggestions(car)) == 3


def test_well_under_budget_is_success():
    activity = _act(10)
    tip = ai_tips.activity_tip(activity, _goal(100), [activity], NOW)
    assert tip.type == "success"
    assert tip.message == "You're 90% under your weekly goal. Keep it up!"


def test_middle_of_the_road_gives_no_tip():
    activity = _act(30)
    history = [activity, _act(30, days_ago=0.1)]
    assert ai_tips.activity_tip(activity, _goal(100), history, NOW) is None


def test_success_needs_more_than_one_day_left():
    activity = _act(10)
    goal = _goal(100, start=NOW - dt.timedelta(days=6, hours=12))
    assert ai_tips.activity_tip(activity, goal, [activity], NOW) is None


def test_without_goal_uses_absolute_thresholds():
    high = ai_tips.activity_tip(_act(12), None, [], NOW)
    assert high.type == "info"
    assert high.title == "High Carbon Activity"
    assert "12.0 kg CO₂" in high.message

    low = ai_tips.activity_tip(_act(0.5), None, [], NOW)
    assert low.type == "success"

    assert ai_tips.activity_tip(_act(5), None, [], NOW) is None
    assert ai_tips.activity_tip(_act(4, category="other"), None, [], NOW).type == "info"


def test_expired_goal_falls_back_to_general_tip():
    expired = _goal(1, start=NOW - dt.timedelta(days=30))
    tip = ai_tips.activity_tip(_act(12), expired, [_act(12)], NOW)
    assert tip.title == "High Carbon Activity"


def test_category_average_falls_back_to_global_table():
    assert ai_tips.category_average([], "u1", "transport", NOW) == 5.0
    assert ai_tips.category_average([], "u1", "other", NOW) == 2.0
    assert ai_tips.category_average([_act(0)], "u1", "transport", NOW) == 5.0
    old = _act(100, days_ago=45)
    assert ai_tips.category_average([old, _act(3), _act(5)], "u1", "transport", NOW) == 4.0


# -----------------------------
# Weekly insights and analysis
# -----------------------------
def test_no_activities_gives_single_start_insight():
    insights = ai_tips.weekly_insights([])
    assert len(insights) == 1
    assert insights[0].title == "Start Your Journey"
    assert insights[0].priority == "high"


def test_high_week_names_biggest_contributor_and_warns():
    week = [_act(40), _act(15, category="food")]
    insights = ai_tips.weekly_insights(week)
    assert [i.type for i in insights] == ["alert", "warning"]
    assert insights[0].title == "Transport is your biggest contributor"
    assert insights[0].message.startswith("73% of your emissions (40.0 kg CO₂)")


def test_low_week_gets_success_note():
    insights = ai_tips.weekly_insights([_act(4, category="energy"), _act(6, category="food")])
    assert insights[0].category == "food"
    assert insights[1].type == "success"


def test_weekly_analysis_shapes():
    week = [_act(20), _act(10), _act(6, category="food")]
    analysis = ai_tips.weekly_analysis(week)
    assert analysis["totalWeeklyEmissions"] == 36
    assert analysis["highestEmissionCategory"] == "transport"
    assert analysis["activitiesThisWeek"] == 3
    first = analysis["categoryBreakdown"][0]
    assert first["category"] == "transport"
    assert first["activityCount"] == 2
    assert first["averagePerActivity"] == 15
    assert first["percentage"] == pytest.approx(83.3)
    assert all(t["category"] == "transport" for t in analysis["weeklyTips"])
    targets = analysis["reductionTargets"]
    assert targets[0]["targetReduction"] == 4.5
    assert targets[0]["targetEmissions"] == 25.5

    empty = ai_tips.weekly_analysis([])
    assert empty["highestEmissionCategory"] is None
    assert empty["weeklyTips"][0]["category"] == "general"


def test_should_send_weekly_update():
    low = [ai_tips.Tip(type="success", title="t", message="m", priority="low")]
    assert ai_tips.should_send_weekly_update(45, low) is True
    assert ai_tips.should_send_weekly_update(10, low) is False
    assert ai_tips.should_send_weekly_update(10, ai_tips.weekly_insights([])) is True


def test_recommendations_follow_patterns():
    recs = ai_tips.recommendations([_act(30), _act(5, category="food")])
    assert [r["type"] for r in recs] == ["transport", "tracking"]

    steady = [_act(1, days_ago=i, category="energy") for i in range(14)]
    assert ai_tips.recommendations(steady) == []


# -----------------------------
# GPT coach tip
# -----------------------------
def test_no_api_key_falls_back(monkeypatch, capfd):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    tip = ai_tips.generate_eco_tip({"energy": 5, "transport": 10, "food": 2}, emissions=17.0)
    assert "transport" in tip.lower()
    out, _ = capfd.readouterr()
    assert "OPENAI_API_KEY not set" in out


def test_client_uses_key_set_after_import(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-first-key")
    assert ai_tips.get_client().api_key == "sk-first-key"

    monkeypatch.setenv("OPENAI_API_KEY", "sk-later-key")
    assert ai_tips.get_client().api_key == "sk-later-key"
    assert ai_tips.get_client() is ai_tips.get_client()


def test_openai_success_returns_gpt_tip(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")

    def fake_create(**kwargs):
        return FakeResponse("Use a smart power strip to reduce standby energy.")

    monkeypatch.setattr(ai_tips.get_client().chat.completions, "create", fake_create, raising=True)

    tip = ai_tips.generate_eco_tip({"energy": 5}, emissions=5.0)
    assert "smart power strip" in tip.lower()


def test_gpt_tip_cached_for_repeated_inputs(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    call_count = {"n": 0}

    def fake_create(**kwargs):
        call_count["n"] += 1
        return FakeResponse("Cached eco tip")

    monkeypatch.setattr(ai_tips.get_client().chat.completions, "create", fake_create, raising=True)

    totals = {"energy": 5, "transport": 10}
    assert ai_tips.generate_eco_tip(totals, emissions=15.0) == ai_tips.generate_eco_tip(totals, emissions=15.0)
    assert call_count["n"] == 1


def test_gpt_retry_then_success(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    attempts = {"n": 0}

    def fake_create(**kwargs):
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise OpenAIError("rate limit")
        return FakeResponse("Recovered after retries")

    monkeypatch.setattr(ai_tips.time, "sleep", lambda s: None, raising=True)
    monkeypatch.setattr(ai_tips.get_client().chat.completions, "create", fake_create, raising=True)

    tip = ai_tips.generate_eco_tip({"energy": 2}, emissions=2.0)
    assert "recovered" in tip.lower()
    assert attempts["n"] == 3


def test_gpt_retry_then_fallback(monkeypatch, capfd):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    attempts = {"n": 0}

    def fake_create(**kwargs):
        attempts["n"] += 1
        raise OpenAIError("rate limit")

    monkeypatch.setattr(ai_tips.time, "sleep", lambda s: None, raising=True)
    monkeypatch.setattr(ai_tips.get_client().chat.completions, "create", fake_create, raising=True)

    totals = {"transport": 5.0, "energy": 0.5}
    tip = ai_tips.generate_eco_tip(totals, emissions=5.5)

    assert attempts["n"] == 3
    assert tip == ai_tips.clean_tip(ai_tips.local_tip(totals, 5.5))
    out, _ = capfd.readouterr()
    assert "GPT call failed (attempt 3/3)" in out


def test_gpt_api_error_fallback(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    monkeypatch.setattr(ai_tips.time, "sleep", lambda s: None, raising=True)

    totals = {"energy": 3, "transport": 2, "food": 0.5}
    with patch.object(ai_tips.get_client().chat.completions, "create", side_effect=OpenAIError("Simulated error")):
        tip = ai_tips.generate_eco_tip(totals, 5.5)

    assert tip == ai_tips.clean_tip(ai_tips.local_tip(totals, 5.5))


def test_local_tip_picks_largest_emitter_and_tier():
    tip = ai_tips.local_tip({"food": 30.0, "energy": 3.0, "transport": 1.0}, emissions=34.0)
    assert tip == "🌱 Moderate footprint this week. Biggest source is food: choose more plant-based meals."

    high = ai_tips.local_tip({"energy": 60.0}, emissions=60.0)
    assert high.startswith("🚨 High footprint this week.")
    assert "use energy-efficient led lighting" in high.lower()


def test_local_tip_without_known_category_is_generic():
    tip = ai_tips.local_tip({"transport": 0, "energy": 0}, emissions=0.0)
    assert tip.startswith("🌍 Low footprint this week")
    assert "Start small" in tip
    assert ai_tips.clean_tip(tip)


def test_clean_tip_limits_sentences():
    assert ai_tips.clean_tip("  One. Two. Three.  ") == "One. Two."
    assert ai_tips.clean_tip("One. Two. Three.", max_sentences=1) == "One."
    assert ai_tips.clean_tip("") == ""
    assert ai_tips.clean_tip(None) == ""
