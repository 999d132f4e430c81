import datetime as dt

import pandas as pd

import dashboard
from models import Activity, Quantity

NOW = dt.datetime(2025, 6, 15, 12, 0)


def _act(footprint, days_ago=0.0, category="transport", user_id="u1"):
    return Activity(
        user_id=user_id,
        name="a",
        category=category,
        quantity=Quantity(1, "km"),
        date=NOW - dt.timedelta(days=days_ago),
        carbon_footprint=footprint,
    )


def test_dashboard_summary_against_community():
    activities = [
        _act(10, 1),
        _act(5, 9, category="food"),
        _act(40, 2, user_id="u2"),
        _act(100, 45),  # outside the 30-day window
    ]
    summary = dashboard.dashboard_summary(activities, "u1", NOW)
    assert summary["totalEmissions"] == 15
    assert summary["communityAverage"] == 27.5
    assert summary["comparisonToCommunity"] == -12.5
    assert summary["performanceScore"] == "Above Average"
    assert summary["activitiesCount"] == 2
    assert [w["week"] for w in summary["weeklyBreakdown"]] == ["Week 1", "Week 2", "Week 3", "Week 4"]
    assert summary["weeklyBreakdown"][-1]["emissions"] == 10
    assert summary["weeklyBreakdown"][-2]["emissions"] == 5
    assert {"type": "food", "emissions": 5} in summary["emissionsByCategory"]


def test_dashboard_below_average():
    activities = [_act(50, 1), _act(10, 1, user_id="u2")]
    assert dashboard.dashboard_summary(activities, "u1", NOW)["performanceScore"] == "Below Average"


def test_compute_streak_counts_back_from_today():
    today = NOW.date()
    days = [today, today - dt.timedelta(days=1), today - dt.timedelta(days=2), today - dt.timedelta(days=5)]
    assert dashboard.compute_streak(days, today) == 3
    assert dashboard.compute_streak(days[1:], today) == 0
    assert dashboard.longest_streak(days) == 3


def test_streak_is_capped_at_window():
    today = NOW.date()
    days = [today - dt.timedelta(days=i) for i in range(120)]
    assert dashboard.compute_streak(days, today) == 90


def test_streak_summary():
    activities = [_act(1, 0), _act(2, 0.1), _act(3, 1), _act(4, 3)]
    summary = dashboard.streak_summary(activities, "u1", NOW)
    assert summary["currentStreak"] == 2
    assert summary["longestStreak"] == 2
    assert summary["totalDays"] == 3
    assert summary["averageActivitiesPerDay"] == 1.33
    assert summary["weeklySummary"][-1]["totalActivities"] == 4


def test_leaderboard_ranks_eligible_users_only():
    activities = []
    for uid, each in (("green", 1), ("mid", 3), ("heavy", 10)):
        activities += [_act(each, i, user_id=uid) for i in range(5)]
    activities += [_act(0.1, i, user_id="newbie") for i in range(2)]

    board = dashboard.leaderboard(activities, {"green": "Greta"}, "mid", period=30, now=NOW)
    assert [row["userId"] for row in board["leaderboard"]] == ["green", "mid", "heavy"]
    assert board["leaderboard"][0]["username"] == "Greta"
    assert board["leaderboard"][0]["rank"] == 1
    assert board["currentUser"]["rank"] == 2
    assert board["currentUser"]["totalEmissions"] == 15
    assert board["period"] == "30 days"

    newbie = dashboard.leaderboard(activities, {}, "newbie", period=0, now=NOW)
    assert newbie["period"] == "1 days"
    assert newbie["currentUser"] is None or newbie["currentUser"]["rank"] is None


def test_leaderboard_current_user_below_minimum_is_unranked():
    activities = [_act(0.1, i, user_id="newbie") for i in range(2)]
    board = dashboard.leaderboard(activities, {}, "newbie", period=30, now=NOW)
    assert board["leaderboard"] == []
    assert board["currentUser"]["rank"] is None
    assert board["currentUser"]["activityCount"] == 2


def test_user_stats_and_empty_stats():
    activities = [_act(10, 1), _act(2, 2), _act(6, 3, category="food")]
    stats = dashboard.user_stats(activities, "u1", period=30, now=NOW)
    assert stats["overall"] == {
        "totalActivities": 3,
        "totalEmissions": 18,
        "averageEmissions": 6,
        "minEmissions": 2,
        "maxEmissions": 10,
    }
    assert stats["byCategory"][0] == {
        "activityType": "transport",
        "count": 2,
        "totalEmissions": 12,
        "averageEmissions": 6,
    }
    empty = dashboard.user_stats([], "u1", now=NOW)
    assert empty["overall"]["totalActivities"] == 0
    assert empty["byCategory"] == []


def test_activity_summary_shape():
    summary = dashboard.activity_summary([_act(4), _act(1, category="food")])
    assert summary["summary"]["totalCarbonFootprint"] == 5
    assert summary["summary"]["maxCarbonFootprint"] == 4
    assert summary["breakdown"][0] == {"category": "transport", "count": 1, "totalCarbon": 4}


def test_award_badges_logic():
    today = dt.date(2025, 1, 3)
    daily = pd.Series([30.0, 25.0, 18.0], index=[dt.date(2025, 1, 1), dt.date(2025, 1, 2), today])
    streak = dashboard.compute_streak(daily.index, today)
    badges = dashboard.award_badges(today_total=18.0, streak=streak, daily_totals=daily)

    assert any("Consistency" in b for b in badges)
    assert any("Low Impact" in b for b in badges)
    assert any("3-Day Streak" in b for b in badges)
    assert any("10% Better" in b for b in badges)
    assert not any("7-Day Streak" in b for b in badges)


def test_daily_totals_group_by_day():
    daily = dashboard.daily_totals([_act(1, 0), _act(2, 0.1), _act(5, 1), _act(9, 0, user_id="u2")], "u1")
    assert list(daily.index) == [(NOW - dt.timedelta(days=1)).date(), NOW.date()]
    assert list(daily) == [5, 3]
