"""
dashboard.py

Read-side aggregates: dashboard summary, streaks, leaderboard, stats, badges.
All functions take the activities already loaded from the store.
"""

from __future__ import annotations

import datetime as dt
from typing import Dict, Iterable, List, Mapping, Optional

import pandas as pd

from goals import filter_activities, sum_footprint
from models import Activity
from trends import clamp_period

STREAK_WINDOW_DAYS = 90
LEADERBOARD_MIN_ACTIVITIES = 5
LEADERBOARD_SIZE = 10


def _frame(activities: Iterable[Activity]) -> pd.DataFrame:
    rows = [
        {
            "user_id": a.user_id,
            "category": a.category,
            "date": a.date,
            "carbon_footprint": a.carbon_footprint,
        }
        for a in activities
    ]
    df = pd.DataFrame(rows, columns=["user_id", "category", "date", "carbon_footprint"])
    df["date"] = pd.to_datetime(df["date"])
    return df


def _week_windows(now: dt.datetime, weeks: int = 4):
    """(label index, start, end) for the last `weeks` 7-day windows, oldest first."""
    windows = []
    for i in range(weeks):
        start = now - dt.timedelta(days=i * 7 + 6)
        end = now - dt.timedelta(days=i * 7)
        windows.append((i, start, end))
    return list(reversed(windows))


def _in_window(activities: List[Activity], start: dt.datetime, end: dt.datetime) -> List[Activity]:
    return [a for a in activities if start <= a.date <= end]


# =========================
# Dashboard
# =========================
def community_average(activities: Iterable[Activity], since: dt.datetime) -> float:
    """Mean of per-user totals since `since`."""
    df = _frame(a for a in activities if a.date >= since)
    if df.empty:
        return 0.0
    return float(df.groupby("user_id")["carbon_footprint"].sum().mean())


def dashboard_summary(
    all_activities: Iterable[Activity],
    user_id: str,
    now: Optional[dt.datetime] = None,
) -> Dict:
    now = now or dt.datetime.now()
    since = now - dt.timedelta(days=30)
    all_activities = list(all_activities)
    mine = filter_activities(all_activities, user_id, start=since)

    total = sum_footprint(mine)
    community = community_average(all_activities, since)

    weekly = []
    for i, start, end in _week_windows(now):
        week = _in_window(mine, start, end)
        weekly.append({
            "week": f"Week {4 - i}",
            "emissions": round(sum_footprint(week), 2),
            "activitiesCount": len(week),
        })

    by_category: Dict[str, float] = {}
    for a in mine:
        by_category[a.category] = by_category.get(a.category, 0.0) + a.carbon_footprint

    return {
        "totalEmissions": round(total, 2),
        "communityAverage": round(community, 2),
        "weeklyBreakdown": weekly,
        "activitiesCount": len(mine),
        "comparisonToCommunity": round(total - community, 2),
        "emissionsByCategory": [
            {"type": category, "emissions": round(kg, 2)} for category, kg in by_category.items()
        ],
        "performanceScore": "Above Average" if total <= community else "Below Average",
    }


# =========================
# Streaks
# =========================
def compute_streak(active_days: Iterable[dt.date], today: dt.date) -> int:
    """Consecutive days with at least one activity, counting back from today."""
    dayset = set(active_days)
    streak = 0
    current = today
    while current in dayset and streak < STREAK_WINDOW_DAYS:
        streak += 1
        current -= dt.timedelta(days=1)
    return streak


def longest_streak(active_days: Iterable[dt.date]) -> int:
    days = sorted(set(active_days))
    longest = 0
    run = 0
    previous = None
    for day in days:
        if previous is not None and (day - previous).days == 1:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day
    return longest


def streak_summary(
    activities: Iterable[Activity],
    user_id: str,
    now: Optional[dt.datetime] = None,
) -> Dict:
    now = now or dt.datetime.now()
    recent = filter_activities(activities, user_id, start=now - dt.timedelta(days=STREAK_WINDOW_DAYS))
    active_days = {a.date.date() for a in recent}

    weekly = []
    for i, start, end in _week_windows(now):
        week = _in_window(recent, start, end)
        weekly.append({
            "week": i + 1,
            "daysActive": len({a.date.date() for a in week}),
            "totalActivities": len(week),
            "totalEmissions": round(sum_footprint(week), 2),
        })

    return {
        "currentStreak": compute_streak(active_days, now.date()),
        "longestStreak": longest_streak(active_days),
        "weeklySummary": weekly,
        "totalDays": len(active_days),
        "averageActivitiesPerDay": round(len(recent) / max(len(active_days), 1), 2),
    }


# =========================
# Leaderboard
# =========================
def leaderboard(
    activities: Iterable[Activity],
    usernames: Mapping[str, str],
    current_user_id: Optional[str] = None,
    period=30,
    now: Optional[dt.datetime] = None,
) -> Dict:
    """
    Lowest-footprint users over the period (clamped to 1..365 days).

    Only users with at least 5 activities are ranked. The current user's rank
    is 1 + the number of eligible users with a strictly lower total.
    """
    now = now or dt.datetime.now()
    days = clamp_period(period, low=1)
    df = _frame(a for a in activities if a.date >= now - dt.timedelta(days=days))

    if df.empty:
        totals = pd.DataFrame(columns=["totalEmissions", "activityCount"])
    else:
        totals = df.groupby("user_id")["carbon_footprint"].agg(["sum", "count"])
        totals.columns = ["totalEmissions", "activityCount"]
    eligible = totals[totals["activityCount"] >= LEADERBOARD_MIN_ACTIVITIES]
    eligible = eligible.sort_values("totalEmissions", kind="stable")

    board = []
    for rank, (uid, row) in enumerate(eligible.head(LEADERBOARD_SIZE).iterrows(), start=1):
        board.append({
            "rank": rank,
            "userId": uid,
            "username": usernames.get(uid, uid),
            "totalEmissions": round(float(row["totalEmissions"]), 2),
            "activityCount": int(row["activityCount"]),
            "averagePerActivity": round(float(row["totalEmissions"]) / int(row["activityCount"]), 2),
        })

    current = None
    if current_user_id is not None and current_user_id in totals.index:
        mine = totals.loc[current_user_id]
        my_total = float(mine["totalEmissions"])
        my_count = int(mine["activityCount"])
        rank = None
        if my_count >= LEADERBOARD_MIN_ACTIVITIES:
            rank = int((eligible["totalEmissions"] < my_total).sum()) + 1
        current = {
            "rank": rank,
            "totalEmissions": round(my_total, 2),
            "activityCount": my_count,
            "averagePerActivity": round(my_total / my_count, 2),
        }

    return {"leaderboard": board, "currentUser": current, "period": f"{days} days"}


# =========================
# Stats
# =========================
def _overall(df: pd.DataFrame) -> Dict:
    if df.empty:
        return {
            "totalActivities": 0,
            "totalEmissions": 0,
            "averageEmissions": 0,
            "minEmissions": 0,
            "maxEmissions": 0,
        }
    values = df["carbon_footprint"]
    return {
        "totalActivities": int(values.count()),
        "totalEmissions": round(float(values.sum()), 2),
        "averageEmissions": round(float(values.mean()), 2),
        "minEmissions": round(float(values.min()), 2),
        "maxEmissions": round(float(values.max()), 2),
    }


def _by_category(df: pd.DataFrame) -> List[Dict]:
    if df.empty:
        return []
    grouped = df.groupby("category")["carbon_footprint"].agg(["count", "sum", "mean"])
    grouped = grouped.sort_values("sum", ascending=False, kind="stable")
    return [
        {
            "activityType": category,
            "count": int(row["count"]),
            "totalEmissions": round(float(row["sum"]), 2),
            "averageEmissions": round(float(row["mean"]), 2),
        }
        for category, row in grouped.iterrows()
    ]


def user_stats(
    activities: Iterable[Activity],
    user_id: str,
    period=30,
    now: Optional[dt.datetime] = None,
) -> Dict:
    """Per-category and overall stats for one user (period clamped to 1..365 days)."""
    now = now or dt.datetime.now()
    days = clamp_period(period, low=1)
    df = _frame(filter_activities(activities, user_id, start=now - dt.timedelta(days=days)))
    return {"byCategory": _by_category(df), "overall": _overall(df), "period": f"{days} days"}


def activity_summary(activities: Iterable[Activity]) -> Dict:
    """Summary over an already-filtered list (no date window applied)."""
    df = _frame(activities)
    overall = _overall(df)
    return {
        "summary": {
            "totalActivities": overall["totalActivities"],
            "totalCarbonFootprint": overall["totalEmissions"],
            "avgCarbonFootprint": overall["averageEmissions"],
            "maxCarbonFootprint": overall["maxEmissions"],
            "minCarbonFootprint": overall["minEmissions"],
        },
        "breakdown": [
            {"category": c["activityType"], "count": c["count"], "totalCarbon": c["totalEmissions"]}
            for c in _by_category(df)
        ],
    }


# =========================
# Badges
# =========================
def award_badges(today_total: float, streak: int, daily_totals: pd.Series) -> list:
    """Badges from today's total, the current streak and past daily totals."""
    badges = []
    if not daily_totals.empty:
        badges.append("📅 Consistency: Entries logged!")
    if today_total < 20:
        badges.append("🌿 Low Impact Day (< 20 kg)")
    if streak >= 3:
        badges.append("🔥 3-Day Streak")
    if streak >= 7:
        badges.append("🏆 7-Day Streak")
    if not daily_totals.empty:
        recent = daily_totals.tail(7)
        avg7 = float(recent.mean()) if not recent.empty else 0.0
        if avg7 and today_total < 0.9 * avg7:
            badges.append("📈 10% Better than 7-day avg")
    return badges


def daily_totals(activities: Iterable[Activity], user_id: str) -> pd.Series:
    """Chronological per-day footprint totals for a user."""
    df = _frame(filter_activities(activities, user_id))
    if df.empty:
        return pd.Series(dtype=float)
    return df.groupby(df["date"].dt.date)["carbon_footprint"].sum().sort_index()
