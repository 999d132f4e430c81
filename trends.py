"""
trends.py

Week-over-week emission trends.

- weekly_buckets(activities) groups activities into Sunday-start weeks.
- trend_direction(buckets) compares the two most recent buckets.
- should_send_trend_alert(trend) is True only for a sharp increase (>15%);
  decreases are reported but never alerted.
"""

from __future__ import annotations

import datetime as dt
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from goals import filter_activities
from models import Activity, Trend
from utils import safe_ratio

STABLE_THRESHOLD_PCT = 5
ALERT_THRESHOLD_PCT = 15
MIN_PERIOD_DAYS = 7
MAX_PERIOD_DAYS = 365


def clamp_period(period, low: int = MIN_PERIOD_DAYS, high: int = MAX_PERIOD_DAYS) -> int:
    try:
        days = int(period)
    except (TypeError, ValueError):
        days = 30
    return max(low, min(high, days))


def activity_frame(activities: Iterable[Activity]) -> pd.DataFrame:
    rows = [
        {"date": a.date, "category": a.category, "carbon_footprint": a.carbon_footprint}
        for a in activities
    ]
    df = pd.DataFrame(rows, columns=["date", "category", "carbon_footprint"])
    df["date"] = pd.to_datetime(df["date"])
    return df


def week_start(dates: pd.Series) -> pd.Series:
    """Sunday on or before each date, as a normalized timestamp."""
    days_since_sunday = (dates.dt.dayofweek + 1) % 7
    return (dates - pd.to_timedelta(days_since_sunday, unit="D")).dt.normalize()


def weekly_buckets(activities: Iterable[Activity]) -> List[Dict]:
    """Chronological weekly totals with a per-category split."""
    df = activity_frame(activities)
    if df.empty:
        return []

    df["weekStart"] = week_start(df["date"])
    totals = df.groupby("weekStart")["carbon_footprint"].agg(["sum", "count"])
    by_category = df.pivot_table(
        index="weekStart", columns="category", values="carbon_footprint", aggfunc="sum"
    )

    buckets = []
    for week, row in totals.sort_index().iterrows():
        categories = by_category.loc[week].dropna()
        buckets.append({
            "weekStart": week.date().isoformat(),
            "totalEmissions": float(row["sum"]),
            "activityCount": int(row["count"]),
            "byCategory": {str(k): float(v) for k, v in categories.items()},
        })
    return buckets


def trend_direction(buckets: Sequence[Dict]) -> Trend:
    """
    Direction of the two most recent buckets.

    - percentage change is (curr - prev) / prev * 100, or 0 when prev is 0
    - |change| <= 5% is stable; otherwise the sign decides
    - fewer than two buckets is stable with no change
    """
    if len(buckets) < 2:
        return Trend(direction="stable", absolute_change=0.0, percentage_change=0.0)

    prev, curr = (float(b["totalEmissions"]) for b in buckets[-2:])
    change = curr - prev
    pct = safe_ratio(change, prev)

    direction = "stable"
    if abs(pct) > STABLE_THRESHOLD_PCT:
        direction = "increasing" if change > 0 else "decreasing"

    return Trend(
        direction=direction,
        absolute_change=round(change, 2),
        percentage_change=round(pct, 1),
    )


def should_send_trend_alert(trend: Trend) -> bool:
    return trend.direction == "increasing" and abs(trend.percentage_change) > ALERT_THRESHOLD_PCT


def trend_alert_message(trend: Trend) -> str:
    if trend.direction == "increasing":
        return (
            f"Your emissions have increased by {trend.percentage_change}% this week. "
            "Consider reviewing your recent activities."
        )
    if trend.direction == "decreasing":
        return f"Great news! Your emissions decreased by {abs(trend.percentage_change)}% this week."
    return "Your emissions are stable this week."


def emission_trends(
    activities: Iterable[Activity],
    user_id: str,
    period=30,
    now: Optional[dt.datetime] = None,
) -> Dict:
    """Weekly trends for a user over the last `period` days (clamped to 7..365)."""
    now = now or dt.datetime.now()
    days = clamp_period(period)
    recent = filter_activities(activities, user_id, start=now - dt.timedelta(days=days))
    buckets = weekly_buckets(recent)
    return {
        "period": f"{days} days",
        "weeklyTrends": buckets,
        "trendDirection": trend_direction(buckets),
        "totalWeeks": len(buckets),
    }
