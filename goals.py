"""
goals.py

Goal creation and progress evaluation for the two goal variants:

- weekly reduction goal: reduce this week's emissions against the week before
  last, by a percentage or an absolute amount.
- fixed emission goal: stay under a kg CO₂ budget for a week or a month.

Everything here is a pure function over activities the caller already loaded;
"now" is passed in so results are reproducible.
"""

from __future__ import annotations

import datetime as dt
import math
from typing import Iterable, List, Optional

from models import (
    ALL,
    CATEGORIES,
    EMISSION_GOAL,
    WEEKLY_GOAL,
    Activity,
    Goal,
    GoalStatus,
)
from utils import days_between, safe_ratio

WEEKLY_GOAL_TYPES = ("percentage", "absolute")
TIMEFRAME_DAYS = {"weekly": 7, "monthly": 30}
WEEKLY_GOAL_HISTORY_LIMIT = 10


def filter_activities(
    activities: Iterable[Activity],
    user_id: Optional[str] = None,
    start: Optional[dt.datetime] = None,
    end: Optional[dt.datetime] = None,
    category: Optional[str] = None,
) -> List[Activity]:
    """Activities with start <= date < end, optionally for one user/category."""
    out = []
    for activity in activities:
        if user_id is not None and activity.user_id != user_id:
            continue
        if start is not None and activity.date < start:
            continue
        if end is not None and activity.date >= end:
            continue
        if category and category != ALL and activity.category != category:
            continue
        out.append(activity)
    return out


def sum_footprint(activities: Iterable[Activity]) -> float:
    return sum(a.carbon_footprint for a in activities)


def baseline_emissions(
    activities: Iterable[Activity],
    user_id: str,
    window_days: int,
    now: dt.datetime,
    category: str = ALL,
) -> float:
    """Total emissions in [now - 2*window, now - window)."""
    window = dt.timedelta(days=window_days)
    prior = filter_activities(activities, user_id, now - 2 * window, now - window, category)
    return round(sum_footprint(prior), 2)


def _check_category(category: Optional[str]) -> str:
    category = category or ALL
    if category != ALL and category not in CATEGORIES:
        raise ValueError(f"Goal category must be 'all' or one of: {', '.join(CATEGORIES)}")
    return category


def create_weekly_goal(
    user_id: str,
    activities: Iterable[Activity],
    target_reduction: float,
    goal_type: str,
    category: Optional[str] = None,
    now: Optional[dt.datetime] = None,
) -> Goal:
    """Weekly reduction goal with its baseline taken from [now-14d, now-7d)."""
    if not target_reduction or target_reduction <= 0:
        raise ValueError("Target reduction must be a positive number")
    if goal_type not in WEEKLY_GOAL_TYPES:
        raise ValueError("Goal type must be percentage or absolute")
    category = _check_category(category)
    now = now or dt.datetime.now()

    baseline = baseline_emissions(activities, user_id, 7, now, category)
    if goal_type == "percentage":
        target = baseline * (1 - target_reduction / 100)
    else:
        target = baseline - target_reduction

    return Goal(
        kind=WEEKLY_GOAL,
        user_id=user_id,
        start_date=now,
        end_date=now + dt.timedelta(days=7),
        category=category,
        baseline_emissions=baseline,
        target_emissions=round(target, 2),
        goal_type=goal_type,
        target_reduction=target_reduction,
        created_at=now,
    )


def create_emission_goal(
    user_id: str,
    activities: Iterable[Activity],
    target_emissions: float,
    timeframe: str,
    category: Optional[str] = None,
    now: Optional[dt.datetime] = None,
) -> Goal:
    """Fixed emission goal; baseline is the equivalent prior period."""
    if not target_emissions or target_emissions <= 0:
        raise ValueError("Target emissions must be a positive number")
    if timeframe not in TIMEFRAME_DAYS:
        raise ValueError("Timeframe must be weekly or monthly")
    category = _check_category(category)
    now = now or dt.datetime.now()
    days = TIMEFRAME_DAYS[timeframe]

    return Goal(
        kind=EMISSION_GOAL,
        user_id=user_id,
        start_date=now,
        end_date=now + dt.timedelta(days=days),
        category=category,
        baseline_emissions=baseline_emissions(activities, user_id, days, now, category),
        target_emissions=target_emissions,
        timeframe=timeframe,
        created_at=now,
    )


def is_active(goal: Optional[Goal], now: Optional[dt.datetime] = None) -> bool:
    """Active status and end date not yet passed. Expiry is checked lazily here."""
    if goal is None:
        return False
    now = now or dt.datetime.now()
    return goal.status == "active" and now <= goal.end_date


def archive_if_expired(goal: Optional[Goal], history: List[Goal], now: Optional[dt.datetime] = None) -> Optional[Goal]:
    """Move an expired active goal into history as completed.

    Returns the goal that stays current (None once archived).
    """
    if goal is None:
        return None
    now = now or dt.datetime.now()
    if goal.status == "active" and now > goal.end_date:
        goal.status = "completed"
        history.append(goal)
        return None
    return goal


def goal_activities(goal: Goal, activities: Iterable[Activity]) -> List[Activity]:
    """The user's activities dated on/after the goal start, in the goal's category."""
    return filter_activities(activities, goal.user_id, start=goal.start_date, category=goal.category)


def progress_percentage(goal: Goal, current: float) -> float:
    if goal.kind == WEEKLY_GOAL:
        pct = safe_ratio(goal.baseline_emissions - current, goal.baseline_emissions)
    else:
        pct = safe_ratio(current, goal.target_emissions)
    return round(pct, 1)


def evaluate_goal(goal: Goal, activities: Iterable[Activity], now: Optional[dt.datetime] = None) -> GoalStatus:
    """
    Progress of goal given the user's activities.

    - current: sum of footprints since the goal started (category filtered)
    - weekly: progress = reduction vs. baseline in %
    - emission: progress = share of the budget used in %
    - on track: current <= target, for both variants
    - days_remaining: may be 0 or negative once the goal expired
    """
    now = now or dt.datetime.now()
    relevant = goal_activities(goal, activities)
    current = sum_footprint(relevant)

    return GoalStatus(
        current_emissions=round(current, 2),
        target_emissions=goal.target_emissions,
        baseline_emissions=goal.baseline_emissions,
        progress_percentage=progress_percentage(goal, current),
        is_on_track=current <= goal.target_emissions,
        days_remaining=days_between(now, goal.end_date),
        activities_logged=len(relevant),
        remaining_budget=round(goal.target_emissions - current, 2),
        reduction_achieved=round(goal.baseline_emissions - current, 2),
    )


# -----------------------------
# Milestones and status updates
# -----------------------------
def should_send_progress_update(progress: float) -> bool:
    """True when progress has just crossed a 25% milestone (5-point window)."""
    current_milestone = math.floor(progress / 25) * 25
    previous_milestone = math.floor((progress - 5) / 25) * 25
    return current_milestone > previous_milestone and current_milestone > 0


def milestone_message(progress: float, is_on_track: bool, days_remaining: int) -> Optional[str]:
    if progress >= 100:
        if is_on_track:
            return "Congratulations! You've achieved your goal!"
        return "Goal completed - consider setting a new challenge!"
    if progress >= 75:
        if is_on_track:
            return "Great progress! You're on track to meet your goal."
        return f"You're {days_remaining} days behind - time to focus!"
    if progress >= 50:
        return "You're halfway to your goal - keep it up!"
    if progress >= 25:
        return "Good start! You're 25% towards your goal."
    return None


def should_send_goal_status_update(progress: float, days_remaining: int, is_on_track: bool) -> bool:
    return progress > 85 or (days_remaining <= 2 and not is_on_track)


def goal_status_message(status: GoalStatus) -> Optional[str]:
    progress = status.progress_percentage
    if progress > 100:
        excess = status.current_emissions - status.target_emissions
        return (
            f"You've exceeded your goal by {excess:.1f} kg CO₂. "
            f"Consider low-emission activities for the remaining {status.days_remaining} days."
        )
    if status.days_remaining <= 1 and not status.is_on_track:
        return "Final day! You need to reduce emissions significantly to meet your goal."
    if progress > 85:
        return (
            f"You're at {progress}% of your emission goal with "
            f"{status.days_remaining} days remaining. Stay focused!"
        )
    return None


def status_urgency(progress: float) -> str:
    if progress > 90:
        return "high"
    if progress > 75:
        return "medium"
    return "low"


def goal_start_tips(category: str) -> List[str]:
    """Up to three quick-start tips for a new emission goal."""
    tips = []
    if category in ("transport", ALL):
        tips.append("Try walking or cycling for short trips")
        tips.append("Use public transport instead of driving")
    if category in ("food", ALL):
        tips.append("Choose plant-based meals 2-3 times this week")
        tips.append("Buy local, seasonal produce")
    if category in ("energy", ALL):
        tips.append("Lower thermostat by 2°C when away")
        tips.append("Unplug unused electronics")
    return tips[:3]


def goal_set_message(goal: Goal) -> str:
    if goal.kind == WEEKLY_GOAL:
        amount = f"{goal.target_reduction:g}%" if goal.goal_type == "percentage" else f"{goal.target_reduction:g} kg"
        return f"Weekly {amount} reduction goal set!"
    return f"{goal.timeframe.capitalize()} emission goal of {goal.target_emissions:g} kg CO₂ set successfully!"
