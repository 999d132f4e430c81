"""
tracker.py

CarbonTracker wires the pure calculators to the reference stores:

- activities: log, update, delete, list, summarize
- goals: set weekly/emission goals, read progress, archive expired ones
- insights: weekly analysis, recommendations, trends, dashboard, streaks,
  leaderboard, stats, badges and the GPT coach tip

Notifications are appended to `outbox` (after the user's preferences are
checked); delivering them is the caller's job. The Streamlit page shows them
as toasts.
"""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import ai_tips
import dashboard
import goals as goal_rules
import trends
from co2_engine import apply_footprint, calculate_co2
from emission_factors import list_emission_factors
from models import (
    EMISSION_GOAL,
    WEEKLY_GOAL,
    Activity,
    Goal,
    GoalStatus,
    Quantity,
    Tip,
    details_to_dict,
    parse_details,
    validate_activity,
)
from notifications import (
    ACTIVITY_TIP,
    EMISSION_GOAL_SET,
    GOAL_MILESTONE,
    GOAL_SET,
    GOAL_STATUS_UPDATE,
    TREND_ALERT,
    WEEKLY_INSIGHTS,
    Notification,
    NotificationPreferences,
)
from store import ActivityStore, GoalBook

RECALC_FIELDS = ("quantity", "category", "details")
UPDATABLE_FIELDS = ("name", "category", "description", "quantity", "details", "date")
DEFAULT_PAGE_SIZE = 20
RECOMMENDATION_WINDOW_DAYS = 30
COACH_WINDOW_DAYS = 7


class ActivityNotFound(LookupError):
    """No activity with that id belongs to the user."""


def _as_quantity(quantity: Union[Quantity, Mapping]) -> Quantity:
    if isinstance(quantity, Quantity):
        return quantity
    return Quantity(quantity.get("value"), quantity.get("unit"))


class CarbonTracker:
    def __init__(self, store: Optional[ActivityStore] = None, goal_book: Optional[GoalBook] = None):
        self.store = store if store is not None else ActivityStore()
        self.goal_book = goal_book if goal_book is not None else GoalBook()
        self.outbox: List[Notification] = []

    # =========================
    # Notifications
    # =========================
    def _notify(self, event: str, user_id: str, payload: Dict[str, Any]) -> Optional[Notification]:
        if not self.goal_book.user(user_id).preferences.allows(event):
            return None
        notification = Notification(event=event, user_id=user_id, payload=payload)
        self.outbox.append(notification)
        return notification

    def drain_notifications(self, user_id: Optional[str] = None) -> List[Notification]:
        """Pop pending notifications (all users, or one)."""
        taken, kept = [], []
        for n in self.outbox:
            (taken if user_id is None or n.user_id == user_id else kept).append(n)
        self.outbox = kept
        return taken

    def preferences(self, user_id: str) -> NotificationPreferences:
        return self.goal_book.user(user_id).preferences

    def set_preferences(self, user_id: str, **changes) -> NotificationPreferences:
        return self.goal_book.set_preferences(user_id, **changes)

    # =========================
    # Activities
    # =========================
    def log_activity(
        self,
        user_id: str,
        name: str,
        category: str,
        quantity: Union[Quantity, Mapping],
        description: str,
        details: Any = None,
        date: Optional[dt.datetime] = None,
        now: Optional[dt.datetime] = None,
    ) -> Tuple[Activity, Optional[Tip]]:
        """Validate, calculate and store an activity, then build its tip."""
        validate_activity(name, category, description, quantity, details)
        now = now or dt.datetime.now()

        activity = apply_footprint(Activity(
            user_id=user_id,
            name=str(name).strip(),
            category=category,
            description=str(description).strip(),
            quantity=_as_quantity(quantity),
            details=parse_details(category, details),
            date=date or now,
        ))
        self.store.add(activity)
        self.goal_book.record_activity(user_id, activity.carbon_footprint, now=now)

        goal = self.goal_book.active_goal(user_id, EMISSION_GOAL, now)
        tip = ai_tips.activity_tip(activity, goal, self.store.query(user_id), now)
        if tip is not None:
            self._notify(ACTIVITY_TIP, user_id, {"activity": _activity_payload(activity), "tip": tip})
        return activity, tip

    def get_activity(self, user_id: str, activity_id: str) -> Activity:
        activity = self.store.get(activity_id)
        if activity is None or activity.user_id != user_id:
            raise ActivityNotFound(activity_id)
        return activity

    def update_activity(self, user_id: str, activity_id: str, **changes) -> Activity:
        """Apply changes; the footprint is recomputed when quantity, category or details change."""
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        current = self.get_activity(user_id, activity_id)
        category = changes.get("category", current.category)
        quantity = _as_quantity(changes.get("quantity", current.quantity))
        details = changes.get("details", current.details)
        if "category" in changes and "details" not in changes:
            details = None
        validate_activity(
            changes.get("name", current.name),
            category,
            changes.get("description", current.description),
            quantity,
            details,
        )

        updated = replace(
            current,
            name=str(changes.get("name", current.name)).strip(),
            category=category,
            description=str(changes.get("description", current.description)).strip(),
            quantity=quantity,
            details=parse_details(category, details),
            date=changes.get("date", current.date),
        )
        if any(f in changes for f in RECALC_FIELDS):
            updated = apply_footprint(updated)

        self.store.replace(updated)
        delta = updated.carbon_footprint - current.carbon_footprint
        if delta:
            self.goal_book.record_activity(user_id, delta, is_new=False)
        return updated

    def delete_activity(self, user_id: str, activity_id: str) -> Activity:
        activity = self.get_activity(user_id, activity_id)
        self.store.delete(activity_id)
        return activity

    def list_activities(
        self,
        user_id: str,
        start: Optional[dt.datetime] = None,
        end: Optional[dt.datetime] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> Dict[str, Any]:
        """Newest-first page of activities plus the footprint of the whole filtered set."""
        page = max(1, int(page))
        limit = max(1, int(limit))
        matches = self.store.query(user_id, start, end, category, name=search)
        offset = (page - 1) * limit
        return {
            "activities": matches[offset:offset + limit],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": len(matches),
                "pages": math.ceil(len(matches) / limit),
            },
            "totalCarbonFootprint": calculate_co2(matches),
        }

    def activity_summary(
        self,
        user_id: str,
        start: Optional[dt.datetime] = None,
        end: Optional[dt.datetime] = None,
    ) -> Dict[str, Any]:
        return dashboard.activity_summary(self.store.query(user_id, start, end))

    def emission_factors(self) -> Dict[str, Dict[str, Dict]]:
        return list_emission_factors()

    # =========================
    # Goals
    # =========================
    def set_weekly_goal(
        self,
        user_id: str,
        target_reduction: float,
        goal_type: str,
        category: Optional[str] = None,
        now: Optional[dt.datetime] = None,
    ) -> Goal:
        now = now or dt.datetime.now()
        goal = goal_rules.create_weekly_goal(
            user_id, self.store.query(user_id), target_reduction, goal_type, category, now
        )
        self.goal_book.set_goal(goal)
        self._notify(GOAL_SET, user_id, {"goal": goal, "message": goal_rules.goal_set_message(goal)})
        return goal

    def set_emission_goal(
        self,
        user_id: str,
        target_emissions: float,
        timeframe: str,
        category: Optional[str] = None,
        now: Optional[dt.datetime] = None,
    ) -> Goal:
        now = now or dt.datetime.now()
        goal = goal_rules.create_emission_goal(
            user_id, self.store.query(user_id), target_emissions, timeframe, category, now
        )
        self.goal_book.set_goal(goal)
        self._notify(EMISSION_GOAL_SET, user_id, {
            "goal": goal,
            "message": goal_rules.goal_set_message(goal),
            "tips": goal_rules.goal_start_tips(goal.category),
        })
        return goal

    def weekly_goal_progress(self, user_id: str, now: Optional[dt.datetime] = None) -> Optional[GoalStatus]:
        """GoalStatus of the active weekly goal, or None when there is none."""
        return self._goal_progress(user_id, WEEKLY_GOAL, now)

    def emission_goal_progress(self, user_id: str, now: Optional[dt.datetime] = None) -> Optional[GoalStatus]:
        """GoalStatus of the active emission goal, or None when there is none."""
        return self._goal_progress(user_id, EMISSION_GOAL, now)

    def _goal_progress(self, user_id: str, kind: str, now: Optional[dt.datetime]) -> Optional[GoalStatus]:
        now = now or dt.datetime.now()
        goal = self.goal_book.active_goal(user_id, kind, now)
        if goal is None:
            return None

        status = goal_rules.evaluate_goal(goal, self.store.query(user_id), now)
        progress = status.progress_percentage

        if goal_rules.should_send_progress_update(progress):
            message = goal_rules.milestone_message(progress, status.is_on_track, status.days_remaining)
            if message:
                self._notify(GOAL_MILESTONE, user_id, {
                    "goalKind": kind,
                    "progress": progress,
                    "message": message,
                    "status": status,
                })

        if kind == EMISSION_GOAL and goal_rules.should_send_goal_status_update(
            progress, status.days_remaining, status.is_on_track
        ):
            message = goal_rules.goal_status_message(status)
            if message:
                self._notify(GOAL_STATUS_UPDATE, user_id, {
                    "message": message,
                    "status": status,
                    "urgency": goal_rules.status_urgency(progress),
                })
        return status

    def archive_expired_goals(self, user_id: Optional[str] = None, now: Optional[dt.datetime] = None) -> None:
        """Archive expired goals for one user, or for everyone in the goal book."""
        user_ids = [user_id] if user_id is not None else list(self.goal_book.usernames())
        for uid in user_ids:
            self.goal_book.archive_expired_goals(uid, now)

    # =========================
    # Insights
    # =========================
    def weekly_analysis(self, user_id: str, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
        now = now or dt.datetime.now()
        week = self.store.query(user_id, start=now - dt.timedelta(days=7), end=now)
        analysis = ai_tips.weekly_analysis(week)
        if ai_tips.should_send_weekly_update(analysis["totalWeeklyEmissions"], analysis["insights"]):
            self._notify(WEEKLY_INSIGHTS, user_id, {
                "totalEmissions": analysis["totalWeeklyEmissions"],
                "insights": analysis["insights"],
                "highestCategory": analysis["highestEmissionCategory"],
            })
        return analysis

    def recommendations(self, user_id: str, now: Optional[dt.datetime] = None) -> List[Dict]:
        now = now or dt.datetime.now()
        since = now - dt.timedelta(days=RECOMMENDATION_WINDOW_DAYS)
        return ai_tips.recommendations(self.store.query(user_id, start=since, end=now))

    def emission_trends(self, user_id: str, period=30, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
        result = trends.emission_trends(self.store.query(user_id), user_id, period, now)
        trend = result["trendDirection"]
        if trends.should_send_trend_alert(trend):
            self._notify(TREND_ALERT, user_id, {
                "trend": trend,
                "message": trends.trend_alert_message(trend),
            })
        return result

    def dashboard(self, user_id: str, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
        return dashboard.dashboard_summary(self.store.all(), user_id, now)

    def streak(self, user_id: str, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
        return dashboard.streak_summary(self.store.query(user_id), user_id, now)

    def leaderboard(self, user_id: Optional[str] = None, period=30, now: Optional[dt.datetime] = None) -> Dict:
        return dashboard.leaderboard(self.store.all(), self.goal_book.usernames(), user_id, period, now)

    def stats(self, user_id: str, period=30, now: Optional[dt.datetime] = None) -> Dict[str, Any]:
        return dashboard.user_stats(self.store.query(user_id), user_id, period, now)

    def badges(self, user_id: str, now: Optional[dt.datetime] = None) -> List[str]:
        now = now or dt.datetime.now()
        daily = dashboard.daily_totals(self.store.query(user_id), user_id)
        today_total = float(daily.get(now.date(), 0.0)) if not daily.empty else 0.0
        streak = dashboard.compute_streak(daily.index, now.date())
        return dashboard.award_badges(today_total, streak, daily)

    def coach_tip(self, user_id: str, now: Optional[dt.datetime] = None) -> str:
        """GPT (or local) coaching tip from the last week's per-category totals."""
        now = now or dt.datetime.now()
        totals = self.store.category_totals(user_id, since=now - dt.timedelta(days=COACH_WINDOW_DAYS))
        return ai_tips.generate_eco_tip(totals, sum(totals.values()))


def _activity_payload(activity: Activity) -> Dict[str, Any]:
    return {
        "id": activity.id,
        "name": activity.name,
        "category": activity.category,
        "quantity": {"value": activity.quantity.value, "unit": activity.quantity.unit},
        "details": details_to_dict(activity.details),
        "carbonFootprint": activity.carbon_footprint,
        "emissionFactor": activity.emission_factor,
        "date": activity.date,
    }
