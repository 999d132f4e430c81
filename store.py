"""
store.py

Reference persistence for activities and goals.

- ActivityStore keeps activities in a pandas DataFrame, optionally mirrored to
  a CSV file (config.HISTORY_FILE in the app).
- GoalBook keeps each user's current goals, goal history, notification
  preferences and running stats, optionally mirrored to a JSON file.

Both are single-process helpers; a real deployment swaps them for a database.
"""

from __future__ import annotations

import datetime as dt
import json
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from goals import WEEKLY_GOAL_HISTORY_LIMIT, archive_if_expired, is_active
from models import ALL, EMISSION_GOAL, WEEKLY_GOAL, Activity, Goal
from notifications import NotificationPreferences

COLUMNS = [
    "id",
    "user_id",
    "name",
    "category",
    "description",
    "quantity_value",
    "quantity_unit",
    "date",
    "carbon_footprint",
    "emission_factor",
    "transport_mode",
    "fuel_efficiency",
    "energy_source",
    "food_type",
    "waste_type",
    "disposal_method",
]
TEXT_COLUMNS = [
    "id",
    "user_id",
    "name",
    "category",
    "description",
    "quantity_unit",
    "transport_mode",
    "energy_source",
    "food_type",
    "waste_type",
    "disposal_method",
]


class ActivityStore:
    """Activities table. Rows are written already calculated; see tracker.py."""

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._df = self._load()

    # =========================
    # Storage
    # =========================
    def _load(self) -> pd.DataFrame:
        if self.path and os.path.exists(self.path):
            try:
                # Only blank cells are missing; "NA" or "None" typed by a user stays text
                df = pd.read_csv(
                    self.path,
                    parse_dates=["date"],
                    dtype={col: str for col in TEXT_COLUMNS},
                    keep_default_na=False,
                    na_values={"fuel_efficiency": [""]},
                )
                return df.reindex(columns=COLUMNS)
            except Exception as e:
                print(f"⚠️ Warning: could not read {self.path} ({e}); starting empty.")
                return pd.DataFrame(columns=COLUMNS)
        return pd.DataFrame(columns=COLUMNS)

    def _save(self) -> None:
        self._df = self._df.sort_values("date", kind="stable").reset_index(drop=True)
        if self.path:
            self._df.to_csv(self.path, index=False)

    # =========================
    # CRUD
    # =========================
    def _append(self, df: pd.DataFrame, activity: Activity) -> pd.DataFrame:
        row = pd.DataFrame([activity.to_record()], columns=COLUMNS)
        if df.empty:
            df = row
        else:
            df = pd.concat([df, row], ignore_index=True)
        df["date"] = pd.to_datetime(df["date"])
        return df

    def add(self, activity: Activity) -> Activity:
        self._df = self._append(self._df, activity)
        self._save()
        return activity

    def get(self, activity_id: str) -> Optional[Activity]:
        mask = self._df["id"] == activity_id
        if not mask.any():
            return None
        return Activity.from_record(self._df[mask].iloc[0].to_dict())

    def replace(self, activity: Activity) -> Activity:
        mask = self._df["id"] == activity.id
        if not mask.any():
            raise KeyError(activity.id)
        # Upsert
        self._df = self._append(self._df[~mask], activity)
        self._save()
        return activity

    def delete(self, activity_id: str) -> bool:
        mask = self._df["id"] == activity_id
        if not mask.any():
            return False
        self._df = self._df[~mask]
        self._save()
        return True

    # =========================
    # Queries
    # =========================
    def all(self) -> List[Activity]:
        return [Activity.from_record(row) for row in self._df.to_dict(orient="records")]

    def query(
        self,
        user_id: Optional[str] = None,
        start: Optional[dt.datetime] = None,
        end: Optional[dt.datetime] = None,
        category: Optional[str] = None,
        name: Optional[str] = None,
    ) -> List[Activity]:
        """Activities matching the filters, newest first.

        start/end are inclusive; name is a case-insensitive substring match.
        """
        df = self._df
        if user_id is not None:
            df = df[df["user_id"] == user_id]
        if start is not None:
            df = df[df["date"] >= pd.Timestamp(start)]
        if end is not None:
            df = df[df["date"] <= pd.Timestamp(end)]
        if category and category != ALL:
            df = df[df["category"] == category]
        if name:
            df = df[df["name"].astype(str).str.contains(name, case=False, regex=False)]
        df = df.sort_values("date", ascending=False, kind="stable")
        return [Activity.from_record(row) for row in df.to_dict(orient="records")]

    def category_totals(self, user_id: str, since: Optional[dt.datetime] = None) -> Dict[str, float]:
        """Sum of footprints per category for a user."""
        df = self._df[self._df["user_id"] == user_id]
        if since is not None:
            df = df[df["date"] >= pd.Timestamp(since)]
        if df.empty:
            return {}
        sums = df.groupby("category")["carbon_footprint"].sum()
        return {str(k): round(float(v), 2) for k, v in sums.items()}


@dataclass
class UserStats:
    total_activities_logged: int = 0
    total_carbon_footprint: float = 0.0
    last_activity_date: Optional[dt.datetime] = None


@dataclass
class UserGoals:
    username: str = ""
    current_weekly_goal: Optional[Goal] = None
    weekly_goal_history: List[Goal] = field(default_factory=list)
    current_emission_goal: Optional[Goal] = None
    emission_goal_history: List[Goal] = field(default_factory=list)
    preferences: NotificationPreferences = field(default_factory=NotificationPreferences)
    stats: UserStats = field(default_factory=UserStats)


class GoalBook:
    """Per-user goals, preferences and stats."""

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._users: Dict[str, UserGoals] = {}
        if path and os.path.exists(path):
            try:
                with open(path, encoding="utf-8") as f:
                    self._users = {uid: _user_from_dict(data) for uid, data in json.load(f).items()}
            except (OSError, ValueError) as e:
                print(f"⚠️ Warning: could not read {path} ({e}); starting empty.")

    def _save(self) -> None:
        if not self.path:
            return
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({uid: _user_to_dict(u) for uid, u in self._users.items()}, f, indent=2)

    def user(self, user_id: str) -> UserGoals:
        if user_id not in self._users:
            self._users[user_id] = UserGoals(username=user_id)
        return self._users[user_id]

    def usernames(self) -> Dict[str, str]:
        return {uid: u.username or uid for uid, u in self._users.items()}

    def register(self, user_id: str, username: str) -> UserGoals:
        record = self.user(user_id)
        record.username = username
        self._save()
        return record

    def active_goal(self, user_id: str, kind: str, now: Optional[dt.datetime] = None) -> Optional[Goal]:
        """The user's current goal of `kind`, or None when absent or expired."""
        record = self.user(user_id)
        goal = record.current_weekly_goal if kind == WEEKLY_GOAL else record.current_emission_goal
        return goal if is_active(goal, now) else None

    def set_goal(self, goal: Goal) -> Goal:
        """Make goal the user's current goal of its kind.

        A goal it replaces moves to history (abandoned if it was still active).
        """
        record = self.user(goal.user_id)
        if goal.kind == WEEKLY_GOAL:
            self._retire(record.current_weekly_goal, record.weekly_goal_history)
            record.current_weekly_goal = goal
        elif goal.kind == EMISSION_GOAL:
            self._retire(record.current_emission_goal, record.emission_goal_history)
            record.current_emission_goal = goal
        else:
            raise ValueError(f"Unknown goal kind: {goal.kind}")
        _trim_weekly_history(record)
        self._save()
        return goal

    @staticmethod
    def _retire(goal: Optional[Goal], history: List[Goal]) -> None:
        if goal is None:
            return
        if goal.status == "active":
            goal.status = "abandoned"
        history.append(goal)

    def archive_expired_goals(self, user_id: str, now: Optional[dt.datetime] = None) -> UserGoals:
        record = self.user(user_id)
        record.current_weekly_goal = archive_if_expired(
            record.current_weekly_goal, record.weekly_goal_history, now
        )
        record.current_emission_goal = archive_if_expired(
            record.current_emission_goal, record.emission_goal_history, now
        )
        _trim_weekly_history(record)
        self._save()
        return record

    def record_activity(self, user_id: str, carbon_footprint: float, is_new: bool = True,
                        now: Optional[dt.datetime] = None) -> UserStats:
        stats = self.user(user_id).stats
        if is_new:
            stats.total_activities_logged += 1
        stats.total_carbon_footprint += carbon_footprint
        stats.last_activity_date = now or dt.datetime.now()
        self._save()
        return stats

    def set_preferences(self, user_id: str, **changes) -> NotificationPreferences:
        record = self.user(user_id)
        merged = vars(record.preferences).copy()
        merged.update(changes)
        record.preferences = NotificationPreferences.from_dict(merged)
        self._save()
        return record.preferences


def _trim_weekly_history(record: UserGoals) -> None:
    record.weekly_goal_history = record.weekly_goal_history[-WEEKLY_GOAL_HISTORY_LIMIT:]


def _goal_or_none(data) -> Optional[Goal]:
    return Goal.from_dict(data) if data else None


def _user_to_dict(u: UserGoals) -> Dict:
    last = u.stats.last_activity_date
    return {
        "username": u.username,
        "current_weekly_goal": u.current_weekly_goal.to_dict() if u.current_weekly_goal else None,
        "weekly_goal_history": [g.to_dict() for g in u.weekly_goal_history],
        "current_emission_goal": u.current_emission_goal.to_dict() if u.current_emission_goal else None,
        "emission_goal_history": [g.to_dict() for g in u.emission_goal_history],
        "preferences": vars(u.preferences),
        "stats": {
            "total_activities_logged": u.stats.total_activities_logged,
            "total_carbon_footprint": u.stats.total_carbon_footprint,
            "last_activity_date": last.isoformat() if last else None,
        },
    }


def _user_from_dict(data: Dict) -> UserGoals:
    stats = data.get("stats") or {}
    last = stats.get("last_activity_date")
    return UserGoals(
        username=data.get("username", ""),
        current_weekly_goal=_goal_or_none(data.get("current_weekly_goal")),
        weekly_goal_history=[Goal.from_dict(g) for g in data.get("weekly_goal_history", [])],
        current_emission_goal=_goal_or_none(data.get("current_emission_goal")),
        emission_goal_history=[Goal.from_dict(g) for g in data.get("emission_goal_history", [])],
        preferences=NotificationPreferences.from_dict(data.get("preferences") or {}),
        stats=UserStats(
            total_activities_logged=int(stats.get("total_activities_logged", 0)),
            total_carbon_footprint=float(stats.get("total_carbon_footprint", 0.0)),
            last_activity_date=dt.datetime.fromisoformat(last) if last else None,
        ),
    )
