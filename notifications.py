"""
notifications.py

Notification envelopes handed to whatever transport the caller uses
(websocket room, email, the Streamlit page). Nothing here does I/O.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Mapping

ACTIVITY_TIP = "activity_tip"
GOAL_SET = "goal_set"
EMISSION_GOAL_SET = "emission_goal_set"
GOAL_MILESTONE = "goal_milestone"
GOAL_STATUS_UPDATE = "goal_status_update"
TREND_ALERT = "trend_alert"
WEEKLY_INSIGHTS = "weekly_insights"

# Which preference switch gates each event; goal confirmations are always sent.
EVENT_PREFERENCES = {
    ACTIVITY_TIP: "activity_tips",
    GOAL_MILESTONE: "goal_milestones",
    GOAL_STATUS_UPDATE: "goal_status_updates",
    TREND_ALERT: "trend_alerts",
    WEEKLY_INSIGHTS: "weekly_insights",
}


@dataclass
class NotificationPreferences:
    weekly_insights: bool = True
    goal_milestones: bool = True
    trend_alerts: bool = True
    activity_tips: bool = True
    goal_status_updates: bool = True
    email_notifications: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NotificationPreferences":
        known = {f.name for f in fields(cls)}
        return cls(**{k: bool(v) for k, v in data.items() if k in known})

    def allows(self, event: str) -> bool:
        switch = EVENT_PREFERENCES.get(event)
        if switch is None:
            return True
        return getattr(self, switch, True) is not False


@dataclass(frozen=True)
class Notification:
    event: str
    user_id: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def room(self) -> str:
        return f"user:{self.user_id}"

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.event, "room": self.room, "payload": _plain(self.payload)}


def _plain(value: Any) -> Any:
    """Turn nested dataclasses/objects with to_dict() into plain dicts and lists."""
    if hasattr(value, "to_dict"):
        return _plain(value.to_dict())
    if hasattr(value, "__dataclass_fields__"):
        return _plain(asdict(value))
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value
