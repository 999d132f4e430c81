# ai_tips.py
import datetime as dt
import time
from functools import lru_cache
from typing import Dict, Iterable, List, Mapping, Optional

import pandas as pd
from openai import OpenAI, OpenAIError

import config
from goals import evaluate_goal, is_active
from models import Activity, Goal, Tip
from utils import capitalize, safe_ratio


@lru_cache(maxsize=4)
def _client_for(api_key: str) -> OpenAI:
    return OpenAI(api_key=api_key)


def get_client() -> OpenAI:
    """Client for the key currently in the environment (safe even if missing; we guard before calling)."""
    return _client_for(config.openai_api_key() or "sk-not-set")


# Above these footprints (kg CO₂) an activity gets a "high carbon" tip when no goal is set.
HIGH_EMISSION_THRESHOLDS = {
    "transport": 10,
    "food": 5,
    "energy": 8,
    "waste": 2,
}
DEFAULT_HIGH_EMISSION_THRESHOLD = 3
LOW_CARBON_THRESHOLD = 1

# Fallback per-activity averages when the user has no history for a category.
GLOBAL_ACTIVITY_AVERAGES = {
    "transport": 5.0,
    "food": 3.0,
    "energy": 2.5,
    "waste": 1.0,
    "other": 2.0,
}
DEFAULT_ACTIVITY_AVERAGE = 2.0
AVERAGE_WINDOW_DAYS = 30

GLOBAL_WEEKLY_AVERAGE = 35
HIGH_WEEKLY_EMISSIONS = 50
LOW_WEEKLY_EMISSIONS = 20
REDUCTION_TARGET_PCT = 15

ALTERNATIVE_SUGGESTIONS = {
    "transport": [
        "Try walking or cycling for short trips",
        "Use public transport instead of driving",
        "Combine multiple errands into one trip",
        "Consider carpooling or ride-sharing",
    ],
    "food": [
        "Choose more plant-based meals",
        "Buy local, seasonal produce",
        "Reduce portion sizes to minimize waste",
        "Try one meat-free day per week",
    ],
    "energy": [
        "Use energy-efficient LED lighting",
        "Unplug devices when not in use",
        "Adjust thermostat by 2°C",
        "Switch to renewable energy if available",
    ],
    "waste": [
        "Recycle whenever possible",
        "Compost organic waste",
        "Buy products with minimal packaging",
        "Repair items instead of replacing them",
    ],
}
GENERIC_ALTERNATIVES = [
    "Look for lower-emission alternatives",
    "Consider reducing frequency of this activity",
    "Research eco-friendly options for this activity",
]

LOW_EMISSION_SUGGESTIONS = {
    "transport": ["Walk", "Bicycle", "Public transport", "Electric vehicle"],
    "food": ["Vegetables", "Fruits", "Local produce", "Plant-based proteins"],
    "energy": ["LED lighting", "Natural light", "Energy-efficient appliances"],
    "waste": ["Recycling", "Composting", "Reusable items", "Minimal packaging"],
}

WEEKLY_TIPS = {
    "transport": [
        {"tip": "Try cycling or walking for trips under 5km this week", "potentialSaving": 3.5, "difficulty": "medium"},
        {"tip": "Use public transport twice instead of driving", "potentialSaving": 2.8, "difficulty": "easy"},
        {"tip": "Combine multiple errands into one trip", "potentialSaving": 1.5, "difficulty": "easy"},
    ],
    "food": [
        {"tip": "Try 2 plant-based meals this week", "potentialSaving": 4.2, "difficulty": "medium"},
        {"tip": "Reduce red meat consumption by one meal", "potentialSaving": 6.8, "difficulty": "easy"},
        {"tip": "Buy local, seasonal produce", "potentialSaving": 2.1, "difficulty": "easy"},
    ],
    "energy": [
        {"tip": "Lower thermostat by 2°C when not home", "potentialSaving": 3.2, "difficulty": "easy"},
        {"tip": "Unplug devices when not in use", "potentialSaving": 1.8, "difficulty": "easy"},
        {"tip": "Use cold water for washing clothes", "potentialSaving": 2.5, "difficulty": "easy"},
    ],
    "waste": [
        {"tip": "Start composting organic waste", "potentialSaving": 1.2, "difficulty": "medium"},
        {"tip": "Recycle all eligible materials", "potentialSaving": 0.8, "difficulty": "easy"},
    ],
}


# -----------------------------
# Suggestion lists
# -----------------------------
def alternative_suggestions(category: str) -> List[str]:
    return list(ALTERNATIVE_SUGGESTIONS.get(category, GENERIC_ALTERNATIVES))


def low_emission_suggestions(category: str) -> List[str]:
    return list(LOW_EMISSION_SUGGESTIONS.get(category, ["Eco-friendly alternatives"]))


def optimization_suggestions(activity: Activity) -> List[str]:
    """At most three targeted ideas for making this kind of activity cheaper in CO₂."""
    suggestions = []
    details = activity.details
    if activity.category == "transport":
        mode = getattr(details, "transport_mode", None)
        if mode == "car_gasoline":
            suggestions += ["Consider hybrid or electric vehicle", "Carpool when possible", "Plan efficient routes"]
        elif mode == "plane_international":
            suggestions += ["Consider direct flights (more efficient)", "Offset your flight emissions"]
    elif activity.category == "food":
        if getattr(details, "food_type", None) == "beef":
            suggestions += ["Try chicken or fish alternatives", "Consider plant-based proteins", "Reduce portion size"]
    elif activity.category == "energy":
        suggestions += ["Switch to renewable energy sources", "Improve home insulation", "Use smart thermostats"]

    return suggestions[:3] if suggestions else ["Look for more efficient options"]


def category_average(
    history: Iterable[Activity],
    user_id: str,
    category: str,
    now: Optional[dt.datetime] = None,
) -> float:
    """User's mean footprint for category over the last 30 days.

    Falls back to GLOBAL_ACTIVITY_AVERAGES when there is no history.
    """
    now = now or dt.datetime.now()
    since = now - dt.timedelta(days=AVERAGE_WINDOW_DAYS)
    values = [
        a.carbon_footprint
        for a in history
        if a.user_id == user_id and a.category == category and a.date >= since
    ]
    if values:
        avg = sum(values) / len(values)
        if avg:
            return avg
    return GLOBAL_ACTIVITY_AVERAGES.get(category, DEFAULT_ACTIVITY_AVERAGE)


# -----------------------------
# Per-activity tips
# -----------------------------
def general_tip(activity: Activity) -> Optional[Tip]:
    """Tip for users without an active emission goal (or None for moderate activities)."""
    footprint = activity.carbon_footprint
    threshold = HIGH_EMISSION_THRESHOLDS.get(activity.category, DEFAULT_HIGH_EMISSION_THRESHOLD)

    if footprint > threshold:
        return Tip(
            type="info",
            title="High Carbon Activity",
            message=(
                f"This {activity.category} activity produced {footprint:.1f} kg CO₂. "
                "Consider setting an emission goal to track your progress!"
            ),
            priority="low",
            category=activity.category,
            actionable=True,
            suggestions=alternative_suggestions(activity.category),
        )

    if footprint < LOW_CARBON_THRESHOLD:
        return Tip(
            type="success",
            title="Low Carbon Choice!",
            message=f"This {activity.category} activity only produced {footprint:.2f} kg CO₂.",
            priority="low",
            category=activity.category,
            actionable=False,
        )

    return None


def activity_tip(
    activity: Activity,
    goal: Optional[Goal] = None,
    history: Iterable[Activity] = (),
    now: Optional[dt.datetime] = None,
) -> Optional[Tip]:
    """
    Exactly one tip (or None) for a freshly logged activity.

    With an active emission goal the tiers are tried in order, first match wins:
    1. budget exhausted         -> warning + alternatives
    2. within 10% of the budget -> alert + low-emission options
    3. above the 30-day average -> info + optimization ideas
    4. at most half the budget used with >1 day left -> success
    Without a goal, general_tip() applies absolute thresholds.

    history holds the user's persisted activities; it feeds both the goal's
    running total and the category average.
    """
    now = now or dt.datetime.now()
    if not is_active(goal, now):
        return general_tip(activity)

    history = list(history)
    status = evaluate_goal(goal, history, now)
    current = status.current_emissions
    remaining = goal.target_emissions - current
    timeframe = goal.timeframe or "weekly"

    if remaining <= 0:
        return Tip(
            type="warning",
            title="Goal Budget Exceeded!",
            message=(
                f"You've exceeded your {timeframe} emission goal by {abs(remaining):.1f} kg CO₂. "
                "Consider lower-emission alternatives."
            ),
            priority="high",
            category=goal.category,
            actionable=True,
            suggestions=alternative_suggestions(activity.category),
        )

    if remaining < goal.target_emissions * 0.1:
        return Tip(
            type="alert",
            title="Approaching Goal Limit",
            message=(
                f"Only {remaining:.1f} kg CO₂ remaining in your {timeframe} budget "
                f"with {status.days_remaining} days left."
            ),
            priority="medium",
            category=goal.category,
            actionable=True,
            suggestions=low_emission_suggestions(activity.category),
        )

    if activity.carbon_footprint > category_average(history, activity.user_id, activity.category, now):
        return Tip(
            type="info",
            title="Optimization Opportunity",
            message=(
                f"This {activity.category} activity produced {activity.carbon_footprint:.1f} kg CO₂. "
                f"You have {remaining:.1f} kg remaining in your goal."
            ),
            priority="low",
            category=activity.category,
            actionable=True,
            suggestions=optimization_suggestions(activity),
        )

    if current <= goal.target_emissions * 0.5 and status.days_remaining > 1:
        under = (1 - current / goal.target_emissions) * 100
        return Tip(
            type="success",
            title="Great Progress!",
            message=f"You're {under:.0f}% under your {timeframe} goal. Keep it up!",
            priority="low",
            category=goal.category,
            actionable=False,
        )

    return None


# -----------------------------
# Weekly batch insights
# -----------------------------
def category_frame(activities: Iterable[Activity]) -> pd.DataFrame:
    """Per-category totals, counts, averages and shares, highest first."""
    rows = [{"category": a.category, "carbon_footprint": a.carbon_footprint} for a in activities]
    columns = ["category", "totalEmissions", "activityCount", "averagePerActivity", "percentage"]
    if not rows:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(rows)
    grouped = df.groupby("category", sort=False)["carbon_footprint"].agg(["sum", "count"]).reset_index()
    grouped.columns = ["category", "totalEmissions", "activityCount"]
    total = float(df["carbon_footprint"].sum())
    grouped["averagePerActivity"] = (grouped["totalEmissions"] / grouped["activityCount"]).round(2)
    grouped["percentage"] = grouped["totalEmissions"].map(lambda v: round(safe_ratio(v, total), 1))
    grouped["totalEmissions"] = grouped["totalEmissions"].round(2)
    grouped = grouped.sort_values("totalEmissions", ascending=False, kind="stable").reset_index(drop=True)
    return grouped[columns]


def highest_category(breakdown: pd.DataFrame) -> Optional[str]:
    if breakdown.empty:
        return None
    return str(breakdown.iloc[0]["category"])


def weekly_insights(activities: Iterable[Activity]) -> List[Tip]:
    """Insights for a week of activities.

    No activities -> a single "start tracking" insight. Otherwise a "biggest
    contributor" alert, plus a warning/success note against the global average.
    """
    activities = list(activities)
    if not activities:
        return [
            Tip(
                type="info",
                title="Start Your Journey",
                message=(
                    "No activities logged this week. Start tracking your carbon footprint "
                    "to get personalized insights!"
                ),
                priority="high",
            )
        ]

    breakdown = category_frame(activities)
    total = sum(a.carbon_footprint for a in activities)
    top = breakdown.iloc[0]
    share = safe_ratio(float(top["totalEmissions"]), total)

    insights = [
        Tip(
            type="alert",
            title=f"{capitalize(top['category'])} is your biggest contributor",
            message=(
                f"{share:.0f}% of your emissions ({float(top['totalEmissions']):.1f} kg CO₂) "
                f"come from {top['category']} activities."
            ),
            priority="high",
            category=str(top["category"]),
            actionable=True,
        )
    ]

    if total > HIGH_WEEKLY_EMISSIONS:
        insights.append(
            Tip(
                type="warning",
                title="High Weekly Emissions",
                message=(
                    f"Your weekly emissions ({total:.1f} kg CO₂) are above the global average "
                    f"of {GLOBAL_WEEKLY_AVERAGE} kg per week."
                ),
                priority="medium",
                actionable=True,
            )
        )
    elif total < LOW_WEEKLY_EMISSIONS:
        insights.append(
            Tip(
                type="success",
                title="Great Progress!",
                message=f"Your weekly emissions ({total:.1f} kg CO₂) are well below the global average.",
                priority="low",
                actionable=False,
            )
        )

    return insights


def weekly_tips(top_category: Optional[str]) -> List[Dict]:
    if not top_category:
        return [{
            "category": "general",
            "tip": "Start logging daily activities to get personalized reduction tips!",
            "potentialSaving": 0,
            "difficulty": "easy",
        }]
    return [dict(t, category=top_category) for t in WEEKLY_TIPS.get(top_category, [])][:3]


def reduction_targets(breakdown: pd.DataFrame) -> List[Dict]:
    """A 15% reduction target per category, largest emitters first."""
    targets = []
    for _, row in breakdown.iterrows():
        current = float(row["totalEmissions"])
        reduction = current * REDUCTION_TARGET_PCT / 100
        targets.append({
            "category": row["category"],
            "currentEmissions": round(current, 2),
            "targetReduction": round(reduction, 2),
            "targetEmissions": round(current - reduction, 2),
            "reductionPercentage": REDUCTION_TARGET_PCT,
        })
    return sorted(targets, key=lambda t: t["currentEmissions"], reverse=True)


def weekly_analysis(activities: Iterable[Activity]) -> Dict:
    activities = list(activities)
    breakdown = category_frame(activities)
    top = highest_category(breakdown)
    insights = weekly_insights(activities)
    return {
        "period": "Last 7 days",
        "totalWeeklyEmissions": round(sum(a.carbon_footprint for a in activities), 2),
        "highestEmissionCategory": top,
        "categoryBreakdown": breakdown.to_dict(orient="records"),
        "insights": insights,
        "weeklyTips": weekly_tips(top),
        "reductionTargets": reduction_targets(breakdown),
        "activitiesThisWeek": len(activities),
    }


def should_send_weekly_update(total_emissions: float, insights: List[Tip]) -> bool:
    return total_emissions > 40 or any(i.priority == "high" for i in insights)


# -----------------------------
# 30-day recommendations
# -----------------------------
def activity_patterns(activities: Iterable[Activity]) -> Dict[str, bool]:
    activities = list(activities)
    total = sum(a.carbon_footprint for a in activities)
    by_category: Dict[str, float] = {}
    for a in activities:
        by_category[a.category] = by_category.get(a.category, 0.0) + a.carbon_footprint
    return {
        "highTransportEmissions": by_category.get("transport", 0) > total * 0.4,
        "highFoodEmissions": by_category.get("food", 0) > total * 0.3,
        "highEnergyEmissions": by_category.get("energy", 0) > total * 0.35,
        "inconsistentLogging": len(activities) < 14,
    }


def recommendations(activities: Iterable[Activity]) -> List[Dict]:
    patterns = activity_patterns(activities)
    recs = []
    if patterns["highTransportEmissions"]:
        recs.append({
            "type": "transport",
            "title": "Optimize Your Transportation",
            "description": "Your transport emissions are high. Consider alternative modes of transport.",
            "actions": [
                "Use public transport 2 days per week",
                "Walk or cycle for trips under 3km",
                "Plan combined trips to reduce total distance",
            ],
            "impact": "high",
            "difficulty": "medium",
        })
    if patterns["highFoodEmissions"]:
        recs.append({
            "type": "food",
            "title": "Sustainable Diet Choices",
            "description": "Food choices significantly impact your carbon footprint.",
            "actions": [
                "Try plant-based meals 3 times per week",
                "Buy local and seasonal produce",
                "Reduce food waste by meal planning",
            ],
            "impact": "high",
            "difficulty": "easy",
        })
    if patterns["inconsistentLogging"]:
        recs.append({
            "type": "tracking",
            "title": "Improve Activity Tracking",
            "description": "More consistent logging will give you better insights.",
            "actions": [
                "Set daily reminders to log activities",
                "Use quick-add templates for common activities",
                "Review and update your log weekly",
            ],
            "impact": "medium",
            "difficulty": "easy",
        })
    return recs


# -----------------------------
# GPT coaching tip
# -----------------------------
def generate_eco_tip(category_totals: Mapping[str, float], emissions: float) -> str:
    """Public entry point used by the app. Tries GPT with caching and backoff;
    falls back to local rules if key missing or calls fail.
    """
    if not config.openai_api_key():
        print("⚠️ OPENAI_API_KEY not set. Using local tip generator.")
        return clean_tip(local_tip(category_totals, emissions))

    # Build a deterministic cache key from the totals
    summary = ",".join(f"{k}={float(category_totals.get(k) or 0):.2f}" for k in sorted(category_totals))

    tip = _generate_eco_tip_cached(summary, float(emissions or 0))
    if tip:
        return clean_tip(tip)
    return clean_tip(local_tip(category_totals, emissions))


@lru_cache(maxsize=128)
def _generate_eco_tip_cached(summary: str, emissions: float) -> str:
    """Cached GPT tip generator. Returns empty string on failure to signal fallback."""
    prompt = (
        """
        You are a helpful sustainability coach.

        User's emissions by category (kg CO₂): {summary}
        Total CO₂ emitted: {emissions:.2f} kg

        Provide a concise, practical eco-friendly tip tailored to reduce their largest CO₂ source.
        Requirements:
        - Keep it positive and motivational.
        - Limit to 1–2 short sentences.
        - Prefer concrete, easy actions the user can do today or tomorrow.
        """.strip()
    ).format(summary=summary, emissions=emissions)

    retries = 3
    base_delay = 1.0
    for attempt in range(retries):
        try:
            response = get_client().chat.completions.create(
                model=config.OPENAI_MODEL,
                messages=[
                    {"role": "system", "content": "You are a sustainability assistant."},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=120,
                temperature=0.7,
            )
            return (response.choices[0].message.content or "").strip()
        except OpenAIError as e:
            # Retry on OpenAI API errors (rate limit/quota/etc.), then give up
            sleep_s = base_delay * (2 ** attempt)
            print(f"⚠️ GPT call failed (attempt {attempt+1}/{retries}): {e}. Retrying in {sleep_s:.1f}s...")
            time.sleep(sleep_s)
    return ""


def local_tip(category_totals: Mapping[str, float], emissions: float) -> str:
    """
    Simple rules-based fallback that never crashes and gives helpful, actionable tips.
    - Identifies the largest-emitting category
    - Provides the first alternative suggestion for that category
    - Includes tiered guidance based on total emissions
    """
    best_key = None
    best_kg = 0.0
    for category, kg in category_totals.items():
        try:
            kg_f = float(kg or 0)
        except (TypeError, ValueError):
            kg_f = 0.0
        if kg_f > best_kg:
            best_kg = kg_f
            best_key = category

    # Tiered guidance based on total emissions
    if emissions > HIGH_WEEKLY_EMISSIONS:
        preface = "🚨 High footprint this week."
    elif emissions > LOW_WEEKLY_EMISSIONS:
        preface = "🌱 Moderate footprint this week."
    else:
        preface = "🌍 Low footprint this week—nice work!"

    if best_key in ALTERNATIVE_SUGGESTIONS:
        suggestion = ALTERNATIVE_SUGGESTIONS[best_key][0]
        return f"{preface} Biggest source is {best_key}: {suggestion[0].lower()}{suggestion[1:]}."

    # Final generic tip
    return f"{preface} Start small: one meat‑free meal, one public‑transport trip, and switch devices fully off tonight."


def clean_tip(tip: str, max_sentences: Optional[int] = None) -> str:
    """Trim whitespace and limit the tip to a maximum number of sentences.
    Keeps the content concise for the UI.
    """
    if max_sentences is None:
        max_sentences = config.TIP_MAX_SENTENCES
    if not isinstance(tip, str):
        return ""
    tip = tip.strip()
    if not tip:
        return tip
    # Split on periods while preserving basic punctuation
    parts = [p.strip() for p in tip.split('.') if p.strip()]
    if len(parts) > max_sentences:
        tip = '. '.join(parts[:max_sentences]).strip() + '.'
    return tip
