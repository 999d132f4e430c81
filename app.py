# app.py
import datetime as dt
import io

import pandas as pd
import streamlit as st

import config
import emission_factors as ef
from models import CATEGORIES, FOOD, ActivityValidationError, Tip
from store import ActivityStore, GoalBook
from tracker import CarbonTracker
from units import UNIT_GROUPS, VALID_UNITS
from utils import format_emissions as fmt_emissions, friendly_message as status_message

# =========================
# Form options
# =========================
# Units offered first for each category; every unit stays selectable.
CATEGORY_UNITS = {
    "transport": list(UNIT_GROUPS["distance"]),
    "energy": list(UNIT_GROUPS["energy"]),
    "food": list(UNIT_GROUPS["weight"]) + ["servings"],
    "waste": list(UNIT_GROUPS["weight"]),
    "other": list(VALID_UNITS),
}

# Detail field -> (label, choices) shown per category.
DETAIL_FIELDS = {
    "transport": {"transport_mode": ("Transport mode", ef.TRANSPORT_MODES)},
    "energy": {"energy_source": ("Energy source", ef.ENERGY_SOURCES)},
    "food": {"food_type": ("Food type", ef.FOOD_TYPES)},
    "waste": {
        "waste_type": ("Waste type", ef.WASTE_TYPES),
        "disposal_method": ("Disposal method", ef.DISPOSAL_METHODS),
    },
    "other": {},
}

TIP_STYLES = {
    "success": "🌿",
    "info": "💡",
    "alert": "⚠️",
    "warning": "🚨",
}

# =========================
# Helper Functions
# =========================
def units_for(category: str) -> list:
    preferred = CATEGORY_UNITS.get(category, list(VALID_UNITS))
    return preferred + [u for u in VALID_UNITS if u not in preferred]


def build_details(category: str, selections: dict, fuel_efficiency: float = 0.0) -> dict:
    """Raw details mapping from the form; blank selections are dropped."""
    details = {k: v for k, v in selections.items() if k in DETAIL_FIELDS.get(category, {}) and v}
    if category == "transport" and fuel_efficiency and fuel_efficiency > 0:
        details["fuel_efficiency"] = float(fuel_efficiency)
    return details


def activities_to_frame(activities) -> pd.DataFrame:
    """Table/CSV view of activities, newest first."""
    columns = ["date", "name", "category", "quantity", "carbon_footprint", "emission_factor", "description"]
    rows = [
        {
            "date": a.date,
            "name": a.name,
            "category": a.category,
            "quantity": f"{a.quantity.value:g} {a.quantity.unit}",
            "carbon_footprint": a.carbon_footprint,
            "emission_factor": a.emission_factor,
            "description": a.description,
        }
        for a in activities
    ]
    df = pd.DataFrame(rows, columns=columns)
    if not df.empty:
        df = df.sort_values("date", ascending=False).reset_index(drop=True)
    return df


def entry_label(activity) -> str:
    return f"{activity.date:%Y-%m-%d} · {activity.name} · {fmt_emissions(activity.carbon_footprint)}"


def factor_reference_frame() -> pd.DataFrame:
    rows = []
    for category, entries in ef.list_emission_factors().items():
        for key, info in entries.items():
            rows.append({"category": category, "key": key, **info})
    return pd.DataFrame(rows, columns=["category", "key", "factor", "unit", "description"])


def weekly_trend_frame(trend_result: dict) -> pd.DataFrame:
    buckets = trend_result.get("weeklyTrends", [])
    if not buckets:
        return pd.DataFrame(columns=["totalEmissions"])
    df = pd.DataFrame(buckets)
    df["weekStart"] = pd.to_datetime(df["weekStart"])
    return df.set_index("weekStart")[["totalEmissions"]]


def category_frame(summary: dict) -> pd.DataFrame:
    df = pd.DataFrame(summary.get("emissionsByCategory", []), columns=["type", "emissions"])
    return df.set_index("type")


def tip_markdown(tip: Tip) -> str:
    icon = TIP_STYLES.get(tip.type, "💡")
    text = f"**{icon} {tip.title}**  \n{tip.message}"
    if tip.suggestions:
        text += "\n" + "\n".join(f"- {s}" for s in tip.suggestions)
    return text


def to_csv_bytes(df: pd.DataFrame) -> bytes:
    buf = io.StringIO()
    df.to_csv(buf, index=False)
    return buf.getvalue().encode("utf-8")


@st.cache_resource
def get_tracker() -> CarbonTracker:
    return CarbonTracker(ActivityStore(config.HISTORY_FILE), GoalBook(config.GOALS_FILE))


# =========================
# Streamlit App
# =========================
def render_log_form(tracker: CarbonTracker, user_id: str):
    st.subheader("Log an activity")
    category = st.selectbox("Category", CATEGORIES, key="category")

    with st.form("log_activity"):
        c1, c2 = st.columns(2)
        with c1:
            name = st.text_input("Name", max_chars=100)
            value = st.number_input("Quantity", min_value=0.0, value=1.0, step=0.1)
            unit = st.selectbox("Unit", units_for(category))
        with c2:
            description = st.text_area("Description", max_chars=500, height=110)
            when = st.date_input("Date", value=dt.date.today())

        selections = {}
        for field_name, (label, choices) in DETAIL_FIELDS.get(category, {}).items():
            selections[field_name] = st.selectbox(label, ("",) + tuple(choices), key=f"detail_{field_name}")
        fuel = 0.0
        if category == "transport":
            fuel = st.number_input("Fuel efficiency (km/L, optional)", min_value=0.0, value=0.0, step=0.5)
        if category == FOOD:
            st.caption("1 serving is counted as 0.25 kg.")

        submitted = st.form_submit_button("Calculate & Save")

    if not submitted:
        return
    date_val = dt.datetime.combine(when, dt.datetime.now().time())
    try:
        activity, tip = tracker.log_activity(
            user_id,
            name=name,
            category=category,
            quantity={"value": value, "unit": unit},
            description=description,
            details=build_details(category, selections, fuel),
            date=date_val,
        )
    except ActivityValidationError as e:
        for err in e.errors:
            st.error(err)
        return

    st.success(f"Saved **{activity.name}**: {fmt_emissions(activity.carbon_footprint)}")
    if tip is not None:
        st.info(tip_markdown(tip))


def render_goals(tracker: CarbonTracker, user_id: str):
    st.subheader("Goals")
    g1, g2 = st.columns(2)
    with g1:
        with st.form("weekly_goal"):
            goal_type = st.radio("Reduction type", ["percentage", "absolute"], horizontal=True)
            reduction = st.number_input("Reduce by (% or kg)", min_value=0.0, value=10.0, step=1.0)
            category = st.selectbox("Category", ("all",) + CATEGORIES, key="weekly_goal_category")
            if st.form_submit_button("Set weekly goal"):
                try:
                    tracker.set_weekly_goal(user_id, reduction, goal_type, category)
                except ValueError as e:
                    st.error(str(e))
        status = tracker.weekly_goal_progress(user_id)
        if status is None:
            st.caption("No active weekly goal.")
        else:
            st.metric("Weekly reduction", f"{status.progress_percentage}%",
                      f"{status.reduction_achieved:.2f} kg vs baseline")
    with g2:
        with st.form("emission_goal"):
            target = st.number_input("Emission budget (kg CO₂)", min_value=0.0, value=35.0, step=1.0)
            timeframe = st.radio("Timeframe", ["weekly", "monthly"], horizontal=True)
            category = st.selectbox("Category", ("all",) + CATEGORIES, key="emission_goal_category")
            if st.form_submit_button("Set emission goal"):
                try:
                    tracker.set_emission_goal(user_id, target, timeframe, category)
                except ValueError as e:
                    st.error(str(e))
        status = tracker.emission_goal_progress(user_id)
        if status is None:
            st.caption("No active emission goal.")
        else:
            st.progress(min(int(status.progress_percentage), 100))
            st.write(
                f"{fmt_emissions(status.current_emissions)} of {fmt_emissions(status.target_emissions)} "
                f"· {status.days_remaining} days left · "
                f"{'on track ✅' if status.is_on_track else 'over budget ❌'}"
            )


def render_dashboard(tracker: CarbonTracker, user_id: str):
    summary = tracker.dashboard(user_id)
    streak = tracker.streak(user_id)

    k1, k2, k3, k4 = st.columns(4)
    k1.metric("Last 30 days", fmt_emissions(summary["totalEmissions"]))
    k2.metric("Community average", fmt_emissions(summary["communityAverage"]),
              f"{summary['comparisonToCommunity']:+.2f} kg", delta_color="inverse")
    k3.metric("Current streak", f"{streak['currentStreak']} days")
    k4.metric("Score", summary["performanceScore"])
    st.caption(status_message(summary["totalEmissions"] / 30))

    badges = tracker.badges(user_id)
    if badges:
        st.write(" ".join(f"`{b}`" for b in badges))

    c1, c2 = st.columns(2)
    with c1:
        st.markdown("**Weekly trend**")
        trend_result = tracker.emission_trends(user_id, period=90)
        trend = trend_result["trendDirection"]
        st.line_chart(weekly_trend_frame(trend_result), height=220)
        st.caption(f"Trend: {trend.direction} ({trend.percentage_change:+}%)")
    with c2:
        st.markdown("**By category**")
        st.bar_chart(category_frame(summary), height=220)

    with st.expander("Weekly analysis", expanded=False):
        analysis = tracker.weekly_analysis(user_id)
        for insight in analysis["insights"]:
            st.markdown(tip_markdown(insight))
        for t in analysis["weeklyTips"]:
            st.write(f"- {t['tip']} (saves ~{t['potentialSaving']} kg, {t['difficulty']})")
        for rec in tracker.recommendations(user_id):
            st.markdown(f"**{rec['title']}**: {rec['description']}")


def render_history(tracker: CarbonTracker, user_id: str):
    st.subheader("History")
    f1, f2 = st.columns([1, 2])
    with f1:
        category = st.selectbox("Filter category", ("all",) + CATEGORIES, key="history_category")
    with f2:
        search = st.text_input("Search by name", key="history_search")
    listing = tracker.list_activities(user_id, category=category, search=search or None, limit=1000)
    df = activities_to_frame(listing["activities"])
    st.dataframe(df, use_container_width=True, height=260)
    st.caption(f"{listing['pagination']['total']} activities · {fmt_emissions(listing['totalCarbonFootprint'])}")
    st.download_button(
        "Download history CSV",
        data=to_csv_bytes(df),
        file_name="activities.csv",
        mime="text/csv",
    )

    activities = listing["activities"]
    if activities:
        with st.expander("Delete an entry"):
            chosen = st.selectbox(
                "Entry",
                activities,
                format_func=entry_label,
                key="history_delete",
            )
            if st.button("Delete", key="history_delete_button"):
                tracker.delete_activity(user_id, chosen.id)
                st.rerun()


def main():
    st.set_page_config(page_title="Carbon Footprint Tracker", page_icon="🌍", layout="wide")
    tracker = get_tracker()

    with st.sidebar:
        user_id = st.text_input("User", value=st.session_state.get("user_id", "me"))
        st.session_state["user_id"] = user_id
        current_name = tracker.goal_book.user(user_id).username
        display_name = st.text_input("Leaderboard name", value=current_name)
        if display_name and display_name != current_name:
            tracker.goal_book.register(user_id, display_name)
        st.markdown("**Notifications**")
        prefs = tracker.preferences(user_id)
        changes = {
            "activity_tips": st.checkbox("Activity tips", value=prefs.activity_tips),
            "goal_milestones": st.checkbox("Goal milestones", value=prefs.goal_milestones),
            "trend_alerts": st.checkbox("Trend alerts", value=prefs.trend_alerts),
            "weekly_insights": st.checkbox("Weekly insights", value=prefs.weekly_insights),
        }
        if changes != {k: getattr(prefs, k) for k in changes}:
            tracker.set_preferences(user_id, **changes)

    st.title("Carbon Footprint Tracker 🌍")
    st.caption("Log activities, follow your goals, and get actionable tips")

    tracker.archive_expired_goals(user_id)

    tab_log, tab_dash, tab_goals, tab_board, tab_factors = st.tabs(
        ["Log", "Dashboard", "Goals", "Leaderboard", "Emission factors"]
    )
    with tab_log:
        render_log_form(tracker, user_id)
        with st.container(border=True):
            st.markdown("**Eco tip**")
            with st.spinner("Generating tip..."):
                st.write(tracker.coach_tip(user_id))
        render_history(tracker, user_id)
    with tab_dash:
        render_dashboard(tracker, user_id)
    with tab_goals:
        render_goals(tracker, user_id)
    with tab_board:
        period = st.slider("Period (days)", 1, 365, 30)
        board = tracker.leaderboard(user_id, period=period)
        st.dataframe(pd.DataFrame(board["leaderboard"]), use_container_width=True)
        me = board["currentUser"]
        if me is not None:
            rank = me["rank"] if me["rank"] is not None else "unranked (log 5+ activities)"
            st.write(f"Your rank: **{rank}** · {fmt_emissions(me['totalEmissions'])}")
    with tab_factors:
        st.caption(f"Factor tables version {ef.EMISSION_FACTORS_VERSION}")
        st.dataframe(factor_reference_frame(), use_container_width=True, height=480)

    for notification in tracker.drain_notifications(user_id):
        message = notification.payload.get("message")
        tip = notification.payload.get("tip")
        if tip is not None:
            message = tip.title
        if message:
            st.toast(message)


if __name__ == "__main__":
    main()
