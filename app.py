"""
Streamlit web app for leave tracking.
Dashboard, leave entry, history, calendar, carry-over, payslip check and
settings views, selected from the sidebar.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd
import plotly.graph_objects as go
import streamlit as st

# Import our modules
import calc
import db
import payroll
import planner
from models import AppSettings, CarryoverLeave, LeaveEntry, PayrollData, PublicHoliday, now_iso

logging.basicConfig(
    level=str(db.get_secret("LOG_LEVEL", "INFO")).upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Page configuration
st.set_page_config(
    page_title="Leave Tracker",
    page_icon="🏖️",
    layout="wide",
    initial_sidebar_state="expanded"
)

VIEWS = ["Dashboard", "Add leave", "History", "Calendar", "Carry-over", "Payroll check", "Settings"]
WEEKDAY_ABBR = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
PRIORITY_ICONS = {'high': '🔴', 'medium': '🟠', 'low': '🟢'}
STATUS_ICONS = {'valid': '✅', 'warning': '⚠️', 'error': '❌'}

CALENDAR_CSS = """
<style>
.day-cell, .weekend-cell {
    border: 1px solid #eee;
    border-radius: 0.5rem;
    padding: 1.5rem 0.35rem 0.35rem;
    min-height: 96px;
    position: relative;
}
.weekend-cell { background: #fafafa; opacity: 0.6; }
.other-month { opacity: 0.35; }
.today { border: 2px solid #3b82f6; }
.day-number {
    position: absolute;
    top: 0.35rem;
    left: 0.5rem;
    font-weight: 600;
    font-size: 14px;
}
.leave-badge {
    font-size: 10px;
    color: white;
    border-radius: 3px;
    padding: 1px 4px;
    margin-top: 2px;
}
.holiday-badge {
    font-size: 9px;
    color: red;
    background-color: rgba(255, 255, 255, 0.9);
    padding: 2px 4px;
    border-radius: 3px;
    font-weight: 500;
}
.weekday-label { font-size: 0.85rem; opacity: .75; margin-bottom: .25rem; text-align: center; font-weight: bold; }
</style>
"""

DARK_CSS = """
<style>
.stApp { background-color: #111827; color: #e5e7eb; }
.day-cell { background: #1f2937; border-color: #374151; }
.weekend-cell { background: #111827; border-color: #374151; }
</style>
"""


@st.cache_resource
def get_storage() -> db.LeaveStorage:
    return db.LeaveStorage()


def initial_week_index(weeks, today=None) -> int:
    if today is None:
        today = date.today()
    for i, wk in enumerate(weeks):
        if today in wk:
            return i
    return 0


def fmt_days(value: float) -> str:
    return f"{value:g}"


def flash(message: str, icon: str = "✅"):
    """Queue a message shown after the next rerun."""
    st.session_state["flash"] = (message, icon)


def show_flash(settings: AppSettings):
    pending = st.session_state.pop("flash", None)
    if not pending:
        return
    message, icon = pending
    if settings.notifications:
        st.toast(message, icon=icon)
    else:
        st.caption(f"{icon} {message}")


def load_data(storage: db.LeaveStorage):
    """Load everything the views need."""
    settings = storage.get_settings_or_default()
    # Custom holidays live in their own store
    settings.public_holidays = storage.get_holidays()
    return storage.get_leaves(), settings, storage.get_carryover_leaves()


def holidays_for(settings: AppSettings, year: int) -> List[PublicHoliday]:
    return calc.get_holidays_for_year(year, settings.country, settings.subdivision, settings.public_holidays)


def quota_list(settings: AppSettings):
    return [q for q in settings.quotas if calc.is_leave_type_for_quotas(q.type)]


def after_change(storage: db.LeaveStorage):
    """Refresh cached balances and take a safety backup after a write."""
    leaves, settings, carryovers = load_data(storage)
    storage.save_balances(calc.calculate_leave_balances(leaves, quota_list(settings), carryovers, date.today().year))
    storage.backup()


def type_label(leave_type: str) -> str:
    return f"{calc.get_leave_type_icon(leave_type)} {calc.get_leave_type_label(leave_type)}"


def leaves_frame(leaves: List[LeaveEntry]) -> pd.DataFrame:
    return pd.DataFrame([
        {
            'Type': type_label(l.type),
            'Start': calc.format_date(l.start_date),
            'End': calc.format_date(l.end_date),
            'Days': l.working_days,
            'Half day': l.half_day_type if l.is_half_day else '',
            'Forecast': '🔮' if l.is_forecast else '',
            'Notes': l.notes,
        }
        for l in leaves
    ])


# ---------------------------------------------------------------------------
# Sidebar
# ---------------------------------------------------------------------------

def render_sidebar(storage: db.LeaveStorage, leaves, settings, carryovers) -> str:
    """Render view selection, year navigation and quick balances."""
    st.sidebar.title("🏖️ Leave Tracker")
    view = st.sidebar.radio("View", VIEWS, key="view")

    st.sidebar.markdown("---")
    year = st.session_state.selected_year
    col1, col2, col3 = st.sidebar.columns([1, 2, 1])
    with col1:
        if st.button("◀", key="prev_year"):
            st.session_state.selected_year -= 1
            st.rerun()
    with col2:
        st.markdown(f"<h3 style='text-align: center'>{year}</h3>", unsafe_allow_html=True)
    with col3:
        if st.button("▶", key="next_year"):
            st.session_state.selected_year += 1
            st.rerun()
    if year != date.today().year and st.sidebar.button("Current year"):
        st.session_state.selected_year = date.today().year
        st.rerun()

    st.sidebar.markdown("---")
    st.sidebar.header("📊 Balances")
    for balance in calc.calculate_leave_balances(leaves, quota_list(settings), carryovers, year):
        total = balance['total']
        st.sidebar.markdown(
            f"**{type_label(balance['type'])}**: {fmt_days(balance['remaining'])} / {fmt_days(total)}"
        )
        st.sidebar.progress(min(balance['taken'] / total, 1.0) if total > 0 else 0.0)

    stats = storage.get_database_stats()
    st.sidebar.markdown("---")
    st.sidebar.caption(
        f"{stats['total_leaves']} leaves stored · last backup: {stats['last_backup'] or 'never'}"
    )
    return view


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------

def render_monthly_summary(leaves, settings, carryovers, year):
    summary = calc.calculate_monthly_leave_summary_separated(leaves, settings.quotas, carryovers, year)
    rows = []
    for m in summary['months']:
        rows.append({
            'Month': m['month_name'],
            'RTT taken': m['rtt']['real']['taken'],
            'RTT cumul': m['rtt']['real']['cumul'],
            'RTT left': m['rtt']['real']['remaining'],
            'RTT forecast': m['rtt']['forecast']['taken'],
            'RTT left (forecast)': m['rtt']['forecast']['remaining'],
            'CP taken': m['cp']['real']['taken'],
            'CP cumul': m['cp']['real']['cumul'],
            'CP left': m['cp']['real']['remaining'],
            'CP forecast': m['cp']['forecast']['taken'],
            'CP left (forecast)': m['cp']['forecast']['remaining'],
        })
    st.subheader("📆 Monthly summary")
    st.dataframe(pd.DataFrame(rows), hide_index=True, use_container_width=True)

    totals = summary['yearly_totals']
    col1, col2 = st.columns(2)
    col1.markdown(
        f"**RTT**: {fmt_days(totals['rtt']['real'])} taken + {fmt_days(totals['rtt']['forecast'])} forecast"
    )
    col2.markdown(
        f"**CP + CET**: {fmt_days(totals['cp']['real'])} taken + {fmt_days(totals['cp']['forecast'])} forecast"
    )

    months = summary['months'][1:]
    names = [m['month_name'][:3] for m in months]
    fig = go.Figure()
    for key, label, color in (('rtt', 'RTT', calc.get_leave_type_color('rtt')), ('cp', 'CP', calc.get_leave_type_color('cp'))):
        fig.add_trace(go.Scatter(
            x=names, y=[m[key]['real']['cumul'] for m in months],
            name=f"{label} real", mode='lines+markers', line=dict(color=color),
        ))
        fig.add_trace(go.Scatter(
            x=names, y=[m[key]['real']['cumul'] + m[key]['forecast']['cumul'] for m in months],
            name=f"{label} with forecast", mode='lines', line=dict(color=color, dash='dash'),
        ))
    fig.update_layout(title="Cumulative days taken", height=350, margin=dict(l=10, r=10, t=40, b=10))
    st.plotly_chart(fig, use_container_width=True)


def render_analytics(leaves, settings, carryovers, year):
    analytics = planner.leave_analytics(leaves, settings, carryovers, year)
    st.subheader("📈 Analytics")

    for alert in analytics['alerts']:
        if alert['type'] == 'urgent':
            st.error(alert['message'])
        elif alert['type'] == 'warning':
            st.warning(alert['message'])
        else:
            st.success(alert['message'])

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("RTT usage", f"{analytics['rtt_usage_rate']:.0f}%",
                help=f"{fmt_days(analytics['rtt_taken'])} / {fmt_days(analytics['rtt_total'])}")
    col2.metric("CP vs target", f"{analytics['cp_usage_rate']:.0f}%",
                help=f"{fmt_days(analytics['cp_taken'])} / {fmt_days(settings.cp_target_per_year)}")
    col3.metric("Overall", f"{analytics['total_usage_rate']:.0f}%")
    col4.metric("Months to RTT deadline", analytics['rtt_deadline_months'])

    st.caption(
        f"Projection: {analytics['projected_rtt_usage']:.1f} RTT and "
        f"{analytics['projected_cp_usage']:.1f} CP by the end of the year"
    )

    stats = analytics['monthly_stats']
    fig = go.Figure()
    for leave_type in ('rtt', 'cp', 'cet'):
        fig.add_trace(go.Bar(
            x=[calc.get_month_name(s['month'])[:3] for s in stats],
            y=[s[leave_type] for s in stats],
            name=calc.get_leave_type_label(leave_type),
            marker_color=calc.get_leave_type_color(leave_type),
        ))
    fig.update_layout(barmode='stack', title="Days per month", height=300, margin=dict(l=10, r=10, t=40, b=10))
    st.plotly_chart(fig, use_container_width=True)

    cols = st.columns(4)
    for col, quarter in zip(cols, analytics['quarters']):
        col.metric(quarter['name'], fmt_days(quarter['total']))


def render_planning(leaves, settings, carryovers, year):
    plan = planner.planning_recommendations(leaves, settings, carryovers, holidays_for(settings, year), year)
    st.subheader("🗓️ Planning")
    st.markdown(
        f"RTT urgency: {PRIORITY_ICONS[plan['rtt_urgency']]} **{plan['rtt_urgency']}** · "
        f"{fmt_days(plan['rtt_remaining'])} RTT and {fmt_days(plan['cp_remaining'])} CP left"
    )
    if not plan['recommendations']:
        st.info("No recommendation for a past year.")
        return
    st.dataframe(pd.DataFrame([
        {
            'Month': r['month_name'],
            'RTT': r['rtt_recommended'],
            'CP': r['cp_recommended'],
            'Working days': r['working_days'],
            'Priority': f"{PRIORITY_ICONS[r['priority']]} {r['priority']}",
            'Why': r['reason'],
        }
        for r in plan['recommendations']
    ]), hide_index=True, use_container_width=True)


def render_smart_planner(leaves, settings, carryovers, year):
    st.subheader("🧠 Smart planner")
    key = f"planned_periods_{year}"
    if key not in st.session_state:
        st.session_state[key] = planner.default_planned_periods(year)

    with st.form(f"add_period_{year}"):
        col1, col2, col3 = st.columns(3)
        start = col1.date_input("From", value=date(year, 1, 1), format="DD/MM/YYYY")
        end = col2.date_input("To", value=date(year, 1, 1), format="DD/MM/YYYY")
        reason = col3.text_input("Label", value="Planned leave")
        if st.form_submit_button("Add period"):
            if start > end:
                st.error("Start date must be on or before end date")
            else:
                st.session_state[key].append(planner.PlannedPeriod(start, end, reason))
                st.rerun()

    holiday_list = holidays_for(settings, year) + holidays_for(settings, year + 1)
    periods = planner.evaluate_periods(st.session_state[key], holiday_list)
    for i, period in enumerate(periods):
        col1, col2 = st.columns([5, 1])
        level = planner.efficiency_level(period.efficiency)
        col1.markdown(
            f"**{period.reason}** {calc.format_date(period.start_date)} → {calc.format_date(period.end_date)} · "
            f"{fmt_days(period.working_days)} days · efficiency {period.efficiency}% ({level})"
            + (f" · {', '.join(period.holidays_included)}" if period.holidays_included else "")
        )
        if col2.button("Remove", key=f"rm_period_{year}_{i}"):
            st.session_state[key].pop(i)
            st.rerun()

    for rec in planner.smart_recommendations(periods, leaves, settings, carryovers, holiday_list, year):
        st.markdown(f"- {calc.get_leave_type_icon(rec['type'])} **{rec['period']}**: {rec['recommendation']}")


def render_dashboard(storage: db.LeaveStorage, leaves, settings, carryovers):
    year = st.session_state.selected_year
    st.title(f"Dashboard {year}")

    balances = calc.calculate_leave_balances(leaves, quota_list(settings), carryovers, year)
    cols = st.columns(len(balances) + 1)
    for col, balance in zip(cols, balances):
        col.metric(
            type_label(balance['type']),
            fmt_days(balance['remaining']),
            delta=f"-{fmt_days(balance['taken'])} taken",
            delta_color="off",
            help=f"Total {fmt_days(balance['total'])} (carry-over included)",
        )
    stats = calc.calculate_leave_stats(leaves, year)
    cols[-1].metric("Days taken", fmt_days(stats['total_days']))

    render_monthly_summary(leaves, settings, carryovers, year)

    tab_analytics, tab_planning, tab_smart = st.tabs(["Analytics", "Planning", "Smart planner"])
    with tab_analytics:
        render_analytics(leaves, settings, carryovers, year)
    with tab_planning:
        render_planning(leaves, settings, carryovers, year)
    with tab_smart:
        render_smart_planner(leaves, settings, carryovers, year)

    st.subheader("🕒 Recent leaves")
    recent = sorted(leaves, key=lambda l: l.created_at, reverse=True)[:5]
    if recent:
        st.dataframe(leaves_frame(recent), hide_index=True, use_container_width=True)
    else:
        st.info("No leave recorded yet.")

    if st.button("🔧 Fix working days", help="Recompute working days of every leave from the current holidays"):
        changed = calc.recompute_working_days(leaves, lambda s, e: calc.holidays_for_range(s, e, settings))
        for leave in changed:
            storage.update_leave(leave)
        if changed:
            after_change(storage)
        flash(f"{len(changed)} leave(s) corrected")
        st.rerun()


# ---------------------------------------------------------------------------
# Leave entry
# ---------------------------------------------------------------------------

def leave_fields(prefix: str, leave: Optional[LeaveEntry] = None) -> Dict[str, Any]:
    """Render the leave widgets and return their values."""
    types = list(calc.LEAVE_TYPES)
    col1, col2, col3 = st.columns(3)
    leave_type = col1.selectbox(
        "Type", types, index=types.index(leave.type) if leave else 0,
        format_func=type_label, key=f"{prefix}_type",
    )
    start = col2.date_input("Start", value=leave.start_date if leave else date.today(),
                            format="DD/MM/YYYY", key=f"{prefix}_start")
    end = col3.date_input("End", value=leave.end_date if leave else date.today(),
                          format="DD/MM/YYYY", key=f"{prefix}_end")

    col1, col2, col3 = st.columns(3)
    is_half_day = col1.checkbox("Half day", value=leave.is_half_day if leave else False, key=f"{prefix}_half")
    half_day_type = col2.radio(
        "Half day", ['morning', 'afternoon'], horizontal=True,
        index=1 if leave and leave.half_day_type == 'afternoon' else 0,
        disabled=not is_half_day, key=f"{prefix}_half_type", label_visibility="collapsed",
    )
    is_forecast = col3.checkbox("Forecast", value=leave.is_forecast if leave else False, key=f"{prefix}_forecast")
    notes = st.text_input("Notes", value=leave.notes if leave else "", key=f"{prefix}_notes")

    return {
        'type': leave_type,
        'start_date': start,
        'end_date': end,
        'is_half_day': is_half_day,
        'half_day_type': half_day_type,
        'is_forecast': is_forecast,
        'notes': notes,
    }


def check_leave(values: Dict[str, Any], leaves, settings, exclude_id=None):
    """Return (working_days, error)."""
    valid, error = calc.validate_leave_period(values['start_date'], values['end_date'], leaves, exclude_id)
    if not valid:
        return 0, error
    working_days = calc.calculate_working_days(
        values['start_date'], values['end_date'],
        calc.holidays_for_range(values['start_date'], values['end_date'], settings),
        values['is_half_day'],
    )
    if working_days <= 0:
        return 0, "The period contains no working day"
    if values['type'] == 'rtt' and not values['is_forecast']:
        ok, error = calc.check_rtt_request(values['start_date'], values['end_date'], working_days)
        if not ok:
            return working_days, error
    return working_days, None


def render_add_leave(storage: db.LeaveStorage, leaves, settings):
    st.title("Add leave")
    values = leave_fields("new")
    working_days, error = check_leave(values, leaves, settings)
    if error:
        st.warning(error)
    else:
        st.info(f"{fmt_days(working_days)} working day(s)")

    if st.button("Add leave", type="primary", disabled=bool(error)):
        leave = LeaveEntry(working_days=working_days, **values)
        storage.add_leave(leave)
        after_change(storage)
        flash(f"{calc.get_leave_type_label(leave.type)} added: {fmt_days(working_days)} day(s)")
        st.rerun()


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def render_edit_leave(storage: db.LeaveStorage, leave: LeaveEntry, leaves, settings):
    values = leave_fields(f"edit_{leave.id}", leave)
    working_days, error = check_leave(values, leaves, settings, exclude_id=leave.id)
    if error:
        st.warning(error)
    col1, col2 = st.columns(2)
    if col1.button("Save", key=f"save_{leave.id}", disabled=bool(error)):
        for name, value in values.items():
            setattr(leave, name, value)
        leave.working_days = working_days
        leave.updated_at = now_iso()
        storage.update_leave(leave)
        after_change(storage)
        st.session_state.pop("editing_id", None)
        flash("Leave updated")
        st.rerun()
    if col2.button("Cancel", key=f"cancel_{leave.id}"):
        st.session_state.pop("editing_id", None)
        st.rerun()


def render_history(storage: db.LeaveStorage, leaves, settings):
    st.title("History")

    years = sorted({l.start_date.year for l in leaves} | {st.session_state.selected_year}, reverse=True)
    col1, col2, col3, col4 = st.columns(4)
    year = col1.selectbox("Year", ["All"] + years, index=1 + years.index(st.session_state.selected_year))
    leave_type = col2.selectbox("Type", ["All"] + list(calc.LEAVE_TYPES),
                                format_func=lambda t: t if t == "All" else type_label(t))
    mode = col3.selectbox("Show", ['all', 'real', 'forecast'])
    search = col4.text_input("Search")

    filtered = calc.filter_leaves(
        leaves,
        year=None if year == "All" else year,
        leave_type=None if leave_type == "All" else leave_type,
        mode=mode,
        search=search,
    )
    summary = calc.summarize_leaves(filtered)
    cols = st.columns(4)
    cols[0].metric("Leaves", summary['count'])
    cols[1].metric("Days", fmt_days(summary['total_days']))
    cols[2].metric("Average", fmt_days(summary['average_days']))
    cols[3].metric("Types", summary['distinct_types'])

    if not filtered:
        st.info("No leave matches these filters.")
        return

    for leave in filtered:
        title = (
            f"{type_label(leave.type)} · {calc.format_date(leave.start_date)} → "
            f"{calc.format_date(leave.end_date)} · {fmt_days(leave.working_days)} day(s)"
            + (" · 🔮" if leave.is_forecast else "")
        )
        with st.expander(title, expanded=st.session_state.get("editing_id") == leave.id):
            if st.session_state.get("editing_id") == leave.id:
                render_edit_leave(storage, leave, leaves, settings)
                continue
            if leave.notes:
                st.caption(leave.notes)
            col1, col2 = st.columns(2)
            if col1.button("Edit", key=f"edit_btn_{leave.id}"):
                st.session_state["editing_id"] = leave.id
                st.rerun()
            if st.session_state.get("confirm_delete") == leave.id:
                if col2.button("Confirm delete", key=f"confirm_{leave.id}", type="primary"):
                    storage.delete_leave(leave.id)
                    after_change(storage)
                    st.session_state.pop("confirm_delete", None)
                    flash("Leave deleted", icon="🗑️")
                    st.rerun()
            elif col2.button("Delete", key=f"delete_{leave.id}"):
                st.session_state["confirm_delete"] = leave.id
                st.rerun()


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

def render_day_cell(day: Dict[str, Any]):
    """Render a single calendar day with its leaves and holiday."""
    classes = ["weekend-cell" if day['is_weekend'] else "day-cell"]
    if not day['is_current_month']:
        classes.append("other-month")
    if day['is_today']:
        classes.append("today")

    badges = "".join(
        f'<div class="leave-badge" style="background:{calc.get_leave_type_color(l.type)}">'
        f'{calc.get_leave_type_icon(l.type)} {l.type.upper()}{" ½" if l.is_half_day else ""}'
        f'{" 🔮" if l.is_forecast else ""}</div>'
        for l in day['leaves']
    )
    holiday_badge = ""
    if day['is_holiday']:
        holiday_badge = f'<div class="holiday-badge">🎉 {day["holiday_name"][:14]}</div>'

    st.markdown(f"""
    <div class="{' '.join(classes)}">
        <div class="day-number">{day['date'].day}</div>
        {holiday_badge}
        {badges}
    </div>
    """, unsafe_allow_html=True)


def render_week(week_days: List[Dict[str, Any]]):
    cols = st.columns(7, gap="small")
    for i, day in enumerate(week_days):
        with cols[i]:
            render_day_cell(day)


def shift_calendar_month(year: int, month: int, months: int):
    target = calc.add_months(date(year, month, 1), months)
    st.session_state.cal_year = target.year
    st.session_state.cal_month = target.month


def render_calendar(leaves, settings):
    st.markdown(CALENDAR_CSS, unsafe_allow_html=True)
    st.session_state.setdefault("cal_year", st.session_state.selected_year)
    st.session_state.setdefault("cal_month", date.today().month)
    year = st.session_state.cal_year
    month = st.session_state.cal_month

    col1, col2, col3 = st.columns([1, 3, 1])
    with col1:
        if st.button("◀", key="prev_month"):
            shift_calendar_month(year, month, -1)
            st.rerun()
    with col2:
        st.markdown(f"<h2 style='text-align: center'>{calc.get_month_name(month)} {year}</h2>",
                    unsafe_allow_html=True)
    with col3:
        if st.button("▶", key="next_month"):
            shift_calendar_month(year, month, 1)
            st.rerun()

    holiday_list = holidays_for(settings, year - 1) + holidays_for(settings, year) + holidays_for(settings, year + 1)
    days = calc.generate_calendar_days(year, month, leaves, holiday_list)
    weeks = [days[i:i + 7] for i in range(0, len(days), 7)]

    ym_key = f"{year}-{month:02d}"
    if st.session_state.get("ym_key") != ym_key:
        st.session_state["ym_key"] = ym_key
        st.session_state["week_idx"] = initial_week_index([[d['date'] for d in w] for w in weeks])

    st.checkbox("📱 Week view (mobile)", key="mobile_week_view",
                help="Shows one week at a time with correct weekday alignment.")

    cols = st.columns(7)
    for i, weekday in enumerate(WEEKDAY_ABBR):
        cols[i].markdown(f'<div class="weekday-label">{weekday}</div>', unsafe_allow_html=True)

    if st.session_state.get("mobile_week_view", False):
        total_weeks = len(weeks)
        wk = max(0, min(int(st.session_state.get("week_idx", 0)), total_weeks - 1))
        render_week(weeks[wk])
        nav_l, nav_c, nav_r = st.columns([1, 3, 1])
        with nav_l:
            if st.button("◀ Prev week", use_container_width=True, key=f"wk-prev-{ym_key}-{wk}"):
                st.session_state["week_idx"] = max(0, wk - 1)
                st.rerun()
        with nav_c:
            st.markdown(f"#### Week {wk + 1} of {total_weeks}")
        with nav_r:
            if st.button("Next week ▶", use_container_width=True, key=f"wk-next-{ym_key}-{wk}"):
                st.session_state["week_idx"] = min(total_weeks - 1, wk + 1)
                st.rerun()
    else:
        for week in weeks:
            render_week(week)

    month_holidays = [h for h in holiday_list if h.date.year == year and h.date.month == month]
    if month_holidays:
        st.markdown("**Public holidays:** " + ", ".join(
            f"{calc.format_date(h.date)} {h.name}" for h in month_holidays
        ))


# ---------------------------------------------------------------------------
# Carry-over
# ---------------------------------------------------------------------------

def render_carryover(storage: db.LeaveStorage, carryovers: List[CarryoverLeave]):
    st.title("Carry-over")
    st.caption("Days earned in a year and not used are brought into the following year.")

    with st.form("add_carryover"):
        col1, col2, col3 = st.columns(3)
        leave_type = col1.selectbox("Type", calc.LEAVE_TYPES_FOR_QUOTAS, format_func=type_label)
        year = col2.number_input("Earned in", min_value=calc.MIN_FRENCH_DATE_YEAR,
                                 max_value=date.today().year, value=date.today().year - 1, step=1)
        days = col3.number_input("Days", min_value=0.0, value=0.0, step=0.5)
        description = st.text_input("Description")
        if st.form_submit_button("Add carry-over"):
            valid, error = calc.validate_carryover(days, int(year))
            if not valid:
                st.error(error)
            else:
                storage.add_carryover_leave(
                    CarryoverLeave(type=leave_type, year=int(year), days=days, description=description)
                )
                after_change(storage)
                flash("Carry-over added")
                st.rerun()

    summary = calc.generate_carryover_summary(carryovers)
    cols = st.columns(len(calc.LEAVE_TYPES_FOR_QUOTAS))
    for col, leave_type in zip(cols, calc.LEAVE_TYPES_FOR_QUOTAS):
        col.metric(type_label(leave_type), fmt_days(summary['total_by_type'].get(leave_type, 0)))

    for year in sorted(summary['by_year'], reverse=True):
        st.subheader(f"Earned in {year} (usable in {year + 1})")
        for carryover in summary['by_year'][year]:
            col1, col2, col3 = st.columns([3, 2, 1])
            col1.markdown(f"{type_label(carryover.type)} {carryover.description}")
            days = col2.number_input("Days", min_value=0.0, value=float(carryover.days), step=0.5,
                                     key=f"co_days_{carryover.id}", label_visibility="collapsed")
            if days != carryover.days:
                carryover.days = days
                carryover.updated_at = now_iso()
                storage.update_carryover_leave(carryover)
                after_change(storage)
                st.rerun()
            if col3.button("Delete", key=f"co_del_{carryover.id}"):
                storage.delete_carryover_leave(carryover.id)
                after_change(storage)
                flash("Carry-over deleted", icon="🗑️")
                st.rerun()


# ---------------------------------------------------------------------------
# Payroll
# ---------------------------------------------------------------------------

def render_payroll(storage: db.LeaveStorage, leaves):
    st.title("Payroll check")
    st.caption("Compare the leave figures of a payslip with what the tracker recorded.")

    col1, col2 = st.columns(2)
    month = col1.selectbox("Payslip month", list(range(1, 13)), index=date.today().month - 1,
                           format_func=calc.get_month_name)
    year = col2.number_input("Year", min_value=calc.MIN_FRENCH_DATE_YEAR, max_value=calc.MAX_FRENCH_DATE_YEAR,
                             value=st.session_state.selected_year, step=1)
    year = int(year)

    existing = next((p for p in storage.get_payroll_data(year) if p.month == month), None)
    entry = existing or PayrollData(month=month, year=year)

    with st.form(f"payroll_{year}_{month}"):
        col1, col2, col3 = st.columns(3)
        cp_upcoming = col1.number_input("CP upcoming", value=float(entry.cp_upcoming), step=0.5)
        cp_elapsed = col2.number_input("CP elapsed", value=float(entry.cp_elapsed), step=0.5)
        cp_remainder = col3.number_input("CP remainder", value=float(entry.cp_remainder), step=0.5)
        col1, col2 = st.columns(2)
        rtt_taken = col1.number_input("RTT taken (previous month)", value=float(entry.rtt_taken_in_month), step=0.5)
        cet_balance = col2.number_input("CET", value=float(entry.cet_balance), step=0.5)
        cp_dates = st.text_area("CP dates of the previous month (one per line)",
                                value="\n".join(calc.iso_date_to_french(d) for d in entry.cp_taken_previous_month))
        holiday_dates = st.text_area("Public holidays on the payslip (one per line)",
                                     value="\n".join(calc.iso_date_to_french(d) for d in entry.public_holidays))
        submitted = st.form_submit_button("Check payslip")

    if submitted:
        try:
            entry.cp_taken_previous_month = payroll.parse_date_lines(cp_dates)
            entry.public_holidays = payroll.parse_date_lines(holiday_dates)
        except ValueError as e:
            st.error(f"Invalid date: {e}")
            return
        entry.cp_upcoming = cp_upcoming
        entry.cp_elapsed = cp_elapsed
        entry.cp_remainder = cp_remainder
        entry.rtt_taken_in_month = rtt_taken
        entry.cet_balance = cet_balance
        entry.updated_at = now_iso()
        storage.save_payroll_entry(entry)
        existing = entry

    if existing:
        result = payroll.validate_payroll(existing, leaves)
        st.subheader(f"{STATUS_ICONS[result['status']]} Score {result['score']}%")
        st.dataframe(pd.DataFrame([
            {
                'Figure': label,
                'Payslip': result[key]['entered'],
                'Tracker': result[key]['computed'],
                'Difference': result[key]['difference'],
                'Status': f"{STATUS_ICONS[result[key]['status']]} {result[key]['status']}",
            }
            for key, label in (
                ('rtt_taken_in_month', 'RTT taken'),
                ('cp_taken_previous_month', 'CP dates (previous month)'),
                ('cet_balance', 'CET'),
            )
        ]), hide_index=True, use_container_width=True)
        if result['rtt_taken_in_month']['rtt_leaves']:
            st.caption("RTT recorded: " + ", ".join(
                f"{calc.format_date(l['start_date'])} ({fmt_days(l['working_days'])})"
                for l in result['rtt_taken_in_month']['rtt_leaves']
            ))
        if st.button("Delete this payslip"):
            storage.delete_payroll_entry(existing.id)
            flash("Payslip deleted", icon="🗑️")
            st.rerun()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

def render_custom_holidays(storage: db.LeaveStorage, settings: AppSettings):
    st.subheader("🎉 Custom holidays")
    custom = storage.get_holidays()
    with st.form("add_holiday"):
        col1, col2 = st.columns(2)
        day = col1.date_input("Date", value=date.today(), format="DD/MM/YYYY")
        name = col2.text_input("Name")
        if st.form_submit_button("Add holiday"):
            if not name.strip():
                st.error("A name is required")
            else:
                custom = [h for h in custom if h.date != day]
                custom.append(PublicHoliday(date=day, name=name.strip(), country=settings.country, id=day.isoformat()))
                storage.save_holidays(sorted(custom, key=lambda h: h.date))
                after_change(storage)
                flash("Holiday added")
                st.rerun()

    for holiday in custom:
        col1, col2 = st.columns([4, 1])
        col1.markdown(f"{calc.format_date(holiday.date)} · {holiday.name}")
        if col2.button("Delete", key=f"hol_del_{holiday.date.isoformat()}"):
            storage.save_holidays([h for h in custom if h.date != holiday.date])
            after_change(storage)
            st.rerun()


def render_data_management(storage: db.LeaveStorage):
    st.subheader("📁 Data")
    stats = storage.get_database_stats()
    st.caption(f"{stats['total_leaves']} leaves · {stats['total_size'] / 1024:.1f} KB")

    st.download_button(
        label="Export JSON",
        data=storage.export_data(),
        file_name=f"leave-tracker-backup-{date.today().isoformat()}.json",
        mime="application/json",
    )

    uploaded_file = st.file_uploader("Import JSON", type=['json'])
    if uploaded_file is not None:
        st.warning("Importing replaces all current data.")
        if st.button("Confirm import"):
            try:
                counts = storage.import_data(uploaded_file.read().decode('utf-8'))
            except (ValueError, UnicodeDecodeError) as e:
                st.error(f"Error importing data: {e}")
            else:
                storage.backup()
                flash(f"Imported {counts['leaves']} leaves and {counts['carryovers']} carry-overs")
                st.rerun()

    st.subheader("🛟 Backups")
    backups = storage.list_backups()
    if backups:
        st.dataframe(pd.DataFrame(backups), hide_index=True, use_container_width=True)
    col1, col2 = st.columns(2)
    if col1.button("Backup now"):
        storage.backup()
        flash("Backup saved")
        st.rerun()
    if col2.button("Restore latest backup", disabled=not backups):
        if storage.restore_latest_backup():
            flash("Latest backup restored")
        else:
            flash("No backup available", icon="⚠️")
        st.rerun()

    st.subheader("⚠️ Danger zone")
    confirm = st.checkbox("I understand that all leaves, carry-overs and settings will be erased")
    if st.button("Clear all data", disabled=not confirm):
        storage.backup()
        storage.clear_all_data()
        flash("All data cleared", icon="🗑️")
        st.rerun()


def render_settings(storage: db.LeaveStorage, settings: AppSettings):
    st.title("Settings")

    with st.form("settings"):
        st.subheader("Yearly quotas")
        cols = st.columns(len(calc.LEAVE_TYPES_FOR_QUOTAS))
        quotas = {}
        for col, leave_type in zip(cols, calc.LEAVE_TYPES_FOR_QUOTAS):
            quotas[leave_type] = col.number_input(
                type_label(leave_type), min_value=0.0,
                value=float(settings.quota_for(leave_type, calc.FALLBACK_QUOTAS[leave_type])), step=0.5,
            )

        st.subheader("Holidays and calendar")
        col1, col2, col3 = st.columns(3)
        country = col1.text_input("Country (ISO code)", value=settings.country)
        regions = [''] + calc.subdivisions_for(settings.country)
        subdivision = col2.selectbox("Region", regions,
                                     index=regions.index(settings.subdivision) if settings.subdivision in regions else 0,
                                     format_func=lambda code: code or "None",
                                     help="Regions with their own holidays, e.g. 57 (Moselle) or 6AE (Alsace)")
        days_of_week = ['monday', 'sunday']
        first_day = col3.selectbox("First day of week", days_of_week,
                                   index=days_of_week.index(settings.first_day_of_week)
                                   if settings.first_day_of_week in days_of_week else 0)

        st.subheader("Planning")
        col1, col2 = st.columns(2)
        cp_target = col1.number_input("CP target per year", min_value=0.0,
                                      value=float(settings.cp_target_per_year), step=0.5)
        deadline = col2.selectbox("RTT must be used by the end of (next year)", list(range(1, 13)),
                                  index=settings.rtt_deadline_month - 1, format_func=calc.get_month_name)

        st.subheader("Display")
        col1, col2 = st.columns(2)
        dark_mode = col1.toggle("Dark mode", value=settings.dark_mode)
        notifications = col2.toggle("Notifications", value=settings.notifications)

        if st.form_submit_button("Save settings", type="primary"):
            country = country.strip().upper() or "FR"
            # The region list belongs to the saved country
            if subdivision not in calc.subdivisions_for(country):
                subdivision = None
            # Reject unknown country codes before they reach the holiday lookups
            if not calc.get_holidays_for_year(date.today().year, country, subdivision):
                st.error(f"No public holiday calendar for {country}")
            else:
                for leave_type, value in quotas.items():
                    settings.set_quota(leave_type, value)
                settings.country = country
                settings.subdivision = subdivision
                settings.first_day_of_week = first_day
                settings.cp_target_per_year = cp_target
                settings.rtt_deadline_month = deadline
                settings.dark_mode = dark_mode
                settings.notifications = notifications
                storage.save_settings(settings)
                after_change(storage)
                flash("Settings saved")
                st.rerun()

    render_custom_holidays(storage, settings)
    render_data_management(storage)


def main():
    """Main application function."""
    if 'selected_year' not in st.session_state:
        st.session_state.selected_year = date.today().year

    try:
        storage = get_storage()
        leaves, settings, carryovers = load_data(storage)
    except db.StorageError as e:
        logger.exception("Cannot load leave data")
        st.error(f"Failed to load application data: {e}")
        st.stop()

    if settings.dark_mode:
        st.markdown(DARK_CSS, unsafe_allow_html=True)
    show_flash(settings)

    view = render_sidebar(storage, leaves, settings, carryovers)

    try:
        if view == "Dashboard":
            render_dashboard(storage, leaves, settings, carryovers)
        elif view == "Add leave":
            render_add_leave(storage, leaves, settings)
        elif view == "History":
            render_history(storage, leaves, settings)
        elif view == "Calendar":
            render_calendar(leaves, settings)
        elif view == "Carry-over":
            render_carryover(storage, carryovers)
        elif view == "Payroll check":
            render_payroll(storage, leaves)
        else:
            render_settings(storage, settings)
    except db.StorageError as e:
        logger.error("Storage error in %s view: %s", view, e)
        st.toast("Storage error", icon="❌")
        st.error(f"Storage error: {e}")


if __name__ == "__main__":
    main()
