"""
Analytics and planning heuristics built on a single year-usage engine.
The recommendations are fixed rules of thumb, not an optimiser.
"""

import calendar
import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

import calc
from models import AppSettings, CarryoverLeave, LeaveEntry, PublicHoliday

logger = logging.getLogger(__name__)


QUARTERS = [
    ('Q1', (1, 2, 3)),
    ('Q2', (4, 5, 6)),
    ('Q3', (7, 8, 9)),
    ('Q4', (10, 11, 12)),
]

SUMMER_MONTHS = (7, 8, 9)
SUMMER_MIN_CP = 3
YEAR_END_RTT_SHARE = 0.3


def year_usage(
    leaves: List[LeaveEntry],
    settings: AppSettings,
    carryovers: List[CarryoverLeave],
    year: int,
) -> Dict[str, float]:
    """
    Taken, available and remaining days for RTT and the CP pool (CP + CET).

    Every view derives its numbers from here so they cannot drift apart.
    """
    rtt_taken = calc.days_taken(leaves, year, 'rtt')
    cp_taken = calc.days_taken(leaves, year, 'cp')
    cet_taken = calc.days_taken(leaves, year, 'cet')

    rtt_total = settings.quota_for('rtt') + calc.carryover_days(carryovers, 'rtt', year)
    cp_total = (
        settings.quota_for('cp') + settings.quota_for('cet')
        + calc.carryover_days(carryovers, 'cp', year)
        + calc.carryover_days(carryovers, 'cet', year)
    )

    return {
        'rtt_taken': rtt_taken,
        'cp_taken': cp_taken,
        'cet_taken': cet_taken,
        'rtt_total': rtt_total,
        'cp_total': cp_total,
        'rtt_remaining': rtt_total - rtt_taken,
        'cp_remaining': cp_total - cp_taken - cet_taken,
    }


def rtt_deadline_months(today: date, deadline_month: int = 2) -> int:
    """Months left until the end of ``deadline_month`` of next year, current month included."""
    return 12 - today.month + 1 + deadline_month


def _rate(part: float, whole: float) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


def monthly_stats(leaves: List[LeaveEntry], year: int) -> List[Dict[str, Any]]:
    stats = []
    for month in range(1, 13):
        row = {'month': month}
        for leave_type in ('rtt', 'cp', 'cet'):
            row[leave_type] = calc.days_taken(leaves, year, leave_type, month)
        row['total'] = row['rtt'] + row['cp'] + row['cet']
        stats.append(row)
    return stats


def leave_analytics(
    leaves: List[LeaveEntry],
    settings: AppSettings,
    carryovers: List[CarryoverLeave],
    year: int,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Usage rates, monthly and quarterly breakdown, projections and alerts.

    Returns:
        Dictionary with the usage figures, 'monthly_stats', 'quarters',
        'projected_rtt_usage', 'projected_cp_usage' and 'alerts'
    """
    today = today or date.today()
    usage = year_usage(leaves, settings, carryovers, year)
    cp_target = settings.cp_target_per_year

    rtt_usage_rate = _rate(usage['rtt_taken'], usage['rtt_total'])
    cp_usage_rate = _rate(usage['cp_taken'], cp_target)
    total_usage_rate = _rate(usage['rtt_taken'] + usage['cp_taken'], usage['rtt_total'] + cp_target)

    stats = monthly_stats(leaves, year)
    quarters = [
        {'name': name, 'months': list(months), 'total': sum(s['total'] for s in stats if s['month'] in months)}
        for name, months in QUARTERS
    ]

    months_remaining = 12 - today.month + 1
    deadline_months = rtt_deadline_months(today, settings.rtt_deadline_month)
    projected_rtt = usage['rtt_taken'] + (usage['rtt_remaining'] / deadline_months) * months_remaining
    projected_cp = usage['cp_taken'] + max(0, min(usage['cp_remaining'], cp_target - usage['cp_taken']))

    alerts = []
    if deadline_months <= 3 and usage['rtt_remaining'] > 0:
        alerts.append({
            'type': 'urgent',
            'message': (
                f"{usage['rtt_remaining']:g} RTT to use before the end of "
                f"{calc.get_month_name(settings.rtt_deadline_month)} {year + 1}"
            ),
        })
    if cp_usage_rate < 50 and today.month >= 7:
        alerts.append({
            'type': 'warning',
            'message': f"CP target: {usage['cp_taken']:g}/{cp_target:g} days ({cp_usage_rate:.1f}%)",
        })
    if total_usage_rate > 80:
        alerts.append({
            'type': 'success',
            'message': f"Excellent usage rate: {total_usage_rate:.1f}%",
        })

    return dict(
        usage,
        rtt_usage_rate=rtt_usage_rate,
        cp_usage_rate=cp_usage_rate,
        total_usage_rate=total_usage_rate,
        monthly_stats=stats,
        quarters=quarters,
        rtt_deadline_months=deadline_months,
        projected_rtt_usage=projected_rtt,
        projected_cp_usage=projected_cp,
        alerts=alerts,
    )


def _working_days_in_month(year: int, month: int, holiday_list: List[PublicHoliday]) -> float:
    last_day = calendar.monthrange(year, month)[1]
    return calc.calculate_working_days(date(year, month, 1), date(year, month, last_day), holiday_list)


def planning_recommendations(
    leaves: List[LeaveEntry],
    settings: AppSettings,
    carryovers: List[CarryoverLeave],
    holiday_list: List[PublicHoliday],
    year: int,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Recommend how many RTT and CP days to take in each remaining month.

    Past years get no recommendation; future years are planned from January.
    """
    today = today or date.today()
    usage = year_usage(leaves, settings, carryovers, year)
    rtt_remaining = max(0, usage['rtt_remaining'])
    cp_remaining = max(0, usage['cp_remaining'])
    cp_target = settings.cp_target_per_year
    deadline_month = settings.rtt_deadline_month
    deadline_months = rtt_deadline_months(today, deadline_month)

    if year < today.year:
        first_month = 13
    elif year > today.year:
        first_month = 1
    else:
        first_month = today.month
    months_remaining = 12 - first_month + 1

    planned = [
        l for l in leaves
        if l.start_date.year == year and l.type in ('rtt', 'cp') and l.start_date >= today
    ]

    recommendations = []
    for month in range(first_month, 13):
        offset = month - first_month
        month_holidays = [h for h in holiday_list if h.date.year == year and h.date.month == month]
        working_days = _working_days_in_month(year, month, holiday_list)

        planned_rtt = sum(l.working_days for l in planned if l.type == 'rtt' and l.start_date.month == month)
        planned_cp = sum(l.working_days for l in planned if l.type == 'cp' and l.start_date.month == month)

        rtt_rec = 0
        cp_rec = 0
        reasons: List[str] = []
        priority = 'low'

        rtt_needed = max(0, rtt_remaining - planned_rtt)
        if rtt_needed > 0:
            rtt_rec = min(math.ceil(rtt_needed / max(1, deadline_months - offset)), working_days)
            if month <= deadline_month:
                reasons.append(f"RTT deadline end of {calc.get_month_name(deadline_month)}")
                priority = 'high'
            else:
                reasons.append("Recommended RTT usage")
                priority = 'medium'

        cp_needed = max(0, min(cp_remaining, cp_target - usage['cp_taken']) - planned_cp)
        if cp_needed > 0:
            cp_rec = min(math.ceil(cp_needed / max(1, months_remaining - offset)), working_days)
            reasons.append(f"Target {cp_target:g} CP/year")
            if priority == 'low':
                priority = 'medium'

        if month in (12, 1):
            rtt_rec = max(rtt_rec, math.ceil(rtt_remaining * YEAR_END_RTT_SHARE))
            reasons = ["Year end - use RTT"]
            priority = 'high'

        if month in SUMMER_MONTHS:
            cp_rec = max(cp_rec, SUMMER_MIN_CP)
            reasons.append("Summer period")
            if priority == 'low':
                priority = 'medium'

        if month_holidays:
            reasons.append(f"{len(month_holidays)} public holiday(s)")
            cp_rec = max(cp_rec, len(month_holidays))
            if priority == 'low':
                priority = 'medium'

        recommendations.append({
            'month': month,
            'month_name': calc.get_month_name(month),
            'rtt_recommended': min(rtt_rec, rtt_remaining),
            'cp_recommended': min(cp_rec, cp_remaining),
            'working_days': working_days,
            'reason': ' + '.join(reasons),
            'priority': priority,
        })

    if deadline_months <= 3:
        urgency = 'high'
    elif deadline_months <= 6:
        urgency = 'medium'
    else:
        urgency = 'low'

    logger.debug("Planning %s from month %s: %d recommendations, RTT urgency %s",
                 year, first_month, len(recommendations), urgency)
    return {
        'rtt_taken': usage['rtt_taken'],
        'rtt_remaining': rtt_remaining,
        'cp_taken': usage['cp_taken'],
        'cp_remaining': cp_remaining,
        'rtt_deadline_months': deadline_months,
        'recommendations': recommendations,
        'rtt_urgency': urgency,
    }


# ---------------------------------------------------------------------------
# Smart period planner
# ---------------------------------------------------------------------------

@dataclass
class PlannedPeriod:
    start_date: date
    end_date: date
    reason: str
    type: str = 'cp'
    working_days: float = 0
    efficiency: int = 0
    holidays_included: List[str] = field(default_factory=list)


def default_planned_periods(year: int) -> List[PlannedPeriod]:
    return [
        PlannedPeriod(date(year, 11, 11), date(year, 11, 22), 'November holidays'),
        PlannedPeriod(date(year, 12, 24), date(year, 12, 31), 'Christmas holidays'),
    ]


def evaluate_periods(periods: Iterable[PlannedPeriod], holiday_list: List[PublicHoliday]) -> List[PlannedPeriod]:
    """Fill in working days, included holidays and efficiency for each period."""
    evaluated = []
    for period in periods:
        in_period = [h for h in holiday_list if period.start_date <= h.date <= period.end_date]
        working_days = calc.calculate_working_days(period.start_date, period.end_date, in_period)
        efficiency = round(len(in_period) / working_days * 100) if in_period and working_days else 0
        evaluated.append(PlannedPeriod(
            start_date=period.start_date,
            end_date=period.end_date,
            reason=period.reason,
            type=period.type,
            working_days=working_days,
            efficiency=efficiency,
            holidays_included=[h.name for h in in_period],
        ))
    return evaluated


def smart_recommendations(
    periods: List[PlannedPeriod],
    leaves: List[LeaveEntry],
    settings: AppSettings,
    carryovers: List[CarryoverLeave],
    holiday_list: List[PublicHoliday],
    year: int,
) -> List[Dict[str, Any]]:
    usage = year_usage(leaves, settings, carryovers, year)
    recs = []

    for period in periods:
        month = period.start_date.month
        month_holidays = [h for h in holiday_list if h.date.year == period.start_date.year and h.date.month == month]
        if month_holidays:
            message = f"Great period! {len(month_holidays)} public holiday(s) in {calc.get_month_name(month)}"
        else:
            message = f"No public holiday in {calc.get_month_name(month)}"
        recs.append({
            'period': period.reason,
            'recommendation': message,
            'type': period.type,
            'days': period.working_days,
            'efficiency': period.efficiency,
        })

    rtt_remaining = usage['rtt_remaining']
    if rtt_remaining > 0:
        recs.append({
            'period': 'Remaining RTT',
            'recommendation': (
                f"Use your {rtt_remaining:g} remaining RTT before the end of "
                f"{calc.get_month_name(settings.rtt_deadline_month)} {year + 1}"
            ),
            'type': 'rtt',
            'days': rtt_remaining,
            'efficiency': 0,
        })

    cp_remaining = usage['cp_remaining'] - sum(p.working_days for p in periods)
    if cp_remaining > 0:
        recs.append({
            'period': 'Remaining CP',
            'recommendation': f"Plan your {cp_remaining:g} remaining CP over the year",
            'type': 'cp',
            'days': cp_remaining,
            'efficiency': 0,
        })

    return recs


def efficiency_level(efficiency: float) -> str:
    if efficiency >= 50:
        return 'high'
    if efficiency >= 25:
        return 'medium'
    return 'low'
