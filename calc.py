"""
Calendar utilities and business logic for leave tracking.
Pure functions for working-day arithmetic, balances and year summaries.
"""

import calendar
import json
import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import holidays
from dateutil.relativedelta import relativedelta

from models import AppSettings, CarryoverLeave, LeaveEntry, LeaveQuota, PayrollData, PublicHoliday

logger = logging.getLogger(__name__)


# Leave type catalogue
LEAVE_TYPES = {
    'cp': {'label': 'Congés Payés', 'color': '#3b82f6', 'icon': '🏖️'},
    'rtt': {'label': 'RTT', 'color': '#10b981', 'icon': '📅'},
    'cet': {'label': 'CET', 'color': '#8b5cf6', 'icon': '🏦'},
    'pipe': {'label': 'PIPE', 'color': '#6b7280', 'icon': '🔧'},
    'sick': {'label': 'Maladie', 'color': '#f97316', 'icon': '🏥'},
}

# PIPE and sick leave never count in statistics or quotas
LEAVE_TYPES_FOR_STATS = ['cp', 'rtt', 'cet']
LEAVE_TYPES_FOR_QUOTAS = ['cp', 'rtt', 'cet']

# Used when a quota is missing from the settings
FALLBACK_QUOTAS = {'rtt': 23, 'cp': 25, 'cet': 5}

RTT_DAYS_PER_MONTH = 2

BACKUP_VERSION = '1.0.0'

MIN_FRENCH_DATE_YEAR = 2000
MAX_FRENCH_DATE_YEAR = 2100


def is_leave_type_for_stats(leave_type: str) -> bool:
    return leave_type in LEAVE_TYPES_FOR_STATS


def is_leave_type_for_quotas(leave_type: str) -> bool:
    return leave_type in LEAVE_TYPES_FOR_QUOTAS


def get_leave_type_label(leave_type: str) -> str:
    return LEAVE_TYPES.get(leave_type, {}).get('label', leave_type)


def get_leave_type_color(leave_type: str) -> str:
    return LEAVE_TYPES.get(leave_type, {}).get('color', '#9ca3af')


def get_leave_type_icon(leave_type: str) -> str:
    return LEAVE_TYPES.get(leave_type, {}).get('icon', '')


# ---------------------------------------------------------------------------
# Holidays and working days
# ---------------------------------------------------------------------------

def get_holidays_for_year(
    year: int,
    country: str = 'FR',
    subdivision: Optional[str] = None,
    custom: Iterable[PublicHoliday] = (),
) -> List[PublicHoliday]:
    """
    Get public holidays for a year.

    Args:
        year: Year (e.g., 2025)
        country: ISO country code understood by the holidays package
        subdivision: Optional region code (e.g., '67' for Bas-Rhin)
        custom: User-defined holidays; only those falling in ``year`` are kept

    Returns:
        Holidays sorted by date, one per date
    """
    by_date: Dict[date, PublicHoliday] = {}
    try:
        country_holidays = holidays.country_holidays(country, subdiv=subdivision, years=year)
    except NotImplementedError:
        logger.warning("No holiday calendar for country=%s subdivision=%s", country, subdivision)
        country_holidays = {}

    for day, name in sorted(country_holidays.items()):
        by_date[day] = PublicHoliday(date=day, name=name, country=country, id=day.isoformat())

    for holiday in custom:
        if holiday.date.year == year:
            by_date[holiday.date] = holiday

    return [by_date[d] for d in sorted(by_date)]


def holidays_for_range(
    start: date,
    end: date,
    settings: AppSettings,
) -> List[PublicHoliday]:
    """Holidays for every year touched by [start, end]."""
    result: List[PublicHoliday] = []
    for year in range(start.year, end.year + 1):
        result.extend(get_holidays_for_year(year, settings.country, settings.subdivision, settings.public_holidays))
    return result


def subdivisions_for(country: str) -> List[str]:
    """Region codes the holidays package knows for a country (empty if unknown)."""
    return list(holidays.list_supported_countries().get(country.strip().upper(), []))


def is_weekend(day_date: date) -> bool:
    """Check if date is a weekend (Saturday or Sunday)."""
    return day_date.weekday() >= 5


def is_holiday(day_date: date, holiday_list: Iterable[PublicHoliday]) -> bool:
    return any(h.date == day_date for h in holiday_list)


def daterange(start: date, end: date):
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def calculate_working_days(
    start_date: date,
    end_date: date,
    holiday_list: Iterable[PublicHoliday] = (),
    is_half_day: bool = False,
) -> float:
    """
    Count working days (no weekends, no holidays) in [start_date, end_date].

    A half day on a single working day counts 0.5. On a multi-day period the
    half-day flag is informational and the full count is kept.
    """
    if start_date > end_date:
        return 0

    holiday_dates = {h.date for h in holiday_list}
    working_days = sum(
        1 for d in daterange(start_date, end_date)
        if not is_weekend(d) and d not in holiday_dates
    )

    if is_half_day and working_days > 0 and start_date == end_date:
        return 0.5

    return working_days


def validate_leave_period(
    start_date: date,
    end_date: date,
    existing_leaves: Iterable[LeaveEntry],
    exclude_id: Optional[str] = None,
) -> Tuple[bool, Optional[str]]:
    """Check ordering and overlap with other entries (bounds inclusive)."""
    if start_date > end_date:
        return False, "Start date must be on or before end date"

    for leave in existing_leaves:
        if leave.id == exclude_id:
            continue
        if leave.overlaps(start_date, end_date):
            return False, (
                f"This period overlaps an existing {get_leave_type_label(leave.type)} leave "
                f"({format_date(leave.start_date)} - {format_date(leave.end_date)})"
            )

    return True, None


def recompute_working_days(
    leaves: Iterable[LeaveEntry],
    holidays_for: Callable[[date, date], List[PublicHoliday]],
) -> List[LeaveEntry]:
    """
    Re-derive working_days for every entry.

    Args:
        leaves: Entries to fix
        holidays_for: Callable returning holidays for a (start, end) range

    Returns:
        The entries whose working_days changed (already updated in place)
    """
    changed = []
    for leave in leaves:
        days = calculate_working_days(
            leave.start_date,
            leave.end_date,
            holidays_for(leave.start_date, leave.end_date),
            leave.is_half_day,
        )
        if days != leave.working_days:
            logger.info("Working days for %s: %s -> %s", leave.id, leave.working_days, days)
            leave.working_days = days
            leave.updated_at = datetime.now().isoformat(timespec='seconds')
            changed.append(leave)
    return changed


# ---------------------------------------------------------------------------
# Balances and carry-over
# ---------------------------------------------------------------------------

def days_taken(
    leaves: Iterable[LeaveEntry],
    year: int,
    leave_type: Optional[str] = None,
    month: Optional[int] = None,
) -> float:
    """Sum working_days of entries starting in the year (and month, if given)."""
    return sum(
        leave.working_days for leave in leaves
        if leave.start_date.year == year
        and (leave_type is None or leave.type == leave_type)
        and (month is None or leave.start_date.month == month)
    )


def carryover_days(carryovers: Iterable[CarryoverLeave], leave_type: str, year: int) -> float:
    """Days carried into ``year``, i.e. earned during ``year - 1``."""
    return sum(c.days for c in carryovers if c.type == leave_type and c.year == year - 1)


def calculate_leave_balances(
    leaves: List[LeaveEntry],
    quotas: List[LeaveQuota],
    carryovers: List[CarryoverLeave] = (),
    year: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Compute the balance of each quota type for a year, carry-over included.

    Returns:
        One dict per quota with type, total, taken, remaining and year
    """
    if year is None:
        year = date.today().year

    balances = []
    for quota in quotas:
        taken = days_taken(leaves, year, quota.type)
        total = quota.yearly_quota + carryover_days(carryovers, quota.type, year)
        balances.append({
            'type': quota.type,
            'total': total,
            'taken': taken,
            'remaining': max(0, total - taken),
            'year': year,
        })
    return balances


def calculate_available_carryover(carryovers: Iterable[CarryoverLeave]) -> Dict[str, float]:
    available = {code: 0.0 for code in LEAVE_TYPES}
    for carryover in carryovers:
        available[carryover.type] = available.get(carryover.type, 0.0) + carryover.days
    return available


def generate_carryover_summary(carryovers: Iterable[CarryoverLeave]) -> Dict[str, Any]:
    by_year: Dict[int, List[CarryoverLeave]] = {}
    by_type: Dict[str, List[CarryoverLeave]] = {code: [] for code in LEAVE_TYPES}
    total_by_type: Dict[str, float] = {code: 0.0 for code in LEAVE_TYPES}

    for carryover in carryovers:
        by_year.setdefault(carryover.year, []).append(carryover)
        by_type.setdefault(carryover.type, []).append(carryover)
        total_by_type[carryover.type] = total_by_type.get(carryover.type, 0.0) + carryover.days

    return {'by_year': by_year, 'by_type': by_type, 'total_by_type': total_by_type}


def validate_carryover(days: float, year: int, today: Optional[date] = None) -> Tuple[bool, Optional[str]]:
    today = today or date.today()
    if days <= 0:
        return False, "Number of days must be greater than 0"
    if year > today.year:
        return False, "Year cannot be in the future"
    return True, None


# ---------------------------------------------------------------------------
# RTT availability
# ---------------------------------------------------------------------------

def can_take_rtt_for_month(month: int, year: int, today: Optional[date] = None) -> Dict[str, Any]:
    """
    RTT accrue monthly. Past and current months are available; future months
    of the current year are available as forecast; future years are not.
    """
    today = today or date.today()

    if year > today.year:
        return {
            'can_take': False,
            'reason': f"RTT for {year} are not available yet",
            'available_days': 0,
        }
    if year == today.year and month > today.month:
        return {
            'can_take': True,
            'reason': f"RTT available as forecast for {year}",
            'available_days': RTT_DAYS_PER_MONTH,
        }
    return {'can_take': True, 'reason': None, 'available_days': RTT_DAYS_PER_MONTH}


def calculate_available_rtt_for_period(start_date: date, end_date: date, today: Optional[date] = None) -> Dict[str, Any]:
    details = []
    total = 0
    current = start_date.replace(day=1)
    while current <= end_date:
        validation = can_take_rtt_for_month(current.month, current.year, today)
        details.append({
            'month': current.month,
            'year': current.year,
            'available': validation['available_days'],
            'can_take': validation['can_take'],
        })
        total += validation['available_days']
        current += relativedelta(months=1)
    return {'total_available': total, 'details': details}


def calculate_current_available_rtt(today: Optional[date] = None, year: Optional[int] = None) -> Dict[str, Any]:
    today = today or date.today()
    year = year or today.year
    details = []
    total = 0
    for month in range(1, 13):
        validation = can_take_rtt_for_month(month, year, today)
        details.append({
            'month': month,
            'available': validation['available_days'],
            'can_take': validation['can_take'],
            'reason': validation['reason'],
        })
        total += validation['available_days']
    return {'total_available': total, 'details': details}


def check_rtt_request(start_date: date, end_date: date, working_days: float, today: Optional[date] = None) -> Tuple[bool, Optional[str]]:
    availability = calculate_available_rtt_for_period(start_date, end_date, today)
    if availability['total_available'] >= working_days:
        return True, None
    unavailable = ', '.join(
        f"{d['month']}/{d['year']}" for d in availability['details'] if not d['can_take']
    )
    return False, f"Cannot take {working_days:g} RTT days for this period. RTT not available for: {unavailable}"


# ---------------------------------------------------------------------------
# Year summaries
# ---------------------------------------------------------------------------

def calculate_monthly_leave_summary_separated(
    leaves: List[LeaveEntry],
    quotas: List[LeaveQuota],
    carryovers: List[CarryoverLeave] = (),
    year: Optional[int] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Month-by-month RTT and CP(+CET) consumption, split into real and forecast.

    An entry is real when it is not a forecast or its month has passed. It is
    forecast when flagged as such or when its month is still in the future.
    The first row carries the carry-over brought into the year.

    Returns:
        Dictionary with 'months' (13 rows) and 'yearly_totals'
    """
    today = today or date.today()
    year = year or today.year

    quota_map = {q.type: q.yearly_quota for q in quotas}
    rtt_quota = quota_map.get('rtt', FALLBACK_QUOTAS['rtt'])
    cp_cet_quota = quota_map.get('cp', FALLBACK_QUOTAS['cp']) + quota_map.get('cet', FALLBACK_QUOTAS['cet'])

    rtt_carry = carryover_days(carryovers, 'rtt', year)
    cp_cet_carry = carryover_days(carryovers, 'cp', year) + carryover_days(carryovers, 'cet', year)

    months = [{
        'month': 0,
        'month_name': 'Carry-over',
        'rtt': {
            'real': {'taken': 0, 'cumul': 0, 'remaining': rtt_carry},
            'forecast': {'taken': 0, 'cumul': 0, 'remaining': rtt_carry},
        },
        'cp': {
            'real': {'taken': 0, 'cumul': 0, 'remaining': cp_cet_carry},
            'forecast': {'taken': 0, 'cumul': 0, 'remaining': cp_cet_carry},
        },
    }]

    cumul = {'rtt': {'real': 0.0, 'forecast': 0.0}, 'cp': {'real': 0.0, 'forecast': 0.0}}
    totals_available = {'rtt': rtt_quota + rtt_carry, 'cp': cp_cet_quota + cp_cet_carry}

    for month in range(1, 13):
        month_leaves = [
            l for l in leaves
            if l.start_date.year == year and l.start_date.month == month
        ]
        is_past = (year, month) < (today.year, today.month)
        is_current = (year, month) == (today.year, today.month)

        row = {'month': month, 'month_name': get_month_name(month)}
        # The CP pool includes the CET quota, but only CP entries draw on it here
        for key, types in (('rtt', ('rtt',)), ('cp', ('cp',))):
            real = sum(
                l.working_days for l in month_leaves
                if l.type in types and (not l.is_forecast or is_past)
            )
            forecast = sum(
                l.working_days for l in month_leaves
                if l.type in types and (l.is_forecast or (not is_past and not is_current))
            )
            cumul[key]['real'] += real
            cumul[key]['forecast'] += forecast
            available = totals_available[key]
            row[key] = {
                'real': {
                    'taken': real,
                    'cumul': cumul[key]['real'],
                    'remaining': max(0, available - cumul[key]['real']),
                },
                'forecast': {
                    'taken': forecast,
                    'cumul': cumul[key]['forecast'],
                    'remaining': max(0, available - cumul[key]['real'] - cumul[key]['forecast']),
                },
            }
        months.append(row)

    yearly_totals = {
        key: {
            'real': cumul[key]['real'],
            'forecast': cumul[key]['forecast'],
            'total': cumul[key]['real'] + cumul[key]['forecast'],
        }
        for key in ('rtt', 'cp')
    }
    return {'months': months, 'yearly_totals': yearly_totals}


def calculate_leave_stats(leaves: List[LeaveEntry], year: int) -> Dict[str, Any]:
    """
    Compute the year statistics.

    Returns:
        Dictionary with total_days (stats types only), by_type and by_month
        keyed by 'YYYY-MM'
    """
    year_leaves = [l for l in leaves if l.start_date.year == year]

    by_type = {code: 0.0 for code in LEAVE_TYPES}
    by_month: Dict[str, float] = {}
    total_days = 0.0

    for leave in year_leaves:
        by_type[leave.type] = by_type.get(leave.type, 0.0) + leave.working_days
        if is_leave_type_for_stats(leave.type):
            total_days += leave.working_days
            key = leave.start_date.strftime('%Y-%m')
            by_month[key] = by_month.get(key, 0.0) + leave.working_days

    return {'total_days': total_days, 'by_type': by_type, 'by_month': by_month}


def filter_leaves(
    leaves: Iterable[LeaveEntry],
    year: Optional[int] = None,
    leave_type: Optional[str] = None,
    mode: str = 'all',
    search: str = '',
) -> List[LeaveEntry]:
    """Filter entries for the history view, newest start date first."""
    filtered = list(leaves)
    if year is not None:
        filtered = [l for l in filtered if l.start_date.year == year]
    if leave_type:
        filtered = [l for l in filtered if l.type == leave_type]
    if mode == 'real':
        filtered = [l for l in filtered if not l.is_forecast]
    elif mode == 'forecast':
        filtered = [l for l in filtered if l.is_forecast]
    if search:
        needle = search.lower()
        filtered = [
            l for l in filtered
            if needle in (l.notes or '').lower()
            or needle in l.type.lower()
            or search in format_date(l.start_date)
            or search in format_date(l.end_date)
        ]
    filtered.sort(key=lambda l: l.start_date, reverse=True)
    return filtered


def summarize_leaves(leaves: List[LeaveEntry]) -> Dict[str, Any]:
    count = len(leaves)
    total = sum(l.working_days for l in leaves)
    return {
        'count': count,
        'total_days': total,
        'average_days': round(total / count, 1) if count else 0,
        'distinct_types': len({l.type for l in leaves}),
    }


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

def build_weeks(year: int, month: int) -> List[List[date]]:
    """Return list of weeks; each is a list of 7 datetime.date (Mon..Sun).
    Includes spillover days so weekday alignment is preserved."""
    cal = calendar.Calendar(firstweekday=0)
    return [list(week) for week in cal.monthdatescalendar(year, month)]


def generate_calendar_days(
    year: int,
    month: int,
    leaves: Iterable[LeaveEntry],
    holiday_list: Iterable[PublicHoliday],
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """
    Build one record per day of the month grid (spillover days included).

    Returns:
        List of dicts with date, is_current_month, is_today, is_weekend,
        is_holiday, holiday_name and the leaves covering that day
    """
    today = today or date.today()
    leaves = list(leaves)
    holiday_names = {h.date: h.name for h in holiday_list}

    days = []
    for week in build_weeks(year, month):
        for day_date in week:
            days.append({
                'date': day_date,
                'is_current_month': day_date.month == month,
                'is_today': day_date == today,
                'is_weekend': is_weekend(day_date),
                'is_holiday': day_date in holiday_names,
                'holiday_name': holiday_names.get(day_date, ''),
                'leaves': [l for l in leaves if l.overlaps(day_date, day_date)],
            })
    return days


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

def french_date_to_iso(french_date: str) -> str:
    """Convert DD/MM/YYYY to YYYY-MM-DD; empty string when malformed."""
    if not french_date or len(french_date) != 10:
        return ''
    parts = french_date.split('/')
    if len(parts) != 3:
        return ''
    day, month, year = parts
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


def iso_date_to_french(iso_date: str) -> str:
    """Convert YYYY-MM-DD to DD/MM/YYYY; empty string when malformed."""
    if not iso_date or len(iso_date) != 10:
        return ''
    parts = iso_date.split('-')
    if len(parts) != 3:
        return ''
    year, month, day = parts
    return f"{day}/{month}/{year}"


def is_valid_french_date(french_date: str) -> bool:
    iso = french_date_to_iso(french_date)
    if not iso:
        return False
    try:
        parsed = date.fromisoformat(iso)
    except ValueError:
        return False
    return MIN_FRENCH_DATE_YEAR <= parsed.year <= MAX_FRENCH_DATE_YEAR


def parse_date(value: str) -> date:
    """Parse DD/MM/YYYY or YYYY-MM-DD; raises ValueError otherwise."""
    value = (value or '').strip()
    if '/' in value:
        if not is_valid_french_date(value):
            raise ValueError(f"Invalid date: {value!r} (expected DD/MM/YYYY)")
        return date.fromisoformat(french_date_to_iso(value))
    return date.fromisoformat(value)


def format_date(value: date, fmt: str = '%d/%m/%Y') -> str:
    return value.strftime(fmt)


def get_month_name(month: int) -> str:
    """Get full month name from month number."""
    return calendar.month_name[month]


def add_months(source_date: date, months: int) -> date:
    """Shift a date by whole months; the day is clamped to the target month."""
    return source_date + relativedelta(months=months)


# ---------------------------------------------------------------------------
# Backup (de)serialisation
# ---------------------------------------------------------------------------

def serialize_backup(
    leaves: List[LeaveEntry],
    settings: Optional[AppSettings],
    balances: List[Dict[str, Any]],
    custom_holidays: List[PublicHoliday],
    carryovers: List[CarryoverLeave],
    payroll: List[PayrollData] = (),
) -> str:
    """
    Serialize everything to the JSON backup format.

    Returns:
        JSON string with a stable camelCase schema
    """
    export_data = {
        'leaves': [l.to_dict() for l in leaves],
        'settings': settings.to_dict() if settings else None,
        'balances': balances,
        'holidays': [h.to_dict() for h in custom_holidays],
        'carryovers': [c.to_dict() for c in carryovers],
        'payroll': [p.to_dict() for p in payroll],
        'exportDate': datetime.now().isoformat(timespec='seconds'),
        'version': BACKUP_VERSION,
    }
    return json.dumps(export_data, indent=2, ensure_ascii=False, default=str)


def deserialize_backup(json_data: str) -> Dict[str, Any]:
    """
    Deserialize a JSON backup for import.

    Returns:
        Dictionary with leaves, settings, balances, holidays, carryovers,
        payroll and version

    Raises:
        ValueError: when the payload is not a backup
    """
    try:
        data = json.loads(json_data)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON format: {e}")

    # Dashboard exports wrap the storage export under "leaves"
    if isinstance(data, dict) and isinstance(data.get('leaves'), dict):
        data = data['leaves']

    if not isinstance(data, dict) or not isinstance(data.get('leaves'), list):
        raise ValueError("Invalid backup format: missing 'leaves' list")

    try:
        return {
            'leaves': [LeaveEntry.from_dict(l) for l in data['leaves']],
            'settings': AppSettings.from_dict(data['settings']) if data.get('settings') else None,
            'balances': data.get('balances') or [],
            'holidays': [PublicHoliday.from_dict(h) for h in data.get('holidays') or []],
            'carryovers': [CarryoverLeave.from_dict(c) for c in data.get('carryovers') or []],
            'payroll': [PayrollData.from_dict(p) for p in data.get('payroll') or []],
            'version': data.get('version', '1.0.0'),
        }
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        # AttributeError: a record that is not an object
        raise ValueError(f"Invalid backup content: {e}")
