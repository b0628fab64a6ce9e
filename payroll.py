"""
Payslip checks: compare the leave figures printed on a payslip with the
leave recorded in the tracker.
"""

import logging
from datetime import date
from typing import Any, Dict, List

import calc
from models import LeaveEntry, PayrollData

logger = logging.getLogger(__name__)


VALID_TOLERANCE = 0.5
WARNING_TOLERANCE = 1


def previous_month(month: int, year: int):
    return (12, year - 1) if month == 1 else (month - 1, year)


def normalize_payroll_date(value: str) -> str:
    """Accept DD/MM/YYYY, DD-MM-YYYY or YYYY-MM-DD and return ISO."""
    value = value.strip()
    if '/' in value:
        return calc.french_date_to_iso(value)
    parts = value.split('-')
    if len(parts) == 3 and len(parts[2]) == 4:
        day, month, year = parts
        return f"{year}-{month.zfill(2)}-{day.zfill(2)}"
    return value


def parse_date_lines(text: str) -> List[str]:
    """One date per line, blank lines ignored; raises ValueError on a bad date."""
    dates = []
    for line in text.splitlines():
        if not line.strip():
            continue
        iso = normalize_payroll_date(line)
        date.fromisoformat(iso)
        dates.append(iso)
    return dates


def status_for(difference: float) -> str:
    if abs(difference) <= VALID_TOLERANCE:
        return 'valid'
    if abs(difference) <= WARNING_TOLERANCE:
        return 'warning'
    return 'error'


def expected_payroll_figures(leaves: List[LeaveEntry], month: int, year: int) -> Dict[str, Any]:
    """
    Figures a payslip for ``month`` should show.

    RTT and CP dates on a payslip refer to the previous month; CP and CET
    taken refer to the payslip month itself.
    """
    prev_month, prev_year = previous_month(month, year)
    rtt_leaves = [
        l for l in leaves
        if l.type == 'rtt' and l.start_date.year == prev_year and l.start_date.month == prev_month
    ]

    return {
        'rtt_taken_in_month': sum(l.working_days for l in rtt_leaves),
        'rtt_leaves': [
            {'start_date': l.start_date, 'end_date': l.end_date, 'working_days': l.working_days}
            for l in rtt_leaves
        ],
        'cp_taken_in_month': calc.days_taken(leaves, year, 'cp', month),
        'cp_taken_previous_month': calc.days_taken(leaves, prev_year, 'cp', prev_month),
        'cet_taken_in_month': calc.days_taken(leaves, year, 'cet', month),
    }


def _check(entered: float, computed: float) -> Dict[str, Any]:
    difference = entered - computed
    return {
        'entered': entered,
        'computed': computed,
        'difference': difference,
        'status': status_for(difference),
    }


def validate_payroll(data: PayrollData, leaves: List[LeaveEntry]) -> Dict[str, Any]:
    """
    Validate one payslip against the recorded leave.

    Only RTT taken and the count of CP dates of the previous month drive the
    global score; the CET figure is reported alongside.

    Returns:
        Dictionary with one entry per checked figure, 'score' (0-100) and
        'status'
    """
    expected = expected_payroll_figures(leaves, data.month, data.year)

    rtt = _check(data.rtt_taken_in_month, expected['rtt_taken_in_month'])
    rtt['rtt_leaves'] = expected['rtt_leaves']

    cp_previous = _check(len(data.cp_taken_previous_month), expected['cp_taken_previous_month'])
    cp_previous['dates'] = list(data.cp_taken_previous_month)

    cet = _check(data.cet_balance, expected['cet_taken_in_month'])

    scored = [rtt, cp_previous]
    score = round(sum(1 for v in scored if v['status'] == 'valid') / len(scored) * 100)
    if score >= 90:
        status = 'valid'
    elif score >= 70:
        status = 'warning'
    else:
        status = 'error'

    logger.info("Payslip %02d/%s checked: score %s (%s)", data.month, data.year, score, status)
    return {
        'month': data.month,
        'year': data.year,
        'rtt_taken_in_month': rtt,
        'cp_taken_previous_month': cp_previous,
        'cet_balance': cet,
        'score': score,
        'status': status,
    }
