"""
Tests for the calendar and leave arithmetic.
"""

import json
from datetime import date

import pytest

import calc
from models import CarryoverLeave, LeaveQuota, PublicHoliday


def test_french_holidays_include_fixed_dates(fr_holidays_2025):
    dates = [h.date for h in fr_holidays_2025]
    for day in (date(2025, 5, 1), date(2025, 7, 14), date(2025, 11, 11), date(2025, 12, 25)):
        assert day in dates
    assert dates == sorted(dates)
    assert len(dates) == len(set(dates))


def test_custom_holiday_overrides_and_year_filter():
    custom = [
        PublicHoliday(date(2025, 12, 25), 'Company Christmas'),
        PublicHoliday(date(2025, 8, 1), 'Summer closing'),
        PublicHoliday(date(2024, 8, 1), 'Last year closing'),
    ]
    result = calc.get_holidays_for_year(2025, 'FR', custom=custom)
    by_date = {h.date: h.name for h in result}
    assert by_date[date(2025, 12, 25)] == 'Company Christmas'
    assert date(2025, 8, 1) in by_date
    assert date(2024, 8, 1) not in by_date


def test_unknown_country_has_no_holidays():
    assert calc.get_holidays_for_year(2025, 'XX') == []


def test_working_days_skip_weekend_and_holiday(fr_holidays_2025):
    """Bastille Day falls on a Monday in 2025."""
    assert calc.calculate_working_days(date(2025, 7, 14), date(2025, 7, 20), fr_holidays_2025) == 4


def test_working_days_weekend_only():
    assert calc.calculate_working_days(date(2025, 7, 19), date(2025, 7, 20)) == 0


def test_working_days_invalid_range():
    assert calc.calculate_working_days(date(2025, 7, 20), date(2025, 7, 14)) == 0


def test_single_half_day():
    assert calc.calculate_working_days(date(2025, 7, 15), date(2025, 7, 15), is_half_day=True) == 0.5


def test_half_day_on_multi_day_period_keeps_full_count():
    days = calc.calculate_working_days(date(2025, 7, 15), date(2025, 7, 17), is_half_day=True)
    assert days == 3


def test_half_day_over_a_holiday_counts_working_days_only(fr_holidays_2025):
    days = calc.calculate_working_days(date(2025, 7, 14), date(2025, 7, 16), fr_holidays_2025, is_half_day=True)
    assert days == 2


def test_single_half_day_on_a_holiday_is_zero(fr_holidays_2025):
    assert calc.calculate_working_days(date(2025, 7, 14), date(2025, 7, 14), fr_holidays_2025, is_half_day=True) == 0


def test_validate_leave_period_overlap(leave_factory):
    existing = [leave_factory('cp', date(2025, 3, 10), date(2025, 3, 14), 5)]

    ok, error = calc.validate_leave_period(date(2025, 3, 14), date(2025, 3, 18), existing)
    assert not ok
    assert 'overlaps' in error

    ok, error = calc.validate_leave_period(date(2025, 3, 15), date(2025, 3, 18), existing)
    assert ok and error is None

    ok, _ = calc.validate_leave_period(date(2025, 3, 10), date(2025, 3, 14), existing, exclude_id=existing[0].id)
    assert ok


def test_validate_leave_period_order():
    ok, error = calc.validate_leave_period(date(2025, 3, 18), date(2025, 3, 10), [])
    assert not ok
    assert error


def test_recompute_working_days(leave_factory, fr_holidays_2025):
    wrong = leave_factory('cp', date(2025, 7, 14), date(2025, 7, 18), 5)
    right = leave_factory('cp', date(2025, 7, 21), date(2025, 7, 25), 5)

    changed = calc.recompute_working_days([wrong, right], lambda s, e: fr_holidays_2025)

    assert changed == [wrong]
    assert wrong.working_days == 4
    assert right.working_days == 5


def test_leave_balances_with_carryover(sample_leaves):
    quotas = [LeaveQuota('cp', 25), LeaveQuota('rtt', 1)]
    carryovers = [
        CarryoverLeave('cp', 2024, 3),
        CarryoverLeave('cp', 2023, 10),
    ]

    balances = {b['type']: b for b in calc.calculate_leave_balances(sample_leaves, quotas, carryovers, 2025)}

    assert balances['cp']['total'] == 28
    assert balances['cp']['taken'] == 7
    assert balances['cp']['remaining'] == 21
    # Two RTT taken against a quota of one never goes negative
    assert balances['rtt']['remaining'] == 0


def test_carryover_summary_and_validation():
    carryovers = [CarryoverLeave('cp', 2024, 3), CarryoverLeave('cp', 2023, 2), CarryoverLeave('rtt', 2024, 1)]
    summary = calc.generate_carryover_summary(carryovers)

    assert summary['total_by_type']['cp'] == 5
    assert len(summary['by_year'][2024]) == 2
    assert calc.calculate_available_carryover(carryovers)['rtt'] == 1

    today = date(2025, 6, 1)
    assert calc.validate_carryover(2, 2024, today) == (True, None)
    assert not calc.validate_carryover(0, 2024, today)[0]
    assert not calc.validate_carryover(2, 2026, today)[0]


def test_rtt_availability_by_month():
    today = date(2025, 6, 15)

    assert calc.can_take_rtt_for_month(3, 2025, today)['reason'] is None
    forecast = calc.can_take_rtt_for_month(9, 2025, today)
    assert forecast['can_take'] and 'forecast' in forecast['reason']
    future = calc.can_take_rtt_for_month(1, 2026, today)
    assert not future['can_take'] and future['available_days'] == 0

    assert calc.calculate_current_available_rtt(today, 2025)['total_available'] == 24
    assert calc.calculate_current_available_rtt(today, 2026)['total_available'] == 0


def test_rtt_request_across_years():
    today = date(2025, 6, 15)
    availability = calc.calculate_available_rtt_for_period(date(2025, 12, 29), date(2026, 1, 2), today)
    assert [(d['month'], d['year']) for d in availability['details']] == [(12, 2025), (1, 2026)]
    assert availability['total_available'] == 2

    assert calc.check_rtt_request(date(2025, 7, 1), date(2025, 7, 1), 1, today) == (True, None)
    ok, error = calc.check_rtt_request(date(2026, 2, 2), date(2026, 2, 4), 3, today)
    assert not ok
    assert '2/2026' in error


def test_monthly_summary_shape_and_cumul(sample_leaves):
    quotas = [LeaveQuota('cp', 25), LeaveQuota('rtt', 10), LeaveQuota('cet', 5)]
    carryovers = [CarryoverLeave('rtt', 2024, 2)]

    summary = calc.calculate_monthly_leave_summary_separated(
        sample_leaves, quotas, carryovers, 2025, today=date(2025, 6, 15)
    )
    months = summary['months']

    assert len(months) == 13
    assert months[0]['rtt']['real']['remaining'] == 2
    assert months[2]['rtt']['real']['taken'] == 2
    assert months[3]['cp']['real']['taken'] == 5
    # Flagged forecast in a future month only counts as forecast
    assert months[9]['cp']['real']['taken'] == 0
    assert months[9]['cp']['forecast']['taken'] == 2

    for key in ('rtt', 'cp'):
        cumul = [m[key]['real']['cumul'] for m in months[1:]]
        assert cumul == sorted(cumul)

    assert months[12]['rtt']['real']['remaining'] == 10
    assert summary['yearly_totals']['cp'] == {'real': 5, 'forecast': 2, 'total': 7}


def test_monthly_summary_uses_fallback_quota():
    summary = calc.calculate_monthly_leave_summary_separated([], [], [], 2025, today=date(2025, 1, 1))
    assert summary['months'][1]['rtt']['real']['remaining'] == calc.FALLBACK_QUOTAS['rtt']


def test_leave_stats_exclude_pipe(sample_leaves):
    stats = calc.calculate_leave_stats(sample_leaves, 2025)
    assert stats['total_days'] == 10
    assert stats['by_type']['pipe'] == 1
    assert stats['by_month']['2025-03'] == 5
    assert '2025-05' not in stats['by_month']


def test_filter_leaves(sample_leaves):
    sample_leaves[1].notes = 'Ski trip'

    assert [l.start_date.month for l in calc.filter_leaves(sample_leaves, year=2025)] == [9, 5, 4, 3, 2]
    assert len(calc.filter_leaves(sample_leaves, leave_type='cp')) == 2
    assert len(calc.filter_leaves(sample_leaves, mode='forecast')) == 1
    assert len(calc.filter_leaves(sample_leaves, mode='real')) == 4
    assert calc.filter_leaves(sample_leaves, search='ski') == [sample_leaves[1]]
    assert calc.filter_leaves(sample_leaves, year=2024) == []


def test_summarize_leaves(sample_leaves):
    summary = calc.summarize_leaves(sample_leaves)
    assert summary['count'] == 5
    assert summary['total_days'] == 11
    assert summary['average_days'] == 2.2
    assert summary['distinct_types'] == 4
    assert calc.summarize_leaves([])['average_days'] == 0


def test_calendar_days(leave_factory, fr_holidays_2025):
    leave = leave_factory('cp', date(2025, 7, 15), date(2025, 7, 16), 2)
    days = calc.generate_calendar_days(2025, 7, [leave], fr_holidays_2025, today=date(2025, 7, 15))

    assert len(days) % 7 == 0
    assert days[0]['date'].weekday() == 0
    by_date = {d['date']: d for d in days}
    assert by_date[date(2025, 7, 14)]['is_holiday']
    assert by_date[date(2025, 7, 15)]['is_today']
    assert by_date[date(2025, 7, 16)]['leaves'] == [leave]
    assert by_date[date(2025, 7, 19)]['is_weekend']
    assert not by_date[date(2025, 6, 30)]['is_current_month']


def test_french_dates():
    assert calc.french_date_to_iso('14/07/2025') == '2025-07-14'
    assert calc.iso_date_to_french('2025-07-14') == '14/07/2025'
    assert calc.french_date_to_iso('2025-07-14') == ''
    assert calc.is_valid_french_date('29/02/2024')
    assert not calc.is_valid_french_date('29/02/2025')
    assert not calc.is_valid_french_date('01/01/1999')


def test_parse_date():
    assert calc.parse_date('14/07/2025') == date(2025, 7, 14)
    assert calc.parse_date('2025-07-14') == date(2025, 7, 14)
    with pytest.raises(ValueError):
        calc.parse_date('31/02/2025')
    with pytest.raises(ValueError):
        calc.parse_date('not a date')


def test_add_months_clamps_day():
    assert calc.add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert calc.add_months(date(2025, 11, 15), 3) == date(2026, 2, 15)
    assert calc.add_months(date(2025, 1, 1), -1) == date(2024, 12, 1)


def test_subdivisions_for_known_and_unknown_countries():
    regions = calc.subdivisions_for('fr')
    assert '57' in regions
    assert '6AE' in regions
    assert calc.subdivisions_for('XX') == []


def test_backup_round_trip_keeps_records(sample_leaves):
    carryovers = [CarryoverLeave('cp', 2024, 3, 'Left over')]
    text = calc.serialize_backup(sample_leaves, None, [], [], carryovers)

    payload = json.loads(text)
    assert payload['version'] == calc.BACKUP_VERSION
    assert payload['leaves'][0]['startDate'] == '2025-02-03'

    data = calc.deserialize_backup(text)
    assert [l.to_dict() for l in data['leaves']] == [l.to_dict() for l in sample_leaves]
    assert data['carryovers'][0].description == 'Left over'
    assert data['settings'] is None


def test_deserialize_unwraps_nested_backup(sample_leaves):
    inner = json.loads(calc.serialize_backup(sample_leaves[:1], None, [], [], []))
    data = calc.deserialize_backup(json.dumps({'leaves': inner}))
    assert len(data['leaves']) == 1


def test_deserialize_rejects_invalid_payloads():
    with pytest.raises(ValueError):
        calc.deserialize_backup('{not json')
    with pytest.raises(ValueError):
        calc.deserialize_backup(json.dumps({'settings': {}}))
    with pytest.raises(ValueError):
        calc.deserialize_backup(json.dumps({'leaves': [{'startDate': '2025-01-01'}]}))
    with pytest.raises(ValueError):
        calc.deserialize_backup(json.dumps({'leaves': ['oops']}))
    with pytest.raises(ValueError):
        calc.deserialize_backup(json.dumps({'leaves': [], 'settings': ['x']}))


def test_deserialize_accepts_snake_case():
    data = calc.deserialize_backup(json.dumps({'leaves': [{
        'type': 'rtt', 'start_date': '2025-02-03', 'end_date': '2025-02-03', 'working_days': 1,
    }]}))
    assert data['leaves'][0].start_date == date(2025, 2, 3)
