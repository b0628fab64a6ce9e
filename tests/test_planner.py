from datetime import date

import pytest

import planner
from models import AppSettings, CarryoverLeave


def test_year_usage(sample_leaves):
    settings = AppSettings()
    carryovers = [CarryoverLeave('rtt', 2024, 1), CarryoverLeave('cp', 2024, 2)]

    usage = planner.year_usage(sample_leaves, settings, carryovers, 2025)

    assert usage['rtt_taken'] == 2
    assert usage['cp_taken'] == 7
    assert usage['cet_taken'] == 1
    assert usage['rtt_total'] == 11
    assert usage['rtt_remaining'] == 9
    assert usage['cp_total'] == 32
    assert usage['cp_remaining'] == 24


def test_rtt_deadline_months():
    assert planner.rtt_deadline_months(date(2025, 1, 10)) == 14
    assert planner.rtt_deadline_months(date(2025, 12, 1)) == 3
    assert planner.rtt_deadline_months(date(2025, 12, 1), deadline_month=6) == 7


def test_analytics_alerts_near_deadline(sample_leaves):
    analytics = planner.leave_analytics(sample_leaves, AppSettings(), [], 2025, today=date(2025, 12, 1))

    kinds = [a['type'] for a in analytics['alerts']]
    assert 'urgent' in kinds
    # 7 of 27 CP in December
    assert 'warning' in kinds
    assert 'success' not in kinds
    assert analytics['rtt_deadline_months'] == 3


def test_analytics_no_cp_warning_before_july(sample_leaves):
    analytics = planner.leave_analytics(sample_leaves, AppSettings(), [], 2025, today=date(2025, 3, 1))
    assert analytics['alerts'] == []


def test_analytics_rates_and_quarters(sample_leaves):
    analytics = planner.leave_analytics(sample_leaves, AppSettings(), [], 2025, today=date(2025, 6, 1))

    assert analytics['rtt_usage_rate'] == pytest.approx(20)
    assert round(analytics['cp_usage_rate'], 1) == 25.9
    quarters = {q['name']: q['total'] for q in analytics['quarters']}
    assert quarters == {'Q1': 7, 'Q2': 1, 'Q3': 2, 'Q4': 0}
    assert len(analytics['monthly_stats']) == 12


def test_analytics_success_alert(leave_factory):
    leaves = [
        leave_factory('rtt', date(2025, 1, 6), date(2025, 1, 17), 10),
        leave_factory('cp', date(2025, 3, 3), date(2025, 4, 4), 25),
    ]
    analytics = planner.leave_analytics(leaves, AppSettings(), [], 2025, today=date(2025, 6, 1))
    assert [a['type'] for a in analytics['alerts']] == ['success']


def test_planning_past_year_has_no_recommendation(sample_leaves):
    plan = planner.planning_recommendations(sample_leaves, AppSettings(), [], [], 2024, today=date(2025, 6, 1))
    assert plan['recommendations'] == []


def test_planning_future_year_starts_in_january():
    plan = planner.planning_recommendations([], AppSettings(), [], [], 2026, today=date(2025, 6, 1))
    assert [r['month'] for r in plan['recommendations']] == list(range(1, 13))


def test_planning_current_year(sample_leaves, fr_holidays_2025):
    plan = planner.planning_recommendations(
        sample_leaves, AppSettings(), [], fr_holidays_2025, 2025, today=date(2025, 10, 1)
    )
    recs = {r['month']: r for r in plan['recommendations']}

    assert sorted(recs) == [10, 11, 12]
    assert recs[12]['priority'] == 'high'
    assert 'public holiday' in recs[11]['reason']
    assert plan['rtt_urgency'] == 'medium'
    for rec in recs.values():
        assert rec['rtt_recommended'] <= plan['rtt_remaining']
        assert rec['cp_recommended'] <= plan['cp_remaining']
        assert rec['priority'] in ('high', 'medium', 'low')


def test_evaluate_default_periods(fr_holidays_2025):
    periods = planner.evaluate_periods(planner.default_planned_periods(2025), fr_holidays_2025)
    november, christmas = periods

    assert november.working_days == 8
    assert len(november.holidays_included) == 1
    assert christmas.working_days == 5
    assert christmas.efficiency == 20
    assert planner.efficiency_level(christmas.efficiency) == 'low'


def test_period_without_holiday_has_zero_efficiency(fr_holidays_2025):
    period = planner.PlannedPeriod(date(2025, 3, 3), date(2025, 3, 7), 'March')
    assert planner.evaluate_periods([period], fr_holidays_2025)[0].efficiency == 0


def test_efficiency_levels():
    assert planner.efficiency_level(50) == 'high'
    assert planner.efficiency_level(25) == 'medium'
    assert planner.efficiency_level(24) == 'low'


def test_smart_recommendations(sample_leaves, fr_holidays_2025):
    periods = planner.evaluate_periods(planner.default_planned_periods(2025), fr_holidays_2025)
    recs = planner.smart_recommendations(periods, sample_leaves, AppSettings(), [], fr_holidays_2025, 2025)

    names = [r['period'] for r in recs]
    assert names[:2] == ['November holidays', 'Christmas holidays']
    assert 'Remaining RTT' in names
    remaining_cp = next(r for r in recs if r['period'] == 'Remaining CP')
    assert remaining_cp['days'] == 30 - 7 - 1 - 13
