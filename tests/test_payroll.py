from datetime import date

import pytest

import payroll
from models import PayrollData


@pytest.fixture
def february_leaves(leave_factory):
    return [
        leave_factory('rtt', date(2025, 2, 3), date(2025, 2, 4), 2),
        leave_factory('cp', date(2025, 2, 17), date(2025, 2, 18), 2),
        leave_factory('cp', date(2025, 3, 10), date(2025, 3, 12), 3),
        leave_factory('cet', date(2025, 3, 14), days=1),
    ]


def test_previous_month():
    assert payroll.previous_month(1, 2025) == (12, 2024)
    assert payroll.previous_month(7, 2025) == (6, 2025)


def test_normalize_payroll_date():
    assert payroll.normalize_payroll_date('05/03/2025') == '2025-03-05'
    assert payroll.normalize_payroll_date('5-3-2025') == '2025-03-05'
    assert payroll.normalize_payroll_date(' 2025-03-05 ') == '2025-03-05'


def test_parse_date_lines():
    assert payroll.parse_date_lines("17/02/2025\n\n18-02-2025\n") == ['2025-02-17', '2025-02-18']
    with pytest.raises(ValueError):
        payroll.parse_date_lines("32/01/2025")


def test_status_thresholds():
    assert payroll.status_for(0.5) == 'valid'
    assert payroll.status_for(-1) == 'warning'
    assert payroll.status_for(1.5) == 'error'


def test_expected_figures(february_leaves):
    expected = payroll.expected_payroll_figures(february_leaves, 3, 2025)

    assert expected['rtt_taken_in_month'] == 2
    assert len(expected['rtt_leaves']) == 1
    assert expected['cp_taken_in_month'] == 3
    assert expected['cp_taken_previous_month'] == 2
    assert expected['cet_taken_in_month'] == 1


def test_matching_payslip_is_valid(february_leaves):
    data = PayrollData(
        month=3, year=2025,
        rtt_taken_in_month=2,
        cet_balance=1,
        cp_taken_previous_month=['2025-02-17', '2025-02-18'],
    )
    result = payroll.validate_payroll(data, february_leaves)

    assert result['score'] == 100
    assert result['status'] == 'valid'
    assert result['rtt_taken_in_month']['difference'] == 0
    assert result['cet_balance']['status'] == 'valid'


def test_mismatching_payslip(february_leaves):
    data = PayrollData(month=3, year=2025, rtt_taken_in_month=5, cp_taken_previous_month=['2025-02-17', '2025-02-18'])
    result = payroll.validate_payroll(data, february_leaves)

    assert result['rtt_taken_in_month']['status'] == 'error'
    assert result['cp_taken_previous_month']['status'] == 'valid'
    assert result['score'] == 50
    assert result['status'] == 'error'


def test_january_payslip_looks_at_december(leave_factory):
    leaves = [leave_factory('rtt', date(2024, 12, 23), days=1)]
    result = payroll.validate_payroll(PayrollData(month=1, year=2025, rtt_taken_in_month=1), leaves)
    assert result['rtt_taken_in_month']['computed'] == 1
