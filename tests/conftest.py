from datetime import date

import pytest

import calc
import db
from models import LeaveEntry


@pytest.fixture
def fr_holidays_2025():
    """French public holidays for 2025."""
    return calc.get_holidays_for_year(2025, 'FR')


@pytest.fixture
def storage(tmp_path):
    """A storage backed by a throwaway SQLite file."""
    store = db.LeaveStorage(str(tmp_path / "leaves.db"))
    yield store
    store.close()


def make_leave(leave_type, start, end=None, days=1, **kwargs):
    return LeaveEntry(type=leave_type, start_date=start, end_date=end or start, working_days=days, **kwargs)


@pytest.fixture
def leave_factory():
    return make_leave


@pytest.fixture
def sample_leaves():
    """A small 2025 history across RTT, CP and CET."""
    return [
        make_leave('rtt', date(2025, 2, 3), date(2025, 2, 4), 2),
        make_leave('cp', date(2025, 3, 10), date(2025, 3, 14), 5),
        make_leave('cet', date(2025, 4, 18), days=1),
        make_leave('pipe', date(2025, 5, 5), days=1),
        make_leave('cp', date(2025, 9, 1), date(2025, 9, 2), 2, is_forecast=True),
    ]
