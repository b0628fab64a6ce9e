"""
Tests for the SQLite storage wrapper.
"""

import json
from datetime import date, timedelta

import pytest

import db
from models import AppSettings, CarryoverLeave, PayrollData, PublicHoliday


def test_leave_crud(storage, leave_factory):
    leave = leave_factory('cp', date(2025, 3, 10), date(2025, 3, 14), 5, notes='Ski', is_forecast=True)
    storage.add_leave(leave)

    stored = storage.get_leave(leave.id)
    assert stored.to_dict() == leave.to_dict()

    stored.working_days = 4.5
    stored.is_half_day = True
    stored.half_day_type = 'afternoon'
    storage.update_leave(stored)
    assert storage.get_leave(leave.id).working_days == 4.5
    assert storage.get_leave(leave.id).half_day_type == 'afternoon'

    storage.delete_leave(leave.id)
    assert storage.get_leave(leave.id) is None
    assert storage.get_leaves() == []


def test_duplicate_leave_id_is_rejected(storage, leave_factory):
    leave = leave_factory('rtt', date(2025, 2, 3))
    storage.add_leave(leave)
    with pytest.raises(db.StorageError):
        storage.add_leave(leave)


def test_leave_queries(storage, sample_leaves, leave_factory):
    storage.save_leaves(sample_leaves)
    storage.add_leave(leave_factory('cp', date(2024, 12, 30), date(2025, 1, 2), 3))

    assert len(storage.get_leaves()) == 6
    assert len(storage.get_leaves_by_year(2025)) == 5
    assert len(storage.get_leaves_by_year(2024)) == 1
    assert {l.type for l in storage.get_leaves_by_type('cp')} == {'cp'}
    assert len(storage.get_leaves_by_type('cp')) == 3

    storage.save_leaves(sample_leaves[:2])
    assert len(storage.get_leaves()) == 2

    storage.clear_leaves()
    assert storage.get_leaves() == []


def test_settings(storage, monkeypatch):
    monkeypatch.setenv('DEFAULT_COUNTRY', 'BE')
    assert storage.get_settings() is None
    assert storage.get_settings_or_default().country == 'BE'

    settings = AppSettings(country='FR', subdivision='67', cp_target_per_year=25, dark_mode=True)
    settings.set_quota('rtt', 12)
    storage.save_settings(settings)

    loaded = storage.get_settings()
    assert loaded.subdivision == '67'
    assert loaded.dark_mode
    assert loaded.cp_target_per_year == 25
    assert loaded.quota_for('rtt') == 12


def test_balances_and_holidays(storage):
    balances = [{'type': 'cp', 'total': 25, 'taken': 3, 'remaining': 22, 'year': 2025}]
    storage.save_balances(balances)
    assert storage.get_balances() == balances

    custom = [PublicHoliday(date(2025, 8, 1), 'Summer closing', id='2025-08-01')]
    storage.save_holidays(custom)
    assert storage.get_holidays() == custom


def test_corrupted_document_raises(storage):
    with storage.conn:
        storage.conn.execute("INSERT INTO settings(id, data) VALUES (?, ?)", (db.SETTINGS_KEY, '{oops'))
    with pytest.raises(db.StorageError):
        storage.get_settings()


def test_settings_document_leaves_holidays_to_their_store(storage):
    holiday = PublicHoliday(date(2025, 8, 1), 'Summer closing', id='2025-08-01')
    storage.save_holidays([holiday])
    settings = AppSettings(public_holidays=[holiday])
    storage.save_settings(settings)

    assert 'publicHolidays' not in storage._get_document('settings', db.SETTINGS_KEY)
    assert storage.get_settings().public_holidays == [holiday]

    storage.save_holidays([])
    assert storage.get_settings().public_holidays == []


def test_corrupted_payroll_entry_raises(storage):
    with storage.conn:
        storage.conn.execute(
            "INSERT INTO payroll(id, year, month, data) VALUES (?, ?, ?, ?)", ('broken', 2025, 3, '{oops'),
        )
    with pytest.raises(db.StorageError):
        storage.get_payroll_data(2025)
    with pytest.raises(db.StorageError):
        storage.get_payroll_data()


def test_carryover_crud(storage):
    first = CarryoverLeave('cp', 2024, 3, 'Left over')
    second = CarryoverLeave('rtt', 2023, 1)
    storage.add_carryover_leave(first)
    storage.add_carryover_leave(second)

    assert [c.id for c in storage.get_carryover_leaves()] == [first.id, second.id]
    assert storage.get_carryover_leaves_by_type('rtt') == [second]
    assert storage.get_carryover_leaves_by_year(2024) == [first]

    first.days = 4
    storage.update_carryover_leave(first)
    assert storage.get_carryover_leave(first.id).days == 4

    storage.delete_carryover_leave(second.id)
    assert storage.get_carryover_leave(second.id) is None

    storage.save_carryover_leaves([second])
    assert storage.get_carryover_leaves() == [second]

    storage.clear_carryover_leaves()
    assert storage.get_carryover_leaves() == []


def test_payroll_entries(storage):
    march = PayrollData(month=3, year=2025, rtt_taken_in_month=2, cp_taken_previous_month=['2025-02-17'])
    storage.save_payroll_entry(march)
    storage.save_payroll_entry(PayrollData(month=1, year=2024))

    assert storage.get_payroll_data(2025) == [march]
    assert len(storage.get_payroll_data()) == 2

    march.rtt_taken_in_month = 3
    storage.save_payroll_entry(march)
    assert storage.get_payroll_data(2025)[0].rtt_taken_in_month == 3

    storage.delete_payroll_entry(march.id)
    assert storage.get_payroll_data(2025) == []


def test_export_import_round_trip(storage, sample_leaves):
    storage.save_leaves(sample_leaves)
    storage.save_settings(AppSettings(country='FR', subdivision='57'))
    storage.add_carryover_leave(CarryoverLeave('cp', 2024, 3))
    storage.save_payroll_entry(PayrollData(month=3, year=2025))
    exported = storage.export_data()

    storage.clear_all_data()
    assert storage.get_leaves() == []
    assert storage.get_settings() is None

    counts = storage.import_data(exported)

    assert counts == {'leaves': 5, 'carryovers': 1, 'holidays': 0, 'payroll': 1}
    by_id = {l.id: l.to_dict() for l in storage.get_leaves()}
    assert by_id == {l.id: l.to_dict() for l in sample_leaves}
    assert storage.get_settings().subdivision == '57'
    assert storage.get_carryover_leaves()[0].days == 3


def test_import_moves_settings_holidays_to_their_store(storage):
    backup = json.dumps({
        'leaves': [],
        'settings': {'country': 'FR', 'publicHolidays': [{'date': '2025-08-01', 'name': 'Summer closing'}]},
    })

    counts = storage.import_data(backup)

    assert counts['holidays'] == 1
    assert [h.date for h in storage.get_holidays()] == [date(2025, 8, 1)]
    assert 'publicHolidays' not in storage._get_document('settings', db.SETTINGS_KEY)


def test_import_replaces_existing_data(storage, sample_leaves, leave_factory):
    exported = storage.export_data()
    storage.add_leave(leave_factory('rtt', date(2025, 6, 2)))

    storage.import_data(exported)
    assert storage.get_leaves() == []


def test_invalid_import_keeps_data(storage, sample_leaves):
    storage.save_leaves(sample_leaves)
    with pytest.raises(ValueError):
        storage.import_data('{"settings": {}}')
    assert len(storage.get_leaves()) == 5


def test_database_stats(storage, sample_leaves):
    stats = storage.get_database_stats()
    assert stats['total_leaves'] == 0
    assert stats['last_backup'] is None

    storage.save_leaves(sample_leaves)
    storage.backup()
    stats = storage.get_database_stats()
    assert stats['total_leaves'] == 5
    assert stats['total_size'] > 0
    assert stats['last_backup'] is not None


def test_backups_keep_five_dated_copies(storage, sample_leaves):
    storage.save_leaves(sample_leaves)
    start = date(2025, 1, 1)
    for offset in range(7):
        storage.backup(today=start + timedelta(days=offset))

    backups = storage.list_backups()
    assert backups[0]['key'] == db.LATEST_BACKUP_KEY
    dated = [b['date'] for b in backups[1:]]
    assert dated == ['2025-01-07', '2025-01-06', '2025-01-05', '2025-01-04', '2025-01-03']


def test_restore_latest_backup(storage, sample_leaves):
    assert storage.restore_latest_backup() is False

    storage.save_leaves(sample_leaves)
    storage.backup()
    storage.clear_all_data()

    assert storage.restore_latest_backup() is True
    assert len(storage.get_leaves()) == 5


def test_backups_survive_clear_all(storage, sample_leaves):
    storage.save_leaves(sample_leaves)
    storage.backup()
    storage.clear_all_data()
    assert len(storage.list_backups()) == 2
