"""
Local persistence for the leave tracker.
SQLite tables play the role of the object stores (leaves, settings,
balances, holidays, carryover, payroll) plus rolling safety backups.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import streamlit as st

import calc
from models import AppSettings, CarryoverLeave, LeaveEntry, PayrollData, PublicHoliday

logger = logging.getLogger(__name__)

SETTINGS_KEY = 'app-settings'
BALANCES_KEY = 'current-balances'
HOLIDAYS_KEY = 'custom-holidays'
LATEST_BACKUP_KEY = 'latest'
DATED_BACKUP_PREFIX = 'backup-'
MAX_DATED_BACKUPS = 5

SCHEMA = """
CREATE TABLE IF NOT EXISTS leaves (
  id TEXT PRIMARY KEY,
  type TEXT NOT NULL,
  start_date TEXT NOT NULL,   -- YYYY-MM-DD
  end_date TEXT NOT NULL,     -- YYYY-MM-DD
  working_days REAL NOT NULL DEFAULT 0,
  notes TEXT DEFAULT '',
  is_half_day INTEGER NOT NULL DEFAULT 0,
  half_day_type TEXT CHECK(half_day_type IN ('morning','afternoon')) DEFAULT 'morning',
  is_forecast INTEGER NOT NULL DEFAULT 0,
  created_at TEXT,
  updated_at TEXT
);
CREATE INDEX IF NOT EXISTS leaves_by_date ON leaves(start_date);
CREATE INDEX IF NOT EXISTS leaves_by_type ON leaves(type);

CREATE TABLE IF NOT EXISTS carryover (
  id TEXT PRIMARY KEY,
  type TEXT NOT NULL,
  year INTEGER NOT NULL,
  days REAL NOT NULL,
  description TEXT DEFAULT '',
  created_at TEXT,
  updated_at TEXT
);
CREATE INDEX IF NOT EXISTS carryover_by_type ON carryover(type);
CREATE INDEX IF NOT EXISTS carryover_by_year ON carryover(year);

CREATE TABLE IF NOT EXISTS settings (id TEXT PRIMARY KEY, data TEXT NOT NULL);
CREATE TABLE IF NOT EXISTS balances (id TEXT PRIMARY KEY, data TEXT NOT NULL);
CREATE TABLE IF NOT EXISTS holidays (id TEXT PRIMARY KEY, data TEXT NOT NULL);

CREATE TABLE IF NOT EXISTS payroll (
  id TEXT PRIMARY KEY,
  year INTEGER NOT NULL,
  month INTEGER NOT NULL,
  data TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS backups (
  key TEXT PRIMARY KEY,
  created_at TEXT NOT NULL,
  data TEXT NOT NULL
);
"""

DATA_TABLES = ('leaves', 'settings', 'balances', 'holidays', 'carryover', 'payroll')

LEAVE_COLUMNS = (
    'id', 'type', 'start_date', 'end_date', 'working_days', 'notes',
    'is_half_day', 'half_day_type', 'is_forecast', 'created_at', 'updated_at',
)
CARRYOVER_COLUMNS = ('id', 'type', 'year', 'days', 'description', 'created_at', 'updated_at')


class StorageError(Exception):
    """Raised when the local database cannot be read or written."""


def get_secret(name: str, default=None):
    # prefer Streamlit secrets, fallback to env vars
    try:
        return st.secrets[name]
    except Exception:
        return os.getenv(name, default)


def get_db_path() -> str:
    return get_secret('LEAVE_TRACKER_DB_PATH', 'leave_tracker.db')


def default_settings() -> AppSettings:
    return AppSettings(
        country=get_secret('DEFAULT_COUNTRY', 'FR'),
        subdivision=get_secret('DEFAULT_SUBDIVISION') or None,
    )


def _settings_document(settings: AppSettings) -> dict:
    """Settings as stored; custom holidays have their own document."""
    data = settings.to_dict()
    data.pop('publicHolidays', None)
    return data


def _leave_row(leave: LeaveEntry) -> tuple:
    return (
        leave.id, leave.type, leave.start_date.isoformat(), leave.end_date.isoformat(),
        leave.working_days, leave.notes, int(leave.is_half_day), leave.half_day_type,
        int(leave.is_forecast), leave.created_at, leave.updated_at,
    )


def _leave_from_row(row: sqlite3.Row) -> LeaveEntry:
    return LeaveEntry(
        id=row['id'],
        type=row['type'],
        start_date=date.fromisoformat(row['start_date']),
        end_date=date.fromisoformat(row['end_date']),
        working_days=row['working_days'],
        notes=row['notes'] or '',
        is_half_day=bool(row['is_half_day']),
        half_day_type=row['half_day_type'] or 'morning',
        is_forecast=bool(row['is_forecast']),
        created_at=row['created_at'],
        updated_at=row['updated_at'],
    )


def _carryover_row(carryover: CarryoverLeave) -> tuple:
    return (
        carryover.id, carryover.type, carryover.year, carryover.days,
        carryover.description, carryover.created_at, carryover.updated_at,
    )


def _carryover_from_row(row: sqlite3.Row) -> CarryoverLeave:
    return CarryoverLeave(
        id=row['id'],
        type=row['type'],
        year=row['year'],
        days=row['days'],
        description=row['description'] or '',
        created_at=row['created_at'],
        updated_at=row['updated_at'],
    )


class LeaveStorage:
    """CRUD over the local leave database."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or get_db_path()
        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e
        logger.info("Leave database ready at %s", self.db_path)

    def close(self) -> None:
        self.conn.close()

    @contextmanager
    def _transaction(self):
        try:
            with self.conn:
                yield self.conn
        except sqlite3.Error as e:
            logger.error("Database write failed: %s", e)
            raise StorageError(str(e)) from e

    def _query(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error("Database read failed: %s", e)
            raise StorageError(str(e)) from e

    def _get_document(self, table: str, key: str) -> Optional[Any]:
        rows = self._query(f"SELECT data FROM {table} WHERE id=?", (key,))
        if not rows:
            return None
        try:
            return json.loads(rows[0]['data'])
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupted {table} document {key!r}: {e}") from e

    def _put_document(self, conn: sqlite3.Connection, table: str, key: str, value: Any) -> None:
        conn.execute(
            f"INSERT OR REPLACE INTO {table}(id, data) VALUES (?, ?)",
            (key, json.dumps(value, ensure_ascii=False, default=str)),
        )

    # Leaves

    def get_leaves(self) -> List[LeaveEntry]:
        return [_leave_from_row(r) for r in self._query("SELECT * FROM leaves ORDER BY start_date, id")]

    def get_leave(self, leave_id: str) -> Optional[LeaveEntry]:
        rows = self._query("SELECT * FROM leaves WHERE id=?", (leave_id,))
        return _leave_from_row(rows[0]) if rows else None

    def add_leave(self, leave: LeaveEntry) -> None:
        placeholders = ','.join('?' * len(LEAVE_COLUMNS))
        with self._transaction() as conn:
            conn.execute(f"INSERT INTO leaves({','.join(LEAVE_COLUMNS)}) VALUES ({placeholders})", _leave_row(leave))
        logger.info("Added %s leave %s (%s -> %s)", leave.type, leave.id, leave.start_date, leave.end_date)

    def update_leave(self, leave: LeaveEntry) -> None:
        placeholders = ','.join('?' * len(LEAVE_COLUMNS))
        with self._transaction() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO leaves({','.join(LEAVE_COLUMNS)}) VALUES ({placeholders})",
                _leave_row(leave),
            )

    def delete_leave(self, leave_id: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM leaves WHERE id=?", (leave_id,))
        logger.info("Deleted leave %s", leave_id)

    def save_leaves(self, leaves: List[LeaveEntry]) -> None:
        """Replace every stored leave with ``leaves``."""
        with self._transaction() as conn:
            self._replace_leaves(conn, leaves)

    def _replace_leaves(self, conn: sqlite3.Connection, leaves: List[LeaveEntry]) -> None:
        placeholders = ','.join('?' * len(LEAVE_COLUMNS))
        conn.execute("DELETE FROM leaves")
        conn.executemany(
            f"INSERT INTO leaves({','.join(LEAVE_COLUMNS)}) VALUES ({placeholders})",
            [_leave_row(l) for l in leaves],
        )

    def clear_leaves(self) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM leaves")

    def get_leaves_by_year(self, year: int) -> List[LeaveEntry]:
        rows = self._query(
            "SELECT * FROM leaves WHERE start_date >= ? AND start_date < ? ORDER BY start_date",
            (f"{year}-01-01", f"{year + 1}-01-01"),
        )
        return [_leave_from_row(r) for r in rows]

    def get_leaves_by_type(self, leave_type: str) -> List[LeaveEntry]:
        rows = self._query("SELECT * FROM leaves WHERE type=? ORDER BY start_date", (leave_type,))
        return [_leave_from_row(r) for r in rows]

    # Settings

    def get_settings(self) -> Optional[AppSettings]:
        data = self._get_document('settings', SETTINGS_KEY)
        if not data:
            return None
        settings = AppSettings.from_dict(data)
        settings.public_holidays = self.get_holidays()
        return settings

    def get_settings_or_default(self) -> AppSettings:
        return self.get_settings() or default_settings()

    def save_settings(self, settings: AppSettings) -> None:
        with self._transaction() as conn:
            self._put_document(conn, 'settings', SETTINGS_KEY, _settings_document(settings))

    # Balances

    def get_balances(self) -> List[Dict[str, Any]]:
        return self._get_document('balances', BALANCES_KEY) or []

    def save_balances(self, balances: List[Dict[str, Any]]) -> None:
        with self._transaction() as conn:
            self._put_document(conn, 'balances', BALANCES_KEY, balances)

    # Custom holidays

    def get_holidays(self) -> List[PublicHoliday]:
        return [PublicHoliday.from_dict(h) for h in self._get_document('holidays', HOLIDAYS_KEY) or []]

    def save_holidays(self, holiday_list: List[PublicHoliday]) -> None:
        with self._transaction() as conn:
            self._put_document(conn, 'holidays', HOLIDAYS_KEY, [h.to_dict() for h in holiday_list])

    # Carry-over

    def get_carryover_leaves(self) -> List[CarryoverLeave]:
        return [_carryover_from_row(r) for r in self._query("SELECT * FROM carryover ORDER BY year DESC, type")]

    def get_carryover_leave(self, carryover_id: str) -> Optional[CarryoverLeave]:
        rows = self._query("SELECT * FROM carryover WHERE id=?", (carryover_id,))
        return _carryover_from_row(rows[0]) if rows else None

    def add_carryover_leave(self, carryover: CarryoverLeave) -> None:
        placeholders = ','.join('?' * len(CARRYOVER_COLUMNS))
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO carryover({','.join(CARRYOVER_COLUMNS)}) VALUES ({placeholders})",
                _carryover_row(carryover),
            )

    def update_carryover_leave(self, carryover: CarryoverLeave) -> None:
        placeholders = ','.join('?' * len(CARRYOVER_COLUMNS))
        with self._transaction() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO carryover({','.join(CARRYOVER_COLUMNS)}) VALUES ({placeholders})",
                _carryover_row(carryover),
            )

    def delete_carryover_leave(self, carryover_id: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM carryover WHERE id=?", (carryover_id,))

    def save_carryover_leaves(self, carryovers: List[CarryoverLeave]) -> None:
        with self._transaction() as conn:
            self._replace_carryovers(conn, carryovers)

    def _replace_carryovers(self, conn: sqlite3.Connection, carryovers: List[CarryoverLeave]) -> None:
        placeholders = ','.join('?' * len(CARRYOVER_COLUMNS))
        conn.execute("DELETE FROM carryover")
        conn.executemany(
            f"INSERT INTO carryover({','.join(CARRYOVER_COLUMNS)}) VALUES ({placeholders})",
            [_carryover_row(c) for c in carryovers],
        )

    def clear_carryover_leaves(self) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM carryover")

    def get_carryover_leaves_by_type(self, leave_type: str) -> List[CarryoverLeave]:
        return [_carryover_from_row(r) for r in self._query("SELECT * FROM carryover WHERE type=?", (leave_type,))]

    def get_carryover_leaves_by_year(self, year: int) -> List[CarryoverLeave]:
        return [_carryover_from_row(r) for r in self._query("SELECT * FROM carryover WHERE year=?", (year,))]

    # Payroll

    def get_payroll_data(self, year: Optional[int] = None) -> List[PayrollData]:
        if year is None:
            rows = self._query("SELECT data FROM payroll ORDER BY year, month")
        else:
            rows = self._query("SELECT data FROM payroll WHERE year=? ORDER BY month", (year,))
        try:
            return [PayrollData.from_dict(json.loads(r['data'])) for r in rows]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Corrupted payroll entry: {e}") from e

    def save_payroll_entry(self, entry: PayrollData) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO payroll(id, year, month, data) VALUES (?, ?, ?, ?)",
                (entry.id, entry.year, entry.month, json.dumps(entry.to_dict(), ensure_ascii=False)),
            )

    def delete_payroll_entry(self, entry_id: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM payroll WHERE id=?", (entry_id,))

    # Export / import

    def export_data(self) -> str:
        return calc.serialize_backup(
            self.get_leaves(),
            self.get_settings(),
            self.get_balances(),
            self.get_holidays(),
            self.get_carryover_leaves(),
            self.get_payroll_data(),
        )

    def import_data(self, json_data: str) -> Dict[str, int]:
        """
        Replace all data with the content of a JSON backup.

        Returns:
            Number of imported records per store

        Raises:
            ValueError: when the payload is not a valid backup
        """
        data = calc.deserialize_backup(json_data)
        holiday_list = data['holidays']
        # Older backups kept custom holidays inside the settings
        if not holiday_list and data['settings'] is not None:
            holiday_list = data['settings'].public_holidays

        with self._transaction() as conn:
            for table in DATA_TABLES:
                conn.execute(f"DELETE FROM {table}")
            self._replace_leaves(conn, data['leaves'])
            if data['settings'] is not None:
                self._put_document(conn, 'settings', SETTINGS_KEY, _settings_document(data['settings']))
            if data['balances']:
                self._put_document(conn, 'balances', BALANCES_KEY, data['balances'])
            if holiday_list:
                self._put_document(conn, 'holidays', HOLIDAYS_KEY, [h.to_dict() for h in holiday_list])
            self._replace_carryovers(conn, data['carryovers'])
            for entry in data['payroll']:
                conn.execute(
                    "INSERT OR REPLACE INTO payroll(id, year, month, data) VALUES (?, ?, ?, ?)",
                    (entry.id, entry.year, entry.month, json.dumps(entry.to_dict(), ensure_ascii=False)),
                )

        counts = {
            'leaves': len(data['leaves']),
            'carryovers': len(data['carryovers']),
            'holidays': len(holiday_list),
            'payroll': len(data['payroll']),
        }
        logger.info("Imported backup version %s: %s", data['version'], counts)
        return counts

    def clear_all_data(self) -> None:
        with self._transaction() as conn:
            for table in DATA_TABLES:
                conn.execute(f"DELETE FROM {table}")
        logger.warning("All leave data cleared")

    def get_database_stats(self) -> Dict[str, Any]:
        leaves = self.get_leaves()
        rows = self._query("SELECT created_at FROM backups WHERE key=?", (LATEST_BACKUP_KEY,))
        return {
            'total_leaves': len(leaves),
            'total_size': len(json.dumps([l.to_dict() for l in leaves]).encode('utf-8')),
            'last_backup': rows[0]['created_at'] if rows else None,
        }

    # Safety backups

    def backup(self, today: Optional[date] = None) -> None:
        """Store the latest copy plus one dated copy, keeping the newest dated ones."""
        today = today or date.today()
        data = self.export_data()
        created_at = datetime.now().isoformat(timespec='seconds')
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO backups(key, created_at, data) VALUES (?, ?, ?)",
                (LATEST_BACKUP_KEY, created_at, data),
            )
            conn.execute(
                "INSERT OR REPLACE INTO backups(key, created_at, data) VALUES (?, ?, ?)",
                (f"{DATED_BACKUP_PREFIX}{today.isoformat()}", created_at, data),
            )
            stale = conn.execute(
                "SELECT key FROM backups WHERE key LIKE ? ORDER BY key DESC LIMIT -1 OFFSET ?",
                (f"{DATED_BACKUP_PREFIX}%", MAX_DATED_BACKUPS),
            ).fetchall()
            conn.executemany("DELETE FROM backups WHERE key=?", [(r['key'],) for r in stale])
        logger.info("Backup written (%d bytes)", len(data))

    def list_backups(self) -> List[Dict[str, Any]]:
        rows = self._query("SELECT key, created_at, length(data) AS size FROM backups")
        latest = [r for r in rows if r['key'] == LATEST_BACKUP_KEY]
        dated = sorted((r for r in rows if r['key'] != LATEST_BACKUP_KEY), key=lambda r: r['key'], reverse=True)
        return [
            {
                'key': r['key'],
                'date': r['created_at'] if r['key'] == LATEST_BACKUP_KEY else r['key'][len(DATED_BACKUP_PREFIX):],
                'size': r['size'],
            }
            for r in latest + dated
        ]

    def restore_latest_backup(self) -> bool:
        rows = self._query("SELECT data FROM backups WHERE key=?", (LATEST_BACKUP_KEY,))
        if not rows:
            rows = self._query(
                "SELECT data FROM backups WHERE key LIKE ? ORDER BY key DESC LIMIT 1",
                (f"{DATED_BACKUP_PREFIX}%",),
            )
        if not rows:
            return False
        self.import_data(rows[0]['data'])
        return True
