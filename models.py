"""
Plain records for the leave tracker.
Each record converts to and from the camelCase JSON shape used in backups.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


LEAVE_TYPE_CODES = ('cp', 'rtt', 'cet', 'pipe', 'sick')
HALF_DAY_TYPES = ('morning', 'afternoon')


def new_id() -> str:
    return uuid.uuid4().hex


def now_iso() -> str:
    return datetime.now().isoformat(timespec='seconds')


def _pick(data: Dict[str, Any], camel: str, snake: str, default=None):
    """Read a key in camelCase, falling back to snake_case."""
    if camel in data:
        return data[camel]
    return data.get(snake, default)


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Tolerate full ISO timestamps ("2025-07-14T00:00:00.000Z")
    return date.fromisoformat(str(value)[:10])


@dataclass
class LeaveEntry:
    type: str
    start_date: date
    end_date: date
    working_days: float
    notes: str = ''
    is_half_day: bool = False
    half_day_type: str = 'morning'
    is_forecast: bool = False
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and start <= self.end_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'startDate': self.start_date.isoformat(),
            'endDate': self.end_date.isoformat(),
            'workingDays': self.working_days,
            'notes': self.notes,
            'isHalfDay': self.is_half_day,
            'halfDayType': self.half_day_type,
            'isForecast': self.is_forecast,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LeaveEntry':
        start = _as_date(_pick(data, 'startDate', 'start_date'))
        end = _pick(data, 'endDate', 'end_date')
        return cls(
            id=str(data.get('id') or new_id()),
            type=data['type'],
            start_date=start,
            end_date=_as_date(end) if end else start,
            working_days=float(_pick(data, 'workingDays', 'working_days', 0) or 0),
            # Older exports used "description" instead of "notes"
            notes=data.get('notes') or data.get('description') or '',
            is_half_day=bool(_pick(data, 'isHalfDay', 'is_half_day', False)),
            half_day_type=_pick(data, 'halfDayType', 'half_day_type') or 'morning',
            is_forecast=bool(_pick(data, 'isForecast', 'is_forecast', False)),
            created_at=_pick(data, 'createdAt', 'created_at') or now_iso(),
            updated_at=_pick(data, 'updatedAt', 'updated_at') or now_iso(),
        )


@dataclass
class CarryoverLeave:
    type: str
    year: int
    days: float
    description: str = ''
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.type,
            'year': self.year,
            'days': self.days,
            'description': self.description,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CarryoverLeave':
        return cls(
            id=str(data.get('id') or new_id()),
            type=data['type'],
            year=int(data['year']),
            days=float(data.get('days', 0) or 0),
            description=data.get('description') or '',
            created_at=_pick(data, 'createdAt', 'created_at') or now_iso(),
            updated_at=_pick(data, 'updatedAt', 'updated_at') or now_iso(),
        )


@dataclass
class PublicHoliday:
    date: date
    name: str
    country: str = 'FR'
    id: str = ''

    @property
    def year(self) -> int:
        return self.date.year

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id or self.date.isoformat(),
            'date': self.date.isoformat(),
            'name': self.name,
            'year': self.year,
            'country': self.country,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PublicHoliday':
        return cls(
            id=str(data.get('id') or ''),
            date=_as_date(data['date']),
            name=data.get('name') or '',
            country=data.get('country') or 'FR',
        )


@dataclass
class LeaveQuota:
    type: str
    yearly_quota: float

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type, 'yearlyQuota': self.yearly_quota}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LeaveQuota':
        return cls(type=data['type'], yearly_quota=float(_pick(data, 'yearlyQuota', 'yearly_quota', 0) or 0))


def default_quotas() -> List[LeaveQuota]:
    return [
        LeaveQuota('cp', 25),
        LeaveQuota('rtt', 10),
        LeaveQuota('cet', 5),
        LeaveQuota('sick', 0),
    ]


@dataclass
class AppSettings:
    first_day_of_week: str = 'monday'
    country: str = 'FR'
    subdivision: Optional[str] = None
    public_holidays: List[PublicHoliday] = field(default_factory=list)
    quotas: List[LeaveQuota] = field(default_factory=default_quotas)
    dark_mode: bool = False
    notifications: bool = True
    cp_target_per_year: float = 27
    rtt_deadline_month: int = 2

    def quota_for(self, leave_type: str, default: float = 0) -> float:
        for quota in self.quotas:
            if quota.type == leave_type:
                return quota.yearly_quota
        return default

    def set_quota(self, leave_type: str, value: float) -> None:
        for quota in self.quotas:
            if quota.type == leave_type:
                quota.yearly_quota = value
                return
        self.quotas.append(LeaveQuota(leave_type, value))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'firstDayOfWeek': self.first_day_of_week,
            'country': self.country,
            'subdivision': self.subdivision,
            'publicHolidays': [h.to_dict() for h in self.public_holidays],
            'quotas': [q.to_dict() for q in self.quotas],
            'darkMode': self.dark_mode,
            'notifications': self.notifications,
            'cpTargetPerYear': self.cp_target_per_year,
            'rttDeadlineMonth': self.rtt_deadline_month,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppSettings':
        quotas = _pick(data, 'quotas', 'quotas')
        return cls(
            first_day_of_week=_pick(data, 'firstDayOfWeek', 'first_day_of_week') or 'monday',
            country=data.get('country') or 'FR',
            subdivision=data.get('subdivision') or None,
            public_holidays=[PublicHoliday.from_dict(h) for h in _pick(data, 'publicHolidays', 'public_holidays') or []],
            quotas=[LeaveQuota.from_dict(q) for q in quotas] if quotas else default_quotas(),
            dark_mode=bool(_pick(data, 'darkMode', 'dark_mode', False)),
            notifications=bool(data.get('notifications', True)),
            cp_target_per_year=float(_pick(data, 'cpTargetPerYear', 'cp_target_per_year', 27)),
            rtt_deadline_month=int(_pick(data, 'rttDeadlineMonth', 'rtt_deadline_month', 2)),
        )


@dataclass
class PayrollData:
    month: int
    year: int
    cp_upcoming: float = 0
    cp_elapsed: float = 0
    cp_remainder: float = 0
    rtt_taken_in_month: float = 0
    cet_balance: float = 0
    cp_taken_previous_month: List[str] = field(default_factory=list)
    public_holidays: List[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'month': self.month,
            'year': self.year,
            'cpUpcoming': self.cp_upcoming,
            'cpElapsed': self.cp_elapsed,
            'cpRemainder': self.cp_remainder,
            'rttTakenInMonth': self.rtt_taken_in_month,
            'cetBalance': self.cet_balance,
            'cpTakenPreviousMonth': list(self.cp_taken_previous_month),
            'publicHolidays': list(self.public_holidays),
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PayrollData':
        return cls(
            id=str(data.get('id') or new_id()),
            month=int(data['month']),
            year=int(data['year']),
            cp_upcoming=float(_pick(data, 'cpUpcoming', 'cp_upcoming', 0) or 0),
            cp_elapsed=float(_pick(data, 'cpElapsed', 'cp_elapsed', 0) or 0),
            cp_remainder=float(_pick(data, 'cpRemainder', 'cp_remainder', 0) or 0),
            rtt_taken_in_month=float(_pick(data, 'rttTakenInMonth', 'rtt_taken_in_month', 0) or 0),
            cet_balance=float(_pick(data, 'cetBalance', 'cet_balance', 0) or 0),
            cp_taken_previous_month=list(_pick(data, 'cpTakenPreviousMonth', 'cp_taken_previous_month') or []),
            public_holidays=list(_pick(data, 'publicHolidays', 'public_holidays') or []),
            created_at=_pick(data, 'createdAt', 'created_at') or now_iso(),
            updated_at=_pick(data, 'updatedAt', 'updated_at') or now_iso(),
        )
