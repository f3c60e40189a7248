"""
Data structures shared by the visitor management modules.

Rows come out of the database manager as plain dicts; the managers convert
them to these dataclasses at their public boundary.
"""

from dataclasses import dataclass, asdict
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'
DATE_FORMAT = '%Y-%m-%d'


class VisitorType(Enum):
    """Visitor classification chosen at check-in."""
    GENERAL = 'general'
    CONTRACTOR = 'contractor'

    @classmethod
    def parse(cls, value: Any) -> 'VisitorType':
        """Accept the enum itself or its string value. 'visitor' is the legacy name for general."""
        if isinstance(value, cls):
            return value
        text = str(value or '').strip().lower()
        if text == 'visitor':
            return cls.GENERAL
        return cls(text)


class TrainingType(Enum):
    NONE = 'none'
    CONTRACTOR = 'contractor'
    GENERAL = 'general'


class ComplianceStatus(Enum):
    NO_RECORD = 'no_record'
    CURRENT = 'current'
    EXPIRING_SOON = 'expiring_soon'
    EXPIRED = 'expired'


def parse_date(value: Any) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value)[:10], DATE_FORMAT).date()


def parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    return datetime.strptime(str(value)[:19], TIMESTAMP_FORMAT)


@dataclass
class Visitor:
    """A person who may check in, keyed by name."""
    id: Optional[int]
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    badge_number: Optional[str] = None
    staff_contact: Optional[str] = None
    visitor_type: VisitorType = VisitorType.GENERAL
    training_type: TrainingType = TrainingType.NONE
    last_training_date: Optional[date] = None
    training_expires_date: Optional[date] = None
    contractor_orientation_completed: bool = False
    general_orientation_completed: bool = False
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Visitor':
        return cls(
            id=row['id'],
            name=row['name'],
            email=row.get('email'),
            phone=row.get('phone'),
            company=row.get('company'),
            badge_number=row.get('badge_number'),
            staff_contact=row.get('staff_contact'),
            visitor_type=VisitorType(row.get('visitor_type') or 'general'),
            training_type=TrainingType(row.get('training_type') or 'none'),
            last_training_date=parse_date(row.get('last_training_date')),
            training_expires_date=parse_date(row.get('training_expires_date')),
            contractor_orientation_completed=bool(row.get('contractor_orientation_completed')),
            general_orientation_completed=bool(row.get('general_orientation_completed')),
            created_at=row.get('created_at')
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['visitor_type'] = self.visitor_type.value
        data['training_type'] = self.training_type.value
        data['last_training_date'] = self.last_training_date.isoformat() if self.last_training_date else None
        data['training_expires_date'] = self.training_expires_date.isoformat() if self.training_expires_date else None
        return data


@dataclass
class PresenceRecord:
    """One physical visit, from check-in to check-out."""
    id: Optional[int]
    visitor_id: int
    check_in_time: datetime
    check_out_time: Optional[datetime] = None
    device_id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.check_out_time is None

    def duration_minutes(self, now: datetime) -> int:
        """Whole minutes between check-in and check-out (or ``now`` while open)."""
        end = self.check_out_time or now
        return max(0, int((end - self.check_in_time).total_seconds() // 60))

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'PresenceRecord':
        return cls(
            id=row.get('visit_id', row.get('id')),
            visitor_id=row['visitor_id'],
            check_in_time=parse_timestamp(row['check_in_time']),
            check_out_time=parse_timestamp(row.get('check_out_time')),
            device_id=row.get('device_id')
        )


@dataclass
class ComplianceSnapshot:
    """Training status derived from a visitor's stored dates. Never persisted."""
    status: ComplianceStatus
    last_training_date: Optional[date] = None
    expires_on: Optional[date] = None
    days_remaining: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'last_training_date': self.last_training_date.isoformat() if self.last_training_date else None,
            'training_expires_date': self.expires_on.isoformat() if self.expires_on else None,
            'days_remaining': self.days_remaining
        }


@dataclass
class OrientationDecision:
    """Outcome of the orientation check made at check-in."""
    needs_orientation: bool
    training_expired: bool = False
    warning: Optional[str] = None
