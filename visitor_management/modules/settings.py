"""
Core Settings Module - Facility Visitor Management System

Immutable configuration value handed to every manager at construction time.
It is built from one of the Flask configuration classes in ``config.py`` so
the managers never read module-level constants.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from visitor_management.modules.models import VisitorType

MISSING_DATE_POLICIES = ('today', 'reject')


@dataclass(frozen=True)
class VisitorTypeRequirements:
    """Per-type requirements for a visitor classification."""
    label: str
    requires_orientation: bool
    expiration_months: Optional[int] = None

    @property
    def expires(self) -> bool:
        return self.expiration_months is not None


@dataclass(frozen=True)
class CoreSettings:
    database_path: str
    timezone: str = 'America/Los_Angeles'
    training_expires_months: int = 12
    training_warning_days: int = 30
    auto_purge_enabled: bool = True
    auto_purge_months: int = 24
    import_missing_date_policy: str = 'today'
    recent_visits_limit: int = 20
    max_recent_visits: int = 500
    search_default_limit: int = 10
    export_max_rows: int = 1000
    clock: Optional[Callable[[], datetime]] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_config(cls, config_class, **overrides) -> 'CoreSettings':
        """Build settings from a Flask config class (or any object with the same attributes)."""
        values = {
            'database_path': str(getattr(config_class, 'DATABASE_PATH')),
            'timezone': getattr(config_class, 'TIMEZONE', 'America/Los_Angeles'),
            'training_expires_months': int(getattr(config_class, 'TRAINING_EXPIRES_MONTHS', 12)),
            'training_warning_days': int(getattr(config_class, 'TRAINING_WARNING_DAYS', 30)),
            'auto_purge_enabled': bool(getattr(config_class, 'AUTO_PURGE_ENABLED', True)),
            'auto_purge_months': int(getattr(config_class, 'AUTO_PURGE_MONTHS', 24)),
            'import_missing_date_policy': getattr(config_class, 'IMPORT_MISSING_DATE_POLICY', 'today'),
            'recent_visits_limit': int(getattr(config_class, 'RECENT_VISITS_LIMIT', 20)),
            'search_default_limit': int(getattr(config_class, 'SEARCH_DEFAULT_LIMIT', 10)),
            'export_max_rows': int(getattr(config_class, 'EXPORT_MAX_ROWS', 1000)),
        }
        values.update(overrides)
        return cls(**values)

    @property
    def visitor_types(self) -> Dict[VisitorType, VisitorTypeRequirements]:
        return {
            VisitorType.GENERAL: VisitorTypeRequirements(
                label='Visitor (General)',
                requires_orientation=False
            ),
            VisitorType.CONTRACTOR: VisitorTypeRequirements(
                label='Contractor',
                requires_orientation=True,
                expiration_months=self.training_expires_months
            ),
        }

    def requirements_for(self, visitor_type: VisitorType) -> VisitorTypeRequirements:
        return self.visitor_types[visitor_type]

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def now(self) -> datetime:
        """Current wall-clock time in the configured time zone, without tzinfo attached."""
        if self.clock is not None:
            return self.clock().replace(microsecond=0)
        return datetime.now(self.tzinfo).replace(tzinfo=None, microsecond=0)

    def today(self) -> date:
        return self.now().date()

    def validate(self) -> List[str]:
        errors = []

        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"Unknown time zone: {self.timezone}")

        if self.training_expires_months <= 0:
            errors.append("TRAINING_EXPIRES_MONTHS must be positive")
        if self.auto_purge_months <= 0:
            errors.append("AUTO_PURGE_MONTHS must be positive")
        if self.training_warning_days < 0:
            errors.append("TRAINING_WARNING_DAYS cannot be negative")
        if self.import_missing_date_policy not in MISSING_DATE_POLICIES:
            errors.append(
                f"IMPORT_MISSING_DATE_POLICY must be one of {', '.join(MISSING_DATE_POLICIES)}"
            )

        return errors
