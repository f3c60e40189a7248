"""
Training Compliance Module - Facility Visitor Management System

Computes contractor certification status and decides whether a visitor has
to complete an orientation before checking in.

Lifecycle (derived, never stored as a state column):
- NONE -> CONTRACTOR_CURRENT when contractor orientation is completed
- NONE -> GENERAL_COMPLETE when general orientation is completed
- CONTRACTOR_CURRENT -> CONTRACTOR_EXPIRED once today is past the expiration date
- CONTRACTOR_EXPIRED -> CONTRACTOR_CURRENT when orientation is completed again

General orientation never expires. Contractor expiration is always
``last_training_date + training_expires_months``, whether the date comes from
a check-in, a manual admin edit or a CSV import.
"""

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Union
import logging

from dateutil.relativedelta import relativedelta

from visitor_management.modules.errors import ValidationError
from visitor_management.modules.models import (
    ComplianceSnapshot, ComplianceStatus, OrientationDecision, TrainingType,
    Visitor, VisitorType, DATE_FORMAT, TIMESTAMP_FORMAT
)


def _display_date(value: date) -> str:
    return f"{value:%b} {value.day}, {value.year}"


class TrainingComplianceCalculator:
    """Certification status, orientation decisions and training date updates."""

    def __init__(self, database_manager, identity_resolver, settings):
        """
        Args:
            database_manager: Database manager instance
            identity_resolver (IdentityResolver): Visitor lookup
            settings (CoreSettings): Core configuration
        """
        self.db = database_manager
        self.identity = identity_resolver
        self.settings = settings
        self.logger = logging.getLogger(__name__)

    @property
    def expiration_months(self) -> int:
        return self.settings.requirements_for(VisitorType.CONTRACTOR).expiration_months

    def compute_expiration(self, last_training_date: date) -> date:
        """Expiration date for a training completed on ``last_training_date``."""
        return last_training_date + relativedelta(months=self.expiration_months)

    def snapshot(self, visitor: Visitor, today: Optional[date] = None) -> ComplianceSnapshot:
        today = today or self.settings.today()
        expires_on = visitor.training_expires_date

        if expires_on is None:
            return ComplianceSnapshot(
                status=ComplianceStatus.NO_RECORD,
                last_training_date=visitor.last_training_date
            )

        days_remaining = (expires_on - today).days
        if days_remaining < 0:
            status = ComplianceStatus.EXPIRED
        elif days_remaining <= self.settings.training_warning_days:
            status = ComplianceStatus.EXPIRING_SOON
        else:
            status = ComplianceStatus.CURRENT

        return ComplianceSnapshot(
            status=status,
            last_training_date=visitor.last_training_date,
            expires_on=expires_on,
            days_remaining=days_remaining
        )

    def needs_orientation(self, visitor: Optional[Visitor],
                          requested_type: Union[VisitorType, str],
                          today: Optional[date] = None) -> OrientationDecision:
        """
        Decide whether a check-in has to go through orientation first.

        Args:
            visitor (Visitor): Existing record, or None for a first-time visitor
            requested_type (VisitorType): Type selected at check-in
            today (date): Override for the current date

        Returns:
            OrientationDecision: needs_orientation plus expiry flag and warning text
        """
        requested_type = VisitorType.parse(requested_type)
        requirements = self.settings.requirements_for(requested_type)

        if not requirements.requires_orientation:
            return OrientationDecision(needs_orientation=False)

        if visitor is None or not visitor.contractor_orientation_completed:
            return OrientationDecision(needs_orientation=True)

        snapshot = self.snapshot(visitor, today)

        if snapshot.status is ComplianceStatus.EXPIRED:
            return OrientationDecision(
                needs_orientation=True,
                training_expired=True,
                warning=(
                    f"Training expired on {_display_date(snapshot.expires_on)}. "
                    "Please complete the training form to renew."
                )
            )

        if snapshot.status is ComplianceStatus.EXPIRING_SOON:
            return OrientationDecision(
                needs_orientation=False,
                warning=(
                    f"Training expires on {_display_date(snapshot.expires_on)}. "
                    "Please schedule retraining soon."
                )
            )

        return OrientationDecision(needs_orientation=False)

    def mark_orientation_completed(self, visitor_id: int,
                                   orientation_type: Union[VisitorType, str],
                                   today: Optional[date] = None) -> Visitor:
        """
        Record a completed orientation.

        Contractor orientation restarts the certification period from today.
        General orientation only sets its flag, and sets the training type to
        general when no type was recorded before.
        """
        orientation_type = VisitorType.parse(orientation_type)
        visitor = self.identity.get_visitor(visitor_id)

        if orientation_type is VisitorType.CONTRACTOR:
            return self.set_training_date(visitor.id, today or self.settings.today())

        now = self.settings.now().strftime(TIMESTAMP_FORMAT)
        self.db.execute_update(
            """UPDATE visitors SET
                   general_orientation_completed = 1,
                   training_type = CASE WHEN training_type = ? THEN ? ELSE training_type END,
                   updated_at = ?
               WHERE id = ?""",
            (TrainingType.NONE.value, TrainingType.GENERAL.value, now, visitor.id)
        )
        self.logger.info(f"General orientation recorded for visitor {visitor.id}")
        return self.identity.get_visitor(visitor.id)

    def set_training_date(self, visitor_id: int, training_date: Union[date, str]) -> Visitor:
        """
        Set the contractor training date and recompute the expiration.

        String input must be ISO formatted (YYYY-MM-DD). Used for check-in
        completion, manual admin edits and the bulk importer.
        """
        if isinstance(training_date, datetime):
            training_date = training_date.date()
        elif isinstance(training_date, str):
            text = training_date.strip()
            try:
                parsed = datetime.strptime(text, DATE_FORMAT).date()
            except ValueError:
                raise ValidationError('Invalid date format. Use YYYY-MM-DD')
            if parsed.strftime(DATE_FORMAT) != text:
                raise ValidationError('Invalid date format. Use YYYY-MM-DD')
            training_date = parsed

        visitor = self.identity.get_visitor(visitor_id)
        expires_on = self.compute_expiration(training_date)

        self.db.execute_update(
            """UPDATE visitors SET
                   last_training_date = ?,
                   training_expires_date = ?,
                   contractor_orientation_completed = 1,
                   training_type = ?,
                   updated_at = ?
               WHERE id = ?""",
            (
                training_date.strftime(DATE_FORMAT),
                expires_on.strftime(DATE_FORMAT),
                TrainingType.CONTRACTOR.value,
                self.settings.now().strftime(TIMESTAMP_FORMAT),
                visitor.id
            )
        )

        self.logger.info(
            f"Training date for visitor {visitor.id} set to {training_date.isoformat()}, "
            f"expires {expires_on.isoformat()}"
        )
        return self.identity.get_visitor(visitor.id)

    def get_training_alerts(self, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Contractors whose training has expired or expires within the warning window.

        Expired entries are ordered most recently expired first; expiring
        entries soonest first.
        """
        today = today or self.settings.today()
        horizon = today + timedelta(days=self.settings.training_warning_days)
        today_str = today.strftime(DATE_FORMAT)

        columns = "id, name, email, company, last_training_date, training_expires_date"

        expired = self.db.execute_query(
            f"""SELECT {columns} FROM visitors
                WHERE contractor_orientation_completed = 1
                  AND training_expires_date IS NOT NULL
                  AND training_expires_date < ?
                ORDER BY training_expires_date DESC""",
            (today_str,)
        )

        expiring_soon = self.db.execute_query(
            f"""SELECT {columns} FROM visitors
                WHERE contractor_orientation_completed = 1
                  AND training_expires_date IS NOT NULL
                  AND training_expires_date >= ?
                  AND training_expires_date <= ?
                ORDER BY training_expires_date ASC""",
            (today_str, horizon.strftime(DATE_FORMAT))
        )

        counts = self.db.execute_query(
            """SELECT COUNT(*) AS total,
                      SUM(CASE WHEN training_expires_date IS NOT NULL THEN 1 ELSE 0 END) AS tracked
               FROM visitors
               WHERE contractor_orientation_completed = 1""",
            fetch_all=False
        )

        return {
            'expired': expired,
            'expired_count': len(expired),
            'expiring_soon': expiring_soon,
            'expiring_soon_count': len(expiring_soon),
            'total_contractors': int(counts['total'] or 0),
            'tracked_contractors': int(counts['tracked'] or 0)
        }

    def get_training_roster(self, active_within_months: int = 24,
                            today: Optional[date] = None) -> Dict[str, Any]:
        """
        Contractors (with training status) and general visitors who checked in
        within the last ``active_within_months`` months, most recent visit first.
        """
        today = today or self.settings.today()
        cutoff = datetime.combine(today - relativedelta(months=active_within_months), datetime.min.time())
        cutoff_str = cutoff.strftime(TIMESTAMP_FORMAT)

        contractor_rows = self.db.execute_query(
            """SELECT v.*, COUNT(vl.id) AS total_visits, MAX(vl.check_in_time) AS last_visit
               FROM visitors v
               JOIN visit_log vl ON v.id = vl.visitor_id
               WHERE v.contractor_orientation_completed = 1
               GROUP BY v.id
               HAVING last_visit >= ?
               ORDER BY last_visit DESC""",
            (cutoff_str,)
        )

        contractors = []
        for row in contractor_rows:
            snapshot = self.snapshot(Visitor.from_row(row), today)
            contractors.append({
                'id': row['id'],
                'name': row['name'],
                'company': row['company'],
                'email': row['email'],
                'last_training_date': row['last_training_date'],
                'training_expires_date': row['training_expires_date'],
                'training_status': snapshot.status.value,
                'total_visits': row['total_visits'],
                'last_visit': row['last_visit']
            })

        visitors = self.db.execute_query(
            """SELECT v.id, v.name, v.company, v.email,
                      COUNT(vl.id) AS total_visits, MAX(vl.check_in_time) AS last_visit
               FROM visitors v
               JOIN visit_log vl ON v.id = vl.visitor_id
               WHERE v.general_orientation_completed = 1
                 AND v.contractor_orientation_completed = 0
               GROUP BY v.id
               HAVING last_visit >= ?
               ORDER BY last_visit DESC""",
            (cutoff_str,)
        )

        return {
            'contractors': contractors,
            'contractor_count': len(contractors),
            'visitors': visitors,
            'visitor_count': len(visitors),
            'filter_cutoff': cutoff_str
        }
