"""
Visit State Tracker Module - Facility Visitor Management System

This module manages presence records (the visit log): opening a record at
check-in, closing it at check-out, and reporting who is on site.

Features:
- Check-in with duplicate presence prevention
- Check-out of the most recent open visit
- Currently-present listing
- Visit history with computed durations
- Dashboard and database statistics
- Durable audit trail of check-in/check-out outcomes

A visitor has at most one open visit (check_out_time IS NULL). The rule is
checked before inserting for a clear error message, and enforced by the
partial unique index idx_visit_log_one_open so two racing check-ins cannot
both succeed.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import logging

from visitor_management.modules.errors import (
    ConstraintViolationError, DuplicatePresenceError, NotPresentError
)
from visitor_management.modules.models import PresenceRecord, TIMESTAMP_FORMAT, DATE_FORMAT

VISITOR_COLUMNS = """v.id, v.name, v.email, v.phone, v.company, v.badge_number, v.staff_contact,
                     v.visitor_type, v.contractor_orientation_completed, v.general_orientation_completed"""


class VisitStateTracker:
    """
    Presence state management for visitors.
    """

    def __init__(self, database_manager, identity_resolver, settings):
        """
        Initialize the visit tracker.

        Args:
            database_manager: Database manager instance
            identity_resolver (IdentityResolver): Visitor lookup
            settings (CoreSettings): Core configuration
        """
        self.db = database_manager
        self.identity = identity_resolver
        self.settings = settings
        self.logger = logging.getLogger(__name__)

    def check_in(self, visitor_id: int, device_id: Optional[str] = None) -> PresenceRecord:
        """
        Open a presence record for the visitor.

        Args:
            visitor_id (int): Visitor database ID
            device_id (str): Identifier of the originating tablet/kiosk

        Returns:
            PresenceRecord: The newly opened visit

        Raises:
            VisitorNotFoundError: Unknown visitor
            DuplicatePresenceError: Visitor already has an open visit
        """
        visitor = self.identity.get_visitor(visitor_id)

        if self.is_present(visitor.id):
            self.record_audit('check_in', visitor.id, False, 'already checked in')
            self.logger.warning(f"Duplicate check-in rejected for visitor {visitor.id} ({visitor.name})")
            raise DuplicatePresenceError(visitor.id)

        now = self.settings.now()
        try:
            visit_id = self.db.execute_update(
                """INSERT INTO visit_log (visitor_id, device_id, check_in_time)
                   VALUES (?, ?, ?)""",
                (visitor.id, device_id, now.strftime(TIMESTAMP_FORMAT))
            )
        except ConstraintViolationError:
            # Lost a race against a concurrent check-in for the same visitor
            self.record_audit('check_in', visitor.id, False, 'open visit already exists')
            raise DuplicatePresenceError(visitor.id)

        self.record_audit(
            'check_in', visitor.id, True,
            f"visit {visit_id}" + (f" from device {device_id}" if device_id else '')
        )
        self.logger.info(f"Visitor {visitor.id} ({visitor.name}) checked in, visit {visit_id}")

        return PresenceRecord(
            id=visit_id,
            visitor_id=visitor.id,
            check_in_time=now,
            device_id=device_id
        )

    def check_out(self, visitor_id: int) -> PresenceRecord:
        """
        Close the visitor's most recent open visit.

        Raises:
            VisitorNotFoundError: Unknown visitor
            NotPresentError: No open visit
        """
        visitor = self.identity.get_visitor(visitor_id)
        record = self.get_open_visit(visitor.id)

        if record is None:
            self.record_audit('check_out', visitor.id, False, 'not checked in')
            raise NotPresentError(visitor.id)

        now = self.settings.now()
        self.db.execute_update(
            "UPDATE visit_log SET check_out_time = ? WHERE id = ? AND check_out_time IS NULL",
            (now.strftime(TIMESTAMP_FORMAT), record.id)
        )
        record.check_out_time = now

        self.record_audit('check_out', visitor.id, True, f"visit {record.id}")
        self.logger.info(
            f"Visitor {visitor.id} ({visitor.name}) checked out after {record.duration_minutes(now)} minutes"
        )
        return record

    def is_present(self, visitor_id: int) -> bool:
        result = self.db.execute_query(
            "SELECT COUNT(*) AS open_visits FROM visit_log WHERE visitor_id = ? AND check_out_time IS NULL",
            (visitor_id,),
            fetch_all=False
        )
        return bool(result and result['open_visits'])

    def get_open_visit(self, visitor_id: int) -> Optional[PresenceRecord]:
        row = self.db.execute_query(
            """SELECT * FROM visit_log
               WHERE visitor_id = ? AND check_out_time IS NULL
               ORDER BY check_in_time DESC, id DESC
               LIMIT 1""",
            (visitor_id,),
            fetch_all=False
        )
        return PresenceRecord.from_row(row) if row else None

    def list_currently_present(self) -> List[Dict[str, Any]]:
        """
        All visitors with an open visit, most recent check-in first.

        Returns:
            List[Dict[str, Any]]: Visitor fields plus visit_id, check_in_time,
            device_id and duration_minutes so far
        """
        rows = self.db.execute_query(
            f"""SELECT {VISITOR_COLUMNS},
                       vl.id AS visit_id, vl.visitor_id, vl.device_id,
                       vl.check_in_time, vl.check_out_time
                FROM visitors v
                JOIN visit_log vl ON v.id = vl.visitor_id
                WHERE vl.check_out_time IS NULL
                ORDER BY vl.check_in_time DESC, vl.id DESC"""
        )
        now = self.settings.now()
        return [self._format_visit(row, now) for row in rows]

    def get_visit_history(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Recent visits across all visitors, most recent check-in first.

        Args:
            limit (int): Number of records, clamped to 1..max_recent_visits
        """
        if limit is None:
            limit = self.settings.recent_visits_limit
        limit = min(self.settings.max_recent_visits, max(1, int(limit)))

        rows = self.db.execute_query(
            f"""SELECT {VISITOR_COLUMNS},
                       vl.id AS visit_id, vl.visitor_id, vl.device_id,
                       vl.check_in_time, vl.check_out_time
                FROM visitors v
                JOIN visit_log vl ON v.id = vl.visitor_id
                ORDER BY vl.check_in_time DESC, vl.id DESC
                LIMIT ?""",
            (limit,)
        )
        now = self.settings.now()
        return [self._format_visit(row, now) for row in rows]

    def get_visit_statistics(self) -> Dict[str, Any]:
        """
        Dashboard numbers: today's visits, total visitors, average completed
        visit length over the last 30 days and the current head count.
        """
        now = self.settings.now()
        today = now.date()
        tomorrow = today + timedelta(days=1)

        today_visits = self.db.execute_query(
            """SELECT COUNT(*) AS count FROM visit_log
               WHERE check_in_time >= ? AND check_in_time < ?""",
            (today.strftime(DATE_FORMAT), tomorrow.strftime(DATE_FORMAT)),
            fetch_all=False
        )['count']

        duration = self.db.execute_query(
            """SELECT AVG((julianday(check_out_time) - julianday(check_in_time)) * 24 * 60) AS avg_duration
               FROM visit_log
               WHERE check_out_time IS NOT NULL AND check_in_time >= ?""",
            ((now - timedelta(days=30)).strftime(TIMESTAMP_FORMAT),),
            fetch_all=False
        )['avg_duration']

        current_count = self.db.execute_query(
            "SELECT COUNT(*) AS count FROM visit_log WHERE check_out_time IS NULL",
            fetch_all=False
        )['count']

        return {
            'today_visits': int(today_visits),
            'total_visitors': self.identity.get_visitor_count(),
            'avg_duration': round(duration, 1) if duration is not None else None,
            'current_count': int(current_count),
            'timezone': self.settings.timezone,
            'current_date': today.strftime(DATE_FORMAT)
        }

    def get_database_statistics(self) -> Dict[str, Any]:
        """
        Storage overview for the admin dashboard.

        Returns:
            Dict[str, Any]: file size, visitor and visit counts, orientation
            completions, first/last record dates and visits in the last 30 days
        """
        now = self.settings.now()

        orientation = self.db.execute_query(
            """SELECT
                   COUNT(CASE WHEN contractor_orientation_completed = 1 THEN 1 END) AS contractor_completed,
                   COUNT(CASE WHEN general_orientation_completed = 1 THEN 1 END) AS general_completed,
                   COUNT(CASE WHEN contractor_orientation_completed = 1
                              AND general_orientation_completed = 1 THEN 1 END) AS both_completed,
                   MIN(created_at) AS first_visitor,
                   MAX(created_at) AS last_visitor
               FROM visitors""",
            fetch_all=False
        )

        visits = self.db.execute_query(
            """SELECT COUNT(*) AS total_visits,
                      MIN(check_in_time) AS first_visit,
                      MAX(check_in_time) AS last_visit,
                      COUNT(CASE WHEN check_in_time >= ? THEN 1 END) AS recent_visits
               FROM visit_log""",
            ((now - timedelta(days=30)).strftime(TIMESTAMP_FORMAT),),
            fetch_all=False
        )

        file_size = self.db.get_file_size()

        return {
            'database_file_size_bytes': file_size,
            'database_file_size_mb': round(file_size / 1024 / 1024, 2),
            'total_visitors': self.identity.get_visitor_count(),
            'total_visits': int(visits['total_visits']),
            'orientation_stats': {
                'contractor_completed': int(orientation['contractor_completed']),
                'general_completed': int(orientation['general_completed']),
                'both_completed': int(orientation['both_completed'])
            },
            'date_ranges': {
                'first_visitor': orientation['first_visitor'],
                'last_visitor': orientation['last_visitor'],
                'first_visit': visits['first_visit'],
                'last_visit': visits['last_visit']
            },
            'recent_activity': {
                'visits_last_30_days': int(visits['recent_visits'])
            }
        }

    def clear_visit_history(self) -> int:
        """
        Delete every visit record. Visitors and their training data are kept.

        Returns:
            int: Number of deleted visit records
        """
        with self.db.transaction() as conn:
            deleted = conn.execute("DELETE FROM visit_log").rowcount

        self.record_audit('clear_visits', None, True, f"{deleted} visit records deleted")
        self.logger.warning(f"Visit history cleared: {deleted} records deleted")
        return deleted

    def _format_visit(self, row: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        record = PresenceRecord.from_row(row)
        visit = dict(row)
        visit['contractor_orientation_completed'] = bool(row['contractor_orientation_completed'])
        visit['general_orientation_completed'] = bool(row['general_orientation_completed'])
        visit['duration_minutes'] = record.duration_minutes(now)
        visit['status'] = 'checked_in' if record.is_open else 'checked_out'
        return visit

    def record_audit(self, event_type: str, visitor_id: Optional[int],
                      success: bool, details: str = None) -> None:
        self.db.execute_update(
            """INSERT INTO audit_log (event_type, visitor_id, success, details, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (event_type, visitor_id, 1 if success else 0, details,
             self.settings.now().strftime(TIMESTAMP_FORMAT))
        )

    def get_audit_log(self, visitor_id: Optional[int] = None, limit: int = 100) -> List[Dict[str, Any]]:
        if visitor_id is None:
            return self.db.execute_query(
                "SELECT * FROM audit_log ORDER BY id DESC LIMIT ?",
                (limit,)
            )
        return self.db.execute_query(
            "SELECT * FROM audit_log WHERE visitor_id = ? ORDER BY id DESC LIMIT ?",
            (visitor_id, limit)
        )
