"""
Retention Purger Module - Facility Visitor Management System

Deletes visitors who have not checked in within the retention window,
together with their visit records.

Features:
- Runs at most once per calendar day (marker in system_settings)
- Visits are deleted before their visitors, in a single transaction
- A failed run is rolled back and logged, never raised to the caller

The day marker lives in the single SQLite database, which is sufficient for a
single-instance deployment only.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional
import logging

from dateutil.relativedelta import relativedelta

from visitor_management.modules.errors import VisitorSystemError
from visitor_management.modules.models import DATE_FORMAT, TIMESTAMP_FORMAT

LAST_PURGE_SETTING = 'last_purge_date'


class RetentionPurger:
    """Daily removal of inactive visitors."""

    def __init__(self, database_manager, visit_tracker, settings):
        """
        Args:
            database_manager: Database manager instance
            visit_tracker (VisitStateTracker): Used for the audit trail
            settings (CoreSettings): Core configuration
        """
        self.db = database_manager
        self.visit_tracker = visit_tracker
        self.settings = settings
        self.logger = logging.getLogger(__name__)

    def last_purge_date(self) -> Optional[str]:
        return self.db.get_system_setting(LAST_PURGE_SETTING)

    def is_due(self, today: Optional[date] = None) -> bool:
        if not self.settings.auto_purge_enabled:
            return False
        today = today or self.settings.today()
        return self.last_purge_date() != today.strftime(DATE_FORMAT)

    def run_if_due(self) -> Optional[Dict[str, Any]]:
        """Opportunistic trigger used before each request. Never raises."""
        try:
            due = self.is_due()
        except VisitorSystemError as e:
            self.logger.error(f"Retention purge check failed: {str(e)}")
            return {'deleted_count': 0, 'error': 'Retention purge failed'}

        if not due:
            return None
        return self.run_retention_purge()

    def run_retention_purge(self, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Delete visitors whose last check-in is older than the retention window,
        or who never checked in.

        Storage failures are logged and reported in the result, never raised.

        Args:
            today (date): Override for the current date

        Returns:
            Dict[str, Any]: deleted_count, deleted_visitors and cutoff_date;
            ``skipped`` is set when the purge already ran today or is disabled,
            ``error`` when the run failed and was rolled back
        """
        today = today or self.settings.today()
        today_str = today.strftime(DATE_FORMAT)

        if not self.settings.auto_purge_enabled:
            return {'deleted_count': 0, 'skipped': True, 'reason': 'Auto purge disabled'}

        cutoff = datetime.combine(today - relativedelta(months=self.settings.auto_purge_months),
                                  datetime.min.time())
        cutoff_str = cutoff.strftime(TIMESTAMP_FORMAT)

        try:
            if self.last_purge_date() == today_str:
                self.logger.debug(f"Retention purge already ran on {today_str}")
                return {'deleted_count': 0, 'skipped': True, 'reason': 'Already ran today'}

            with self.db.transaction() as conn:
                stale = [
                    dict(row) for row in conn.execute(
                        """SELECT v.id, v.name, v.company, MAX(vl.check_in_time) AS last_visit
                           FROM visitors v
                           LEFT JOIN visit_log vl ON v.id = vl.visitor_id
                           GROUP BY v.id
                           HAVING last_visit IS NULL OR last_visit < ?""",
                        (cutoff_str,)
                    ).fetchall()
                ]

                if stale:
                    ids = [row['id'] for row in stale]
                    placeholders = ','.join('?' for _ in ids)
                    conn.execute(f"DELETE FROM visit_log WHERE visitor_id IN ({placeholders})", ids)
                    conn.execute(f"DELETE FROM visitors WHERE id IN ({placeholders})", ids)

                self.db.update_system_setting(
                    LAST_PURGE_SETTING, today_str, 'Date of the last retention purge', conn=conn
                )
        except VisitorSystemError as e:
            self.logger.error(f"Retention purge failed, nothing was deleted: {str(e)}")
            return {'deleted_count': 0, 'error': 'Retention purge failed'}

        deleted_names = [row['name'] for row in stale]
        if stale:
            self.logger.info(
                f"Retention purge removed {len(stale)} visitors inactive since before "
                f"{cutoff.date().isoformat()}: {', '.join(deleted_names)}"
            )
            try:
                self.visit_tracker.record_audit(
                    'retention_purge', None, True, f"{len(stale)} visitors deleted (cutoff {cutoff_str})"
                )
            except VisitorSystemError as e:
                # The purge itself is committed
                self.logger.error(f"Retention purge audit entry could not be written: {str(e)}")
        else:
            self.logger.info(f"Retention purge found no visitors inactive since {cutoff.date().isoformat()}")

        return {
            'deleted_count': len(stale),
            'deleted_visitors': deleted_names,
            'cutoff_date': cutoff.date().isoformat()
        }
