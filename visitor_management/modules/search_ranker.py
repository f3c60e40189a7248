"""
Search Ranker Module - Facility Visitor Management System

Ranked visitor lookup for the check-in autocomplete and for spotting an
existing record before a new one is created.

Match priority (lower is better):
    1. name equals the query
    2. name starts with the query
    3. email contains the query
    4. company contains the query
    5. name contains the query

All comparisons are case-insensitive. A visitor is only returned when the
query is a substring of its name, email or company. Ties are broken by most
recent visit (never-visited last) and then by name.
"""

from typing import Any, Dict, List, Optional
import logging

from visitor_management.modules.models import TrainingType, VisitorType

LIKE_ESCAPE = '\\'


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so user input is matched literally."""
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
            .replace('%', LIKE_ESCAPE + '%')
            .replace('_', LIKE_ESCAPE + '_')
    )


def suggested_visitor_type(training_type: Optional[str], contractor_orientation_completed: Any) -> VisitorType:
    """Contractor when the person was ever trained as one, general otherwise."""
    if training_type == TrainingType.CONTRACTOR.value or bool(contractor_orientation_completed):
        return VisitorType.CONTRACTOR
    return VisitorType.GENERAL


class SearchRanker:
    """Prioritized visitor search."""

    def __init__(self, database_manager, settings):
        self.db = database_manager
        self.settings = settings
        self.logger = logging.getLogger(__name__)

    def search(self, query: Optional[str], limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Search visitors by name, email or company.

        Args:
            query (str): Free-text search term
            limit (int): Maximum number of results

        Returns:
            List[Dict[str, Any]]: Ranked results, empty for a blank query
        """
        term = (query or '').strip()
        if not term:
            return []

        if limit is None:
            limit = self.settings.search_default_limit
        limit = max(1, int(limit))

        escaped = escape_like(term.lower())
        contains = f"%{escaped}%"
        prefix = f"{escaped}%"

        rows = self.db.execute_query(
            """SELECT v.*,
                      MAX(vl.check_in_time) AS last_visit,
                      COUNT(vl.id) AS visit_count,
                      CASE
                          WHEN LOWER(v.name) = ? THEN 1
                          WHEN LOWER(v.name) LIKE ? ESCAPE '\\' THEN 2
                          WHEN LOWER(v.email) LIKE ? ESCAPE '\\' THEN 3
                          WHEN LOWER(v.company) LIKE ? ESCAPE '\\' THEN 4
                          ELSE 5
                      END AS match_priority
               FROM visitors v
               LEFT JOIN visit_log vl ON v.id = vl.visitor_id
               WHERE LOWER(v.name) LIKE ? ESCAPE '\\'
                  OR LOWER(v.email) LIKE ? ESCAPE '\\'
                  OR LOWER(v.company) LIKE ? ESCAPE '\\'
               GROUP BY v.id
               ORDER BY match_priority ASC, last_visit DESC, v.name ASC
               LIMIT ?""",
            (term.lower(), prefix, contains, contains, contains, contains, contains, limit)
        )

        self.logger.debug(f"Visitor search '{term}' returned {len(rows)} results")
        return [self._format_result(row) for row in rows]

    def _format_result(self, row: Dict[str, Any]) -> Dict[str, Any]:
        suggested = suggested_visitor_type(row.get('training_type'), row.get('contractor_orientation_completed'))

        display_text = row['name']
        if row.get('company'):
            display_text += f" ({row['company']})"
        if row.get('email'):
            display_text += f" - {row['email']}"

        return {
            'id': row['id'],
            'name': row['name'],
            'email': row.get('email'),
            'phone': row.get('phone'),
            'company': row.get('company'),
            'badge_number': row.get('badge_number'),
            'staff_contact': row.get('staff_contact'),
            'contractor_orientation_completed': bool(row.get('contractor_orientation_completed')),
            'general_orientation_completed': bool(row.get('general_orientation_completed')),
            'training_type': row.get('training_type'),
            'suggested_visitor_type': suggested.value,
            'last_visit': row.get('last_visit'),
            'visit_count': int(row.get('visit_count') or 0),
            'match_priority': row['match_priority'],
            'display_text': display_text
        }
