"""
Identity Resolver Module - Facility Visitor Management System

Finds existing visitor records and is the only writer of identity fields.

Matching rules:
- Name is the primary key: trimmed, case-insensitive, exact.
- Email is a secondary key: exact and case-sensitive, only used by the
  importer when the name lookup fails.
- No fuzzy or phonetic matching. Differently spelled names are different people.
"""

from typing import Any, Dict, Optional
import logging

from visitor_management.modules.errors import ValidationError, VisitorNotFoundError
from visitor_management.modules.models import (
    Visitor, VisitorType, TrainingType, TIMESTAMP_FORMAT
)

CONTACT_FIELDS = ('email', 'phone', 'company', 'badge_number', 'staff_contact')


class IdentityResolver:
    """Lookup and creation of visitor identities."""

    def __init__(self, database_manager, settings):
        """
        Args:
            database_manager: Database manager instance
            settings (CoreSettings): Core configuration
        """
        self.db = database_manager
        self.settings = settings
        self.logger = logging.getLogger(__name__)

    def find_by_name(self, name: str) -> Optional[Visitor]:
        name = (name or '').strip()
        if not name:
            return None

        row = self.db.execute_query(
            "SELECT * FROM visitors WHERE LOWER(name) = LOWER(?) ORDER BY id LIMIT 1",
            (name,),
            fetch_all=False
        )
        return Visitor.from_row(row) if row else None

    def find_by_email(self, email: str) -> Optional[Visitor]:
        if not email:
            return None

        row = self.db.execute_query(
            "SELECT * FROM visitors WHERE email = ? ORDER BY id LIMIT 1",
            (email,),
            fetch_all=False
        )
        return Visitor.from_row(row) if row else None

    def get_visitor(self, visitor_id: int) -> Visitor:
        """
        Load a visitor by database ID.

        Raises:
            VisitorNotFoundError: No visitor with that ID
        """
        row = self.db.execute_query(
            "SELECT * FROM visitors WHERE id = ?",
            (visitor_id,),
            fetch_all=False
        )
        if not row:
            raise VisitorNotFoundError(visitor_id)
        return Visitor.from_row(row)

    def create_visitor(self, name: str, email: str = None, phone: str = None,
                       company: str = None, badge_number: str = None,
                       staff_contact: str = None,
                       visitor_type: VisitorType = VisitorType.GENERAL) -> Visitor:
        """
        Create a new visitor with no training on record.

        Orientation and training dates are applied afterwards by the
        compliance calculator so the expiration rule lives in one place.
        """
        name = (name or '').strip()
        if not name:
            raise ValidationError('Missing required field: name')

        now = self.settings.now().strftime(TIMESTAMP_FORMAT)
        visitor_id = self.db.execute_update(
            """INSERT INTO visitors (name, email, phone, company, badge_number, staff_contact,
                                     visitor_type, training_type, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                name, email, phone, company, badge_number, staff_contact,
                visitor_type.value, TrainingType.NONE.value, now, now
            )
        )

        self.logger.info(f"Visitor created: {name} (ID: {visitor_id}, type: {visitor_type.value})")
        return self.get_visitor(visitor_id)

    def update_contact(self, visitor_id: int, contact: Dict[str, Any],
                       visitor_type: Optional[VisitorType] = None,
                       keep_existing: bool = False) -> Visitor:
        """
        Update contact fields of an existing visitor.

        Args:
            visitor_id (int): Visitor database ID
            contact (Dict[str, Any]): Values keyed by field name
            visitor_type (VisitorType): New classification, if any
            keep_existing (bool): Ignore empty values instead of clearing the column
        """
        visitor = self.get_visitor(visitor_id)

        updates = {}
        for field_name in CONTACT_FIELDS:
            if field_name not in contact:
                continue
            value = contact[field_name]
            if isinstance(value, str):
                value = value.strip() or None
            if keep_existing and value is None:
                continue
            updates[field_name] = value

        if visitor_type is not None:
            updates['visitor_type'] = visitor_type.value

        if not updates:
            return visitor

        assignments = ', '.join(f"{column} = ?" for column in updates)
        params = list(updates.values())
        params.extend([self.settings.now().strftime(TIMESTAMP_FORMAT), visitor_id])

        self.db.execute_update(
            f"UPDATE visitors SET {assignments}, updated_at = ? WHERE id = ?",
            tuple(params)
        )
        self.logger.debug(f"Visitor {visitor_id} contact updated: {', '.join(updates)}")
        return self.get_visitor(visitor_id)

    def get_visitor_count(self) -> int:
        result = self.db.execute_query("SELECT COUNT(*) AS count FROM visitors", fetch_all=False)
        return result['count'] if result else 0
