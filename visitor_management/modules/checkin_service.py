"""
Check-In Service Module - Facility Visitor Management System

Orchestrates a kiosk check-in: Identity Resolver -> Training Compliance
Calculator -> Visit State Tracker.

Flow:
- Contractors never trained, or with expired training, get
  needs_orientation = true and are sent to the training form.
- Contractors with current training check in directly, with a warning when
  the certification expires within the warning window.
- General visitors always check in directly.
- A request carrying contractor_orientation_completed records the training
  (restarting the certification period) and checks the visitor in.
"""

from typing import Any, Dict, Optional
import logging

from visitor_management.modules.errors import DuplicatePresenceError, ValidationError
from visitor_management.modules.models import OrientationDecision, Visitor, VisitorType

REQUIRED_FIELDS = ('name', 'email', 'phone', 'company', 'visitor_type')
TRUE_VALUES = ('1', 'true', 'yes', 'on')


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUE_VALUES
    return bool(value)


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


class CheckInService:
    """
    Check-in and check-out entry points used by the HTTP layer.
    """

    def __init__(self, identity_resolver, compliance_calculator, visit_tracker, settings):
        self.identity = identity_resolver
        self.compliance = compliance_calculator
        self.visit_tracker = visit_tracker
        self.settings = settings
        self.logger = logging.getLogger(__name__)

    def check_in(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Process a check-in request.

        Args:
            payload (Dict[str, Any]): name, email, phone, company, visitor_type,
                optional badge_number, staff_contact, device_id and
                contractor_orientation_completed

        Returns:
            Dict[str, Any]: Either the orientation-required response or the
            checked-in response

        Raises:
            ValidationError: Missing or malformed field
            DuplicatePresenceError: Visitor already checked in
        """
        data = self._validate_payload(payload)
        visitor_type = data['visitor_type']

        contact = {
            'email': data['email'],
            'phone': data['phone'],
            'company': data['company'],
            'badge_number': data['badge_number'],
            'staff_contact': data['staff_contact']
        }

        visitor = self.identity.find_by_name(data['name'])

        if visitor is not None:
            if self.visit_tracker.is_present(visitor.id):
                self.visit_tracker.record_audit('check_in', visitor.id, False, 'already checked in')
                raise DuplicatePresenceError(visitor.id)

            decision = self.compliance.needs_orientation(visitor, visitor_type)
            visitor = self.identity.update_contact(visitor.id, contact, visitor_type=visitor_type)
        else:
            decision = self.compliance.needs_orientation(None, visitor_type)
            visitor = self.identity.create_visitor(data['name'], visitor_type=visitor_type, **contact)

        if data['orientation_completed']:
            return self._complete_and_check_in(visitor, visitor_type, decision, data['device_id'])

        if decision.needs_orientation:
            return self._orientation_required(visitor, visitor_type, decision)

        if visitor_type is VisitorType.GENERAL and not visitor.general_orientation_completed:
            visitor = self.compliance.mark_orientation_completed(visitor.id, VisitorType.GENERAL)

        record = self.visit_tracker.check_in(visitor.id, data['device_id'])
        return self._checked_in(visitor, visitor_type, record.id, 'Successfully checked in', decision.warning)

    def complete_orientation_and_check_in(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Check-in request re-submitted after the training form was completed."""
        payload = dict(payload or {})
        payload['contractor_orientation_completed'] = True
        return self.check_in(payload)

    def check_out(self, visitor_id: Any) -> Dict[str, Any]:
        """
        Close the visitor's open visit.

        Raises:
            ValidationError: Missing or non-numeric visitor_id
            VisitorNotFoundError: Unknown visitor
            NotPresentError: Visitor is not checked in
        """
        if visitor_id is None or str(visitor_id).strip() == '':
            raise ValidationError('Missing visitor_id')
        try:
            visitor_id = int(visitor_id)
        except (TypeError, ValueError):
            raise ValidationError('Invalid visitor_id')

        record = self.visit_tracker.check_out(visitor_id)
        return {
            'success': True,
            'message': 'Successfully checked out',
            'visitor_id': visitor_id,
            'visit_id': record.id,
            'duration_minutes': record.duration_minutes(record.check_out_time)
        }

    def _validate_payload(self, payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, dict) or not payload:
            raise ValidationError('Invalid JSON input')

        for field_name in REQUIRED_FIELDS:
            if not _clean(payload.get(field_name)):
                raise ValidationError(f"Missing required field: {field_name}")

        try:
            visitor_type = VisitorType.parse(payload['visitor_type'])
        except ValueError:
            raise ValidationError(f"Invalid visitor_type: {payload['visitor_type']}")

        return {
            'name': _clean(payload['name']),
            'email': _clean(payload['email']),
            'phone': _clean(payload['phone']),
            'company': _clean(payload['company']),
            'badge_number': _clean(payload.get('badge_number')),
            'staff_contact': _clean(payload.get('staff_contact')),
            'device_id': _clean(payload.get('device_id') or payload.get('tablet_id')),
            'visitor_type': visitor_type,
            'orientation_completed': _is_truthy(payload.get('contractor_orientation_completed'))
        }

    def _complete_and_check_in(self, visitor: Visitor, visitor_type: VisitorType,
                               decision: OrientationDecision, device_id: Optional[str]) -> Dict[str, Any]:
        visitor = self.compliance.mark_orientation_completed(visitor.id, visitor_type)
        record = self.visit_tracker.check_in(visitor.id, device_id)

        if decision.training_expired:
            message = 'Successfully checked in! Training certification has been renewed.'
            self.logger.info(f"Training certification renewed for visitor {visitor.id} ({visitor.name})")
        else:
            message = 'Successfully checked in'

        return self._checked_in(visitor, visitor_type, record.id, message, None)

    def _orientation_required(self, visitor: Visitor, visitor_type: VisitorType,
                              decision: OrientationDecision) -> Dict[str, Any]:
        if decision.training_expired:
            message = 'Your training has expired. Please complete the training form to renew your certification.'
        else:
            message = 'Please complete the contractor training form before checking in.'

        self.logger.info(
            f"Visitor {visitor.id} ({visitor.name}) needs orientation"
            + (" (training expired)" if decision.training_expired else "")
        )
        return {
            'success': True,
            'needs_orientation': True,
            'checked_in': False,
            'visitor_id': visitor.id,
            'visitor_type': visitor_type.value,
            'message': message,
            'training_expired': decision.training_expired,
            'warning': decision.warning
        }

    def _checked_in(self, visitor: Visitor, visitor_type: VisitorType, visit_id: int,
                    message: str, warning: Optional[str]) -> Dict[str, Any]:
        return {
            'success': True,
            'needs_orientation': False,
            'checked_in': True,
            'visitor_id': visitor.id,
            'visit_id': visit_id,
            'visitor_type': visitor_type.value,
            'message': message,
            'training_expired': False,
            'warning': warning
        }
