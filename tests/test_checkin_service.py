from datetime import date

import pytest

from visitor_management.modules.errors import (
    DuplicatePresenceError, NotPresentError, ValidationError
)
from visitor_management.modules.models import VisitorType


def test_general_visitor_checks_in_directly(checkin_service, identity, tracker, checkin_payload):
    result = checkin_service.check_in(checkin_payload('Jane Doe', 'visitor', device_id='tablet_7'))

    assert result['checked_in'] is True
    assert result['needs_orientation'] is False
    assert result['visitor_type'] == 'general'
    visitor = identity.get_visitor(result['visitor_id'])
    assert visitor.general_orientation_completed is True
    assert tracker.get_open_visit(visitor.id).device_id == 'tablet_7'


def test_new_contractor_needs_orientation(checkin_service, identity, tracker, checkin_payload):
    result = checkin_service.check_in(checkin_payload('Carl Contractor', 'contractor'))

    assert result['needs_orientation'] is True
    assert result['checked_in'] is False
    assert result['message'] == 'Please complete the contractor training form before checking in.'
    assert identity.find_by_name('Carl Contractor').id == result['visitor_id']
    assert tracker.is_present(result['visitor_id']) is False


def test_completed_orientation_checks_in_contractor(checkin_service, identity, tracker, checkin_payload):
    checkin_service.check_in(checkin_payload('Carl Contractor', 'contractor'))

    result = checkin_service.complete_orientation_and_check_in(checkin_payload('Carl Contractor', 'contractor'))

    assert result['checked_in'] is True
    assert result['message'] == 'Successfully checked in'
    visitor = identity.get_visitor(result['visitor_id'])
    assert visitor.last_training_date == date(2025, 1, 16)
    assert visitor.training_expires_date == date(2026, 1, 16)
    assert tracker.is_present(visitor.id)


def test_expired_contractor_renews_training(checkin_service, identity, compliance, checkin_payload):
    visitor = identity.create_visitor('Carl Contractor', visitor_type=VisitorType.CONTRACTOR)
    compliance.set_training_date(visitor.id, '2024-01-15')

    first = checkin_service.check_in(checkin_payload('Carl Contractor', 'contractor'))

    assert first['needs_orientation'] is True
    assert first['training_expired'] is True
    assert first['warning'].startswith('Training expired on Jan 15, 2025')
    assert first['message'].startswith('Your training has expired')

    second = checkin_service.check_in(
        checkin_payload('Carl Contractor', 'contractor', contractor_orientation_completed='true')
    )

    assert second['checked_in'] is True
    assert second['message'] == 'Successfully checked in! Training certification has been renewed.'
    assert identity.get_visitor(visitor.id).training_expires_date == date(2026, 1, 16)


def test_expiring_contractor_gets_warning(checkin_service, identity, compliance, checkin_payload):
    visitor = identity.create_visitor('Carl Contractor', visitor_type=VisitorType.CONTRACTOR)
    compliance.set_training_date(visitor.id, '2024-02-01')

    result = checkin_service.check_in(checkin_payload('Carl Contractor', 'contractor'))

    assert result['checked_in'] is True
    assert result['warning'] == 'Training expires on Feb 1, 2025. Please schedule retraining soon.'


def test_returning_visitor_updates_contact(checkin_service, identity, checkin_payload):
    first = checkin_service.check_in(checkin_payload('Jane Doe'))
    checkin_service.check_out(first['visitor_id'])

    second = checkin_service.check_in(checkin_payload('jane doe', phone='5550000000', company='New Co'))

    assert second['visitor_id'] == first['visitor_id']
    visitor = identity.get_visitor(first['visitor_id'])
    assert visitor.phone == '5550000000'
    assert visitor.company == 'New Co'
    assert visitor.name == 'Jane Doe'


def test_duplicate_check_in_is_rejected(checkin_service, checkin_payload):
    checkin_service.check_in(checkin_payload('Jane Doe'))

    with pytest.raises(DuplicatePresenceError):
        checkin_service.check_in(checkin_payload('Jane Doe'))


@pytest.mark.parametrize('field_name', ['name', 'email', 'phone', 'company', 'visitor_type'])
def test_required_fields(checkin_service, checkin_payload, field_name):
    payload = checkin_payload('Jane Doe')
    payload[field_name] = '  '

    with pytest.raises(ValidationError, match=f"Missing required field: {field_name}"):
        checkin_service.check_in(payload)


def test_invalid_visitor_type(checkin_service, checkin_payload):
    with pytest.raises(ValidationError, match='Invalid visitor_type'):
        checkin_service.check_in(checkin_payload('Jane Doe', 'vendor'))


def test_invalid_payload(checkin_service):
    with pytest.raises(ValidationError, match='Invalid JSON input'):
        checkin_service.check_in(None)


def test_check_out(checkin_service, clock, checkin_payload):
    result = checkin_service.check_in(checkin_payload('Jane Doe'))
    clock.advance(minutes=90)

    checked_out = checkin_service.check_out(str(result['visitor_id']))

    assert checked_out['success'] is True
    assert checked_out['duration_minutes'] == 90

    with pytest.raises(NotPresentError):
        checkin_service.check_out(result['visitor_id'])


@pytest.mark.parametrize('visitor_id', [None, '', 'abc'])
def test_check_out_requires_visitor_id(checkin_service, visitor_id):
    with pytest.raises(ValidationError):
        checkin_service.check_out(visitor_id)
