import pytest

from visitor_management.modules.errors import ValidationError, VisitorNotFoundError
from visitor_management.modules.models import TrainingType, VisitorType


def test_find_by_name_is_case_insensitive_and_trimmed(identity):
    created = identity.create_visitor('John Smith', email='john@acme.com')

    found = identity.find_by_name('  john SMITH ')

    assert found is not None
    assert found.id == created.id


def test_find_by_name_does_not_fuzzy_match(identity):
    identity.create_visitor('John Smith')

    assert identity.find_by_name('Jon Smith') is None
    assert identity.find_by_name('John') is None
    assert identity.find_by_name('') is None


def test_find_by_email_is_exact(identity):
    created = identity.create_visitor('John Smith', email='john@acme.com')

    assert identity.find_by_email('john@acme.com').id == created.id
    assert identity.find_by_email('JOHN@acme.com') is None
    assert identity.find_by_email(None) is None


def test_create_visitor_starts_without_training(identity):
    visitor = identity.create_visitor('Ann Lee', company='Acme', visitor_type=VisitorType.CONTRACTOR)

    assert visitor.visitor_type is VisitorType.CONTRACTOR
    assert visitor.training_type is TrainingType.NONE
    assert visitor.last_training_date is None
    assert visitor.contractor_orientation_completed is False
    assert visitor.created_at == '2025-01-16 09:00:00'


def test_create_visitor_requires_name(identity):
    with pytest.raises(ValidationError):
        identity.create_visitor('   ')


def test_get_visitor_unknown_id(identity):
    with pytest.raises(VisitorNotFoundError) as exc_info:
        identity.get_visitor(999)

    assert exc_info.value.http_status == 404


def test_update_contact_keep_existing_ignores_blank_values(identity):
    visitor = identity.create_visitor('Ann Lee', phone='555', company='Old Co')

    updated = identity.update_contact(visitor.id, {'phone': '', 'company': 'New Co'}, keep_existing=True)

    assert updated.phone == '555'
    assert updated.company == 'New Co'


def test_update_contact_clears_blank_values(identity):
    visitor = identity.create_visitor('Ann Lee', phone='555')

    updated = identity.update_contact(visitor.id, {'phone': '  '}, visitor_type=VisitorType.CONTRACTOR)

    assert updated.phone is None
    assert updated.visitor_type is VisitorType.CONTRACTOR


def test_get_visitor_count(identity):
    assert identity.get_visitor_count() == 0
    identity.create_visitor('A')
    identity.create_visitor('B')
    assert identity.get_visitor_count() == 2
