from dataclasses import replace
from datetime import date

import pytest

from visitor_management.modules.errors import StorageError, ValidationError
from visitor_management.modules.import_reconciler import (
    BulkImportReconciler, normalize_csv_text, parse_training_date
)
from visitor_management.modules.models import TrainingType, VisitorType


def test_row_without_name_does_not_stop_the_batch(importer, identity):
    content = (
        "Ann Able,ann@example.com,555-0001,Acme,2024-03-01\n"
        ",nobody@example.com,555-0002,Acme,2024-03-01\n"
        "Ben Baker,ben@example.com,555-0003,Acme,2024-03-02\n"
    )

    summary = importer.import_training_csv(content)

    assert summary.imported_count == 2
    assert summary.error_count == 1
    assert summary.total_processed == 3
    assert summary.errors == ['Line 2: Missing name']
    assert identity.find_by_name('Ann Able') is not None
    assert identity.find_by_name('Ben Baker') is not None


def test_new_visitors_are_created_as_trained_contractors(importer, identity):
    importer.import_training_csv("Ann Able,ann@example.com,555-0001,Acme,2024-03-01\n")

    visitor = identity.find_by_name('ann able')

    assert visitor.visitor_type is VisitorType.CONTRACTOR
    assert visitor.training_type is TrainingType.CONTRACTOR
    assert visitor.contractor_orientation_completed is True
    assert visitor.last_training_date == date(2024, 3, 1)
    assert visitor.training_expires_date == date(2025, 3, 1)


def test_header_bom_and_windows_line_endings(importer, identity):
    content = (
        "\ufeffName,Email,Phone,Company,Training Date\r\n"
        "Ann Able,ann@example.com,555-0001,Acme,2024-03-01\r\n"
        "\r\n"
        "Ben Baker,ben@example.com,555-0003,Acme,2024-03-02\r\n"
    ).encode('utf-8')

    summary = importer.import_training_csv(content)

    assert summary.imported_count == 2
    assert summary.error_count == 0
    assert summary.created_count == 2


def test_only_first_line_is_treated_as_header(importer):
    content = (
        "Ann Able,ann@example.com,555-0001,Acme,2024-03-01\n"
        "Name Person,email@example.com,555-0002,Acme,2024-03-01\n"
    )

    summary = importer.import_training_csv(content)

    assert summary.imported_count == 2


def test_existing_visitor_matched_by_name_keeps_contact_details(importer, identity):
    existing = identity.create_visitor('Ann Able', email='ann@old.com', phone='555-9999')

    summary = importer.import_training_csv('"ann able",,,"New Co",2024-05-01\n')

    visitor = identity.get_visitor(existing.id)
    assert summary.updated_count == 1
    assert identity.get_visitor_count() == 1
    assert visitor.email == 'ann@old.com'
    assert visitor.phone == '555-9999'
    assert visitor.company == 'New Co'
    assert visitor.last_training_date == date(2024, 5, 1)


def test_existing_visitor_matched_by_email(importer, identity):
    existing = identity.create_visitor('Annie Able', email='ann@example.com')

    importer.import_training_csv("Ann Able,ann@example.com,,,2024-05-01\n")

    assert identity.get_visitor_count() == 1
    assert identity.get_visitor(existing.id).contractor_orientation_completed is True


def test_not_enough_data(importer):
    summary = importer.import_training_csv("Ann Able,ann@example.com,,,2024-05-01\nJustAName\n")

    assert summary.imported_count == 1
    assert summary.errors == ['Line 2: JustAName: Not enough data']


def test_training_date_formats(importer, identity):
    content = (
        "Iso Person,iso@example.com,,,2024-03-05\n"
        "Us Person,us@example.com,,,03/05/2024\n"
        "Eu Person,eu@example.com,,,25/12/2024\n"
    )

    importer.import_training_csv(content)

    assert identity.find_by_name('Iso Person').last_training_date == date(2024, 3, 5)
    assert identity.find_by_name('Us Person').last_training_date == date(2024, 3, 5)
    assert identity.find_by_name('Eu Person').last_training_date == date(2024, 12, 25)


def test_missing_date_defaults_to_today(importer, identity):
    summary = importer.import_training_csv("Ann Able,ann@example.com,,,\nBen Baker,ben@example.com,,,soon\n")

    assert summary.imported_count == 2
    assert summary.defaulted_dates == ['Ann Able', 'Ben Baker']
    assert identity.find_by_name('Ann Able').last_training_date == date(2025, 1, 16)


def test_missing_date_rejected_by_policy(db, identity, compliance, settings):
    importer = BulkImportReconciler(
        db, identity, compliance, replace(settings, import_missing_date_policy='reject')
    )

    summary = importer.import_training_csv("Ann Able,ann@example.com,,,\nBen Baker,ben@example.com,,,2024-01-01\n")

    assert summary.imported_count == 1
    assert summary.errors == ['Line 1: Ann Able: Missing training date']
    assert identity.find_by_name('Ann Able') is None


@pytest.mark.parametrize('content', ['', '   \n\n', 'Name,Email,Phone,Company,Training Date\n'])
def test_file_without_data_rows(importer, content):
    with pytest.raises(ValidationError):
        importer.import_training_csv(content)


def test_summary_dict(importer):
    result = importer.import_training_csv("Ann Able,ann@example.com,,,2024-01-01\n").to_dict()

    assert result['success'] is True
    assert result['imported_count'] == 1
    assert result['error_count'] == 0
    assert result['errors'] == []


def test_parse_training_date():
    assert parse_training_date('2024-02-29') == date(2024, 2, 29)
    assert parse_training_date('"12/31/2024"') == date(2024, 12, 31)
    assert parse_training_date('2024-13-01') is None
    assert parse_training_date('') is None


def test_normalize_csv_text():
    assert normalize_csv_text(b'\xef\xbb\xbfa,b\r\nc,d\re,f') == 'a,b\nc,d\ne,f'


def test_failed_row_is_rolled_back_and_batch_continues(importer, identity, compliance, monkeypatch):
    set_training_date = compliance.set_training_date
    calls = []

    def fail_first_row(visitor_id, training_date):
        calls.append(visitor_id)
        if len(calls) == 1:
            raise StorageError(cause=RuntimeError('disk I/O error'))
        return set_training_date(visitor_id, training_date)

    monkeypatch.setattr(compliance, 'set_training_date', fail_first_row)

    summary = importer.import_training_csv(
        "Ann Able,ann@example.com,555-0001,Acme,2024-03-01\n"
        "Ben Baker,ben@example.com,555-0003,Acme,2024-03-02\n"
    )

    assert summary.error_count == 1
    assert summary.imported_count == 1
    assert summary.created_count == 1
    assert identity.find_by_name('Ann Able') is None
    assert identity.find_by_name('Ben Baker').contractor_orientation_completed is True


def test_failed_row_leaves_existing_visitor_unchanged(importer, identity, compliance, monkeypatch):
    existing = identity.create_visitor('Ann Able', company='Old Co')

    def fail(*args, **kwargs):
        raise StorageError(cause=RuntimeError('disk I/O error'))

    monkeypatch.setattr(compliance, 'set_training_date', fail)

    summary = importer.import_training_csv("Ann Able,,,New Co,2024-03-01\n")

    visitor = identity.get_visitor(existing.id)
    assert summary.updated_count == 0
    assert summary.errors == ['Line 1: Ann Able: A storage error occurred']
    assert visitor.company == 'Old Co'
    assert visitor.visitor_type is VisitorType.GENERAL


def test_non_utf8_file_is_rejected(importer, identity):
    with pytest.raises(ValidationError, match='not valid UTF-8'):
        importer.import_training_csv(b"Jos\xe9 Diaz,jose@example.com,,,2024-03-01\n")

    assert identity.get_visitor_count() == 0


def test_normalize_csv_text_rejects_invalid_bytes():
    with pytest.raises(ValidationError, match='byte 3'):
        normalize_csv_text(b'Jos\xe9,x')
