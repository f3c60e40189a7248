import io

import pandas as pd
import pytest

from visitor_management.modules.errors import ValidationError
from visitor_management.modules.report_generator import EXPORT_COLUMNS


@pytest.fixture
def report_generator(system):
    return system.report_generator


@pytest.fixture
def visits(identity, tracker, compliance, clock):
    jane = identity.create_visitor('Jane Doe', email='jane@example.com', badge_number='B-12')
    carl = identity.create_visitor('Carl Contractor', company='Pipes Inc')
    compliance.set_training_date(carl.id, '2024-06-01')

    tracker.check_in(jane.id)
    clock.advance(minutes=25)
    tracker.check_out(jane.id)
    clock.advance(minutes=5)
    tracker.check_in(carl.id)
    return jane, carl


def test_visit_rows(report_generator, visits):
    rows = report_generator.build_visit_rows()

    assert [row['Name'] for row in rows] == ['Carl Contractor', 'Jane Doe']

    carl, jane = rows
    assert carl['Status'] == 'Still Here'
    assert carl['Check-out Time'] == ''
    assert carl['Duration (minutes)'] == ''
    assert carl['Contractor Orientation'] == 'Yes'

    assert jane['Status'] == 'Checked Out'
    assert jane['Duration (minutes)'] == 25
    assert jane['Badge Number'] == 'B-12'
    assert jane['Date'] == '2025-01-16'
    assert jane['Check-in Hour'] == '09'
    assert jane['General Orientation'] == 'No'


def test_csv_report(report_generator, visits):
    report = report_generator.generate_visit_report('csv')

    assert report['mimetype'] == 'text/csv'
    assert report['filename'].startswith('visitor_report_2025-01-16_')
    assert report['record_count'] == 2

    df = pd.read_csv(io.BytesIO(report['content']))
    assert list(df.columns) == EXPORT_COLUMNS
    assert len(df) == 2


def test_excel_report(report_generator, visits):
    report = report_generator.generate_visit_report('excel')

    assert report['filename'].endswith('.xlsx')
    sheets = pd.read_excel(io.BytesIO(report['content']), sheet_name=None, engine='openpyxl')
    assert set(sheets) == {'Visits', 'Statistics'}
    assert list(sheets['Visits'].columns) == EXPORT_COLUMNS


def test_unknown_format(report_generator):
    with pytest.raises(ValidationError):
        report_generator.generate_visit_report('pdf')


def test_save_report(report_generator, visits, tmp_path):
    result = report_generator.save_report('csv')

    assert result['success'] is True
    assert result['size'] > 0
    assert (tmp_path / 'exports' / result['filename']).exists()
