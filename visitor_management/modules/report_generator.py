"""
Report Generator Module - Facility Visitor Management System

This module exports the visit log for spreadsheets and record keeping.

Features:
- CSV export of recent visits (one row per visit)
- Excel export with a visits sheet and a statistics sheet
- Optional saving of exports to the configured exports folder
"""

import io
import os
from typing import Any, Dict, List, Optional
import logging

import pandas as pd
from openpyxl.utils import get_column_letter

from visitor_management.modules.errors import ValidationError
from visitor_management.modules.models import parse_timestamp

EXPORT_COLUMNS = [
    'Name',
    'Email',
    'Phone',
    'Company',
    'Badge Number',
    'Check-in Time',
    'Check-out Time',
    'Duration (minutes)',
    'Status',
    'Date',
    'Check-in Hour',
    'Contractor Orientation',
    'General Orientation'
]

MIMETYPES = {
    'csv': 'text/csv',
    'excel': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'
}

EXTENSIONS = {
    'csv': 'csv',
    'excel': 'xlsx'
}


class ReportGenerator:
    """
    Visit history export in CSV and Excel formats.
    """

    def __init__(self, visit_tracker, settings, output_dir: Optional[str] = None):
        """
        Initialize the report generator.

        Args:
            visit_tracker (VisitStateTracker): Source of visit history and statistics
            settings (CoreSettings): Core configuration
            output_dir (str): Folder used by save_report
        """
        self.visit_tracker = visit_tracker
        self.settings = settings
        self.output_dir = output_dir or 'exports'
        self.supported_formats = list(MIMETYPES)
        self.logger = logging.getLogger(__name__)

    def build_visit_rows(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Flatten recent visits into export rows, most recent first.

        Args:
            limit (int): Maximum number of visits, defaults to export_max_rows
        """
        limit = limit or self.settings.export_max_rows
        visits = self.visit_tracker.get_visit_history(limit)

        rows = []
        for visit in visits:
            check_in = parse_timestamp(visit['check_in_time'])
            check_out = parse_timestamp(visit['check_out_time'])

            rows.append({
                'Name': visit['name'],
                'Email': visit['email'] or '',
                'Phone': visit['phone'] or '',
                'Company': visit['company'] or '',
                'Badge Number': visit['badge_number'] or '',
                'Check-in Time': check_in.strftime('%Y-%m-%d %H:%M:%S'),
                'Check-out Time': check_out.strftime('%Y-%m-%d %H:%M:%S') if check_out else '',
                # Open visits have no final duration yet
                'Duration (minutes)': visit['duration_minutes'] if check_out else '',
                'Status': 'Checked Out' if check_out else 'Still Here',
                'Date': check_in.strftime('%Y-%m-%d'),
                'Check-in Hour': check_in.strftime('%H'),
                'Contractor Orientation': 'Yes' if visit['contractor_orientation_completed'] else 'No',
                'General Orientation': 'Yes' if visit['general_orientation_completed'] else 'No'
            })

        return rows

    def generate_visit_report(self, output_format: str = 'csv',
                              limit: Optional[int] = None) -> Dict[str, Any]:
        """
        Generate a visit report in memory.

        Args:
            output_format (str): csv or excel
            limit (int): Maximum number of visits

        Returns:
            Dict[str, Any]: filename, mimetype, content (bytes) and record_count
        """
        output_format = (output_format or 'csv').lower()
        if output_format not in self.supported_formats:
            raise ValidationError(
                f"Unsupported export format: {output_format}. Use one of {', '.join(self.supported_formats)}"
            )

        rows = self.build_visit_rows(limit)
        df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)

        if output_format == 'excel':
            content = self._generate_excel(df)
        else:
            content = df.to_csv(index=False).encode('utf-8')

        timestamp = self.settings.now().strftime('%Y-%m-%d_%H-%M-%S')
        filename = f"visitor_report_{timestamp}.{EXTENSIONS[output_format]}"

        self.logger.info(f"Visit report generated: {filename} ({len(rows)} visits)")
        return {
            'filename': filename,
            'mimetype': MIMETYPES[output_format],
            'content': content,
            'record_count': len(rows)
        }

    def _generate_excel(self, df: pd.DataFrame) -> bytes:
        buffer = io.BytesIO()
        statistics = self.visit_tracker.get_visit_statistics()

        with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
            df.to_excel(writer, sheet_name='Visits', index=False)

            df_stats = pd.DataFrame([{'Statistic': key, 'Value': value} for key, value in statistics.items()])
            df_stats.to_excel(writer, sheet_name='Statistics', index=False)

            worksheet = writer.sheets['Visits']
            for index, column in enumerate(EXPORT_COLUMNS):
                width = max([len(column)] + [len(str(value)) for value in df[column]]) + 2
                worksheet.column_dimensions[get_column_letter(index + 1)].width = width

        return buffer.getvalue()

    def save_report(self, output_format: str = 'csv', limit: Optional[int] = None) -> Dict[str, Any]:
        """
        Generate a visit report and write it to the exports folder.

        Returns:
            Dict[str, Any]: filename, filepath, format and size
        """
        report = self.generate_visit_report(output_format, limit)

        os.makedirs(self.output_dir, exist_ok=True)
        filepath = os.path.join(self.output_dir, report['filename'])
        with open(filepath, 'wb') as f:
            f.write(report['content'])

        self.logger.info(f"Visit report saved to {filepath}")
        return {
            'success': True,
            'filename': report['filename'],
            'filepath': filepath,
            'format': output_format,
            'size': os.path.getsize(filepath),
            'record_count': report['record_count'],
            'generated_at': self.settings.now().isoformat()
        }
