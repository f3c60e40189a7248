"""
Bulk Import Reconciler Module - Facility Visitor Management System

Imports contractor training records from CSV exports (spreadsheets, training
providers, other systems) and reconciles them against existing visitors.

CSV layout, header row optional:
    Name,Email,Phone,Company,Training Date

Processing rules:
- Line endings are normalized and a leading byte-order mark is dropped.
- Only the first non-blank line may be a header; it is skipped when it
  contains "name" or "email" (any case).
- Name is required. Email, phone and company are optional.
- Training dates are read as YYYY-MM-DD, then MM/DD/YYYY, then DD/MM/YYYY.
  Missing or unreadable dates follow IMPORT_MISSING_DATE_POLICY: "today"
  records today's date and lists the row under defaulted_dates, "reject"
  turns the row into an error.
- Existing visitors are matched by name, then by email.
- The file must be UTF-8; other encodings are rejected, not guessed.
- Each row is written in its own transaction. A failing row is rolled back,
  reported, and the import carries on with the next one.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple, Union
import csv
import logging

from visitor_management.modules.errors import ImportRowError, ValidationError, VisitorSystemError
from visitor_management.modules.models import VisitorType

BOM = '\ufeff'
TRAINING_DATE_FORMATS = (
    ('%Y-%m-%d', 'ISO'),
    ('%m/%d/%Y', 'US'),
    ('%d/%m/%Y', 'EU'),
)
HEADER_TOKENS = ('name', 'email')
FIELD_STRIP_CHARS = ' "\''


def normalize_csv_text(content: Union[bytes, str]) -> str:
    """
    Decode, unify line endings and drop a leading byte-order mark.

    Raises:
        ValidationError: The bytes are not valid UTF-8
    """
    if isinstance(content, bytes):
        try:
            content = content.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ValidationError(
                f"CSV file is not valid UTF-8 (byte {e.start}). Save the file as CSV UTF-8 and try again"
            ) from e
    content = content.replace('\r\n', '\n').replace('\r', '\n')
    if content.startswith(BOM):
        content = content[len(BOM):]
    return content


def parse_training_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a training date in ISO, US or EU order.

    Returns:
        date: Parsed date, or None when the value is empty or unreadable
    """
    value = (value or '').strip(FIELD_STRIP_CHARS)
    if not value:
        return None

    for date_format, _label in TRAINING_DATE_FORMATS:
        try:
            return datetime.strptime(value, date_format).date()
        except ValueError:
            continue
    return None


@dataclass
class TrainingRow:
    """One parsed data line of a training CSV."""
    line_number: int
    name: str
    email: str = ''
    phone: str = ''
    company: str = ''
    raw_training_date: str = ''


@dataclass
class ImportSummary:
    """Result of a bulk import run."""
    imported_count: int = 0
    total_processed: int = 0
    created_count: int = 0
    updated_count: int = 0
    row_errors: List[ImportRowError] = field(default_factory=list)
    defaulted_dates: List[str] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.row_errors)

    @property
    def errors(self) -> List[str]:
        return [str(error) for error in self.row_errors]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': True,
            'message': f"Import completed: {self.imported_count} records imported",
            'imported_count': self.imported_count,
            'error_count': self.error_count,
            'errors': self.errors,
            'total_processed': self.total_processed,
            'created_count': self.created_count,
            'updated_count': self.updated_count,
            'defaulted_dates': self.defaulted_dates
        }


class BulkImportReconciler:
    """
    CSV training import with per-row failure isolation.
    """

    def __init__(self, database_manager, identity_resolver, compliance_calculator, settings):
        """
        Args:
            database_manager: Database manager instance
            identity_resolver (IdentityResolver): Visitor lookup and creation
            compliance_calculator (TrainingComplianceCalculator): Training date updates
            settings (CoreSettings): Core configuration
        """
        self.db = database_manager
        self.identity = identity_resolver
        self.compliance = compliance_calculator
        self.settings = settings
        self.logger = logging.getLogger(__name__)

    def import_training_csv(self, content: Union[bytes, str]) -> ImportSummary:
        """
        Import training records from raw CSV content.

        Args:
            content (bytes | str): Uploaded file content

        Returns:
            ImportSummary: Counts and per-row errors

        Raises:
            ValidationError: The file is not UTF-8 or has no data rows at all
        """
        try:
            text = normalize_csv_text(content)
        except ValidationError as e:
            self.logger.warning(f"Training import rejected: {e.message}")
            raise

        if not text.strip():
            raise ValidationError('CSV file is empty')

        summary = ImportSummary()
        first_line = True

        for index, line in enumerate(text.strip().split('\n')):
            line_number = index + 1
            line = line.strip()
            if not line:
                continue

            if first_line:
                first_line = False
                if self._is_header(line):
                    continue

            summary.total_processed += 1
            try:
                row = self._parse_line(line_number, line)
                # A row is written completely or not at all
                with self.db.transaction():
                    created, defaulted = self._import_row(row)

                summary.imported_count += 1
                if created:
                    summary.created_count += 1
                else:
                    summary.updated_count += 1
                if defaulted:
                    summary.defaulted_dates.append(row.name)
            except ImportRowError as e:
                summary.row_errors.append(e)
                self.logger.warning(f"Training import skipped {e}")
            except VisitorSystemError as e:
                summary.row_errors.append(ImportRowError(line_number, e.message, self._name_hint(line)))
                self.logger.error(f"Training import failed on line {line_number}: {str(e)}")
            except Exception as e:
                summary.row_errors.append(ImportRowError(line_number, 'Unexpected error', self._name_hint(line)))
                self.logger.exception(f"Unexpected training import error on line {line_number}: {str(e)}")

        if summary.total_processed == 0:
            raise ValidationError('No data rows found in CSV')

        self.logger.info(
            f"Training import completed: {summary.imported_count}/{summary.total_processed} rows imported "
            f"({summary.created_count} created, {summary.updated_count} updated, {summary.error_count} errors)"
        )
        return summary

    def _is_header(self, line: str) -> bool:
        lowered = line.lower()
        return any(token in lowered for token in HEADER_TOKENS)

    def _parse_line(self, line_number: int, line: str) -> TrainingRow:
        fields = [value.strip(FIELD_STRIP_CHARS) for value in next(csv.reader([line]))]

        if len(fields) < 2:
            raise ImportRowError(line_number, 'Not enough data', fields[0] if fields else None)

        fields += [''] * (5 - len(fields))
        name = fields[0]
        if not name:
            raise ImportRowError(line_number, 'Missing name')

        return TrainingRow(
            line_number=line_number,
            name=name,
            email=fields[1],
            phone=fields[2],
            company=fields[3],
            raw_training_date=fields[4]
        )

    def _resolve_training_date(self, row: TrainingRow) -> Tuple[date, bool]:
        """Training date for the row, and whether today's date was substituted."""
        parsed = parse_training_date(row.raw_training_date)
        if parsed is not None:
            return parsed, False

        reason = 'Invalid training date' if row.raw_training_date else 'Missing training date'
        if self.settings.import_missing_date_policy == 'reject':
            raise ImportRowError(row.line_number, reason, row.name)

        today = self.settings.today()
        self.logger.warning(
            f"Line {row.line_number}: {reason.lower()} for {row.name}, recording {today.isoformat()}"
        )
        return today, True

    def _import_row(self, row: TrainingRow) -> Tuple[bool, bool]:
        """
        Write one training row. Must run inside a transaction.

        Returns:
            Tuple[bool, bool]: (visitor created, training date defaulted)
        """
        training_date, defaulted = self._resolve_training_date(row)

        visitor = self.identity.find_by_name(row.name)
        if visitor is None and row.email:
            visitor = self.identity.find_by_email(row.email)

        contact = {'email': row.email, 'phone': row.phone, 'company': row.company}

        created = visitor is None
        if created:
            visitor = self.identity.create_visitor(
                row.name,
                email=row.email or None,
                phone=row.phone or None,
                company=row.company or None,
                visitor_type=VisitorType.CONTRACTOR
            )
        else:
            self.identity.update_contact(
                visitor.id, contact, visitor_type=VisitorType.CONTRACTOR, keep_existing=True
            )

        # Marks contractor orientation completed and recomputes the expiration
        self.compliance.set_training_date(visitor.id, training_date)
        return created, defaulted

    def _name_hint(self, line: str) -> Optional[str]:
        first = line.split(',', 1)[0].strip(FIELD_STRIP_CHARS)
        return first or None
