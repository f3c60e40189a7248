"""
Error types for the visitor management core.

Request-scoped operations (check-in, check-out, search) raise these and the
HTTP layer turns them into JSON responses. The bulk importer collects
ImportRowError instances per row instead of raising them.
"""

from typing import Optional


class VisitorSystemError(Exception):
    """Base class for every error raised by the visitor management core."""

    error_type = 'system_error'
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {
            'success': False,
            'error': self.message,
            'error_type': self.error_type
        }


class ValidationError(VisitorSystemError):
    """Missing or malformed required field. The message is shown to the caller."""

    error_type = 'validation_error'
    http_status = 400


class DuplicatePresenceError(VisitorSystemError):
    """Check-in attempted while the visitor already has an open visit."""

    error_type = 'already_checked_in'
    http_status = 409

    def __init__(self, visitor_id: int, message: str = 'Visitor is already checked in'):
        super().__init__(message)
        self.visitor_id = visitor_id


class NotPresentError(VisitorSystemError):
    """Check-out attempted without an open visit."""

    error_type = 'not_checked_in'
    http_status = 409

    def __init__(self, visitor_id: int, message: str = 'Visitor is not currently checked in'):
        super().__init__(message)
        self.visitor_id = visitor_id


class VisitorNotFoundError(VisitorSystemError):
    error_type = 'visitor_not_found'
    http_status = 404

    def __init__(self, visitor_id, message: Optional[str] = None):
        super().__init__(message or f'Visitor {visitor_id} not found')
        self.visitor_id = visitor_id


class StorageError(VisitorSystemError):
    """
    Underlying persistence failure.

    The original database error is kept on ``cause`` for logging; callers only
    ever see the generic message.
    """

    error_type = 'storage_error'
    http_status = 500

    def __init__(self, message: str = 'A storage error occurred', cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class ConstraintViolationError(StorageError):
    """A write rejected by a schema constraint (unique index, foreign key)."""

    error_type = 'constraint_violation'


class ImportRowError(VisitorSystemError):
    """A single CSV row that could not be imported."""

    error_type = 'import_row_error'
    http_status = 400

    def __init__(self, line_number: int, message: str, name: Optional[str] = None):
        super().__init__(message)
        self.line_number = line_number
        self.name = name

    def __str__(self):
        if self.name:
            return f"Line {self.line_number}: {self.name}: {self.message}"
        return f"Line {self.line_number}: {self.message}"
