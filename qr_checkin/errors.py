"""
Exceptions raised by the check-in services and the database backend.

Business outcomes (not found, already scanned) are never raised; they are
returned as a CheckInResult. These classes cover input validation and
infrastructure failures.
"""


class CheckInAppError(Exception):
    """Base class for application errors."""

    def __init__(self, message, error_code=None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code

    def __str__(self):
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class CodeValidationError(CheckInAppError, ValueError):
    """Scanned or typed code is empty or malformed."""

    def __init__(self, reason='Code is required'):
        super().__init__(reason, 'INVALID_CODE')


class DuplicateAttendanceError(CheckInAppError):
    """The (guest, day) unique constraint rejected an insert."""

    def __init__(self, guest_id, scan_date):
        super().__init__(
            f"Guest '{guest_id}' already has attendance for {scan_date.isoformat()}",
            'ALREADY_SCANNED'
        )
        self.guest_id = guest_id
        self.scan_date = scan_date


class BackendError(CheckInAppError):
    """Storage failure other than the attendance uniqueness constraint."""

    def __init__(self, operation, details):
        super().__init__(f"Backend error during {operation}: {details}", 'BACKEND_ERROR')
        self.operation = operation
        self.details = details

