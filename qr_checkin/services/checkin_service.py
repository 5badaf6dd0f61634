"""
Check-in decision procedure.

Given a scanned or typed code, resolve the guest and record at most one
attendance row per guest per day. The database unique constraint on
(guest_id, scan_date) decides which of several concurrent scans wins; the
read before the insert only saves a round-trip in the common repeat-scan
case.

Outcomes:
- SUCCESS: first scan of the day, a row was written
- ALREADY_SCANNED: the guest already has a row for today
- NOT_FOUND: no guest has this code
- ERROR: the backend failed; nothing was written
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional
from zoneinfo import ZoneInfo

from qr_checkin.errors import BackendError, CodeValidationError, DuplicateAttendanceError

logger = logging.getLogger(__name__)

# Longest code accepted from a scanner or keyboard
MAX_CODE_LENGTH = 128


class CheckInOutcome(Enum):
    SUCCESS = 'success'
    ALREADY_SCANNED = 'already_scanned'
    NOT_FOUND = 'not_found'
    ERROR = 'error'


@dataclass
class CheckInResult:
    """Result of one check-in attempt."""
    outcome: CheckInOutcome
    guest: Optional[Any] = None
    record: Optional[Any] = None
    scan_date: Optional[Any] = None
    cause: Optional[str] = None

    @property
    def guest_name(self):
        return self.guest.name if self.guest is not None else None

    def title(self):
        return {
            CheckInOutcome.SUCCESS: 'Success!',
            CheckInOutcome.ALREADY_SCANNED: 'Already Scanned',
            CheckInOutcome.NOT_FOUND: 'Not Found',
            CheckInOutcome.ERROR: 'Scan Failed',
        }[self.outcome]

    def message(self):
        if self.outcome == CheckInOutcome.SUCCESS:
            return f"Welcome, {self.guest_name or 'Guest'}!"
        if self.outcome == CheckInOutcome.ALREADY_SCANNED:
            return f"{self.guest_name or 'This guest'} has already checked in."
        if self.outcome == CheckInOutcome.NOT_FOUND:
            return 'This QR code is not registered in the system.'
        return 'Could not record the check-in. Please try again.'

    def to_dict(self):
        return {
            'status': self.outcome.value,
            'title': self.title(),
            'message': self.message(),
            'guest': {
                'id': self.guest.id,
                'name': self.guest.name,
                'designation': self.guest.designation,
                'image_url': self.guest.image_url,
                'qr_code': self.guest.qr_code,
            } if self.guest is not None else None,
            'attendance_id': self.record.id if self.record is not None else None,
            'scan_date': self.scan_date.isoformat() if self.scan_date else None,
            'retryable': self.outcome == CheckInOutcome.ERROR,
        }


def utc_now():
    return datetime.now(timezone.utc)


def normalize_code(raw):
    """
    Clean up a decoded or typed code.

    Raises:
        CodeValidationError: If the code is missing, blank or too long
    """
    if raw is None:
        raise CodeValidationError()
    if not isinstance(raw, str):
        raise CodeValidationError('Code must be text')

    code = raw.strip()
    if not code:
        raise CodeValidationError()
    if len(code) > MAX_CODE_LENGTH:
        raise CodeValidationError(f'Code must be at most {MAX_CODE_LENGTH} characters')
    return code


class CheckInService:
    """
    Stateless check-in procedure over an injected backend.

    The backend must provide find_guest_by_code, find_attendance and
    insert_attendance (raising DuplicateAttendanceError for the per-day
    uniqueness constraint and BackendError for anything else).
    """

    def __init__(self, backend, clock: Callable[[], datetime] = utc_now, tz_name: str = 'UTC'):
        self.backend = backend
        self.clock = clock
        self.tz = ZoneInfo(tz_name)

    def today(self, now=None):
        """Calendar date in the event timezone."""
        now = now or self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.tz).date()

    def check_in(self, code, actor_id=None) -> CheckInResult:
        """
        Check in the guest holding `code`.

        Args:
            code: Raw code from the scanner or manual entry
            actor_id: Staff user performing the scan, if known

        Returns:
            CheckInResult

        Raises:
            CodeValidationError: Before any backend call, for a blank code
        """
        code = normalize_code(code)

        try:
            guest = self.backend.find_guest_by_code(code)
        except BackendError as e:
            logger.error(f"Check-in lookup failed for code {code}: {e}")
            return CheckInResult(CheckInOutcome.ERROR, cause=str(e))

        if guest is None:
            logger.info(f"Check-in for unknown code {code}")
            return CheckInResult(CheckInOutcome.NOT_FOUND)

        # Fixed once so the read and the insert agree on the day
        now = self.clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        scan_date = self.today(now)

        try:
            existing = self.backend.find_attendance(guest.id, scan_date)
        except BackendError as e:
            logger.error(f"Attendance lookup failed for guest {guest.id}: {e}")
            return CheckInResult(CheckInOutcome.ERROR, scan_date=scan_date, cause=str(e))

        if existing is not None:
            logger.info(f"Guest {guest.id} already checked in on {scan_date}")
            return CheckInResult(CheckInOutcome.ALREADY_SCANNED, guest=guest, record=existing,
                                 scan_date=scan_date)

        try:
            record = self.backend.insert_attendance(
                guest.id, scan_date, actor_id,
                scanned_at=now.astimezone(timezone.utc).replace(tzinfo=None)
            )
        except DuplicateAttendanceError:
            logger.info(f"Guest {guest.id} lost a concurrent check-in race on {scan_date}")
            return CheckInResult(CheckInOutcome.ALREADY_SCANNED, guest=guest, scan_date=scan_date)
        except BackendError as e:
            logger.error(f"Attendance insert failed for guest {guest.id}: {e}")
            return CheckInResult(CheckInOutcome.ERROR, scan_date=scan_date, cause=str(e))

        logger.info(f"Checked in guest {guest.id} ({guest.name}) on {scan_date} by {actor_id or 'anonymous'}")
        return CheckInResult(CheckInOutcome.SUCCESS, guest=guest, record=record, scan_date=scan_date)
