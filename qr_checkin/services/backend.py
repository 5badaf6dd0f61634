"""
Database backend for guests, attendance and staff accounts.

Wraps a SQLAlchemy session so that the check-in service and the routes
talk to one object instead of reaching into db.session directly. Every
write commits its own transaction and rolls back on failure; committed
guest and attendance writes are published to the change feed.
"""

import logging
import secrets
import string
from datetime import datetime

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from qr_checkin.errors import BackendError, DuplicateAttendanceError
from qr_checkin.models import Guest, Attendance, StaffUser, ModeratorApproval
from qr_checkin.models.attendance import ATTENDANCE_UNIQUE_CONSTRAINT
from qr_checkin.models.guest import generate_guest_code
from qr_checkin.models.staff import ROLE_MODERATOR, APPROVAL_PENDING, APPROVAL_STATUSES
from qr_checkin.services.change_feed import ChangeEvent, INSERT, UPDATE, DELETE

logger = logging.getLogger(__name__)

# SQLite reports unique violations by column list rather than constraint name
_SQLITE_ATTENDANCE_COLUMNS = 'attendance.guest_id, attendance.scan_date'

# Attempts at issuing a fresh guest code before giving up
MAX_CODE_ATTEMPTS = 5


def is_attendance_uniqueness_violation(error):
    """True only when an IntegrityError comes from the (guest, day) constraint."""
    orig = getattr(error, 'orig', None)

    # psycopg2 / psycopg expose the violated constraint name
    diag = getattr(orig, 'diag', None)
    constraint_name = getattr(diag, 'constraint_name', None)
    if constraint_name:
        return constraint_name == ATTENDANCE_UNIQUE_CONSTRAINT

    message = str(orig if orig is not None else error)
    if ATTENDANCE_UNIQUE_CONSTRAINT in message:
        return True
    return 'UNIQUE constraint failed' in message and _SQLITE_ATTENDANCE_COLUMNS in message


def generate_password(length=12):
    """Random password with at least one upper-case letter, digit and symbol."""
    alphabet = string.ascii_letters + string.digits
    body = ''.join(secrets.choice(alphabet) for _ in range(length - 3))
    return body + secrets.choice(string.ascii_uppercase) + secrets.choice(string.digits) + '!'


class DatabaseBackend:
    """Storage operations used by the check-in flow and the management API."""

    def __init__(self, session, feed=None):
        self.session = session
        self.feed = feed

    def _publish(self, table, action, row_id=None):
        if self.feed is not None:
            self.feed.publish(ChangeEvent(table, action, row_id))

    def _commit(self, operation):
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Commit failed during {operation}: {e}")
            raise BackendError(operation, str(e))

    # ============== CHECK-IN ==============

    def find_guest_by_code(self, code):
        try:
            return self.session.query(Guest).filter(Guest.qr_code == code).first()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise BackendError('guest lookup', str(e))

    def find_attendance(self, guest_id, scan_date):
        try:
            return self.session.query(Attendance).filter_by(
                guest_id=guest_id, scan_date=scan_date
            ).first()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise BackendError('attendance lookup', str(e))

    def insert_attendance(self, guest_id, scan_date, actor_id=None, scanned_at=None):
        """
        Insert the one attendance row for (guest_id, scan_date).

        Raises:
            DuplicateAttendanceError: The unique constraint rejected the row
            BackendError: Any other storage failure
        """
        record = Attendance(
            guest_id=guest_id,
            scan_date=scan_date,
            scanned_at=scanned_at or datetime.utcnow(),
            scanned_by=actor_id,
        )
        try:
            self.session.add(record)
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if is_attendance_uniqueness_violation(e):
                raise DuplicateAttendanceError(guest_id, scan_date)
            raise BackendError('attendance insert', str(e.orig if e.orig is not None else e))
        except SQLAlchemyError as e:
            self.session.rollback()
            raise BackendError('attendance insert', str(e))

        self._publish('attendance', INSERT, record.id)
        return record

    # ============== ATTENDANCE ADMIN ==============

    def get_attendance(self, attendance_id):
        return self.session.get(Attendance, attendance_id)

    def list_attendance(self, scan_date, search=None):
        """Attendance for one day, newest scan first, optionally filtered by guest."""
        query = self.session.query(Attendance).join(Guest).filter(Attendance.scan_date == scan_date)
        if search:
            term = f"%{search.strip().lower()}%"
            query = query.filter(or_(
                func.lower(Guest.name).like(term),
                Guest.phone.like(term),
                func.lower(Guest.qr_code).like(term),
            ))
        return query.order_by(Attendance.scanned_at.desc()).all()

    def delete_attendance(self, attendance_id):
        record = self.get_attendance(attendance_id)
        if not record:
            return False
        self.session.delete(record)
        self._commit('attendance delete')
        self._publish('attendance', DELETE, attendance_id)
        return True

    def delete_attendance_in_range(self, start, end):
        """Delete attendance with start <= scan_date <= end. Returns rows removed."""
        try:
            deleted = self.session.query(Attendance).filter(
                Attendance.scan_date >= start,
                Attendance.scan_date <= end
            ).delete(synchronize_session=False)
        except SQLAlchemyError as e:
            self.session.rollback()
            raise BackendError('attendance reset', str(e))
        self._commit('attendance reset')
        if deleted:
            self._publish('attendance', DELETE)
        return deleted

    def count_attendance_on(self, scan_date):
        return self.session.query(Attendance).filter_by(scan_date=scan_date).count()

    # ============== ROSTER ==============

    def get_guest(self, guest_id):
        return self.session.get(Guest, guest_id)

    def count_guests(self):
        return self.session.query(Guest).count()

    def list_guests(self, page=1, page_size=25, search=None):
        """
        Page through the roster, newest first.

        Returns:
            dict with 'items', 'total', 'page', 'page_size' and 'pages'
        """
        page = max(1, int(page or 1))
        page_size = max(1, min(int(page_size or 25), 200))

        query = self.session.query(Guest)
        if search:
            term = f"%{search.strip().lower()}%"
            query = query.filter(or_(
                func.lower(Guest.name).like(term),
                Guest.phone.like(term),
                func.lower(Guest.qr_code).like(term),
            ))

        total = query.count()
        items = query.order_by(Guest.created_at.desc()).offset((page - 1) * page_size).limit(page_size).all()
        return {
            'items': items,
            'total': total,
            'page': page,
            'page_size': page_size,
            'pages': (total + page_size - 1) // page_size,
        }

    def create_guest(self, name, designation=None, phone=None, image_url=None, created_by=None):
        """Create a guest and issue a fresh badge code."""
        for attempt in range(MAX_CODE_ATTEMPTS):
            guest = Guest(
                name=name,
                designation=designation,
                phone=phone,
                image_url=image_url,
                qr_code=generate_guest_code(),
                created_by=created_by,
            )
            try:
                self.session.add(guest)
                self.session.commit()
            except IntegrityError as e:
                self.session.rollback()
                logger.warning(f"Guest code collision on attempt {attempt + 1}: {e}")
                continue
            except SQLAlchemyError as e:
                self.session.rollback()
                raise BackendError('guest create', str(e))

            self._publish('guests', INSERT, guest.id)
            return guest

        raise BackendError('guest create', 'could not issue a unique guest code')

    def update_guest(self, guest, **fields):
        """Update display fields. The badge code is never reassigned."""
        for key in ('name', 'designation', 'phone', 'image_url'):
            if key in fields:
                setattr(guest, key, fields[key])
        self._commit('guest update')
        self._publish('guests', UPDATE, guest.id)
        return guest

    def delete_guest(self, guest):
        guest_id = guest.id
        self.session.delete(guest)
        self._commit('guest delete')
        self._publish('guests', DELETE, guest_id)

    # ============== STAFF & APPROVALS ==============

    def get_staff(self, user_id):
        return self.session.get(StaffUser, user_id)

    def get_staff_by_email(self, email):
        return self.session.query(StaffUser).filter_by(email=email.strip().lower()).first()

    def get_role(self, user_id):
        user = self.get_staff(user_id)
        return user.role if user else None

    def create_staff(self, email, password, full_name=None, role=ROLE_MODERATOR):
        """Create a staff account; moderators start with a pending approval."""
        user = StaffUser(email=email.strip().lower(), full_name=full_name, role=role)
        user.set_password(password)
        self.session.add(user)
        if role == ROLE_MODERATOR:
            user.approval = ModeratorApproval(status=APPROVAL_PENDING)
        self._commit('staff create')
        return user

    def update_staff(self, user, **fields):
        for key in ('full_name', 'avatar_url'):
            if key in fields:
                setattr(user, key, fields[key])
        self._commit('staff update')
        return user

    def reset_password(self, user):
        """Give the user a new random password and return it."""
        new_password = generate_password()
        user.set_password(new_password)
        self._commit('password reset')
        return new_password

    def get_approval_status(self, user_id):
        approval = self.session.query(ModeratorApproval).filter_by(user_id=user_id).first()
        return approval.status if approval else None

    def set_approval_status(self, user_id, status):
        if status not in APPROVAL_STATUSES:
            raise ValueError(f"Unknown approval status: {status}")

        approval = self.session.query(ModeratorApproval).filter_by(user_id=user_id).first()
        if not approval:
            approval = ModeratorApproval(user_id=user_id)
            self.session.add(approval)
        approval.status = status
        approval.reviewed_at = datetime.utcnow()
        self._commit('approval update')
        return approval

    def list_moderators(self):
        return self.session.query(StaffUser).filter_by(role=ROLE_MODERATOR).order_by(
            StaffUser.created_at.desc()
        ).all()

    def delete_moderator(self, user):
        self.session.delete(user)
        self._commit('moderator delete')

    def count_moderators(self):
        return self.session.query(StaffUser).filter_by(role=ROLE_MODERATOR).count()

    def count_pending_approvals(self):
        return self.session.query(ModeratorApproval).filter_by(status=APPROVAL_PENDING).count()
