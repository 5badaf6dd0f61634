from datetime import date, datetime

import pytest
from sqlalchemy.exc import IntegrityError

from qr_checkin.errors import BackendError, DuplicateAttendanceError
from qr_checkin.models import Attendance, Guest, ModeratorApproval
from qr_checkin.models.staff import (
    ROLE_ADMIN, ROLE_MODERATOR, APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED,
)
from qr_checkin.services import backend as backend_module
from qr_checkin.services.backend import is_attendance_uniqueness_violation, generate_password

from conftest import add_guest, add_staff

DAY = date(2026, 3, 14)


class FakeDiag:
    def __init__(self, constraint_name):
        self.constraint_name = constraint_name


class FakeDriverError(Exception):
    def __init__(self, message, constraint_name=None):
        super().__init__(message)
        self.diag = FakeDiag(constraint_name)


def integrity_error(orig):
    return IntegrityError('INSERT INTO attendance', {}, orig)


# ============== UNIQUENESS MAPPING ==============

def test_postgres_constraint_name_is_recognised():
    error = integrity_error(FakeDriverError('duplicate key', 'uq_attendance_guest_day'))
    assert is_attendance_uniqueness_violation(error)


def test_other_postgres_constraint_is_not_a_duplicate():
    error = integrity_error(FakeDriverError('duplicate key', 'guests_qr_code_key'))
    assert not is_attendance_uniqueness_violation(error)


def test_sqlite_column_message_is_recognised():
    error = integrity_error(Exception(
        'UNIQUE constraint failed: attendance.guest_id, attendance.scan_date'
    ))
    assert is_attendance_uniqueness_violation(error)


def test_not_null_failure_is_not_a_duplicate():
    error = integrity_error(Exception('NOT NULL constraint failed: attendance.guest_id'))
    assert not is_attendance_uniqueness_violation(error)


# ============== ATTENDANCE ==============

def test_insert_attendance_rejects_second_row_for_same_day(app, backend):
    guest_id = add_guest(app)

    record = backend.insert_attendance(guest_id, DAY)
    assert record.id is not None

    with pytest.raises(DuplicateAttendanceError) as excinfo:
        backend.insert_attendance(guest_id, DAY)

    assert excinfo.value.guest_id == guest_id
    assert excinfo.value.error_code == 'ALREADY_SCANNED'
    assert Attendance.query.count() == 1


def test_insert_attendance_allows_other_days(app, backend):
    guest_id = add_guest(app)

    backend.insert_attendance(guest_id, DAY)
    backend.insert_attendance(guest_id, date(2026, 3, 15))

    assert Attendance.query.count() == 2


def test_insert_attendance_other_integrity_failure_is_backend_error(app, backend):
    add_guest(app)

    with pytest.raises(BackendError) as excinfo:
        backend.insert_attendance(None, DAY)

    assert not isinstance(excinfo.value, DuplicateAttendanceError)
    assert Attendance.query.count() == 0


def test_find_attendance(app, backend):
    guest_id = add_guest(app)
    assert backend.find_attendance(guest_id, DAY) is None

    backend.insert_attendance(guest_id, DAY)

    assert backend.find_attendance(guest_id, DAY).guest_id == guest_id
    assert backend.find_attendance(guest_id, date(2026, 3, 15)) is None


def test_list_attendance_newest_first_with_search(app, backend):
    ada = add_guest(app, name='Ada Lovelace', code='GUEST-AAAA0001', phone='555-0101')
    grace = add_guest(app, name='Grace Hopper', code='GUEST-BBBB0002', phone='555-0202')

    backend.insert_attendance(ada, DAY, scanned_at=datetime(2026, 3, 14, 9, 0))
    backend.insert_attendance(grace, DAY, scanned_at=datetime(2026, 3, 14, 9, 30))

    records = backend.list_attendance(DAY)
    assert [r.guest.name for r in records] == ['Grace Hopper', 'Ada Lovelace']

    assert [r.guest_id for r in backend.list_attendance(DAY, search='hopper')] == [grace]
    assert [r.guest_id for r in backend.list_attendance(DAY, search='0101')] == [ada]
    assert [r.guest_id for r in backend.list_attendance(DAY, search='guest-aaaa')] == [ada]
    assert backend.list_attendance(date(2026, 3, 15)) == []


def test_delete_attendance_allows_rescan(app, backend):
    guest_id = add_guest(app)
    record = backend.insert_attendance(guest_id, DAY)

    assert backend.delete_attendance(record.id) is True
    assert backend.delete_attendance(record.id) is False

    backend.insert_attendance(guest_id, DAY)
    assert Attendance.query.count() == 1


def test_delete_attendance_in_range(app, backend):
    guest_id = add_guest(app)
    for day in (13, 14, 15):
        backend.insert_attendance(guest_id, date(2026, 3, day))

    assert backend.delete_attendance_in_range(DAY, DAY) == 1
    assert backend.count_attendance_on(DAY) == 0
    assert backend.count_attendance_on(date(2026, 3, 13)) == 1
    assert backend.delete_attendance_in_range(date(2026, 3, 1), date(2026, 3, 31)) == 2


# ============== ROSTER ==============

def test_create_guest_issues_code(app, backend):
    guest = backend.create_guest('Ada Lovelace', designation='Speaker', phone='555-0101')

    assert guest.qr_code.startswith('GUEST-')
    assert len(guest.qr_code) == len('GUEST-') + 8
    assert backend.find_guest_by_code(guest.qr_code).id == guest.id


def test_create_guest_retries_code_collision(app, backend, monkeypatch):
    add_guest(app, code='GUEST-TAKEN000')
    codes = iter(['GUEST-TAKEN000', 'GUEST-FRESH001'])
    monkeypatch.setattr(backend_module, 'generate_guest_code', lambda: next(codes))

    guest = backend.create_guest('Grace Hopper')

    assert guest.qr_code == 'GUEST-FRESH001'
    assert Guest.query.count() == 2


def test_create_guest_gives_up_after_repeated_collisions(app, backend, monkeypatch):
    add_guest(app, code='GUEST-TAKEN000')
    monkeypatch.setattr(backend_module, 'generate_guest_code', lambda: 'GUEST-TAKEN000')

    with pytest.raises(BackendError):
        backend.create_guest('Grace Hopper')

    assert Guest.query.count() == 1


def test_update_guest_keeps_code(app, backend):
    guest_id = add_guest(app, code='GUEST-ABCD1234')
    guest = backend.get_guest(guest_id)

    backend.update_guest(guest, name='Augusta Ada King', phone='555-0199', qr_code='GUEST-HIJACKED')

    refreshed = backend.get_guest(guest_id)
    assert refreshed.name == 'Augusta Ada King'
    assert refreshed.phone == '555-0199'
    assert refreshed.qr_code == 'GUEST-ABCD1234'


def test_delete_guest_removes_attendance(app, backend):
    guest_id = add_guest(app)
    backend.insert_attendance(guest_id, DAY)

    backend.delete_guest(backend.get_guest(guest_id))

    assert backend.get_guest(guest_id) is None
    assert Attendance.query.count() == 0


def test_list_guests_pages_and_searches(app, backend):
    for i in range(5):
        add_guest(app, name=f'Guest {i}', code=f'GUEST-0000000{i}')
    add_guest(app, name='Grace Hopper', code='GUEST-HOPPER01')

    page = backend.list_guests(page=2, page_size=4)
    assert page['total'] == 6
    assert page['pages'] == 2
    assert len(page['items']) == 2

    found = backend.list_guests(search='grace')
    assert [g.name for g in found['items']] == ['Grace Hopper']

    assert backend.list_guests(page_size=1000)['page_size'] == 200


# ============== STAFF ==============

def test_create_moderator_starts_pending(app, backend):
    user = backend.create_staff('  Mod@Example.com ', 'secret1', full_name='Mo Derator')

    assert user.email == 'mod@example.com'
    assert backend.get_approval_status(user.id) == APPROVAL_PENDING
    assert not user.is_approved
    assert backend.get_staff_by_email('MOD@example.com').id == user.id


def test_create_admin_has_no_approval_row(app, backend):
    user = backend.create_staff('admin@example.com', 'secret1', role=ROLE_ADMIN)

    assert user.is_approved
    assert backend.get_approval_status(user.id) is None
    assert backend.get_role(user.id) == ROLE_ADMIN


def test_set_approval_status(app, backend):
    user_id = add_staff(app, 'mod@example.com', status=APPROVAL_PENDING)

    approval = backend.set_approval_status(user_id, APPROVAL_APPROVED)

    assert approval.reviewed_at is not None
    assert backend.get_staff(user_id).is_approved
    assert backend.count_pending_approvals() == 0

    backend.set_approval_status(user_id, APPROVAL_REJECTED)
    assert backend.get_approval_status(user_id) == APPROVAL_REJECTED

    with pytest.raises(ValueError):
        backend.set_approval_status(user_id, 'maybe')


def test_reset_password(app, backend):
    user_id = add_staff(app, 'mod@example.com')
    user = backend.get_staff(user_id)

    new_password = backend.reset_password(user)

    assert user.check_password(new_password)
    assert not user.check_password('password1')


def test_generate_password_shape():
    password = generate_password()
    assert len(password) == 12
    assert any(c.isupper() for c in password)
    assert any(c.isdigit() for c in password)


def test_delete_moderator_removes_approval(app, backend):
    user_id = add_staff(app, 'mod@example.com')
    assert backend.count_moderators() == 1

    backend.delete_moderator(backend.get_staff(user_id))

    assert backend.count_moderators() == 0
    assert ModeratorApproval.query.count() == 0


def test_list_moderators_excludes_admins(app, backend):
    add_staff(app, 'admin@example.com', role=ROLE_ADMIN)
    add_staff(app, 'mod@example.com', role=ROLE_MODERATOR)

    assert [u.email for u in backend.list_moderators()] == ['mod@example.com']


# ============== CHANGE FEED ==============

def test_writes_publish_change_events(app, backend):
    events = []
    app.extensions['change_feed'].subscribe(events.append)

    guest = backend.create_guest('Ada Lovelace')
    record = backend.insert_attendance(guest.id, DAY)
    backend.delete_attendance(record.id)

    assert [(e.table, e.action) for e in events] == [
        ('guests', 'INSERT'),
        ('attendance', 'INSERT'),
        ('attendance', 'DELETE'),
    ]
    assert events[1].row_id == record.id


def test_rejected_duplicate_publishes_nothing(app, backend):
    guest_id = add_guest(app)
    backend.insert_attendance(guest_id, DAY)
    events = []
    app.extensions['change_feed'].subscribe(events.append)

    with pytest.raises(DuplicateAttendanceError):
        backend.insert_attendance(guest_id, DAY)

    assert events == []
