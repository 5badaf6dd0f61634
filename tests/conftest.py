from datetime import datetime, timezone

import pytest

from qr_checkin import create_app, db
from qr_checkin.models import Guest, StaffUser, ModeratorApproval
from qr_checkin.models.staff import ROLE_ADMIN, ROLE_MODERATOR, APPROVAL_APPROVED
from qr_checkin.services.backend import DatabaseBackend


class FixedClock:
    """Settable stand-in for the wall clock."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def set(self, *args):
        self.now = datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def app(clock):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'EVENT_TIMEZONE': 'UTC',
        'CHECKIN_CLOCK': clock,
        'CHECKIN_REQUIRES_LOGIN': False,
        'ADMIN_SETUP_KEY': None,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def backend(app):
    """Database backend inside an app context."""
    with app.app_context():
        yield DatabaseBackend(db.session, app.extensions['change_feed'])


def add_guest(app, name='Ada Lovelace', code='GUEST-ABCD1234', phone=None, designation=None):
    """Insert a guest with a known code; returns its id."""
    with app.app_context():
        guest = Guest(name=name, qr_code=code, phone=phone, designation=designation)
        db.session.add(guest)
        db.session.commit()
        return guest.id


def add_staff(app, email, password='password1', role=ROLE_MODERATOR, status=APPROVAL_APPROVED,
              full_name='Staff Member'):
    """Insert a staff user; moderators get an approval row with `status`. Returns the id."""
    with app.app_context():
        user = StaffUser(email=email, role=role, full_name=full_name)
        user.set_password(password)
        if role == ROLE_MODERATOR:
            user.approval = ModeratorApproval(status=status)
        db.session.add(user)
        db.session.commit()
        return user.id


def login(client, email, password='password1', role=None):
    payload = {'email': email, 'password': password}
    if role:
        payload['role'] = role
    return client.post('/auth/login', json=payload)


@pytest.fixture
def admin_client(app, client):
    add_staff(app, 'admin@example.com', role=ROLE_ADMIN, full_name='Admin')
    response = login(client, 'admin@example.com')
    assert response.status_code == 200
    return client


@pytest.fixture
def moderator_client(app, client):
    add_staff(app, 'mod@example.com', role=ROLE_MODERATOR, full_name='Moderator')
    response = login(client, 'mod@example.com')
    assert response.status_code == 200
    return client
