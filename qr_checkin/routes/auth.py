"""
Staff authentication - admins and moderators.

Session based: a successful login stores the staff user id in the Flask
session. Moderators sign up themselves and wait for an admin to approve
them before they can use the moderator endpoints.
"""

import re
from functools import wraps
from flask import Blueprint, request, jsonify, session, current_app

from qr_checkin.models.staff import (
    ROLE_ADMIN, ROLE_MODERATOR, APPROVAL_REJECTED, APPROVAL_APPROVED,
)
from qr_checkin.errors import BackendError
from qr_checkin.services import get_backend

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MIN_PASSWORD_LENGTH = 6
MIN_NAME_LENGTH = 2


def request_data():
    """JSON body or form fields as a dict."""
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        return {}
    return data


def get_current_staff():
    """Get the currently logged-in staff user."""
    user_id = session.get('staff_id')
    if user_id:
        return get_backend().get_staff(user_id)
    return None


def set_staff_session(user):
    session['staff_id'] = user.id
    session['staff_role'] = user.role
    session.permanent = True
    current_app.logger.info(f"set_staff_session: user={user.id}, role={user.role}")


def clear_staff_session():
    session.pop('staff_id', None)
    session.pop('staff_role', None)


def admin_required(f):
    """Decorator to require an admin session."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_staff()
        if not user:
            return jsonify({'success': False, 'error': 'Not logged in'}), 401
        if user.role != ROLE_ADMIN:
            return jsonify({'success': False, 'error': 'Admin access required'}), 403
        return f(*args, **kwargs)
    return decorated_function


def moderator_required(f):
    """Decorator to require an approved moderator session."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_staff()
        if not user:
            return jsonify({'success': False, 'error': 'Not logged in'}), 401
        if user.role != ROLE_MODERATOR:
            return jsonify({'success': False, 'error': 'Moderator access required'}), 403
        if not user.is_approved:
            return jsonify({'success': False, 'error': 'Awaiting admin approval', 'pending': True}), 403
        return f(*args, **kwargs)
    return decorated_function


def staff_required(f):
    """Decorator to require any admin or approved moderator session."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_staff()
        if not user or not user.is_approved:
            return jsonify({'success': False, 'error': 'Not logged in'}), 401
        return f(*args, **kwargs)
    return decorated_function


@auth_bp.route('/login', methods=['POST'])
def login():
    """Log in with email and password; `role` selects the admin or moderator portal."""
    data = request_data()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    expected_role = data.get('role')

    if not email or not password:
        return jsonify({'success': False, 'error': 'Email and password are required'}), 400

    backend = get_backend()
    user = backend.get_staff_by_email(email)
    if not user or not user.check_password(password):
        return jsonify({'success': False, 'error': 'Invalid email or password'}), 401

    if expected_role and user.role != expected_role:
        other = 'admin' if user.role == ROLE_ADMIN else 'moderator'
        return jsonify({
            'success': False,
            'error': f'This login is for {expected_role}s only. Please use the {other} login.'
        }), 403

    status = backend.get_approval_status(user.id) if user.role == ROLE_MODERATOR else None
    if status == APPROVAL_REJECTED:
        return jsonify({'success': False, 'error': 'Your moderator application was rejected.'}), 403

    set_staff_session(user)
    return jsonify({
        'success': True,
        'user': user.to_dict(),
        'pending': user.role == ROLE_MODERATOR and status != APPROVAL_APPROVED,
    })


@auth_bp.route('/logout', methods=['POST'])
def logout():
    clear_staff_session()
    return jsonify({'success': True})


@auth_bp.route('/signup', methods=['POST'])
def signup():
    """Moderator sign-up. The account waits for admin approval."""
    data = request_data()
    full_name = (data.get('full_name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    confirm = data.get('confirm_password')

    errors = {}
    if len(full_name) < MIN_NAME_LENGTH:
        errors['full_name'] = f'Name must be at least {MIN_NAME_LENGTH} characters'
    if not EMAIL_PATTERN.match(email):
        errors['email'] = 'Please enter a valid email'
    if len(password) < MIN_PASSWORD_LENGTH:
        errors['password'] = f'Password must be at least {MIN_PASSWORD_LENGTH} characters'
    elif confirm is not None and confirm != password:
        errors['confirm_password'] = "Passwords don't match"
    if errors:
        return jsonify({'success': False, 'error': 'Invalid sign-up details', 'fields': errors}), 400

    backend = get_backend()
    if backend.get_staff_by_email(email):
        return jsonify({
            'success': False,
            'error': 'This email is already registered. Please log in instead.'
        }), 409

    try:
        user = backend.create_staff(email, password, full_name=full_name, role=ROLE_MODERATOR)
    except BackendError as e:
        current_app.logger.error(f"Moderator sign-up failed for {email}: {e}")
        return jsonify({'success': False, 'error': 'Registration failed'}), 500

    set_staff_session(user)
    current_app.logger.info(f"Moderator {user.id} signed up, pending approval")
    return jsonify({'success': True, 'user': user.to_dict(), 'pending': True}), 201


@auth_bp.route('/me')
def me():
    user = get_current_staff()
    if not user:
        return jsonify({'success': False, 'error': 'Not logged in'}), 401
    return jsonify({'success': True, 'user': user.to_dict()})
