"""
Moderator portal - guest registration, badges and profile.

Moderators sign up through /auth/signup and can use these routes once an
admin approves them. /moderator/pending tells a waiting moderator where
their application stands.
"""

from flask import Blueprint, request, jsonify, current_app

from qr_checkin.errors import BackendError
from qr_checkin.models.staff import ROLE_MODERATOR, APPROVAL_PENDING
from qr_checkin.services import get_backend, storage_service
from qr_checkin.services.storage_service import PROFILE_AVATARS, validate_image
from qr_checkin.routes.auth import moderator_required, get_current_staff, request_data
from qr_checkin.routes.admin import create_guest_from_request, list_guests_from_request, badge_response

moderator_bp = Blueprint('moderator', __name__, url_prefix='/moderator')


@moderator_bp.route('/pending')
def pending():
    """Approval status for the logged-in moderator."""
    user = get_current_staff()
    if not user or user.role != ROLE_MODERATOR:
        return jsonify({'success': False, 'error': 'Not logged in'}), 401

    status = get_backend().get_approval_status(user.id) or APPROVAL_PENDING
    return jsonify({'success': True, 'status': status, 'approved': user.is_approved})


@moderator_bp.route('/dashboard')
@moderator_required
def dashboard():
    return jsonify({'success': True, 'total_guests': get_backend().count_guests()})


# ============== GUESTS ==============

@moderator_bp.route('/guests', methods=['GET'])
@moderator_required
def guests():
    return list_guests_from_request()


@moderator_bp.route('/guests', methods=['POST'])
@moderator_required
def add_guest():
    """Register a guest; moderators can add but not edit or delete."""
    return create_guest_from_request(created_by=get_current_staff().id)


@moderator_bp.route('/guests/<guest_id>/badge')
@moderator_required
def guest_badge(guest_id):
    return badge_response(guest_id)


# ============== PROFILE ==============

@moderator_bp.route('/profile', methods=['GET'])
@moderator_required
def profile():
    return jsonify({'success': True, 'user': get_current_staff().to_dict()})


@moderator_bp.route('/profile', methods=['PUT', 'POST'])
@moderator_required
def update_profile():
    user = get_current_staff()
    data = request_data()
    full_name = (data.get('full_name') or '').strip()
    if not full_name:
        return jsonify({'success': False, 'error': 'Name is required'}), 400

    try:
        get_backend().update_staff(user, full_name=full_name)
    except BackendError as e:
        current_app.logger.error(f"Failed to update profile for {user.id}: {e}")
        return jsonify({'success': False, 'error': 'Failed to update profile'}), 500

    return jsonify({'success': True, 'user': user.to_dict()})


@moderator_bp.route('/profile/avatar', methods=['POST'])
@moderator_required
def upload_avatar():
    """Upload a profile picture, replacing any previous one."""
    user = get_current_staff()

    if 'file' not in request.files:
        return jsonify({'success': False, 'error': 'No file provided'}), 400

    file = request.files['file']
    error = validate_image(file)
    if error:
        return jsonify({'success': False, 'error': error}), 400

    if not storage_service.is_configured():
        current_app.logger.error("R2 storage not configured - missing environment variables")
        return jsonify({'success': False, 'error': 'Storage not configured. Check R2 settings.'}), 500

    old_url = user.avatar_url
    current_app.logger.info(f"Uploading avatar for staff {user.id}: {file.filename}")
    new_url = storage_service.upload_file(file, folder=PROFILE_AVATARS)
    if not new_url:
        current_app.logger.error(f"Upload returned None for staff {user.id}")
        return jsonify({'success': False, 'error': 'Upload failed - no URL returned.'}), 500

    try:
        get_backend().update_staff(user, avatar_url=new_url)
    except BackendError as e:
        current_app.logger.error(f"Failed to save avatar for {user.id}: {e}")
        storage_service.delete_file(new_url)
        return jsonify({'success': False, 'error': 'Failed to update profile picture'}), 500

    if old_url:
        storage_service.delete_file(old_url)
    return jsonify({'success': True, 'url': new_url})


@moderator_bp.route('/profile/avatar', methods=['DELETE'])
@moderator_required
def remove_avatar():
    user = get_current_staff()
    if not user.avatar_url:
        return jsonify({'success': True})

    old_url = user.avatar_url
    try:
        get_backend().update_staff(user, avatar_url=None)
    except BackendError as e:
        current_app.logger.error(f"Failed to remove avatar for {user.id}: {e}")
        return jsonify({'success': False, 'error': 'Failed to remove profile picture'}), 500

    storage_service.delete_file(old_url)
    return jsonify({'success': True})
