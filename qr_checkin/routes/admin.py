import csv
import io
from datetime import date
from flask import Blueprint, request, jsonify, current_app, Response

from qr_checkin.errors import BackendError
from qr_checkin.models.staff import APPROVAL_APPROVED, APPROVAL_REJECTED
from qr_checkin.services import get_backend, get_checkin_service, storage_service
from qr_checkin.services.badge_service import render_guest_badge, badge_filename
from qr_checkin.services.storage_service import GUEST_IMAGES, validate_image
from qr_checkin.routes.auth import admin_required, get_current_staff, request_data

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


# ============== SHARED HELPERS ==============

def parse_date_arg(value):
    """ISO date from a query/body value, defaulting to today in the event timezone."""
    if not value:
        return get_checkin_service().today()
    if not isinstance(value, str):
        raise ValueError(f"Invalid date: {value!r}")
    return date.fromisoformat(value)


def upload_guest_photo():
    """
    Upload the optional 'image' file of the current request.

    Returns:
        (url, error) - both None when no file was sent
    """
    file = request.files.get('image')
    if not file or not file.filename:
        return None, None

    error = validate_image(file)
    if error:
        return None, error

    if not storage_service.is_configured():
        current_app.logger.error("R2 storage not configured - missing environment variables")
        return None, 'Storage not configured. Check R2 settings.'

    url = storage_service.upload_file(file, folder=GUEST_IMAGES)
    if not url:
        return None, 'Failed to upload image'
    return url, None


def create_guest_from_request(created_by=None):
    """Create a guest from the request body; shared by admins and moderators."""
    data = request_data()
    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'success': False, 'error': 'Name is required'}), 400

    image_url, error = upload_guest_photo()
    if error:
        return jsonify({'success': False, 'error': error}), 400

    try:
        guest = get_backend().create_guest(
            name=name,
            designation=(data.get('designation') or '').strip() or None,
            phone=(data.get('phone') or '').strip() or None,
            image_url=image_url,
            created_by=created_by,
        )
    except BackendError as e:
        current_app.logger.error(f"Failed to add guest {name}: {e}")
        if image_url:
            storage_service.delete_file(image_url)
        return jsonify({'success': False, 'error': 'Failed to add guest'}), 500

    current_app.logger.info(f"Guest {guest.id} added with code {guest.qr_code}")
    return jsonify({'success': True, 'guest': guest.to_dict()}), 201


def list_guests_from_request():
    backend = get_backend()
    result = backend.list_guests(
        page=request.args.get('page', 1, type=int),
        page_size=request.args.get('page_size', current_app.config['GUESTS_PAGE_SIZE'], type=int),
        search=request.args.get('q', '').strip() or None,
    )
    result['items'] = [g.to_dict() for g in result['items']]
    return jsonify({'success': True, **result})


def badge_response(guest_id):
    guest = get_backend().get_guest(guest_id)
    if not guest:
        return jsonify({'success': False, 'error': 'Guest not found'}), 404

    png = render_guest_badge(guest)
    return Response(
        png,
        mimetype='image/png',
        headers={'Content-Disposition': f'attachment; filename={badge_filename(guest.name)}'}
    )


# ============== DASHBOARD ==============

@admin_bp.route('/dashboard')
@admin_required
def dashboard():
    """Headline numbers for the admin dashboard."""
    backend = get_backend()
    today = get_checkin_service().today()
    return jsonify({
        'success': True,
        'date': today.isoformat(),
        'total_guests': backend.count_guests(),
        'checked_in_today': backend.count_attendance_on(today),
        'total_moderators': backend.count_moderators(),
        'pending_approvals': backend.count_pending_approvals(),
    })


# ============== GUESTS ==============

@admin_bp.route('/guests', methods=['GET'])
@admin_required
def guests():
    """Guest list with search over name, phone and code."""
    return list_guests_from_request()


@admin_bp.route('/guests', methods=['POST'])
@admin_required
def add_guest():
    """Register a guest and issue their badge code."""
    return create_guest_from_request(created_by=get_current_staff().id)


@admin_bp.route('/guests/<guest_id>', methods=['PUT', 'POST'])
@admin_required
def edit_guest(guest_id):
    """Edit name, designation, phone or photo. The code never changes."""
    backend = get_backend()
    guest = backend.get_guest(guest_id)
    if not guest:
        return jsonify({'success': False, 'error': 'Guest not found'}), 404

    data = request_data()
    fields = {}
    if 'name' in data:
        name = (data.get('name') or '').strip()
        if not name:
            return jsonify({'success': False, 'error': 'Name is required'}), 400
        fields['name'] = name
    if 'designation' in data:
        fields['designation'] = (data.get('designation') or '').strip() or None
    if 'phone' in data:
        fields['phone'] = (data.get('phone') or '').strip() or None

    image_url, error = upload_guest_photo()
    if error:
        return jsonify({'success': False, 'error': error}), 400
    old_image = guest.image_url
    if image_url:
        fields['image_url'] = image_url

    try:
        backend.update_guest(guest, **fields)
    except BackendError as e:
        current_app.logger.error(f"Failed to update guest {guest_id}: {e}")
        if image_url:
            storage_service.delete_file(image_url)
        return jsonify({'success': False, 'error': 'Failed to update guest'}), 500

    if image_url and old_image:
        storage_service.delete_file(old_image)

    return jsonify({'success': True, 'guest': guest.to_dict()})


@admin_bp.route('/guests/<guest_id>', methods=['DELETE'])
@admin_required
def delete_guest(guest_id):
    """Delete a guest and their attendance history."""
    backend = get_backend()
    guest = backend.get_guest(guest_id)
    if not guest:
        return jsonify({'success': False, 'error': 'Guest not found'}), 404

    image_url = guest.image_url
    try:
        backend.delete_guest(guest)
    except BackendError as e:
        current_app.logger.error(f"Failed to delete guest {guest_id}: {e}")
        return jsonify({'success': False, 'error': 'Failed to delete guest'}), 500

    if image_url:
        storage_service.delete_file(image_url)
    return jsonify({'success': True})


@admin_bp.route('/guests/<guest_id>/badge')
@admin_required
def guest_badge(guest_id):
    """Download the guest's QR badge as PNG."""
    return badge_response(guest_id)


# ============== ATTENDANCE ==============

@admin_bp.route('/attendance')
@admin_required
def attendance():
    """Check-ins for a date (default today), newest first."""
    try:
        scan_date = parse_date_arg(request.args.get('date'))
    except ValueError:
        return jsonify({'success': False, 'error': 'Invalid date (use YYYY-MM-DD)'}), 400

    records = get_backend().list_attendance(scan_date, search=request.args.get('q', '').strip() or None)
    return jsonify({
        'success': True,
        'date': scan_date.isoformat(),
        'count': len(records),
        'records': [r.to_dict(include_guest=True) for r in records],
    })


@admin_bp.route('/attendance/<attendance_id>', methods=['DELETE'])
@admin_required
def delete_attendance(attendance_id):
    """Remove one check-in so the guest can be scanned again that day."""
    try:
        deleted = get_backend().delete_attendance(attendance_id)
    except BackendError as e:
        current_app.logger.error(f"Failed to delete attendance {attendance_id}: {e}")
        return jsonify({'success': False, 'error': 'Failed to delete attendance'}), 500

    if not deleted:
        return jsonify({'success': False, 'error': 'Attendance record not found'}), 404
    return jsonify({'success': True})


@admin_bp.route('/attendance/reset', methods=['POST'])
@admin_required
def reset_attendance():
    """Delete every check-in on one date."""
    data = request_data()
    try:
        scan_date = parse_date_arg(data.get('date'))
    except ValueError:
        return jsonify({'success': False, 'error': 'Invalid date (use YYYY-MM-DD)'}), 400

    try:
        deleted = get_backend().delete_attendance_in_range(scan_date, scan_date)
    except BackendError as e:
        current_app.logger.error(f"Failed to reset attendance for {scan_date}: {e}")
        return jsonify({'success': False, 'error': 'Failed to reset attendance'}), 500

    current_app.logger.info(f"Attendance reset for {scan_date}: {deleted} records removed")
    return jsonify({'success': True, 'date': scan_date.isoformat(), 'deleted': deleted})


@admin_bp.route('/attendance/export')
@admin_required
def export_attendance():
    """Export a day's check-ins as CSV."""
    try:
        scan_date = parse_date_arg(request.args.get('date'))
    except ValueError:
        return jsonify({'success': False, 'error': 'Invalid date (use YYYY-MM-DD)'}), 400

    records = get_backend().list_attendance(scan_date, search=request.args.get('q', '').strip() or None)

    output = io.StringIO()
    writer = csv.writer(output)

    # Header row
    writer.writerow(['name', 'designation', 'phone', 'code', 'scan_date', 'scanned_at', 'scanned_by'])

    for r in records:
        writer.writerow([
            r.guest.name,
            r.guest.designation or '',
            r.guest.phone or '',
            r.guest.qr_code,
            r.scan_date.isoformat(),
            r.scanned_at.strftime('%Y-%m-%d %H:%M:%S') if r.scanned_at else '',
            r.scanner.email if r.scanner else '',
        ])

    output.seek(0)
    return Response(
        output.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename=attendance_{scan_date.isoformat()}.csv'}
    )


# ============== MODERATORS ==============

@admin_bp.route('/moderators')
@admin_required
def moderators():
    """Moderator accounts with their approval status."""
    backend = get_backend()
    result = []
    for user in backend.list_moderators():
        approval = user.approval
        result.append({
            **user.to_dict(),
            'status': approval.status if approval else 'pending',
            'requested_at': approval.created_at.isoformat() if approval and approval.created_at else None,
            'reviewed_at': approval.reviewed_at.isoformat() if approval and approval.reviewed_at else None,
        })
    return jsonify({'success': True, 'moderators': result})


def _review_moderator(user_id, status):
    backend = get_backend()
    user = backend.get_staff(user_id)
    if not user or user.is_admin:
        return jsonify({'success': False, 'error': 'Moderator not found'}), 404

    try:
        backend.set_approval_status(user.id, status)
    except BackendError as e:
        current_app.logger.error(f"Failed to set moderator {user_id} to {status}: {e}")
        return jsonify({'success': False, 'error': 'Failed to update status'}), 500

    current_app.logger.info(f"Moderator {user_id} {status}")
    return jsonify({'success': True, 'status': status})


@admin_bp.route('/moderators/<user_id>/approve', methods=['POST'])
@admin_required
def approve_moderator(user_id):
    return _review_moderator(user_id, APPROVAL_APPROVED)


@admin_bp.route('/moderators/<user_id>/reject', methods=['POST'])
@admin_required
def reject_moderator(user_id):
    return _review_moderator(user_id, APPROVAL_REJECTED)


@admin_bp.route('/moderators/<user_id>', methods=['DELETE'])
@admin_required
def delete_moderator(user_id):
    """Remove a moderator account."""
    backend = get_backend()
    user = backend.get_staff(user_id)
    if not user or user.is_admin:
        return jsonify({'success': False, 'error': 'Moderator not found'}), 404

    avatar_url = user.avatar_url
    try:
        backend.delete_moderator(user)
    except BackendError as e:
        current_app.logger.error(f"Failed to delete moderator {user_id}: {e}")
        return jsonify({'success': False, 'error': 'Failed to remove moderator'}), 500

    if avatar_url:
        storage_service.delete_file(avatar_url)
    return jsonify({'success': True})


@admin_bp.route('/moderators/<user_id>/reset-password', methods=['POST'])
@admin_required
def reset_moderator_password(user_id):
    """Generate a new password for a moderator and return it once."""
    backend = get_backend()
    user = backend.get_staff(user_id)
    if not user or user.is_admin:
        return jsonify({'success': False, 'error': 'Moderator not found'}), 404

    try:
        new_password = backend.reset_password(user)
    except BackendError as e:
        current_app.logger.error(f"Failed to reset password for {user_id}: {e}")
        return jsonify({'success': False, 'error': 'Failed to reset password'}), 500

    return jsonify({'success': True, 'new_password': new_password})
