"""
Check-in endpoint used by scanning stations and manual code entry.

Business outcomes (success, already scanned, not found) are returned with
HTTP 200 so the station always shows a result screen. A blank code is a
400; a backend failure is a 503 the station may retry.
"""

import uuid
from flask import Blueprint, jsonify, session, current_app

from qr_checkin.errors import CodeValidationError
from qr_checkin.services import get_checkin_service, CheckInOutcome
from qr_checkin.services.scan_station import MAX_STATION_ID_LENGTH
from qr_checkin.routes.auth import get_current_staff, request_data

scan_bp = Blueprint('scan', __name__, url_prefix='/scan')


def get_station_id(data):
    """
    Station id from the body, else one kept in this browser session.

    Returns:
        The id, or None if the client sent an unusable one
    """
    station_id = data.get('station_id')
    if station_id is not None:
        if not isinstance(station_id, str) or not station_id.strip() \
                or len(station_id) > MAX_STATION_ID_LENGTH:
            return None
        return station_id.strip()

    if 'station_id' not in session:
        session['station_id'] = uuid.uuid4().hex
    return session['station_id']


@scan_bp.route('/check-in', methods=['POST'])
def check_in():
    """
    Check in a guest by code.

    Body:
        code: Scanned or typed guest code (required)
        station_id: Scanning device id; a repeat callback for a code the
            station is still checking in is dropped. Defaults to an id
            kept in the session.

    Returns:
        JSON outcome with 'status' in success / already_scanned /
        not_found / error
    """
    data = request_data()

    user = get_current_staff()
    if user is not None and not user.is_approved:
        user = None
    if current_app.config['CHECKIN_REQUIRES_LOGIN'] and user is None:
        return jsonify({'success': False, 'error': 'Not logged in'}), 401

    station_id = get_station_id(data)
    if station_id is None:
        return jsonify({
            'success': False,
            'status': 'invalid',
            'error': f'station_id must be text of at most {MAX_STATION_ID_LENGTH} characters'
        }), 400

    actor_id = user.id if user else None
    registry = current_app.extensions['scan_stations']

    try:
        with registry.checkout(station_id) as station:
            result = station.handle_decoded(get_checkin_service(), data.get('code'), actor_id)
    except CodeValidationError as e:
        return jsonify({'success': False, 'status': 'invalid', 'error': e.message}), 400

    if result is None:
        return jsonify({'success': False, 'status': 'busy', 'error': 'This code is already being checked in'}), 429

    payload = result.to_dict()
    payload['success'] = result.outcome == CheckInOutcome.SUCCESS

    if result.outcome == CheckInOutcome.ERROR:
        current_app.logger.error(f"Check-in error at station {station_id}: {result.cause}")
        payload['error'] = 'An error occurred while scanning'
        return jsonify(payload), 503

    current_app.logger.info(f"Check-in {result.outcome.value} at station {station_id}")
    return jsonify(payload)
