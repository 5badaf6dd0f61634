# Business logic services
from flask import current_app

from qr_checkin import db
from qr_checkin.services.backend import DatabaseBackend
from qr_checkin.services.checkin_service import CheckInService, CheckInOutcome, CheckInResult, utc_now
from qr_checkin.services.storage_service import storage_service


def get_backend():
    """Backend bound to the current request's database session."""
    return DatabaseBackend(db.session, current_app.extensions.get('change_feed'))


def get_checkin_service():
    return CheckInService(
        get_backend(),
        clock=current_app.config.get('CHECKIN_CLOCK') or utc_now,
        tz_name=current_app.config['EVENT_TIMEZONE'],
    )


__all__ = [
    'DatabaseBackend',
    'CheckInService',
    'CheckInOutcome',
    'CheckInResult',
    'storage_service',
    'get_backend',
    'get_checkin_service',
]
