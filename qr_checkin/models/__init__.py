# Import all models here so they're registered with SQLAlchemy
from qr_checkin.models.guest import Guest
from qr_checkin.models.attendance import Attendance
from qr_checkin.models.staff import StaffUser, ModeratorApproval

__all__ = ['Guest', 'Attendance', 'StaffUser', 'ModeratorApproval']
