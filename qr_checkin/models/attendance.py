from datetime import datetime
from qr_checkin import db
from qr_checkin.models.guest import new_id

# Name of the one constraint whose violation means "already checked in today"
ATTENDANCE_UNIQUE_CONSTRAINT = 'uq_attendance_guest_day'


class Attendance(db.Model):
    """Record of a guest being checked in on a calendar day."""
    __tablename__ = 'attendance'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    guest_id = db.Column(db.String(36), db.ForeignKey('guests.id', ondelete='CASCADE'), nullable=False)
    scan_date = db.Column(db.Date, nullable=False, index=True)
    scanned_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    scanned_by = db.Column(db.String(36), db.ForeignKey('staff_users.id', ondelete='SET NULL'), nullable=True)

    # Unique constraint: one attendance record per guest per day
    __table_args__ = (
        db.UniqueConstraint('guest_id', 'scan_date', name=ATTENDANCE_UNIQUE_CONSTRAINT),
    )

    scanner = db.relationship('StaffUser', backref=db.backref('scans', lazy='dynamic'))

    def to_dict(self, include_guest=False):
        data = {
            'id': self.id,
            'guest_id': self.guest_id,
            'scan_date': self.scan_date.isoformat(),
            'scanned_at': self.scanned_at.isoformat() if self.scanned_at else None,
            'scanned_by': self.scanned_by,
        }
        if include_guest and self.guest is not None:
            data['guest'] = self.guest.to_dict()
        return data

    def __repr__(self):
        return f'<Attendance guest={self.guest_id} date={self.scan_date}>'
