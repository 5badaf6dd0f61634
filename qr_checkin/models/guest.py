import uuid
from datetime import datetime
from qr_checkin import db


def new_id():
    return str(uuid.uuid4())


def generate_guest_code():
    """Badge code printed in the guest's QR, e.g. GUEST-1A2B3C4D."""
    return f"GUEST-{uuid.uuid4().hex[:8].upper()}"


class Guest(db.Model):
    """Registered attendee with a unique scannable code."""
    __tablename__ = 'guests'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    designation = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(30), nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    qr_code = db.Column(db.String(32), unique=True, nullable=False, index=True)  # never changes once issued
    created_by = db.Column(db.String(36), db.ForeignKey('staff_users.id', ondelete='SET NULL'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    attendances = db.relationship('Attendance', backref='guest', lazy='dynamic', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'designation': self.designation,
            'phone': self.phone,
            'image_url': self.image_url,
            'qr_code': self.qr_code,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<Guest {self.qr_code} {self.name}>'
