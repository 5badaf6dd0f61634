from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from qr_checkin import db
from qr_checkin.models.guest import new_id

ROLE_ADMIN = 'admin'
ROLE_MODERATOR = 'moderator'

APPROVAL_PENDING = 'pending'
APPROVAL_APPROVED = 'approved'
APPROVAL_REJECTED = 'rejected'
APPROVAL_STATUSES = (APPROVAL_PENDING, APPROVAL_APPROVED, APPROVAL_REJECTED)


class StaffUser(db.Model):
    """Admin or moderator account."""
    __tablename__ = 'staff_users'

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(100), nullable=True)
    avatar_url = db.Column(db.String(500), nullable=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_MODERATOR)  # admin, moderator
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    approval = db.relationship('ModeratorApproval', backref='user', uselist=False,
                               cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN

    @property
    def is_approved(self):
        """Admins are always approved; moderators need an approved application."""
        if self.is_admin:
            return True
        return self.approval is not None and self.approval.status == APPROVAL_APPROVED

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'avatar_url': self.avatar_url,
            'role': self.role,
            'is_approved': self.is_approved,
        }

    def __repr__(self):
        return f'<StaffUser {self.email} ({self.role})>'


class ModeratorApproval(db.Model):
    """Admin review state of a moderator sign-up."""
    __tablename__ = 'moderator_approvals'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), db.ForeignKey('staff_users.id', ondelete='CASCADE'),
                        unique=True, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=APPROVAL_PENDING)  # pending, approved, rejected
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    reviewed_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name='valid_approval_status'),
    )

    def __repr__(self):
        return f'<ModeratorApproval user={self.user_id} status={self.status}>'
