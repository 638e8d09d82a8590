"""
User Model for Binary Network Backend
Identity record shared by the auth layer and the binary tree
"""

from datetime import datetime
from werkzeug.security import generate_password_hash

from . import db


class User(db.Model):
    """User identity with cumulative earnings across bonus types"""

    __tablename__ = 'users'

    # Primary fields
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255))

    # Profile information
    first_name = db.Column(db.String(100))
    last_name = db.Column(db.String(100))

    # Account status
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)

    # Shared by every bonus type (binary, referral, ...)
    total_earnings = db.Column(db.Numeric(20, 8), default=0, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    team_member = db.relationship('TeamMember', backref='user', uselist=False,
                                  foreign_keys='TeamMember.user_id')
    commissions = db.relationship('Commission', backref='user', lazy='dynamic')

    def __repr__(self):
        return f'<User {self.username}>'

    def set_password(self, password):
        """Set password hash"""
        self.password_hash = generate_password_hash(password)

    def get_full_name(self):
        """Get user's full name"""
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def to_dict(self, include_sensitive=False):
        """Convert user to dictionary"""
        data = {
            'id': self.id,
            'username': self.username,
            'full_name': self.get_full_name(),
            'is_active': self.is_active,
            'total_earnings': float(self.total_earnings or 0),
            'created_at': self.created_at.isoformat() if self.created_at else None
        }

        if include_sensitive:
            data.update({
                'email': self.email,
                'is_admin': self.is_admin
            })

        return data
