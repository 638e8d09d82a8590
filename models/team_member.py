"""
Team Member Model for Binary Network Backend
Binary tree node per user: sponsor link, leg counters, PV and carry-forward
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from . import db


class Position(Enum):
    """Position of a member relative to its sponsor"""
    LEFT = 'left'
    RIGHT = 'right'
    MAIN = 'main'


LEGS = (Position.LEFT.value, Position.RIGHT.value)


class TeamMember(db.Model):
    """Binary tree node tracking leg PV, carry-forward and binary income"""

    __tablename__ = 'team_members'

    # Primary fields
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False, index=True)

    # Tree topology (write-once)
    sponsor_id = db.Column(db.Integer, db.ForeignKey('users.id'), index=True)
    position = db.Column(db.Enum(Position), default=Position.MAIN, nullable=False, index=True)
    direct_count = db.Column(db.Integer, default=0, nullable=False)

    # Leg counters (informational, never reset by settlement)
    left_leg_count = db.Column(db.Integer, default=0, nullable=False)
    right_leg_count = db.Column(db.Integer, default=0, nullable=False)

    # Current period PV, zeroed by each settlement
    left_leg_pv = db.Column(db.Numeric(20, 8), default=0, nullable=False)
    right_leg_pv = db.Column(db.Numeric(20, 8), default=0, nullable=False)

    # Unmatched PV rolled over from previous settlements
    carry_forward_left_pv = db.Column(db.Numeric(20, 8), default=0, nullable=False)
    carry_forward_right_pv = db.Column(db.Numeric(20, 8), default=0, nullable=False)

    # Activation
    binary_activated = db.Column(db.Boolean, default=False, nullable=False, index=True)
    binary_activation_date = db.Column(db.DateTime)

    # Maintained by the team-size feed, read-only here
    total_active_affiliates = db.Column(db.Integer, default=0, nullable=False)

    # Binary statistics
    total_matched_pv = db.Column(db.Numeric(20, 8), default=0, nullable=False)
    total_binary_income = db.Column(db.Numeric(20, 8), default=0, nullable=False)
    weekly_binary_income = db.Column(db.Numeric(20, 8), default=0, nullable=False)
    weaker_leg_pv = db.Column(db.Numeric(20, 8), default=0, nullable=False)
    last_binary_match_date = db.Column(db.DateTime)

    # Activity tracking
    last_activity_date = db.Column(db.DateTime)
    inactivity_reset_date = db.Column(db.DateTime)

    # Optimistic concurrency token, bumped by every write
    version = db.Column(db.Integer, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {'version_id_col': version}

    __table_args__ = (
        db.CheckConstraint('left_leg_pv >= 0', name='ck_left_leg_pv_non_negative'),
        db.CheckConstraint('right_leg_pv >= 0', name='ck_right_leg_pv_non_negative'),
        db.CheckConstraint('carry_forward_left_pv >= 0', name='ck_carry_left_non_negative'),
        db.CheckConstraint('carry_forward_right_pv >= 0', name='ck_carry_right_non_negative'),
        db.Index('idx_sponsor_position', 'sponsor_id', 'position'),
    )

    def __repr__(self):
        return f'<TeamMember user={self.user_id} {self.position.value if self.position else None}>'

    @staticmethod
    def find_by_user_id(user_id):
        """Get the binary node for a user, if any"""
        return TeamMember.query.filter_by(user_id=user_id).first()

    @staticmethod
    def get_or_create(user_id):
        """Get the binary node for a user, creating an empty one on first use"""
        member = TeamMember.find_by_user_id(user_id)
        if member:
            return member

        from .user import User
        if not db.session.get(User, user_id):
            return None

        member = TeamMember(
            user_id=user_id,
            position=Position.MAIN,
            direct_count=0,
            left_leg_count=0,
            right_leg_count=0,
            left_leg_pv=0,
            right_leg_pv=0,
            carry_forward_left_pv=0,
            carry_forward_right_pv=0,
            binary_activated=False,
            total_active_affiliates=0,
            total_matched_pv=0,
            total_binary_income=0,
            weekly_binary_income=0,
            weaker_leg_pv=0
        )
        db.session.add(member)
        db.session.flush()
        return member

    def get_upline_user_ids(self, max_depth):
        """Walk the sponsor chain, stopping at the root, a cycle or max_depth"""
        upline = []
        visited = {self.user_id}
        current_sponsor_id = self.sponsor_id

        while current_sponsor_id and len(upline) < max_depth:
            if current_sponsor_id in visited:
                break
            visited.add(current_sponsor_id)
            upline.append(current_sponsor_id)

            sponsor = TeamMember.find_by_user_id(current_sponsor_id)
            current_sponsor_id = sponsor.sponsor_id if sponsor else None

        return upline

    def get_direct_members(self, position=None):
        """Get members placed directly under this one"""
        query = TeamMember.query.filter_by(sponsor_id=self.user_id)
        if position:
            query = query.filter_by(position=position)
        return query.order_by(TeamMember.id).all()

    @property
    def total_left_pv(self):
        return Decimal(self.left_leg_pv or 0) + Decimal(self.carry_forward_left_pv or 0)

    @property
    def total_right_pv(self):
        return Decimal(self.right_leg_pv or 0) + Decimal(self.carry_forward_right_pv or 0)

    def to_dict(self):
        """Convert team member to dictionary"""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'sponsor_id': self.sponsor_id,
            'position': self.position.value if self.position else None,
            'direct_count': self.direct_count,
            'left_leg_count': self.left_leg_count,
            'right_leg_count': self.right_leg_count,
            'left_leg_pv': float(self.left_leg_pv or 0),
            'right_leg_pv': float(self.right_leg_pv or 0),
            'carry_forward_left_pv': float(self.carry_forward_left_pv or 0),
            'carry_forward_right_pv': float(self.carry_forward_right_pv or 0),
            'binary_activated': self.binary_activated,
            'binary_activation_date': self.binary_activation_date.isoformat() if self.binary_activation_date else None,
            'total_active_affiliates': self.total_active_affiliates,
            'total_matched_pv': float(self.total_matched_pv or 0),
            'total_binary_income': float(self.total_binary_income or 0),
            'weekly_binary_income': float(self.weekly_binary_income or 0),
            'last_binary_match_date': self.last_binary_match_date.isoformat() if self.last_binary_match_date else None,
            'last_activity_date': self.last_activity_date.isoformat() if self.last_activity_date else None,
            'inactivity_reset_date': self.inactivity_reset_date.isoformat() if self.inactivity_reset_date else None,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
