"""
Settlement Run Model for Binary Network Backend
Audit trail and checkpoint for weekly matching executions
"""

from datetime import datetime
from enum import Enum

from . import db


class SettlementStatus(Enum):
    """Settlement run status enumeration"""
    RUNNING = 'running'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


class SettlementTrigger(Enum):
    """What started the run"""
    SCHEDULED = 'scheduled'
    MANUAL = 'manual'


class SettlementRun(db.Model):
    """One execution of the weekly binary matching batch"""

    __tablename__ = 'settlement_runs'

    id = db.Column(db.Integer, primary_key=True)
    settlement_period = db.Column(db.String(10), nullable=False, index=True)
    trigger = db.Column(db.Enum(SettlementTrigger), default=SettlementTrigger.MANUAL, nullable=False)
    status = db.Column(db.Enum(SettlementStatus), default=SettlementStatus.RUNNING, nullable=False, index=True)

    # Totals
    members_processed = db.Column(db.Integer, default=0, nullable=False)
    total_matched_pv = db.Column(db.Numeric(20, 8), default=0, nullable=False)
    total_income = db.Column(db.Numeric(20, 8), default=0, nullable=False)

    # Outcome counters
    matched_count = db.Column(db.Integer, default=0, nullable=False)
    reset_count = db.Column(db.Integer, default=0, nullable=False)
    no_match_count = db.Column(db.Integer, default=0, nullable=False)
    skipped_count = db.Column(db.Integer, default=0, nullable=False)
    error_count = db.Column(db.Integer, default=0, nullable=False)

    # Checkpoint: last member id handled before completion or cancellation
    last_member_id = db.Column(db.Integer)
    error_message = db.Column(db.Text)

    started_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    finished_at = db.Column(db.DateTime)

    commissions = db.relationship('Commission', backref='settlement_run', lazy='dynamic')

    def __repr__(self):
        return f'<SettlementRun {self.id} {self.settlement_period} {self.status.value}>'

    @staticmethod
    def get_recent_runs(limit=20, offset=0):
        """Get the latest settlement runs"""
        query = SettlementRun.query
        total_count = query.count()
        runs = query.order_by(SettlementRun.started_at.desc(), SettlementRun.id.desc()) \
            .offset(offset).limit(limit).all()
        return runs, total_count

    def to_dict(self):
        """Convert settlement run to dictionary"""
        return {
            'id': self.id,
            'settlement_period': self.settlement_period,
            'trigger': self.trigger.value,
            'status': self.status.value,
            'members_processed': self.members_processed,
            'total_matched_pv': float(self.total_matched_pv or 0),
            'total_income': float(self.total_income or 0),
            'matched_count': self.matched_count,
            'reset_count': self.reset_count,
            'no_match_count': self.no_match_count,
            'skipped_count': self.skipped_count,
            'error_count': self.error_count,
            'last_member_id': self.last_member_id,
            'error_message': self.error_message,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None
        }
