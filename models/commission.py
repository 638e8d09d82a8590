"""
Commission Model for Binary Network Backend
Append-only ledger of payable amounts produced by settlements
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import func

from . import db


class CommissionType(Enum):
    """Commission type enumeration"""
    BINARY_BONUS = 'binary_bonus'


class CommissionStatus(Enum):
    """Commission status enumeration"""
    PENDING = 'pending'
    APPROVED = 'approved'
    PAID = 'paid'
    CANCELLED = 'cancelled'


def settlement_period_key(moment):
    """ISO week key, e.g. 2026-W42"""
    iso_year, iso_week, _ = moment.isocalendar()
    return f'{iso_year}-W{iso_week:02d}'


class Commission(db.Model):
    """Commission ledger entry, consumed by the payout workflow"""

    __tablename__ = 'commissions'

    # Primary fields
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    commission_type = db.Column(db.Enum(CommissionType), nullable=False, index=True)

    # Amounts (no tax modelled, gross == net)
    gross_amount = db.Column(db.Numeric(20, 8), nullable=False)
    net_amount = db.Column(db.Numeric(20, 8), nullable=False)

    # Matching details
    matched_volume = db.Column(db.Numeric(20, 8))
    rank_name = db.Column(db.String(20))
    bonus_percent = db.Column(db.Numeric(5, 2))
    description = db.Column(db.Text)

    # Period
    earning_date = db.Column(db.DateTime, nullable=False)
    period_month = db.Column(db.Integer, nullable=False)
    period_year = db.Column(db.Integer, nullable=False)
    settlement_period = db.Column(db.String(10), nullable=False, index=True)
    settlement_run_id = db.Column(db.Integer, db.ForeignKey('settlement_runs.id'), index=True)

    # Status and processing
    status = db.Column(db.Enum(CommissionStatus), default=CommissionStatus.PENDING, nullable=False, index=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # One binary entry per member per settlement week
    __table_args__ = (
        db.UniqueConstraint('user_id', 'commission_type', 'settlement_period',
                            name='unique_user_commission_period'),
        db.Index('idx_commission_user_status', 'user_id', 'status'),
        db.Index('idx_commission_user_period', 'user_id', 'period_year', 'period_month'),
    )

    def __repr__(self):
        return f'<Commission {self.user_id}:{self.commission_type.value}:{self.net_amount}>'

    @staticmethod
    def create_binary_commission(user_id, amount, matched_volume, rank, earning_date, settlement_run_id=None):
        """Create a pending binary bonus entry"""
        commission = Commission(
            user_id=user_id,
            commission_type=CommissionType.BINARY_BONUS,
            gross_amount=amount,
            net_amount=amount,
            matched_volume=matched_volume,
            rank_name=rank['name'],
            bonus_percent=rank['bonus_percent'],
            status=CommissionStatus.PENDING,
            earning_date=earning_date,
            period_month=earning_date.month,
            period_year=earning_date.year,
            settlement_period=settlement_period_key(earning_date),
            settlement_run_id=settlement_run_id,
            description=(
                f"Weekly binary match - {matched_volume.normalize():f} PV matched at "
                f"{rank['name']} ({rank['bonus_percent']}%)"
            )
        )

        db.session.add(commission)
        return commission

    @staticmethod
    def exists_for_period(user_id, settlement_period, commission_type=CommissionType.BINARY_BONUS):
        """Whether an entry was already written for this member and week"""
        return db.session.query(
            Commission.query.filter_by(
                user_id=user_id,
                commission_type=commission_type,
                settlement_period=settlement_period
            ).exists()
        ).scalar()

    @staticmethod
    def get_user_commissions(user_id, status=None, settlement_period=None, limit=50, offset=0):
        """Get commission history for a user"""
        query = Commission.query.filter_by(user_id=user_id)

        if status:
            query = query.filter_by(status=status)
        if settlement_period:
            query = query.filter_by(settlement_period=settlement_period)

        total_count = query.count()
        commissions = query.order_by(Commission.earning_date.desc(), Commission.id.desc()) \
            .offset(offset).limit(limit).all()

        return commissions, total_count

    @staticmethod
    def get_pending_total(user_id):
        """Sum of pending amounts awaiting the payout workflow"""
        total = db.session.query(func.sum(Commission.net_amount)).filter(
            Commission.user_id == user_id,
            Commission.status == CommissionStatus.PENDING
        ).scalar()
        return float(total) if total else 0.0

    def to_dict(self):
        """Convert commission to dictionary"""
        return {
            'id': self.id,
            'user_id': self.user_id,
            'commission_type': self.commission_type.value,
            'gross_amount': float(self.gross_amount),
            'net_amount': float(self.net_amount),
            'matched_volume': float(self.matched_volume) if self.matched_volume is not None else None,
            'rank': self.rank_name,
            'bonus_percent': float(self.bonus_percent) if self.bonus_percent is not None else None,
            'description': self.description,
            'status': self.status.value,
            'earning_date': self.earning_date.isoformat() if self.earning_date else None,
            'period': {
                'month': self.period_month,
                'year': self.period_year
            },
            'settlement_period': self.settlement_period,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }
