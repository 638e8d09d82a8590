"""
Tests for the weekly binary settlement
"""

from datetime import datetime, timedelta
from decimal import Decimal
import threading

import pytest
from sqlalchemy.orm.exc import StaleDataError

from models import (
    db, TeamMember, Commission, CommissionStatus, SettlementRun, SettlementStatus, User
)
from services import settlement
from services.admin_config import set_binary_config
from services.binary_matching import credit_pv
from services.settlement import run_settlement

NOW = datetime(2026, 10, 16, 23, 59, 0)


def reload(member):
    return TeamMember.find_by_user_id(member.user_id)


def result_for(result, member):
    return next(r for r in result['results'] if r['user_id'] == member.user_id)


def make_active(make_member, **fields):
    fields.setdefault('last_activity_date', NOW - timedelta(days=1))
    fields.setdefault('left_leg_count', 2)
    fields.setdefault('right_leg_count', 1)
    return make_member(binary_activated=True, binary_activation_date=NOW - timedelta(days=30), **fields)


def test_matched_volume_and_carry_forward(make_member):
    member = make_active(
        make_member, left_leg_pv=200, right_leg_pv=50,
        carry_forward_left_pv=0, carry_forward_right_pv=10, total_active_affiliates=3
    )

    result = run_settlement(now=NOW)

    outcome = result_for(result, member)
    assert outcome['status'] == 'matched'
    assert outcome['matched_volume'] == 60
    assert outcome['binary_income'] == 6.0
    assert outcome['rank'] == 'IGNITOR'
    assert outcome['remaining_left_pv'] == 140
    assert outcome['remaining_right_pv'] == 0

    member = reload(member)
    assert float(member.carry_forward_left_pv) == 140
    assert float(member.carry_forward_right_pv) == 0
    assert float(member.left_leg_pv) == 0
    assert float(member.right_leg_pv) == 0
    assert float(member.total_matched_pv) == 60
    assert float(member.weaker_leg_pv) == 60
    assert member.last_binary_match_date == NOW


@pytest.mark.parametrize('affiliates, expected_income', [
    (3, 9.45),
    (500, 14.175),
    (0, 0.0),
])
def test_income_by_rank(make_member, affiliates, expected_income):
    member = make_active(
        make_member, left_leg_pv=Decimal('94.5'), right_leg_pv=Decimal('94.5'),
        total_active_affiliates=affiliates
    )

    outcome = result_for(run_settlement(now=NOW), member)

    assert outcome['binary_income'] == expected_income
    commission = Commission.query.filter_by(user_id=member.user_id).one()
    assert commission.net_amount == Decimal(str(expected_income))
    assert commission.gross_amount == commission.net_amount


def test_commission_entry_is_pending_with_description(make_member):
    member = make_active(make_member, left_leg_pv=200, right_leg_pv=60, total_active_affiliates=500)

    result = run_settlement(now=NOW)

    commission = Commission.query.filter_by(user_id=member.user_id).one()
    assert commission.status == CommissionStatus.PENDING
    assert commission.settlement_period == '2026-W42'
    assert commission.period_month == 10 and commission.period_year == 2026
    assert commission.settlement_run_id == result['summary']['run_id']
    assert commission.description == 'Weekly binary match - 60 PV matched at TRAILBLAZER (15%)'

    user = db.session.get(User, member.user_id)
    assert float(user.total_earnings) == 9.0
    member = reload(member)
    assert float(member.weekly_binary_income) == 9.0
    assert float(member.total_binary_income) == 9.0


def test_inactivity_reset(make_member):
    member = make_active(
        make_member, left_leg_pv=500, right_leg_pv=400,
        carry_forward_left_pv=30, carry_forward_right_pv=20,
        total_active_affiliates=44444, last_activity_date=NOW - timedelta(days=91)
    )

    result = run_settlement(now=NOW)

    outcome = result_for(result, member)
    assert outcome['status'] == 'reset'
    assert outcome['days_since_activity'] == 91
    assert result['summary']['total_income'] == 0

    member = reload(member)
    assert float(member.left_leg_pv) == 0
    assert float(member.right_leg_pv) == 0
    assert float(member.carry_forward_left_pv) == 0
    assert float(member.carry_forward_right_pv) == 0
    assert member.inactivity_reset_date == NOW
    assert member.binary_activated is True
    assert Commission.query.count() == 0


def test_inactivity_reset_can_require_requalification(make_member):
    set_binary_config('binary_requalify_after_reset', True)
    member = make_active(make_member, left_leg_pv=100, last_activity_date=NOW - timedelta(days=90))

    outcome = result_for(run_settlement(now=NOW), member)

    assert outcome['status'] == 'reset'
    member = reload(member)
    assert member.binary_activated is False
    assert member.binary_activation_date is None
    assert (member.left_leg_count, member.right_leg_count) == (0, 0)


def test_requalification_needs_new_placements(make_member):
    set_binary_config('binary_requalify_after_reset', True)
    member = make_active(make_member, left_leg_pv=100, last_activity_date=NOW - timedelta(days=95))
    run_settlement(now=NOW)

    later = NOW + timedelta(days=1)
    assert credit_pv(member.user_id, 'left', 1, now=later)['newly_activated'] is False
    assert credit_pv(member.user_id, 'left', 1, now=later)['newly_activated'] is False
    assert reload(member).binary_activated is False

    assert credit_pv(member.user_id, 'right', 1, now=later)['newly_activated'] is True
    assert reload(member).binary_activated is True


def test_reset_keeps_leg_counts_by_default(make_member):
    member = make_active(make_member, last_activity_date=NOW - timedelta(days=95))
    run_settlement(now=NOW)

    member = reload(member)
    assert (member.left_leg_count, member.right_leg_count) == (2, 1)
    assert member.binary_activated is True


def test_no_match_is_idempotent(make_member):
    member = make_active(make_member)
    version = reload(member).version

    first = run_settlement(now=NOW)
    second = run_settlement(now=NOW)

    assert result_for(first, member)['status'] == 'no_match'
    assert result_for(second, member)['status'] == 'no_match'
    assert reload(member).version == version
    assert Commission.query.count() == 0


def test_single_leg_members_never_match(make_member):
    a = make_member()
    b = make_member(sponsor=a, position='left')
    c = make_member(sponsor=b, position='right')
    credit_pv(c.user_id, 'right', 94.5, now=NOW - timedelta(days=1))

    # None of them meets the 1:2 rule, so nobody is settled
    result = run_settlement(now=NOW)
    assert result['summary']['total_members'] == 0
    assert result['summary']['total_matched'] == 0

    for member in (a, b, c):
        member = reload(member)
        member.binary_activated = True
    db.session.commit()

    result = run_settlement(now=NOW)
    assert [r['status'] for r in result['results']] == ['no_match'] * 3
    assert result['summary']['total_matched'] == 0


def test_only_activated_members_are_settled(make_member):
    make_member(left_leg_pv=100, right_leg_pv=100)
    active = make_active(make_member, left_leg_pv=100, right_leg_pv=100, total_active_affiliates=3)

    result = run_settlement(now=NOW)

    assert result['summary']['total_members'] == 1
    assert [r['user_id'] for r in result['results']] == [active.user_id]


def test_rerun_in_same_week_does_not_pay_twice(make_member):
    member = make_active(make_member, left_leg_pv=200, right_leg_pv=50, total_active_affiliates=3)
    run_settlement(now=NOW)

    credit_pv(member.user_id, 'right', 50, now=NOW)
    second = run_settlement(now=NOW + timedelta(minutes=5))

    assert result_for(second, member)['status'] == 'already_settled'
    assert Commission.query.filter_by(user_id=member.user_id).count() == 1
    member = reload(member)
    assert float(member.carry_forward_left_pv) == 150
    assert float(member.right_leg_pv) == 50

    next_week = run_settlement(now=NOW + timedelta(days=7))
    outcome = result_for(next_week, member)
    assert outcome['status'] == 'matched'
    assert outcome['matched_volume'] == 50
    assert Commission.query.filter_by(user_id=member.user_id).count() == 2


def test_member_error_does_not_stop_batch(make_member):
    first = make_active(make_member, left_leg_pv=100, right_leg_pv=100, total_active_affiliates=3)

    # Node whose user row is missing
    orphan = TeamMember(
        user_id=777777, left_leg_count=2, right_leg_count=1,
        left_leg_pv=100, right_leg_pv=100, binary_activated=True,
        total_active_affiliates=3, last_activity_date=NOW - timedelta(days=1)
    )
    db.session.add(orphan)
    db.session.commit()

    last = make_active(make_member, left_leg_pv=50, right_leg_pv=80, total_active_affiliates=3)

    result = run_settlement(now=NOW)

    statuses = {r['user_id']: r['status'] for r in result['results']}
    assert statuses == {first.user_id: 'matched', 777777: 'error', last.user_id: 'matched'}
    assert result['summary']['error_count'] == 1
    assert result['summary']['total_matched'] == 150
    assert Commission.query.filter_by(user_id=777777).count() == 0
    assert float(reload(orphan).left_leg_pv) == 100


def test_concurrent_credit_is_retried(make_member, monkeypatch):
    member = make_active(make_member, left_leg_pv=100, right_leg_pv=100, total_active_affiliates=3)
    real_match = settlement._match_member
    calls = []

    def flaky_match(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise StaleDataError('row changed')
        return real_match(*args, **kwargs)

    monkeypatch.setattr(settlement, '_match_member', flaky_match)

    outcome = result_for(run_settlement(now=NOW), member)

    assert len(calls) == 2
    assert outcome['status'] == 'matched'
    assert Commission.query.filter_by(user_id=member.user_id).count() == 1


def test_member_that_keeps_changing_is_reported(make_member, monkeypatch):
    member = make_active(make_member, left_leg_pv=100, right_leg_pv=100)

    def always_stale(*args, **kwargs):
        raise StaleDataError('row changed')

    monkeypatch.setattr(settlement, '_match_member', always_stale)

    outcome = result_for(run_settlement(now=NOW), member)
    assert outcome['status'] == 'error'


class CancelAfter:
    """Cancel event that trips after a number of members"""

    def __init__(self, members):
        self.remaining = members

    def is_set(self):
        self.remaining -= 1
        return self.remaining < 0


def test_cancelled_run_resumes_safely(make_member):
    first = make_active(make_member, left_leg_pv=100, right_leg_pv=100, total_active_affiliates=3)
    second = make_active(make_member, left_leg_pv=40, right_leg_pv=90, total_active_affiliates=3)

    cancelled = run_settlement(now=NOW, cancel_event=CancelAfter(1))

    assert cancelled['summary']['status'] == 'cancelled'
    assert cancelled['summary']['total_members'] == 1
    assert [r['user_id'] for r in cancelled['results']] == [first.user_id]
    run = db.session.get(SettlementRun, cancelled['summary']['run_id'])
    assert run.status == SettlementStatus.CANCELLED
    assert run.members_processed == 1
    assert run.last_member_id == first.id

    resumed = run_settlement(now=NOW)

    assert result_for(resumed, first)['status'] == 'no_match'
    assert result_for(resumed, second)['status'] == 'matched'
    assert Commission.query.count() == 2


def test_cancel_event_set_before_start(make_member):
    make_active(make_member, left_leg_pv=100, right_leg_pv=100)
    event = threading.Event()
    event.set()

    result = run_settlement(now=NOW, cancel_event=event)

    assert result['summary']['status'] == 'cancelled'
    assert result['results'] == []


def test_settlement_run_is_recorded(make_member):
    make_active(make_member, left_leg_pv=100, right_leg_pv=100, total_active_affiliates=3)
    make_active(make_member)
    make_active(make_member, left_leg_pv=10, last_activity_date=NOW - timedelta(days=120))

    result = run_settlement(now=NOW)

    run = db.session.get(SettlementRun, result['summary']['run_id'])
    assert run.status == SettlementStatus.COMPLETED
    assert run.settlement_period == '2026-W42'
    assert run.members_processed == 3
    assert (run.matched_count, run.no_match_count, run.reset_count) == (1, 1, 1)
    assert float(run.total_matched_pv) == 100
    assert float(run.total_income) == 10
    assert run.finished_at is not None
