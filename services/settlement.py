"""
Weekly Binary Settlement
Matches left and right PV for every activated member, writes pending binary
bonus commissions, rolls carry-forward and applies inactivity resets
"""

from datetime import datetime
from decimal import Decimal
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
import logging

from models import (
    db, TeamMember, Commission, SettlementRun, SettlementStatus, SettlementTrigger
)
from models.commission import settlement_period_key
from services.admin_config import get_binary_settings
from services.binary_matching import days_since
from services.binary_rank import resolve_rank, calculate_weaker_leg_pv

logger = logging.getLogger(__name__)

# Attempts per member when a PV credit lands between read and write
MAX_MEMBER_ATTEMPTS = 3

RESULT_COUNTERS = {
    'matched': 'matched_count',
    'reset': 'reset_count',
    'no_match': 'no_match_count',
    'already_settled': 'skipped_count',
    'skipped': 'skipped_count',
    'error': 'error_count',
}


def _reset_inactive_member(member, now, days_since_activity, settings):
    member.left_leg_pv = 0
    member.right_leg_pv = 0
    member.carry_forward_left_pv = 0
    member.carry_forward_right_pv = 0
    member.inactivity_reset_date = now

    # Requalifying counts only placements credited after the reset
    if settings['requalify_after_reset']:
        member.binary_activated = False
        member.binary_activation_date = None
        member.left_leg_count = 0
        member.right_leg_count = 0

    db.session.commit()

    logger.info(f"Reset PV for user {member.user_id} after {days_since_activity} days of inactivity")
    return {
        'user_id': member.user_id,
        'status': 'reset',
        'reason': f"{settings['inactivity_days']}-day inactivity",
        'days_since_activity': days_since_activity
    }


def _match_member(member, now, settlement_period, settlement_run_id):
    left_pv = member.total_left_pv
    right_pv = member.total_right_pv

    # 1:1 matching on the weaker leg
    matched_volume = calculate_weaker_leg_pv(left_pv, right_pv)

    if matched_volume <= 0:
        return {
            'user_id': member.user_id,
            'status': 'no_match',
            'left_pv': float(left_pv),
            'right_pv': float(right_pv)
        }

    if Commission.exists_for_period(member.user_id, settlement_period):
        return {
            'user_id': member.user_id,
            'status': 'already_settled',
            'settlement_period': settlement_period
        }

    rank = resolve_rank(member.total_active_affiliates)
    binary_income = matched_volume * Decimal(rank['bonus_percent']) / Decimal(100)

    remaining_left_pv = left_pv - matched_volume
    remaining_right_pv = right_pv - matched_volume

    Commission.create_binary_commission(
        user_id=member.user_id,
        amount=binary_income,
        matched_volume=matched_volume,
        rank=rank,
        earning_date=now,
        settlement_run_id=settlement_run_id
    )

    member.carry_forward_left_pv = remaining_left_pv
    member.carry_forward_right_pv = remaining_right_pv
    member.total_matched_pv = Decimal(member.total_matched_pv or 0) + matched_volume
    member.weekly_binary_income = binary_income
    member.total_binary_income = Decimal(member.total_binary_income or 0) + binary_income
    member.weaker_leg_pv = matched_volume
    member.last_binary_match_date = now

    # Weekly PV is now fully captured in carry-forward
    member.left_leg_pv = 0
    member.right_leg_pv = 0

    user = member.user
    user.total_earnings = Decimal(user.total_earnings or 0) + binary_income

    db.session.commit()

    return {
        'user_id': member.user_id,
        'status': 'matched',
        'matched_volume': float(matched_volume),
        'binary_income': float(binary_income),
        'rank': rank['name'],
        'rank_percentage': rank['bonus_percent'],
        'remaining_left_pv': float(remaining_left_pv),
        'remaining_right_pv': float(remaining_right_pv)
    }


def settle_member(member_id, now, settlement_period, settings, settlement_run_id=None):
    """
    Settle one member and commit. A concurrent PV credit bumps the row version,
    so the write fails with StaleDataError and the member is re-read.
    """
    for attempt in range(1, MAX_MEMBER_ATTEMPTS + 1):
        member = db.session.get(TeamMember, member_id)
        if member is None or not member.binary_activated:
            return {'member_id': member_id, 'status': 'skipped'}

        days_since_activity = days_since(now, member.last_activity_date or member.created_at)

        try:
            if days_since_activity >= settings['inactivity_days']:
                return _reset_inactive_member(member, now, days_since_activity, settings)
            return _match_member(member, now, settlement_period, settlement_run_id)
        except StaleDataError:
            db.session.rollback()
            logger.warning(f"Member {member_id} changed during settlement, retry {attempt}/{MAX_MEMBER_ATTEMPTS}")
        except IntegrityError:
            db.session.rollback()
            return {
                'user_id': member.user_id,
                'status': 'already_settled',
                'settlement_period': settlement_period
            }

    raise RuntimeError(f'Member {member_id} kept changing during settlement')


def run_settlement(now=None, trigger=SettlementTrigger.MANUAL, cancel_event=None):
    """
    Execute the weekly 1:1 binary matching over all activated members.

    matched_volume = min(left PV + carry, right PV + carry)
    binary_income = matched_volume x rank percentage
    Remaining PV carries forward; members idle for the inactivity window are reset.

    A failure on one member is recorded in the results and does not stop the
    batch. Setting cancel_event stops the batch between members; the run is
    stored as cancelled with the last member handled, and running again for
    the same week skips members already paid.
    """
    now = now or datetime.utcnow()
    settings = get_binary_settings()
    settlement_period = settlement_period_key(now)

    logger.info(f"Starting weekly binary matching for {settlement_period}")

    run = SettlementRun(
        settlement_period=settlement_period,
        trigger=trigger,
        status=SettlementStatus.RUNNING,
        started_at=datetime.utcnow()
    )
    db.session.add(run)
    db.session.commit()
    run_id = run.id

    total_matched = Decimal('0')
    total_income = Decimal('0')
    counters = dict.fromkeys(set(RESULT_COUNTERS.values()), 0)
    results = []
    last_member_id = None
    cancelled = False

    try:
        activated_members = db.session.query(TeamMember.id, TeamMember.user_id).filter(
            TeamMember.binary_activated.is_(True)
        ).order_by(TeamMember.id).all()

        for member_id, user_id in activated_members:
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                logger.warning(f"Weekly matching cancelled after member {last_member_id}")
                break

            try:
                result = settle_member(member_id, now, settlement_period, settings, run_id)
            except Exception as e:
                db.session.rollback()
                logger.error(f"Error processing member {user_id}: {str(e)}")
                result = {
                    'user_id': user_id,
                    'status': 'error',
                    'error': str(e)
                }

            result.setdefault('user_id', user_id)
            results.append(result)
            counters[RESULT_COUNTERS[result['status']]] += 1
            last_member_id = member_id

            if result['status'] == 'matched':
                total_matched += Decimal(str(result['matched_volume']))
                total_income += Decimal(str(result['binary_income']))

        run = db.session.get(SettlementRun, run_id)
        run.status = SettlementStatus.CANCELLED if cancelled else SettlementStatus.COMPLETED
        run.members_processed = len(results)
        run.total_matched_pv = total_matched
        run.total_income = total_income
        run.last_member_id = last_member_id
        run.finished_at = datetime.utcnow()
        for field, value in counters.items():
            setattr(run, field, value)
        db.session.commit()

    except Exception as e:
        db.session.rollback()
        logger.error(f"Error in weekly matching: {str(e)}")
        run = db.session.get(SettlementRun, run_id)
        if run is not None:
            run.status = SettlementStatus.FAILED
            run.error_message = str(e)
            run.last_member_id = last_member_id
            run.finished_at = datetime.utcnow()
            db.session.commit()
        raise

    logger.info(
        f"Weekly matching {run.status.value}: {len(results)} members, "
        f"{total_matched} PV matched, ${float(total_income):.2f} income"
    )

    return {
        'success': True,
        'summary': {
            'run_id': run_id,
            'status': run.status.value,
            'settlement_period': settlement_period,
            'total_members': len(results),
            'total_matched': float(total_matched),
            'total_income': float(total_income),
            'matched_count': counters['matched_count'],
            'reset_count': counters['reset_count'],
            'no_match_count': counters['no_match_count'],
            'skipped_count': counters['skipped_count'],
            'error_count': counters['error_count'],
            'execution_time': datetime.utcnow().isoformat()
        },
        'results': results
    }
