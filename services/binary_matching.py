"""
Binary Matching Service
Activation rule, PV propagation up the sponsor chain, tree placement and
binary status for the two-leg referral tree
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from sqlalchemy.exc import SQLAlchemyError
import logging

from models import db, TeamMember, Position
from models.team_member import LEGS
from services.admin_config import get_binary_settings
from services.binary_rank import resolve_rank, get_next_rank_info, calculate_weaker_leg_pv
from services.exceptions import (
    BinaryValidationError, MemberNotFoundError, SponsorAlreadyAssigned, TransientStoreError
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def check_binary_activation(left_leg_count, right_leg_count):
    """
    Binary is activated on a 1:2 ratio in either direction:
    (left >= 1 and right >= 2) or (right >= 1 and left >= 2)
    """
    activated = (
        (left_leg_count >= 1 and right_leg_count >= 2) or
        (right_leg_count >= 1 and left_leg_count >= 2)
    )

    return {
        'activated': activated,
        'message': (
            f"Binary activated! Left: {left_leg_count}, Right: {right_leg_count}"
            if activated else
            f"Need 1:2 ratio. Current - Left: {left_leg_count}, Right: {right_leg_count}"
        )
    }


def days_since(now, moment):
    """Whole days elapsed between moment and now"""
    if moment is None:
        return 0
    return int((now - moment).total_seconds() // SECONDS_PER_DAY)


def _validate_leg(leg):
    if isinstance(leg, Position):
        leg = leg.value
    if leg not in LEGS:
        raise BinaryValidationError(f"Invalid leg '{leg}', expected 'left' or 'right'")
    return leg


def _validate_pv_amount(pv_amount):
    try:
        amount = Decimal(str(pv_amount))
    except (InvalidOperation, ValueError, TypeError):
        raise BinaryValidationError(f"Invalid PV amount '{pv_amount}'")

    if not amount.is_finite() or amount <= 0:
        raise BinaryValidationError('PV amount must be positive')
    return amount


def _leg_columns(leg):
    if leg == Position.LEFT.value:
        return TeamMember.left_leg_pv, TeamMember.left_leg_count
    return TeamMember.right_leg_pv, TeamMember.right_leg_count


def _apply_leg_credit(member, leg, amount, now):
    """
    Credit one node in place and flip activation if the rule now holds.
    Increments happen in SQL, never read-then-write. Caller commits.
    Returns True if this call activated the member.
    """
    pv_column, count_column = _leg_columns(leg)

    TeamMember.query.filter_by(id=member.id).update({
        pv_column: pv_column + amount,
        count_column: count_column + 1,
        TeamMember.last_activity_date: now,
        TeamMember.version: TeamMember.version + 1,
    }, synchronize_session=False)
    db.session.refresh(member)

    if member.binary_activated:
        return False

    activation = check_binary_activation(member.left_leg_count, member.right_leg_count)
    if not activation['activated']:
        return False

    flipped = TeamMember.query.filter_by(id=member.id, binary_activated=False).update({
        TeamMember.binary_activated: True,
        TeamMember.binary_activation_date: now,
        TeamMember.version: TeamMember.version + 1,
    }, synchronize_session=False)

    if flipped:
        logger.info(f"Binary activated for user {member.user_id}: {activation['message']}")
    return bool(flipped)


def _propagate_to_upline(member, leg, amount, now, max_depth):
    """
    Credit every ancestor with the originating leg label.

    Each node is committed on its own: a failure part way up stops the walk
    and leaves the nodes below it credited.
    """
    credited = 0
    activated_upline = []
    halted = None
    visited = {member.user_id}
    sponsor_id = member.sponsor_id

    while sponsor_id:
        if credited >= max_depth:
            halted = 'max_depth'
            logger.error(f"PV propagation from user {member.user_id} stopped at depth {max_depth}")
            break

        if sponsor_id in visited:
            halted = 'cycle'
            logger.error(f"Sponsor cycle detected at user {sponsor_id} while propagating from user {member.user_id}")
            break
        visited.add(sponsor_id)

        sponsor = TeamMember.find_by_user_id(sponsor_id)
        if not sponsor:
            halted = 'sponsor_not_found'
            logger.warning(f"Upline member {sponsor_id} not found, PV propagation from user {member.user_id} stopped")
            break

        try:
            if _apply_leg_credit(sponsor, leg, amount, now):
                activated_upline.append(sponsor.user_id)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            halted = 'store_error'
            logger.error(f"Error propagating PV to user {sponsor_id}: {str(e)}")
            break

        credited += 1
        sponsor_id = sponsor.sponsor_id

    return {
        'upline_credited': credited,
        'upline_activated': activated_upline,
        'propagation_halted': halted
    }


def credit_pv(user_id, leg, pv_amount=None, now=None):
    """
    Add PV to a member's leg and forward the same leg label up the sponsor chain.

    Raises BinaryValidationError before any write for a bad leg or amount,
    MemberNotFoundError when the member itself is missing and
    TransientStoreError when its own update cannot be stored. Upline failures
    only stop the propagation.
    """
    leg = _validate_leg(leg)
    settings = get_binary_settings()
    if pv_amount is None:
        pv_amount = settings['pv_per_subscription']
    amount = _validate_pv_amount(pv_amount)
    now = now or datetime.utcnow()

    member = TeamMember.find_by_user_id(user_id)
    if not member:
        raise MemberNotFoundError(user_id)

    try:
        activated = _apply_leg_credit(member, leg, amount, now)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error adding PV to leg for user {user_id}: {str(e)}")
        raise TransientStoreError(f'Failed to credit PV for user {user_id}') from e

    result = {
        'success': True,
        'message': f"{amount.normalize():f} PV added to {leg} leg",
        'user_id': member.user_id,
        'leg': leg,
        'pv_amount': float(amount),
        'left_leg_pv': float(member.left_leg_pv),
        'right_leg_pv': float(member.right_leg_pv),
        'binary_activated': member.binary_activated,
        'newly_activated': activated
    }

    result.update(_propagate_to_upline(member, leg, amount, now, settings['max_propagation_depth']))

    logger.info(
        f"Credited {amount} PV on {leg} leg for user {user_id}, "
        f"{result['upline_credited']} upline members credited"
    )
    return result


def record_subscription_purchase(buyer_user_id, pv_amount=None, now=None):
    """
    Purchase event from the payment flow: the buyer's sponsor is credited on
    the leg the buyer occupies. Buyers without a placement credit nothing.
    """
    buyer = TeamMember.find_by_user_id(buyer_user_id)
    if not buyer:
        raise MemberNotFoundError(buyer_user_id)

    if not buyer.sponsor_id or buyer.position == Position.MAIN:
        logger.info(f"Purchase by user {buyer_user_id} has no binary placement, no PV credited")
        return {
            'success': True,
            'credited': False,
            'message': 'Buyer has no binary placement, no PV credited'
        }

    result = credit_pv(buyer.sponsor_id, buyer.position.value, pv_amount, now)
    result['credited'] = True
    result['buyer_user_id'] = buyer_user_id
    return result


def place_member(user_id, sponsor_user_id, position):
    """Assign sponsor and leg to a member. The placement can only be made once."""
    leg = _validate_leg(position)

    if user_id == sponsor_user_id:
        raise BinaryValidationError('A member cannot sponsor itself')

    try:
        member = TeamMember.get_or_create(user_id)
        if not member:
            raise MemberNotFoundError(user_id)

        sponsor = TeamMember.get_or_create(sponsor_user_id)
        if not sponsor:
            raise MemberNotFoundError(sponsor_user_id)

        if member.sponsor_id:
            raise SponsorAlreadyAssigned(f'Sponsor already assigned for user {user_id}')

        max_depth = get_binary_settings()['max_propagation_depth']
        if user_id in sponsor.get_upline_user_ids(max_depth):
            raise BinaryValidationError('Placement would create a cycle in the binary tree')

        assigned = TeamMember.query.filter_by(id=member.id, sponsor_id=None).update({
            TeamMember.sponsor_id: sponsor.user_id,
            TeamMember.position: Position(leg),
            TeamMember.version: TeamMember.version + 1,
        }, synchronize_session=False)
        if not assigned:
            raise SponsorAlreadyAssigned(f'Sponsor already assigned for user {user_id}')

        TeamMember.query.filter_by(id=sponsor.id).update({
            TeamMember.direct_count: TeamMember.direct_count + 1,
            TeamMember.version: TeamMember.version + 1,
        }, synchronize_session=False)

        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Error placing user {user_id} under {sponsor_user_id}: {str(e)}")
        raise TransientStoreError(f'Failed to place user {user_id}') from e
    except Exception:
        db.session.rollback()
        raise

    logger.info(f"User {user_id} placed on {leg} leg of user {sponsor_user_id}")

    db.session.refresh(member)
    return {
        'success': True,
        'message': 'Sponsor assigned successfully',
        'member': member.to_dict(),
        'position': leg
    }


def update_active_affiliates(user_id, total_active_affiliates):
    """Store the active affiliate count computed by the team-size logic"""
    try:
        total = int(total_active_affiliates)
    except (TypeError, ValueError):
        raise BinaryValidationError('total_active_affiliates must be an integer')
    if total < 0:
        raise BinaryValidationError('total_active_affiliates must not be negative')

    member = TeamMember.find_by_user_id(user_id)
    if not member:
        raise MemberNotFoundError(user_id)

    try:
        member.total_active_affiliates = total
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise TransientStoreError(f'Failed to update affiliates for user {user_id}') from e

    return member


def get_binary_status(user_id, now=None):
    """Binary status for a user: activation, PV, rank and inactivity countdown"""
    member = TeamMember.find_by_user_id(user_id)
    if not member:
        raise MemberNotFoundError(user_id)

    now = now or datetime.utcnow()
    settings = get_binary_settings()

    activation = check_binary_activation(member.left_leg_count, member.right_leg_count)
    rank = resolve_rank(member.total_active_affiliates)

    left_pv = member.total_left_pv
    right_pv = member.total_right_pv
    matched_volume = calculate_weaker_leg_pv(left_pv, right_pv)
    potential_income = matched_volume * Decimal(rank['bonus_percent']) / Decimal(100)

    days_since_activity = days_since(now, member.last_activity_date or member.created_at)
    days_until_reset = max(0, settings['inactivity_days'] - days_since_activity)

    return {
        # Activation Status
        'activated': member.binary_activated,
        'activation_date': member.binary_activation_date.isoformat() if member.binary_activation_date else None,
        'activation_message': activation['message'],

        # Current PV
        'left_leg_count': member.left_leg_count,
        'right_leg_count': member.right_leg_count,
        'left_leg_pv': float(member.left_leg_pv),
        'right_leg_pv': float(member.right_leg_pv),
        'carry_forward_left_pv': float(member.carry_forward_left_pv),
        'carry_forward_right_pv': float(member.carry_forward_right_pv),
        'total_left_pv': float(left_pv),
        'total_right_pv': float(right_pv),

        # Matching Info
        'matched_volume': float(matched_volume),
        'potential_income': round(float(potential_income), 2),
        'rank': rank['name'],
        'rank_percentage': rank['bonus_percent'],
        'next_rank': get_next_rank_info(member.total_active_affiliates),

        # Activity
        'last_activity_date': member.last_activity_date.isoformat() if member.last_activity_date else None,
        'days_since_activity': days_since_activity,
        'days_until_reset': days_until_reset,
        'inactivity_warning': (
            f"Warning: Close to {settings['inactivity_days']}-day inactivity reset"
            if days_since_activity >= settings['inactivity_warning_days'] else None
        ),

        # Stats
        'total_matched_pv': float(member.total_matched_pv),
        'total_binary_income': float(member.total_binary_income),
        'weekly_binary_income': float(member.weekly_binary_income),
        'last_match_date': member.last_binary_match_date.isoformat() if member.last_binary_match_date else None
    }
