"""
Binary Network Routes for Binary Network Backend
Member-facing binary status, rank progress, commission history and placement
"""

from flask import Blueprint, request, jsonify, current_app

from models import TeamMember, Commission, CommissionStatus
from services.binary_matching import get_binary_status, place_member
from services.binary_rank import BINARY_RANKS, resolve_rank, get_next_rank_info
from services.exceptions import BinaryError
from auth.utils import active_user_required, get_current_user_id

binary_bp = Blueprint('binary', __name__)


def binary_error_response(error):
    """JSON body and status code for a binary service error"""
    return jsonify({'error': str(error)}), error.status_code


def get_pagination_args():
    """limit/offset from the query string, clamped to the configured page size"""
    default_size = current_app.config['DEFAULT_PAGE_SIZE']
    max_size = current_app.config['MAX_PAGE_SIZE']

    limit = min(int(request.args.get('limit', default_size)), max_size)
    offset = int(request.args.get('offset', 0))
    if limit < 1 or offset < 0:
        raise ValueError('limit must be positive and offset must not be negative')
    return limit, offset


@binary_bp.route('/status', methods=['GET'])
@active_user_required
def binary_status():
    """Get binary activation, PV, rank and inactivity status"""
    try:
        status = get_binary_status(get_current_user_id())
        return jsonify({'binary_status': status}), 200

    except BinaryError as e:
        return binary_error_response(e)
    except Exception as e:
        current_app.logger.error(f'Get binary status error: {str(e)}')
        return jsonify({'error': 'Failed to get binary status'}), 500


@binary_bp.route('/rank', methods=['GET'])
@active_user_required
def binary_rank():
    """Get current rank, progress to the next one and the full rank table"""
    try:
        member = TeamMember.find_by_user_id(get_current_user_id())
        total_active_affiliates = member.total_active_affiliates if member else 0

        return jsonify({
            'total_active_affiliates': total_active_affiliates,
            'rank': resolve_rank(total_active_affiliates),
            'progress': get_next_rank_info(total_active_affiliates),
            'ranks': BINARY_RANKS
        }), 200

    except Exception as e:
        current_app.logger.error(f'Get binary rank error: {str(e)}')
        return jsonify({'error': 'Failed to get binary rank'}), 500


@binary_bp.route('/commissions', methods=['GET'])
@active_user_required
def binary_commissions():
    """Get binary commission history with filtering options"""
    try:
        user_id = get_current_user_id()

        try:
            limit, offset = get_pagination_args()
        except ValueError:
            return jsonify({'error': 'Invalid pagination parameters'}), 400

        status = request.args.get('status')
        if status:
            try:
                status = CommissionStatus(status)
            except ValueError:
                return jsonify({'error': 'Invalid status filter'}), 400

        period = request.args.get('period') or None

        commissions, total_count = Commission.get_user_commissions(
            user_id, status=status, settlement_period=period, limit=limit, offset=offset
        )

        return jsonify({
            'commissions': [commission.to_dict() for commission in commissions],
            'pending_total': Commission.get_pending_total(user_id),
            'pagination': {
                'total': total_count,
                'limit': limit,
                'offset': offset,
                'has_more': offset + limit < total_count
            }
        }), 200

    except Exception as e:
        current_app.logger.error(f'Get binary commissions error: {str(e)}')
        return jsonify({'error': 'Failed to get commission history'}), 500


@binary_bp.route('/placement', methods=['POST'])
@active_user_required
def binary_placement():
    """Place the current user under a sponsor on the left or right leg"""
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'No placement data provided'}), 400

        sponsor_user_id = data.get('sponsor_user_id')
        position = data.get('position')
        if sponsor_user_id is None or not position:
            return jsonify({'error': 'sponsor_user_id and position are required'}), 400

        try:
            sponsor_user_id = int(sponsor_user_id)
        except (TypeError, ValueError):
            return jsonify({'error': 'Invalid sponsor_user_id'}), 400

        user_id = get_current_user_id()
        result = place_member(user_id, sponsor_user_id, position)

        current_app.logger.info(f'User {user_id} placed under {sponsor_user_id} on {result["position"]} leg')
        return jsonify(result), 201

    except BinaryError as e:
        return binary_error_response(e)
    except Exception as e:
        current_app.logger.error(f'Binary placement error: {str(e)}')
        return jsonify({'error': 'Failed to place member'}), 500
