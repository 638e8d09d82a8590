"""
Admin Routes for Binary Network Backend
Handles weekly matching control, PV credits, settlement history and binary settings
"""

from flask import Blueprint, request, jsonify, current_app

from models import db, TeamMember, SettlementRun, AdminConfig
from services.admin_config import BINARY_CONFIG_CATEGORY, set_binary_config, get_binary_settings
from services.binary_matching import (
    credit_pv, record_subscription_purchase, update_active_affiliates, get_binary_status
)
from services.exceptions import BinaryError
from services.scheduler import SettlementInProgress
from auth.utils import admin_required, get_current_user_id
from binary.routes import binary_error_response, get_pagination_args

admin_bp = Blueprint('admin', __name__)


def get_binary_scheduler():
    return current_app.extensions['binary_scheduler']


@admin_bp.route('/binary/matching/run', methods=['POST'])
@admin_required
def run_binary_matching():
    """Run the weekly binary matching now"""
    try:
        admin_id = get_current_user_id()
        current_app.logger.info(f'Manual binary matching triggered by admin {admin_id}')

        result = get_binary_scheduler().run_now()

        return jsonify({
            'message': 'Binary matching completed',
            'summary': result['summary'],
            'results': result['results']
        }), 200

    except SettlementInProgress as e:
        return jsonify({'error': str(e)}), 409
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Admin binary matching error: {str(e)}')
        return jsonify({'error': 'Failed to run binary matching'}), 500


@admin_bp.route('/binary/scheduler', methods=['GET'])
@admin_required
def get_scheduler_status():
    """Get weekly matching scheduler status"""
    return jsonify({'scheduler': get_binary_scheduler().get_status()}), 200


@admin_bp.route('/binary/scheduler/start', methods=['POST'])
@admin_required
def start_scheduler():
    """Start (or restart) the weekly matching scheduler"""
    try:
        scheduler = get_binary_scheduler()
        scheduler.start()
        return jsonify({
            'message': 'Scheduler started',
            'scheduler': scheduler.get_status()
        }), 200

    except Exception as e:
        current_app.logger.error(f'Admin start scheduler error: {str(e)}')
        return jsonify({'error': 'Failed to start scheduler'}), 500


@admin_bp.route('/binary/scheduler/stop', methods=['POST'])
@admin_required
def stop_scheduler():
    """Stop the weekly matching scheduler and cancel a running settlement"""
    try:
        scheduler = get_binary_scheduler()
        scheduler.stop()
        return jsonify({
            'message': 'Scheduler stopped',
            'scheduler': scheduler.get_status()
        }), 200

    except Exception as e:
        current_app.logger.error(f'Admin stop scheduler error: {str(e)}')
        return jsonify({'error': 'Failed to stop scheduler'}), 500


@admin_bp.route('/binary/pv', methods=['POST'])
@admin_required
def add_pv_to_leg():
    """Credit PV to a member's leg and its upline"""
    try:
        data = request.get_json(silent=True)
        if not data:
            return jsonify({'error': 'No PV data provided'}), 400

        user_id = data.get('user_id')
        leg = data.get('leg')
        if user_id is None or not leg:
            return jsonify({'error': 'user_id and leg are required'}), 400

        result = credit_pv(user_id, leg, data.get('pv_amount'))

        current_app.logger.info(
            f'Admin {get_current_user_id()} credited {result["pv_amount"]} PV to {leg} leg of user {user_id}'
        )
        return jsonify(result), 200

    except BinaryError as e:
        return binary_error_response(e)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Admin add PV error: {str(e)}')
        return jsonify({'error': 'Failed to add PV'}), 500


@admin_bp.route('/binary/purchases', methods=['POST'])
@admin_required
def record_purchase():
    """Record a completed subscription purchase for binary PV"""
    try:
        data = request.get_json(silent=True)
        if not data or data.get('buyer_user_id') is None:
            return jsonify({'error': 'buyer_user_id is required'}), 400

        result = record_subscription_purchase(data['buyer_user_id'], data.get('pv_amount'))
        return jsonify(result), 200

    except BinaryError as e:
        return binary_error_response(e)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Admin record purchase error: {str(e)}')
        return jsonify({'error': 'Failed to record purchase'}), 500


@admin_bp.route('/binary/settlements', methods=['GET'])
@admin_required
def get_settlements():
    """Get settlement run history"""
    try:
        try:
            limit, offset = get_pagination_args()
        except ValueError:
            return jsonify({'error': 'Invalid pagination parameters'}), 400

        runs, total_count = SettlementRun.get_recent_runs(limit=limit, offset=offset)

        return jsonify({
            'settlements': [run.to_dict() for run in runs],
            'pagination': {
                'total': total_count,
                'limit': limit,
                'offset': offset,
                'has_more': offset + limit < total_count
            }
        }), 200

    except Exception as e:
        current_app.logger.error(f'Admin get settlements error: {str(e)}')
        return jsonify({'error': 'Failed to get settlements'}), 500


@admin_bp.route('/binary/config', methods=['GET'])
@admin_required
def get_binary_config():
    """Get binary configuration rows and the effective settings"""
    try:
        return jsonify({
            'configurations': AdminConfig.get_configs_by_category(BINARY_CONFIG_CATEGORY),
            'effective': get_binary_settings()
        }), 200

    except Exception as e:
        current_app.logger.error(f'Admin get binary config error: {str(e)}')
        return jsonify({'error': 'Failed to get configuration'}), 500


@admin_bp.route('/binary/config', methods=['PUT'])
@admin_required
def update_binary_config():
    """Update binary configuration"""
    try:
        current_user_id = get_current_user_id()
        data = request.get_json(silent=True)

        if not data:
            return jsonify({'error': 'No configuration data provided'}), 400

        updated_configs = []

        for key, value in data.items():
            if key.startswith('_'):  # Skip metadata fields
                continue

            config = set_binary_config(key, value, updated_by=current_user_id)
            updated_configs.append(config.key)

        current_app.logger.info(f'Binary configuration updated by admin {current_user_id}: {updated_configs}')

        return jsonify({
            'message': 'Configuration updated successfully',
            'updated_keys': updated_configs,
            'effective': get_binary_settings()
        }), 200

    except KeyError as e:
        db.session.rollback()
        return jsonify({'error': f'Unknown configuration key: {e.args[0]}'}), 400
    except ValueError as e:
        db.session.rollback()
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Admin update binary config error: {str(e)}')
        return jsonify({'error': 'Failed to update configuration'}), 500


@admin_bp.route('/binary/members/<int:user_id>', methods=['GET'])
@admin_required
def get_member(user_id):
    """Get a member's binary node and status"""
    try:
        member = TeamMember.find_by_user_id(user_id)
        if not member:
            return jsonify({'error': 'Team member not found'}), 404

        return jsonify({
            'member': member.to_dict(),
            'user': member.user.to_dict(include_sensitive=True) if member.user else None,
            'binary_status': get_binary_status(user_id),
            'upline': member.get_upline_user_ids(get_binary_settings()['max_propagation_depth']),
            'direct_members': [direct.user_id for direct in member.get_direct_members()]
        }), 200

    except BinaryError as e:
        return binary_error_response(e)
    except Exception as e:
        current_app.logger.error(f'Admin get member error: {str(e)}')
        return jsonify({'error': 'Failed to get member'}), 500


@admin_bp.route('/binary/members/<int:user_id>/affiliates', methods=['PUT'])
@admin_required
def update_member_affiliates(user_id):
    """Store the active affiliate count supplied by the team-size feed"""
    try:
        data = request.get_json(silent=True)
        if not data or 'total_active_affiliates' not in data:
            return jsonify({'error': 'total_active_affiliates is required'}), 400

        member = update_active_affiliates(user_id, data['total_active_affiliates'])

        return jsonify({
            'message': 'Active affiliates updated',
            'member': member.to_dict()
        }), 200

    except BinaryError as e:
        return binary_error_response(e)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Admin update affiliates error: {str(e)}')
        return jsonify({'error': 'Failed to update active affiliates'}), 500
