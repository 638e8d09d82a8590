"""
Authentication Utilities for Binary Network Backend
JWT decorators and current-user lookup shared by the blueprints
"""

from functools import wraps
from flask import jsonify
from flask_jwt_extended import get_jwt_identity, jwt_required

from models import db, User


def get_current_user_id():
    """Identity of the current JWT, as an integer user id"""
    identity = get_jwt_identity()
    try:
        return int(identity)
    except (TypeError, ValueError):
        return None


def get_current_user():
    """Get current authenticated user"""
    user_id = get_current_user_id()
    if user_id is None:
        return None
    return db.session.get(User, user_id)


def admin_required(f):
    """Decorator to require admin privileges for API routes (JWT-based)"""
    @wraps(f)
    @jwt_required()
    def decorated_function(*args, **kwargs):
        user = get_current_user()

        if not user or not user.is_admin or not user.is_active:
            return jsonify({'error': 'Admin privileges required'}), 403

        return f(*args, **kwargs)

    return decorated_function


def active_user_required(f):
    """Decorator to require active user"""
    @wraps(f)
    @jwt_required()
    def decorated_function(*args, **kwargs):
        user = get_current_user()

        if not user or not user.is_active:
            return jsonify({'error': 'Active user account required'}), 403

        return f(*args, **kwargs)

    return decorated_function
