"""
Binary Network Backend Models
Database models initialization
"""

from flask_sqlalchemy import SQLAlchemy

# Initialize SQLAlchemy instance
db = SQLAlchemy()

# Import all models to ensure they are registered
from .user import User
from .team_member import TeamMember, Position
from .commission import Commission, CommissionType, CommissionStatus
from .settlement import SettlementRun, SettlementStatus, SettlementTrigger
from .admin import AdminConfig

# Export commonly used models
__all__ = [
    'db',
    'User',
    'TeamMember',
    'Position',
    'Commission',
    'CommissionType',
    'CommissionStatus',
    'SettlementRun',
    'SettlementStatus',
    'SettlementTrigger',
    'AdminConfig'
]
