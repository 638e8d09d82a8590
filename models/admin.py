"""
Admin Configuration Model for Binary Network Backend
Runtime overrides for binary network parameters
"""

from datetime import datetime
import json

from . import db


class AdminConfig(db.Model):
    """Admin configuration model for system settings"""

    __tablename__ = 'admin_configs'

    # Primary fields
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(100), unique=True, nullable=False, index=True)
    value = db.Column(db.Text, nullable=False)
    description = db.Column(db.Text)

    # Metadata
    category = db.Column(db.String(50), default='general', index=True)
    data_type = db.Column(db.String(20), default='string')  # string, number, boolean, json
    is_public = db.Column(db.Boolean, default=False)  # Whether this config is visible to users

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    updated_by = db.Column(db.Integer, db.ForeignKey('users.id'))

    def __repr__(self):
        return f'<AdminConfig {self.key}:{self.value}>'

    def get_value(self):
        """Get the parsed value based on data type"""
        try:
            if self.data_type == 'json':
                return json.loads(self.value)
            elif self.data_type == 'number':
                return float(self.value)
            elif self.data_type == 'boolean':
                return self.value.lower() in ['true', '1', 'yes', 'on']
            else:
                return self.value
        except (json.JSONDecodeError, ValueError):
            return self.value

    def set_value(self, value, updated_by=None):
        """Set the value with proper serialization"""
        if self.data_type == 'json':
            self.value = json.dumps(value)
        else:
            self.value = str(value)

        self.updated_at = datetime.utcnow()
        if updated_by:
            self.updated_by = updated_by

    @staticmethod
    def get_config(key, default=None):
        """Get configuration value by key"""
        config = AdminConfig.query.filter_by(key=key).first()
        if config:
            return config.get_value()
        return default

    @staticmethod
    def set_config(key, value, description=None, category='general', data_type='string', updated_by=None, is_public=False):
        """Set configuration value"""
        config = AdminConfig.query.filter_by(key=key).first()

        if config:
            config.set_value(value, updated_by)
            if description:
                config.description = description
        else:
            config = AdminConfig(
                key=key,
                description=description,
                category=category,
                data_type=data_type,
                is_public=is_public
            )
            config.set_value(value, updated_by)
            db.session.add(config)

        db.session.commit()
        return config

    @staticmethod
    def get_configs_by_category(category):
        """Get all configurations in a category"""
        configs = AdminConfig.query.filter_by(category=category).order_by(AdminConfig.key).all()
        return {config.key: config.get_value() for config in configs}

    @staticmethod
    def initialize_default_configs(defaults):
        """Insert missing configuration rows"""
        for config_data in defaults:
            existing = AdminConfig.query.filter_by(key=config_data['key']).first()
            if not existing:
                AdminConfig.set_config(**config_data)

