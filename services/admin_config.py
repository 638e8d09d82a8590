"""
Admin Configuration Service for Binary Network Backend
Handles initialization and lookup of runtime-overridable settings
"""

from flask import current_app

from models import AdminConfig


BINARY_CONFIG_CATEGORY = 'binary'

# config key -> (Flask config key, data type, description)
BINARY_CONFIG_KEYS = {
    'binary_pv_per_subscription': (
        'BINARY_PV_PER_SUBSCRIPTION', 'number', 'PV credited per subscription purchase'
    ),
    'binary_inactivity_days': (
        'BINARY_INACTIVITY_DAYS', 'number', 'Days without PV activity before carry-forward is reset'
    ),
    'binary_requalify_after_reset': (
        'BINARY_REQUALIFY_AFTER_RESET', 'boolean', 'Whether an inactivity reset also clears binary activation'
    ),
    'binary_max_propagation_depth': (
        'BINARY_MAX_PROPAGATION_DEPTH', 'number', 'Maximum upline levels credited per purchase'
    ),
}


def initialize_default_config():
    """Seed the binary configuration rows from the application config"""
    defaults = []
    for key, (config_key, data_type, description) in BINARY_CONFIG_KEYS.items():
        defaults.append({
            'key': key,
            'value': current_app.config[config_key],
            'description': description,
            'category': BINARY_CONFIG_CATEGORY,
            'data_type': data_type
        })
    AdminConfig.initialize_default_configs(defaults)


def get_config(key, default=None):
    """Get configuration value by key"""
    return AdminConfig.get_config(key, default)


def set_config(key, value, description=None, category='general', data_type='string', updated_by=None):
    """Set configuration value"""
    return AdminConfig.set_config(key, value, description, category, data_type, updated_by)


def set_binary_config(key, value, updated_by=None):
    """Set one of the known binary settings, coercing to its data type"""
    if key not in BINARY_CONFIG_KEYS:
        raise KeyError(key)

    _, data_type, description = BINARY_CONFIG_KEYS[key]
    if data_type == 'number':
        value = float(value)
        if value <= 0:
            raise ValueError(f'{key} must be positive')
    elif isinstance(value, str):
        value = value.lower() in ['true', '1', 'yes', 'on']
    else:
        value = bool(value)

    return set_config(key, value, description, BINARY_CONFIG_CATEGORY, data_type, updated_by)


def get_binary_settings():
    """Effective binary settings: database override, else application config"""
    app_config = current_app.config
    return {
        'pv_per_subscription': get_config(
            'binary_pv_per_subscription', app_config['BINARY_PV_PER_SUBSCRIPTION']
        ),
        'inactivity_days': int(get_config(
            'binary_inactivity_days', app_config['BINARY_INACTIVITY_DAYS']
        )),
        'inactivity_warning_days': app_config['BINARY_INACTIVITY_WARNING_DAYS'],
        'requalify_after_reset': bool(get_config(
            'binary_requalify_after_reset', app_config['BINARY_REQUALIFY_AFTER_RESET']
        )),
        'max_propagation_depth': int(get_config(
            'binary_max_propagation_depth', app_config['BINARY_MAX_PROPAGATION_DEPTH']
        )),
    }
