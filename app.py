"""
Binary Network Backend - Flask Application
Main application entry point with all configurations and blueprints
"""

from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
import logging
from logging.handlers import RotatingFileHandler
import os
import atexit
from datetime import datetime

# Import configuration
from config import Config

# Import database
from models import db

# Import blueprints
from binary.routes import binary_bp
from admin.routes import admin_bp

# Import services
from services.admin_config import initialize_default_config
from services.scheduler import BinaryMatchingScheduler


def create_app(config_class=Config):
    """Application factory pattern"""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    CORS(app)
    jwt = JWTManager(app)
    Migrate(app, db)

    # Setup logging
    setup_logging(app)

    # Register blueprints
    app.register_blueprint(binary_bp, url_prefix='/api/binary')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    # Health check endpoint
    @app.route('/api/health')
    def health_check():
        scheduler = app.extensions['binary_scheduler']
        return jsonify({
            'status': 'healthy',
            'timestamp': datetime.utcnow().isoformat(),
            'version': '1.0.0',
            'scheduler_running': scheduler.running
        })

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({'error': 'Internal server error'}), 500

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({'error': 'Token has expired'}), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({'error': 'Invalid token'}), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({'error': 'Authorization token is required'}), 401

    # Initialize database tables and default binary settings
    with app.app_context():
        db.create_all()
        initialize_default_config()

    # Weekly matching scheduler
    scheduler = BinaryMatchingScheduler(app)
    if not app.debug and not app.testing and app.config['BINARY_SCHEDULER_ENABLED']:
        scheduler.start()
        atexit.register(scheduler.stop)

    app.logger.info('Binary Network Backend startup complete')

    return app


def setup_logging(app):
    """Configure application logging"""
    if not app.debug and not app.testing:
        log_file = app.config['LOG_FILE']
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.mkdir(log_dir)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=app.config['LOG_MAX_BYTES'],
            backupCount=app.config['LOG_BACKUP_COUNT']
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(app.config['LOG_LEVEL'])
        app.logger.addHandler(file_handler)
        app.logger.setLevel(app.config['LOG_LEVEL'])

        # Service modules log through logging.getLogger(__name__)
        services_logger = logging.getLogger('services')
        services_logger.addHandler(file_handler)
        services_logger.setLevel(app.config['LOG_LEVEL'])

        app.logger.info('Binary Network Backend startup')


if __name__ == '__main__':
    app = create_app()
    app.run(debug=True, host='0.0.0.0', port=5001)
