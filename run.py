#!/usr/bin/env python3
"""
Binary Network Backend - Development Server
Run this file to start the development server
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from app import create_app
from config import config

if __name__ == '__main__':
    # Create Flask app
    env = os.environ.get('FLASK_ENV', 'development')
    app = create_app(config.get(env, config['default']))

    # Get configuration from environment
    host = os.environ.get('FLASK_HOST', '0.0.0.0')
    port = int(os.environ.get('FLASK_PORT', 5000))
    debug = env == 'development'

    print("=" * 60)
    print("           Binary Network Backend")
    print("=" * 60)
    print(f"Server starting on http://{host}:{port}")
    print(f"Environment: {env}")
    print(f"Database: {app.config.get('SQLALCHEMY_DATABASE_URI', 'Not configured')}")
    print(f"Weekly matching: {app.extensions['binary_scheduler'].describe_schedule()}")
    print()
    print("API Endpoints:")
    print("• /api/health - Health check")
    print("• /api/binary/* - Binary status, rank, commissions, placement")
    print("• /api/admin/binary/* - Matching, scheduler, PV credits, settings")
    print()
    print("Press Ctrl+C to stop the server")
    print("=" * 60)

    # Run the development server
    app.run(
        host=host,
        port=port,
        debug=debug,
        threaded=True
    )
