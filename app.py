"""
Facility Visitor Management System - Main Application

This module serves as the main entry point for the visitor management API.
It handles application initialization, configuration, component wiring and
error handling.

Features:
- Visitor check-in/check-out from kiosks
- Contractor training compliance checks
- Visitor search for returning visitors
- CSV import of training records
- Visit history export to CSV/Excel
- Daily retention purge of inactive visitors
"""

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
import logging

from config import get_config, validate_config
from visitor_management import build_system
from visitor_management.modules.errors import StorageError, VisitorSystemError
from visitor_management.modules.settings import CoreSettings
from visitor_management.routes import api_bp

logger = logging.getLogger(__name__)


def create_app(config_class=None, settings=None):
    """
    Application factory.

    Args:
        config_class: One of the configuration classes in config.py,
            selected through FLASK_ENV when omitted
        settings (CoreSettings): Prebuilt core settings, mainly for tests
    """
    config_class = config_class or get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, str(config_class.LOG_LEVEL).upper(), logging.INFO),
        format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
    )

    errors = validate_config(config_class)
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    config_class.init_app(app)

    settings = settings or CoreSettings.from_config(config_class)
    app.extensions['visitor_system'] = build_system(settings, str(config_class.EXPORTS_FOLDER))

    app.register_blueprint(api_bp)
    register_error_handlers(app)

    @app.before_request
    def run_retention_purge():
        """Opportunistic daily purge; the marker makes this a no-op after the first run of the day."""
        if request.endpoint in ('health', 'static'):
            return None
        app.extensions['visitor_system'].retention_purger.run_if_due()
        return None

    @app.route('/health')
    def health():
        """Liveness check"""
        system = app.extensions['visitor_system']
        return jsonify({
            'status': 'ok',
            'timezone': system.settings.timezone,
            'current_time': system.settings.now().isoformat()
        })

    logger.info(f"Visitor Management System initialized ({config_class.__name__})")
    return app


def register_error_handlers(app):
    """Map core errors to JSON responses."""

    @app.errorhandler(StorageError)
    def handle_storage_error(error):
        # Detail stays in the log
        logger.error(f"Storage error on {request.path}: {error.cause or error.message}")
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(VisitorSystemError)
    def handle_visitor_error(error):
        logger.warning(f"{error.error_type} on {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({
            'success': False,
            'error': error.description,
            'error_type': 'http_error'
        }), error.code


if __name__ == '__main__':
    app = create_app()
    app.run(debug=app.config.get('DEBUG', False), host='0.0.0.0', port=5000)
