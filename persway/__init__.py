"""
Persway behavior tracking app
Flask application factory
"""
import os
import re
import logging
from flask import Flask
from flask_cors import CORS

from .extensions import db, migrate, init_rate_limiter
from .config import get_config, validate_config
from .utils.cache import init_cache
from .utils.errors import exception_response, error_response, ErrorCode, internal_error
from .utils.exceptions import PerswayError
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()
    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Anonymous event buffer (Redis with simple-cache fallback)
    init_cache(app)

    # One Admin API budget per process
    init_rate_limiter(app)

    # The admin UI runs inside admin.shopify.com; the pixel posts from storefronts
    cors_origins = [
        'https://admin.shopify.com',
        re.compile(r'https://.*\.myshopify\.com'),
    ]
    if config_name != 'production':
        cors_origins.append('http://localhost:3000')
    CORS(
        app,
        resources={
            r'/api/persway/*': {'origins': '*'},
            r'/app/*': {'origins': cors_origins, 'supports_credentials': True},
        },
        allow_headers=['Content-Type', 'Authorization', 'X-Shop-Domain'],
    )

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'persway'}

    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    # Storefront pixel API
    from .api.events import events_bp

    # Embedded admin
    from .api.customers import customers_bp
    from .api.audiences import audiences_bp
    from .api.installation import installation_bp

    # Webhooks
    from .webhooks import app_lifecycle_bp

    app.register_blueprint(events_bp, url_prefix='/api/persway')

    app.register_blueprint(customers_bp, url_prefix='/app')
    app.register_blueprint(audiences_bp, url_prefix='/app')
    app.register_blueprint(installation_bp, url_prefix='/app')

    app.register_blueprint(app_lifecycle_bp, url_prefix='/webhooks')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""

    @app.errorhandler(PerswayError)
    def persway_error(error):
        return exception_response(error)

    @app.errorhandler(400)
    def bad_request(error):
        return error_response(str(error), ErrorCode.INVALID_REQUEST, 400, log_error=False)

    @app.errorhandler(404)
    def not_found(error):
        return error_response(str(error), ErrorCode.NOT_FOUND, 404, log_error=False)

    @app.errorhandler(500)
    def internal_server_error(error):
        logger.error('Unhandled error: %s', getattr(error, 'original_exception', error))
        return internal_error()
