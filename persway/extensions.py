"""
Flask extensions initialization.
"""
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

from .utils.rate_limiter import RateLimiter

# Database
db = SQLAlchemy()

# Migrations
migrate = Migrate()


def init_rate_limiter(app) -> RateLimiter:
    """
    Build the process-wide Admin API rate limiter.

    Stored on app.extensions['persway_rate_limiter'] and injected into every
    ShopifyClient the app creates.
    """
    limiter = RateLimiter(
        max_requests=app.config.get('RATE_LIMIT_MAX_REQUESTS', 40),
        window_seconds=app.config.get('RATE_LIMIT_WINDOW_SECONDS', 60),
    )
    app.extensions['persway_rate_limiter'] = limiter
    return limiter
