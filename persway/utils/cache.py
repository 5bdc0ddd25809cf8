"""
Cache utilities for Persway.

Provides Redis-backed caching with fallback to simple in-memory caching.
Uses Flask-Caching for integration with the Flask app. The cache holds
anonymous pixel events until the visitor logs in and their session is
migrated into a customer profile.

Usage:
    from persway.utils.cache import cache

    cache.set('key', value, timeout=300)
    value = cache.get('key')
    cache.delete('key')

Environment Variables:
    REDIS_URL: Redis connection URL (e.g., redis://localhost:6379/0)
              Falls back to simple cache if not set or unavailable.
"""
import os
import logging
from flask_caching import Cache

logger = logging.getLogger(__name__)

# Global cache instance - initialized in init_cache()
cache = Cache()


def init_cache(app):
    """
    Initialize Flask-Caching with Redis or fallback to simple cache.

    Args:
        app: Flask application instance

    Returns:
        bool: True if Redis connected, False if using fallback
    """
    redis_url = os.getenv('REDIS_URL')

    if redis_url and not app.config.get('TESTING'):
        try:
            import redis
            r = redis.from_url(redis_url, socket_connect_timeout=2)
            r.ping()

            app.config['CACHE_TYPE'] = 'RedisCache'
            app.config['CACHE_REDIS_URL'] = redis_url
            app.config['CACHE_DEFAULT_TIMEOUT'] = 300
            app.config['CACHE_KEY_PREFIX'] = 'persway:'

            cache.init_app(app)
            logger.info('[Persway] Redis cache connected: %s', redis_url.split('@')[-1])
            return True

        except Exception as e:
            logger.warning('[Persway] Redis unavailable (%s), using simple cache', str(e))

    app.config['CACHE_TYPE'] = 'SimpleCache'
    app.config['CACHE_DEFAULT_TIMEOUT'] = 300

    cache.init_app(app)
    logger.info('[Persway] Using simple in-memory cache (no Redis)')
    return False


def cache_key(*args, **kwargs):
    """
    Generate a cache key from arguments.

        key = cache_key('anon_events', 'shop.myshopify.com', 'pw_123')
        cache.set(key, events, timeout=86400)
    """
    parts = list(args)
    for k, v in sorted(kwargs.items()):
        parts.append(f'{k}={v}')
    return ':'.join(str(p) for p in parts)
