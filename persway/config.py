"""
Configuration management for the Persway app.
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return default


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shopify app credentials
    SHOPIFY_API_VERSION = os.getenv('SHOPIFY_API_VERSION', '2024-10')
    SHOPIFY_API_KEY = os.getenv('SHOPIFY_API_KEY', '')
    SHOPIFY_API_SECRET = os.getenv('SHOPIFY_API_SECRET', '')
    SHOPIFY_AUTH_DEV_MODE = os.getenv('SHOPIFY_AUTH_DEV_MODE') == 'true'

    # Behavior profile retention and bounds
    PERSWAY_MAX_RECENT_EVENTS = _int_env('PERSWAY_MAX_RECENT_EVENTS', 50)
    PERSWAY_RETENTION_DAYS = _int_env('PERSWAY_RETENTION_DAYS', 365)

    # Metafield soft size ceilings (KB of serialized JSON)
    PERSWAY_BEHAVIOR_DATA_MAX_KB = 200
    PERSWAY_MIGRATION_DATA_MAX_KB = 50
    PERSWAY_AUDIENCES_MAX_KB = 500
    PERSWAY_THEME_BLOCKS_MAX_KB = 250

    # Outbound Admin API budget per process
    RATE_LIMIT_MAX_REQUESTS = _int_env('RATE_LIMIT_MAX_REQUESTS', 40)
    RATE_LIMIT_WINDOW_SECONDS = _int_env('RATE_LIMIT_WINDOW_SECONDS', 60)

    # Anonymous pixel events held for login migration
    ANONYMOUS_EVENT_TTL = _int_env('ANONYMOUS_EVENT_TTL', 86400)
    ANONYMOUS_EVENT_BUFFER = _int_env('ANONYMOUS_EVENT_BUFFER', 200)


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SHOPIFY_AUTH_DEV_MODE = os.getenv('SHOPIFY_AUTH_DEV_MODE', 'true') == 'true'
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///persway_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,
    }

    _secret_key = os.getenv('SECRET_KEY', '')

    @classmethod
    def validate_secret_key(cls) -> str:
        """
        Validate SECRET_KEY in production environment.

        Raises:
            RuntimeError: If SECRET_KEY is missing, empty, or contains unsafe values
        """
        if not cls._secret_key:
            raise RuntimeError(
                "CRITICAL: SECRET_KEY environment variable is not set!\n"
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )

        lower_key = cls._secret_key.lower()
        for pattern in ['dev', 'change', 'default', 'test', 'secret', 'password']:
            if pattern in lower_key:
                raise RuntimeError(
                    f"CRITICAL: SECRET_KEY contains '{pattern}' which suggests it's not secure!"
                )

        if len(cls._secret_key) < 32:
            raise RuntimeError("CRITICAL: SECRET_KEY is too short (minimum 32 characters required)!")

        return cls._secret_key

    SECRET_KEY = _secret_key


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SHOPIFY_AUTH_DEV_MODE = True
    SHOPIFY_API_KEY = 'test-api-key'
    SHOPIFY_API_SECRET = 'test-api-secret'


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Raises:
        RuntimeError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secret_key()
