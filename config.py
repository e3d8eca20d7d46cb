"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'fulfillment')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'fulfillment')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'fulfillment')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Payment collaborator callbacks
    # When empty, webhook signatures are not verified (dev only)
    PAYMENT_WEBHOOK_SECRET = os.getenv('PAYMENT_WEBHOOK_SECRET', '')

    # Currencies (display labels only, amounts are stored in base currency)
    BASE_CURRENCY = os.getenv('BASE_CURRENCY', 'BRL')
    SECONDARY_CURRENCY = os.getenv('SECONDARY_CURRENCY', 'UYU')

    # Redis Cache Configuration
    # Store settings and shipping tiers are memoized here and invalidated on update
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_SETTINGS_TTL = int(os.getenv('CACHE_SETTINGS_TTL', '300'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'fulfillment')

    # Error tracking
    SENTRY_DSN = os.getenv('SENTRY_DSN')
