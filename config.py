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

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 86400  # 24 hours

    # JSON API: CSRF token travels in X-CSRFToken header
    WTF_CSRF_ENABLED = os.getenv('WTF_CSRF_ENABLED', 'true').lower() == 'true'

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'mostrador')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'mostrador')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'mostrador')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', '0') == '1'

    # Cash reconciliation
    # Absolute difference (counted - expected) from which a closed shift needs authorization
    CASH_DIFFERENCE_AUTH_THRESHOLD = os.getenv('CASH_DIFFERENCE_AUTH_THRESHOLD', '50')

    # Sales
    MIXED_PAYMENT_TOLERANCE = os.getenv('MIXED_PAYMENT_TOLERANCE', '0.01')
    MAX_MIXED_PAYMENTS = int(os.getenv('MAX_MIXED_PAYMENTS', '2'))

    # Plan / usage gate (checked before the sale core runs)
    PLAN_LIMITS_ENABLED = os.getenv('PLAN_LIMITS_ENABLED', 'false').lower() == 'true'

    # Redis Cache Configuration
    # Only plan features are cached; money and stock are always read from the database
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'mostrador')
    PLAN_FEATURES_TTL = int(os.getenv('PLAN_FEATURES_TTL', '300'))  # seconds

    # Error reporting (production only)
    SENTRY_DSN = os.getenv('SENTRY_DSN')
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv('SENTRY_TRACES_SAMPLE_RATE', '0.1'))


class TestingConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite://')
    SQLALCHEMY_ECHO = False
    CACHE_ENABLED = False
    PLAN_LIMITS_ENABLED = False
    SENTRY_DSN = None
