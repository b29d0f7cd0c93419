"""
SitePulse survey service
Configuration classes for the Flask app factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'sitepulse_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Firebase emulator address for the callable prediction functions
_EMULATOR_FUNCTIONS_URL = "http://127.0.0.1:5001/sitepulse/us-central1"

# Random per-process key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _database_url(default):
    # Railway/Heroku hand out postgres:// but SQLAlchemy 2.0 requires postgresql://
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Rate limiter storage
    REDIS_URL = os.getenv("REDIS_URL", "memory://")
    RATELIMIT_ENABLED = True

    # CORS (the mobile client and the Expo web build)
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Prediction boundary (callable cloud functions)
    PREDICTION_API_URL = os.getenv("PREDICTION_API_URL", _EMULATOR_FUNCTIONS_URL)
    PREDICTION_API_TOKEN = os.getenv("PREDICTION_API_TOKEN")
    PREDICTION_TIMEOUT_SECONDS = int(os.getenv("PREDICTION_TIMEOUT_SECONDS", "30"))

    # Daily survey
    # IANA zone used to decide what "today" is; unset = server local time.
    SURVEY_TIMEZONE = os.getenv("SURVEY_TIMEZONE") or None
    # A pending same-day claim older than this is treated as abandoned.
    SURVEY_CLAIM_TTL_SECONDS = int(os.getenv("SURVEY_CLAIM_TTL_SECONDS", "300"))


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    PREDICTION_API_URL = "http://prediction.test/functions"
    PREDICTION_API_TOKEN = "test-token"
    SURVEY_TIMEZONE = "UTC"


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _database_url(None)
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production
    PREDICTION_API_URL = os.getenv("PREDICTION_API_URL")

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")
        if not self.PREDICTION_API_URL:
            raise RuntimeError("PREDICTION_API_URL environment variable is required in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
