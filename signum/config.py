"""
Sign-um Document Approval Engine
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'signum_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,   # recycle connections every 5 min
        "pool_timeout": 20,    # wait max 20s for a connection from pool
    }

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Rate limiter storage (memory:// unless a shared backend is configured)
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")

    # Stale document enforcement
    DOC_TIMEOUT_DAYS = int(os.getenv("DOC_TIMEOUT_DAYS", "5"))
    DOC_TIMEOUT_MODE = os.getenv("DOC_TIMEOUT_MODE", "reject_pending")  # reject_pending | delete
    TIMEOUT_SWEEP_ENABLED = _env_bool("TIMEOUT_SWEEP_ENABLED", "true")

    # Signing transaction retry on lock contention
    SIGN_MAX_ATTEMPTS = int(os.getenv("SIGN_MAX_ATTEMPTS", "3"))
    SIGN_RETRY_DELAY_SECONDS = float(os.getenv("SIGN_RETRY_DELAY_SECONDS", "1"))

    # Fund ledger
    COUNCIL_FUND_ID = os.getenv("COUNCIL_FUND_ID", "ssc")

    # Rendered document artifacts
    ARTIFACT_DIR = os.getenv("ARTIFACT_DIR", os.path.join(basedir, "instance", "artifacts"))

    # Calendar event sink: HTTP when EVENTS_API_URL is set, local table otherwise
    EVENTS_API_URL = os.getenv("EVENTS_API_URL", "")
    EVENT_SINK_CONNECT_TIMEOUT = float(os.getenv("EVENT_SINK_CONNECT_TIMEOUT", "5"))
    EVENT_SINK_TIMEOUT = float(os.getenv("EVENT_SINK_TIMEOUT", "10"))

    # Post-commit side effects
    SIDE_EFFECTS_SYNC = False
    SIDE_EFFECT_MAX_ATTEMPTS = int(os.getenv("SIDE_EFFECT_MAX_ATTEMPTS", "3"))
    SIDE_EFFECT_RETRY_DELAY_SECONDS = float(os.getenv("SIDE_EFFECT_RETRY_DELAY_SECONDS", "1"))


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = (
        _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else _SQLITE_DEV
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # In-memory SQLite runs on a StaticPool, which rejects QueuePool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    # Tests call the sweeper explicitly or enable the hook per test
    TIMEOUT_SWEEP_ENABLED = False
    SIGN_RETRY_DELAY_SECONDS = 0
    SIDE_EFFECTS_SYNC = True
    SIDE_EFFECT_RETRY_DELAY_SECONDS = 0
    EVENTS_API_URL = ""


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
