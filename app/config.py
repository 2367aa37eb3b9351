"""
GeoBuild Back-Office API
Configuration classes for Flask App Factory.

Every token, upload and workflow setting lives here and is read once at
startup; services read them back through ``current_app.config``.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'geobuild_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)

_DEFAULT_CORS_ORIGINS = ",".join([
    "http://localhost:5173",
    "http://localhost:3000",
    "http://localhost:5000",
    "https://localhost:5001",
])


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,   # recycle connections every 5 min
    }

    # JWT
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", SECRET_KEY)
    JWT_ISSUER = os.getenv("JWT_ISSUER", "geoback")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "GeoBuildClient")
    JWT_ACCESS_EXPIRES = int(os.getenv("JWT_ACCESS_EXPIRES", str(7 * 24 * 3600)))   # 7 days
    JWT_REFRESH_EXPIRES = int(os.getenv("JWT_REFRESH_EXPIRES", str(30 * 24 * 3600)))  # 30 days

    # Logging (see app/middleware/logging_config.py)
    LOG_LEVEL = os.getenv("LOG_LEVEL")
    LOG_FORMAT = os.getenv("LOG_FORMAT")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", _DEFAULT_CORS_ORIGINS)

    # Rate limiting (Flask-Limiter)
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    RATELIMIT_AUTH = os.getenv("RATELIMIT_AUTH", "20/minute")

    # Photo uploads
    UPLOAD_FOLDER = os.getenv(
        "UPLOAD_FOLDER", os.path.join(basedir, "uploads", "rm-checklist-photos")
    )
    MAX_PHOTO_BYTES = 10_000_000
    ALLOWED_PHOTO_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp"}
    # Multipart envelope around a max-size photo
    MAX_CONTENT_LENGTH = 12 * 1024 * 1024

    # Workflow
    CHECKLIST_LOCK_TTL_MINUTES = int(os.getenv("CHECKLIST_LOCK_TTL_MINUTES", "30"))
    CHECKLIST_LOCK_MAX_MINUTES = 240
    REPORT_NUMBER_PREFIX = "CRN"
    REPORT_NUMBER_MAX_RETRIES = 5
    REVIEW_OVERDUE_DAYS = 2

    # Transient DB error retry (SQLite "database is locked", PG serialization)
    DB_RETRY_ATTEMPTS = 3
    DB_RETRY_BACKOFF = 0.05

    # Notification hub (SSE)
    HUB_KEEPALIVE_SECONDS = float(os.getenv("HUB_KEEPALIVE_SECONDS", "15"))
    HUB_QUEUE_WAIT_SECONDS = float(os.getenv("HUB_QUEUE_WAIT_SECONDS", "1"))


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
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-bytes"
    RATELIMIT_ENABLED = False
    HUB_KEEPALIVE_SECONDS = 0.2
    HUB_QUEUE_WAIT_SECONDS = 0.05


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
    _raw_db_url = os.getenv("DATABASE_URL", "")
    SQLALCHEMY_DATABASE_URI = _raw_db_url.replace("postgres://", "postgresql://", 1) if _raw_db_url else None

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
        if not os.getenv("JWT_SECRET_KEY") and not os.getenv("SECRET_KEY"):
            raise RuntimeError("JWT_SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
