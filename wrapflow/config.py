"""
wrapflow
Environment configuration, selected by ``APP_ENV``.

    development  local SQLite file under instance/, debug on
    testing      in-memory SQLite, rate limits off, fixed JWT secret
    production   DATABASE_URL + SECRET_KEY mandatory, pooled engine

``create_app`` calls ``check()`` on the selected class before using it.
"""

import os
import secrets

PROJECT_ROOT = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

DEV_DATABASE_URI = "sqlite:///" + os.path.join(PROJECT_ROOT, "instance", "wrapflow_dev.db")
TEST_DATABASE_URI = "sqlite:///:memory:"


def _env_int(name, default):
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _database_url(name):
    raw = os.getenv(name, "")
    # SQLAlchemy 2.x only accepts the postgresql:// scheme
    if raw.startswith("postgres://"):
        raw = "postgresql://" + raw[len("postgres://"):]
    return raw or None


class Config:
    """Settings shared by every environment."""

    DEBUG = False
    TESTING = False

    # A random per-process key keeps development tokens valid for one run only
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ACCESS_EXPIRES = _env_int("JWT_ACCESS_EXPIRES", 900)
    JWT_LEEWAY = _env_int("JWT_LEEWAY", 0)

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    REDIS_URL = os.getenv("REDIS_URL", "memory://")
    RATELIMIT_STORAGE_URI = REDIS_URL
    RATELIMIT_WRITE = os.getenv("RATELIMIT_WRITE", "60/minute")
    RATELIMIT_READ = os.getenv("RATELIMIT_READ", "200/minute")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024

    @classmethod
    def check(cls):
        """Raise RuntimeError when the environment is unusable."""
        if not getattr(cls, "SQLALCHEMY_DATABASE_URI", None):
            raise RuntimeError(f"{cls.__name__}: no database configured")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL") or DEV_DATABASE_URI


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = _database_url("TEST_DATABASE_URL") or TEST_DATABASE_URI
    SQLALCHEMY_ENGINE_OPTIONS = {}
    JWT_SECRET_KEY = "test-jwt-secret-key-for-wrapflow-suite"
    RATELIMIT_ENABLED = False


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": _env_int("DB_POOL_SIZE", 5),
        "max_overflow": _env_int("DB_MAX_OVERFLOW", 10),
        "pool_timeout": 20,
    }

    @classmethod
    def check(cls):
        super().check()
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
