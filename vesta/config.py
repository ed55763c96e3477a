"""
Vesta Plan Resilience Review
Configuration classes for the Flask app factory.

Selected by APP_ENV ("development", "testing", "production"). Every
setting below can be overridden from the environment where noted.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_DEV_SECRET = secrets.token_hex(32)


def _database_url(default: str | None) -> str | None:
    """DATABASE_URL with the legacy ``postgres://`` scheme upgraded for SQLAlchemy 2."""
    url = os.getenv("DATABASE_URL", "")
    if not url:
        return default
    return url.replace("postgres://", "postgresql://", 1)


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    IDENTITY_TOKEN_EXPIRES = int(os.getenv("IDENTITY_TOKEN_EXPIRES", str(24 * 3600)))
    # POST /api/v1/auth/token issues identity tokens without an identity provider
    IDENTITY_DEV_LOGIN = False
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    # "sql" keeps workspace documents in store_entries; "memory" is per-process
    STORE_BACKEND = os.getenv("STORE_BACKEND", "sql")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Plan uploads
    MAX_CONTENT_LENGTH = 10 * 1024 * 1024
    PDF_PRINTABLE_RATIO = float(os.getenv("PDF_PRINTABLE_RATIO", "0.25"))

    LLM_DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")
    LLM_MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "3"))

    BULK_DELETE_MAX_WORKERS = int(os.getenv("BULK_DELETE_MAX_WORKERS", "8"))
    WORKSPACE_POLL_INTERVAL = int(os.getenv("WORKSPACE_POLL_INTERVAL", "30"))


class DevelopmentConfig(Config):
    DEBUG = True
    IDENTITY_DEV_LOGIN = True
    SQLALCHEMY_DATABASE_URI = _database_url(f"sqlite:///{os.path.join(basedir, 'instance', 'vesta_dev.db')}")


class TestingConfig(Config):
    TESTING = True
    IDENTITY_DEV_LOGIN = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    LLM_DEFAULT_CHAT_MODEL = "local-stub"
    LLM_MAX_RETRIES = 1


class ProductionConfig(Config):
    """Instantiated by the factory so missing secrets fail at startup."""

    SQLALCHEMY_DATABASE_URI = _database_url(None)
    # no wildcard default in production
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 20,
    }

    def __init__(self):
        missing = [name for name, value in (("DATABASE_URL", self.SQLALCHEMY_DATABASE_URI),
                                            ("SECRET_KEY", os.getenv("SECRET_KEY"))) if not value]
        if missing:
            raise RuntimeError(f"Required environment variable(s) not set: {', '.join(missing)}")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
