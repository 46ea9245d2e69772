"""
EventHub Planning Service
Settings, one class per ``APP_ENV``.

Everything is read from the environment once, at import. ``create_app``
calls ``check()`` on the selected class before loading it.
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _env_int(name, default):
    return int(os.getenv(name, str(default)))


def _env_flag(name, default):
    return os.getenv(name, "true" if default else "false").strip().lower() in {"1", "true", "yes"}


def _database_url(fallback=None):
    url = os.getenv("DATABASE_URL", "")
    if url.startswith("postgres://"):
        # Heroku-style URLs; SQLAlchemy wants the full dialect name
        url = "postgresql://" + url[len("postgres://"):]
    return url or fallback


class Config:
    # a fresh key per process unless SECRET_KEY is set
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    REDIS_URL = os.getenv("REDIS_URL", "")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    # links in reminder and digest emails point here
    APP_URL = os.getenv("APP_URL", "http://localhost:3000")

    # ── Cron trigger & alerting ──────────────────────────────────────────
    CRON_SECRET = os.getenv("CRON_SECRET")
    CRON_ALERT_WEBHOOK_URL = os.getenv("CRON_ALERT_WEBHOOK_URL")
    CRON_RATE_LIMIT = os.getenv("CRON_RATE_LIMIT", "30/minute")

    # ── Reminder queue ───────────────────────────────────────────────────
    DRAFT_REMINDER_DELAY_HOURS = _env_int("DRAFT_REMINDER_DELAY_HOURS", 48)
    REMINDER_MAX_RETRIES = _env_int("REMINDER_MAX_RETRIES", 3)

    # ── Publishing webhook ───────────────────────────────────────────────
    AI_PUBLISH_WEBHOOK_URL = os.getenv("AI_PUBLISH_WEBHOOK_URL")
    AI_PUBLISH_WEBHOOK_TOKEN = os.getenv("AI_PUBLISH_WEBHOOK_TOKEN")

    # ── SMTP; unset MAIL_SERVER means emails are logged, not sent ────────
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = _env_int("MAIL_PORT", 587)
    MAIL_USE_TLS = _env_flag("MAIL_USE_TLS", True)
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@eventhub.local")

    @classmethod
    def check(cls):
        """Raise ``RuntimeError`` when the environment cannot run this config."""


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        "sqlite:///" + os.path.join(basedir, "instance", "eventhub_dev.db"))


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    APP_URL = "http://eventhub.test"

    # never reach out from the test suite
    CRON_SECRET = "test-cron-secret"
    CRON_ALERT_WEBHOOK_URL = None
    AI_PUBLISH_WEBHOOK_URL = None
    AI_PUBLISH_WEBHOOK_TOKEN = None
    MAIL_SERVER = None


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url()
    # no wildcard default outside development
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "pool_size": _env_int("DB_POOL_SIZE", 5),
        "max_overflow": _env_int("DB_MAX_OVERFLOW", 10),
        "pool_timeout": 20,
        "connect_args": {"options": "-c statement_timeout=30000"},
    }

    @classmethod
    def check(cls):
        missing = [name for name, value in (
            ("DATABASE_URL", cls.SQLALCHEMY_DATABASE_URI),
            ("SECRET_KEY", os.getenv("SECRET_KEY")),
            ("CRON_SECRET", cls.CRON_SECRET),
        ) if not value]
        if missing:
            raise RuntimeError(f"Production requires {', '.join(missing)} to be set")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
