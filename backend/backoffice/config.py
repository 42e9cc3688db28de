# backend/backoffice/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Business day boundaries are local wall-clock, never UTC
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "Asia/Karachi")

    # Local time after which an unconfirmed previous day must be reconciled
    CONFIRMATION_CUTOFF = os.environ.get("CONFIRMATION_CUTOFF", "06:00")
    ENFORCE_DAILY_CONFIRMATION = _env_flag("ENFORCE_DAILY_CONFIRMATION", False)

    # Completed transactions may be edited / cancelled within this many days
    EDIT_WINDOW_DAYS = int(os.environ.get("EDIT_WINDOW_DAYS", "7"))
    CANCEL_WINDOW_DAYS = int(os.environ.get("CANCEL_WINDOW_DAYS", "7"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    ENFORCE_DAILY_CONFIRMATION = False
    LOG_LEVEL = "WARNING"


config = {
    "default": Config,
    "development": DevelopmentConfig,
    "testing": TestingConfig,
}
