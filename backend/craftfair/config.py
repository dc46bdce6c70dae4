# backend/craftfair/config.py
from __future__ import annotations
import os


def _optional_int(name: str, default: int | None) -> int | None:
    raw = os.environ.get(name)
    if raw is None:
        return default
    raw = raw.strip().lower()
    if raw in ("", "none", "off"):
        return None
    return int(raw)


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/craftfair.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///craftfair.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Hours after the sale date during which it can still be cancelled (None = no limit)
    SALE_CANCELLATION_WINDOW_HOURS = _optional_int("SALE_CANCELLATION_WINDOW_HOURS", 24)

    MULTI_SALE_MAX_ITEMS = int(os.environ.get("MULTI_SALE_MAX_ITEMS", "50"))

    # Time source for event phases and sale dates; None means wall-clock
    CLOCK = None


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    LOG_LEVEL = "WARNING"
