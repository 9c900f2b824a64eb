# backend/barbercore/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/barbercore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///barbercore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shared secret for the external daily scheduler (Authorization: Bearer <secret>)
    CRON_SECRET = os.environ.get("CRON_SECRET")

    # Notification sink; unset token/chat means "log only"
    TELEGRAM_BOT_TOKEN = os.environ.get("TELEGRAM_BOT_TOKEN")
    TELEGRAM_CHAT_ID = os.environ.get("TELEGRAM_CHAT_ID")
    TELEGRAM_TIMEOUT_SECONDS = float(os.environ.get("TELEGRAM_TIMEOUT_SECONDS", "10"))

    # A RUNNING batch older than this is considered stuck and may be retried
    IDEMPOTENCY_STALE_MINUTES = int(os.environ.get("IDEMPOTENCY_STALE_MINUTES", "10"))

    # Cash closing: differences above this require closing notes
    CASH_DIFFERENCE_TOLERANCE = os.environ.get("CASH_DIFFERENCE_TOLERANCE", "0.01")

    # Calendar day for the daily batch and for order revenue dates
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    CANCEL_REASON_MIN_LENGTH = int(os.environ.get("CANCEL_REASON_MIN_LENGTH", "10"))
    CANCEL_REASON_MAX_LENGTH = 500
