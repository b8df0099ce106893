# backend/restoflow/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/restoflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # hosted Postgres in production
        "sqlite:///restoflow.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Scheduled job routes require "Authorization: Bearer <CRON_SECRET>".
    # Unset means every cron call is rejected.
    CRON_SECRET = os.environ.get("CRON_SECRET")

    # Optional shared secret sent by the billing gateway in X-Webhook-Secret
    BILLING_WEBHOOK_SECRET = os.environ.get("BILLING_WEBHOOK_SECRET")

    # Realtime broadcast endpoint (order status events). Unset -> events are dropped.
    REALTIME_BROADCAST_URL = os.environ.get("REALTIME_BROADCAST_URL")
    REALTIME_API_KEY = os.environ.get("REALTIME_API_KEY")
    REALTIME_TIMEOUT_SECONDS = float(os.environ.get("REALTIME_TIMEOUT_SECONDS", "3"))

    # Current behaviour: a failed order payment cancels the order immediately.
    CANCEL_ORDER_ON_PAYMENT_FAILURE = _env_bool("CANCEL_ORDER_ON_PAYMENT_FAILURE", True)

    ORDER_ARCHIVE_AFTER_DAYS = _env_int("ORDER_ARCHIVE_AFTER_DAYS", 90)
    ORDER_ARCHIVE_BATCH_SIZE = _env_int("ORDER_ARCHIVE_BATCH_SIZE", 100)
    LOG_RETENTION_DAYS = _env_int("LOG_RETENTION_DAYS", 30)
    ERROR_LOG_RETENTION_DAYS = _env_int("ERROR_LOG_RETENTION_DAYS", 90)
    ABANDONED_ORDER_MINUTES = _env_int("ABANDONED_ORDER_MINUTES", 120)
    MANUAL_PAYMENT_EXPIRY_DAYS = _env_int("MANUAL_PAYMENT_EXPIRY_DAYS", 7)
    TRIAL_DAYS = _env_int("TRIAL_DAYS", 14)

    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    )


@dataclass(frozen=True)
class SweeperSettings:
    """
    Thresholds handed to the scheduled jobs.

    Built once per invocation from app.config so services never read the
    process environment themselves.
    """
    order_archive_after_days: int = 90
    order_archive_batch_size: int = 100
    log_retention_days: int = 30
    error_log_retention_days: int = 90
    abandoned_order_minutes: int = 120
    manual_payment_expiry_days: int = 7

    @classmethod
    def from_config(cls, config: Mapping) -> "SweeperSettings":
        return cls(
            order_archive_after_days=int(config.get("ORDER_ARCHIVE_AFTER_DAYS", 90)),
            order_archive_batch_size=int(config.get("ORDER_ARCHIVE_BATCH_SIZE", 100)),
            log_retention_days=int(config.get("LOG_RETENTION_DAYS", 30)),
            error_log_retention_days=int(config.get("ERROR_LOG_RETENTION_DAYS", 90)),
            abandoned_order_minutes=int(config.get("ABANDONED_ORDER_MINUTES", 120)),
            manual_payment_expiry_days=int(config.get("MANUAL_PAYMENT_EXPIRY_DAYS", 7)),
        )
