# Overview: Service-layer operations for the platform audit trail (system_logs).

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SystemLog
from restoflow.time_utils import utcnow


LOG_LEVELS = ("info", "warning", "error", "critical")


class LogLevelError(ValueError):
    """Raised for a level outside LOG_LEVELS."""


def log_system_action(
    action: str,
    payload: dict | None = None,
    level: str = "info",
    *,
    message: str | None = None,
    user_id: int | None = None,
    restaurant_id: int | None = None,
    commit: bool = True,
) -> SystemLog:
    """
    Append an audit entry.

    action examples:
    - stock_consistency_fix
    - restaurant_suspended_auto
    - orders_archived
    - system_logs_cleaned
    - order_cancelled_auto
    - payment_failed
    - cron_error

    With commit=False the entry joins the caller's transaction, so it is
    written together with the change it describes.
    """
    if level not in LOG_LEVELS:
        raise LogLevelError(f"Invalid log level '{level}'. Must be one of: {', '.join(LOG_LEVELS)}")

    entry = SystemLog(
        level=level,
        action=action,
        message=message,
        payload=payload,
        user_id=user_id,
        restaurant_id=restaurant_id,
        created_at=utcnow(),
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    return entry


def try_log_system_action(action: str, payload: dict | None = None, level: str = "error", **kwargs) -> SystemLog | None:
    """
    Best-effort variant used on failure paths.

    A failure to write the audit entry is reported through the app logger
    and never replaces the error being handled.
    """
    try:
        return log_system_action(action, payload, level, **kwargs)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to write system log %s", action)
        return None


def get_logs(level: str | None = None, *, action: str | None = None, limit: int = 100) -> list[SystemLog]:
    """Most recent entries first, optionally filtered by level and action."""
    if level is not None and level not in LOG_LEVELS:
        raise LogLevelError(f"Invalid log level '{level}'. Must be one of: {', '.join(LOG_LEVELS)}")

    q = db.session.query(SystemLog)
    if level:
        q = q.filter(SystemLog.level == level)
    if action:
        q = q.filter(SystemLog.action == action)
    return q.order_by(SystemLog.created_at.desc(), SystemLog.id.desc()).limit(limit).all()


def get_log_stats(*, now=None) -> dict:
    now = now or utcnow()
    last_24h = now - timedelta(hours=24)

    counts = dict(
        db.session.query(SystemLog.level, db.func.count(SystemLog.id))
        .group_by(SystemLog.level)
        .all()
    )
    recent = db.session.query(SystemLog).filter(SystemLog.created_at >= last_24h).count()

    return {
        "total": sum(counts.values()),
        "by_level": {level: counts.get(level, 0) for level in LOG_LEVELS},
        "last_24h": recent,
    }
