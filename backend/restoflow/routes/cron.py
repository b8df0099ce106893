# Overview: Scheduled job triggers, called by the external scheduler.

# backend/restoflow/routes/cron.py
"""
Scheduled jobs

Every route requires "Authorization: Bearer <CRON_SECRET>" and answers:
- 200 with a JSON summary (counts, thresholds, executed_at)
- 401 when the secret is missing or wrong, before any read
- 500 when the job fails; the failure is recorded as a cron_error entry

Suggested schedule: hourly for subscriptions, suspension, abandoned orders
and pending payments; daily for stock consistency, archival and log cleanup.
The scheduler is the only retry mechanism.
"""

from flask import Blueprint, current_app, jsonify

from ..config import SweeperSettings
from ..decorators import require_cron_secret
from ..extensions import db
from ..services import jobs
from ..services.log_service import try_log_system_action
from ..services.realtime_service import get_publisher
from restoflow.time_utils import utcnow


cron_bp = Blueprint("cron", __name__, url_prefix="/api/cron")


def _run(task: str):
    settings = SweeperSettings.from_config(current_app.config)
    started = utcnow()

    try:
        summary = jobs.run_job(task, settings, get_publisher())
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Cron job %s failed", task)
        try_log_system_action(
            "cron_error",
            {"task": task, "error": str(e)},
            "error",
            message=f"Cron job {task} failed",
        )
        return jsonify({"success": False, "task": task, "error": str(e)}), 500

    current_app.logger.info("Cron job %s completed: %s", task, summary)
    return jsonify({
        "success": True,
        "task": task,
        **summary,
        "executed_at": started.isoformat() + "Z",
    }), 200


@cron_bp.get("/check-subscriptions")
@require_cron_secret
def check_subscriptions_route():
    return _run("check-subscriptions")


@cron_bp.get("/suspend-expired-restaurants")
@require_cron_secret
def suspend_expired_restaurants_route():
    return _run("suspend-expired-restaurants")


@cron_bp.get("/verify-stock-consistency")
@require_cron_secret
def verify_stock_consistency_route():
    return _run("verify-stock-consistency")


@cron_bp.get("/archive-old-orders")
@require_cron_secret
def archive_old_orders_route():
    return _run("archive-old-orders")


@cron_bp.get("/clean-system-logs")
@require_cron_secret
def clean_system_logs_route():
    return _run("clean-system-logs")


@cron_bp.get("/cancel-abandoned-orders")
@require_cron_secret
def cancel_abandoned_orders_route():
    return _run("cancel-abandoned-orders")


@cron_bp.get("/clean-pending-payments")
@require_cron_secret
def clean_pending_payments_route():
    return _run("clean-pending-payments")
