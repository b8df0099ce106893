# Overview: Registry of scheduled jobs shared by the cron routes and the CLI.

from __future__ import annotations

from typing import Callable

from ..config import SweeperSettings
from . import consistency_service, maintenance_service, subscription_service
from .realtime_service import RealtimePublisher


JobFn = Callable[[SweeperSettings, RealtimePublisher], dict]


JOBS: dict[str, JobFn] = {
    "check-subscriptions": lambda s, p: subscription_service.expire_subscriptions(),
    "suspend-expired-restaurants": lambda s, p: subscription_service.suspend_expired_restaurants(),
    "verify-stock-consistency": lambda s, p: consistency_service.verify_stock_consistency(),
    "archive-old-orders": lambda s, p: maintenance_service.archive_old_orders(
        archive_after_days=s.order_archive_after_days,
        batch_size=s.order_archive_batch_size,
    ),
    "clean-system-logs": lambda s, p: maintenance_service.clean_system_logs(
        retention_days=s.log_retention_days,
        error_retention_days=s.error_log_retention_days,
    ),
    "cancel-abandoned-orders": lambda s, p: maintenance_service.cancel_abandoned_orders(
        publisher=p,
        abandoned_after_minutes=s.abandoned_order_minutes,
    ),
    "clean-pending-payments": lambda s, p: subscription_service.expire_stale_manual_payments(
        expiry_days=s.manual_payment_expiry_days,
    ),
}


def run_job(name: str, settings: SweeperSettings, publisher: RealtimePublisher) -> dict:
    """Run a registered job. Raises KeyError for an unknown name."""
    return JOBS[name](settings, publisher)
