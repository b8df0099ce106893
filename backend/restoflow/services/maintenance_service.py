# Overview: Service-layer operations for maintenance; order archival, log retention, abandoned orders.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import Order, Restaurant, SystemLog
from restoflow.time_utils import utcnow
from .log_service import log_system_action
from .order_service import STATUS_CANCELLED, STATUS_PENDING, TERMINAL_STATUSES, publish_status_change
from .realtime_service import RealtimePublisher


ABANDONED_ORDER_REASON = "Abandoned order"


def archive_old_orders(*, archive_after_days: int = 90, batch_size: int = 100, now=None) -> dict:
    """
    Archive terminal orders untouched for more than archive_after_days.

    Works in batches of batch_size, each committed on its own. A failure
    mid-run leaves earlier batches archived; the next run picks up the rest.
    """
    now = now or utcnow()
    cutoff = now - timedelta(days=archive_after_days)

    archived = 0
    per_restaurant: dict[int, dict] = {}

    while True:
        batch = (
            db.session.query(Order.id, Order.restaurant_id, Order.total_amount)
            .filter(
                Order.status.in_(list(TERMINAL_STATUSES)),
                Order.updated_at < cutoff,
                Order.is_archived.is_(False),
            )
            .order_by(Order.id)
            .limit(batch_size)
            .all()
        )
        if not batch:
            break

        db.session.query(Order).filter(
            Order.id.in_([row.id for row in batch])
        ).update(
            {"is_archived": True, "archived_at": now, "updated_at": now},
            synchronize_session=False,
        )
        db.session.commit()

        archived += len(batch)
        for row in batch:
            stats = per_restaurant.setdefault(row.restaurant_id, {"count": 0, "total_amount": 0})
            stats["count"] += 1
            stats["total_amount"] += row.total_amount

        if len(batch) < batch_size:
            break

    if archived:
        log_system_action(
            "orders_archived",
            {
                "archived": archived,
                "archive_after_days": archive_after_days,
                "restaurants": {str(rid): stats for rid, stats in per_restaurant.items()},
            },
            message=f"{archived} orders archived",
        )

    return {
        "archived": archived,
        "archive_after_days": archive_after_days,
        "restaurants": len(per_restaurant),
    }


def clean_system_logs(*, retention_days: int = 30, error_retention_days: int = 90, now=None) -> dict:
    """
    Delete info/warning logs older than retention_days and error logs older
    than error_retention_days. Critical logs are kept.

    The cleanup is itself logged (info, so subject to the short window).
    """
    now = now or utcnow()
    standard_cutoff = now - timedelta(days=retention_days)
    error_cutoff = now - timedelta(days=error_retention_days)

    standard_q = db.session.query(SystemLog).filter(
        SystemLog.level.in_(["info", "warning"]),
        SystemLog.created_at < standard_cutoff,
    )
    error_q = db.session.query(SystemLog).filter(
        SystemLog.level == "error",
        SystemLog.created_at < error_cutoff,
    )

    if standard_q.count() + error_q.count() == 0:
        return {
            "deleted": 0,
            "deleted_standard": 0,
            "deleted_error": 0,
            "retention_days": retention_days,
            "error_retention_days": error_retention_days,
        }

    deleted_standard = standard_q.delete(synchronize_session=False)
    deleted_error = error_q.delete(synchronize_session=False)
    db.session.commit()

    total = deleted_standard + deleted_error
    log_system_action(
        "system_logs_cleaned",
        {
            "deleted_standard": deleted_standard,
            "deleted_error": deleted_error,
            "retention_days": retention_days,
            "error_retention_days": error_retention_days,
        },
        message=f"{total} system logs deleted",
    )

    return {
        "deleted": total,
        "deleted_standard": deleted_standard,
        "deleted_error": deleted_error,
        "retention_days": retention_days,
        "error_retention_days": error_retention_days,
    }


def cancel_abandoned_orders(
    *,
    publisher: RealtimePublisher,
    abandoned_after_minutes: int = 120,
    now=None,
) -> dict:
    """
    Cancel pending orders of active restaurants older than abandoned_after_minutes.

    One bulk update, then one warning entry and one realtime event per order.
    """
    now = now or utcnow()
    cutoff = now - timedelta(minutes=abandoned_after_minutes)

    stale = (
        db.session.query(Order)
        .join(Restaurant, Restaurant.id == Order.restaurant_id)
        .filter(
            Order.status == STATUS_PENDING,
            Order.created_at < cutoff,
            Restaurant.is_active.is_(True),
        )
        .all()
    )

    if not stale:
        return {"cancelled": 0, "abandoned_after_minutes": abandoned_after_minutes}

    ids = [order.id for order in stale]
    # Re-check the status in the statement: a payment may have landed since the read
    cancelled = db.session.query(Order).filter(
        Order.id.in_(ids),
        Order.status == STATUS_PENDING,
    ).update(
        {"status": STATUS_CANCELLED, "cancellation_reason": ABANDONED_ORDER_REASON, "updated_at": now},
        synchronize_session=False,
    )
    db.session.commit()

    cancelled_orders = db.session.query(Order).filter(
        Order.id.in_(ids),
        Order.status == STATUS_CANCELLED,
        Order.cancellation_reason == ABANDONED_ORDER_REASON,
    ).all()

    for order in cancelled_orders:
        log_system_action(
            "order_cancelled_auto",
            {"order_id": order.id, "order_number": order.order_number, "total_amount": order.total_amount},
            "warning",
            message=f"Order {order.order_number} cancelled after {abandoned_after_minutes} minutes pending",
            restaurant_id=order.restaurant_id,
            commit=False,
        )
    db.session.commit()

    for order in cancelled_orders:
        publish_status_change(publisher, order, STATUS_PENDING)

    return {"cancelled": cancelled, "abandoned_after_minutes": abandoned_after_minutes}
