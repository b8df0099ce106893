# Overview: Service-layer operations for the stock consistency sweep.

"""
Stock Consistency Sweep

For stock-tracked goods, menu visibility must follow the stock level:

    is_available == True   <=>   quantity > 0

Order decrements do not touch is_available, so drift is expected after
busy services. One pass collects both kinds of drift, repairs each group
with a single bulk update and writes one audit entry per product.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Product, Stock
from restoflow.time_utils import utcnow
from .log_service import log_system_action


ACTION_DISABLED = "disabled"
ACTION_ENABLED = "enabled"


def _tracked_products():
    return (
        db.session.query(Product.id, Product.restaurant_id, Product.name, Stock.quantity)
        .join(Stock, Stock.product_id == Product.id)
        .filter(
            Product.has_stock.is_(True),
            Product.product_type == "good",
        )
    )


def verify_stock_consistency(*, now=None) -> dict:
    """
    Repair is_available for stock-tracked goods.

    Returns:
        {"checked_inconsistencies": n, "disabled": [...], "enabled": [...]}
        with one {"product_id", "name", "quantity"} entry per fix
    """
    now = now or utcnow()

    to_disable = _tracked_products().filter(
        Product.is_available.is_(True),
        Stock.quantity <= 0,
    ).all()
    to_enable = _tracked_products().filter(
        Product.is_available.is_(False),
        Stock.quantity > 0,
    ).all()

    if not to_disable and not to_enable:
        return {"checked_inconsistencies": 0, "disabled": [], "enabled": []}

    for rows, available in ((to_disable, False), (to_enable, True)):
        if rows:
            db.session.query(Product).filter(
                Product.id.in_([row.id for row in rows])
            ).update(
                {"is_available": available, "updated_at": now},
                synchronize_session=False,
            )
    db.session.commit()

    for rows, action, level in (
        (to_disable, ACTION_DISABLED, "warning"),
        (to_enable, ACTION_ENABLED, "info"),
    ):
        for row in rows:
            log_system_action(
                "stock_consistency_fix",
                {"product_id": row.id, "product_name": row.name, "action": action, "quantity": row.quantity},
                level,
                message=f"Product '{row.name}' {action} (stock: {row.quantity})",
                restaurant_id=row.restaurant_id,
                commit=False,
            )
    db.session.commit()

    def summary(rows):
        return [{"product_id": row.id, "name": row.name, "quantity": row.quantity} for row in rows]

    return {
        "checked_inconsistencies": len(to_disable) + len(to_enable),
        "disabled": summary(to_disable),
        "enabled": summary(to_enable),
    }
