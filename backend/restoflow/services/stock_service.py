# Overview: Service-layer operations for stock; encapsulates business logic and database work.

"""
Stock Service

ORDER DECREMENT:
When an order enters "preparing", every stock-tracked product on it is
decremented by the ordered quantity. This runs inside the status-change
transaction and is keyed on (order_id, product_id, "order"): a retried
transition finds the existing movement and skips the line, so stock is
never decremented twice for the same order.

Availability is NOT flipped here. A product driven to zero by an order
stays visible until the consistency sweeper (or a manual adjustment)
corrects it.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, Product, Stock, StockMovement
from restoflow.time_utils import utcnow
from .concurrency import lock_for_update


class StockError(Exception):
    """Raised for stock operation errors."""
    pass


class StockNotFoundError(StockError):
    """No stock record for this product in the restaurant."""
    pass


MOVEMENT_ORDER = "order"
MOVEMENT_MANUAL_IN = "manual_in"
MOVEMENT_MANUAL_OUT = "manual_out"
MOVEMENT_ADJUSTMENT = "adjustment"

MANUAL_MOVEMENT_TYPES = (MOVEMENT_MANUAL_IN, MOVEMENT_MANUAL_OUT, MOVEMENT_ADJUSTMENT)


def apply_order_decrement(order: Order, *, user_id: int | None = None) -> list[StockMovement]:
    """
    Decrement stock for every stock-tracked line of an order.

    Does not commit; the caller owns the transaction.

    Returns:
        The movements created by this call (empty when already applied)
    """
    # Quantities per product (an order may list the same product twice)
    wanted: dict[int, int] = {}
    for item in order.items:
        if item.product_id is None:
            continue
        wanted[item.product_id] = wanted.get(item.product_id, 0) + item.quantity

    if not wanted:
        return []

    already_applied = {
        row.product_id
        for row in db.session.query(StockMovement.product_id).filter(
            StockMovement.order_id == order.id,
            StockMovement.movement_type == MOVEMENT_ORDER,
        )
    }

    stocks = lock_for_update(
        db.session.query(Stock)
        .join(Product, Product.id == Stock.product_id)
        .filter(
            Stock.product_id.in_(list(wanted)),
            Product.has_stock.is_(True),
        )
    ).all()

    now = utcnow()
    movements = []
    for stock in stocks:
        if stock.product_id in already_applied:
            continue
        qty = wanted[stock.product_id]
        previous = stock.quantity
        stock.quantity = previous - qty
        stock.updated_at = now

        movement = StockMovement(
            restaurant_id=stock.restaurant_id,
            product_id=stock.product_id,
            order_id=order.id,
            user_id=user_id,
            movement_type=MOVEMENT_ORDER,
            quantity=-qty,
            previous_qty=previous,
            new_qty=stock.quantity,
            reason=f"Order {order.order_number}",
            created_at=now,
        )
        db.session.add(movement)
        movements.append(movement)

    return movements


def adjust_stock(
    restaurant_id: int,
    product_id: int,
    quantity: int,
    movement_type: str,
    *,
    reason: str | None = None,
    user_id: int | None = None,
) -> Stock:
    """
    Manual stock entry, exit or count override.

    - manual_in: quantity added
    - manual_out: quantity removed (cannot go below zero)
    - adjustment: quantity becomes the new level

    Availability follows the new level (in stock -> available).

    Raises:
        StockError: If the product/stock is not found for this restaurant,
                    the type is unknown or the quantity is invalid
    """
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise StockError(f"Invalid movement type: {movement_type}. Must be one of {list(MANUAL_MOVEMENT_TYPES)}")

    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise StockError("Quantity must be an integer")

    if quantity < 0 or (quantity == 0 and movement_type != MOVEMENT_ADJUSTMENT):
        raise StockError("Quantity must be positive")

    stock = lock_for_update(
        db.session.query(Stock).filter_by(product_id=product_id, restaurant_id=restaurant_id)
    ).first()
    if not stock:
        raise StockNotFoundError("Stock not found")

    previous = stock.quantity
    if movement_type == MOVEMENT_MANUAL_IN:
        new_qty = previous + quantity
        signed = quantity
    elif movement_type == MOVEMENT_MANUAL_OUT:
        new_qty = previous - quantity
        if new_qty < 0:
            raise StockError("Insufficient stock for this exit")
        signed = -quantity
    else:
        new_qty = quantity
        signed = quantity - previous

    now = utcnow()
    stock.quantity = new_qty
    stock.updated_at = now
    stock.product.is_available = new_qty > 0

    db.session.add(StockMovement(
        restaurant_id=restaurant_id,
        product_id=product_id,
        user_id=user_id,
        movement_type=movement_type,
        quantity=signed,
        previous_qty=previous,
        new_qty=new_qty,
        reason=reason,
        created_at=now,
    ))
    db.session.commit()
    return stock


def get_stock_movements(restaurant_id: int, product_id: int, *, limit: int = 50) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(restaurant_id=restaurant_id, product_id=product_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
