# Overview: Service-layer operations for orders; encapsulates the order status state machine.

"""
Order Status State Machine

================================================================================
STATE MACHINE:
    pending -> preparing -> ready -> delivered
        \\          \\          \\
         +-----------+----------+--> cancelled

    pending:    submitted by the customer (or POS), not yet accepted
    preparing:  accepted by the kitchen or paid online; stock is decremented
    ready:      waiting to be served
    delivered:  TERMINAL
    cancelled:  TERMINAL

RULES:
1. Only the edges above are allowed; terminal states are never left
2. Requesting the current status is a no-op (no write, no event)
3. Stock is decremented on entering "preparing" and on no other edge
4. Every effective change publishes one realtime event, after commit
================================================================================

Callers:
- staff status changes (routes/orders.py)
- the payment webhook reconciler (payment_service.py), which drives a paid
  order to "preparing"
- the abandoned-order sweeper (maintenance_service.py), which cancels
  stale pending orders in bulk using is_cancellable_status
"""

from __future__ import annotations

from typing import Literal

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DiningTable, Order, OrderItem, Product
from restoflow.time_utils import utcnow
from .concurrency import lock_for_update
from .realtime_service import OrderStatusEvent, RealtimePublisher
from .stock_service import apply_order_decrement
from .tenant_service import get_restaurant_by_slug, log_cross_tenant_attempt


OrderStatus = Literal["pending", "preparing", "ready", "delivered", "cancelled"]

STATUS_PENDING = "pending"
STATUS_PREPARING = "preparing"
STATUS_READY = "ready"
STATUS_DELIVERED = "delivered"
STATUS_CANCELLED = "cancelled"

ORDER_STATUSES = (STATUS_PENDING, STATUS_PREPARING, STATUS_READY, STATUS_DELIVERED, STATUS_CANCELLED)
TERMINAL_STATUSES = frozenset({STATUS_DELIVERED, STATUS_CANCELLED})

ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_PREPARING, STATUS_CANCELLED}),
    STATUS_PREPARING: frozenset({STATUS_READY, STATUS_CANCELLED}),
    STATUS_READY: frozenset({STATUS_DELIVERED, STATUS_CANCELLED}),
    STATUS_DELIVERED: frozenset(),
    STATUS_CANCELLED: frozenset(),
}

ORDER_SOURCES = ("qr", "pos")
ORDER_NUMBER_ATTEMPTS = 3


class OrderError(Exception):
    """Base class for order domain errors."""
    pass


class OrderNotFoundError(OrderError):
    """Order does not exist or belongs to another restaurant."""
    pass


class InvalidStatusError(OrderError, ValueError):
    """Requested status is not one of ORDER_STATUSES."""
    pass


class InvalidTransitionError(OrderError):
    """
    Requested move is not an edge of the transition graph.

    Raised before any mutation.
    """

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Cannot move order from '{from_status}' to '{to_status}'")


def validate_status(status: str) -> None:
    if status not in ORDER_STATUSES:
        raise InvalidStatusError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}"
        )


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def is_cancellable_status(status: str) -> bool:
    return STATUS_CANCELLED in ORDER_TRANSITIONS.get(status, frozenset())


def can_transition(from_status: str, to_status: str) -> bool:
    """
    True if the move is allowed.

    A same-status request is allowed (no-op) for every status.
    """
    validate_status(from_status)
    validate_status(to_status)

    if from_status == to_status:
        return True

    return to_status in ORDER_TRANSITIONS[from_status]


def get_order_for_restaurant(order_id: int, restaurant_id: int, *, lock: bool = False) -> Order:
    """
    Load an order owned by restaurant_id.

    Raises:
        OrderNotFoundError: missing, or owned by another restaurant (logged)
    """
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()

    if order is None:
        raise OrderNotFoundError(f"Order {order_id} not found")

    if order.restaurant_id != restaurant_id:
        owner = order.restaurant_id
        db.session.rollback()
        log_cross_tenant_attempt("order", order_id, owner_restaurant_id=owner, restaurant_id=restaurant_id)
        # Don't reveal it exists in another restaurant
        raise OrderNotFoundError(f"Order {order_id} not found")

    return order


def apply_status_transition(
    order: Order,
    new_status: str,
    *,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> str | None:
    """
    Move an already-loaded order to new_status inside the caller's transaction.

    Does not commit and does not publish.

    Returns:
        The previous status when the order changed, None for a no-op

    Raises:
        InvalidStatusError, InvalidTransitionError
    """
    validate_status(new_status)
    previous = order.status

    if previous == new_status:
        return None

    if not can_transition(previous, new_status):
        raise InvalidTransitionError(previous, new_status)

    order.status = new_status
    order.updated_at = utcnow()

    if new_status == STATUS_CANCELLED:
        order.cancellation_reason = reason or order.cancellation_reason
    elif new_status == STATUS_PREPARING:
        apply_order_decrement(order, user_id=actor_user_id)

    return previous


def publish_status_change(publisher: RealtimePublisher, order: Order, previous_status: str) -> None:
    publisher.publish(OrderStatusEvent(
        order_id=order.id,
        restaurant_id=order.restaurant_id,
        order_number=order.order_number,
        status=order.status,
        previous_status=previous_status,
    ))


def set_order_status(
    order_id: int,
    new_status: str,
    *,
    restaurant_id: int,
    publisher: RealtimePublisher,
    actor_user_id: int | None = None,
    reason: str | None = None,
) -> Order:
    """
    Change an order's status (staff action).

    Args:
        order_id: Order to change
        new_status: Target status from ORDER_STATUSES
        restaurant_id: Caller's restaurant (tenant isolation)
        publisher: Realtime publisher notified after commit
        actor_user_id: Staff member performing the change
        reason: Stored as cancellation_reason when cancelling

    Returns:
        The order (unchanged for a no-op)

    Raises:
        InvalidStatusError: Unknown target status
        OrderNotFoundError: Missing or foreign order
        InvalidTransitionError: Move not allowed; nothing is written
    """
    validate_status(new_status)
    order = get_order_for_restaurant(order_id, restaurant_id, lock=True)

    try:
        previous = apply_status_transition(order, new_status, reason=reason, actor_user_id=actor_user_id)
    except OrderError:
        db.session.rollback()
        raise

    if previous is None:
        db.session.rollback()
        return order

    db.session.commit()
    publish_status_change(publisher, order, previous)
    return order


def cancel_order(
    order_id: int,
    *,
    restaurant_id: int,
    publisher: RealtimePublisher,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> Order:
    return set_order_status(
        order_id,
        STATUS_CANCELLED,
        restaurant_id=restaurant_id,
        publisher=publisher,
        actor_user_id=actor_user_id,
        reason=reason or "Cancelled by staff",
    )


def _next_order_number(restaurant_id: int, now) -> str:
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    count_today = db.session.query(Order).filter(
        Order.restaurant_id == restaurant_id,
        Order.created_at >= day_start,
    ).count()
    return f"CMD-{now:%Y%m%d}-{count_today + 1:04d}"


def create_order(
    restaurant_slug: str,
    items: list[dict],
    *,
    table_number: int | None = None,
    notes: str | None = None,
    source: str = "qr",
) -> Order:
    """
    Submit a cart as a new pending order.

    Args:
        restaurant_slug: Public restaurant identifier from the QR URL
        items: [{"product_id": 1, "quantity": 2}, ...]
        table_number: Table the QR code belongs to (optional for POS)
        notes: Free-form customer notes
        source: "qr" or "pos"

    Product names and prices are snapshotted; the total is computed here,
    never taken from the client.

    Raises:
        TenantAccessError: Unknown or suspended restaurant
        OrderError: Empty cart, unknown table, unavailable product, bad quantity
    """
    restaurant = get_restaurant_by_slug(restaurant_slug)

    if source not in ORDER_SOURCES:
        raise OrderError(f"Invalid source: {source}")

    if not items:
        raise OrderError("Order must contain at least one item")

    table = None
    if table_number is not None:
        table = db.session.query(DiningTable).filter_by(
            restaurant_id=restaurant.id, number=table_number, is_active=True
        ).first()
        if not table:
            raise OrderError(f"Table {table_number} not found")

    product_ids = []
    for item in items:
        if not isinstance(item, dict):
            raise OrderError("Each item must be an object")
        qty = item.get("quantity")
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise OrderError("Item quantity must be a positive integer")
        product_ids.append(item.get("product_id"))

    products = {
        p.id: p
        for p in db.session.query(Product).filter(
            Product.id.in_(product_ids),
            Product.restaurant_id == restaurant.id,
        )
    }

    lines = []
    total = 0
    for item in items:
        product = products.get(item.get("product_id"))
        if product is None:
            raise OrderError(f"Product {item.get('product_id')} not found")
        if not product.is_available:
            raise OrderError(f"Product '{product.name}' is not available")
        lines.append({
            "product_id": product.id,
            "product_name": product.name,
            "quantity": item["quantity"],
            "unit_price": product.price,
        })
        total += product.price * item["quantity"]

    restaurant_id = restaurant.id
    table_id = table.id if table else None

    # Two carts can draw the same daily number; the unique key rejects the
    # second one, which then takes the next number.
    for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
        now = utcnow()
        order = Order(
            restaurant_id=restaurant_id,
            table_id=table_id,
            order_number=_next_order_number(restaurant_id, now),
            status=STATUS_PENDING,
            source=source,
            notes=notes,
            total_amount=total,
            created_at=now,
            updated_at=now,
        )
        for line in lines:
            order.items.append(OrderItem(**line))

        db.session.add(order)
        try:
            db.session.commit()
            return order
        except IntegrityError:
            db.session.rollback()
            if attempt == ORDER_NUMBER_ATTEMPTS:
                raise


def list_orders(
    restaurant_id: int,
    *,
    status: str | None = None,
    include_archived: bool = False,
    limit: int = 100,
) -> list[Order]:
    if status is not None:
        validate_status(status)

    q = db.session.query(Order).filter(Order.restaurant_id == restaurant_id)
    if status:
        q = q.filter(Order.status == status)
    if not include_archived:
        q = q.filter(Order.is_archived.is_(False))

    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
