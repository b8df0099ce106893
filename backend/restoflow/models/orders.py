from __future__ import annotations

from ..extensions import db
from restoflow.time_utils import to_utc_z, utcnow


class Order(db.Model):
    """
    Customer order (QR table ordering or point of sale).

    STATUS: pending -> preparing -> ready -> delivered, any non-terminal
    status -> cancelled. delivered and cancelled are terminal. Transitions
    go through services/order_service.py only.

    Orders are never deleted. Terminal orders older than the retention
    window are flagged is_archived by the archival sweeper.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "order_number", name="uq_orders_restaurant_number"),
        db.Index("ix_orders_restaurant_status_created", "restaurant_id", "status", "created_at"),
        db.Index("ix_orders_status_archived_updated", "status", "is_archived", "updated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    table_id = db.Column(db.Integer, db.ForeignKey("dining_tables.id"), nullable=True, index=True)

    # Human-readable number (e.g., "CMD-20261018-0007")
    order_number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    source = db.Column(db.String(8), nullable=False, default="qr")  # qr, pos

    total_amount = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    restaurant = db.relationship("Restaurant", backref=db.backref("orders", lazy=True))
    table = db.relationship("DiningTable")

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "table_id": self.table_id,
            "table_number": self.table.number if self.table else None,
            "order_number": self.order_number,
            "status": self.status,
            "source": self.source,
            "total_amount": self.total_amount,
            "notes": self.notes,
            "cancellation_reason": self.cancellation_reason,
            "is_archived": self.is_archived,
            "archived_at": to_utc_z(self.archived_at) if self.archived_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Order line. Name and unit price are snapshots taken at submission."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", backref=db.backref("items", lazy=True, order_by="OrderItem.id"))
    product = db.relationship("Product")

    @property
    def line_total(self) -> int:
        return self.quantity * self.unit_price

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
        }


class Payment(db.Model):
    """
    Payment attempt for an order.

    STATUS: pending -> paid | failed | superseded. A superseded attempt can
    still be captured by the gateway (-> paid). paid and failed are reached
    exactly once (webhook reconciler or staff cash collection). At most
    one payment per order is pending at a time.

    The gateway reference for this payment is "order:<id>".
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_order_status", "order_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False)  # mobile_money, card, cash, manual
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # Gateway bill identifier
    transaction_id = db.Column(db.String(128), nullable=True, index=True)
    error_message = db.Column(db.String(255), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))

    @property
    def reference(self) -> str:
        return f"order:{self.id}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "reference": self.reference,
            "amount": self.amount,
            "method": self.method,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "error_message": self.error_message,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
