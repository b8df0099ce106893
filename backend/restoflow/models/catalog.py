from __future__ import annotations

from ..extensions import db
from restoflow.time_utils import to_utc_z, utcnow


class Product(db.Model):
    """
    Menu item.

    is_available controls menu visibility. For stock-tracked goods
    (has_stock=True) it must agree with the stock level: available implies
    quantity > 0 and vice versa. The consistency sweeper repairs drift.
    Services (product_type="service") never carry stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_restaurant_available", "restaurant_id", "is_available"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Integer, nullable=False)  # XAF, no minor unit
    product_type = db.Column(db.String(16), nullable=False, default="good")  # good, service

    has_stock = db.Column(db.Boolean, nullable=False, default=False)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    restaurant = db.relationship("Restaurant", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "name": self.name,
            "price": self.price,
            "product_type": self.product_type,
            "has_stock": self.has_stock,
            "is_available": self.is_available,
            "quantity": self.stock.quantity if self.stock else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Stock(db.Model):
    """Current stock level of a stock-tracked product (one row per product)."""
    __tablename__ = "stocks"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_stocks_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    alert_threshold = db.Column(db.Integer, nullable=False, default=5)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("stock", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "alert_threshold": self.alert_threshold,
            "is_low": self.quantity <= self.alert_threshold,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only history of stock changes.

    MOVEMENT TYPES:
    - order: decrement when an order enters preparation
    - manual_in / manual_out: staff entries and exits
    - adjustment: stock count override

    (order_id, product_id, movement_type) is unique: an order decrements
    each product at most once even if its transition is retried.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.UniqueConstraint("order_id", "product_id", "movement_type", name="uq_stock_movements_order_product_type"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    movement_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)  # signed
    previous_qty = db.Column(db.Integer, nullable=False)
    new_qty = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "product_id": self.product_id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "previous_qty": self.previous_qty,
            "new_qty": self.new_qty,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }
