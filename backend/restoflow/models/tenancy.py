from __future__ import annotations

from ..extensions import db
from restoflow.time_utils import to_utc_z


class Restaurant(db.Model):
    """
    Multi-tenant root: every tenant is a Restaurant.

    All tables, products, orders, staff and the subscription belong to
    exactly one restaurant. No data may cross restaurant boundaries.

    is_active=False means the restaurant is suspended: staff sessions are
    rejected and the public menu stops taking orders. suspension_reason
    records who suspended it so an automatic suspension can be lifted
    automatically when the subscription is paid again.
    """
    __tablename__ = "restaurants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(120), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    suspension_reason = db.Column(db.String(64), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Restaurant id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "email": self.email,
            "is_active": self.is_active,
            "suspension_reason": self.suspension_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DiningTable(db.Model):
    """Physical table carrying a QR code; numbers are unique within a restaurant."""
    __tablename__ = "dining_tables"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", "number", name="uq_dining_tables_restaurant_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    restaurant = db.relationship("Restaurant", backref=db.backref("tables", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "number": self.number,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
