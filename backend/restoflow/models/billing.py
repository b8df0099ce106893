from __future__ import annotations

from ..extensions import db
from restoflow.time_utils import to_utc_z, utcnow


class Subscription(db.Model):
    """
    Platform subscription of a restaurant (one per restaurant).

    STATUS:
    - trial: running until trial_ends_at
    - active: paid until current_period_end
    - expired: the relevant deadline has passed (set by the expiry sweep);
      left only by a confirmed payment
    """
    __tablename__ = "subscriptions"
    __table_args__ = (
        db.UniqueConstraint("restaurant_id", name="uq_subscriptions_restaurant"),
        db.Index("ix_subscriptions_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False)

    plan = db.Column(db.String(16), nullable=False, default="starter")
    status = db.Column(db.String(16), nullable=False, default="trial")

    trial_starts_at = db.Column(db.DateTime(timezone=True), nullable=True)
    trial_ends_at = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_start = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)

    billing_cycle = db.Column(db.Integer, nullable=False, default=1)  # months
    monthly_price = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    restaurant = db.relationship("Restaurant", backref=db.backref("subscription", uselist=False, lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "restaurant_id": self.restaurant_id,
            "plan": self.plan,
            "status": self.status,
            "trial_starts_at": to_utc_z(self.trial_starts_at),
            "trial_ends_at": to_utc_z(self.trial_ends_at),
            "current_period_start": to_utc_z(self.current_period_start),
            "current_period_end": to_utc_z(self.current_period_end),
            "billing_cycle": self.billing_cycle,
            "monthly_price": self.monthly_price,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SubscriptionPayment(db.Model):
    """
    Payment for a subscription period.

    STATUS: pending -> confirmed | failed | expired. expires_at is the end
    of the period this payment buys, computed when the payment is
    initiated. Manual payments are confirmed by a superadmin; gateway
    payments by the webhook reconciler ("subscription:<id>" reference).
    """
    __tablename__ = "subscription_payments"
    __table_args__ = (
        db.Index("ix_subscription_payments_status_method", "status", "method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    subscription_id = db.Column(db.Integer, db.ForeignKey("subscriptions.id"), nullable=False, index=True)
    restaurant_id = db.Column(db.Integer, db.ForeignKey("restaurants.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False)  # mobile_money, card, manual
    plan = db.Column(db.String(16), nullable=False, default="starter")
    status = db.Column(db.String(16), nullable=False, default="pending")
    billing_cycle = db.Column(db.Integer, nullable=False, default=1)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    transaction_id = db.Column(db.String(128), nullable=True, index=True)
    error_message = db.Column(db.String(255), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    validated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    subscription = db.relationship("Subscription", backref=db.backref("payments", lazy=True))
    restaurant = db.relationship("Restaurant")

    @property
    def reference(self) -> str:
        return f"subscription:{self.id}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subscription_id": self.subscription_id,
            "restaurant_id": self.restaurant_id,
            "reference": self.reference,
            "amount": self.amount,
            "method": self.method,
            "plan": self.plan,
            "status": self.status,
            "billing_cycle": self.billing_cycle,
            "expires_at": to_utc_z(self.expires_at),
            "transaction_id": self.transaction_id,
            "error_message": self.error_message,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "validated_at": to_utc_z(self.validated_at) if self.validated_at else None,
            "validated_by_user_id": self.validated_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
