# Overview: Service-layer operations for restaurant subscriptions; billing, activation and expiry sweeps.

"""
Subscription Lifecycle Service

STATUS:
    trial   -> expired     (trial_ends_at passed, expiry sweep)
    active  -> expired     (current_period_end passed, expiry sweep)
    trial | active | expired -> active   (confirmed payment)

RESTAURANT SUSPENSION:
Expiry and suspension are two separate sweeps. The expiry sweep only flips
subscription status; the suspension sweep deactivates restaurants whose
subscription is expired. A suspension sweep that runs before the expiry
sweep finds nothing new and catches up on its next run.

A restaurant suspended by the sweep carries
suspension_reason="subscription_expired" and is reactivated when a payment
for it is confirmed. Restaurants suspended for other reasons stay suspended.

PRICING:
Monthly price per plan, multiplied by the cycle length with a discount
for longer cycles.
"""

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import Restaurant, Subscription, SubscriptionPayment
from restoflow.time_utils import add_months, as_naive_utc, utcnow
from .concurrency import lock_for_update
from .log_service import log_system_action
from .session_service import revoke_restaurant_sessions


class SubscriptionError(Exception):
    """Raised for subscription operation errors."""
    pass


class SubscriptionPaymentNotFoundError(SubscriptionError):
    pass


PLAN_CONFIGS = {
    "starter": {"name": "Starter", "monthly_price": 15000},
    "business": {"name": "Business", "monthly_price": 25000},
    "premium": {"name": "Premium", "monthly_price": 40000},
}

# Billing cycle (months) -> discount percent
CYCLE_DISCOUNTS = {1: 0, 3: 10, 6: 15, 12: 20}

SUBSCRIPTION_METHODS = ("mobile_money", "card", "manual")

SUSPENSION_SUBSCRIPTION_EXPIRED = "subscription_expired"

STATUS_TRIAL = "trial"
STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"

PAYMENT_PENDING = "pending"
PAYMENT_CONFIRMED = "confirmed"
PAYMENT_FAILED = "failed"
PAYMENT_EXPIRED = "expired"
PAYMENT_TERMINAL_STATUSES = frozenset({PAYMENT_CONFIRMED, PAYMENT_FAILED, PAYMENT_EXPIRED})


def calculate_price(plan: str, billing_cycle: int) -> int:
    """
    Total price in XAF for plan over billing_cycle months.

    calculate_price("business", 3) -> 25000 * 3 * 0.90 = 67500
    """
    if plan not in PLAN_CONFIGS:
        raise SubscriptionError(f"Invalid plan '{plan}'. Must be one of: {', '.join(PLAN_CONFIGS)}")
    if billing_cycle not in CYCLE_DISCOUNTS:
        raise SubscriptionError(
            f"Invalid billing cycle {billing_cycle}. Must be one of: "
            f"{', '.join(str(c) for c in CYCLE_DISCOUNTS)}"
        )

    gross = PLAN_CONFIGS[plan]["monthly_price"] * billing_cycle
    return gross * (100 - CYCLE_DISCOUNTS[billing_cycle]) // 100


def get_subscription(restaurant_id: int) -> Subscription | None:
    return db.session.query(Subscription).filter_by(restaurant_id=restaurant_id).first()


def start_trial(restaurant_id: int, *, plan: str = "starter", trial_days: int = 14, now=None) -> Subscription:
    """
    Open the free trial of a newly onboarded restaurant.

    Raises SubscriptionError if the restaurant already has a subscription.
    """
    if plan not in PLAN_CONFIGS:
        raise SubscriptionError(f"Invalid plan '{plan}'")

    if get_subscription(restaurant_id) is not None:
        raise SubscriptionError("Restaurant already has a subscription")

    now = now or utcnow()
    subscription = Subscription(
        restaurant_id=restaurant_id,
        plan=plan,
        status=STATUS_TRIAL,
        trial_starts_at=now,
        trial_ends_at=now + timedelta(days=trial_days),
        billing_cycle=1,
        monthly_price=PLAN_CONFIGS[plan]["monthly_price"],
    )
    db.session.add(subscription)
    db.session.commit()
    return subscription


def initiate_subscription_payment(
    restaurant_id: int,
    *,
    plan: str,
    billing_cycle: int,
    method: str,
    now=None,
) -> SubscriptionPayment:
    """
    Create a pending subscription payment.

    expires_at is the end of the period being bought, counted from now.
    Gateway payments are confirmed by the webhook ("subscription:<id>"),
    manual ones by a superadmin.
    """
    if method not in SUBSCRIPTION_METHODS:
        raise SubscriptionError(f"Invalid payment method '{method}'")

    subscription = get_subscription(restaurant_id)
    if subscription is None:
        raise SubscriptionError("Restaurant has no subscription")

    amount = calculate_price(plan, billing_cycle)
    now = now or utcnow()

    payment = SubscriptionPayment(
        subscription_id=subscription.id,
        restaurant_id=restaurant_id,
        amount=amount,
        method=method,
        plan=plan,
        status=PAYMENT_PENDING,
        billing_cycle=billing_cycle,
        expires_at=add_months(now, billing_cycle),
        created_at=now,
        updated_at=now,
    )
    db.session.add(payment)
    db.session.commit()
    return payment


def activate_from_payment(
    payment: SubscriptionPayment,
    *,
    transaction_id: str | None = None,
    validated_by_user_id: int | None = None,
    now=None,
) -> Subscription:
    """
    Confirm a pending payment and activate its subscription.

    Joins the caller's transaction (no commit). The caller is responsible
    for having checked that the payment is still pending.
    """
    now = now or utcnow()

    payment.status = PAYMENT_CONFIRMED
    payment.paid_at = payment.paid_at or now
    payment.validated_at = now
    payment.validated_by_user_id = validated_by_user_id
    if transaction_id:
        payment.transaction_id = transaction_id

    subscription = payment.subscription
    subscription.status = STATUS_ACTIVE
    subscription.plan = payment.plan
    subscription.monthly_price = PLAN_CONFIGS[payment.plan]["monthly_price"]
    subscription.billing_cycle = payment.billing_cycle
    subscription.current_period_start = now
    subscription.current_period_end = payment.expires_at

    restaurant = subscription.restaurant
    reactivated = False
    if not restaurant.is_active and restaurant.suspension_reason == SUSPENSION_SUBSCRIPTION_EXPIRED:
        restaurant.is_active = True
        restaurant.suspension_reason = None
        reactivated = True

    log_system_action(
        "subscription_activated",
        {
            "subscription_payment_id": payment.id,
            "plan": payment.plan,
            "billing_cycle": payment.billing_cycle,
            "amount": payment.amount,
            "current_period_end": as_naive_utc(payment.expires_at).isoformat(),
            "restaurant_reactivated": reactivated,
        },
        message=f"Subscription activated until {as_naive_utc(payment.expires_at):%Y-%m-%d}",
        user_id=validated_by_user_id,
        restaurant_id=restaurant.id,
        commit=False,
    )
    return subscription


def validate_manual_payment(payment_id: int, *, validated_by_user_id: int, now=None) -> SubscriptionPayment:
    """
    Superadmin confirmation of a manual (bank transfer, cash) payment.

    Raises:
        SubscriptionPaymentNotFoundError: Unknown payment
        SubscriptionError: Payment already processed
    """
    payment = lock_for_update(
        db.session.query(SubscriptionPayment).filter_by(id=payment_id)
    ).first()

    if payment is None:
        raise SubscriptionPaymentNotFoundError(f"Subscription payment {payment_id} not found")

    if payment.status != PAYMENT_PENDING:
        db.session.rollback()
        raise SubscriptionError("Payment already processed")

    activate_from_payment(payment, validated_by_user_id=validated_by_user_id, now=now)
    db.session.commit()
    return payment


def list_payments(restaurant_id: int, *, limit: int = 50) -> list[SubscriptionPayment]:
    return (
        db.session.query(SubscriptionPayment)
        .filter_by(restaurant_id=restaurant_id)
        .order_by(SubscriptionPayment.created_at.desc(), SubscriptionPayment.id.desc())
        .limit(limit)
        .all()
    )


# =============================================================================
# SWEEPS
# =============================================================================

def expire_subscriptions(*, now=None) -> dict:
    """
    Expire trials past trial_ends_at and paid periods past current_period_end.

    One bulk update for both groups.
    """
    now = now or utcnow()

    trial_ids = [
        row.id for row in db.session.query(Subscription.id).filter(
            Subscription.status == STATUS_TRIAL,
            Subscription.trial_ends_at < now,
        )
    ]
    active_ids = [
        row.id for row in db.session.query(Subscription.id).filter(
            Subscription.status == STATUS_ACTIVE,
            Subscription.current_period_end < now,
        )
    ]

    ids = trial_ids + active_ids
    if ids:
        db.session.query(Subscription).filter(Subscription.id.in_(ids)).update(
            {"status": STATUS_EXPIRED, "updated_at": now},
            synchronize_session=False,
        )
        db.session.commit()

    return {
        "expired": len(ids),
        "expired_trials": len(trial_ids),
        "expired_active": len(active_ids),
    }


def suspend_expired_restaurants(*, now=None) -> dict:
    """
    Deactivate every still-active restaurant whose subscription is expired.

    One warning entry per suspended restaurant, written after the update.
    Open staff sessions of those restaurants are revoked.
    """
    now = now or utcnow()

    rows = (
        db.session.query(Restaurant.id, Restaurant.name, Subscription.plan)
        .join(Subscription, Subscription.restaurant_id == Restaurant.id)
        .filter(
            Subscription.status == STATUS_EXPIRED,
            Restaurant.is_active.is_(True),
        )
        .all()
    )

    if not rows:
        return {"suspended": 0, "restaurant_ids": []}

    ids = [row.id for row in rows]
    db.session.query(Restaurant).filter(Restaurant.id.in_(ids)).update(
        {
            "is_active": False,
            "suspension_reason": SUSPENSION_SUBSCRIPTION_EXPIRED,
            "updated_at": now,
        },
        synchronize_session=False,
    )
    db.session.commit()

    for row in rows:
        revoked = revoke_restaurant_sessions(row.id, "Restaurant suspended", commit=False)
        log_system_action(
            "restaurant_suspended_auto",
            {
                "restaurant_name": row.name,
                "plan": row.plan,
                "reason": SUSPENSION_SUBSCRIPTION_EXPIRED,
                "sessions_revoked": revoked,
            },
            "warning",
            message=f"Restaurant '{row.name}' suspended: subscription expired",
            restaurant_id=row.id,
            commit=False,
        )
    db.session.commit()

    return {"suspended": len(ids), "restaurant_ids": ids}


def expire_stale_manual_payments(*, expiry_days: int = 7, now=None) -> dict:
    """Expire manual payments left pending for more than expiry_days."""
    now = now or utcnow()
    cutoff = now - timedelta(days=expiry_days)

    stale = db.session.query(
        SubscriptionPayment.id,
        SubscriptionPayment.restaurant_id,
        SubscriptionPayment.amount,
    ).filter(
        SubscriptionPayment.status == PAYMENT_PENDING,
        SubscriptionPayment.method == "manual",
        SubscriptionPayment.created_at < cutoff,
    ).all()

    if not stale:
        return {"expired": 0, "expiry_days": expiry_days}

    db.session.query(SubscriptionPayment).filter(
        SubscriptionPayment.id.in_([row.id for row in stale])
    ).update(
        {"status": PAYMENT_EXPIRED, "updated_at": now},
        synchronize_session=False,
    )
    db.session.commit()

    for row in stale:
        log_system_action(
            "subscription_payment_expired",
            {"subscription_payment_id": row.id, "amount": row.amount, "expiry_days": expiry_days},
            "warning",
            message=f"Manual payment {row.id} expired after {expiry_days} days without validation",
            restaurant_id=row.restaurant_id,
            commit=False,
        )
    db.session.commit()

    return {"expired": len(stale), "expiry_days": expiry_days}
