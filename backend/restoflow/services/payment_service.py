# Overview: Service-layer operations for payments; reconciles payment gateway callbacks.

"""
Payment Webhook Reconciler

The billing gateway calls back asynchronously with an opaque reference
and its own status vocabulary. Each pending payment (order or
subscription) is driven to exactly one terminal outcome.

REFERENCES:
    order:<payment_id>          -> Payment
    subscription:<payment_id>   -> SubscriptionPayment
    <digits>                    -> bare payment id, order payments first
    <anything else>             -> legacy: looked up by transaction_id,
                                   order payments first

GATEWAY STATUS:
    SUCCESSFUL / SUCCESS / PAID      -> successful
    FAILED / FAILURE / ERROR         -> failed
    anything else                    -> acknowledged, ignored

IDEMPOTENCE:
The payment row is locked and its status checked before any side effect.
A payment that already reached a terminal status returns a "duplicate"
outcome: redelivered callbacks never decrement stock, publish events or
extend a subscription a second time.

SUPERSEDED ATTEMPTS:
A new order payment attempt supersedes the pending one. The gateway may
still capture the old attempt: a success on it is applied like any other
(and audit-logged), a failure on it is ignored since a newer attempt is live.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Order, Payment, SubscriptionPayment
from restoflow.time_utils import utcnow
from .concurrency import lock_for_update
from .log_service import log_system_action
from .order_service import (
    STATUS_CANCELLED,
    STATUS_PENDING,
    STATUS_PREPARING,
    apply_status_transition,
    is_terminal,
    publish_status_change,
)
from .realtime_service import RealtimePublisher
from .subscription_service import PAYMENT_TERMINAL_STATUSES, activate_from_payment


class PaymentError(Exception):
    """Raised for payment operation errors (bad input)."""
    pass


class PaymentNotFoundError(PaymentError):
    """Reference matches neither an order payment nor a subscription payment."""
    pass


KIND_ORDER = "order"
KIND_SUBSCRIPTION = "subscription"

ORDER_PAYMENT_METHODS = ("mobile_money", "card", "cash", "manual")

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_FAILED = "failed"
PAYMENT_SUPERSEDED = "superseded"
SUPERSEDED_MESSAGE = "Superseded by a new payment attempt"
ORDER_PAYMENT_TERMINAL_STATUSES = frozenset({PAYMENT_PAID, PAYMENT_FAILED})

GATEWAY_SUCCESSFUL = "SUCCESSFUL"
GATEWAY_FAILED = "FAILED"

_GATEWAY_STATUS_MAP = {
    "SUCCESSFUL": GATEWAY_SUCCESSFUL,
    "SUCCESS": GATEWAY_SUCCESSFUL,
    "PAID": GATEWAY_SUCCESSFUL,
    "FAILED": GATEWAY_FAILED,
    "FAILURE": GATEWAY_FAILED,
    "ERROR": GATEWAY_FAILED,
}

DEFAULT_FAILURE_MESSAGE = "Payment failed"
PAYMENT_FAILED_CANCELLATION_REASON = "Cancelled - payment failed"

OUTCOME_PROCESSED = "processed"
OUTCOME_IGNORED = "ignored"
OUTCOME_DUPLICATE = "duplicate"


@dataclass
class WebhookOutcome:
    outcome: str                 # processed, ignored, duplicate
    kind: str                    # order, subscription
    payment_id: int
    payment_status: str
    gateway_status: str | None = None
    order_status: str | None = None

    def to_dict(self) -> dict:
        return {
            "outcome": self.outcome,
            "kind": self.kind,
            "payment_id": self.payment_id,
            "payment_status": self.payment_status,
            "gateway_status": self.gateway_status,
            "order_status": self.order_status,
        }


def build_reference(kind: str, payment_id: int) -> str:
    if kind not in (KIND_ORDER, KIND_SUBSCRIPTION):
        raise PaymentError(f"Unknown payment kind '{kind}'")
    return f"{kind}:{payment_id}"


def parse_reference(reference: str) -> tuple[str, int] | None:
    """
    Split a tagged reference.

    parse_reference("order:42") -> ("order", 42)
    parse_reference("BILL-9F3A") -> None (legacy, untagged)
    """
    kind, sep, raw_id = reference.partition(":")
    if not sep or kind not in (KIND_ORDER, KIND_SUBSCRIPTION):
        return None
    try:
        return kind, int(raw_id)
    except ValueError:
        return None


def normalize_gateway_status(payload: dict) -> str | None:
    """Map the gateway's status (status or payment_status) to SUCCESSFUL/FAILED, else None."""
    raw = payload.get("status") or payload.get("payment_status")
    if not isinstance(raw, str):
        return None
    return _GATEWAY_STATUS_MAP.get(raw.strip().upper())


def _resolve_payment(reference: str):
    tagged = parse_reference(reference)

    if tagged is not None:
        kind, payment_id = tagged
        model = Payment if kind == KIND_ORDER else SubscriptionPayment
        payment = lock_for_update(db.session.query(model).filter_by(id=payment_id)).first()
        if payment is None:
            raise PaymentNotFoundError(f"No payment for reference '{reference}'")
        return kind, payment

    if reference.isascii() and reference.isdigit():
        payment_id = int(reference)
        payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
        if payment is not None:
            return KIND_ORDER, payment

        payment = lock_for_update(db.session.query(SubscriptionPayment).filter_by(id=payment_id)).first()
        if payment is not None:
            return KIND_SUBSCRIPTION, payment

    payment = lock_for_update(
        db.session.query(Payment).filter_by(transaction_id=reference)
    ).first()
    if payment is not None:
        return KIND_ORDER, payment

    payment = lock_for_update(
        db.session.query(SubscriptionPayment).filter_by(transaction_id=reference)
    ).first()
    if payment is not None:
        return KIND_SUBSCRIPTION, payment

    raise PaymentNotFoundError(f"No payment for reference '{reference}'")


def initiate_order_payment(order: Order, *, method: str, now=None) -> Payment:
    """
    Open a payment attempt for an order.

    At most one payment per order is pending: an older pending attempt is
    superseded by the new one (status "superseded").

    Raises:
        PaymentError: invalid method, order not pending
    """
    if method not in ORDER_PAYMENT_METHODS:
        raise PaymentError(f"Invalid payment method '{method}'")

    if order.status != STATUS_PENDING:
        raise PaymentError(f"Order is {order.status}, payment not allowed")

    now = now or utcnow()

    db.session.query(Payment).filter(
        Payment.order_id == order.id,
        Payment.status == PAYMENT_PENDING,
    ).update(
        {"status": PAYMENT_SUPERSEDED, "error_message": SUPERSEDED_MESSAGE, "updated_at": now},
        synchronize_session=False,
    )

    payment = Payment(
        order_id=order.id,
        amount=order.total_amount,
        method=method,
        status=PAYMENT_PENDING,
        created_at=now,
        updated_at=now,
    )
    db.session.add(payment)
    db.session.commit()
    return payment


def reconcile_webhook(
    payload: dict,
    *,
    publisher: RealtimePublisher,
    cancel_order_on_failure: bool = True,
    now=None,
) -> WebhookOutcome:
    """
    Apply a gateway callback.

    Args:
        payload: Decoded JSON body ({"reference": ..., "status": ...})
        publisher: Receives the order status event after commit
        cancel_order_on_failure: Cancel the order when its payment fails
        now: Override for the current time

    Returns:
        WebhookOutcome (processed, ignored or duplicate)

    Raises:
        PaymentError: payload is not an object or has no reference
        PaymentNotFoundError: reference matches no payment
    """
    if not isinstance(payload, dict):
        raise PaymentError("Webhook body must be a JSON object")

    reference = payload.get("reference")
    if not isinstance(reference, str) or not reference.strip():
        raise PaymentError("Missing reference")

    kind, payment = _resolve_payment(reference.strip())
    gateway_status = normalize_gateway_status(payload)

    terminal = ORDER_PAYMENT_TERMINAL_STATUSES if kind == KIND_ORDER else PAYMENT_TERMINAL_STATUSES

    # A newer attempt is live: the old one failing changes nothing
    superseded_failure = payment.status == PAYMENT_SUPERSEDED and gateway_status == GATEWAY_FAILED

    if gateway_status is None or superseded_failure or payment.status in terminal:
        db.session.rollback()
        return WebhookOutcome(
            outcome=OUTCOME_DUPLICATE if payment.status in terminal and gateway_status else OUTCOME_IGNORED,
            kind=kind,
            payment_id=payment.id,
            payment_status=payment.status,
            gateway_status=gateway_status,
        )

    now = now or utcnow()
    transaction_id = payload.get("transaction_id") or payload.get("bill_id")
    error_message = payload.get("error_message") or DEFAULT_FAILURE_MESSAGE

    if kind == KIND_ORDER:
        return _reconcile_order_payment(
            payment,
            gateway_status,
            publisher=publisher,
            cancel_order_on_failure=cancel_order_on_failure,
            transaction_id=transaction_id,
            error_message=error_message,
            now=now,
        )

    return _reconcile_subscription_payment(
        payment,
        gateway_status,
        transaction_id=transaction_id,
        error_message=error_message,
        now=now,
    )


def _reconcile_order_payment(
    payment: Payment,
    gateway_status: str,
    *,
    publisher: RealtimePublisher,
    cancel_order_on_failure: bool,
    transaction_id,
    error_message: str,
    now,
) -> WebhookOutcome:
    order = lock_for_update(db.session.query(Order).filter_by(id=payment.order_id)).first()
    previous_status = None
    was_superseded = payment.status == PAYMENT_SUPERSEDED

    if transaction_id:
        payment.transaction_id = str(transaction_id)
    payment.updated_at = now

    if gateway_status == GATEWAY_SUCCESSFUL:
        payment.status = PAYMENT_PAID
        payment.paid_at = now

        if was_superseded:
            payment.error_message = None
            log_system_action(
                "superseded_payment_captured",
                {"payment_id": payment.id, "order_id": order.id, "amount": payment.amount, "order_status": order.status},
                "warning",
                message=f"Superseded payment {payment.id} was captured for order {order.order_number}",
                restaurant_id=order.restaurant_id,
                commit=False,
            )

        if order.status == STATUS_PENDING:
            previous_status = apply_status_transition(order, STATUS_PREPARING)
        else:
            log_system_action(
                "payment_order_status_mismatch",
                {"payment_id": payment.id, "order_id": order.id, "order_status": order.status},
                "warning",
                message=f"Payment {payment.id} succeeded but order {order.order_number} is {order.status}",
                restaurant_id=order.restaurant_id,
                commit=False,
            )
    else:
        payment.status = PAYMENT_FAILED
        payment.error_message = str(error_message)[:255]

        if cancel_order_on_failure and not is_terminal(order.status):
            previous_status = apply_status_transition(
                order, STATUS_CANCELLED, reason=PAYMENT_FAILED_CANCELLATION_REASON
            )

        log_system_action(
            "payment_failed",
            {
                "payment_id": payment.id,
                "order_id": order.id,
                "amount": payment.amount,
                "error_message": payment.error_message,
                "order_cancelled": previous_status is not None,
            },
            "error",
            message=f"Payment failed for order {order.order_number}",
            restaurant_id=order.restaurant_id,
            commit=False,
        )

    db.session.commit()

    if previous_status is not None:
        publish_status_change(publisher, order, previous_status)

    return WebhookOutcome(
        outcome=OUTCOME_PROCESSED,
        kind=KIND_ORDER,
        payment_id=payment.id,
        payment_status=payment.status,
        gateway_status=gateway_status,
        order_status=order.status,
    )


def _reconcile_subscription_payment(
    payment: SubscriptionPayment,
    gateway_status: str,
    *,
    transaction_id,
    error_message: str,
    now,
) -> WebhookOutcome:
    if gateway_status == GATEWAY_SUCCESSFUL:
        activate_from_payment(
            payment,
            transaction_id=str(transaction_id) if transaction_id else None,
            now=now,
        )
    else:
        payment.status = PAYMENT_FAILED
        payment.error_message = str(error_message)[:255]
        payment.updated_at = now
        if transaction_id:
            payment.transaction_id = str(transaction_id)

        log_system_action(
            "subscription_payment_failed",
            {
                "subscription_payment_id": payment.id,
                "amount": payment.amount,
                "error_message": payment.error_message,
            },
            "error",
            message=f"Subscription payment {payment.id} failed",
            restaurant_id=payment.restaurant_id,
            commit=False,
        )

    db.session.commit()

    return WebhookOutcome(
        outcome=OUTCOME_PROCESSED,
        kind=KIND_SUBSCRIPTION,
        payment_id=payment.id,
        payment_status=payment.status,
        gateway_status=gateway_status,
    )
