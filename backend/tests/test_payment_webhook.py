# Overview: Pytest coverage for the payment webhook reconciler.

"""
Payment webhook reconciliation: one outcome per pending payment, tagged and
legacy references, redelivery idempotence, and the HTTP contract.
"""

from datetime import timedelta

import pytest

from restoflow.models import Order, Payment, Restaurant, Stock, StockMovement, Subscription, SubscriptionPayment, SystemLog
from restoflow.services import payment_service
from restoflow.services.payment_service import PaymentError, PaymentNotFoundError
from restoflow.time_utils import utcnow


class TestReferences:

    def test_parse_tagged(self):
        assert payment_service.parse_reference("order:42") == ("order", 42)
        assert payment_service.parse_reference("subscription:7") == ("subscription", 7)

    @pytest.mark.parametrize("reference", ["BILL-9F3A", "order:abc", "invoice:3", "42"])
    def test_untagged_or_malformed(self, reference):
        assert payment_service.parse_reference(reference) is None

    def test_build_reference(self):
        assert payment_service.build_reference("order", 5) == "order:5"
        with pytest.raises(PaymentError):
            payment_service.build_reference("refund", 5)

    @pytest.mark.parametrize("payload,expected", [
        ({"status": "SUCCESSFUL"}, "SUCCESSFUL"),
        ({"status": "successful"}, "SUCCESSFUL"),
        ({"payment_status": "PAID"}, "SUCCESSFUL"),
        ({"status": "FAILED"}, "FAILED"),
        ({"payment_status": "error"}, "FAILED"),
        ({"status": "PENDING"}, None),
        ({}, None),
    ])
    def test_normalize_gateway_status(self, payload, expected):
        assert payment_service.normalize_gateway_status(payload) == expected


class TestOrderPaymentReconciliation:

    def test_success_pays_and_starts_preparation(
        self, db_session, restaurant_a, make_product, make_order, make_payment, publisher
    ):
        product = make_product(restaurant_a, quantity=3, price=2500)
        order = make_order(restaurant_a, [(product, 2)])
        payment = make_payment(order, amount=5000)

        result = payment_service.reconcile_webhook(
            {"reference": payment.reference, "status": "SUCCESSFUL", "transaction_id": "MM-001"},
            publisher=publisher,
        )

        assert result.outcome == "processed"
        payment = db_session.get(Payment, payment.id)
        assert payment.status == "paid"
        assert payment.paid_at is not None
        assert payment.transaction_id == "MM-001"
        assert db_session.get(Order, order.id).status == "preparing"
        assert db_session.query(Stock).filter_by(product_id=product.id).one().quantity == 1
        assert len(publisher.events) == 1

    def test_redelivery_is_duplicate_without_side_effects(
        self, db_session, restaurant_a, make_product, make_order, make_payment, publisher
    ):
        product = make_product(restaurant_a, quantity=3, price=2500)
        order = make_order(restaurant_a, [(product, 2)])
        payment = make_payment(order, amount=5000)
        payload = {"reference": payment.reference, "status": "SUCCESSFUL"}

        payment_service.reconcile_webhook(payload, publisher=publisher)
        second = payment_service.reconcile_webhook(payload, publisher=publisher)

        assert second.outcome == "duplicate"
        assert db_session.query(Stock).filter_by(product_id=product.id).one().quantity == 1
        assert db_session.query(StockMovement).count() == 1
        assert len(publisher.events) == 1

    def test_failure_after_success_is_duplicate(
        self, db_session, restaurant_a, make_order, make_payment, publisher
    ):
        order = make_order(restaurant_a)
        payment = make_payment(order, amount=1000)

        payment_service.reconcile_webhook({"reference": payment.reference, "status": "SUCCESSFUL"}, publisher=publisher)
        result = payment_service.reconcile_webhook({"reference": payment.reference, "status": "FAILED"}, publisher=publisher)

        assert result.outcome == "duplicate"
        assert db_session.get(Payment, payment.id).status == "paid"
        assert db_session.get(Order, order.id).status == "preparing"

    def test_failure_cancels_order(self, db_session, restaurant_a, make_order, make_payment, publisher):
        order = make_order(restaurant_a)
        payment = make_payment(order, amount=1000)

        payment_service.reconcile_webhook(
            {"reference": payment.reference, "status": "FAILED", "error_message": "Insufficient balance"},
            publisher=publisher,
        )

        payment = db_session.get(Payment, payment.id)
        order = db_session.get(Order, order.id)
        assert payment.status == "failed"
        assert payment.error_message == "Insufficient balance"
        assert order.status == "cancelled"
        assert order.cancellation_reason == "Cancelled - payment failed"
        assert db_session.query(SystemLog).filter_by(action="payment_failed", level="error").count() == 1
        assert [e.status for e in publisher.events] == ["cancelled"]

    def test_failure_without_message_uses_default(self, db_session, restaurant_a, make_order, make_payment, publisher):
        order = make_order(restaurant_a)
        payment = make_payment(order, amount=1000)

        payment_service.reconcile_webhook({"reference": payment.reference, "status": "FAILED"}, publisher=publisher)

        assert db_session.get(Payment, payment.id).error_message == "Payment failed"

    def test_failure_can_keep_order_open(self, db_session, restaurant_a, make_order, make_payment, publisher):
        order = make_order(restaurant_a)
        payment = make_payment(order, amount=1000)

        payment_service.reconcile_webhook(
            {"reference": payment.reference, "status": "FAILED"},
            publisher=publisher,
            cancel_order_on_failure=False,
        )

        assert db_session.get(Payment, payment.id).status == "failed"
        assert db_session.get(Order, order.id).status == "pending"
        assert publisher.events == []

    def test_success_on_cancelled_order_records_payment(
        self, db_session, restaurant_a, make_order, make_payment, publisher
    ):
        order = make_order(restaurant_a, status="cancelled")
        payment = make_payment(order, amount=1000)

        result = payment_service.reconcile_webhook(
            {"reference": payment.reference, "status": "SUCCESSFUL"}, publisher=publisher
        )

        assert result.outcome == "processed"
        assert db_session.get(Payment, payment.id).status == "paid"
        assert db_session.get(Order, order.id).status == "cancelled"
        assert db_session.query(SystemLog).filter_by(action="payment_order_status_mismatch").count() == 1
        assert publisher.events == []

    def test_unrecognized_status_is_ignored(self, db_session, restaurant_a, make_order, make_payment, publisher):
        order = make_order(restaurant_a)
        payment = make_payment(order, amount=1000)

        result = payment_service.reconcile_webhook(
            {"reference": payment.reference, "status": "PENDING"}, publisher=publisher
        )

        assert result.outcome == "ignored"
        assert db_session.get(Payment, payment.id).status == "pending"

    def test_legacy_reference_matches_transaction_id(
        self, db_session, restaurant_a, make_order, make_payment, publisher
    ):
        order = make_order(restaurant_a)
        payment = make_payment(order, amount=1000, transaction_id="BILL-9F3A")

        result = payment_service.reconcile_webhook({"reference": "BILL-9F3A", "status": "SUCCESSFUL"}, publisher=publisher)

        assert result.kind == "order"
        assert db_session.get(Payment, payment.id).status == "paid"

    def test_bare_payment_id_matches_order_payment(
        self, db_session, restaurant_a, make_product, make_order, make_payment, publisher
    ):
        product = make_product(restaurant_a, quantity=3)
        order = make_order(restaurant_a, [(product, 1)])
        payment = make_payment(order)

        result = payment_service.reconcile_webhook({"reference": str(payment.id), "status": "SUCCESSFUL"}, publisher=publisher)

        assert result.kind == "order"
        assert result.outcome == "processed"
        assert db_session.get(Order, order.id).status == "preparing"

    def test_bare_id_falls_back_to_subscription_payment(self, db_session, restaurant_a, make_subscription, publisher):
        subscription = make_subscription(restaurant_a)
        payment = SubscriptionPayment(
            subscription_id=subscription.id,
            restaurant_id=restaurant_a.id,
            amount=15000,
            method="mobile_money",
            plan="starter",
            expires_at=utcnow() + timedelta(days=30),
        )
        db_session.add(payment)
        db_session.commit()

        result = payment_service.reconcile_webhook({"reference": str(payment.id), "status": "SUCCESSFUL"}, publisher=publisher)

        assert result.kind == "subscription"
        assert db_session.get(SubscriptionPayment, payment.id).status == "confirmed"

    def test_unknown_reference(self, db_session, publisher):
        with pytest.raises(PaymentNotFoundError):
            payment_service.reconcile_webhook({"reference": "order:99999", "status": "SUCCESSFUL"}, publisher=publisher)
        with pytest.raises(PaymentNotFoundError):
            payment_service.reconcile_webhook({"reference": "BILL-NOPE", "status": "SUCCESSFUL"}, publisher=publisher)

    def test_missing_reference(self, db_session, publisher):
        with pytest.raises(PaymentError):
            payment_service.reconcile_webhook({"status": "SUCCESSFUL"}, publisher=publisher)


class TestInitiateOrderPayment:

    def test_new_attempt_supersedes_pending(self, db_session, restaurant_a, make_product, make_order):
        product = make_product(restaurant_a, price=2000)
        order = make_order(restaurant_a, [(product, 1)])

        first = payment_service.initiate_order_payment(order, method="mobile_money")
        second = payment_service.initiate_order_payment(order, method="card")

        assert db_session.get(Payment, first.id).status == "superseded"
        assert db_session.get(Payment, second.id).status == "pending"
        assert second.amount == 2000
        assert db_session.query(Payment).filter_by(order_id=order.id, status="pending").count() == 1

    def test_only_pending_orders(self, db_session, restaurant_a, make_order):
        order = make_order(restaurant_a, status="preparing")

        with pytest.raises(PaymentError):
            payment_service.initiate_order_payment(order, method="mobile_money")


class TestSupersededAttempts:

    def _two_attempts(self, restaurant, make_product, make_order, *, quantity=5):
        product = make_product(restaurant, quantity=quantity, price=2000)
        order = make_order(restaurant, [(product, 1)])
        first = payment_service.initiate_order_payment(order, method="mobile_money")
        second = payment_service.initiate_order_payment(order, method="card")
        return product, order, first, second

    def test_capture_of_old_attempt_starts_preparation(
        self, db_session, restaurant_a, make_product, make_order, publisher
    ):
        product, order, first, second = self._two_attempts(restaurant_a, make_product, make_order)

        result = payment_service.reconcile_webhook({"reference": first.reference, "status": "SUCCESSFUL"}, publisher=publisher)

        assert result.outcome == "processed"
        assert db_session.get(Payment, first.id).status == "paid"
        assert db_session.get(Payment, first.id).error_message is None
        assert db_session.get(Order, order.id).status == "preparing"
        assert db_session.query(Stock).filter_by(product_id=product.id).one().quantity == 4
        log = db_session.query(SystemLog).filter_by(action="superseded_payment_captured").one()
        assert log.level == "warning"
        assert log.payload["payment_id"] == first.id

    def test_failure_of_old_attempt_is_ignored(self, db_session, restaurant_a, make_product, make_order, publisher):
        _, order, first, second = self._two_attempts(restaurant_a, make_product, make_order)

        result = payment_service.reconcile_webhook({"reference": first.reference, "status": "FAILED"}, publisher=publisher)

        assert result.outcome == "ignored"
        assert db_session.get(Payment, first.id).status == "superseded"
        assert db_session.get(Payment, second.id).status == "pending"
        assert db_session.get(Order, order.id).status == "pending"
        assert db_session.query(SystemLog).filter_by(action="payment_failed").count() == 0

    def test_both_attempts_captured(self, db_session, restaurant_a, make_product, make_order, publisher):
        product, order, first, second = self._two_attempts(restaurant_a, make_product, make_order)
        payment_service.reconcile_webhook({"reference": second.reference, "status": "SUCCESSFUL"}, publisher=publisher)

        result = payment_service.reconcile_webhook({"reference": first.reference, "status": "SUCCESSFUL"}, publisher=publisher)

        assert result.outcome == "processed"
        assert db_session.get(Payment, first.id).status == "paid"
        assert db_session.query(Stock).filter_by(product_id=product.id).one().quantity == 4
        actions = {log.action for log in db_session.query(SystemLog)}
        assert {"superseded_payment_captured", "payment_order_status_mismatch"} <= actions
        assert len(publisher.events) == 1


class TestSubscriptionPaymentReconciliation:

    def _pending_payment(self, db_session, subscription, *, days=30):
        payment = SubscriptionPayment(
            subscription_id=subscription.id,
            restaurant_id=subscription.restaurant_id,
            amount=25000,
            method="mobile_money",
            plan="business",
            billing_cycle=1,
            expires_at=utcnow() + timedelta(days=days),
        )
        db_session.add(payment)
        db_session.commit()
        return payment

    def test_success_activates_subscription(self, db_session, restaurant_a, make_subscription, publisher):
        subscription = make_subscription(restaurant_a, status="trial")
        payment = self._pending_payment(db_session, subscription)

        payment_service.reconcile_webhook({"reference": payment.reference, "status": "SUCCESSFUL"}, publisher=publisher)

        payment = db_session.get(SubscriptionPayment, payment.id)
        subscription = db_session.get(Subscription, subscription.id)
        assert payment.status == "confirmed"
        assert payment.paid_at is not None
        assert payment.validated_at is not None
        assert subscription.status == "active"
        assert subscription.plan == "business"
        assert subscription.current_period_end == payment.expires_at
        assert subscription.current_period_start is not None

    def test_success_reactivates_suspended_restaurant(self, db_session, restaurant_a, make_subscription, publisher):
        restaurant_a.is_active = False
        restaurant_a.suspension_reason = "subscription_expired"
        db_session.commit()
        subscription = make_subscription(restaurant_a, status="expired")
        payment = self._pending_payment(db_session, subscription)

        payment_service.reconcile_webhook({"reference": payment.reference, "status": "SUCCESSFUL"}, publisher=publisher)

        restaurant = db_session.get(Restaurant, restaurant_a.id)
        assert restaurant.is_active is True
        assert restaurant.suspension_reason is None

    def test_manually_suspended_restaurant_stays_suspended(
        self, db_session, restaurant_a, make_subscription, publisher
    ):
        restaurant_a.is_active = False
        restaurant_a.suspension_reason = "terms_violation"
        db_session.commit()
        subscription = make_subscription(restaurant_a, status="expired")
        payment = self._pending_payment(db_session, subscription)

        payment_service.reconcile_webhook({"reference": payment.reference, "status": "SUCCESSFUL"}, publisher=publisher)

        assert db_session.get(Restaurant, restaurant_a.id).is_active is False

    def test_redelivery_does_not_extend_again(self, db_session, restaurant_a, make_subscription, publisher):
        subscription = make_subscription(restaurant_a, status="trial")
        payment = self._pending_payment(db_session, subscription)
        payload = {"reference": payment.reference, "status": "SUCCESSFUL"}

        payment_service.reconcile_webhook(payload, publisher=publisher)
        period_start = db_session.get(Subscription, subscription.id).current_period_start
        result = payment_service.reconcile_webhook(payload, publisher=publisher)

        assert result.outcome == "duplicate"
        assert db_session.get(Subscription, subscription.id).current_period_start == period_start
        assert db_session.query(SystemLog).filter_by(action="subscription_activated").count() == 1

    def test_failure_marks_payment_failed(self, db_session, restaurant_a, make_subscription, publisher):
        subscription = make_subscription(restaurant_a, status="trial")
        payment = self._pending_payment(db_session, subscription)

        payment_service.reconcile_webhook(
            {"reference": payment.reference, "payment_status": "FAILED", "error_message": "Timeout"},
            publisher=publisher,
        )

        payment = db_session.get(SubscriptionPayment, payment.id)
        assert payment.status == "failed"
        assert payment.error_message == "Timeout"
        assert db_session.get(Subscription, subscription.id).status == "trial"


class TestBillingWebhookRoute:

    def test_end_to_end_redelivery(self, client, db_session, restaurant_a, make_product, make_order, make_payment, publisher):
        product = make_product(restaurant_a, quantity=3, price=2500)
        order = make_order(restaurant_a, [(product, 2)])
        payment = make_payment(order, amount=5000)
        payload = {"reference": payment.reference, "status": "SUCCESSFUL"}

        first = client.post("/api/webhooks/billing", json=payload)
        second = client.post("/api/webhooks/billing", json=payload)

        assert first.status_code == 200
        assert first.json["success"] is True
        assert first.json["outcome"] == "processed"
        assert second.status_code == 200
        assert second.json["outcome"] == "duplicate"
        assert db_session.get(Order, order.id).status == "preparing"
        assert db_session.query(Stock).filter_by(product_id=product.id).one().quantity == 1
        assert len(publisher.events) == 1

    def test_bare_payment_id_reference(self, client, db_session, restaurant_a, make_product, make_order, make_payment):
        product = make_product(restaurant_a, quantity=3, price=2500)
        order = make_order(restaurant_a, [(product, 2)])
        payment = make_payment(order, amount=5000)

        resp = client.post("/api/webhooks/billing", json={"reference": str(payment.id), "status": "SUCCESSFUL"})

        assert resp.status_code == 200
        assert resp.json["outcome"] == "processed"
        assert db_session.get(Order, order.id).status == "preparing"
        assert db_session.query(Stock).filter_by(product_id=product.id).one().quantity == 1

    def test_missing_reference_is_400(self, client, db_session):
        resp = client.post("/api/webhooks/billing", json={"status": "SUCCESSFUL"})
        assert resp.status_code == 400

    def test_non_object_body_is_400(self, client, db_session):
        resp = client.post("/api/webhooks/billing", json=["order:1"])
        assert resp.status_code == 400

    def test_unknown_reference_is_404(self, client, db_session):
        resp = client.post("/api/webhooks/billing", json={"reference": "order:424242", "status": "SUCCESSFUL"})
        assert resp.status_code == 404

    def test_ignored_status_is_200(self, client, db_session, restaurant_a, make_order, make_payment):
        order = make_order(restaurant_a)
        payment = make_payment(order, amount=1000)

        resp = client.post("/api/webhooks/billing", json={"reference": payment.reference, "status": "PROCESSING"})

        assert resp.status_code == 200
        assert resp.json["outcome"] == "ignored"

    def test_webhook_secret_enforced_when_configured(self, app, client, db_session):
        app.config["BILLING_WEBHOOK_SECRET"] = "gateway-secret"
        try:
            resp = client.post("/api/webhooks/billing", json={"reference": "order:1", "status": "SUCCESSFUL"})
            assert resp.status_code == 401

            resp = client.post(
                "/api/webhooks/billing",
                json={"reference": "order:1", "status": "SUCCESSFUL"},
                headers={"X-Webhook-Secret": "gateway-secret"},
            )
            assert resp.status_code == 404
        finally:
            app.config["BILLING_WEBHOOK_SECRET"] = None

    def test_internal_error_is_500_and_logged(self, client, db_session, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(payment_service, "reconcile_webhook", explode)

        resp = client.post("/api/webhooks/billing", json={"reference": "order:1", "status": "SUCCESSFUL"})

        assert resp.status_code == 500
        assert db_session.query(SystemLog).filter_by(action="webhook_error").count() == 1
