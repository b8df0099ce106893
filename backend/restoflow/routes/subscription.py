# Overview: Flask API routes for the restaurant's own subscription.

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..services import subscription_service
from ..services.subscription_service import CYCLE_DISCOUNTS, PLAN_CONFIGS, SubscriptionError
from ..services.tenant_service import get_current_restaurant_id
from ..decorators import require_auth, require_role


subscription_bp = Blueprint("subscription", __name__, url_prefix="/api/subscription")


@subscription_bp.get("")
@require_auth
@require_role()
def get_subscription_route():
    restaurant_id = get_current_restaurant_id()
    subscription = subscription_service.get_subscription(restaurant_id)

    return jsonify({
        "subscription": subscription.to_dict() if subscription else None,
        "payments": [p.to_dict() for p in subscription_service.list_payments(restaurant_id)],
        "plans": PLAN_CONFIGS,
        "cycle_discounts": {str(cycle): pct for cycle, pct in CYCLE_DISCOUNTS.items()},
    }), 200


@subscription_bp.post("/payments")
@require_auth
@require_role("owner")
def create_subscription_payment_route():
    """
    Start paying for a plan.

    Request body: {"plan": "business", "billing_cycle": 3, "method": "mobile_money"}

    Returns 201 with the pending payment and its gateway reference. Manual
    payments wait for superadmin validation.
    """
    try:
        data = request.get_json(silent=True) or {}
        plan = data.get("plan")
        billing_cycle = data.get("billing_cycle", 1)
        method = data.get("method")

        if not plan or not method:
            return jsonify({"error": "plan and method required"}), 400

        if isinstance(billing_cycle, bool) or not isinstance(billing_cycle, int):
            return jsonify({"error": "billing_cycle must be an integer"}), 400

        payment = subscription_service.initiate_subscription_payment(
            get_current_restaurant_id(),
            plan=plan,
            billing_cycle=billing_cycle,
            method=method,
        )
        return jsonify({"payment": payment.to_dict(), "reference": payment.reference}), 201

    except SubscriptionError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create subscription payment")
        return jsonify({"error": "Internal server error"}), 500
