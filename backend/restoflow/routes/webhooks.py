# Overview: Inbound payment gateway callbacks.

# backend/restoflow/routes/webhooks.py
"""
Billing gateway webhook.

The gateway retries on 5xx and stops on 4xx, so:
- 400 for malformed payloads (no reference)
- 404 for references that match nothing (a dead reference is not retried)
- 200 for processed, ignored and duplicate callbacks
- 500 only for internal failures
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_webhook_secret
from ..extensions import db
from ..services import payment_service
from ..services.log_service import try_log_system_action
from ..services.payment_service import PaymentError, PaymentNotFoundError
from ..services.realtime_service import get_publisher


webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@webhooks_bp.post("/billing")
@require_webhook_secret
def billing_webhook_route():
    payload = request.get_json(silent=True)

    try:
        result = payment_service.reconcile_webhook(
            payload,
            publisher=get_publisher(),
            cancel_order_on_failure=current_app.config["CANCEL_ORDER_ON_PAYMENT_FAILURE"],
        )
    except PaymentNotFoundError as e:
        db.session.rollback()
        current_app.logger.warning("Billing webhook for unknown reference: %s", e)
        return jsonify({"success": False, "error": str(e)}), 404
    except PaymentError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("Billing webhook processing failed")
        try_log_system_action(
            "webhook_error",
            {
                "reference": payload.get("reference") if isinstance(payload, dict) else None,
                "error": str(e),
            },
            message="Billing webhook processing failed",
        )
        return jsonify({"success": False, "error": "Internal server error"}), 500

    current_app.logger.info(
        "Billing webhook %s: %s payment %s -> %s",
        result.outcome, result.kind, result.payment_id, result.payment_status,
    )
    return jsonify({"success": True, **result.to_dict()}), 200
