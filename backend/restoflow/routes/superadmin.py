# Overview: Platform console routes (superadmin only).

from flask import Blueprint, current_app, g, jsonify, request

from ..extensions import db
from ..services import log_service, subscription_service
from ..services.log_service import LogLevelError
from ..services.subscription_service import SubscriptionError, SubscriptionPaymentNotFoundError
from ..decorators import require_auth, require_superadmin


superadmin_bp = Blueprint("superadmin", __name__, url_prefix="/api/superadmin")


@superadmin_bp.post("/subscription-payments/<int:payment_id>/validate")
@require_auth
@require_superadmin
def validate_payment_route(payment_id: int):
    """
    Confirm a manual subscription payment and activate the subscription.

    Returns:
        200: {success, payment}
        404: Payment not found
        409: Payment already processed
    """
    try:
        payment = subscription_service.validate_manual_payment(
            payment_id,
            validated_by_user_id=g.current_user.id,
        )
        return jsonify({"success": True, "payment": payment.to_dict()}), 200

    except SubscriptionPaymentNotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    except SubscriptionError as e:
        db.session.rollback()
        return jsonify({"success": False, "error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to validate subscription payment")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@superadmin_bp.get("/logs")
@require_auth
@require_superadmin
def list_logs_route():
    """Query params: level, action, limit (default 100, max 1000)."""
    try:
        logs = log_service.get_logs(
            request.args.get("level") or None,
            action=request.args.get("action") or None,
            limit=min(request.args.get("limit", 100, type=int), 1000),
        )
        return jsonify({"logs": [entry.to_dict() for entry in logs]}), 200
    except LogLevelError as e:
        return jsonify({"error": str(e)}), 400


@superadmin_bp.get("/logs/stats")
@require_auth
@require_superadmin
def log_stats_route():
    return jsonify(log_service.get_log_stats()), 200
