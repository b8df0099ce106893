# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/restoflow/routes/orders.py
"""
Kitchen / staff order API

Status changes go through order_service.set_order_status, which enforces
the transition graph, decrements stock on "preparing" and publishes the
realtime event.

Available to every staff role of the order's restaurant.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..services import order_service
from ..services.order_service import (
    InvalidStatusError,
    InvalidTransitionError,
    OrderError,
    OrderNotFoundError,
)
from ..services.realtime_service import get_publisher
from ..services.tenant_service import get_current_restaurant_id


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
@require_role()
def list_orders_route():
    """
    Query params:
        status: filter by status
        include_archived: "true" to include archived orders
        limit: max rows (default 100, max 500)
    """
    try:
        status = request.args.get("status") or None
        include_archived = request.args.get("include_archived", "false").lower() == "true"
        limit = min(request.args.get("limit", 100, type=int), 500)

        orders = order_service.list_orders(
            get_current_restaurant_id(),
            status=status,
            include_archived=include_archived,
            limit=limit,
        )
        return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)}), 200

    except InvalidStatusError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
@require_role()
def get_order_route(order_id: int):
    try:
        order = order_service.get_order_for_restaurant(order_id, get_current_restaurant_id())
        data = order.to_dict()
        data["payments"] = [p.to_dict() for p in order.payments]
        return jsonify({"order": data}), 200

    except OrderNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_role()
def update_status_route(order_id: int):
    """
    Change an order's status.

    Request body: {"status": "preparing", "reason": "..." (optional, for cancelled)}

    Returns:
        200: {success: true, order}
        400: Unknown status or transition not allowed
        404: Order not found (or another restaurant's)
    """
    try:
        data = request.get_json(silent=True) or {}
        new_status = data.get("status")

        if not isinstance(new_status, str) or not new_status:
            return jsonify({"error": "status required"}), 400

        order = order_service.set_order_status(
            order_id,
            new_status,
            restaurant_id=get_current_restaurant_id(),
            publisher=get_publisher(),
            actor_user_id=g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"success": True, "order": order.to_dict()}), 200

    except (InvalidStatusError, InvalidTransitionError) as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except OrderNotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"success": False, "error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_role()
def cancel_order_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel_order(
            order_id,
            restaurant_id=get_current_restaurant_id(),
            publisher=get_publisher(),
            reason=data.get("reason"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"success": True, "order": order.to_dict()}), 200

    except InvalidTransitionError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except OrderNotFoundError as e:
        return jsonify({"success": False, "error": str(e)}), 404
    except OrderError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"success": False, "error": "Internal server error"}), 500
