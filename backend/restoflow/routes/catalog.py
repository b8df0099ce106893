# Overview: Public (QR menu) API routes; cart submission and payment initiation.

# backend/restoflow/routes/catalog.py
"""
Customer-facing endpoints reached from the table QR code. No session:
the restaurant is identified by its public slug.
"""

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..models import Order
from ..services import order_service, payment_service
from ..services.order_service import OrderError
from ..services.payment_service import PaymentError
from ..services.tenant_service import TenantAccessError, get_restaurant_by_slug


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.post("/orders")
def submit_order_route():
    """
    Submit a cart.

    Request body:
    {
        "restaurant": "chez-mama",
        "table_number": 4,
        "items": [{"product_id": 1, "quantity": 2}],
        "notes": "no onions"
    }

    Returns:
        201: {order}
        400: Invalid cart
        404: Unknown or suspended restaurant
    """
    try:
        data = request.get_json(silent=True) or {}
        slug = data.get("restaurant")
        items = data.get("items")

        if not slug or not isinstance(items, list):
            return jsonify({"error": "restaurant and items required"}), 400

        order = order_service.create_order(
            slug,
            items,
            table_number=data.get("table_number"),
            notes=data.get("notes"),
            source=data.get("source", "qr"),
        )
        return jsonify({"order": order.to_dict()}), 201

    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
    except OrderError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to submit order")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/orders/<int:order_id>/payments")
def initiate_payment_route(order_id: int):
    """
    Open a payment attempt for a pending order.

    Request body: {"restaurant": "chez-mama", "method": "mobile_money"}

    Returns 201 with the payment and the gateway reference to hand to the
    billing gateway.
    """
    try:
        data = request.get_json(silent=True) or {}
        slug = data.get("restaurant")
        method = data.get("method")

        if not slug or not method:
            return jsonify({"error": "restaurant and method required"}), 400

        restaurant = get_restaurant_by_slug(slug)
        order = db.session.query(Order).filter_by(id=order_id, restaurant_id=restaurant.id).first()
        if not order:
            return jsonify({"error": f"Order {order_id} not found"}), 404

        payment = payment_service.initiate_order_payment(order, method=method)
        return jsonify({"payment": payment.to_dict(), "reference": payment.reference}), 201

    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to initiate payment")
        return jsonify({"error": "Internal server error"}), 500
