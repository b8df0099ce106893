# Overview: Flask API routes for stock operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..extensions import db
from ..services import stock_service
from ..services.stock_service import StockError, StockNotFoundError
from ..services.tenant_service import get_current_restaurant_id
from ..decorators import require_auth, require_role


stocks_bp = Blueprint("stocks", __name__, url_prefix="/api/stocks")


@stocks_bp.post("/<int:product_id>/adjust")
@require_auth
@require_role("owner", "manager")
def adjust_stock_route(product_id: int):
    """
    Manual stock movement.

    Request body:
    {
        "movement_type": "manual_in" | "manual_out" | "adjustment",
        "quantity": 10,
        "reason": "Delivery"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        movement_type = data.get("movement_type")
        quantity = data.get("quantity")

        if not movement_type or quantity is None:
            return jsonify({"error": "movement_type and quantity required"}), 400

        stock = stock_service.adjust_stock(
            get_current_restaurant_id(),
            product_id,
            quantity,
            movement_type,
            reason=data.get("reason"),
            user_id=g.current_user.id,
        )
        return jsonify({"stock": stock.to_dict(), "product": stock.product.to_dict()}), 200

    except StockNotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except StockError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stocks_bp.get("/<int:product_id>/movements")
@require_auth
@require_role()
def stock_movements_route(product_id: int):
    limit = min(request.args.get("limit", 50, type=int), 500)
    movements = stock_service.get_stock_movements(get_current_restaurant_id(), product_id, limit=limit)
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200
