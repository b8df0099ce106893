# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/restoflow/routes/auth.py
"""
Authentication API routes

Staff log in with email and password and receive a bearer token.
Accounts are created by the CLI (owners, superadmins) or by an owner.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import get_bearer_token, require_auth
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    Request body: {"email": "...", "password": "..."}

    Returns:
        200: {user, token, session, restaurant}
        400: Missing credentials
        401: Invalid credentials (also for suspended restaurants)
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not email or not password:
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "restaurant": user.restaurant.to_dict() if user.restaurant else None,
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    try:
        token = get_bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "restaurant_id": g.restaurant_id,
        "restaurant": user.restaurant.to_dict() if user.restaurant else None,
    }), 200
