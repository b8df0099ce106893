# Overview: Request and role decorators for API routes.

import hmac
from functools import wraps

from flask import current_app, g, jsonify, request

from .services import session_service


def get_bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid session and establish tenant context.

    Sets on Flask g:
    - g.current_user: The authenticated User
    - g.restaurant_id: The session's restaurant (None for superadmins)
    - g.session_context: The full SessionContext

    Returns 401 for a missing, invalid, expired or revoked token, a
    deactivated user, or a suspended restaurant.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = get_bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.restaurant_id = context.restaurant_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Require restaurant staff with one of roles.

    Superadmins have no restaurant context and are refused here.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if g.restaurant_id is None:
                return jsonify({"error": "Restaurant context required"}), 403

            if roles and user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_superadmin(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401

        if not g.current_user.is_superadmin:
            return jsonify({"error": "Superadmin access required"}), 403

        return f(*args, **kwargs)

    return decorated_function


def require_cron_secret(f):
    """
    Require "Authorization: Bearer <CRON_SECRET>".

    Rejected with 401 before the job reads anything. An unset secret
    rejects every call.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("CRON_SECRET")
        token = get_bearer_token()

        if not expected or not token or not hmac.compare_digest(token.encode(), expected.encode()):
            return jsonify({"error": "Unauthorized"}), 401

        return f(*args, **kwargs)

    return decorated_function


def require_webhook_secret(f):
    """Check X-Webhook-Secret when BILLING_WEBHOOK_SECRET is configured."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("BILLING_WEBHOOK_SECRET")
        if expected:
            provided = request.headers.get("X-Webhook-Secret") or ""
            if not hmac.compare_digest(provided.encode(), expected.encode()):
                return jsonify({"error": "Unauthorized"}), 401

        return f(*args, **kwargs)

    return decorated_function
