"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

Every staff request is scoped to one restaurant (g.restaurant_id, set by
@require_auth). Identifiers coming from client input must be checked
against it, and cross-tenant attempts are answered exactly like a missing
row ("not found") while being recorded in the audit trail.

USAGE:
    from restoflow.services.tenant_service import get_current_restaurant_id

    order = order_service.get_order_for_restaurant(order_id, get_current_restaurant_id())
"""

from flask import g, has_request_context, request

from ..extensions import db
from ..models import Restaurant
from .log_service import try_log_system_action


class TenantAccessError(Exception):
    """Raised when tenant context is missing or a restaurant is unusable."""
    pass


def get_current_restaurant_id() -> int:
    """
    Current tenant's restaurant_id from Flask g context.

    Raises TenantAccessError if not set (superadmin sessions have none).
    """
    restaurant_id = getattr(g, "restaurant_id", None)
    if restaurant_id is None:
        raise TenantAccessError("Tenant context not established")
    return restaurant_id


def get_restaurant_by_slug(slug: str, *, active_only: bool = True) -> Restaurant:
    """
    Resolve a public restaurant slug (QR menu URLs).

    Raises TenantAccessError if unknown or suspended.
    """
    restaurant = db.session.query(Restaurant).filter_by(slug=slug).first()
    if not restaurant:
        raise TenantAccessError("Restaurant not found")
    if active_only and not restaurant.is_active:
        raise TenantAccessError("Restaurant is not active")
    return restaurant


def log_cross_tenant_attempt(resource: str, resource_id, *, owner_restaurant_id: int, restaurant_id: int) -> None:
    """
    Record an access to another restaurant's row.

    Written in its own transaction; callers raise a not-found error afterwards.
    """
    user = getattr(g, "current_user", None) if has_request_context() else None
    try_log_system_action(
        "cross_tenant_access_denied",
        {
            "resource": resource,
            "resource_id": resource_id,
            "owner_restaurant_id": owner_restaurant_id,
            "path": request.path if has_request_context() else None,
            "method": request.method if has_request_context() else None,
        },
        "warning",
        user_id=user.id if user is not None else None,
        restaurant_id=restaurant_id,
    )
