# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service with Restaurant Context

Tokens are random, stored hashed and time-limited. Sessions capture the
user's restaurant_id at login; that value is the tenant context for every
authenticated request and never changes for the session lifetime.

- 32-byte random tokens, SHA-256 hashed before storage
- 24-hour absolute timeout (SESSION_ABSOLUTE_TIMEOUT)
- 2-hour idle timeout (SESSION_IDLE_TIMEOUT)
- Revoked on logout, user deactivation or restaurant suspension
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from restoflow.time_utils import as_naive_utc, utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


@dataclass
class SessionContext:
    """Result of validate_session: identity plus immutable tenant context."""
    user: User
    session: SessionToken
    restaurant_id: int | None  # None for superadmins


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens are high-entropy, so a fast hash is enough
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create a session for user_id.

    Returns (session_record, plaintext_token). Only the hash is stored.

    Raises ValueError if the user is missing, or is staff without an
    active restaurant.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise ValueError("User not found")

    if not user.is_superadmin:
        if not user.restaurant_id:
            raise ValueError("User must belong to a restaurant")
        if not user.restaurant or not user.restaurant.is_active:
            raise ValueError("Restaurant is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        restaurant_id=None if user.is_superadmin else user.restaurant_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str, now) -> None:
    session.is_revoked = True
    session.revoked_at = now
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate a bearer token.

    Returns None if the token is unknown, expired, idle or revoked, if the
    user was deactivated, or if the staff member's restaurant is suspended.
    Updates last_used_at on success.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if as_naive_utc(session.expires_at) < now:
        return None

    if now - as_naive_utc(session.last_used_at) > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout", now)
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated", now)
        return None

    if not user.is_superadmin:
        restaurant = session.restaurant
        if not restaurant or not restaurant.is_active:
            _revoke(session, "Restaurant suspended", now)
            return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user=user,
        session=session,
        restaurant_id=session.restaurant_id,
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke a session. Returns False if it was not found or already revoked."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason, utcnow())
    return True


def revoke_restaurant_sessions(restaurant_id: int, reason: str, *, commit: bool = True) -> int:
    """
    Revoke every open session of a restaurant's staff.

    Used when a restaurant is suspended. Returns the count revoked.
    """
    count = db.session.query(SessionToken).filter(
        SessionToken.restaurant_id == restaurant_id,
        SessionToken.is_revoked.is_(False),
    ).update(
        {"is_revoked": True, "revoked_at": utcnow(), "revoked_reason": reason},
        synchronize_session=False,
    )
    if commit:
        db.session.commit()
    return count
