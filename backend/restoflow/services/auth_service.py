# Overview: Service-layer operations for staff authentication; password hashing and user creation.

"""
Authentication Service

Every staff action must be attributable. Passwords are hashed with bcrypt
(cost factor 12) and must pass a strength check before hashing.

MULTI-TENANT: Staff users belong to exactly one restaurant and carry one
role from STAFF_ROLES. Superadmins belong to none.
"""

import re

import bcrypt

from ..extensions import db
from ..models import STAFF_ROLES, Restaurant, User
from restoflow.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    email: str,
    password: str,
    *,
    restaurant_id: int | None = None,
    role: str = "kitchen",
    full_name: str | None = None,
    is_superadmin: bool = False,
) -> User:
    """
    Create a staff (or superadmin) account.

    Args:
        email: Login identifier, unique platform-wide
        password: Password meeting strength requirements
        restaurant_id: Required for staff, must be None for superadmins
        role: One of STAFF_ROLES
        full_name: Display name
        is_superadmin: Platform operator account

    Raises:
        ValueError: Unknown restaurant, invalid role, duplicate email
        PasswordValidationError: Weak password
    """
    email = email.strip().lower()

    if role not in STAFF_ROLES:
        raise ValueError(f"Invalid role '{role}'. Must be one of: {', '.join(STAFF_ROLES)}")

    if is_superadmin:
        if restaurant_id is not None:
            raise ValueError("Superadmin accounts do not belong to a restaurant")
    else:
        if restaurant_id is None:
            raise ValueError("Staff accounts require a restaurant")
        restaurant = db.session.query(Restaurant).filter_by(id=restaurant_id).first()
        if not restaurant:
            raise ValueError("Restaurant not found")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ValueError("Email already exists")

    user = User(
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        restaurant_id=restaurant_id,
        role=role,
        is_superadmin=is_superadmin,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Authenticate a user by email and password.

    Returns None for unknown users, wrong passwords, deactivated accounts
    and staff of a suspended restaurant. Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.email == email.strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if not user.is_superadmin:
        restaurant = user.restaurant
        if not restaurant or not restaurant.is_active:
            return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
