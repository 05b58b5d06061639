# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing. Customers sign themselves up from the storefront, so
registration only checks username, email and password length.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- Minimum 6 characters required
- Bearer tokens are issued separately (see token_service.py)
- Inactive users cannot log in
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AuthenticationError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_USER, ROLES
from cafe_api.time_utils import utcnow


USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 20
PASSWORD_MIN_LENGTH = 6

_USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet the length requirement."""


def validate_password_strength(password: str) -> None:
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        raise PasswordValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")


def validate_username(username: str) -> None:
    if not username or not (USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH):
        raise ValidationError(
            f"Username must be between {USERNAME_MIN_LENGTH} and {USERNAME_MAX_LENGTH} characters"
        )
    if not _USERNAME_PATTERN.match(username):
        raise ValidationError("Username may only contain letters, digits, '.', '_' and '-'")


def validate_email(email: str) -> None:
    if not email or "@" not in email or len(email) > 255:
        raise ValidationError("A valid email address is required")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    WHY: Cost factor 12 provides good security/performance balance.
    Tests lower BCRYPT_ROUNDS to keep fixtures fast.

    Password is validated before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash counts as a mismatch.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    *,
    role: str = ROLE_USER,
    first_name: str | None = None,
    last_name: str | None = None,
    phone_number: str | None = None,
    default_outlet_id: int | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises ValidationError for bad input and ConflictError when the username
    or email is already taken (case-insensitive).
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()

    validate_username(username)
    validate_email(email)
    validate_password_strength(password)
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    if db.session.query(User).filter(db.func.lower(User.username) == username.lower()).first():
        raise ConflictError("Username already exists")
    if db.session.query(User).filter(db.func.lower(User.email) == email).first():
        raise ConflictError("Email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        first_name=first_name,
        last_name=last_name,
        phone_number=phone_number,
        default_outlet_id=default_outlet_id,
        is_active=True,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Lost a race against a concurrent registration with the same name
        db.session.rollback()
        raise ConflictError("Username or email already exists")
    return user


def find_user(identifier: str) -> User | None:
    """Look up by username or email, case-insensitive."""
    if not identifier:
        return None
    needle = identifier.strip().lower()
    return db.session.query(User).filter(
        db.or_(db.func.lower(User.username) == needle, db.func.lower(User.email) == needle)
    ).first()


def authenticate(identifier: str, password: str) -> User:
    """
    Authenticate user by username (or email) and password.

    Raises AuthenticationError on unknown user or wrong password (same
    message for both), AuthorizationError when the account is deactivated.
    Updates last_login_at on success.
    """
    user = find_user(identifier)
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid username or password")

    if not user.is_active:
        raise AuthorizationError("Account is deactivated")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def change_password(user_id: int, current_password: str, new_password: str) -> None:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.session.commit()


def get_user(user_id: int) -> User | None:
    return db.session.get(User, user_id)


def list_users(*, role: str | None = None, active_only: bool = False) -> list[User]:
    q = db.session.query(User)
    if role:
        q = q.filter(User.role == role)
    if active_only:
        q = q.filter(User.is_active.is_(True))
    return q.order_by(User.username.asc()).all()


def require_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def set_role(user_id: int, role: str, *, acting_user_id: int) -> User:
    """
    Change a user's role.

    SECURITY: an admin cannot change their own role.
    """
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    user = require_user(user_id)
    if user.id == acting_user_id and role != user.role:
        raise ValidationError("You cannot change your own role")
    user.role = role
    db.session.commit()
    return user


def set_active(user_id: int, is_active: bool, *, acting_user_id: int) -> User:
    user = require_user(user_id)
    if user.id == acting_user_id and not is_active:
        raise ValidationError("You cannot deactivate your own account")
    user.is_active = is_active
    db.session.commit()
    return user
