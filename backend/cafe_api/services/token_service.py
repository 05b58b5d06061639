# Overview: Bearer token issue/validation (stateless HS256 JWTs).

"""
Token Service

Bearer tokens are signed JWTs carrying user id, username and role. They are
stateless: there is no server-side session table, so a token stays valid until
its exp claim passes.

SECURITY:
- Signature and expiry are always verified; callers get None for any failure
  and must not distinguish "expired" from "garbage".
- The signing key is JWT_SECRET_KEY from config.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta, timezone

import jwt
from flask import current_app

from cafe_api.time_utils import utcnow


ALGORITHM = "HS256"


@dataclass(frozen=True)
class Identity:
    """Decoded claims of a valid bearer token."""

    user_id: int
    username: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_manager(self) -> bool:
        return self.role == "manager"


def _secret() -> str:
    return current_app.config["JWT_SECRET_KEY"]


def issue_token(user_id: int, username: str, role: str, *, expires_in: timedelta | None = None) -> str:
    """
    Encode identity claims plus iat/exp into a signed token.

    expires_in defaults to JWT_EXPIRY_HOURS.
    """
    if expires_in is None:
        expires_in = timedelta(hours=current_app.config.get("JWT_EXPIRY_HOURS", 24))
    issued_at = utcnow().replace(tzinfo=timezone.utc)
    payload = {
        "sub": str(user_id),
        "username": username,
        "role": role,
        "iat": issued_at,
        "exp": issued_at + expires_in,
    }
    return jwt.encode(payload, _secret(), algorithm=ALGORITHM)


def validate_token(token: str | None) -> Identity | None:
    """Verify signature and expiry. Returns None for any invalid or expired token."""
    if not token:
        return None
    try:
        claims = jwt.decode(
            token,
            _secret(),
            algorithms=[ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError:
        return None

    try:
        user_id = int(claims["sub"])
    except (KeyError, TypeError, ValueError):
        return None
    username = claims.get("username")
    role = claims.get("role")
    if not username or not role:
        return None
    return Identity(user_id=user_id, username=username, role=role)


def token_expiry_seconds() -> int:
    return int(timedelta(hours=current_app.config.get("JWT_EXPIRY_HOURS", 24)).total_seconds())
