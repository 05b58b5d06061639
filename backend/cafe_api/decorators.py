# Overview: Role gate for API routes; resolves the bearer identity and enforces a capability.

"""
Every route declares one capability:

- anonymous         no decorator at all
- user              @require_auth
- admin             @require_admin
- admin_or_manager  @require_admin_or_manager

(or @require_role("<capability>") for the same thing by name).

The decorators are thin wrappers over check_access(), which returns
AccessCheck(authorized, user_id, username, error_response). The gate owns the
status code and body of every refusal; a wrapped handler never runs when
authorized is False.
"""

from __future__ import annotations

from functools import wraps
from typing import NamedTuple

from flask import g, request

from .errors import error_response
from .models.security import AUTHENTICATION, AUTHORIZATION, MEDIUM
from .services import audit_service, token_service
from .services.token_service import Identity


ANONYMOUS = "anonymous"
USER = "user"
ADMIN = "admin"
ADMIN_OR_MANAGER = "admin_or_manager"
CAPABILITIES = (ANONYMOUS, USER, ADMIN, ADMIN_OR_MANAGER)

_ROLE_REQUIREMENTS = {
    ADMIN: ({"admin"}, "Admin access required"),
    ADMIN_OR_MANAGER: ({"admin", "manager"}, "Admin or Manager access required"),
}


class AccessCheck(NamedTuple):
    authorized: bool
    user_id: int | None
    username: str | None
    error_response: tuple | None
    identity: Identity | None = None


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme != "Bearer" or not token.strip():
        return None
    return token.strip()


def check_access(capability: str) -> AccessCheck:
    """
    Resolve the caller and test it against capability.

    SECURITY: an expired token and a garbage string produce the same 401
    body; the client cannot tell which one it sent.
    """
    if capability not in CAPABILITIES:
        raise ValueError(f"Unknown capability: {capability}")

    if capability == ANONYMOUS:
        return AccessCheck(True, None, None, None)

    token = _bearer_token()
    if token is None:
        return AccessCheck(False, None, None, error_response("Authorization header missing or invalid", 401))

    identity = token_service.validate_token(token)
    if identity is None:
        audit_service.log_event(
            category=AUTHENTICATION,
            event_type="INVALID_TOKEN",
            success=False,
            severity=MEDIUM,
            reason="Bearer token failed validation",
        )
        return AccessCheck(False, None, None, error_response("Invalid or expired token", 401))

    requirement = _ROLE_REQUIREMENTS.get(capability)
    if requirement is not None:
        allowed_roles, message = requirement
        if identity.role not in allowed_roles:
            audit_service.log_event(
                category=AUTHORIZATION,
                event_type="ACCESS_DENIED",
                success=False,
                severity=MEDIUM,
                user_id=identity.user_id,
                username=identity.username,
                reason=f"Role '{identity.role}' lacks capability '{capability}'",
            )
            return AccessCheck(False, identity.user_id, identity.username, error_response(message, 403), identity)

    return AccessCheck(True, identity.user_id, identity.username, None, identity)


def require_role(capability: str):
    """
    Gate a route on a capability name.

    Sets g.identity (token_service.Identity) before the handler runs; for
    anonymous routes g.identity is None.
    """
    if capability not in CAPABILITIES:
        raise ValueError(f"Unknown capability: {capability}")

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            check = check_access(capability)
            if not check.authorized:
                return check.error_response
            g.identity = check.identity
            return f(*args, **kwargs)

        return decorated_function
    return decorator


require_auth = require_role(USER)
require_admin = require_role(ADMIN)
require_admin_or_manager = require_role(ADMIN_OR_MANAGER)


def current_identity() -> Identity:
    """The identity set by the gate; only valid inside a gated handler."""
    return g.identity
