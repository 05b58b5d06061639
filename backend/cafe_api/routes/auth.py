# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Password length validation on registration and password change
- Login throttling to prevent brute-force attacks
- Account lockout (429) after repeated failed attempts
- Stateless HS256 bearer tokens; logins and failures land in the audit log
"""

from flask import Blueprint, jsonify

from ..decorators import current_identity, require_admin, require_auth
from ..errors import AuthenticationError, AuthorizationError, NotFoundError, RateLimitError, ValidationError
from ..models.security import AUTHENTICATION, MEDIUM, LOW
from ..services import audit_service, auth_service, login_throttle_service, token_service
from ..validation import get_json_payload, text_field


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Self-registration for storefront customers; the account always gets
    the "user" role.
    """
    data = get_json_payload()
    username = text_field(data, "username", required=True)
    email = text_field(data, "email", required=True)
    password = data.get("password")
    if not isinstance(password, str) or not password:
        raise ValidationError("password is required")

    user = auth_service.create_user(
        username,
        email,
        password,
        first_name=text_field(data, "first_name", max_length=128),
        last_name=text_field(data, "last_name", max_length=128),
        phone_number=text_field(data, "phone_number", max_length=32),
    )
    audit_service.log_event(
        category=AUTHENTICATION,
        event_type="USER_REGISTERED",
        success=True,
        severity=LOW,
        user_id=user.id,
        username=user.username,
    )
    return jsonify({
        "message": "User registered successfully",
        "username": user.username,
        "email": user.email,
    }), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and issue a bearer token.

    SECURITY:
    - Checks for account lockout before attempting authentication
    - Records failed attempts for throttling
    - Unknown user and wrong password share one message
    """
    data = get_json_payload()
    identifier = data.get("username") or data.get("email") or data.get("identifier")
    password = data.get("password")
    if not identifier or not password:
        raise ValidationError("username/email and password required")
    identifier = str(identifier)

    is_locked, seconds_remaining = login_throttle_service.is_account_locked(identifier)
    if is_locked:
        login_throttle_service.record_locked_attempt(identifier)
        raise RateLimitError(
            "Account temporarily locked due to too many failed login attempts",
            retry_after_seconds=seconds_remaining,
        )

    try:
        user = auth_service.authenticate(identifier, str(password))
    except AuthenticationError:
        known = auth_service.find_user(identifier)
        failed_count = login_throttle_service.record_failed_attempt(
            identifier,
            user_id=known.id if known else None,
            reason="Invalid credentials",
        )
        if failed_count >= login_throttle_service.max_failed_attempts():
            _, seconds_remaining = login_throttle_service.is_account_locked(identifier)
            raise RateLimitError(
                "Account locked due to too many failed login attempts",
                retry_after_seconds=seconds_remaining,
            )
        raise
    except AuthorizationError:
        audit_service.log_event(
            category=AUTHENTICATION,
            event_type="LOGIN_INACTIVE",
            success=False,
            severity=MEDIUM,
            username=identifier.strip().lower(),
            reason="Login attempted on a deactivated account",
        )
        raise

    login_throttle_service.record_successful_login(user.id, identifier)
    token = token_service.issue_token(user.id, user.username, user.role)

    return jsonify({
        "message": "Login successful",
        "token": token,
        "expires_in": token_service.token_expiry_seconds(),
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "user": user.to_dict(),
    }), 200


@auth_bp.get("/lockout-status/<identifier>")
def lockout_status_route(identifier: str):
    """Public so a locked-out user can see when to retry."""
    return jsonify(login_throttle_service.get_lockout_status(identifier))


@auth_bp.post("/validate")
@require_auth
def validate_route():
    identity = current_identity()
    return jsonify({
        "valid": True,
        "user": {
            "id": identity.user_id,
            "username": identity.username,
            "role": identity.role,
        },
    })


@auth_bp.get("/me")
@require_auth
def me_route():
    user = auth_service.get_user(current_identity().user_id)
    if not user:
        raise NotFoundError("User not found")
    return jsonify(user.to_dict())


@auth_bp.get("/verify-admin")
@require_admin
def verify_admin_route():
    identity = current_identity()
    return jsonify({"is_admin": True, "username": identity.username})


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    identity = current_identity()
    data = get_json_payload()
    current_password = data.get("current_password")
    new_password = data.get("new_password")
    if not isinstance(current_password, str) or not isinstance(new_password, str):
        raise ValidationError("current_password and new_password are required")

    auth_service.validate_password_strength(new_password)
    auth_service.change_password(identity.user_id, current_password, new_password)
    audit_service.log_event(
        category=AUTHENTICATION,
        event_type="PASSWORD_CHANGED",
        success=True,
        severity=MEDIUM,
        user_id=identity.user_id,
        username=identity.username,
    )
    return jsonify({"message": "Password changed successfully"})
