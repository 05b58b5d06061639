# Overview: Flask API routes for user administration; roles, activation and outlet assignment.

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, require_admin
from ..errors import ValidationError
from ..models.auth import ROLES
from ..models.security import ADMINISTRATION, HIGH, MEDIUM
from ..services import audit_service, auth_service, outlet_service
from ..validation import bool_field, choice_field, get_json_payload, int_field


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_admin
def list_users_route():
    role = request.args.get("role") or None
    users = auth_service.list_users(role=role)
    return jsonify([user.to_dict() for user in users])


@users_bp.get("/<int:user_id>")
@require_admin
def get_user_route(user_id: int):
    return jsonify(auth_service.require_user(user_id).to_dict())


@users_bp.put("/<int:user_id>/role")
@require_admin
def set_role_route(user_id: int):
    identity = current_identity()
    data = get_json_payload()
    role = choice_field(data, "role", ROLES, required=True, case_insensitive=True)

    user = auth_service.set_role(user_id, role, acting_user_id=identity.user_id)
    audit_service.log_event(
        category=ADMINISTRATION,
        event_type="ROLE_CHANGED",
        success=True,
        severity=HIGH,
        user_id=identity.user_id,
        username=identity.username,
        reason=f"{user.username} -> {role}",
    )
    return jsonify(user.to_dict())


@users_bp.put("/<int:user_id>/status")
@require_admin
def set_status_route(user_id: int):
    identity = current_identity()
    data = get_json_payload()
    is_active = bool_field(data, "is_active")
    if is_active is None:
        raise ValidationError("is_active is required")

    user = auth_service.set_active(user_id, is_active, acting_user_id=identity.user_id)
    audit_service.log_event(
        category=ADMINISTRATION,
        event_type="USER_STATUS_CHANGED",
        success=True,
        severity=MEDIUM,
        user_id=identity.user_id,
        username=identity.username,
        reason=f"{user.username} active={is_active}",
    )
    return jsonify(user.to_dict())


@users_bp.put("/<int:user_id>/outlets")
@require_admin
def set_outlets_route(user_id: int):
    """
    Body: {"outlet_ids": [1, 2], "default_outlet_id": 1}

    Replaces the user's outlet assignments; an empty list removes them all.
    """
    identity = current_identity()
    data = get_json_payload()
    raw_ids = data.get("outlet_ids")
    if not isinstance(raw_ids, list):
        raise ValidationError("outlet_ids must be a list")
    outlet_ids = [int_field({"outlet_id": value}, "outlet_id", required=True, minimum=1) for value in raw_ids]
    default_outlet_id = int_field(data, "default_outlet_id", minimum=1)

    user = outlet_service.set_user_outlets(
        user_id,
        outlet_ids,
        default_outlet_id=default_outlet_id,
        granted_by_user_id=identity.user_id,
    )
    audit_service.log_event(
        category=ADMINISTRATION,
        event_type="USER_OUTLETS_CHANGED",
        success=True,
        severity=MEDIUM,
        user_id=identity.user_id,
        username=identity.username,
        reason=f"{user.username} -> {sorted(set(outlet_ids))}",
    )
    return jsonify(user.to_dict())
