# Overview: Flask API routes for outlets; parses input and returns JSON responses.

from flask import Blueprint, jsonify

from ..decorators import current_identity, require_admin, require_auth
from ..errors import ValidationError
from ..models.security import ADMINISTRATION, HIGH, MEDIUM
from ..services import audit_service, outlet_service
from ..validation import bool_field, float_field, get_json_payload, text_field


outlets_bp = Blueprint("outlets", __name__, url_prefix="/api/outlets")

_NOT_NULL_FIELDS = {"opening_time", "closing_time", "tax_percentage", "accepts_online_orders", "is_active"}


def _outlet_payload(data: dict, *, partial: bool) -> dict:
    """Validated outlet fields; on update only the keys present are returned."""
    fields = {
        "name": lambda: text_field(data, "name", required=not partial, max_length=128),
        "code": lambda: text_field(data, "code", required=not partial, max_length=32),
        "address": lambda: text_field(data, "address", max_length=255),
        "city": lambda: text_field(data, "city", max_length=64),
        "state": lambda: text_field(data, "state", max_length=64),
        "phone_number": lambda: text_field(data, "phone_number", max_length=32),
        "email": lambda: text_field(data, "email", max_length=255),
        "manager_name": lambda: text_field(data, "manager_name", max_length=128),
        "opening_time": lambda: text_field(data, "opening_time", max_length=5),
        "closing_time": lambda: text_field(data, "closing_time", max_length=5),
        "tax_percentage": lambda: float_field(data, "tax_percentage", minimum=0, maximum=100),
        "accepts_online_orders": lambda: bool_field(data, "accepts_online_orders"),
        "is_active": lambda: bool_field(data, "is_active"),
    }
    payload = {}
    for key, read in fields.items():
        if partial and key not in data:
            continue
        value = read()
        if value is None and key in _NOT_NULL_FIELDS:
            continue
        payload[key] = value
    if partial and "code" in payload:
        raise ValidationError("Outlet code cannot be changed")
    return payload


@outlets_bp.get("")
@require_auth
def list_outlets_route():
    """Admins see every outlet; everyone else sees the outlets assigned to them."""
    identity = current_identity()
    if identity.is_admin:
        outlets = outlet_service.list_outlets()
    else:
        outlets = outlet_service.list_outlets(outlet_ids=outlet_service.get_assigned_outlet_ids(identity.user_id))
    return jsonify([outlet.to_dict() for outlet in outlets])


@outlets_bp.get("/active")
def list_active_outlets_route():
    return jsonify([outlet.to_dict() for outlet in outlet_service.list_outlets(active_only=True)])


@outlets_bp.get("/<int:outlet_id>")
@require_auth
def get_outlet_route(outlet_id: int):
    identity = current_identity()
    outlet = outlet_service.get_outlet(outlet_id)
    outlet_service.ensure_record_outlet(identity, outlet.id)
    return jsonify(outlet.to_dict())


@outlets_bp.post("")
@require_admin
def create_outlet_route():
    identity = current_identity()
    payload = _outlet_payload(get_json_payload(), partial=False)
    outlet = outlet_service.create_outlet(payload, created_by=identity.username)
    audit_service.log_event(
        category=ADMINISTRATION,
        event_type="OUTLET_CREATED",
        success=True,
        severity=MEDIUM,
        user_id=identity.user_id,
        username=identity.username,
        outlet_id=outlet.id,
    )
    return jsonify(outlet.to_dict()), 201


@outlets_bp.put("/<int:outlet_id>")
@require_admin
def update_outlet_route(outlet_id: int):
    payload = _outlet_payload(get_json_payload(), partial=True)
    outlet = outlet_service.update_outlet(outlet_id, payload)
    return jsonify(outlet.to_dict())


@outlets_bp.delete("/<int:outlet_id>")
@require_admin
def delete_outlet_route(outlet_id: int):
    identity = current_identity()
    outlet_service.delete_outlet(outlet_id)
    audit_service.log_event(
        category=ADMINISTRATION,
        event_type="OUTLET_DELETED",
        success=True,
        severity=HIGH,
        user_id=identity.user_id,
        username=identity.username,
        outlet_id=outlet_id,
    )
    return jsonify({"message": "Outlet deleted"})


@outlets_bp.post("/<int:outlet_id>/toggle-status")
@require_admin
def toggle_outlet_route(outlet_id: int):
    outlet = outlet_service.toggle_outlet_status(outlet_id)
    return jsonify(outlet.to_dict())
