# Overview: Flask API routes for monthly overhead costs and per-dish overhead allocation.

"""
Overhead cost routes.

SECURITY: reads need admin or manager, writes are admin only. A cost
created with "shared": true applies to every outlet; otherwise it belongs
to the write outlet. Lists for an outlet include the shared costs.
"""

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, require_admin, require_admin_or_manager
from ..errors import ValidationError
from ..services import outlet_service, overhead_service
from ..validation import bool_field, cents_field, float_field, get_json_payload, int_field, text_field


overhead_costs_bp = Blueprint("overhead_costs", __name__, url_prefix="/api/overhead-costs")

_NOT_NULL_FIELDS = {"cost_type", "monthly_cost_cents", "operational_hours_per_day", "working_days_per_month", "is_active"}


def _payload(data: dict, *, partial: bool) -> dict:
    fields = {
        "cost_type": lambda: text_field(data, "cost_type", required=not partial, max_length=64),
        "monthly_cost_cents": lambda: cents_field(data, "monthly_cost_cents", required=not partial),
        "operational_hours_per_day": lambda: int_field(data, "operational_hours_per_day", minimum=1, maximum=24),
        "working_days_per_month": lambda: int_field(data, "working_days_per_month", minimum=1, maximum=31),
        "description": lambda: text_field(data, "description", max_length=255),
        "is_active": lambda: bool_field(data, "is_active"),
    }
    payload = {}
    for key, read in fields.items():
        if partial and key not in data:
            continue
        value = read()
        if partial and value is None and key in _NOT_NULL_FIELDS:
            raise ValidationError(f"{key} cannot be null")
        payload[key] = value
    return payload


def _owned(overhead_id: int):
    overhead = overhead_service.get_overhead(overhead_id)
    if overhead.outlet_id is not None:
        outlet_service.ensure_record_outlet(current_identity(), overhead.outlet_id)
    return overhead


@overhead_costs_bp.get("")
@require_admin_or_manager
def list_overheads_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify([overhead.to_dict() for overhead in overhead_service.list_overheads(outlet_id=outlet_id)])


@overhead_costs_bp.get("/active")
@require_admin_or_manager
def list_active_overheads_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    overheads = overhead_service.list_overheads(outlet_id=outlet_id, active_only=True)
    return jsonify([overhead.to_dict() for overhead in overheads])


@overhead_costs_bp.get("/calculate")
@require_admin_or_manager
def allocate_route():
    """?preparation_minutes=12"""
    minutes = float_field(request.args, "preparation_minutes", required=True, minimum=0, maximum=24 * 60)
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify(overhead_service.allocate(minutes, outlet_id=outlet_id))


@overhead_costs_bp.get("/<int:overhead_id>")
@require_admin_or_manager
def get_overhead_route(overhead_id: int):
    return jsonify(_owned(overhead_id).to_dict())


@overhead_costs_bp.post("")
@require_admin
def create_overhead_route():
    identity = current_identity()
    data = get_json_payload()
    outlet_id = None if bool_field(data, "shared", default=False) else outlet_service.require_write_outlet(identity)
    overhead = overhead_service.create_overhead(
        _payload(data, partial=False), outlet_id=outlet_id, created_by=identity.username
    )
    return jsonify(overhead.to_dict()), 201


@overhead_costs_bp.post("/initialize")
@require_admin
def initialize_overheads_route():
    identity = current_identity()
    data = request.get_json(silent=True) or {}
    outlet_id = None if bool_field(data, "shared", default=False) else outlet_service.require_write_outlet(identity)
    added = overhead_service.initialize_defaults(outlet_id=outlet_id, created_by=identity.username)
    return jsonify({"message": f"Added {added} default overhead costs", "added": added})


@overhead_costs_bp.put("/<int:overhead_id>")
@require_admin
def update_overhead_route(overhead_id: int):
    _owned(overhead_id)
    payload = _payload(get_json_payload(), partial=True)
    overhead = overhead_service.update_overhead(overhead_id, payload, updated_by=current_identity().username)
    return jsonify(overhead.to_dict())


@overhead_costs_bp.delete("/<int:overhead_id>")
@require_admin
def delete_overhead_route(overhead_id: int):
    _owned(overhead_id)
    overhead_service.delete_overhead(overhead_id)
    return jsonify({"message": "Overhead cost deleted"})
