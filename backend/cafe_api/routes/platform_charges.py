# Overview: Flask API routes for monthly delivery-platform charges and the net payout summary.

"""
Platform charge routes.

SECURITY: admin only, like the rest of the platform billing screens.
Charges belong to the write outlet; lists and the summary follow the read
outlet (all outlets for an admin without X-Outlet-Id).
"""

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, require_admin
from ..errors import NotFoundError, ValidationError
from ..models.security import DATA_MODIFICATION, LOW
from ..services import audit_service, outlet_service, platform_charge_service
from ..services.online_sale_service import PLATFORMS
from ..services.platform_charge_service import MAX_YEAR, MIN_YEAR
from ..validation import cents_field, choice_field, get_json_payload, int_field, query_date, text_field


platform_charges_bp = Blueprint("platform_charges", __name__, url_prefix="/api/platform-charges")


def _owned(charge):
    outlet_service.ensure_record_outlet(current_identity(), charge.outlet_id)
    return charge


def _platform(value: str | None) -> str | None:
    return choice_field({"platform": value}, "platform", PLATFORMS, case_insensitive=True)


@platform_charges_bp.get("")
@require_admin
def list_charges_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    charges = platform_charge_service.list_charges(outlet_id=outlet_id, platform=_platform(request.args.get("platform")))
    return jsonify([charge.to_dict() for charge in charges])


@platform_charges_bp.get("/summary")
@require_admin
def summary_route():
    """?platform&start_date&end_date (both dates required)."""
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify(platform_charge_service.platform_summary(
        outlet_id=outlet_id,
        platform=_platform(request.args.get("platform")),
        start=query_date("start_date", required=True),
        end=query_date("end_date", required=True),
    ))


@platform_charges_bp.get("/<platform>/<int:year>/<int:month>")
@require_admin
def get_charge_for_month_route(platform: str, year: int, month: int):
    outlet_id = outlet_service.require_read_outlet(current_identity())
    charge = platform_charge_service.find_charge(outlet_id=outlet_id, platform=_platform(platform), year=year, month=month)
    if charge is None:
        raise NotFoundError("Platform charge not found")
    return jsonify(charge.to_dict())


@platform_charges_bp.get("/<int:charge_id>")
@require_admin
def get_charge_route(charge_id: int):
    return jsonify(_owned(platform_charge_service.get_charge(charge_id)).to_dict())


@platform_charges_bp.post("")
@require_admin
def create_charge_route():
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    data = get_json_payload()
    payload = {
        "platform": choice_field(data, "platform", PLATFORMS, required=True, case_insensitive=True),
        "year": int_field(data, "year", required=True, minimum=MIN_YEAR, maximum=MAX_YEAR),
        "month": int_field(data, "month", required=True, minimum=1, maximum=12),
        "charges_cents": cents_field(data, "charges_cents", required=True),
        "charge_type": text_field(data, "charge_type", max_length=32),
        "notes": text_field(data, "notes"),
    }
    charge = platform_charge_service.create_charge(payload, outlet_id=outlet_id, recorded_by=identity.username)
    audit_service.log_event(
        category=DATA_MODIFICATION,
        event_type="PLATFORM_CHARGE_RECORDED",
        success=True,
        severity=LOW,
        user_id=identity.user_id,
        username=identity.username,
        outlet_id=outlet_id,
        reason=f"{charge.platform} {charge.month}/{charge.year}: {charge.charges_cents}",
    )
    return jsonify(charge.to_dict()), 201


@platform_charges_bp.put("/<int:charge_id>")
@require_admin
def update_charge_route(charge_id: int):
    _owned(platform_charge_service.get_charge(charge_id))
    data = get_json_payload()
    for locked in ("platform", "year", "month"):
        if locked in data:
            raise ValidationError(f"{locked} cannot be changed; delete and re-create the charge")
    payload = {"charges_cents": cents_field(data, "charges_cents")}
    for key, max_length in (("charge_type", 32), ("notes", None)):
        if key in data:
            payload[key] = text_field(data, key, max_length=max_length)
    return jsonify(platform_charge_service.update_charge(charge_id, payload).to_dict())


@platform_charges_bp.delete("/<int:charge_id>")
@require_admin
def delete_charge_route(charge_id: int):
    _owned(platform_charge_service.get_charge(charge_id))
    platform_charge_service.delete_charge(charge_id)
    return jsonify({"message": "Platform charge deleted"})
