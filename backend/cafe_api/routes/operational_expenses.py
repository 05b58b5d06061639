# Overview: Flask API routes for month-level operational expenses.

"""
Operational expense routes.

SECURITY: admin or manager. Records belong to the write outlet; lists and
summaries follow the read outlet. rent_cents is derived from the month's
offline Rent expenses and cannot be sent.
"""

from flask import Blueprint, jsonify

from ..decorators import current_identity, require_admin_or_manager
from ..errors import NotFoundError, ValidationError
from ..services import operational_expense_service, outlet_service
from ..services.operational_expense_service import COMPONENT_FIELDS
from ..services.platform_charge_service import MAX_YEAR, MIN_YEAR
from ..validation import cents_field, get_json_payload, int_field, query_int, text_field


operational_expenses_bp = Blueprint("operational_expenses", __name__, url_prefix="/api/operational-expenses")


def _owned(record_id: int):
    record = operational_expense_service.get_record(record_id)
    outlet_service.ensure_record_outlet(current_identity(), record.outlet_id)
    return record


def _check_period(year: int, month: int) -> None:
    if not MIN_YEAR <= year <= MAX_YEAR or not 1 <= month <= 12:
        raise ValidationError(f"year must be {MIN_YEAR}-{MAX_YEAR} and month 1-12")


def _components(data: dict, *, partial: bool) -> dict:
    if "rent_cents" in data:
        raise ValidationError("rent_cents is calculated from the month's Rent expenses")
    payload = {}
    for key in COMPONENT_FIELDS:
        if partial and key not in data:
            continue
        payload[key] = cents_field(data, key, default=0)
    if "notes" in data or not partial:
        payload["notes"] = text_field(data, "notes")
    return payload


@operational_expenses_bp.get("")
@require_admin_or_manager
def list_records_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    year = query_int("year", minimum=MIN_YEAR, maximum=MAX_YEAR)
    records = operational_expense_service.list_records(outlet_id=outlet_id, year=year)
    return jsonify([record.to_dict() for record in records])


@operational_expenses_bp.get("/year/<int:year>")
@require_admin_or_manager
def year_summary_route(year: int):
    _check_period(year, 1)
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify(operational_expense_service.year_summary(outlet_id=outlet_id, year=year))


@operational_expenses_bp.get("/<int:year>/<int:month>")
@require_admin_or_manager
def get_month_route(year: int, month: int):
    _check_period(year, month)
    outlet_id = outlet_service.require_write_outlet(current_identity())
    record = operational_expense_service.find_record(outlet_id=outlet_id, year=year, month=month)
    if record is None:
        raise NotFoundError("Operational expense not found")
    return jsonify(record.to_dict())


@operational_expenses_bp.get("/calculate-rent/<int:year>/<int:month>")
@require_admin_or_manager
def calculate_rent_route(year: int, month: int):
    _check_period(year, month)
    outlet_id = outlet_service.require_read_outlet(current_identity())
    rent = operational_expense_service.monthly_rent(outlet_id=outlet_id, year=year, month=month)
    return jsonify({"year": year, "month": month, "rent_cents": rent})


@operational_expenses_bp.post("")
@require_admin_or_manager
def create_record_route():
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    data = get_json_payload()
    payload = _components(data, partial=False)
    payload["year"] = int_field(data, "year", required=True, minimum=MIN_YEAR, maximum=MAX_YEAR)
    payload["month"] = int_field(data, "month", required=True, minimum=1, maximum=12)
    record = operational_expense_service.create_record(payload, outlet_id=outlet_id, recorded_by=identity.username)
    return jsonify(record.to_dict()), 201


@operational_expenses_bp.put("/<int:record_id>")
@require_admin_or_manager
def update_record_route(record_id: int):
    _owned(record_id)
    data = get_json_payload()
    for locked in ("year", "month"):
        if locked in data:
            raise ValidationError(f"{locked} cannot be changed; delete and re-create the record")
    return jsonify(operational_expense_service.update_record(record_id, _components(data, partial=True)).to_dict())


@operational_expenses_bp.delete("/<int:record_id>")
@require_admin_or_manager
def delete_record_route(record_id: int):
    _owned(record_id)
    operational_expense_service.delete_record(record_id)
    return jsonify({"message": "Operational expense deleted"})
