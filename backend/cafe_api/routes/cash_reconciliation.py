# Overview: Flask API routes for end-of-day cash reconciliation; parses input and returns JSON responses.

"""
Cash Reconciliation routes (admin only).

One record per outlet per business day; a second record for the same day
is a 409. /bulk and /upload create many at once and report duplicate dates
instead of failing the batch.
"""

from flask import Blueprint, current_app, jsonify

from ..decorators import current_identity, require_admin
from ..errors import ValidationError
from ..models.security import FILE_OPERATION, LOW
from ..multipart import read_upload
from ..services import audit_service, import_service, outlet_service, reconciliation_service
from ..services.reconciliation_service import AMOUNT_FIELDS
from ..validation import bool_field, cents_field, date_field, get_json_payload, query_date, text_field


cash_reconciliation_bp = Blueprint("cash_reconciliation", __name__, url_prefix="/api/cash-reconciliation")

MAX_BULK_RECORDS = 366


def _path_date(value: str):
    return date_field({"date": value}, "date", required=True)


def _record_payload(data: dict, *, partial: bool) -> dict:
    payload = {
        "reconciliation_date": date_field(data, "reconciliation_date", required=not partial),
        "notes": text_field(data, "notes"),
        "is_reconciled": bool_field(data, "is_reconciled"),
    }
    for key in AMOUNT_FIELDS:
        payload[key] = cents_field(data, key)
    return payload


def _owned(record):
    outlet_service.ensure_record_outlet(current_identity(), record.outlet_id)
    return record


@cash_reconciliation_bp.get("")
@require_admin
def list_reconciliations_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    records = reconciliation_service.list_reconciliations(
        outlet_id=outlet_id,
        start=query_date("start_date"),
        end=query_date("end_date"),
    )
    return jsonify([record.to_dict() for record in records])


@cash_reconciliation_bp.get("/date/<day>")
@require_admin
def reconciliation_by_date_route(day: str):
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify(reconciliation_service.get_by_date(_path_date(day), outlet_id=outlet_id).to_dict())


@cash_reconciliation_bp.get("/sales-summary/<day>")
@require_admin
def sales_summary_route(day: str):
    """Expected cash and online figures for a day, to prefill the count sheet."""
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify(reconciliation_service.sales_summary_for_date(_path_date(day), outlet_id=outlet_id))


@cash_reconciliation_bp.get("/summary")
@require_admin
def range_summary_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    start = query_date("start_date")
    end = query_date("end_date")
    if start and end and start > end:
        raise ValidationError("start_date must be on or before end_date")
    return jsonify(reconciliation_service.range_summary(outlet_id=outlet_id, start=start, end=end))


@cash_reconciliation_bp.get("/<int:record_id>")
@require_admin
def get_reconciliation_route(record_id: int):
    return jsonify(_owned(reconciliation_service.get_reconciliation(record_id)).to_dict())


@cash_reconciliation_bp.post("")
@require_admin
def create_reconciliation_route():
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    payload = _record_payload(get_json_payload(), partial=False)
    record = reconciliation_service.create_reconciliation(payload, outlet_id=outlet_id, reconciled_by=identity.username)
    return jsonify(record.to_dict()), 201


@cash_reconciliation_bp.put("/<int:record_id>")
@require_admin
def update_reconciliation_route(record_id: int):
    _owned(reconciliation_service.get_reconciliation(record_id))
    payload = _record_payload(get_json_payload(), partial=True)
    return jsonify(reconciliation_service.update_reconciliation(record_id, payload).to_dict())


@cash_reconciliation_bp.delete("/<int:record_id>")
@require_admin
def delete_reconciliation_route(record_id: int):
    _owned(reconciliation_service.get_reconciliation(record_id))
    reconciliation_service.delete_reconciliation(record_id)
    return jsonify({"message": "Cash reconciliation deleted"})


def _bulk_response(outcome: dict, status: int = 201, **extra):
    return jsonify({
        **extra,
        "created": len(outcome["created"]),
        "duplicates": outcome["duplicates"],
        "records": [record.to_dict() for record in outcome["created"]],
    }), status


@cash_reconciliation_bp.post("/bulk")
@require_admin
def bulk_create_route():
    """Body: {"records": [{reconciliation_date, amounts...}, ...]}"""
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    raw_records = get_json_payload().get("records")
    if not isinstance(raw_records, list) or not raw_records:
        raise ValidationError("records must be a non-empty list")
    if len(raw_records) > MAX_BULK_RECORDS:
        raise ValidationError(f"At most {MAX_BULK_RECORDS} records per request")

    records = []
    for index, raw in enumerate(raw_records):
        if not isinstance(raw, dict):
            raise ValidationError(f"records[{index}] must be an object")
        records.append(_record_payload(raw, partial=False))

    outcome = reconciliation_service.save_many(records, outlet_id=outlet_id, reconciled_by=identity.username)
    return _bulk_response(outcome)


@cash_reconciliation_bp.post("/upload")
@require_admin
def upload_reconciliations_route():
    """Columns: Date, CountedCash, CountedCoins, ActualOnline, Notes, ExpectedCash, ExpectedCoins."""
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    upload, _parts = read_upload()
    rows = import_service.read_rows(upload.content, upload.filename)
    result = import_service.import_cash_reconciliations(rows, identity.username)
    if not result.records:
        current_app.logger.warning("Cash reconciliation upload %r contained no usable rows", upload.filename)
        return jsonify({"error": "No valid reconciliation rows found in the uploaded file", **result.summary()}), 400

    outcome = reconciliation_service.save_many(result.records, outlet_id=outlet_id, reconciled_by=identity.username)
    audit_service.log_event(
        category=FILE_OPERATION,
        event_type="FILE_UPLOADED",
        success=True,
        severity=LOW,
        user_id=identity.user_id,
        username=identity.username,
        outlet_id=outlet_id,
        reason=f"cash reconciliation: {upload.filename} ({len(outcome['created'])} records)",
    )
    return _bulk_response(outcome, **result.summary())
