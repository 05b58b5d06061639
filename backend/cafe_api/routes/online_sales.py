# Overview: Flask API routes for delivery-platform (Zomato / Swiggy) orders; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import current_identity, require_admin, require_admin_or_manager
from ..errors import ValidationError
from ..models.security import DATA_MODIFICATION, FILE_OPERATION, LOW, MEDIUM
from ..multipart import form_value, read_upload
from ..services import audit_service, import_service, online_sale_service, outlet_service
from ..services.online_sale_service import PLATFORMS
from ..validation import (
    cents_field,
    choice_field,
    datetime_field,
    float_field,
    get_json_payload,
    id_list_field,
    query_date,
    text_field,
)


online_sales_bp = Blueprint("online_sales", __name__, url_prefix="/api/online-sales")


def _ordered_items(data: dict) -> list[dict] | None:
    raw = data.get("ordered_items")
    if raw is None:
        return None
    if isinstance(raw, str):
        return import_service.parse_ordered_items(raw)
    if not isinstance(raw, list):
        raise ValidationError("ordered_items must be a list or a '2 x Item, 1 x Other' string")
    items = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"ordered_items[{index}] must be an object")
        name = text_field(entry, "name", required=True, max_length=128)
        quantity = entry.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"ordered_items[{index}].quantity must be a positive integer")
        items.append({"name": name, "quantity": quantity})
    return items


def _sale_payload(data: dict, *, partial: bool) -> dict:
    payload = {
        "customer_name": text_field(data, "customer_name", max_length=128),
        "order_at": datetime_field(data, "order_at", required=not partial),
        "distance_km": float_field(data, "distance_km", minimum=0),
        "ordered_items": _ordered_items(data),
        "bill_subtotal_cents": cents_field(data, "bill_subtotal_cents"),
        "packaging_cents": cents_field(data, "packaging_cents"),
        "discount_cents": cents_field(data, "discount_cents"),
        "platform_deduction_cents": cents_field(data, "platform_deduction_cents"),
        "payout_cents": cents_field(data, "payout_cents", required=not partial),
        "rating": float_field(data, "rating", minimum=0, maximum=5),
        "review": text_field(data, "review"),
        "kpt_minutes": float_field(data, "kpt_minutes", minimum=0),
        "rwt_minutes": float_field(data, "rwt_minutes", minimum=0),
    }
    if not partial:
        payload["platform"] = choice_field(data, "platform", PLATFORMS, required=True, case_insensitive=True)
        payload["order_id"] = text_field(data, "order_id", required=True, max_length=64)
    return payload


def _platform_arg() -> str | None:
    return choice_field(request.args, "platform", PLATFORMS, case_insensitive=True)


def _owned(sale):
    outlet_service.ensure_record_outlet(current_identity(), sale.outlet_id)
    return sale


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@online_sales_bp.get("")
@require_admin_or_manager
def list_online_sales_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    sales = online_sale_service.list_online_sales(
        outlet_id=outlet_id,
        platform=_platform_arg(),
        start=query_date("start_date"),
        end=query_date("end_date"),
    )
    return jsonify([sale.to_dict() for sale in sales])


@online_sales_bp.get("/daily-income")
@require_admin_or_manager
def daily_income_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify(online_sale_service.daily_income(
        outlet_id=outlet_id,
        platform=_platform_arg(),
        start=query_date("start_date"),
        end=query_date("end_date"),
    ))


@online_sales_bp.get("/kpt-analysis")
@require_admin_or_manager
def kpt_analysis_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    platform, start, end = _platform_arg(), query_date("start_date"), query_date("end_date")
    sales = online_sale_service.list_online_sales(outlet_id=outlet_id, platform=platform, start=start, end=end)
    return jsonify(online_sale_service.analyze_kpt(sales, start=start, end=end, platform=platform))


@online_sales_bp.get("/reviews")
@require_admin_or_manager
def reviews_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    min_rating = float_field(request.args, "min_rating", minimum=0, maximum=5)
    sales = online_sale_service.list_reviews(outlet_id=outlet_id, platform=_platform_arg(), min_rating=min_rating)
    return jsonify([sale.to_dict() for sale in sales])


@online_sales_bp.get("/<int:sale_id>")
@require_admin_or_manager
def get_online_sale_route(sale_id: int):
    return jsonify(_owned(online_sale_service.get_online_sale(sale_id)).to_dict())


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@online_sales_bp.post("")
@require_admin_or_manager
def create_online_sale_route():
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    payload = _sale_payload(get_json_payload(), partial=False)
    sale = online_sale_service.create_online_sale(payload, outlet_id=outlet_id, recorded_by=identity.username)
    return jsonify(sale.to_dict()), 201


@online_sales_bp.put("/<int:sale_id>")
@require_admin_or_manager
def update_online_sale_route(sale_id: int):
    _owned(online_sale_service.get_online_sale(sale_id))
    payload = _sale_payload(get_json_payload(), partial=True)
    return jsonify(online_sale_service.update_online_sale(sale_id, payload).to_dict())


@online_sales_bp.delete("/<int:sale_id>")
@require_admin_or_manager
def delete_online_sale_route(sale_id: int):
    _owned(online_sale_service.get_online_sale(sale_id))
    online_sale_service.delete_online_sale(sale_id)
    return jsonify({"message": "Online sale deleted"})


@online_sales_bp.post("/bulk-delete")
@require_admin
def bulk_delete_route():
    """Body: {"ids": [...]}; ids outside the resolved outlet are left alone."""
    identity = current_identity()
    ids = id_list_field(get_json_payload(), "ids")
    outlet_id = outlet_service.require_read_outlet(identity)
    deleted = online_sale_service.bulk_delete(ids, outlet_id=outlet_id)
    audit_service.log_event(
        category=DATA_MODIFICATION,
        event_type="ONLINE_SALES_BULK_DELETED",
        success=True,
        severity=MEDIUM,
        user_id=identity.user_id,
        username=identity.username,
        outlet_id=outlet_id,
        reason=f"{deleted} of {len(ids)} requested",
    )
    return jsonify({"message": f"Deleted {deleted} online sales", "deleted": deleted})


@online_sales_bp.post("/upload")
@require_admin_or_manager
def upload_online_sales_route():
    """Multipart upload: "file" plus a "platform" form field (Zomato or Swiggy)."""
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    upload, parts = read_upload()
    platform = choice_field(
        {"platform": form_value(parts, "platform")}, "platform", PLATFORMS, required=True, case_insensitive=True
    )

    rows = import_service.read_rows(upload.content, upload.filename)
    result = import_service.import_online_sales(rows, identity.username, platform)
    if not result.records:
        current_app.logger.warning("%s upload %r contained no usable rows", platform, upload.filename)
        return jsonify({"error": "No valid orders found in the uploaded file", **result.summary()}), 400

    outcome = online_sale_service.save_imported(result.records, outlet_id=outlet_id)
    audit_service.log_event(
        category=FILE_OPERATION,
        event_type="FILE_UPLOADED",
        success=True,
        severity=LOW,
        user_id=identity.user_id,
        username=identity.username,
        outlet_id=outlet_id,
        reason=f"{platform} online sales: {upload.filename} ({outcome['created']} records)",
    )
    return jsonify({**result.summary(), "platform": platform, **outcome}), 201
