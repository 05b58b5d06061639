# Overview: Flask API routes for ingredient inventory; parses input and returns JSON responses.

"""
Inventory routes.

SECURITY: every route requires admin or manager. Reads are scoped to the
outlet resolved from X-Outlet-Id; writes require an outlet the caller is
assigned to, and per-record routes check the record's own outlet.

Stock only moves through /stock-in, /stock-out and /adjust, each of which
writes an InventoryTransaction row.
"""

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, require_admin_or_manager
from ..errors import ValidationError
from ..services import inventory_service, outlet_service
from ..validation import (
    bool_field,
    cents_field,
    date_field,
    float_field,
    get_json_payload,
    query_int,
    text_field,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

_NOT_NULL_FIELDS = {"ingredient_name", "unit", "minimum_stock", "maximum_stock", "reorder_quantity", "cost_per_unit_cents", "is_active"}


def _item_payload(data: dict, *, partial: bool) -> dict:
    fields = {
        "ingredient_name": lambda: text_field(data, "ingredient_name", required=not partial, max_length=128),
        "category": lambda: text_field(data, "category", max_length=64),
        "unit": lambda: text_field(data, "unit", required=not partial, max_length=16),
        "current_stock": lambda: float_field(data, "current_stock", minimum=0),
        "minimum_stock": lambda: float_field(data, "minimum_stock", minimum=0),
        "maximum_stock": lambda: float_field(data, "maximum_stock", minimum=0),
        "reorder_quantity": lambda: float_field(data, "reorder_quantity", minimum=0),
        "cost_per_unit_cents": lambda: cents_field(data, "cost_per_unit_cents"),
        "supplier_name": lambda: text_field(data, "supplier_name", max_length=128),
        "supplier_contact": lambda: text_field(data, "supplier_contact", max_length=128),
        "expiry_date": lambda: date_field(data, "expiry_date"),
        "storage_location": lambda: text_field(data, "storage_location", max_length=128),
        "notes": lambda: text_field(data, "notes"),
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
    if partial and "current_stock" in payload:
        raise ValidationError("current_stock changes through stock-in, stock-out or adjust")
    return payload


def _owned_item(item_id: int):
    """Load an item and check the caller may act on its outlet."""
    item = inventory_service.get_item(item_id)
    outlet_service.ensure_record_outlet(current_identity(), item.outlet_id)
    return item


def _movement_response(item, txn):
    return jsonify({"item": item.to_dict(), "transaction": txn.to_dict()})


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@inventory_bp.get("")
@require_admin_or_manager
def list_inventory_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    items = inventory_service.list_items(outlet_id=outlet_id, category=request.args.get("category") or None)
    return jsonify([item.to_dict() for item in items])


@inventory_bp.get("/active")
@require_admin_or_manager
def list_active_inventory_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify([item.to_dict() for item in inventory_service.list_items(outlet_id=outlet_id, active_only=True)])


@inventory_bp.get("/low-stock")
@require_admin_or_manager
def low_stock_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify([item.to_dict() for item in inventory_service.low_stock_items(outlet_id=outlet_id)])


@inventory_bp.get("/out-of-stock")
@require_admin_or_manager
def out_of_stock_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify([item.to_dict() for item in inventory_service.out_of_stock_items(outlet_id=outlet_id)])


@inventory_bp.get("/expiring")
@require_admin_or_manager
def expiring_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    days = query_int("days", default=7, minimum=0, maximum=365)
    return jsonify([item.to_dict() for item in inventory_service.expiring_items(days=days, outlet_id=outlet_id)])


@inventory_bp.get("/report")
@require_admin_or_manager
def report_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify(inventory_service.inventory_report(outlet_id=outlet_id))


@inventory_bp.get("/transactions/recent")
@require_admin_or_manager
def recent_transactions_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    limit = query_int("limit", default=50, minimum=1, maximum=500)
    txns = inventory_service.recent_transactions(outlet_id=outlet_id, limit=limit)
    return jsonify([txn.to_dict() for txn in txns])


@inventory_bp.get("/<int:item_id>")
@require_admin_or_manager
def get_inventory_item_route(item_id: int):
    return jsonify(_owned_item(item_id).to_dict())


@inventory_bp.get("/<int:item_id>/transactions")
@require_admin_or_manager
def item_transactions_route(item_id: int):
    _owned_item(item_id)
    limit = query_int("limit", default=100, minimum=1, maximum=1000)
    return jsonify([txn.to_dict() for txn in inventory_service.item_transactions(item_id, limit=limit)])


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@inventory_bp.post("")
@require_admin_or_manager
def create_inventory_item_route():
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    payload = _item_payload(get_json_payload(), partial=False)
    item = inventory_service.create_item(payload, outlet_id=outlet_id, created_by=identity.username)
    return jsonify(item.to_dict()), 201


@inventory_bp.put("/<int:item_id>")
@require_admin_or_manager
def update_inventory_item_route(item_id: int):
    _owned_item(item_id)
    payload = _item_payload(get_json_payload(), partial=True)
    item = inventory_service.update_item(item_id, payload, updated_by=current_identity().username)
    return jsonify(item.to_dict())


@inventory_bp.delete("/<int:item_id>")
@require_admin_or_manager
def delete_inventory_item_route(item_id: int):
    _owned_item(item_id)
    inventory_service.delete_item(item_id)
    return jsonify({"message": "Inventory item deleted"})


@inventory_bp.post("/<int:item_id>/stock-in")
@require_admin_or_manager
def stock_in_route(item_id: int):
    """Body: {"quantity", "cost_per_unit_cents", "reference_number"?, "supplier_name"?, "notes"?}"""
    _owned_item(item_id)
    data = get_json_payload()
    item, txn = inventory_service.stock_in(
        item_id,
        float_field(data, "quantity", required=True),
        cost_per_unit_cents=cents_field(data, "cost_per_unit_cents", required=True),
        performed_by=current_identity().username,
        reference_number=text_field(data, "reference_number", max_length=64),
        supplier_name=text_field(data, "supplier_name", max_length=128),
        notes=text_field(data, "notes"),
    )
    return _movement_response(item, txn)


@inventory_bp.post("/<int:item_id>/stock-out")
@require_admin_or_manager
def stock_out_route(item_id: int):
    _owned_item(item_id)
    data = get_json_payload()
    item, txn = inventory_service.stock_out(
        item_id,
        float_field(data, "quantity", required=True),
        performed_by=current_identity().username,
        reason=text_field(data, "reason", max_length=128, default="Usage"),
        notes=text_field(data, "notes"),
    )
    return _movement_response(item, txn)


@inventory_bp.post("/<int:item_id>/adjust")
@require_admin_or_manager
def adjust_route(item_id: int):
    """Body: {"reason", and one of "quantity" (signed delta) or "new_stock" (recount)}"""
    _owned_item(item_id)
    data = get_json_payload()
    item, txn = inventory_service.adjust_stock(
        item_id,
        performed_by=current_identity().username,
        reason=text_field(data, "reason", required=True, max_length=128),
        quantity=float_field(data, "quantity"),
        new_stock=float_field(data, "new_stock", minimum=0),
        notes=text_field(data, "notes"),
    )
    return _movement_response(item, txn)
