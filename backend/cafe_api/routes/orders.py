# Overview: Flask API routes for customer orders; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, require_admin, require_auth
from ..errors import ValidationError
from ..extensions import db
from ..models import Outlet
from ..models.orders import ORDER_STATUSES
from ..services import order_service, outlet_service
from ..validation import choice_field, get_json_payload, int_field, text_field


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

MAX_LINE_QUANTITY = 100


def _order_lines(data: dict) -> list[dict]:
    raw_items = data.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    lines = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        lines.append({
            "menu_item_id": int_field(raw, "menu_item_id", required=True, minimum=1),
            "quantity": int_field(raw, "quantity", required=True, minimum=1, maximum=MAX_LINE_QUANTITY),
        })
    return lines


def _order_outlet() -> int | None:
    """Customers are not assigned to outlets; any active outlet may take an order."""
    outlet_id = outlet_service.header_outlet_id()
    if outlet_id is None:
        return None
    outlet = db.session.get(Outlet, outlet_id)
    if outlet is None or not outlet.is_active:
        raise ValidationError("Outlet not found or inactive")
    return outlet_id


@orders_bp.post("")
@require_auth
def create_order_route():
    data = get_json_payload()
    order = order_service.create_order(
        current_identity(),
        _order_lines(data),
        outlet_id=_order_outlet(),
        notes=text_field(data, "notes", max_length=500),
    )
    return jsonify(order.to_dict()), 201


@orders_bp.get("/my")
@require_auth
def my_orders_route():
    orders = order_service.list_user_orders(current_identity().user_id)
    return jsonify([order.to_dict() for order in orders])


@orders_bp.get("")
@require_admin
def list_orders_route():
    status = request.args.get("status") or None
    outlet_id = outlet_service.require_read_outlet(current_identity())
    orders = order_service.list_orders(status=status, outlet_id=outlet_id)
    return jsonify([order.to_dict() for order in orders])


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    return jsonify(order_service.get_order_for(current_identity(), order_id).to_dict())


@orders_bp.put("/<int:order_id>/status")
@require_admin
def update_order_status_route(order_id: int):
    data = get_json_payload()
    status = choice_field(data, "status", ORDER_STATUSES, required=True, case_insensitive=True)
    order = order_service.update_status(order_id, status)
    return jsonify(order.to_dict())


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    order = order_service.cancel_order(current_identity(), order_id)
    return jsonify(order.to_dict())
