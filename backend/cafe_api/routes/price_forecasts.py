# Overview: Flask API routes for menu price forecasts; parses input and returns JSON responses.

from flask import Blueprint, jsonify

from ..decorators import current_identity, require_admin, require_admin_or_manager
from ..models.security import DATA_MODIFICATION, MEDIUM
from ..services import audit_service, forecast_service, menu_service, outlet_service, platform_charge_service
from ..services.online_sale_service import PLATFORMS
from ..validation import cents_field, choice_field, float_field, get_json_payload, int_field


price_forecasts_bp = Blueprint("price_forecasts", __name__, url_prefix="/api/price-forecasts")


def _forecast_inputs(data: dict, *, required: bool) -> dict:
    """Money inputs in cents, percentages 0-100. Only make/shop prices are required on create."""
    return {
        "make_price_cents": cents_field(data, "make_price_cents", required=required),
        "packaging_cost_cents": cents_field(data, "packaging_cost_cents"),
        "shop_price_cents": cents_field(data, "shop_price_cents", required=required),
        "shop_delivery_price_cents": cents_field(data, "shop_delivery_price_cents"),
        "online_price_cents": cents_field(data, "online_price_cents"),
        "online_discount_percent": float_field(data, "online_discount_percent", minimum=0, maximum=100),
        "online_deduction_percent": float_field(data, "online_deduction_percent", minimum=0, maximum=100),
    }


def _platform_deduction(data: dict, inputs: dict, outlet_id: int | None) -> None:
    """
    With "platform" set and no online_deduction_percent, use the platform's
    effective deduction (per-order deductions plus monthly charges).
    """
    platform = choice_field(data, "platform", PLATFORMS, case_insensitive=True)
    if platform and inputs.get("online_deduction_percent") is None:
        inputs["online_deduction_percent"] = platform_charge_service.effective_deduction_percent(
            outlet_id=outlet_id, platform=platform
        )


def _owned(forecast):
    outlet_service.ensure_record_outlet(current_identity(), forecast.outlet_id)
    return forecast


@price_forecasts_bp.get("")
@require_admin_or_manager
def list_forecasts_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify([f.to_dict() for f in forecast_service.list_forecasts(outlet_id=outlet_id)])


@price_forecasts_bp.get("/menu-item/<int:menu_item_id>")
@require_admin_or_manager
def forecasts_for_item_route(menu_item_id: int):
    menu_service.get_menu_item(menu_item_id)
    outlet_id = outlet_service.require_read_outlet(current_identity())
    forecasts = forecast_service.list_forecasts(outlet_id=outlet_id, menu_item_id=menu_item_id)
    return jsonify([f.to_dict() for f in forecasts])


@price_forecasts_bp.get("/<int:forecast_id>")
@require_admin_or_manager
def get_forecast_route(forecast_id: int):
    return jsonify(_owned(forecast_service.get_forecast(forecast_id)).to_dict())


@price_forecasts_bp.post("/calculate")
@require_admin_or_manager
def calculate_route():
    """Preview the profit figures without saving anything."""
    data = get_json_payload()
    inputs = _forecast_inputs(data, required=False)
    if data.get("platform"):
        _platform_deduction(data, inputs, outlet_service.require_read_outlet(current_identity()))
    inputs = {key: value for key, value in inputs.items() if value is not None}
    inputs.setdefault("make_price_cents", 0)
    return jsonify({**inputs, **forecast_service.compute_profits(**inputs)})


@price_forecasts_bp.post("")
@require_admin_or_manager
def create_forecast_route():
    identity = current_identity()
    outlet_id = outlet_service.require_write_outlet(identity)
    data = get_json_payload()
    payload = _forecast_inputs(data, required=True)
    _platform_deduction(data, payload, outlet_id)
    payload["menu_item_id"] = int_field(data, "menu_item_id", required=True, minimum=1)
    forecast = forecast_service.create_forecast(payload, outlet_id=outlet_id, created_by=identity.username)
    return jsonify(forecast.to_dict()), 201


@price_forecasts_bp.put("/<int:forecast_id>")
@require_admin_or_manager
def update_forecast_route(forecast_id: int):
    _owned(forecast_service.get_forecast(forecast_id))
    payload = _forecast_inputs(get_json_payload(), required=False)
    forecast = forecast_service.update_forecast(forecast_id, payload, changed_by=current_identity().username)
    return jsonify(forecast.to_dict())


@price_forecasts_bp.delete("/<int:forecast_id>")
@require_admin_or_manager
def delete_forecast_route(forecast_id: int):
    _owned(forecast_service.get_forecast(forecast_id))
    forecast_service.delete_forecast(forecast_id)
    return jsonify({"message": "Price forecast deleted"})


@price_forecasts_bp.post("/<int:forecast_id>/finalize")
@require_admin
def finalize_forecast_route(forecast_id: int):
    """Copies the shop and online prices onto the menu item."""
    identity = current_identity()
    _owned(forecast_service.get_forecast(forecast_id))
    forecast, item = forecast_service.finalize_forecast(forecast_id, finalized_by=identity.username)
    audit_service.log_event(
        category=DATA_MODIFICATION,
        event_type="PRICE_FORECAST_FINALIZED",
        success=True,
        severity=MEDIUM,
        user_id=identity.user_id,
        username=identity.username,
        outlet_id=forecast.outlet_id,
        reason=f"{item.name}: price {item.price_cents}, online {item.online_price_cents}",
    )
    return jsonify({"forecast": forecast.to_dict(), "menu_item": item.to_dict()})
