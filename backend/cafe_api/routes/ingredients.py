# Overview: Flask API routes for the ingredient price catalogue, price history and price trends.

"""
Ingredient routes.

SECURITY: reads need admin or manager; catalogue and price changes are
admin only. The catalogue is shared by every outlet.

A PUT or bulk price update that moves a price by INGREDIENT_PRICE_ALERT_PERCENT
or more returns the alert and records an INGREDIENT_PRICE_ALERT audit event.
"""

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, require_admin, require_admin_or_manager
from ..errors import ValidationError
from ..models.costing import INGREDIENT_CATEGORIES, INGREDIENT_UNITS, PRICE_SOURCES
from ..models.security import DATA_MODIFICATION, MEDIUM
from ..services import audit_service, ingredient_service
from ..validation import bool_field, cents_field, choice_field, get_json_payload, int_field, query_int, text_field


ingredients_bp = Blueprint("ingredients", __name__, url_prefix="/api/ingredients")


def _payload(data: dict, *, partial: bool) -> dict:
    fields = {
        "name": lambda: text_field(data, "name", required=not partial, max_length=128),
        "category": lambda: choice_field(data, "category", INGREDIENT_CATEGORIES, case_insensitive=True),
        "unit": lambda: choice_field(data, "unit", INGREDIENT_UNITS, required=not partial, case_insensitive=True),
        "market_price_cents": lambda: cents_field(data, "market_price_cents"),
        "price_source": lambda: choice_field(data, "price_source", PRICE_SOURCES, case_insensitive=True),
        "market_name": lambda: text_field(data, "market_name", max_length=128),
        "notes": lambda: text_field(data, "notes", max_length=255),
        "is_active": lambda: bool_field(data, "is_active"),
    }
    payload = {}
    for key, read in fields.items():
        if partial and key not in data:
            continue
        value = read()
        if partial and value is None and key in {"name", "category", "unit", "is_active"}:
            raise ValidationError(f"{key} cannot be null")
        payload[key] = value
    return payload


def _audit_alerts(alerts: list[dict]) -> None:
    identity = current_identity()
    for alert in alerts:
        audit_service.log_event(
            category=DATA_MODIFICATION,
            event_type="INGREDIENT_PRICE_ALERT",
            success=True,
            severity=MEDIUM,
            user_id=identity.user_id,
            username=identity.username,
            reason=alert["message"],
        )


@ingredients_bp.get("")
@require_admin_or_manager
def list_ingredients_route():
    ingredients = ingredient_service.list_ingredients(
        category=request.args.get("category") or None,
        search=request.args.get("search") or None,
        active_only=request.args.get("include_inactive", "").lower() not in {"1", "true", "yes"},
    )
    return jsonify([ingredient.to_dict() for ingredient in ingredients])


@ingredients_bp.get("/category/<category>")
@require_admin_or_manager
def list_by_category_route(category: str):
    return jsonify([ingredient.to_dict() for ingredient in ingredient_service.list_ingredients(category=category.lower())])


@ingredients_bp.post("/search")
@require_admin_or_manager
def search_ingredients_route():
    term = text_field(get_json_payload(), "search_term", required=True, max_length=128)
    return jsonify([ingredient.to_dict() for ingredient in ingredient_service.list_ingredients(search=term)])


@ingredients_bp.get("/<int:ingredient_id>")
@require_admin_or_manager
def get_ingredient_route(ingredient_id: int):
    return jsonify(ingredient_service.get_ingredient(ingredient_id).to_dict())


@ingredients_bp.get("/<int:ingredient_id>/price-history")
@require_admin_or_manager
def price_history_route(ingredient_id: int):
    limit = query_int("limit", default=30, minimum=1, maximum=365)
    return jsonify([row.to_dict() for row in ingredient_service.price_history(ingredient_id, limit=limit)])


@ingredients_bp.get("/<int:ingredient_id>/price-trends")
@require_admin_or_manager
def price_trends_route(ingredient_id: int):
    days = query_int("days", default=30, minimum=1, maximum=365)
    return jsonify(ingredient_service.price_trends(ingredient_id, days=days))


@ingredients_bp.post("")
@require_admin
def create_ingredient_route():
    payload = _payload(get_json_payload(), partial=False)
    ingredient = ingredient_service.create_ingredient(payload, created_by=current_identity().username)
    return jsonify(ingredient.to_dict()), 201


@ingredients_bp.put("/<int:ingredient_id>")
@require_admin
def update_ingredient_route(ingredient_id: int):
    payload = _payload(get_json_payload(), partial=True)
    ingredient, alert = ingredient_service.update_ingredient(
        ingredient_id, payload, updated_by=current_identity().username
    )
    if alert:
        _audit_alerts([alert])
    return jsonify({"ingredient": ingredient.to_dict(), "price_change_alert": alert})


@ingredients_bp.post("/prices")
@require_admin
def bulk_update_prices_route():
    """{"prices": [{"ingredient_id", "market_price_cents", "price_source"?, "market_name"?}, ...]}"""
    data = get_json_payload()
    entries = data.get("prices")
    if not isinstance(entries, list) or not entries:
        raise ValidationError("prices must be a non-empty list")
    updates = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValidationError("each price entry must be an object")
        updates.append({
            "ingredient_id": int_field(entry, "ingredient_id", required=True, minimum=1),
            "market_price_cents": cents_field(entry, "market_price_cents", required=True),
            "price_source": choice_field(entry, "price_source", PRICE_SOURCES, case_insensitive=True),
            "market_name": text_field(entry, "market_name", max_length=128),
            "notes": text_field(entry, "notes", max_length=255),
        })
    result = ingredient_service.bulk_update_prices(updates, recorded_by=current_identity().username)
    _audit_alerts(result["price_change_alerts"])
    return jsonify(result)


@ingredients_bp.delete("/<int:ingredient_id>")
@require_admin
def delete_ingredient_route(ingredient_id: int):
    ingredient_service.delete_ingredient(ingredient_id)
    return jsonify({"message": "Ingredient deleted"})
