# Overview: Flask API routes for recipe costing sheets and making-cost lookups.

"""
Recipe routes.

SECURITY: reads need admin or manager; creating, changing and deleting
recipes is admin only. POST /calculate costs a recipe without saving it.
"""

from flask import Blueprint, jsonify

from ..decorators import current_identity, require_admin, require_admin_or_manager
from ..errors import ValidationError
from ..models.costing import INGREDIENT_UNITS
from ..services import recipe_service
from ..services.recipe_service import OVERHEAD_FIELDS
from ..validation import cents_field, choice_field, float_field, get_json_payload, int_field, text_field


recipes_bp = Blueprint("recipes", __name__, url_prefix="/api/recipes")


def _lines(raw) -> list[dict]:
    if not isinstance(raw, list):
        raise ValidationError("ingredients must be a list")
    lines = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("each ingredient must be an object")
        lines.append({
            "ingredient_id": int_field(entry, "ingredient_id", required=True, minimum=1),
            "quantity": float_field(entry, "quantity", required=True, minimum=0.0001),
            "unit": choice_field(entry, "unit", INGREDIENT_UNITS, case_insensitive=True),
        })
    return lines


def _payload(data: dict, *, partial: bool) -> dict:
    payload = {}
    if not partial or "menu_item_name" in data:
        payload["menu_item_name"] = text_field(data, "menu_item_name", required=True, max_length=128)
    if "menu_item_id" in data:
        payload["menu_item_id"] = int_field(data, "menu_item_id", minimum=1)
    for key in OVERHEAD_FIELDS:
        payload[key] = cents_field(data, key)
    payload["wastage_percent"] = float_field(data, "wastage_percent", minimum=0, maximum=100)
    payload["profit_margin_percent"] = float_field(data, "profit_margin_percent", minimum=0, maximum=1000)
    if "actual_selling_price_cents" in data:
        payload["actual_selling_price_cents"] = cents_field(data, "actual_selling_price_cents")
    if "notes" in data:
        payload["notes"] = text_field(data, "notes")
    if "ingredients" in data or not partial:
        payload["ingredients"] = _lines(data.get("ingredients") or [])
    return payload


@recipes_bp.get("")
@require_admin_or_manager
def list_recipes_route():
    return jsonify([recipe.to_dict() for recipe in recipe_service.list_recipes()])


@recipes_bp.get("/<int:recipe_id>")
@require_admin_or_manager
def get_recipe_route(recipe_id: int):
    return jsonify(recipe_service.get_recipe(recipe_id).to_dict())


@recipes_bp.get("/menu-item/<path:name>")
@require_admin_or_manager
def get_recipe_by_menu_item_route(name: str):
    return jsonify(recipe_service.get_by_menu_item_name(name).to_dict())


@recipes_bp.get("/making-cost/<path:name>")
@require_admin_or_manager
def making_cost_route(name: str):
    return jsonify(recipe_service.making_cost(name))


@recipes_bp.post("/calculate")
@require_admin_or_manager
def calculate_route():
    data = get_json_payload()
    payload = _payload({**data, "menu_item_name": data.get("menu_item_name") or "preview"}, partial=False)
    return jsonify(recipe_service.preview(payload))


@recipes_bp.post("")
@require_admin
def create_recipe_route():
    payload = _payload(get_json_payload(), partial=False)
    recipe = recipe_service.create_recipe(payload, created_by=current_identity().username)
    return jsonify(recipe.to_dict()), 201


@recipes_bp.put("/<int:recipe_id>")
@require_admin
def update_recipe_route(recipe_id: int):
    payload = _payload(get_json_payload(), partial=True)
    return jsonify(recipe_service.update_recipe(recipe_id, payload).to_dict())


@recipes_bp.delete("/<int:recipe_id>")
@require_admin
def delete_recipe_route(recipe_id: int):
    recipe_service.delete_recipe(recipe_id)
    return jsonify({"message": "Recipe deleted"})
