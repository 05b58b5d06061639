# Overview: Flask API routes for offers and promo codes; parses input and returns JSON responses.

from flask import Blueprint, jsonify

from ..decorators import current_identity, require_admin, require_auth
from ..errors import ValidationError
from ..models.offers import DISCOUNT_TYPES
from ..services import offer_service, outlet_service
from ..validation import (
    bool_field,
    cents_field,
    choice_field,
    datetime_field,
    float_field,
    get_json_payload,
    int_field,
    text_field,
)


offers_bp = Blueprint("offers", __name__, url_prefix="/api/offers")


def _offer_payload(data: dict, *, partial: bool) -> dict:
    fields = {
        "code": lambda: text_field(data, "code", required=not partial),
        "title": lambda: text_field(data, "title", required=not partial, max_length=128),
        "description": lambda: text_field(data, "description"),
        "discount_type": lambda: choice_field(data, "discount_type", DISCOUNT_TYPES, required=not partial, case_insensitive=True),
        "discount_percent": lambda: float_field(data, "discount_percent", minimum=0, maximum=100),
        "discount_amount_cents": lambda: cents_field(data, "discount_amount_cents"),
        "min_order_cents": lambda: cents_field(data, "min_order_cents"),
        "max_discount_cents": lambda: cents_field(data, "max_discount_cents"),
        "valid_from": lambda: datetime_field(data, "valid_from", required=not partial),
        "valid_till": lambda: datetime_field(data, "valid_till", required=not partial),
        "usage_limit": lambda: int_field(data, "usage_limit", minimum=1),
        "is_active": lambda: bool_field(data, "is_active"),
    }
    payload = {}
    for key, read in fields.items():
        if partial and key not in data:
            continue
        value = read()
        if partial and value is None and key in ("title", "discount_type", "valid_from", "valid_till", "is_active"):
            raise ValidationError(f"{key} cannot be null")
        payload[key] = value
    return payload


def _checkout_amounts(data: dict) -> tuple[int, list[int] | None]:
    amount = cents_field(data, "order_amount_cents", required=True)
    raw_prices = data.get("item_prices_cents")
    if raw_prices is None:
        return amount, None
    if not isinstance(raw_prices, list):
        raise ValidationError("item_prices_cents must be a list")
    prices = [cents_field({"price": value}, "price", required=True) for value in raw_prices]
    return amount, prices


@offers_bp.get("/active")
def active_offers_route():
    outlet_id = outlet_service.header_outlet_id()
    return jsonify([offer.to_dict() for offer in offer_service.list_active_offers(outlet_id=outlet_id)])


@offers_bp.get("")
@require_admin
def list_offers_route():
    outlet_id = outlet_service.require_read_outlet(current_identity())
    return jsonify([offer.to_dict() for offer in offer_service.list_offers(outlet_id=outlet_id)])


@offers_bp.get("/<int:offer_id>")
@require_admin
def get_offer_route(offer_id: int):
    return jsonify(offer_service.get_offer(offer_id).to_dict())


@offers_bp.post("")
@require_admin
def create_offer_route():
    identity = current_identity()
    payload = _offer_payload(get_json_payload(), partial=False)
    offer = offer_service.create_offer(
        payload,
        outlet_id=outlet_service.header_outlet_id(),
        created_by=identity.username,
    )
    return jsonify(offer.to_dict()), 201


@offers_bp.put("/<int:offer_id>")
@require_admin
def update_offer_route(offer_id: int):
    payload = _offer_payload(get_json_payload(), partial=True)
    return jsonify(offer_service.update_offer(offer_id, payload).to_dict())


@offers_bp.delete("/<int:offer_id>")
@require_admin
def delete_offer_route(offer_id: int):
    offer_service.delete_offer(offer_id)
    return jsonify({"message": "Offer deleted"})


@offers_bp.post("/validate")
@require_auth
def validate_offer_route():
    """Body: {"code", "order_amount_cents", "item_prices_cents"?}; read-only."""
    data = get_json_payload()
    code = text_field(data, "code", required=True)
    amount, prices = _checkout_amounts(data)
    return jsonify(offer_service.validate_offer(code, amount, prices))


@offers_bp.post("/<int:offer_id>/apply")
@require_auth
def apply_offer_route(offer_id: int):
    """Consumes one use of the offer."""
    amount, prices = _checkout_amounts(get_json_payload())
    return jsonify(offer_service.apply_offer(offer_id, amount, prices))
