# Overview: Service-layer operations for offers; code validation, discount math and usage counting.

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Offer
from ..models.offers import DISCOUNT_TYPES
from .concurrency import atomic_update
from cafe_api.time_utils import utcnow


CODE_PATTERN = re.compile(r"^[A-Z0-9]{3,20}$")

_EDITABLE_FIELDS = (
    "title", "description", "discount_type", "discount_percent", "discount_amount_cents",
    "min_order_cents", "max_discount_cents", "valid_from", "valid_till", "usage_limit", "is_active",
)


def normalize_code(code: str | None) -> str:
    code = (code or "").strip().upper()
    if not CODE_PATTERN.match(code):
        raise ValidationError("Offer code must be 3-20 letters or digits")
    return code


def _check_terms(offer: Offer) -> None:
    if offer.discount_type not in DISCOUNT_TYPES:
        raise ValidationError(f"discount_type must be one of: {', '.join(DISCOUNT_TYPES)}")
    if offer.discount_type == "percentage":
        if offer.discount_percent is None or not 0 < offer.discount_percent <= 100:
            raise ValidationError("discount_percent must be between 0 and 100 for percentage offers")
    if offer.discount_type == "flat" and not offer.discount_amount_cents:
        raise ValidationError("discount_amount_cents is required for flat offers")
    if offer.valid_till <= offer.valid_from:
        raise ValidationError("valid_till must be after valid_from")


def compute_discount(offer: Offer, amount_cents: int, item_prices_cents: list[int] | None = None) -> int:
    """
    percentage: amount x pct / 100 rounded half up, capped by max_discount_cents
    flat:       the flat amount, never more than the order
    bogo:       the cheapest supplied item when at least two are supplied
    """
    if offer.discount_type == "percentage":
        percent = Decimal(str(offer.discount_percent or 0))
        discount = int((amount_cents * percent / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        if offer.max_discount_cents is not None:
            discount = min(discount, offer.max_discount_cents)
        return max(0, discount)
    if offer.discount_type == "flat":
        return max(0, min(amount_cents, offer.discount_amount_cents or 0))
    if offer.discount_type == "bogo":
        prices = list(item_prices_cents or [])
        if len(prices) < 2:
            return 0
        return max(0, min(prices))
    return 0


def check_offer_usable(offer: Offer, amount_cents: int, *, now=None) -> None:
    now = now or utcnow()
    if not offer.is_active:
        raise ValidationError("Offer is not active")
    if now < offer.valid_from:
        raise ValidationError("Offer is not yet valid")
    if now > offer.valid_till:
        raise ValidationError("Offer has expired")
    if offer.min_order_cents and amount_cents < offer.min_order_cents:
        raise ValidationError(f"Minimum order amount is {offer.min_order_cents} cents")
    if offer.usage_limit is not None and offer.usage_count >= offer.usage_limit:
        raise ValidationError("Offer usage limit reached")


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def list_offers(*, outlet_id: int | None = None) -> list[Offer]:
    q = db.session.query(Offer)
    if outlet_id is not None:
        q = q.filter(db.or_(Offer.outlet_id == outlet_id, Offer.outlet_id.is_(None)))
    return q.order_by(Offer.created_at.desc(), Offer.id.desc()).all()


def list_active_offers(*, outlet_id: int | None = None) -> list[Offer]:
    now = utcnow()
    q = db.session.query(Offer).filter(
        Offer.is_active.is_(True),
        Offer.valid_from <= now,
        Offer.valid_till >= now,
        db.or_(Offer.usage_limit.is_(None), Offer.usage_count < Offer.usage_limit),
    )
    if outlet_id is not None:
        q = q.filter(db.or_(Offer.outlet_id == outlet_id, Offer.outlet_id.is_(None)))
    return q.order_by(Offer.valid_till.asc(), Offer.id.asc()).all()


def get_offer(offer_id: int) -> Offer:
    offer = db.session.get(Offer, offer_id)
    if not offer:
        raise NotFoundError("Offer not found")
    return offer


def get_offer_by_code(code: str) -> Offer:
    offer = db.session.query(Offer).filter_by(code=normalize_code(code)).first()
    if not offer:
        raise NotFoundError("Offer not found")
    return offer


def create_offer(data: dict, *, outlet_id: int | None, created_by: str) -> Offer:
    code = normalize_code(data.get("code"))
    if db.session.query(Offer).filter_by(code=code).first():
        raise ConflictError("Offer code already exists")

    offer = Offer(code=code, outlet_id=outlet_id, created_by=created_by, usage_count=0)
    for key in _EDITABLE_FIELDS:
        if key in data and data[key] is not None:
            setattr(offer, key, data[key])
    if offer.is_active is None:
        offer.is_active = True
    _check_terms(offer)

    db.session.add(offer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Offer code already exists")
    return offer


def update_offer(offer_id: int, data: dict) -> Offer:
    offer = get_offer(offer_id)
    if data.get("code") is not None:
        code = normalize_code(data["code"])
        if code != offer.code and db.session.query(Offer).filter_by(code=code).first():
            raise ConflictError("Offer code already exists")
        offer.code = code
    for key in _EDITABLE_FIELDS:
        if key in data:
            setattr(offer, key, data[key])
    try:
        _check_terms(offer)
    except ValidationError:
        db.session.rollback()
        raise
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Offer code already exists")
    return offer


def delete_offer(offer_id: int) -> None:
    offer = get_offer(offer_id)
    db.session.delete(offer)
    db.session.commit()


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def validate_offer(code: str, amount_cents: int, item_prices_cents: list[int] | None = None) -> dict:
    offer = get_offer_by_code(code)
    check_offer_usable(offer, amount_cents)
    discount = compute_discount(offer, amount_cents, item_prices_cents)
    return {
        "valid": True,
        "offer": offer.to_dict(),
        "discount_cents": discount,
        "final_amount_cents": amount_cents - discount,
    }


def apply_offer(offer_id: int, amount_cents: int, item_prices_cents: list[int] | None = None) -> dict:
    """
    Validate and consume one use of the offer.

    The usage counter is bumped by a guarded UPDATE, so an offer with one use
    left can be applied by exactly one of two racing requests.
    """
    offer = get_offer(offer_id)
    check_offer_usable(offer, amount_cents)
    discount = compute_discount(offer, amount_cents, item_prices_cents)

    updated = atomic_update(
        Offer,
        Offer.id == offer.id,
        Offer.is_active.is_(True),
        db.or_(Offer.usage_limit.is_(None), Offer.usage_count < Offer.usage_limit),
        values={"usage_count": Offer.usage_count + 1},
    )
    if not updated:
        db.session.rollback()
        raise ValidationError("Offer usage limit reached")
    db.session.commit()
    db.session.refresh(offer)

    return {
        "applied": True,
        "offer": offer.to_dict(),
        "discount_cents": discount,
        "final_amount_cents": amount_cents - discount,
    }
