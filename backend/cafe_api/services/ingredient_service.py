# Overview: Service-layer operations for the ingredient price catalogue and its price history.

"""
Ingredient Service

Every price change goes through change_price():
- previous_price_cents / price_change_percent are updated on the ingredient
- an IngredientPriceHistory row is written
- recipes using the ingredient are re-costed
all in one commit.

A change of INGREDIENT_PRICE_ALERT_PERCENT or more (either direction) is a
major change: change_price() logs a warning and returns an alert dict the
route hands back to the caller and records in the audit log.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Ingredient, IngredientPriceHistory, RecipeIngredient
from . import recipe_service
from cafe_api.time_utils import utcnow


def list_ingredients(
    *, category: str | None = None, search: str | None = None, active_only: bool = True
) -> list[Ingredient]:
    q = db.session.query(Ingredient)
    if active_only:
        q = q.filter(Ingredient.is_active.is_(True))
    if category:
        q = q.filter(Ingredient.category == category)
    if search:
        q = q.filter(Ingredient.name.ilike(f"%{search}%"))
    return q.order_by(Ingredient.name.asc()).all()


def get_ingredient(ingredient_id: int) -> Ingredient:
    ingredient = db.session.get(Ingredient, ingredient_id)
    if not ingredient:
        raise NotFoundError("Ingredient not found")
    return ingredient


def _name_taken(name: str, *, exclude_id: int | None = None) -> bool:
    q = db.session.query(Ingredient.id).filter(db.func.lower(Ingredient.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Ingredient.id != exclude_id)
    return q.first() is not None


def _history_row(ingredient: Ingredient, *, change_percent, source, market_name, notes, recorded_by) -> IngredientPriceHistory:
    return IngredientPriceHistory(
        ingredient_id=ingredient.id,
        ingredient_name=ingredient.name,
        price_cents=ingredient.market_price_cents,
        unit=ingredient.unit,
        source=source,
        market_name=market_name,
        change_percent=change_percent,
        notes=notes,
        recorded_by=recorded_by,
        recorded_at=utcnow(),
    )


def create_ingredient(data: dict, *, created_by: str) -> Ingredient:
    if _name_taken(data["name"]):
        raise ConflictError(f"Ingredient '{data['name']}' already exists")

    ingredient = Ingredient(
        name=data["name"],
        category=data.get("category") or "others",
        unit=data["unit"],
        market_price_cents=data.get("market_price_cents") or 0,
        price_source=data.get("price_source") or "manual",
        price_updated_at=utcnow(),
        is_active=True if data.get("is_active") is None else data["is_active"],
    )
    db.session.add(ingredient)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Ingredient '{data['name']}' already exists")
    db.session.add(_history_row(
        ingredient,
        change_percent=None,
        source=ingredient.price_source,
        market_name=data.get("market_name"),
        notes="Initial price",
        recorded_by=created_by,
    ))
    db.session.commit()
    return ingredient


def _percent_change(old: int, new: int) -> float | None:
    if not old:
        return None
    change = Decimal(new - old) * 100 / Decimal(old)
    return float(change.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def change_price(
    ingredient: Ingredient,
    new_price_cents: int,
    *,
    source: str = "manual",
    market_name: str | None = None,
    notes: str | None = None,
    recorded_by: str,
) -> dict | None:
    """
    Record a new market price. Caller commits.

    Returns the alert for a major change, else None. An unchanged price is a
    no-op with no history row.
    """
    old = ingredient.market_price_cents
    if new_price_cents == old:
        return None

    change = _percent_change(old, new_price_cents)
    ingredient.previous_price_cents = old
    ingredient.market_price_cents = new_price_cents
    ingredient.price_change_percent = change
    ingredient.price_source = source
    ingredient.price_updated_at = utcnow()
    db.session.add(_history_row(
        ingredient,
        change_percent=change,
        source=source,
        market_name=market_name,
        notes=notes,
        recorded_by=recorded_by,
    ))
    recipe_service.reprice_for_ingredient(ingredient)

    threshold = current_app.config.get("INGREDIENT_PRICE_ALERT_PERCENT", 10)
    if change is None or abs(change) < threshold:
        return None
    direction = "increased" if change > 0 else "decreased"
    alert = {
        "ingredient_id": ingredient.id,
        "ingredient_name": ingredient.name,
        "old_price_cents": old,
        "new_price_cents": new_price_cents,
        "change_percent": change,
        "message": f"{ingredient.name} price {direction} by {abs(change):.2f}%",
    }
    current_app.logger.warning("Major ingredient price change: %s", alert["message"])
    return alert


def update_ingredient(ingredient_id: int, data: dict, *, updated_by: str) -> tuple[Ingredient, dict | None]:
    ingredient = get_ingredient(ingredient_id)
    if "name" in data and _name_taken(data["name"], exclude_id=ingredient.id):
        raise ConflictError(f"Ingredient '{data['name']}' already exists")
    if "unit" in data and data["unit"] != ingredient.unit and _used_by_recipes(ingredient.id):
        raise ValidationError("unit cannot change while recipes use this ingredient")

    for key in ("name", "category", "unit", "is_active"):
        if key in data:
            setattr(ingredient, key, data[key])
    alert = None
    if data.get("market_price_cents") is not None:
        alert = change_price(
            ingredient,
            data["market_price_cents"],
            source=data.get("price_source") or "manual",
            market_name=data.get("market_name"),
            notes=data.get("notes"),
            recorded_by=updated_by,
        )
    elif "name" in data:
        recipe_service.reprice_for_ingredient(ingredient)
    db.session.commit()
    return ingredient, alert


def _used_by_recipes(ingredient_id: int) -> int:
    return db.session.query(db.func.count(db.distinct(RecipeIngredient.recipe_id))).filter(
        RecipeIngredient.ingredient_id == ingredient_id
    ).scalar() or 0


def delete_ingredient(ingredient_id: int) -> None:
    ingredient = get_ingredient(ingredient_id)
    used = _used_by_recipes(ingredient.id)
    if used:
        raise ValidationError(f"Ingredient is used by {used} recipe(s). Deactivate it instead.")
    db.session.query(IngredientPriceHistory).filter(
        IngredientPriceHistory.ingredient_id == ingredient.id
    ).delete(synchronize_session=False)
    db.session.delete(ingredient)
    db.session.commit()


def bulk_update_prices(updates: list[dict], *, recorded_by: str) -> dict:
    """Apply several price changes in one commit; unknown ids fail the whole batch."""
    ingredients = [(get_ingredient(entry["ingredient_id"]), entry) for entry in updates]
    updated = 0
    alerts = []
    for ingredient, entry in ingredients:
        if entry["market_price_cents"] == ingredient.market_price_cents:
            continue
        alert = change_price(
            ingredient,
            entry["market_price_cents"],
            source=entry.get("price_source") or "manual",
            market_name=entry.get("market_name"),
            notes=entry.get("notes"),
            recorded_by=recorded_by,
        )
        updated += 1
        if alert:
            alerts.append(alert)
    db.session.commit()
    return {"updated": updated, "unchanged": len(ingredients) - updated, "price_change_alerts": alerts}


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------

def price_history(ingredient_id: int, *, limit: int = 30) -> list[IngredientPriceHistory]:
    get_ingredient(ingredient_id)
    return (
        db.session.query(IngredientPriceHistory)
        .filter(IngredientPriceHistory.ingredient_id == ingredient_id)
        .order_by(IngredientPriceHistory.recorded_at.desc(), IngredientPriceHistory.id.desc())
        .limit(limit)
        .all()
    )


def price_trends(ingredient_id: int, *, days: int = 30) -> dict:
    """Min, max and average recorded price over the last N days."""
    ingredient = get_ingredient(ingredient_id)
    since = utcnow() - timedelta(days=days)
    rows = (
        db.session.query(IngredientPriceHistory)
        .filter(
            IngredientPriceHistory.ingredient_id == ingredient_id,
            IngredientPriceHistory.recorded_at >= since,
        )
        .order_by(IngredientPriceHistory.recorded_at.asc(), IngredientPriceHistory.id.asc())
        .all()
    )
    prices = [row.price_cents for row in rows]
    first = prices[0] if prices else ingredient.market_price_cents
    return {
        "ingredient_id": ingredient.id,
        "ingredient_name": ingredient.name,
        "days": days,
        "data_points": len(prices),
        "current_price_cents": ingredient.market_price_cents,
        "min_price_cents": min(prices) if prices else ingredient.market_price_cents,
        "max_price_cents": max(prices) if prices else ingredient.market_price_cents,
        "average_price_cents": round(sum(prices) / len(prices)) if prices else ingredient.market_price_cents,
        "period_change_percent": _percent_change(first, ingredient.market_price_cents),
        "history": [row.to_dict() for row in rows],
    }
