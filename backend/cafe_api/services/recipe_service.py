# Overview: Service-layer operations for recipe costing sheets; line costing and selling price suggestions.

"""
Recipe Service

COSTING (all amounts in cents, each derived figure rounded half up):
- line cost         = quantity (in the ingredient's unit) x ingredient market price
- wastage           = ingredient subtotal x wastage_percent / 100
- overhead          = labour + rent + electricity + misc + wastage
- making cost       = ingredient subtotal + overhead
- profit            = making cost x profit_margin_percent / 100
- suggested price   = making cost + profit

A line may be entered in the ingredient's unit or its small/large partner
(gm <-> kg, ml <-> ltr). Anything else is refused.

Stored totals are recomputed on every save and whenever an ingredient used
by the recipe changes price (reprice_for_ingredient).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Ingredient, MenuItem, Recipe, RecipeIngredient


# unit -> (base unit, size in base units)
_UNIT_SCALE = {
    "kg": ("gm", 1000),
    "gm": ("gm", 1),
    "ltr": ("ml", 1000),
    "ml": ("ml", 1),
    "pc": ("pc", 1),
}

OVERHEAD_FIELDS = ("labour_cents", "rent_cents", "electricity_cents", "misc_cents")

DEFAULT_OVERHEADS = {
    "labour_cents": 1000,
    "rent_cents": 500,
    "electricity_cents": 300,
    "misc_cents": 200,
    "wastage_percent": 5.0,
    "profit_margin_percent": 30.0,
}


def _cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def quantity_in_unit(quantity: float, from_unit: str, to_unit: str) -> Decimal:
    """Convert quantity between compatible units."""
    for unit in (from_unit, to_unit):
        if unit not in _UNIT_SCALE:
            raise ValidationError(f"Unknown unit '{unit}'")
    from_base, from_size = _UNIT_SCALE[from_unit]
    to_base, to_size = _UNIT_SCALE[to_unit]
    if from_base != to_base:
        raise ValidationError(f"Cannot convert {from_unit} to {to_unit}")
    return Decimal(str(quantity)) * from_size / to_size


def line_cost(ingredient: Ingredient, quantity: float, unit: str | None = None) -> int:
    amount = quantity_in_unit(quantity, unit or ingredient.unit, ingredient.unit)
    return _cents(amount * ingredient.market_price_cents)


def calculate_breakdown(ingredient_subtotal_cents: int, overheads: dict) -> dict:
    """Overhead, making cost and suggested price for an ingredient subtotal."""
    wastage = _cents(Decimal(ingredient_subtotal_cents) * Decimal(str(overheads["wastage_percent"])) / 100)
    overhead = sum(overheads[key] for key in OVERHEAD_FIELDS) + wastage
    making = ingredient_subtotal_cents + overhead
    profit = _cents(Decimal(making) * Decimal(str(overheads["profit_margin_percent"])) / 100)
    return {
        "total_ingredient_cost_cents": ingredient_subtotal_cents,
        "wastage_cents": wastage,
        "total_overhead_cost_cents": overhead,
        "total_making_cost_cents": making,
        "profit_cents": profit,
        "suggested_selling_price_cents": making + profit,
    }


def _overheads(data: dict, recipe: Recipe | None = None) -> dict:
    values = {}
    for key in DEFAULT_OVERHEADS:
        if data.get(key) is not None:
            values[key] = data[key]
        elif recipe is not None:
            values[key] = getattr(recipe, key)
        else:
            values[key] = DEFAULT_OVERHEADS[key]
    return values


def _costed_lines(lines: list[dict]) -> list[RecipeIngredient]:
    """Build (unsaved) recipe lines at today's ingredient prices."""
    costed = []
    seen = set()
    for line in lines:
        ingredient = db.session.get(Ingredient, line["ingredient_id"])
        if ingredient is None:
            raise NotFoundError(f"Ingredient {line['ingredient_id']} not found")
        if not ingredient.is_active:
            raise ValidationError(f"Ingredient '{ingredient.name}' is inactive")
        if ingredient.id in seen:
            raise ValidationError(f"Ingredient '{ingredient.name}' is listed twice")
        seen.add(ingredient.id)
        unit = line.get("unit") or ingredient.unit
        costed.append(RecipeIngredient(
            ingredient_id=ingredient.id,
            ingredient_name=ingredient.name,
            quantity=line["quantity"],
            unit=unit,
            unit_price_cents=ingredient.market_price_cents,
            total_cost_cents=line_cost(ingredient, line["quantity"], unit),
        ))
    return costed


def preview(data: dict) -> dict:
    """Cost a recipe without saving it."""
    lines = _costed_lines(data.get("ingredients") or [])
    overheads = _overheads(data)
    result = calculate_breakdown(sum(line.total_cost_cents for line in lines), overheads)
    result["ingredients"] = [line.to_dict() for line in lines]
    result.update(overheads)
    return result


def _apply_totals(recipe: Recipe) -> None:
    breakdown = calculate_breakdown(sum(line.total_cost_cents for line in recipe.lines), _overheads({}, recipe))
    recipe.total_ingredient_cost_cents = breakdown["total_ingredient_cost_cents"]
    recipe.total_overhead_cost_cents = breakdown["total_overhead_cost_cents"]
    recipe.total_making_cost_cents = breakdown["total_making_cost_cents"]
    recipe.suggested_selling_price_cents = breakdown["suggested_selling_price_cents"]


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------

def list_recipes() -> list[Recipe]:
    return db.session.query(Recipe).order_by(Recipe.menu_item_name.asc()).all()


def get_recipe(recipe_id: int) -> Recipe:
    recipe = db.session.get(Recipe, recipe_id)
    if not recipe:
        raise NotFoundError("Recipe not found")
    return recipe


def get_by_menu_item_name(name: str) -> Recipe:
    recipe = db.session.query(Recipe).filter(db.func.lower(Recipe.menu_item_name) == (name or "").lower()).first()
    if not recipe:
        raise NotFoundError(f"No recipe for '{name}'")
    return recipe


def _check_menu_item(menu_item_id: int | None) -> None:
    if menu_item_id is not None and db.session.get(MenuItem, menu_item_id) is None:
        raise NotFoundError("Menu item not found")


def create_recipe(data: dict, *, created_by: str) -> Recipe:
    name = data["menu_item_name"]
    if db.session.query(Recipe.id).filter(db.func.lower(Recipe.menu_item_name) == name.lower()).first():
        raise ConflictError(f"A recipe for '{name}' already exists")
    _check_menu_item(data.get("menu_item_id"))

    recipe = Recipe(
        menu_item_name=name,
        menu_item_id=data.get("menu_item_id"),
        actual_selling_price_cents=data.get("actual_selling_price_cents"),
        notes=data.get("notes"),
        created_by=created_by,
        **_overheads(data),
    )
    recipe.lines = _costed_lines(data.get("ingredients") or [])
    _apply_totals(recipe)
    db.session.add(recipe)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"A recipe for '{name}' already exists")
    return recipe


def update_recipe(recipe_id: int, data: dict) -> Recipe:
    """Partial update; an ingredients list replaces every line and re-costs it."""
    recipe = get_recipe(recipe_id)
    if "menu_item_name" in data and data["menu_item_name"].lower() != recipe.menu_item_name.lower():
        clash = db.session.query(Recipe.id).filter(
            db.func.lower(Recipe.menu_item_name) == data["menu_item_name"].lower()
        ).first()
        if clash:
            raise ConflictError(f"A recipe for '{data['menu_item_name']}' already exists")
    if "menu_item_id" in data:
        _check_menu_item(data["menu_item_id"])

    for key in ("menu_item_name", "menu_item_id", "actual_selling_price_cents", "notes"):
        if key in data:
            setattr(recipe, key, data[key])
    for key, value in _overheads(data, recipe).items():
        setattr(recipe, key, value)
    if "ingredients" in data:
        recipe.lines = _costed_lines(data["ingredients"] or [])
    _apply_totals(recipe)
    db.session.commit()
    return recipe


def delete_recipe(recipe_id: int) -> None:
    recipe = get_recipe(recipe_id)
    db.session.delete(recipe)
    db.session.commit()


def making_cost(name: str) -> dict:
    recipe = get_by_menu_item_name(name)
    return {
        "menu_item_name": recipe.menu_item_name,
        "total_making_cost_cents": recipe.total_making_cost_cents,
        "suggested_selling_price_cents": recipe.suggested_selling_price_cents,
        "actual_selling_price_cents": recipe.actual_selling_price_cents,
    }


def reprice_for_ingredient(ingredient: Ingredient) -> int:
    """Re-cost every line using ingredient and refresh recipe totals. Caller commits."""
    lines = db.session.query(RecipeIngredient).filter(RecipeIngredient.ingredient_id == ingredient.id).all()
    recipes = {}
    for line in lines:
        line.ingredient_name = ingredient.name
        line.unit_price_cents = ingredient.market_price_cents
        line.total_cost_cents = line_cost(ingredient, line.quantity, line.unit)
        recipes[line.recipe_id] = line.recipe
    for recipe in recipes.values():
        _apply_totals(recipe)
    return len(recipes)
