from __future__ import annotations

from ..extensions import db
from cafe_api.time_utils import to_utc_z


INGREDIENT_CATEGORIES = ("vegetables", "spices", "dairy", "meat", "grains", "oils", "beverages", "others")
INGREDIENT_UNITS = ("kg", "gm", "ltr", "ml", "pc")
PRICE_SOURCES = ("manual", "supplier", "agmarknet", "scraped", "api")


class Ingredient(db.Model):
    """
    Catalogue entry with the current market price per unit.

    Price changes go through ingredient_service.change_price so every change
    leaves an IngredientPriceHistory row and reprices the recipes using it.
    """
    __tablename__ = "ingredients"
    __table_args__ = (
        db.Index("ix_ingredients_category_active", "category", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    category = db.Column(db.String(32), nullable=False, default="others")
    unit = db.Column(db.String(8), nullable=False)

    market_price_cents = db.Column(db.Integer, nullable=False, default=0)
    previous_price_cents = db.Column(db.Integer, nullable=True)
    price_change_percent = db.Column(db.Float, nullable=True)
    price_source = db.Column(db.String(16), nullable=False, default="manual")
    price_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "market_price_cents": self.market_price_cents,
            "previous_price_cents": self.previous_price_cents,
            "price_change_percent": self.price_change_percent,
            "price_source": self.price_source,
            "price_updated_at": to_utc_z(self.price_updated_at),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class IngredientPriceHistory(db.Model):
    """Append-only log of market prices; change_percent is against the price it replaced."""
    __tablename__ = "ingredient_price_history"
    __table_args__ = (
        db.Index("ix_ingredient_price_history_ingredient_at", "ingredient_id", "recorded_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ingredient_id = db.Column(db.Integer, db.ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False)
    ingredient_name = db.Column(db.String(128), nullable=False)

    price_cents = db.Column(db.Integer, nullable=False)
    unit = db.Column(db.String(8), nullable=False)
    source = db.Column(db.String(16), nullable=False, default="manual")
    market_name = db.Column(db.String(128), nullable=True)
    change_percent = db.Column(db.Float, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    recorded_by = db.Column(db.String(64), nullable=False)
    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ingredient_id": self.ingredient_id,
            "ingredient_name": self.ingredient_name,
            "price_cents": self.price_cents,
            "unit": self.unit,
            "source": self.source,
            "market_name": self.market_name,
            "change_percent": self.change_percent,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "recorded_at": to_utc_z(self.recorded_at),
        }


class Recipe(db.Model):
    """
    Costing sheet for one menu item.

    The *_cents totals are derived: recipe_service recomputes them whenever
    the lines, the overheads or an ingredient price change.
    """
    __tablename__ = "recipes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id", ondelete="SET NULL"), nullable=True, index=True)
    menu_item_name = db.Column(db.String(128), nullable=False, unique=True)

    # Per-plate overheads
    labour_cents = db.Column(db.Integer, nullable=False, default=1000)
    rent_cents = db.Column(db.Integer, nullable=False, default=500)
    electricity_cents = db.Column(db.Integer, nullable=False, default=300)
    misc_cents = db.Column(db.Integer, nullable=False, default=200)
    wastage_percent = db.Column(db.Float, nullable=False, default=5.0)
    profit_margin_percent = db.Column(db.Float, nullable=False, default=30.0)

    total_ingredient_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_overhead_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    total_making_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    suggested_selling_price_cents = db.Column(db.Integer, nullable=False, default=0)
    actual_selling_price_cents = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    lines = db.relationship(
        "RecipeIngredient",
        backref="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "menu_item_id": self.menu_item_id,
            "menu_item_name": self.menu_item_name,
            "ingredients": [line.to_dict() for line in self.lines],
            "labour_cents": self.labour_cents,
            "rent_cents": self.rent_cents,
            "electricity_cents": self.electricity_cents,
            "misc_cents": self.misc_cents,
            "wastage_percent": self.wastage_percent,
            "profit_margin_percent": self.profit_margin_percent,
            "total_ingredient_cost_cents": self.total_ingredient_cost_cents,
            "total_overhead_cost_cents": self.total_overhead_cost_cents,
            "total_making_cost_cents": self.total_making_cost_cents,
            "suggested_selling_price_cents": self.suggested_selling_price_cents,
            "actual_selling_price_cents": self.actual_selling_price_cents,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RecipeIngredient(db.Model):
    __tablename__ = "recipe_ingredients"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    recipe_id = db.Column(db.Integer, db.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True)
    ingredient_id = db.Column(db.Integer, db.ForeignKey("ingredients.id"), nullable=False, index=True)
    ingredient_name = db.Column(db.String(128), nullable=False)

    quantity = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(8), nullable=False)
    # Price per ingredient unit at the time of costing
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cost_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "ingredient_id": self.ingredient_id,
            "ingredient_name": self.ingredient_name,
            "quantity": self.quantity,
            "unit": self.unit,
            "unit_price_cents": self.unit_price_cents,
            "total_cost_cents": self.total_cost_cents,
        }


class OverheadCost(db.Model):
    """
    A monthly running cost spread over operating minutes.

    outlet_id NULL means the cost is shared by every outlet.
    """
    __tablename__ = "overhead_costs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)

    cost_type = db.Column(db.String(64), nullable=False)  # Rent, Labour, Electricity, ...
    monthly_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    operational_hours_per_day = db.Column(db.Integer, nullable=False, default=11)
    working_days_per_month = db.Column(db.Integer, nullable=False, default=30)
    description = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(64), nullable=True)
    last_updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def cost_per_minute_cents(self) -> float:
        minutes = self.working_days_per_month * self.operational_hours_per_day * 60
        return self.monthly_cost_cents / minutes if minutes else 0.0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "cost_type": self.cost_type,
            "monthly_cost_cents": self.monthly_cost_cents,
            "operational_hours_per_day": self.operational_hours_per_day,
            "working_days_per_month": self.working_days_per_month,
            "cost_per_minute_cents": round(self.cost_per_minute_cents, 4),
            "description": self.description,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "last_updated_by": self.last_updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
