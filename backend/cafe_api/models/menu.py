from __future__ import annotations

from ..extensions import db
from cafe_api.time_utils import to_utc_z


class MenuCategory(db.Model):
    __tablename__ = "menu_categories"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "name", name="uq_menu_categories_outlet_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    subcategories = db.relationship(
        "MenuSubCategory",
        backref="category",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="MenuSubCategory.name",
    )

    def to_dict(self, *, include_subcategories: bool = False) -> dict:
        data = {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
        if include_subcategories:
            data["subcategories"] = [sub.to_dict() for sub in self.subcategories]
        return data


class MenuSubCategory(db.Model):
    __tablename__ = "menu_subcategories"
    __table_args__ = (
        db.UniqueConstraint("category_id", "name", name="uq_menu_subcategories_category_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("menu_categories.id", ondelete="CASCADE"), nullable=False, index=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "outlet_id": self.outlet_id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class MenuItem(db.Model):
    """
    A sellable menu item.

    price_cents is the counter (dine-in) price; online_price_cents is what the
    delivery platforms list. Both are rewritten when a price forecast is
    finalized.
    """
    __tablename__ = "menu_items"
    __table_args__ = (
        db.Index("ix_menu_items_outlet_available", "outlet_id", "is_available"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("menu_categories.id", ondelete="SET NULL"), nullable=True, index=True)
    subcategory_id = db.Column(db.Integer, db.ForeignKey("menu_subcategories.id", ondelete="SET NULL"), nullable=True)

    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price_cents = db.Column(db.Integer, nullable=False)
    online_price_cents = db.Column(db.Integer, nullable=True)

    is_available = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    category = db.relationship("MenuCategory", backref=db.backref("items", lazy=True))
    subcategory = db.relationship("MenuSubCategory", backref=db.backref("items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "subcategory_id": self.subcategory_id,
            "subcategory": self.subcategory.name if self.subcategory else None,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "online_price_cents": self.online_price_cents,
            "is_available": self.is_available,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
