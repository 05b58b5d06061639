# Overview: Service-layer operations for the menu; categories, subcategories and items.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import MenuCategory, MenuItem, MenuSubCategory, PriceForecast, Recipe


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

def _outlet_scope(q, model, outlet_id: int | None):
    """Outlet rows plus shared (outlet-less) rows; None means every outlet."""
    if outlet_id is None:
        return q
    return q.filter(db.or_(model.outlet_id == outlet_id, model.outlet_id.is_(None)))


def list_categories(*, outlet_id: int | None = None, active_only: bool = False) -> list[MenuCategory]:
    q = _outlet_scope(db.session.query(MenuCategory), MenuCategory, outlet_id)
    if active_only:
        q = q.filter(MenuCategory.is_active.is_(True))
    return q.order_by(MenuCategory.name.asc()).all()


def get_category(category_id: int) -> MenuCategory:
    category = db.session.get(MenuCategory, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def _find_category_by_name(name: str, outlet_id: int | None) -> MenuCategory | None:
    return (
        db.session.query(MenuCategory)
        .filter(db.func.lower(MenuCategory.name) == name.lower())
        .filter(MenuCategory.outlet_id.is_(None) if outlet_id is None else MenuCategory.outlet_id == outlet_id)
        .first()
    )


def create_category(*, name: str, outlet_id: int | None, description: str | None = None) -> MenuCategory:
    if _find_category_by_name(name, outlet_id):
        raise ConflictError("Category already exists")
    category = MenuCategory(name=name, outlet_id=outlet_id, description=description)
    db.session.add(category)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists")
    return category


def update_category(category_id: int, data: dict) -> MenuCategory:
    category = get_category(category_id)
    if data.get("name") and data["name"].lower() != category.name.lower():
        if _find_category_by_name(data["name"], category.outlet_id):
            raise ConflictError("Category already exists")
    for key in ("name", "description", "is_active"):
        if key in data and data[key] is not None:
            setattr(category, key, data[key])
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Category already exists")
    return category


def delete_category(category_id: int) -> None:
    category = get_category(category_id)
    db.session.query(MenuItem).filter(MenuItem.category_id == category_id).update(
        {MenuItem.category_id: None, MenuItem.subcategory_id: None}, synchronize_session=False
    )
    db.session.delete(category)
    db.session.commit()


def apply_category_import(records: list[dict], *, outlet_id: int | None) -> dict:
    """
    Create the categories and subcategories named by an upload.

    Existing names (case-insensitive) are reused, so re-uploading the same
    sheet is a no-op.
    """
    created_categories = 0
    created_subcategories = 0
    for record in records:
        category = _find_category_by_name(record["name"], outlet_id)
        if category is None:
            category = MenuCategory(name=record["name"], outlet_id=outlet_id)
            db.session.add(category)
            db.session.flush()
            created_categories += 1

        existing = {sub.name.lower() for sub in category.subcategories}
        for sub_name in record.get("subcategories", []):
            if sub_name.lower() in existing:
                continue
            db.session.add(MenuSubCategory(category_id=category.id, outlet_id=outlet_id, name=sub_name))
            existing.add(sub_name.lower())
            created_subcategories += 1

    db.session.commit()
    return {"categories_created": created_categories, "subcategories_created": created_subcategories}


# ---------------------------------------------------------------------------
# Subcategories
# ---------------------------------------------------------------------------

def list_subcategories(*, category_id: int | None = None, outlet_id: int | None = None) -> list[MenuSubCategory]:
    q = _outlet_scope(db.session.query(MenuSubCategory), MenuSubCategory, outlet_id)
    if category_id is not None:
        q = q.filter(MenuSubCategory.category_id == category_id)
    return q.order_by(MenuSubCategory.name.asc()).all()


def get_subcategory(subcategory_id: int) -> MenuSubCategory:
    sub = db.session.get(MenuSubCategory, subcategory_id)
    if not sub:
        raise NotFoundError("Subcategory not found")
    return sub


def create_subcategory(*, category_id: int, name: str, description: str | None = None) -> MenuSubCategory:
    category = get_category(category_id)
    if any(sub.name.lower() == name.lower() for sub in category.subcategories):
        raise ConflictError("Subcategory already exists in this category")
    sub = MenuSubCategory(category_id=category.id, outlet_id=category.outlet_id, name=name, description=description)
    db.session.add(sub)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Subcategory already exists in this category")
    return sub


def update_subcategory(subcategory_id: int, data: dict) -> MenuSubCategory:
    sub = get_subcategory(subcategory_id)
    if data.get("category_id") is not None:
        sub.category_id = get_category(data["category_id"]).id
    for key in ("name", "description"):
        if key in data and data[key] is not None:
            setattr(sub, key, data[key])
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Subcategory already exists in this category")
    return sub


def delete_subcategory(subcategory_id: int) -> None:
    sub = get_subcategory(subcategory_id)
    db.session.query(MenuItem).filter(MenuItem.subcategory_id == subcategory_id).update(
        {MenuItem.subcategory_id: None}, synchronize_session=False
    )
    db.session.delete(sub)
    db.session.commit()


# ---------------------------------------------------------------------------
# Menu items
# ---------------------------------------------------------------------------

def list_menu_items(*, outlet_id: int | None = None, available_only: bool = False, category_id: int | None = None) -> list[MenuItem]:
    q = _outlet_scope(db.session.query(MenuItem), MenuItem, outlet_id)
    if available_only:
        q = q.filter(MenuItem.is_available.is_(True))
    if category_id is not None:
        q = q.filter(MenuItem.category_id == category_id)
    return q.order_by(MenuItem.name.asc(), MenuItem.id.asc()).all()


def get_menu_item(item_id: int) -> MenuItem:
    item = db.session.get(MenuItem, item_id)
    if not item:
        raise NotFoundError("Menu item not found")
    return item


def _check_links(category_id: int | None, subcategory_id: int | None) -> None:
    if category_id is not None:
        get_category(category_id)
    if subcategory_id is not None:
        sub = get_subcategory(subcategory_id)
        if category_id is not None and sub.category_id != category_id:
            raise ValidationError("subcategory_id does not belong to category_id")


def create_menu_item(data: dict, *, outlet_id: int | None) -> MenuItem:
    _check_links(data.get("category_id"), data.get("subcategory_id"))
    item = MenuItem(
        outlet_id=outlet_id,
        name=data["name"],
        description=data.get("description"),
        price_cents=data["price_cents"],
        online_price_cents=data.get("online_price_cents"),
        category_id=data.get("category_id"),
        subcategory_id=data.get("subcategory_id"),
        is_available=data.get("is_available", True),
    )
    db.session.add(item)
    db.session.commit()
    return item


def update_menu_item(item_id: int, data: dict) -> MenuItem:
    item = get_menu_item(item_id)
    _check_links(
        data.get("category_id", item.category_id),
        data.get("subcategory_id", item.subcategory_id),
    )
    for key in ("name", "description", "price_cents", "online_price_cents", "category_id", "subcategory_id", "is_available"):
        if key in data:
            setattr(item, key, data[key])
    db.session.commit()
    return item


def delete_menu_item(item_id: int) -> None:
    item = get_menu_item(item_id)
    db.session.query(PriceForecast).filter(PriceForecast.menu_item_id == item_id).delete(synchronize_session=False)
    db.session.query(Recipe).filter(Recipe.menu_item_id == item_id).update({"menu_item_id": None}, synchronize_session=False)
    db.session.delete(item)
    db.session.commit()
