# Overview: Service-layer operations for ingredient inventory; stock movements, costing and reports.

"""
Inventory Service

STOCK MOVEMENTS:
- stock_in:   + quantity, weighted average cost recomputed in the same UPDATE
- stock_out:  - quantity, refused if it would take stock below zero
- adjustment: signed correction (or absolute recount), refused below zero

Every movement is one guarded UPDATE on inventory_items plus one
InventoryTransaction row, committed together. The UPDATE is evaluated by the
database against the current row, so concurrent movements never overwrite
each other; stock_before/stock_after are read back inside the same
transaction.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryItem, InventoryTransaction
from ..models.inventory import ADJUSTMENT, IN_STOCK, LOW_STOCK, OUT_OF_STOCK, STOCK_IN, STOCK_OUT
from .concurrency import atomic_update, lock_for_update
from cafe_api.time_utils import utcnow


_EDITABLE_FIELDS = (
    "ingredient_name", "category", "unit", "minimum_stock", "maximum_stock", "reorder_quantity",
    "cost_per_unit_cents", "supplier_name", "supplier_contact", "expiry_date", "storage_location",
    "notes", "is_active",
)


def _scoped(q, outlet_id: int | None):
    if outlet_id is not None:
        q = q.filter(InventoryItem.outlet_id == outlet_id)
    return q


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

def list_items(*, outlet_id: int | None = None, active_only: bool = False, category: str | None = None) -> list[InventoryItem]:
    q = _scoped(db.session.query(InventoryItem), outlet_id)
    if active_only:
        q = q.filter(InventoryItem.is_active.is_(True))
    if category:
        q = q.filter(InventoryItem.category == category)
    return q.order_by(InventoryItem.ingredient_name.asc(), InventoryItem.id.asc()).all()


def get_item(item_id: int) -> InventoryItem:
    item = db.session.get(InventoryItem, item_id)
    if not item:
        raise NotFoundError("Inventory item not found")
    return item


def _check_levels(item: InventoryItem) -> None:
    if item.maximum_stock and (item.minimum_stock or 0) > item.maximum_stock:
        raise ValidationError("minimum_stock cannot exceed maximum_stock")


def create_item(data: dict, *, outlet_id: int, created_by: str) -> InventoryItem:
    exists = db.session.query(InventoryItem).filter(
        InventoryItem.outlet_id == outlet_id,
        db.func.lower(InventoryItem.ingredient_name) == data["ingredient_name"].lower(),
    ).first()
    if exists:
        raise ConflictError("Ingredient already exists at this outlet")

    item = InventoryItem(
        outlet_id=outlet_id,
        current_stock=data.get("current_stock") or 0.0,
        created_by=created_by,
        last_updated_by=created_by,
    )
    for key in _EDITABLE_FIELDS:
        if key in data and data[key] is not None:
            setattr(item, key, data[key])
    if item.current_stock < 0:
        raise ValidationError("current_stock cannot be negative")
    _check_levels(item)
    if item.current_stock > 0:
        item.last_restock_at = utcnow()

    db.session.add(item)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Ingredient already exists at this outlet")
    return item


def update_item(item_id: int, data: dict, *, updated_by: str) -> InventoryItem:
    """Edit descriptive fields; current_stock only moves through stock operations."""
    item = get_item(item_id)
    for key in _EDITABLE_FIELDS:
        if key in data:
            setattr(item, key, data[key])
    item.last_updated_by = updated_by
    try:
        _check_levels(item)
        db.session.commit()
    except ValidationError:
        db.session.rollback()
        raise
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Ingredient already exists at this outlet")
    return item


def delete_item(item_id: int) -> None:
    item = get_item(item_id)
    db.session.query(InventoryTransaction).filter(InventoryTransaction.inventory_id == item_id).delete(
        synchronize_session=False
    )
    db.session.delete(item)
    db.session.commit()


# ---------------------------------------------------------------------------
# Stock movements
# ---------------------------------------------------------------------------

def _record_movement(
    item: InventoryItem,
    *,
    transaction_type: str,
    quantity: float,
    delta: float,
    performed_by: str,
    reason: str,
    cost_per_unit_cents: int | None = None,
    reference_number: str | None = None,
    supplier_name: str | None = None,
    notes: str | None = None,
) -> InventoryTransaction:
    db.session.refresh(item)
    stock_after = item.current_stock
    txn = InventoryTransaction(
        inventory_id=item.id,
        outlet_id=item.outlet_id,
        ingredient_name=item.ingredient_name,
        transaction_type=transaction_type,
        quantity=quantity,
        unit=item.unit,
        cost_per_unit_cents=cost_per_unit_cents,
        total_cost_cents=int(round(quantity * cost_per_unit_cents)) if cost_per_unit_cents is not None else None,
        stock_before=stock_after - delta,
        stock_after=stock_after,
        reference_number=reference_number,
        supplier_name=supplier_name,
        reason=reason,
        notes=notes,
        performed_by=performed_by,
        transaction_at=utcnow(),
    )
    db.session.add(txn)
    db.session.commit()
    return txn


def stock_in(
    item_id: int,
    quantity: float,
    *,
    cost_per_unit_cents: int,
    performed_by: str,
    reference_number: str | None = None,
    supplier_name: str | None = None,
    notes: str | None = None,
) -> tuple[InventoryItem, InventoryTransaction]:
    if quantity <= 0:
        raise ValidationError("quantity must be greater than 0")
    item = get_item(item_id)

    stock = InventoryItem.current_stock
    weighted_cost = case(
        (stock + quantity > 0,
         db.func.round((stock * InventoryItem.cost_per_unit_cents + quantity * cost_per_unit_cents) / (stock + quantity))),
        else_=cost_per_unit_cents,
    )
    values = {
        "current_stock": stock + quantity,
        "cost_per_unit_cents": weighted_cost,
        "last_purchase_price_cents": cost_per_unit_cents,
        "last_restock_at": utcnow(),
        "last_updated_by": performed_by,
    }
    if supplier_name:
        values["supplier_name"] = supplier_name
    atomic_update(InventoryItem, InventoryItem.id == item.id, values=values)

    txn = _record_movement(
        item,
        transaction_type=STOCK_IN,
        quantity=quantity,
        delta=quantity,
        performed_by=performed_by,
        reason="Purchase",
        cost_per_unit_cents=cost_per_unit_cents,
        reference_number=reference_number,
        supplier_name=supplier_name,
        notes=notes,
    )
    return item, txn


def stock_out(
    item_id: int,
    quantity: float,
    *,
    performed_by: str,
    reason: str = "Usage",
    notes: str | None = None,
) -> tuple[InventoryItem, InventoryTransaction]:
    if quantity <= 0:
        raise ValidationError("quantity must be greater than 0")
    item = get_item(item_id)

    updated = atomic_update(
        InventoryItem,
        InventoryItem.id == item.id,
        InventoryItem.current_stock >= quantity,
        values={"current_stock": InventoryItem.current_stock - quantity, "last_updated_by": performed_by},
    )
    if not updated:
        db.session.rollback()
        raise ValidationError(f"Insufficient stock: {item.current_stock:g} {item.unit} available")

    txn = _record_movement(
        item,
        transaction_type=STOCK_OUT,
        quantity=quantity,
        delta=-quantity,
        performed_by=performed_by,
        reason=reason,
        cost_per_unit_cents=item.cost_per_unit_cents,
        notes=notes,
    )
    return item, txn


def adjust_stock(
    item_id: int,
    *,
    performed_by: str,
    reason: str,
    quantity: float | None = None,
    new_stock: float | None = None,
    notes: str | None = None,
) -> tuple[InventoryItem, InventoryTransaction]:
    """
    Signed correction (quantity) or physical recount (new_stock).

    A recount is turned into a delta against the row read under lock.
    """
    if (quantity is None) == (new_stock is None):
        raise ValidationError("Provide exactly one of quantity or new_stock")

    if new_stock is not None:
        if new_stock < 0:
            raise ValidationError("new_stock cannot be negative")
        item = lock_for_update(db.session.query(InventoryItem).filter_by(id=item_id)).first()
        if not item:
            raise NotFoundError("Inventory item not found")
        delta = new_stock - item.current_stock
    else:
        item = get_item(item_id)
        delta = quantity

    if delta == 0:
        raise ValidationError("Adjustment does not change stock")

    updated = atomic_update(
        InventoryItem,
        InventoryItem.id == item.id,
        InventoryItem.current_stock + delta >= 0,
        values={"current_stock": InventoryItem.current_stock + delta, "last_updated_by": performed_by},
    )
    if not updated:
        db.session.rollback()
        raise ValidationError("Adjustment would make stock negative")

    txn = _record_movement(
        item,
        transaction_type=ADJUSTMENT,
        quantity=delta,
        delta=delta,
        performed_by=performed_by,
        reason=reason,
        notes=notes,
    )
    return item, txn


# ---------------------------------------------------------------------------
# Queries and reports
# ---------------------------------------------------------------------------

def low_stock_items(*, outlet_id: int | None = None) -> list[InventoryItem]:
    return (
        _scoped(db.session.query(InventoryItem), outlet_id)
        .filter(
            InventoryItem.is_active.is_(True),
            InventoryItem.current_stock > 0,
            InventoryItem.current_stock <= InventoryItem.minimum_stock,
        )
        .order_by(InventoryItem.ingredient_name.asc())
        .all()
    )


def out_of_stock_items(*, outlet_id: int | None = None) -> list[InventoryItem]:
    return (
        _scoped(db.session.query(InventoryItem), outlet_id)
        .filter(InventoryItem.is_active.is_(True), InventoryItem.current_stock <= 0)
        .order_by(InventoryItem.ingredient_name.asc())
        .all()
    )


def expiring_items(*, days: int = 7, outlet_id: int | None = None) -> list[InventoryItem]:
    today = utcnow().date()
    horizon = today + timedelta(days=days)
    return (
        _scoped(db.session.query(InventoryItem), outlet_id)
        .filter(
            InventoryItem.is_active.is_(True),
            InventoryItem.expiry_date.isnot(None),
            InventoryItem.expiry_date <= horizon,
        )
        .order_by(InventoryItem.expiry_date.asc(), InventoryItem.ingredient_name.asc())
        .all()
    )


def inventory_report(*, outlet_id: int | None = None) -> dict:
    items = list_items(outlet_id=outlet_id, active_only=True)
    by_category: dict[str, dict] = {}
    counts = {IN_STOCK: 0, LOW_STOCK: 0, OUT_OF_STOCK: 0}
    total_value = 0

    for item in items:
        value = item.total_value_cents
        total_value += value
        counts[item.status] += 1
        bucket = by_category.setdefault(item.category or "Uncategorized", {"items": 0, "value_cents": 0})
        bucket["items"] += 1
        bucket["value_cents"] += value

    return {
        "outlet_id": outlet_id,
        "total_items": len(items),
        "total_value_cents": total_value,
        "in_stock_count": counts[IN_STOCK],
        "low_stock_count": counts[LOW_STOCK],
        "out_of_stock_count": counts[OUT_OF_STOCK],
        "by_category": by_category,
        "generated_at": utcnow().isoformat() + "Z",
    }


def item_transactions(item_id: int, *, limit: int = 100) -> list[InventoryTransaction]:
    get_item(item_id)
    return (
        db.session.query(InventoryTransaction)
        .filter(InventoryTransaction.inventory_id == item_id)
        .order_by(InventoryTransaction.transaction_at.desc(), InventoryTransaction.id.desc())
        .limit(limit)
        .all()
    )


def recent_transactions(*, outlet_id: int | None = None, limit: int = 50) -> list[InventoryTransaction]:
    q = db.session.query(InventoryTransaction)
    if outlet_id is not None:
        q = q.filter(InventoryTransaction.outlet_id == outlet_id)
    return q.order_by(InventoryTransaction.transaction_at.desc(), InventoryTransaction.id.desc()).limit(limit).all()
