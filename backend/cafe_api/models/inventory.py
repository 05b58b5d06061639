from __future__ import annotations

from ..extensions import db
from cafe_api.time_utils import to_iso_date, to_utc_z


STOCK_IN = "stock_in"
STOCK_OUT = "stock_out"
ADJUSTMENT = "adjustment"

IN_STOCK = "in_stock"
LOW_STOCK = "low_stock"
OUT_OF_STOCK = "out_of_stock"


class InventoryItem(db.Model):
    """
    Ingredient stock held at an outlet.

    current_stock only changes through single-statement UPDATEs issued by
    inventory_service (stock in/out/adjust), each paired with an
    InventoryTransaction row.
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "ingredient_name", name="uq_inventory_outlet_ingredient"),
        db.Index("ix_inventory_items_outlet_active", "outlet_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)

    ingredient_name = db.Column(db.String(128), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(16), nullable=False)

    current_stock = db.Column(db.Float, nullable=False, default=0.0)
    minimum_stock = db.Column(db.Float, nullable=False, default=0.0)  # Reorder point
    maximum_stock = db.Column(db.Float, nullable=False, default=0.0)
    reorder_quantity = db.Column(db.Float, nullable=False, default=0.0)

    # Weighted average cost per unit
    cost_per_unit_cents = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_price_cents = db.Column(db.Integer, nullable=True)

    supplier_name = db.Column(db.String(128), nullable=True)
    supplier_contact = db.Column(db.String(128), nullable=True)

    last_restock_at = db.Column(db.DateTime(timezone=True), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    storage_location = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(64), nullable=True)
    last_updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def status(self) -> str:
        if self.current_stock <= 0:
            return OUT_OF_STOCK
        if self.current_stock <= self.minimum_stock:
            return LOW_STOCK
        return IN_STOCK

    @property
    def total_value_cents(self) -> int:
        return int(round(self.current_stock * self.cost_per_unit_cents))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "ingredient_name": self.ingredient_name,
            "category": self.category,
            "unit": self.unit,
            "current_stock": self.current_stock,
            "minimum_stock": self.minimum_stock,
            "maximum_stock": self.maximum_stock,
            "reorder_quantity": self.reorder_quantity,
            "cost_per_unit_cents": self.cost_per_unit_cents,
            "last_purchase_price_cents": self.last_purchase_price_cents,
            "total_value_cents": self.total_value_cents,
            "status": self.status,
            "supplier_name": self.supplier_name,
            "supplier_contact": self.supplier_contact,
            "last_restock_at": to_utc_z(self.last_restock_at) if self.last_restock_at else None,
            "expiry_date": to_iso_date(self.expiry_date),
            "storage_location": self.storage_location,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "last_updated_by": self.last_updated_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Append-only stock movement record.

    TRANSACTION TYPES:
    - stock_in: Purchase / restock (quantity > 0, carries unit cost)
    - stock_out: Usage, wastage or sale consumption (quantity > 0)
    - adjustment: Signed correction after a physical count

    stock_before/stock_after are the values the atomic UPDATE actually moved
    between, so the ledger replays exactly.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.Index("ix_inventory_transactions_item_at", "inventory_id", "transaction_at"),
        db.Index("ix_inventory_transactions_outlet_at", "outlet_id", "transaction_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id", ondelete="CASCADE"), nullable=False)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True)
    ingredient_name = db.Column(db.String(128), nullable=False)

    transaction_type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(16), nullable=False)
    cost_per_unit_cents = db.Column(db.Integer, nullable=True)
    total_cost_cents = db.Column(db.Integer, nullable=True)

    stock_before = db.Column(db.Float, nullable=False)
    stock_after = db.Column(db.Float, nullable=False)

    reference_number = db.Column(db.String(64), nullable=True)  # PO number, invoice, etc.
    supplier_name = db.Column(db.String(128), nullable=True)
    reason = db.Column(db.String(128), nullable=False, default="")
    notes = db.Column(db.Text, nullable=True)

    performed_by = db.Column(db.String(64), nullable=False)
    transaction_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_id": self.inventory_id,
            "outlet_id": self.outlet_id,
            "ingredient_name": self.ingredient_name,
            "transaction_type": self.transaction_type,
            "quantity": self.quantity,
            "unit": self.unit,
            "cost_per_unit_cents": self.cost_per_unit_cents,
            "total_cost_cents": self.total_cost_cents,
            "stock_before": self.stock_before,
            "stock_after": self.stock_after,
            "reference_number": self.reference_number,
            "supplier_name": self.supplier_name,
            "reason": self.reason,
            "notes": self.notes,
            "performed_by": self.performed_by,
            "transaction_at": to_utc_z(self.transaction_at),
        }
