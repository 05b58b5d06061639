from __future__ import annotations

from ..extensions import db
from cafe_api.time_utils import to_iso_date, to_utc_z


PAYMENT_METHODS = ("Cash", "Card", "UPI", "Online", "Bank Transfer")


class Sale(db.Model):
    """
    Counter sales recorded for a business day.

    One row per transaction; items are stored as JSON
    [{"menu_item_id", "item_name", "quantity", "unit_price_cents", "total_cents"}].
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_outlet_date", "outlet_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)

    sale_date = db.Column(db.Date, nullable=False, index=True)
    items = db.Column(db.JSON, nullable=False, default=list)
    total_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="Cash")
    notes = db.Column(db.Text, nullable=True)

    recorded_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "sale_date": to_iso_date(self.sale_date),
            "items": list(self.items or []),
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Expense(db.Model):
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_outlet_date", "outlet_id", "expense_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)

    expense_date = db.Column(db.Date, nullable=False, index=True)
    expense_type = db.Column(db.String(64), nullable=False)  # Inventory, Salary, Rent, Utilities, ...
    expense_source = db.Column(db.String(16), nullable=False, default="Offline")  # Offline or Online
    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    vendor = db.Column(db.String(128), nullable=True)
    payment_method = db.Column(db.String(32), nullable=False, default="Cash")
    invoice_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    recorded_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "expense_date": to_iso_date(self.expense_date),
            "expense_type": self.expense_type,
            "expense_source": self.expense_source,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "vendor": self.vendor,
            "payment_method": self.payment_method,
            "invoice_number": self.invoice_number,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OnlineSale(db.Model):
    """
    A delivery-platform order (Zomato / Swiggy) as reported by the platform.

    payout_cents is what the platform actually remits after discount and its
    own deduction; kpt/rwt are kitchen-preparation and rider-wait minutes.
    """
    __tablename__ = "online_sales"
    __table_args__ = (
        db.UniqueConstraint("platform", "order_id", name="uq_online_sales_platform_order"),
        db.Index("ix_online_sales_outlet_order_at", "outlet_id", "order_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)

    platform = db.Column(db.String(16), nullable=False)
    order_id = db.Column(db.String(64), nullable=False)
    customer_name = db.Column(db.String(128), nullable=True)
    order_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    distance_km = db.Column(db.Float, nullable=True)

    # [{"name", "quantity"}]
    ordered_items = db.Column(db.JSON, nullable=False, default=list)

    bill_subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    packaging_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    platform_deduction_cents = db.Column(db.Integer, nullable=False, default=0)
    payout_cents = db.Column(db.Integer, nullable=False, default=0)

    rating = db.Column(db.Float, nullable=True)
    review = db.Column(db.Text, nullable=True)
    kpt_minutes = db.Column(db.Float, nullable=True)
    rwt_minutes = db.Column(db.Float, nullable=True)

    recorded_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "platform": self.platform,
            "order_id": self.order_id,
            "customer_name": self.customer_name,
            "order_at": to_utc_z(self.order_at),
            "distance_km": self.distance_km,
            "ordered_items": list(self.ordered_items or []),
            "bill_subtotal_cents": self.bill_subtotal_cents,
            "packaging_cents": self.packaging_cents,
            "discount_cents": self.discount_cents,
            "platform_deduction_cents": self.platform_deduction_cents,
            "payout_cents": self.payout_cents,
            "rating": self.rating,
            "review": self.review,
            "kpt_minutes": self.kpt_minutes,
            "rwt_minutes": self.rwt_minutes,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
