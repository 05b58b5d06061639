from __future__ import annotations

from ..extensions import db
from cafe_api.time_utils import to_utc_z


EXPENSE_SOURCES = ("Offline", "Online")


class ExpenseType(db.Model):
    """
    Allowed values for Expense.expense_type, kept separately for offline
    (counter) and online (delivery platform) expenses.
    """
    __tablename__ = "expense_types"
    __table_args__ = (
        db.UniqueConstraint("source", "name", name="uq_expense_types_source_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    source = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(64), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source": self.source,
            "expense_type": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PlatformCharge(db.Model):
    """Monthly fee a delivery platform bills an outlet on top of per-order deductions."""
    __tablename__ = "platform_charges"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "platform", "year", "month", name="uq_platform_charges_outlet_month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)

    platform = db.Column(db.String(16), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)
    charges_cents = db.Column(db.Integer, nullable=False)
    charge_type = db.Column(db.String(32), nullable=True)  # Commission, Subscription, Other
    notes = db.Column(db.Text, nullable=True)

    recorded_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "platform": self.platform,
            "year": self.year,
            "month": self.month,
            "charges_cents": self.charges_cents,
            "charge_type": self.charge_type,
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OperationalExpense(db.Model):
    """
    Month-level running costs for an outlet.

    rent_cents is not entered: it is the month's offline "Rent" expenses,
    recomputed on every save. Operational expenses are always paid in cash.
    """
    __tablename__ = "operational_expenses"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "year", "month", name="uq_operational_expenses_outlet_month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)

    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)

    rent_cents = db.Column(db.Integer, nullable=False, default=0)
    cook_salary_cents = db.Column(db.Integer, nullable=False, default=0)
    helper_salary_cents = db.Column(db.Integer, nullable=False, default=0)
    electricity_cents = db.Column(db.Integer, nullable=False, default=0)
    machine_maintenance_cents = db.Column(db.Integer, nullable=False, default=0)
    misc_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    recorded_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "year": self.year,
            "month": self.month,
            "rent_cents": self.rent_cents,
            "cook_salary_cents": self.cook_salary_cents,
            "helper_salary_cents": self.helper_salary_cents,
            "electricity_cents": self.electricity_cents,
            "machine_maintenance_cents": self.machine_maintenance_cents,
            "misc_cents": self.misc_cents,
            "total_cents": self.total_cents,
            "payment_method": "Cash",
            "notes": self.notes,
            "recorded_by": self.recorded_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
