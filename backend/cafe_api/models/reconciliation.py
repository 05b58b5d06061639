from __future__ import annotations

from ..extensions import db
from cafe_api.time_utils import to_iso_date, to_utc_z


class CashReconciliation(db.Model):
    """
    End-of-day comparison of expected vs. counted cash, coins and online income.

    Totals and deficits are derived in to_dict; a negative deficit is a surplus.
    One record per outlet per business day.
    """
    __tablename__ = "cash_reconciliations"
    __table_args__ = (
        db.UniqueConstraint("outlet_id", "reconciliation_date", name="uq_cash_reconciliations_outlet_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)
    reconciliation_date = db.Column(db.Date, nullable=False, index=True)

    expected_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_coins_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_online_cents = db.Column(db.Integer, nullable=False, default=0)

    counted_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    counted_coins_cents = db.Column(db.Integer, nullable=False, default=0)
    actual_online_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    reconciled_by = db.Column(db.String(64), nullable=False)
    is_reconciled = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @property
    def expected_total_cents(self) -> int:
        return self.expected_cash_cents + self.expected_coins_cents + self.expected_online_cents

    @property
    def counted_total_cents(self) -> int:
        return self.counted_cash_cents + self.counted_coins_cents + self.actual_online_cents

    @property
    def total_deficit_cents(self) -> int:
        return self.expected_total_cents - self.counted_total_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "reconciliation_date": to_iso_date(self.reconciliation_date),
            "expected_cash_cents": self.expected_cash_cents,
            "expected_coins_cents": self.expected_coins_cents,
            "expected_online_cents": self.expected_online_cents,
            "expected_total_cents": self.expected_total_cents,
            "counted_cash_cents": self.counted_cash_cents,
            "counted_coins_cents": self.counted_coins_cents,
            "actual_online_cents": self.actual_online_cents,
            "counted_total_cents": self.counted_total_cents,
            "cash_deficit_cents": self.expected_cash_cents - self.counted_cash_cents,
            "coin_deficit_cents": self.expected_coins_cents - self.counted_coins_cents,
            "online_deficit_cents": self.expected_online_cents - self.actual_online_cents,
            "total_deficit_cents": self.total_deficit_cents,
            "notes": self.notes,
            "reconciled_by": self.reconciled_by,
            "is_reconciled": self.is_reconciled,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
