from __future__ import annotations

from ..extensions import db
from cafe_api.time_utils import to_utc_z


class Outlet(db.Model):
    """
    A physical cafe location.

    Most business data (menu, sales, expenses, inventory, reconciliation,
    forecasts) carries an outlet_id so that each location's books stay
    separate.
    """
    __tablename__ = "outlets"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_outlets_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), nullable=False)  # e.g. "MT001"

    address = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    state = db.Column(db.String(128), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    manager_name = db.Column(db.String(128), nullable=True)

    opening_time = db.Column(db.String(5), nullable=False, default="08:00")
    closing_time = db.Column(db.String(5), nullable=False, default="22:00")
    tax_percentage = db.Column(db.Float, nullable=False, default=5.0)
    accepts_online_orders = db.Column(db.Boolean, nullable=False, default=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "phone_number": self.phone_number,
            "email": self.email,
            "manager_name": self.manager_name,
            "opening_time": self.opening_time,
            "closing_time": self.closing_time,
            "tax_percentage": self.tax_percentage,
            "accepts_online_orders": self.accepts_online_orders,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
