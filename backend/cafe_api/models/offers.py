from __future__ import annotations

from ..extensions import db
from cafe_api.time_utils import to_utc_z


DISCOUNT_TYPES = ("percentage", "flat", "bogo")


class Offer(db.Model):
    """
    Promotional code redeemable at checkout.

    DISCOUNT TYPES:
    - percentage: discount_percent of the order amount, capped by max_discount_cents
    - flat: discount_amount_cents off, never more than the order amount
    - bogo: the cheapest of two or more items is free
    """
    __tablename__ = "offers"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_offers_code"),
        db.Index("ix_offers_active_window", "is_active", "valid_from", "valid_till"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)

    title = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    code = db.Column(db.String(20), nullable=False)

    discount_type = db.Column(db.String(16), nullable=False)
    discount_percent = db.Column(db.Float, nullable=True)
    discount_amount_cents = db.Column(db.Integer, nullable=True)
    min_order_cents = db.Column(db.Integer, nullable=True)
    max_discount_cents = db.Column(db.Integer, nullable=True)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_till = db.Column(db.DateTime(timezone=True), nullable=False)

    usage_limit = db.Column(db.Integer, nullable=True)  # None = unlimited
    usage_count = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "title": self.title,
            "description": self.description,
            "code": self.code,
            "discount_type": self.discount_type,
            "discount_percent": self.discount_percent,
            "discount_amount_cents": self.discount_amount_cents,
            "min_order_cents": self.min_order_cents,
            "max_discount_cents": self.max_discount_cents,
            "valid_from": to_utc_z(self.valid_from),
            "valid_till": to_utc_z(self.valid_till),
            "usage_limit": self.usage_limit,
            "usage_count": self.usage_count,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
