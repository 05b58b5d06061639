from __future__ import annotations

from ..extensions import db
from cafe_api.time_utils import to_utc_z


class PriceForecast(db.Model):
    """
    What-if pricing worksheet for one menu item.

    Profits are derived columns recomputed on every write; each update pushes
    the previous inputs and results onto history. Finalizing copies the shop
    and online prices onto the menu item and freezes the forecast.
    """
    __tablename__ = "price_forecasts"
    __table_args__ = (
        db.Index("ix_price_forecasts_menu_item", "menu_item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    outlet_id = db.Column(db.Integer, db.ForeignKey("outlets.id"), nullable=True, index=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id", ondelete="CASCADE"), nullable=False)
    menu_item_name = db.Column(db.String(128), nullable=False)

    make_price_cents = db.Column(db.Integer, nullable=False)
    packaging_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    shop_price_cents = db.Column(db.Integer, nullable=False)
    shop_delivery_price_cents = db.Column(db.Integer, nullable=False, default=0)
    online_price_cents = db.Column(db.Integer, nullable=False, default=0)
    online_discount_percent = db.Column(db.Float, nullable=False, default=0.0)
    online_deduction_percent = db.Column(db.Float, nullable=False, default=0.0)

    online_payout_cents = db.Column(db.Integer, nullable=False, default=0)
    online_profit_cents = db.Column(db.Integer, nullable=False, default=0)
    offline_profit_cents = db.Column(db.Integer, nullable=False, default=0)
    takeaway_profit_cents = db.Column(db.Integer, nullable=False, default=0)

    history = db.Column(db.JSON, nullable=False, default=list)

    is_finalized = db.Column(db.Boolean, nullable=False, default=False)
    finalized_at = db.Column(db.DateTime(timezone=True), nullable=True)
    finalized_by = db.Column(db.String(64), nullable=True)

    created_by = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "outlet_id": self.outlet_id,
            "menu_item_id": self.menu_item_id,
            "menu_item_name": self.menu_item_name,
            "make_price_cents": self.make_price_cents,
            "packaging_cost_cents": self.packaging_cost_cents,
            "shop_price_cents": self.shop_price_cents,
            "shop_delivery_price_cents": self.shop_delivery_price_cents,
            "online_price_cents": self.online_price_cents,
            "online_discount_percent": self.online_discount_percent,
            "online_deduction_percent": self.online_deduction_percent,
            "online_payout_cents": self.online_payout_cents,
            "online_profit_cents": self.online_profit_cents,
            "offline_profit_cents": self.offline_profit_cents,
            "takeaway_profit_cents": self.takeaway_profit_cents,
            "history": list(self.history or []),
            "is_finalized": self.is_finalized,
            "finalized_at": to_utc_z(self.finalized_at) if self.finalized_at else None,
            "finalized_by": self.finalized_by,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
