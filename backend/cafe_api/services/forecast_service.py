# Overview: Service-layer operations for price forecasts; profit arithmetic, revision history and finalization.

"""
Price Forecast Service

PROFIT MODEL (all money in cents, percentages 0-100):
    base            = online_price + packaging
    after_discount  = base - base * discount% / 100
    payout          = max(0, after_discount - after_discount * deduction% / 100)
    online_profit   = max(0, payout - make_price)
    offline_profit  = max(0, shop_price - make_price)
    takeaway_profit = max(0, shop_delivery_price - (make_price + packaging))

Intermediate values are Decimal; results are rounded half-up to the cent.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import MenuItem, PriceForecast
from cafe_api.time_utils import to_utc_z, utcnow


INPUT_FIELDS = (
    "make_price_cents",
    "packaging_cost_cents",
    "shop_price_cents",
    "shop_delivery_price_cents",
    "online_price_cents",
    "online_discount_percent",
    "online_deduction_percent",
)
RESULT_FIELDS = (
    "online_payout_cents",
    "online_profit_cents",
    "offline_profit_cents",
    "takeaway_profit_cents",
)

_HUNDRED = Decimal(100)
_ZERO = Decimal(0)


def _cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _dec(value) -> Decimal:
    return Decimal(str(value or 0))


def compute_profits(
    *,
    make_price_cents: int,
    packaging_cost_cents: int = 0,
    shop_price_cents: int = 0,
    shop_delivery_price_cents: int = 0,
    online_price_cents: int = 0,
    online_discount_percent: float = 0.0,
    online_deduction_percent: float = 0.0,
) -> dict:
    make = _dec(make_price_cents)
    packaging = _dec(packaging_cost_cents)

    base = _dec(online_price_cents) + packaging
    after_discount = base - base * _dec(online_discount_percent) / _HUNDRED
    payout = max(_ZERO, after_discount - after_discount * _dec(online_deduction_percent) / _HUNDRED)

    return {
        "online_payout_cents": _cents(payout),
        "online_profit_cents": _cents(max(_ZERO, payout - make)),
        "offline_profit_cents": _cents(max(_ZERO, _dec(shop_price_cents) - make)),
        "takeaway_profit_cents": _cents(max(_ZERO, _dec(shop_delivery_price_cents) - (make + packaging))),
    }


def _inputs_of(forecast: PriceForecast) -> dict:
    return {key: getattr(forecast, key) for key in INPUT_FIELDS}


def _snapshot(forecast: PriceForecast, *, changed_by: str) -> dict:
    entry = {key: getattr(forecast, key) for key in INPUT_FIELDS + RESULT_FIELDS}
    entry["changed_at"] = to_utc_z(utcnow())
    entry["changed_by"] = changed_by
    return entry


def list_forecasts(*, outlet_id: int | None = None, menu_item_id: int | None = None) -> list[PriceForecast]:
    q = db.session.query(PriceForecast)
    if outlet_id is not None:
        q = q.filter(PriceForecast.outlet_id == outlet_id)
    if menu_item_id is not None:
        q = q.filter(PriceForecast.menu_item_id == menu_item_id)
    return q.order_by(PriceForecast.updated_at.desc(), PriceForecast.id.desc()).all()


def get_forecast(forecast_id: int) -> PriceForecast:
    forecast = db.session.get(PriceForecast, forecast_id)
    if not forecast:
        raise NotFoundError("Price forecast not found")
    return forecast


def create_forecast(data: dict, *, outlet_id: int | None, created_by: str) -> PriceForecast:
    item = db.session.get(MenuItem, data["menu_item_id"])
    if not item:
        raise NotFoundError("Menu item not found")

    inputs = {key: data[key] for key in INPUT_FIELDS if data.get(key) is not None}
    forecast = PriceForecast(
        outlet_id=outlet_id if outlet_id is not None else item.outlet_id,
        menu_item_id=item.id,
        menu_item_name=item.name,
        history=[],
        created_by=created_by,
        **inputs,
    )
    for key in INPUT_FIELDS:
        if getattr(forecast, key) is None:
            setattr(forecast, key, 0.0 if key.endswith("_percent") else 0)
    for key, value in compute_profits(**_inputs_of(forecast)).items():
        setattr(forecast, key, value)

    db.session.add(forecast)
    db.session.commit()
    return forecast


def update_forecast(forecast_id: int, data: dict, *, changed_by: str) -> PriceForecast:
    forecast = get_forecast(forecast_id)
    if forecast.is_finalized:
        raise ValidationError("Finalized forecasts cannot be modified")

    history = list(forecast.history or [])
    history.append(_snapshot(forecast, changed_by=changed_by))

    for key in INPUT_FIELDS:
        if data.get(key) is not None:
            setattr(forecast, key, data[key])
    for key, value in compute_profits(**_inputs_of(forecast)).items():
        setattr(forecast, key, value)

    # Reassign so the JSON column is flagged dirty
    forecast.history = history
    db.session.commit()
    return forecast


def delete_forecast(forecast_id: int) -> None:
    forecast = get_forecast(forecast_id)
    if forecast.is_finalized:
        raise ValidationError("Finalized forecasts cannot be deleted")
    db.session.delete(forecast)
    db.session.commit()


def finalize_forecast(forecast_id: int, *, finalized_by: str) -> tuple[PriceForecast, MenuItem]:
    """Copy the forecast prices onto the menu item and freeze the forecast."""
    forecast = get_forecast(forecast_id)
    if forecast.is_finalized:
        raise ValidationError("Forecast is already finalized")
    item = db.session.get(MenuItem, forecast.menu_item_id)
    if not item:
        raise NotFoundError("Menu item not found")

    item.price_cents = forecast.shop_price_cents
    item.online_price_cents = forecast.online_price_cents
    forecast.is_finalized = True
    forecast.finalized_at = utcnow()
    forecast.finalized_by = finalized_by
    db.session.commit()
    return forecast, item
