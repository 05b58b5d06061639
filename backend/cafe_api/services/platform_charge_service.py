# Overview: Service-layer operations for monthly delivery-platform charges and net payout figures.

"""
Platform Charge Service

A platform charge is a monthly amount (subscription, commission top-up, ...)
billed per outlet, platform and calendar month. It is not attached to any
order, so it only shows up in period figures:

    net_payout            = item_subtotal + packaging - discount - deduction - monthly_charges
    effective_deduction % = (deduction + monthly_charges) / item_subtotal x 100

A month counts towards a period when any day of it falls inside the period.
The effective deduction over the trailing PLATFORM_CHARGE_LOOKBACK_DAYS is
what price forecasts use when no online_deduction_percent is supplied.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import PlatformCharge
from . import online_sale_service
from cafe_api.time_utils import utcnow


MIN_YEAR = 2020
MAX_YEAR = 2100


def _month_index(year: int, month: int) -> int:
    return year * 12 + (month - 1)


def list_charges(*, outlet_id: int | None = None, platform: str | None = None) -> list[PlatformCharge]:
    q = db.session.query(PlatformCharge)
    if outlet_id is not None:
        q = q.filter(PlatformCharge.outlet_id == outlet_id)
    if platform:
        q = q.filter(PlatformCharge.platform == platform)
    return q.order_by(PlatformCharge.year.desc(), PlatformCharge.month.desc(), PlatformCharge.platform.asc()).all()


def get_charge(charge_id: int) -> PlatformCharge:
    charge = db.session.get(PlatformCharge, charge_id)
    if not charge:
        raise NotFoundError("Platform charge not found")
    return charge


def find_charge(*, outlet_id: int | None, platform: str, year: int, month: int) -> PlatformCharge | None:
    return db.session.query(PlatformCharge).filter_by(
        outlet_id=outlet_id, platform=platform, year=year, month=month
    ).first()


def create_charge(data: dict, *, outlet_id: int | None, recorded_by: str) -> PlatformCharge:
    platform, year, month = data["platform"], data["year"], data["month"]
    duplicate = f"Platform charge already exists for {platform} {month}/{year}. Use update instead."
    if find_charge(outlet_id=outlet_id, platform=platform, year=year, month=month):
        raise ConflictError(duplicate)

    charge = PlatformCharge(
        outlet_id=outlet_id,
        platform=platform,
        year=year,
        month=month,
        charges_cents=data["charges_cents"],
        charge_type=data.get("charge_type"),
        notes=data.get("notes"),
        recorded_by=recorded_by,
    )
    db.session.add(charge)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(duplicate)
    return charge


def update_charge(charge_id: int, data: dict) -> PlatformCharge:
    """Only the amount, type and notes change; platform and month identify the record."""
    charge = get_charge(charge_id)
    if data.get("charges_cents") is not None:
        charge.charges_cents = data["charges_cents"]
    for key in ("charge_type", "notes"):
        if key in data:
            setattr(charge, key, data[key])
    db.session.commit()
    return charge


def delete_charge(charge_id: int) -> None:
    charge = get_charge(charge_id)
    db.session.delete(charge)
    db.session.commit()


def charges_in_period(*, outlet_id: int | None, platform: str | None, start: date, end: date) -> int:
    if start > end:
        raise ValidationError("start_date must be on or before end_date")
    index = PlatformCharge.year * 12 + (PlatformCharge.month - 1)
    q = db.session.query(db.func.coalesce(db.func.sum(PlatformCharge.charges_cents), 0)).filter(
        index >= _month_index(start.year, start.month),
        index <= _month_index(end.year, end.month),
    )
    if outlet_id is not None:
        q = q.filter(PlatformCharge.outlet_id == outlet_id)
    if platform:
        q = q.filter(PlatformCharge.platform == platform)
    return int(q.scalar() or 0)


def platform_summary(*, outlet_id: int | None, platform: str | None, start: date, end: date) -> dict:
    sales = online_sale_service.list_online_sales(outlet_id=outlet_id, platform=platform, start=start, end=end)
    subtotal = sum(sale.bill_subtotal_cents for sale in sales)
    packaging = sum(sale.packaging_cents for sale in sales)
    discount = sum(sale.discount_cents for sale in sales)
    deduction = sum(sale.platform_deduction_cents for sale in sales)
    monthly = charges_in_period(outlet_id=outlet_id, platform=platform, start=start, end=end)

    effective = Decimal(0)
    if subtotal > 0:
        effective = (Decimal(deduction + monthly) * 100 / Decimal(subtotal)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
    return {
        "outlet_id": outlet_id,
        "platform": platform or "All Platforms",
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
        "order_count": len(sales),
        "item_subtotal_cents": subtotal,
        "packaging_cents": packaging,
        "discount_cents": discount,
        "platform_deduction_cents": deduction,
        "monthly_charges_cents": monthly,
        "net_payout_cents": subtotal + packaging - discount - deduction - monthly,
        "effective_deduction_percent": float(effective),
    }


def effective_deduction_percent(*, outlet_id: int | None, platform: str, today: date | None = None) -> float:
    """Effective deduction over the trailing lookback window ending today; 0 with no orders."""
    end = today or utcnow().date()
    days = current_app.config.get("PLATFORM_CHARGE_LOOKBACK_DAYS", 90)
    start = end - timedelta(days=days - 1)
    summary = platform_summary(outlet_id=outlet_id, platform=platform, start=start, end=end)
    return min(100.0, summary["effective_deduction_percent"])
