# Overview: Service-layer operations for delivery-platform orders; CRUD, income and kitchen-time analysis.

from __future__ import annotations

import statistics
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import OnlineSale
from ..time_utils import to_iso_date


PLATFORMS = ("Zomato", "Swiggy")

_EDITABLE_FIELDS = (
    "customer_name", "order_at", "distance_km", "ordered_items", "bill_subtotal_cents", "packaging_cents",
    "discount_cents", "platform_deduction_cents", "payout_cents", "rating", "review", "kpt_minutes", "rwt_minutes",
)


def _filtered(*, outlet_id: int | None, platform: str | None, start: date | None, end: date | None):
    q = db.session.query(OnlineSale)
    if outlet_id is not None:
        q = q.filter(OnlineSale.outlet_id == outlet_id)
    if platform:
        q = q.filter(OnlineSale.platform == platform)
    if start is not None:
        q = q.filter(OnlineSale.order_at >= datetime.combine(start, time.min))
    if end is not None:
        q = q.filter(OnlineSale.order_at < datetime.combine(end + timedelta(days=1), time.min))
    return q


def list_online_sales(
    *,
    outlet_id: int | None = None,
    platform: str | None = None,
    start: date | None = None,
    end: date | None = None,
) -> list[OnlineSale]:
    q = _filtered(outlet_id=outlet_id, platform=platform, start=start, end=end)
    return q.order_by(OnlineSale.order_at.desc(), OnlineSale.id.desc()).all()


def get_online_sale(sale_id: int) -> OnlineSale:
    sale = db.session.get(OnlineSale, sale_id)
    if not sale:
        raise NotFoundError("Online sale not found")
    return sale


def _duplicate(platform: str, order_id: str) -> bool:
    return db.session.query(OnlineSale.id).filter_by(platform=platform, order_id=order_id).first() is not None


def create_online_sale(data: dict, *, outlet_id: int | None, recorded_by: str) -> OnlineSale:
    if _duplicate(data["platform"], data["order_id"]):
        raise ConflictError(f"{data['platform']} order {data['order_id']} already recorded")

    sale = OnlineSale(
        outlet_id=outlet_id,
        platform=data["platform"],
        order_id=data["order_id"],
        recorded_by=recorded_by,
    )
    for key in _EDITABLE_FIELDS:
        if data.get(key) is not None:
            setattr(sale, key, data[key])
    db.session.add(sale)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"{data['platform']} order {data['order_id']} already recorded")
    return sale


def update_online_sale(sale_id: int, data: dict) -> OnlineSale:
    sale = get_online_sale(sale_id)
    for key in _EDITABLE_FIELDS:
        if key in data and data[key] is not None:
            setattr(sale, key, data[key])
    db.session.commit()
    return sale


def delete_online_sale(sale_id: int) -> None:
    sale = get_online_sale(sale_id)
    db.session.delete(sale)
    db.session.commit()


def bulk_delete(ids: list[int], *, outlet_id: int | None = None) -> int:
    q = db.session.query(OnlineSale).filter(OnlineSale.id.in_(ids))
    if outlet_id is not None:
        q = q.filter(OnlineSale.outlet_id == outlet_id)
    deleted = q.delete(synchronize_session=False)
    db.session.commit()
    return deleted


def save_imported(records: list[dict], *, outlet_id: int | None) -> dict:
    """Persist upload records, skipping orders already on file for the platform."""
    created = 0
    duplicates: list[str] = []
    for record in records:
        if _duplicate(record["platform"], record["order_id"]):
            duplicates.append(record["order_id"])
            continue
        db.session.add(OnlineSale(outlet_id=outlet_id, **record))
        created += 1
    db.session.commit()
    return {"created": created, "duplicates": duplicates}


def daily_income(
    *,
    outlet_id: int | None = None,
    platform: str | None = None,
    start: date | None = None,
    end: date | None = None,
) -> list[dict]:
    """Per business day and platform: order count, gross bill and net payout."""
    sales = _filtered(outlet_id=outlet_id, platform=platform, start=start, end=end).all()
    buckets: dict[tuple[str, str], dict] = {}
    for sale in sales:
        key = (sale.order_at.date().isoformat(), sale.platform)
        bucket = buckets.setdefault(key, {
            "date": key[0],
            "platform": key[1],
            "orders": 0,
            "bill_subtotal_cents": 0,
            "discount_cents": 0,
            "platform_deduction_cents": 0,
            "payout_cents": 0,
        })
        bucket["orders"] += 1
        bucket["bill_subtotal_cents"] += sale.bill_subtotal_cents
        bucket["discount_cents"] += sale.discount_cents
        bucket["platform_deduction_cents"] += sale.platform_deduction_cents
        bucket["payout_cents"] += sale.payout_cents
    return [buckets[key] for key in sorted(buckets, reverse=True)]


def analyze_kpt(sales, *, start: date | None = None, end: date | None = None, platform: str | None = None) -> dict:
    """
    Kitchen preparation time per menu item, plus an all-orders summary.

    An order's KPT is split across its units evenly (kpt / total quantity);
    each item collects quantity x that share. Orders without a positive KPT
    are ignored. The summary's date range falls back to the first and last
    analysed order when no bounds were given.
    """
    timed = [sale for sale in sales if sale.kpt_minutes and sale.kpt_minutes > 0]
    samples: dict[str, list[float]] = {}
    orders: dict[str, int] = {}
    quantities: dict[str, int] = {}

    for sale in timed:
        items = [item for item in (sale.ordered_items or []) if int(item.get("quantity") or 0) > 0]
        if not items:
            continue
        total_quantity = sum(int(item["quantity"]) for item in items)
        per_unit = sale.kpt_minutes / total_quantity
        for item in items:
            name = item["name"]
            quantity = int(item["quantity"])
            samples.setdefault(name, []).append(per_unit * quantity)
            orders[name] = orders.get(name, 0) + 1
            quantities[name] = quantities.get(name, 0) + quantity

    results = []
    for name, values in samples.items():
        results.append({
            "item_name": name,
            "order_count": orders[name],
            "total_quantity": quantities[name],
            "average_kpt": round(statistics.fmean(values), 2),
            "min_kpt": round(min(values), 2),
            "max_kpt": round(max(values), 2),
            "median_kpt": round(statistics.median(values), 2),
            "std_dev_kpt": round(statistics.pstdev(values), 2),
        })
    results.sort(key=lambda row: (-row["order_count"], row["item_name"]))

    kpts = [sale.kpt_minutes for sale in timed]
    if start is None and timed:
        start = min(sale.order_at for sale in timed).date()
    if end is None and timed:
        end = max(sale.order_at for sale in timed).date()
    summary = {
        "total_orders_analyzed": len(timed),
        "total_menu_items": len(results),
        "start_date": to_iso_date(start),
        "end_date": to_iso_date(end),
        "platform": platform or "All Platforms",
        "average_kpt": round(statistics.fmean(kpts), 2) if kpts else 0.0,
        "min_kpt": round(min(kpts), 2) if kpts else 0.0,
        "max_kpt": round(max(kpts), 2) if kpts else 0.0,
    }
    return {"items": results, "summary": summary}


def list_reviews(
    *,
    outlet_id: int | None = None,
    platform: str | None = None,
    min_rating: float | None = None,
) -> list[OnlineSale]:
    q = _filtered(outlet_id=outlet_id, platform=platform, start=None, end=None)
    q = q.filter(OnlineSale.review.isnot(None), OnlineSale.review != "")
    if min_rating is not None:
        q = q.filter(OnlineSale.rating >= min_rating)
    return q.order_by(OnlineSale.order_at.desc(), OnlineSale.id.desc()).all()
