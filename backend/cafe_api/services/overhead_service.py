# Overview: Service-layer operations for monthly overhead costs and their per-minute allocation.

"""
Overhead Service

An overhead cost (rent, labour, electricity, ...) is a monthly amount spread
evenly over the outlet's operating minutes:

    cost per minute = monthly cost / (working days x hours per day x 60)

A dish that takes N minutes to prepare carries N x the summed per-minute
cost of every active overhead for its outlet, plus the shared ones
(outlet_id NULL).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from ..errors import NotFoundError
from ..extensions import db
from ..models import OverheadCost


DEFAULT_OVERHEADS = (
    ("Rent", 600000, "Monthly rent for the outlet"),
    ("Labour", 1500000, "Monthly salaries"),
    ("Electricity", 300000, "Monthly electricity bill"),
)

_EDITABLE_FIELDS = ("cost_type", "monthly_cost_cents", "operational_hours_per_day", "working_days_per_month", "description", "is_active")


def _scoped(q, outlet_id: int | None):
    if outlet_id is not None:
        q = q.filter(db.or_(OverheadCost.outlet_id == outlet_id, OverheadCost.outlet_id.is_(None)))
    return q


def list_overheads(*, outlet_id: int | None = None, active_only: bool = False) -> list[OverheadCost]:
    q = _scoped(db.session.query(OverheadCost), outlet_id)
    if active_only:
        q = q.filter(OverheadCost.is_active.is_(True))
    return q.order_by(OverheadCost.cost_type.asc(), OverheadCost.id.asc()).all()


def get_overhead(overhead_id: int) -> OverheadCost:
    overhead = db.session.get(OverheadCost, overhead_id)
    if not overhead:
        raise NotFoundError("Overhead cost not found")
    return overhead


def create_overhead(data: dict, *, outlet_id: int | None, created_by: str) -> OverheadCost:
    overhead = OverheadCost(outlet_id=outlet_id, created_by=created_by, last_updated_by=created_by)
    for key in _EDITABLE_FIELDS:
        if data.get(key) is not None:
            setattr(overhead, key, data[key])
    db.session.add(overhead)
    db.session.commit()
    return overhead


def update_overhead(overhead_id: int, data: dict, *, updated_by: str) -> OverheadCost:
    overhead = get_overhead(overhead_id)
    for key in _EDITABLE_FIELDS:
        if key in data:
            setattr(overhead, key, data[key])
    overhead.last_updated_by = updated_by
    db.session.commit()
    return overhead


def delete_overhead(overhead_id: int) -> None:
    overhead = get_overhead(overhead_id)
    db.session.delete(overhead)
    db.session.commit()


def initialize_defaults(*, outlet_id: int | None, created_by: str) -> int:
    """Seed rent/labour/electricity when the outlet has no overheads yet; returns how many were added."""
    if list_overheads(outlet_id=outlet_id):
        return 0
    for cost_type, cents, description in DEFAULT_OVERHEADS:
        db.session.add(OverheadCost(
            outlet_id=outlet_id,
            cost_type=cost_type,
            monthly_cost_cents=cents,
            description=description,
            created_by=created_by,
            last_updated_by=created_by,
        ))
    db.session.commit()
    return len(DEFAULT_OVERHEADS)


def allocate(preparation_minutes: float, *, outlet_id: int | None) -> dict:
    """Overhead carried by one dish of the given preparation time."""
    overheads = list_overheads(outlet_id=outlet_id, active_only=True)
    minutes = Decimal(str(preparation_minutes))
    breakdown = []
    total = Decimal(0)
    for overhead in overheads:
        per_minute = Decimal(overhead.monthly_cost_cents) / Decimal(
            overhead.working_days_per_month * overhead.operational_hours_per_day * 60
        )
        share = per_minute * minutes
        total += share
        breakdown.append({
            "id": overhead.id,
            "cost_type": overhead.cost_type,
            "cost_per_minute_cents": float(per_minute.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)),
            "allocated_cents": float(share.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)),
        })
    return {
        "preparation_minutes": preparation_minutes,
        "overheads": breakdown,
        "total_overhead_cents": float(total.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)),
    }
