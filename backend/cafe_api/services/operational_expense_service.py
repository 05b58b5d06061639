# Overview: Service-layer operations for month-level operational expenses of an outlet.

"""
Operational Expense Service

One record per outlet and calendar month. Rent is never entered: it is the
sum of the month's offline expenses of type "Rent" and is recomputed on
every create and update. The total is rent plus every entered component.
"""

from __future__ import annotations

import calendar
from datetime import date

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Expense, OperationalExpense


COMPONENT_FIELDS = (
    "cook_salary_cents",
    "helper_salary_cents",
    "electricity_cents",
    "machine_maintenance_cents",
    "misc_cents",
)


def monthly_rent(*, outlet_id: int | None, year: int, month: int) -> int:
    start = date(year, month, 1)
    end = date(year, month, calendar.monthrange(year, month)[1])
    q = db.session.query(db.func.coalesce(db.func.sum(Expense.amount_cents), 0)).filter(
        Expense.expense_source == "Offline",
        db.func.lower(Expense.expense_type) == "rent",
        Expense.expense_date >= start,
        Expense.expense_date <= end,
    )
    if outlet_id is not None:
        q = q.filter(Expense.outlet_id == outlet_id)
    return int(q.scalar() or 0)


def _refresh_totals(record: OperationalExpense) -> None:
    record.rent_cents = monthly_rent(outlet_id=record.outlet_id, year=record.year, month=record.month)
    record.total_cents = record.rent_cents + sum(getattr(record, key) or 0 for key in COMPONENT_FIELDS)


def list_records(*, outlet_id: int | None = None, year: int | None = None) -> list[OperationalExpense]:
    q = db.session.query(OperationalExpense)
    if outlet_id is not None:
        q = q.filter(OperationalExpense.outlet_id == outlet_id)
    if year is not None:
        q = q.filter(OperationalExpense.year == year)
    return q.order_by(OperationalExpense.year.desc(), OperationalExpense.month.desc(), OperationalExpense.id.asc()).all()


def get_record(record_id: int) -> OperationalExpense:
    record = db.session.get(OperationalExpense, record_id)
    if not record:
        raise NotFoundError("Operational expense not found")
    return record


def find_record(*, outlet_id: int | None, year: int, month: int) -> OperationalExpense | None:
    return db.session.query(OperationalExpense).filter_by(outlet_id=outlet_id, year=year, month=month).first()


def create_record(data: dict, *, outlet_id: int, recorded_by: str) -> OperationalExpense:
    year, month = data["year"], data["month"]
    duplicate = f"Operational expenses for {month}/{year} already exist. Use update instead."
    if find_record(outlet_id=outlet_id, year=year, month=month):
        raise ConflictError(duplicate)

    record = OperationalExpense(outlet_id=outlet_id, year=year, month=month, notes=data.get("notes"), recorded_by=recorded_by)
    for key in COMPONENT_FIELDS:
        setattr(record, key, data.get(key) or 0)
    _refresh_totals(record)
    db.session.add(record)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(duplicate)
    return record


def update_record(record_id: int, data: dict) -> OperationalExpense:
    record = get_record(record_id)
    for key in COMPONENT_FIELDS + ("notes",):
        if key in data:
            setattr(record, key, data[key])
    _refresh_totals(record)
    db.session.commit()
    return record


def delete_record(record_id: int) -> None:
    record = get_record(record_id)
    db.session.delete(record)
    db.session.commit()


def year_summary(*, outlet_id: int | None, year: int) -> dict:
    records = list_records(outlet_id=outlet_id, year=year)
    totals = {key: sum(getattr(record, key) for record in records) for key in ("rent_cents",) + COMPONENT_FIELDS}
    return {
        "outlet_id": outlet_id,
        "year": year,
        "months_recorded": len({record.month for record in records}),
        **totals,
        "total_cents": sum(record.total_cents for record in records),
        "months": [record.to_dict() for record in sorted(records, key=lambda r: (r.month, r.id))],
    }
