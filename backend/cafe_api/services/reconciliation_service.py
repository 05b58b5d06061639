# Overview: Service-layer operations for end-of-day cash reconciliation; CRUD, bulk save and range summary.

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import CashReconciliation, Expense, OnlineSale, Sale


AMOUNT_FIELDS = (
    "expected_cash_cents",
    "expected_coins_cents",
    "expected_online_cents",
    "counted_cash_cents",
    "counted_coins_cents",
    "actual_online_cents",
)


def _scoped(q, outlet_id: int | None):
    if outlet_id is not None:
        q = q.filter(CashReconciliation.outlet_id == outlet_id)
    return q


def list_reconciliations(*, outlet_id: int | None = None, start: date | None = None, end: date | None = None) -> list[CashReconciliation]:
    q = _scoped(db.session.query(CashReconciliation), outlet_id)
    if start is not None:
        q = q.filter(CashReconciliation.reconciliation_date >= start)
    if end is not None:
        q = q.filter(CashReconciliation.reconciliation_date <= end)
    return q.order_by(CashReconciliation.reconciliation_date.desc(), CashReconciliation.id.desc()).all()


def get_reconciliation(record_id: int) -> CashReconciliation:
    record = db.session.get(CashReconciliation, record_id)
    if not record:
        raise NotFoundError("Cash reconciliation not found")
    return record


def get_by_date(day: date, *, outlet_id: int | None) -> CashReconciliation:
    record = _scoped(db.session.query(CashReconciliation), outlet_id).filter(
        CashReconciliation.reconciliation_date == day
    ).first()
    if not record:
        raise NotFoundError(f"No cash reconciliation for {day.isoformat()}")
    return record


def _exists(day: date, outlet_id: int | None) -> bool:
    q = db.session.query(CashReconciliation.id).filter(CashReconciliation.reconciliation_date == day)
    q = q.filter(CashReconciliation.outlet_id.is_(None) if outlet_id is None else CashReconciliation.outlet_id == outlet_id)
    return q.first() is not None


def _build(data: dict, outlet_id: int | None, reconciled_by: str) -> CashReconciliation:
    record = CashReconciliation(
        outlet_id=outlet_id,
        reconciliation_date=data["reconciliation_date"],
        notes=data.get("notes"),
        reconciled_by=data.get("reconciled_by") or reconciled_by,
        is_reconciled=bool(data.get("is_reconciled", False)),
    )
    for key in AMOUNT_FIELDS:
        setattr(record, key, data.get(key) or 0)
    return record


def create_reconciliation(data: dict, *, outlet_id: int | None, reconciled_by: str) -> CashReconciliation:
    day = data["reconciliation_date"]
    if _exists(day, outlet_id):
        raise ConflictError(f"Cash reconciliation for {day.isoformat()} already exists")
    record = _build(data, outlet_id, reconciled_by)
    db.session.add(record)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Cash reconciliation for {day.isoformat()} already exists")
    return record


def update_reconciliation(record_id: int, data: dict) -> CashReconciliation:
    record = get_reconciliation(record_id)
    new_day = data.get("reconciliation_date")
    if new_day is not None and new_day != record.reconciliation_date:
        if _exists(new_day, record.outlet_id):
            raise ConflictError(f"Cash reconciliation for {new_day.isoformat()} already exists")
        record.reconciliation_date = new_day
    for key in AMOUNT_FIELDS + ("notes", "is_reconciled"):
        if key in data and data[key] is not None:
            setattr(record, key, data[key])
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Cash reconciliation for that date already exists")
    return record


def delete_reconciliation(record_id: int) -> None:
    record = get_reconciliation(record_id)
    db.session.delete(record)
    db.session.commit()


def save_many(records: list[dict], *, outlet_id: int | None, reconciled_by: str) -> dict:
    """
    Bulk create; a date that already has a record (or repeats within the
    batch) is reported as a duplicate instead of failing the batch.
    """
    created = []
    duplicates = []
    seen: set[date] = set()
    for data in records:
        day = data["reconciliation_date"]
        if day in seen or _exists(day, outlet_id):
            duplicates.append(day.isoformat())
            continue
        seen.add(day)
        record = _build(data, outlet_id, reconciled_by)
        db.session.add(record)
        created.append(record)
    db.session.commit()
    return {"created": created, "duplicates": duplicates}


def range_summary(*, outlet_id: int | None = None, start: date | None = None, end: date | None = None) -> dict:
    records = list_reconciliations(outlet_id=outlet_id, start=start, end=end)
    summary = {
        "record_count": len(records),
        "expected_total_cents": 0,
        "counted_total_cents": 0,
        "total_deficit_cents": 0,
        "days_with_deficit": 0,
        "days_with_surplus": 0,
        "days_balanced": 0,
        "start_date": start.isoformat() if start else None,
        "end_date": end.isoformat() if end else None,
    }
    for record in records:
        deficit = record.total_deficit_cents
        summary["expected_total_cents"] += record.expected_total_cents
        summary["counted_total_cents"] += record.counted_total_cents
        summary["total_deficit_cents"] += deficit
        if deficit > 0:
            summary["days_with_deficit"] += 1
        elif deficit < 0:
            summary["days_with_surplus"] += 1
        else:
            summary["days_balanced"] += 1
    return summary


def sales_summary_for_date(day: date, *, outlet_id: int | None = None) -> dict:
    """
    What the till should hold for a day: counter sales split by payment
    method, online payouts, and cash expenses paid out of the drawer.
    """
    sales_q = db.session.query(Sale.payment_method, db.func.sum(Sale.total_cents)).filter(Sale.sale_date == day)
    expense_q = db.session.query(db.func.sum(Expense.amount_cents)).filter(
        Expense.expense_date == day, Expense.payment_method == "Cash"
    )
    online_q = db.session.query(db.func.count(OnlineSale.id), db.func.sum(OnlineSale.payout_cents)).filter(
        OnlineSale.order_at >= datetime.combine(day, time.min),
        OnlineSale.order_at < datetime.combine(day + timedelta(days=1), time.min),
    )
    if outlet_id is not None:
        sales_q = sales_q.filter(Sale.outlet_id == outlet_id)
        expense_q = expense_q.filter(Expense.outlet_id == outlet_id)
        online_q = online_q.filter(OnlineSale.outlet_id == outlet_id)

    by_method = {method: int(total or 0) for method, total in sales_q.group_by(Sale.payment_method).all()}
    cash_sales = by_method.get("Cash", 0)
    cash_expenses = int(expense_q.scalar() or 0)
    online_orders, online_payout = online_q.one()

    return {
        "date": day.isoformat(),
        "outlet_id": outlet_id,
        "sales_by_payment_method": by_method,
        "total_sales_cents": sum(by_method.values()),
        "cash_sales_cents": cash_sales,
        "cash_expenses_cents": cash_expenses,
        "expected_cash_cents": cash_sales - cash_expenses,
        "online_orders": int(online_orders or 0),
        "expected_online_cents": int(online_payout or 0),
    }
