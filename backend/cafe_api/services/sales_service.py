# Overview: Service-layer operations for counter sales and expenses; CRUD, summaries and bulk save.

from __future__ import annotations

from datetime import date

from ..errors import NotFoundError
from ..extensions import db
from ..models import Expense, Sale
from . import expense_type_service


# ---------------------------------------------------------------------------
# Sales
# ---------------------------------------------------------------------------

def _date_range(q, column, start: date | None, end: date | None):
    if start is not None:
        q = q.filter(column >= start)
    if end is not None:
        q = q.filter(column <= end)
    return q


def list_sales(*, outlet_id: int | None = None, start: date | None = None, end: date | None = None) -> list[Sale]:
    q = db.session.query(Sale)
    if outlet_id is not None:
        q = q.filter(Sale.outlet_id == outlet_id)
    q = _date_range(q, Sale.sale_date, start, end)
    return q.order_by(Sale.sale_date.desc(), Sale.id.desc()).all()


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def sale_items_total(items: list[dict]) -> int:
    return sum(int(item.get("total_cents") or 0) for item in items)


def create_sale(data: dict, *, outlet_id: int | None, recorded_by: str) -> Sale:
    items = data.get("items") or []
    sale = Sale(
        outlet_id=outlet_id,
        sale_date=data["sale_date"],
        items=items,
        total_cents=data.get("total_cents") if data.get("total_cents") is not None else sale_items_total(items),
        payment_method=data.get("payment_method") or "Cash",
        notes=data.get("notes"),
        recorded_by=recorded_by,
    )
    db.session.add(sale)
    db.session.commit()
    return sale


def update_sale(sale_id: int, data: dict) -> Sale:
    sale = get_sale(sale_id)
    for key in ("sale_date", "payment_method", "notes"):
        if key in data and data[key] is not None:
            setattr(sale, key, data[key])
    if data.get("items") is not None:
        sale.items = data["items"]
        if data.get("total_cents") is None:
            sale.total_cents = sale_items_total(data["items"])
    if data.get("total_cents") is not None:
        sale.total_cents = data["total_cents"]
    db.session.commit()
    return sale


def delete_sale(sale_id: int) -> None:
    sale = get_sale(sale_id)
    db.session.delete(sale)
    db.session.commit()


def save_imported_sales(records: list[dict], *, outlet_id: int | None) -> list[Sale]:
    sales = [Sale(outlet_id=outlet_id, **record) for record in records]
    db.session.add_all(sales)
    db.session.commit()
    return sales


def daily_sales_summary(day: date, *, outlet_id: int | None = None) -> dict:
    sales = list_sales(outlet_id=outlet_id, start=day, end=day)
    by_payment: dict[str, int] = {}
    items_sold = 0
    for sale in sales:
        by_payment[sale.payment_method] = by_payment.get(sale.payment_method, 0) + sale.total_cents
        items_sold += sum(int(item.get("quantity") or 0) for item in sale.items or [])
    return {
        "date": day.isoformat(),
        "outlet_id": outlet_id,
        "transactions": len(sales),
        "items_sold": items_sold,
        "total_cents": sum(sale.total_cents for sale in sales),
        "by_payment_method": by_payment,
    }


# ---------------------------------------------------------------------------
# Expenses
# ---------------------------------------------------------------------------

def list_expenses(
    *,
    outlet_id: int | None = None,
    start: date | None = None,
    end: date | None = None,
    expense_type: str | None = None,
) -> list[Expense]:
    q = db.session.query(Expense)
    if outlet_id is not None:
        q = q.filter(Expense.outlet_id == outlet_id)
    if expense_type:
        q = q.filter(Expense.expense_type == expense_type)
    q = _date_range(q, Expense.expense_date, start, end)
    return q.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


def get_expense(expense_id: int) -> Expense:
    expense = db.session.get(Expense, expense_id)
    if not expense:
        raise NotFoundError("Expense not found")
    return expense


_EXPENSE_FIELDS = (
    "expense_date", "expense_type", "expense_source", "description", "amount_cents",
    "vendor", "payment_method", "invoice_number", "notes",
)


def create_expense(data: dict, *, outlet_id: int | None, recorded_by: str) -> Expense:
    expense = Expense(outlet_id=outlet_id, recorded_by=recorded_by, expense_source=data.get("expense_source") or "Offline")
    data = {**data, "expense_type": expense_type_service.resolve_type(expense.expense_source, data["expense_type"])}
    for key in _EXPENSE_FIELDS:
        if data.get(key) is not None:
            setattr(expense, key, data[key])
    db.session.add(expense)
    db.session.commit()
    return expense


def update_expense(expense_id: int, data: dict) -> Expense:
    expense = get_expense(expense_id)
    if data.get("expense_type") or data.get("expense_source"):
        source = data.get("expense_source") or expense.expense_source
        data = {**data, "expense_type": expense_type_service.resolve_type(source, data.get("expense_type") or expense.expense_type)}
    for key in _EXPENSE_FIELDS:
        if key in data and data[key] is not None:
            setattr(expense, key, data[key])
    db.session.commit()
    return expense


def delete_expense(expense_id: int) -> None:
    expense = get_expense(expense_id)
    db.session.delete(expense)
    db.session.commit()


def save_imported_expenses(records: list[dict], *, outlet_id: int | None) -> list[Expense]:
    expenses = [Expense(outlet_id=outlet_id, **record) for record in records]
    db.session.add_all(expenses)
    db.session.commit()
    return expenses


def expense_summary(*, outlet_id: int | None = None, start: date | None = None, end: date | None = None) -> dict:
    q = db.session.query(Expense.expense_type, db.func.count(Expense.id), db.func.sum(Expense.amount_cents))
    if outlet_id is not None:
        q = q.filter(Expense.outlet_id == outlet_id)
    q = _date_range(q, Expense.expense_date, start, end)
    rows = q.group_by(Expense.expense_type).order_by(db.func.sum(Expense.amount_cents).desc()).all()

    by_type = [
        {"expense_type": expense_type, "count": count, "total_cents": int(total or 0)}
        for expense_type, count, total in rows
    ]
    return {
        "outlet_id": outlet_id,
        "start_date": start.isoformat() if start else None,
        "end_date": end.isoformat() if end else None,
        "total_cents": sum(row["total_cents"] for row in by_type),
        "count": sum(row["count"] for row in by_type),
        "by_type": by_type,
    }
