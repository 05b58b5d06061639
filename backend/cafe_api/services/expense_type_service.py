# Overview: Service-layer operations for the offline/online expense type catalogues.

"""
Expense Type Service

Every Expense.expense_type must name an active type of the expense's source
(Offline or Online). Matching is case-insensitive and the stored spelling
wins, so "rent" is saved as "Rent".

The catalogues start empty; initialize_defaults() seeds the standard types
and is safe to run repeatedly.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Expense, ExpenseType
from ..models.finance import EXPENSE_SOURCES


DEFAULT_TYPES = {
    "Offline": (
        "Inventory", "Supplies", "Rent", "Salary", "Utilities", "Electricity", "Gas",
        "Maintenance", "Cleaning", "Marketing", "Transport", "Miscellaneous",
    ),
    "Online": (
        "Platform Commission", "Platform Subscription", "Packaging", "Delivery",
        "Advertising", "Discount Promotion", "Payment Gateway", "Miscellaneous",
    ),
}


def _check_source(source: str) -> str:
    for known in EXPENSE_SOURCES:
        if known.lower() == (source or "").lower():
            return known
    raise ValidationError(f"source must be one of: {', '.join(EXPENSE_SOURCES)}")


def list_types(source: str, *, active_only: bool = False) -> list[ExpenseType]:
    q = db.session.query(ExpenseType).filter(ExpenseType.source == _check_source(source))
    if active_only:
        q = q.filter(ExpenseType.is_active.is_(True))
    return q.order_by(ExpenseType.name.asc()).all()


def get_type(type_id: int) -> ExpenseType:
    entry = db.session.get(ExpenseType, type_id)
    if not entry:
        raise NotFoundError("Expense type not found")
    return entry


def _find(source: str, name: str) -> ExpenseType | None:
    return db.session.query(ExpenseType).filter(
        ExpenseType.source == source,
        db.func.lower(ExpenseType.name) == name.lower(),
    ).first()


def create_type(source: str, name: str) -> ExpenseType:
    source = _check_source(source)
    if _find(source, name):
        raise ConflictError(f"{source} expense type '{name}' already exists")
    entry = ExpenseType(source=source, name=name)
    db.session.add(entry)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"{source} expense type '{name}' already exists")
    return entry


def update_type(type_id: int, *, name: str | None = None, is_active: bool | None = None) -> ExpenseType:
    """Renaming carries existing expenses over to the new name."""
    entry = get_type(type_id)
    if name is not None and name != entry.name:
        clash = _find(entry.source, name)
        if clash and clash.id != entry.id:
            raise ConflictError(f"{entry.source} expense type '{name}' already exists")
        db.session.query(Expense).filter(
            Expense.expense_source == entry.source,
            Expense.expense_type == entry.name,
        ).update({"expense_type": name}, synchronize_session=False)
        entry.name = name
    if is_active is not None:
        entry.is_active = is_active
    db.session.commit()
    return entry


def delete_type(type_id: int) -> None:
    entry = get_type(type_id)
    in_use = db.session.query(Expense.id).filter(
        Expense.expense_source == entry.source,
        Expense.expense_type == entry.name,
    ).first()
    if in_use:
        raise ValidationError("Expense type is used by recorded expenses. Deactivate it instead.")
    db.session.delete(entry)
    db.session.commit()


def initialize_defaults(source: str) -> int:
    """Add whichever default types are missing; returns how many were added."""
    source = _check_source(source)
    existing = {entry.name.lower() for entry in list_types(source)}
    added = [ExpenseType(source=source, name=name) for name in DEFAULT_TYPES[source] if name.lower() not in existing]
    db.session.add_all(added)
    db.session.commit()
    return len(added)


def type_lookup(source: str) -> dict[str, str]:
    """Active types of a source keyed by lower-cased name."""
    return {entry.name.lower(): entry.name for entry in list_types(source, active_only=True)}


def resolve_type(source: str, name: str) -> str:
    """The catalogue spelling of an active type, or ValidationError."""
    source = _check_source(source)
    match = type_lookup(source).get((name or "").strip().lower())
    if match is None:
        raise ValidationError(f"Unknown {source.lower()} expense type '{name}'")
    return match
