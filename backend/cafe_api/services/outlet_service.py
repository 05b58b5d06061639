# Overview: Outlet CRUD, user-outlet assignments and the per-request outlet resolver.

"""
Outlet Resolver

Reads and writes are scoped to one physical outlet, chosen by the
X-Outlet-Id header or falling back to the caller's default outlet.

READ:  admins may omit the outlet (None = all outlets); everyone else gets an
       outlet they are assigned to, or a 403.
WRITE: always exactly one existing, active outlet. Non-admins must be
       assigned to it; admins hold the cross-outlet override.

Assignment = User.default_outlet_id plus rows in user_outlet_access.
"""

from __future__ import annotations

from typing import NamedTuple

from flask import current_app, request
from sqlalchemy.exc import IntegrityError

from ..errors import ApiError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from .. import models
from ..models import Outlet, User, UserOutletAccess
from ..models.security import AUTHORIZATION, MEDIUM
from ..validation import INT64_MAX
from . import audit_service
from .concurrency import lock_for_update, run_with_retry
from .token_service import Identity


OUTLET_HEADER = "X-Outlet-Id"

_OUTLET_FIELDS = (
    "name", "address", "city", "state", "phone_number", "email", "manager_name",
    "opening_time", "closing_time", "tax_percentage", "accepts_online_orders",
)


class OutletResolution(NamedTuple):
    ok: bool
    outlet_id: int | None
    error: ApiError | None


# ---------------------------------------------------------------------------
# Assignment lookups
# ---------------------------------------------------------------------------

def get_assigned_outlet_ids(user_id: int) -> set[int]:
    rows = db.session.query(UserOutletAccess.outlet_id).filter_by(user_id=user_id).all()
    outlet_ids = {row[0] for row in rows}

    user = db.session.get(User, user_id)
    if user and user.default_outlet_id is not None:
        outlet_ids.add(user.default_outlet_id)
    return outlet_ids


def get_default_outlet_id(user_id: int) -> int | None:
    user = db.session.get(User, user_id)
    if user and user.default_outlet_id is not None:
        return user.default_outlet_id
    assigned = get_assigned_outlet_ids(user_id)
    if len(assigned) == 1:
        return next(iter(assigned))
    return None


def user_can_access_outlet(user_id: int, outlet_id: int | None) -> bool:
    if outlet_id is None:
        return False
    return outlet_id in get_assigned_outlet_ids(user_id)


def set_user_outlets(
    user_id: int,
    outlet_ids: list[int],
    *,
    default_outlet_id: int | None = None,
    granted_by_user_id: int | None = None,
) -> User:
    """Replace a user's assigned outlets (and optionally the default)."""
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    wanted = set(outlet_ids)
    if default_outlet_id is not None:
        wanted.add(default_outlet_id)
    found = {row[0] for row in db.session.query(Outlet.id).filter(Outlet.id.in_(wanted)).all()} if wanted else set()
    missing = wanted - found
    if missing:
        raise NotFoundError(f"Outlet not found: {', '.join(str(i) for i in sorted(missing))}")

    current = {access.outlet_id: access for access in user.outlet_access}
    for outlet_id, access in current.items():
        if outlet_id not in wanted:
            db.session.delete(access)
    for outlet_id in wanted - set(current):
        db.session.add(UserOutletAccess(user_id=user_id, outlet_id=outlet_id, granted_by_user_id=granted_by_user_id))

    if default_outlet_id is not None:
        user.default_outlet_id = default_outlet_id
    elif user.default_outlet_id is not None and user.default_outlet_id not in wanted:
        user.default_outlet_id = None

    db.session.commit()
    return user


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

def parse_outlet_header(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        outlet_id = int(value.strip())
    except ValueError:
        raise ValidationError(f"{OUTLET_HEADER} must be an integer outlet id")
    if not 0 < outlet_id <= INT64_MAX:
        raise ValidationError(f"{OUTLET_HEADER} must be a positive outlet id")
    return outlet_id


def header_outlet_id() -> int | None:
    return parse_outlet_header(request.headers.get(OUTLET_HEADER))


def _deny(identity: Identity, outlet_id: int | None, message: str) -> AuthorizationError:
    current_app.logger.warning(
        "Outlet access denied for user %s (outlet %s): %s", identity.username, outlet_id, message
    )
    audit_service.log_event(
        category=AUTHORIZATION,
        event_type="OUTLET_ACCESS_DENIED",
        success=False,
        severity=MEDIUM,
        user_id=identity.user_id,
        username=identity.username,
        outlet_id=outlet_id,
        reason=message,
    )
    return AuthorizationError(message)


def resolve_outlet_for_read(identity: Identity, header_value: str | None = None) -> int | None:
    """
    Outlet to filter reads by; None means "all outlets" (admins only).

    Raises NotFoundError for an unknown outlet, AuthorizationError when a
    non-admin names an outlet they are not assigned to or has none at all.
    """
    requested = parse_outlet_header(header_value)

    if requested is not None:
        if db.session.get(Outlet, requested) is None:
            raise NotFoundError("Outlet not found")
        if identity.is_admin or user_can_access_outlet(identity.user_id, requested):
            return requested
        raise _deny(identity, requested, "You do not have access to this outlet")

    if identity.is_admin:
        return None

    fallback = get_default_outlet_id(identity.user_id)
    if fallback is None:
        raise _deny(identity, None, "No outlet assigned to this account")
    return fallback


def resolve_outlet_for_write(identity: Identity, header_value: str | None = None) -> OutletResolution:
    """
    The single outlet a write lands in.

    Never raises for an access problem; returns ok=False with the error so the
    caller decides how to surface it.
    """
    try:
        requested = parse_outlet_header(header_value)
    except ValidationError as exc:
        return OutletResolution(False, None, exc)

    outlet_id = requested if requested is not None else get_default_outlet_id(identity.user_id)
    if outlet_id is None:
        return OutletResolution(False, None, _deny(identity, None, "An outlet must be selected for this operation"))

    outlet = db.session.get(Outlet, outlet_id)
    if outlet is None or not outlet.is_active:
        return OutletResolution(False, None, _deny(identity, outlet_id, "Outlet not found or inactive"))

    if not identity.is_admin and not user_can_access_outlet(identity.user_id, outlet_id):
        return OutletResolution(False, None, _deny(identity, outlet_id, "You do not have access to this outlet"))

    return OutletResolution(True, outlet_id, None)


def require_read_outlet(identity: Identity) -> int | None:
    return resolve_outlet_for_read(identity, request.headers.get(OUTLET_HEADER))


def require_write_outlet(identity: Identity) -> int:
    resolution = resolve_outlet_for_write(identity, request.headers.get(OUTLET_HEADER))
    if not resolution.ok:
        raise resolution.error
    return resolution.outlet_id


def ensure_record_outlet(identity: Identity, outlet_id: int | None) -> None:
    """
    Guard for id-addressed reads/writes (GET/PUT/DELETE /<id>): the record's
    outlet must be one the caller may act on.
    """
    if identity.is_admin:
        return
    if outlet_id is None or not user_can_access_outlet(identity.user_id, outlet_id):
        raise _deny(identity, outlet_id, "You do not have access to this outlet")


# ---------------------------------------------------------------------------
# Outlet CRUD
# ---------------------------------------------------------------------------

def list_outlets(*, active_only: bool = False, outlet_ids: set[int] | None = None) -> list[Outlet]:
    q = db.session.query(Outlet)
    if active_only:
        q = q.filter(Outlet.is_active.is_(True))
    if outlet_ids is not None:
        q = q.filter(Outlet.id.in_(outlet_ids))
    return q.order_by(Outlet.name.asc(), Outlet.id.asc()).all()


def get_outlet(outlet_id: int) -> Outlet:
    outlet = db.session.get(Outlet, outlet_id)
    if not outlet:
        raise NotFoundError("Outlet not found")
    return outlet


def _normalize_code(code: str | None) -> str:
    code = (code or "").strip().upper()
    if not code:
        raise ValidationError("code is required")
    if len(code) > 32:
        raise ValidationError("code exceeds max length 32")
    return code


def create_outlet(data: dict, *, created_by: str) -> Outlet:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required")
    code = _normalize_code(data.get("code"))

    def _op():
        if db.session.query(Outlet).filter_by(code=code).first():
            raise ConflictError("Outlet code already exists")
        outlet = Outlet(name=name, code=code, created_by=created_by)
        for key in _OUTLET_FIELDS:
            if key in data and key != "name" and data[key] is not None:
                setattr(outlet, key, data[key])
        db.session.add(outlet)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConflictError("Outlet code already exists")
        return outlet

    return run_with_retry(_op)


def update_outlet(outlet_id: int, data: dict) -> Outlet:
    def _op():
        outlet = lock_for_update(db.session.query(Outlet).filter_by(id=outlet_id)).first()
        if not outlet:
            raise NotFoundError("Outlet not found")
        if "name" in data:
            name = (data.get("name") or "").strip()
            if not name:
                raise ValidationError("name cannot be blank")
        for key in _OUTLET_FIELDS:
            if key in data:
                setattr(outlet, key, data[key].strip() if isinstance(data[key], str) else data[key])
        if "is_active" in data:
            outlet.is_active = bool(data["is_active"])
        db.session.commit()
        return outlet

    return run_with_retry(_op)


def toggle_outlet_status(outlet_id: int) -> Outlet:
    outlet = get_outlet(outlet_id)
    outlet.is_active = not outlet.is_active
    db.session.commit()
    return outlet


def _has_associated_data(outlet_id: int) -> bool:
    for model in (
        models.MenuCategory, models.MenuSubCategory, models.MenuItem, models.Order, models.Offer,
        models.InventoryItem, models.InventoryTransaction, models.Sale, models.Expense, models.OnlineSale,
        models.PriceForecast, models.CashReconciliation, models.PlatformCharge, models.OverheadCost,
        models.OperationalExpense,
    ):
        if db.session.query(model.id).filter(model.outlet_id == outlet_id).first() is not None:
            return True
    return False


def delete_outlet(outlet_id: int) -> None:
    """Only outlets with no business data can be removed; others are deactivated."""
    outlet = get_outlet(outlet_id)
    if _has_associated_data(outlet_id):
        raise ValidationError("Cannot delete outlet with associated data. Deactivate it instead.")
    db.session.query(User).filter(User.default_outlet_id == outlet_id).update(
        {User.default_outlet_id: None}, synchronize_session=False
    )
    db.session.delete(outlet)
    db.session.commit()
