# Overview: Service-layer operations for customer orders; pricing, status lifecycle and loyalty award.

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from flask import current_app

from ..errors import AuthorizationError, NotFoundError, ValidationError
from ..extensions import db
from ..models import MenuItem, Order
from ..models.orders import CANCELLABLE_STATUSES, ORDER_STATUSES
from . import loyalty_service
from .token_service import Identity


DELIVERED = "delivered"
CANCELLED = "cancelled"


def tax_rate() -> Decimal:
    return Decimal(str(current_app.config.get("ORDER_TAX_RATE", "0.10")))


def compute_tax_cents(subtotal_cents: int, rate: Decimal | None = None) -> int:
    rate = tax_rate() if rate is None else rate
    return int((Decimal(subtotal_cents) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def create_order(identity: Identity, lines: list[dict], *, outlet_id: int | None = None, notes: str | None = None) -> Order:
    """
    Price each line from the menu as it stands now and snapshot it.

    lines: [{"menu_item_id": int, "quantity": int}, ...], already type-checked.
    """
    if not lines:
        raise ValidationError("Order must contain at least one item")

    snapshot = []
    subtotal = 0
    for line in lines:
        item = db.session.get(MenuItem, line["menu_item_id"])
        if item is None:
            raise NotFoundError(f"Menu item {line['menu_item_id']} not found")
        if not item.is_available:
            raise ValidationError(f"{item.name} is not available")
        if outlet_id is not None and item.outlet_id not in (None, outlet_id):
            raise ValidationError(f"{item.name} is not sold at this outlet")

        quantity = line["quantity"]
        line_total = item.price_cents * quantity
        snapshot.append({
            "menu_item_id": item.id,
            "name": item.name,
            "quantity": quantity,
            "unit_price_cents": item.price_cents,
            "total_cents": line_total,
        })
        subtotal += line_total

    tax = compute_tax_cents(subtotal)
    order = Order(
        user_id=identity.user_id,
        username=identity.username,
        outlet_id=outlet_id,
        items=snapshot,
        subtotal_cents=subtotal,
        tax_cents=tax,
        total_cents=subtotal + tax,
        status="pending",
        notes=notes,
    )
    db.session.add(order)
    db.session.commit()
    return order


def list_user_orders(user_id: int) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def list_orders(*, status: str | None = None, outlet_id: int | None = None) -> list[Order]:
    q = db.session.query(Order)
    if status:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
        q = q.filter(Order.status == status)
    if outlet_id is not None:
        q = q.filter(Order.outlet_id == outlet_id)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def get_order_for(identity: Identity, order_id: int) -> Order:
    """The order if the caller owns it or is an admin."""
    order = get_order(order_id)
    if order.user_id != identity.user_id and not identity.is_admin:
        raise AuthorizationError("You do not have access to this order")
    return order


def _award_delivery_points(order: Order) -> None:
    """
    Award loyalty points for a delivered order.

    Failure here must never undo the status change; it is logged and the
    order stays delivered without points.
    """
    points = loyalty_service.points_for_order_total(order.total_cents)
    if points <= 0:
        return
    try:
        loyalty_service.award_points(
            order.user_id,
            points,
            description=f"Order #{order.id} delivered",
            order_id=order.id,
            username=order.username,
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to award loyalty points for order %s", order.id)
        return

    order.points_awarded = points
    db.session.commit()


def update_status(order_id: int, status: str) -> Order:
    if status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")

    order = get_order(order_id)
    if order.status == CANCELLED and status != CANCELLED:
        raise ValidationError("Cancelled orders cannot change status")

    first_delivery = status == DELIVERED and order.status != DELIVERED and order.points_awarded is None
    order.status = status
    db.session.commit()

    if first_delivery:
        _award_delivery_points(order)
    return order


def cancel_order(identity: Identity, order_id: int) -> Order:
    order = get_order_for(identity, order_id)
    if order.status not in CANCELLABLE_STATUSES:
        raise ValidationError(f"Order cannot be cancelled once it is {order.status}")
    order.status = CANCELLED
    db.session.commit()
    return order
