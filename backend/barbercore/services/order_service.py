"""
Order (ticket) lifecycle service.

State machine: OPEN -> CLOSED | CANCELED. Both end states are terminal.

Every mutation re-reads the order FOR UPDATE inside the transaction that
writes, so an "add item" racing a "close order" cannot slip an item onto a
ticket that was closed in between.

Closing is a two-step compensating flow: the order is committed CLOSED
first, then revenue is posted. A posting failure does not reopen the
order; it comes back as OrderClosedWithRevenueError for manual follow-up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import CashRegisterSession, Order, OrderItem, Service
from ..models.cash import SESSION_OPEN
from ..models.orders import ORDER_OPEN, ORDER_CLOSED, ORDER_CANCELED
from ..time_utils import business_date, utcnow
from ..validation import (
    NotFoundError,
    PreconditionError,
    StateError,
    ValidationError,
    format_amount,
    optional_id,
    parse_amount,
    parse_percentage,
    parse_quantity,
    quantize_money,
    require_id,
    require_text,
)
from . import commission_service, revenue_service
from .concurrency import lock_for_update, run_with_retry


class InactiveServiceError(NotFoundError, PreconditionError):
    """Service missing or deactivated; catchable as either kind."""


@dataclass(frozen=True)
class OrderTotals:
    total_amount: Decimal
    total_commission: Decimal
    items_count: int

    def to_dict(self) -> dict:
        return {
            "total_amount": format_amount(self.total_amount),
            "total_commission": format_amount(self.total_commission),
            "items_count": self.items_count,
        }


@dataclass(frozen=True)
class OrderClosed:
    """Order closed and revenue posted."""
    order: Order
    revenue_id: int
    totals: OrderTotals
    revenue_failed: bool = field(default=False, init=False)

    def to_dict(self) -> dict:
        return {
            "result": "CLOSED",
            "order": self.order.to_dict(),
            "revenue_id": self.revenue_id,
            "revenue_error": None,
            "totals": self.totals.to_dict(),
        }


@dataclass(frozen=True)
class OrderClosedWithRevenueError:
    """Order closed (and stays closed) but revenue posting failed."""
    order: Order
    revenue_error: str
    totals: OrderTotals
    revenue_failed: bool = field(default=True, init=False)

    def to_dict(self) -> dict:
        return {
            "result": "CLOSED_WITH_REVENUE_ERROR",
            "order": self.order.to_dict(),
            "revenue_id": None,
            "revenue_error": self.revenue_error,
            "totals": self.totals.to_dict(),
        }


def calculate_totals(items: list[OrderItem]) -> OrderTotals:
    total_amount = Decimal("0")
    total_commission = Decimal("0")
    for item in items:
        total_amount += Decimal(item.unit_price) * item.quantity
        total_commission += Decimal(item.commission_value)
    return OrderTotals(
        total_amount=quantize_money(total_amount),
        total_commission=quantize_money(total_commission),
        items_count=len(items),
    )


def _items_of(order_id: int) -> list[OrderItem]:
    return db.session.query(OrderItem).filter_by(order_id=order_id).order_by(OrderItem.id).all()


def _recompute_total(order: Order) -> None:
    db.session.flush()
    order.total_amount = calculate_totals(_items_of(order.id)).total_amount


def _lock_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def _require_open(order: Order, action: str) -> None:
    if not order.is_open:
        raise StateError(
            f"Cannot {action}: order is {order.status}",
            details={"order_id": order.id, "status": order.status},
        )


# =============================================================================
# LIFECYCLE
# =============================================================================

def create_order(location_id, client_id, professional_id) -> Order:
    """
    Create an OPEN order bound to the location's open cash session.

    Raises:
        ValidationError: missing ids
        PreconditionError: no open cash session for the location
    """
    location_id = require_id(location_id, "location_id")
    client_id = require_id(client_id, "client_id")
    professional_id = require_id(professional_id, "professional_id")

    def _op():
        # Locking the session row serializes against a concurrent close.
        session = lock_for_update(
            db.session.query(CashRegisterSession).filter_by(location_id=location_id, status=SESSION_OPEN)
        ).first()
        if not session:
            raise PreconditionError(
                "No open cash session for this location. Open the cash register first.",
                details={"location_id": location_id},
            )

        order = Order(
            location_id=location_id,
            client_id=client_id,
            professional_id=professional_id,
            cash_session_id=session.id,
            status=ORDER_OPEN,
            total_amount=Decimal("0.00"),
            created_at=utcnow(),
        )
        db.session.add(order)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Order created",
        extra={"order_id": order.id, "location_id": location_id, "cash_session_id": order.cash_session_id},
    )
    return order


def add_item(order_id: int, service_id, professional_id=None, quantity=1) -> OrderItem:
    """
    Add a service line; price and commission are snapshotted now.

    Raises:
        ValidationError: bad quantity or ids
        NotFoundError: order missing; service missing or inactive
        StateError: order not OPEN
    """
    service_id = require_id(service_id, "service_id")
    professional_id = optional_id(professional_id, "professional_id")
    quantity = parse_quantity(quantity)

    def _op():
        order = _lock_order(order_id)
        _require_open(order, "add items")

        service = db.session.get(Service, service_id)
        if not service or not service.is_active:
            raise InactiveServiceError(
                "Service not found or inactive",
                details={"service_id": service_id},
            )

        item_professional_id = professional_id or order.professional_id
        unit_price = quantize_money(Decimal(service.price))
        # Lookup errors propagate: never fall back to the default silently.
        percentage = commission_service.resolve(
            item_professional_id,
            service.id,
            service.commission_percentage,
        )

        item = OrderItem(
            order_id=order.id,
            service_id=service.id,
            professional_id=item_professional_id,
            quantity=quantity,
            unit_price=unit_price,
            commission_percentage=percentage,
            commission_value=commission_service.commission_value(unit_price, quantity, percentage),
        )
        db.session.add(item)
        _recompute_total(order)
        db.session.commit()
        return item

    item = run_with_retry(_op)
    current_app.logger.info(
        "Service added to order",
        extra={
            "order_id": order_id,
            "order_item_id": item.id,
            "service_id": service_id,
            "commission_percentage": str(item.commission_percentage),
        },
    )
    return item


def update_item(item_id: int, *, quantity=None, unit_price=None, commission_percentage=None) -> OrderItem:
    """Edit a line while the order is OPEN; commission value and total follow."""
    new_quantity = parse_quantity(quantity) if quantity is not None else None
    new_price = parse_amount(unit_price, "unit_price") if unit_price is not None else None
    new_pct = parse_percentage(commission_percentage) if commission_percentage is not None else None

    if new_quantity is None and new_price is None and new_pct is None:
        raise ValidationError("Nothing to update: provide quantity, unit_price or commission_percentage")

    def _op():
        item = db.session.get(OrderItem, item_id)
        if not item:
            raise NotFoundError("Order item not found")

        order = _lock_order(item.order_id)
        _require_open(order, "update items")

        if new_quantity is not None:
            item.quantity = new_quantity
        if new_price is not None:
            item.unit_price = new_price
        if new_pct is not None:
            item.commission_percentage = new_pct

        item.commission_value = commission_service.commission_value(
            Decimal(item.unit_price), item.quantity, Decimal(item.commission_percentage)
        )
        _recompute_total(order)
        db.session.commit()
        return item

    return run_with_retry(_op)


def remove_item(item_id: int) -> None:
    """
    Remove a line from an OPEN order.

    Raises:
        NotFoundError: item missing
        StateError: owning order not OPEN
    """
    def _op():
        item = db.session.get(OrderItem, item_id)
        if not item:
            raise NotFoundError("Order item not found")

        order = _lock_order(item.order_id)
        _require_open(order, "remove items")

        db.session.delete(item)
        _recompute_total(order)
        db.session.commit()
        return order.id

    order_id = run_with_retry(_op)
    current_app.logger.info("Service removed from order", extra={"order_id": order_id, "order_item_id": item_id})


def close_order(
    order_id: int,
    payment_method_id,
    account_id=None,
    *,
    poster: revenue_service.RevenuePoster | None = None,
) -> OrderClosed | OrderClosedWithRevenueError:
    """
    Close an order and hand its totals to the revenue-posting collaborator.

    Raises:
        ValidationError: bad payment method/account ids, or the order has no items
        StateError: order not OPEN
    """
    payment_method_id = require_id(payment_method_id, "payment_method_id")
    account_id = optional_id(account_id, "account_id")

    def _op():
        order = _lock_order(order_id)
        _require_open(order, "close order")

        items = _items_of(order.id)
        if not items:
            raise ValidationError("Cannot close an order with no items", details={"order_id": order.id})

        totals = calculate_totals(items)

        order.status = ORDER_CLOSED
        order.closed_at = utcnow()
        order.total_amount = totals.total_amount
        order.payment_method_id = payment_method_id
        order.account_id = account_id
        db.session.commit()
        return order, totals

    order, totals = run_with_retry(_op)

    payload = {
        "orderId": order.id,
        "totalAmount": totals.total_amount,
        "clientId": order.client_id,
        "professionalId": order.professional_id,
        "locationId": order.location_id,
        "paymentMethodId": payment_method_id,
        "accountId": account_id,
        "date": business_date(order.closed_at, current_app.config.get("BUSINESS_TIMEZONE", "UTC")).isoformat(),
        "note": (
            f"Revenue generated from order #{order.id}. Items: {totals.items_count}, "
            f"total commission: {format_amount(totals.total_commission)}"
        ),
    }

    post = poster or revenue_service.post_order_revenue
    try:
        revenue_id = post(payload)
    except Exception as exc:  # Order stays CLOSED; failure is surfaced, not raised
        db.session.rollback()
        message = str(exc) or exc.__class__.__name__
        current_app.logger.error(
            "Order closed but revenue posting failed",
            extra={"order_id": order.id, "revenue_error": message},
        )
        order = db.session.get(Order, order.id)
        order.revenue_error = message
        db.session.commit()
        return OrderClosedWithRevenueError(order=order, revenue_error=message, totals=totals)

    order.revenue_id = revenue_id
    order.revenue_error = None
    db.session.commit()

    current_app.logger.info(
        "Order closed with revenue",
        extra={
            "order_id": order.id,
            "revenue_id": revenue_id,
            "total_amount": str(totals.total_amount),
            "total_commission": str(totals.total_commission),
        },
    )
    return OrderClosed(order=order, revenue_id=revenue_id, totals=totals)


def cancel_order(order_id: int, reason) -> Order:
    """
    Cancel an OPEN order; closed_at records the cancellation time.

    Raises:
        ValidationError: reason shorter than the minimum (10 chars by default)
        StateError: order not OPEN
    """
    reason = require_text(
        reason,
        "reason",
        min_length=current_app.config.get("CANCEL_REASON_MIN_LENGTH", 10),
        max_length=current_app.config.get("CANCEL_REASON_MAX_LENGTH", 500),
    )

    def _op():
        order = _lock_order(order_id)
        _require_open(order, "cancel order")

        order.status = ORDER_CANCELED
        order.closed_at = utcnow()
        order.cancel_reason = reason
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Order canceled", extra={"order_id": order.id, "cancel_reason": reason})
    return order


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def calculate_order_totals(order_id: int) -> OrderTotals:
    get_order(order_id)
    return calculate_totals(_items_of(order_id))


def get_orders_by_session(cash_session_id: int) -> list[Order]:
    return db.session.query(Order).filter_by(
        cash_session_id=cash_session_id
    ).order_by(Order.created_at, Order.id).all()


def list_orders(
    location_id: int | None = None,
    status: str | None = None,
    professional_id: int | None = None,
    client_id: int | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Order], int]:
    """Filtered, paginated order listing (limit capped at 100)."""
    if status and status.upper() not in (ORDER_OPEN, ORDER_CLOSED, ORDER_CANCELED):
        raise ValidationError("status must be OPEN, CLOSED or CANCELED")
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > 100:
        raise ValidationError("limit must be between 1 and 100")

    query = db.session.query(Order)
    if location_id is not None:
        query = query.filter_by(location_id=location_id)
    if status:
        query = query.filter_by(status=status.upper())
    if professional_id is not None:
        query = query.filter_by(professional_id=professional_id)
    if client_id is not None:
        query = query.filter_by(client_id=client_id)

    total = query.count()
    orders = (
        query.order_by(Order.created_at.desc(), Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total
