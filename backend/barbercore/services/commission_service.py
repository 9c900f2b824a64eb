"""
Commission resolution for order items.

A professional may have an override rate for a specific service; when
present it beats the service's default rate. The resolved percentage is
snapshotted onto the order item by order_service and never re-derived.

Lookup errors are not swallowed: falling back to the default on a failed
lookup would silently under/over-pay the professional, so the caller's
"add item" operation must fail instead.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional

from ..extensions import db
from ..models import CommissionOverride, Order, OrderItem
from ..models.orders import ORDER_CLOSED
from ..validation import quantize_money, parse_percentage, NotFoundError
from .concurrency import commit_with_retry


OverrideLookup = Callable[[int, int], Optional[Decimal]]


def find_override(professional_id: int, service_id: int) -> Decimal | None:
    """Commission-override lookup keyed by (professional_id, service_id)."""
    override = db.session.query(CommissionOverride).filter_by(
        professional_id=professional_id,
        service_id=service_id,
    ).first()
    if override is None:
        return None
    return Decimal(override.commission_percentage)


def resolve(
    professional_id: int,
    service_id: int,
    default_percentage,
    *,
    lookup: OverrideLookup | None = None,
) -> Decimal:
    """
    Effective commission percentage for a professional performing a service.

    Override takes precedence over `default_percentage`.
    """
    override = (lookup or find_override)(professional_id, service_id)
    if override is not None:
        return quantize_money(Decimal(override))
    return quantize_money(Decimal(default_percentage))


def commission_value(unit_price: Decimal, quantity: int, percentage: Decimal) -> Decimal:
    """unit_price * quantity * percentage / 100, rounded to cents."""
    return quantize_money(Decimal(unit_price) * quantity * Decimal(percentage) / Decimal(100))


def set_override(professional_id: int, service_id: int, percentage) -> CommissionOverride:
    """Create or update a professional's override for one service."""
    pct = parse_percentage(percentage)

    override = db.session.query(CommissionOverride).filter_by(
        professional_id=professional_id,
        service_id=service_id,
    ).first()

    if override is None:
        override = CommissionOverride(
            professional_id=professional_id,
            service_id=service_id,
            commission_percentage=pct,
        )
        db.session.add(override)
    else:
        override.commission_percentage = pct

    commit_with_retry()
    return override


def remove_override(professional_id: int, service_id: int) -> None:
    override = db.session.query(CommissionOverride).filter_by(
        professional_id=professional_id,
        service_id=service_id,
    ).first()
    if override is None:
        raise NotFoundError("Commission override not found")
    db.session.delete(override)
    db.session.commit()


def generate_commission_report(professional_id: int, start=None, end=None) -> dict:
    """
    Commission totals for one professional over CLOSED orders.

    Items are attributed by the item's professional (not the order's
    primary professional), so shared tickets split correctly.
    """
    query = (
        db.session.query(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(OrderItem.professional_id == professional_id, Order.status == ORDER_CLOSED)
    )
    if start is not None:
        query = query.filter(db.func.date(Order.closed_at) >= start)
    if end is not None:
        query = query.filter(db.func.date(Order.closed_at) <= end)

    items = query.order_by(Order.closed_at, OrderItem.id).all()

    order_ids = {item.order_id for item in items}
    total_commission = sum((Decimal(item.commission_value) for item in items), Decimal("0"))
    total_services = sum(item.quantity for item in items)
    total_orders = len(order_ids)

    return {
        "professional_id": professional_id,
        "period": {
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
        },
        "total_orders": total_orders,
        "total_services": total_services,
        "total_commission": quantize_money(total_commission),
        "average_commission_per_order": (
            quantize_money(total_commission / total_orders) if total_orders else Decimal("0.00")
        ),
        "items": [item.to_dict() for item in items],
    }
