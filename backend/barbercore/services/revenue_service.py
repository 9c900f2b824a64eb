# Overview: Revenue-posting collaborator; books the revenue record for a closed order.

from __future__ import annotations

from decimal import Decimal
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Revenue
from ..time_utils import parse_iso_date
from ..validation import quantize_money


RevenuePoster = Callable[[dict], int]


class RevenuePostingError(Exception):
    """Raised when the revenue record for a closed order cannot be booked."""


def post_order_revenue(payload: dict) -> int:
    """
    Book revenue for a closed order and return the revenue id.

    payload keys: orderId, totalAmount, clientId, professionalId, locationId,
    paymentMethodId, accountId, date (YYYY-MM-DD), note.

    Posting twice for the same order returns the existing revenue id
    (revenues.order_id is unique).
    """
    order_id = payload.get("orderId")
    if order_id is not None:
        existing = db.session.query(Revenue).filter_by(order_id=order_id).first()
        if existing:
            return existing.id

    if payload.get("paymentMethodId") is None:
        raise RevenuePostingError("paymentMethodId is required to post revenue")

    revenue_date = payload.get("date")
    if isinstance(revenue_date, str):
        revenue_date = parse_iso_date(revenue_date)
    if revenue_date is None:
        raise RevenuePostingError("date is required to post revenue")

    revenue = Revenue(
        order_id=order_id,
        location_id=payload["locationId"],
        client_id=payload.get("clientId"),
        professional_id=payload.get("professionalId"),
        payment_method_id=payload["paymentMethodId"],
        account_id=payload.get("accountId"),
        amount=quantize_money(Decimal(payload["totalAmount"])),
        revenue_date=revenue_date,
        note=payload.get("note"),
    )

    try:
        db.session.add(revenue)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise RevenuePostingError(f"Failed to store revenue: {exc.__class__.__name__}") from exc

    return revenue.id
