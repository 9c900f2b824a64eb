"""
Cash register session service.

WHY: A location's drawer is opened once per business day and counted at
close. Orders can only be created while their location has an OPEN session.

DESIGN PRINCIPLES:
- One OPEN session per location (partial unique index, not check-then-act)
- Sessions are immutable once closed
- Expected balance = opening balance + cash movements (movement source is pluggable)
- Difference tracking (counted vs expected); large differences need notes
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Iterable

from flask import current_app

from ..extensions import db
from ..models import CashRegisterSession, Order
from ..models.cash import SESSION_OPEN, SESSION_CLOSED
from ..models.orders import ORDER_OPEN, ORDER_CLOSED, ORDER_CANCELED
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    NotFoundError,
    StateError,
    ValidationError,
    parse_amount,
    optional_text,
    quantize_money,
)
from .concurrency import lock_for_update, insert_reserving, run_with_retry


MovementSource = Callable[[CashRegisterSession], Iterable[Decimal]]


def default_cash_movements(session: CashRegisterSession) -> list[Decimal]:
    """Cash-affecting movements: totals of the session's CLOSED orders."""
    rows = db.session.query(Order.total_amount).filter(
        Order.cash_session_id == session.id,
        Order.status == ORDER_CLOSED,
    ).all()
    return [Decimal(row[0]) for row in rows]


def get_session(session_id: int) -> CashRegisterSession:
    session = db.session.get(CashRegisterSession, session_id)
    if not session:
        raise NotFoundError("Cash session not found")
    return session


def get_open_session(location_id: int) -> CashRegisterSession | None:
    """Get the currently open session for a location, if any."""
    return db.session.query(CashRegisterSession).filter_by(
        location_id=location_id,
        status=SESSION_OPEN,
    ).first()


def open_session(
    location_id: int,
    opening_balance,
    notes: str | None = None,
    *,
    user_id: int | None = None,
) -> CashRegisterSession:
    """
    Open the drawer for a location.

    Raises:
        ValidationError: opening_balance negative or not a number
        ConflictError: the location already has an OPEN session
    """
    balance = parse_amount(opening_balance, "opening_balance")
    notes = optional_text(notes, "notes", max_length=1000)

    def _conflict(exc):
        existing = get_open_session(location_id)
        return ConflictError(
            "A cash session is already open for this location. Close it before opening a new one.",
            details={
                "location_id": location_id,
                "existing_session_id": existing.id if existing else None,
            },
        )

    def _op():
        session = CashRegisterSession(
            location_id=location_id,
            status=SESSION_OPEN,
            opening_balance=balance,
            opened_at=utcnow(),
            opened_by=user_id,
            opening_notes=notes,
        )
        # Insert first: the unique index decides, and on SQLite a read before
        # the write would hold a shared lock that cannot be upgraded under contention.
        insert_reserving(session, _conflict)
        db.session.commit()
        return session

    session = run_with_retry(_op)

    current_app.logger.info(
        "Cash session opened",
        extra={"cash_session_id": session.id, "location_id": location_id, "opening_balance": str(balance)},
    )
    return session


def compute_expected_balance(
    session: CashRegisterSession,
    movements: Iterable[Decimal] | None = None,
) -> Decimal:
    """Opening balance plus every cash movement; this function only sums."""
    if movements is None:
        movements = default_cash_movements(session)
    total = Decimal(session.opening_balance)
    for amount in movements:
        total += Decimal(amount)
    return quantize_money(total)


def close_session(
    session_id: int,
    counted_balance,
    notes: str | None = None,
    *,
    user_id: int | None = None,
    movement_source: MovementSource | None = None,
) -> CashRegisterSession:
    """
    Close a session and calculate the drawer difference.

    IMMUTABLE: Once closed, session cannot be reopened or modified.

    Raises:
        ValidationError: bad counted_balance, or difference above tolerance without notes
        StateError: session not OPEN, or orders bound to it are still OPEN
    """
    counted = parse_amount(counted_balance, "counted_balance")
    notes = optional_text(notes, "notes", max_length=1000)
    tolerance = Decimal(str(current_app.config.get("CASH_DIFFERENCE_TOLERANCE", "0.01")))

    def _op():
        session = lock_for_update(
            db.session.query(CashRegisterSession).filter_by(id=session_id)
        ).first()

        if not session:
            raise NotFoundError("Cash session not found")

        if not session.is_open:
            raise StateError("Cash session already closed", details={"status": session.status})

        open_orders = db.session.query(Order).filter_by(
            cash_session_id=session.id,
            status=ORDER_OPEN,
        ).count()
        if open_orders > 0:
            raise StateError(
                f"Cannot close the cash session: {open_orders} order(s) still open",
                details={"open_orders": open_orders},
            )

        source = movement_source or default_cash_movements
        expected = compute_expected_balance(session, source(session))
        difference = quantize_money(counted - expected)

        if abs(difference) > tolerance and not notes:
            raise ValidationError(
                "Closing notes are required when the counted balance differs from the expected balance",
                details={"expected_balance": str(expected), "difference": str(difference)},
            )

        session.status = SESSION_CLOSED
        session.closed_at = utcnow()
        session.closed_by = user_id
        session.closing_balance = counted
        session.expected_balance = expected
        session.difference = difference
        session.closing_notes = notes

        db.session.commit()
        return session

    session = run_with_retry(_op)

    current_app.logger.info(
        "Cash session closed",
        extra={
            "cash_session_id": session.id,
            "location_id": session.location_id,
            "expected_balance": str(session.expected_balance),
            "closing_balance": str(session.closing_balance),
            "difference": str(session.difference),
        },
    )
    return session


def list_sessions(
    location_id: int | None = None,
    status: str | None = None,
    limit: int = 50,
) -> list[CashRegisterSession]:
    query = db.session.query(CashRegisterSession)
    if location_id is not None:
        query = query.filter_by(location_id=location_id)
    if status:
        query = query.filter_by(status=status.upper())
    return query.order_by(CashRegisterSession.opened_at.desc(), CashRegisterSession.id.desc()).limit(limit).all()


def get_session_summary(session_id: int) -> dict:
    """
    Session overview: orders by status, revenue and commission totals, and
    the expected balance (live while OPEN, frozen once CLOSED).
    """
    session = get_session(session_id)
    orders = db.session.query(Order).filter_by(cash_session_id=session_id).all()

    counts = {ORDER_OPEN: 0, ORDER_CLOSED: 0, ORDER_CANCELED: 0}
    total_closed = Decimal("0")
    total_commission = Decimal("0")
    for order in orders:
        counts[order.status] = counts.get(order.status, 0) + 1
        if order.status == ORDER_CLOSED:
            total_closed += Decimal(order.total_amount)
            total_commission += sum((Decimal(i.commission_value) for i in order.items), Decimal("0"))

    if session.status == SESSION_CLOSED and session.expected_balance is not None:
        expected = Decimal(session.expected_balance)
    else:
        expected = compute_expected_balance(session)

    return {
        "session": session.to_dict(),
        "orders_count": len(orders),
        "open_orders": counts[ORDER_OPEN],
        "closed_orders": counts[ORDER_CLOSED],
        "canceled_orders": counts[ORDER_CANCELED],
        "total_closed_amount": quantize_money(total_closed),
        "total_commission": quantize_money(total_commission),
        "expected_balance": expected,
        "is_closed": session.status == SESSION_CLOSED,
    }
