"""
Cash register session tests.

Verifies:
- One OPEN session per location
- Expected balance = opening balance + closed order totals
- Differences above tolerance require notes
- Sessions with open orders cannot be closed
"""

from decimal import Decimal

import pytest

from barbercore.extensions import db
from barbercore.models import CashRegisterSession
from barbercore.services import cash_register_service, order_service
from barbercore.validation import ConflictError, NotFoundError, StateError, ValidationError


class TestOpenSession:

    def test_open_session(self, db_session):
        session = cash_register_service.open_session(1, "150.00", notes="Morning float")

        assert session.status == "OPEN"
        assert session.opening_balance == Decimal("150.00")
        assert session.opening_notes == "Morning float"
        assert cash_register_service.get_open_session(1).id == session.id

    def test_second_open_session_conflicts(self, db_session, open_session):
        with pytest.raises(ConflictError) as exc:
            cash_register_service.open_session(1, "10.00")
        assert exc.value.details["existing_session_id"] == open_session.id

    def test_other_location_can_open(self, db_session, open_session):
        other = cash_register_service.open_session(2, "0")
        assert other.location_id == 2

    def test_unique_index_blocks_direct_insert(self, db_session, open_session):
        """The storage layer rejects a second OPEN row even without the pre-check."""
        from barbercore.services.concurrency import insert_reserving

        duplicate = CashRegisterSession(location_id=1, status="OPEN", opening_balance=Decimal("0"))
        with pytest.raises(ConflictError):
            insert_reserving(duplicate, lambda exc: ConflictError("taken"))
        db.session.rollback()

        count = db.session.query(CashRegisterSession).filter_by(location_id=1, status="OPEN").count()
        assert count == 1

    @pytest.mark.parametrize("balance", ["-1", "abc", None, "1e5"])
    def test_rejects_bad_opening_balance(self, db_session, balance):
        with pytest.raises(ValidationError):
            cash_register_service.open_session(1, balance)


class TestCloseSession:

    def test_close_exact(self, db_session, open_session):
        session = cash_register_service.close_session(open_session.id, "100.00")

        assert session.status == "CLOSED"
        assert session.expected_balance == Decimal("100.00")
        assert session.difference == Decimal("0.00")
        assert session.closed_at is not None

    def test_expected_includes_closed_orders(self, db_session, open_session, haircut):
        order = order_service.create_order(1, 10, 5)
        order_service.add_item(order.id, haircut.id, quantity=2)
        order_service.close_order(order.id, payment_method_id=1)

        canceled = order_service.create_order(1, 11, 5)
        order_service.add_item(canceled.id, haircut.id)
        order_service.cancel_order(canceled.id, "Client did not show up")

        session = cash_register_service.close_session(open_session.id, "200.00")
        assert session.expected_balance == Decimal("200.00")
        assert session.difference == Decimal("0.00")

    def test_difference_within_tolerance_needs_no_notes(self, db_session, open_session):
        session = cash_register_service.close_session(open_session.id, "100.01")
        assert session.difference == Decimal("0.01")

    def test_difference_requires_notes(self, db_session, open_session):
        with pytest.raises(ValidationError):
            cash_register_service.close_session(open_session.id, "95.00")

        session = cash_register_service.close_session(open_session.id, "95.00", notes="Change error")
        assert session.difference == Decimal("-5.00")
        assert session.closing_notes == "Change error"

    def test_custom_movement_source(self, db_session, open_session):
        session = cash_register_service.close_session(
            open_session.id,
            "130.00",
            movement_source=lambda s: [Decimal("20.00"), Decimal("10.00")],
        )
        assert session.expected_balance == Decimal("130.00")

    def test_cannot_close_twice(self, db_session, open_session):
        cash_register_service.close_session(open_session.id, "100.00")
        with pytest.raises(StateError):
            cash_register_service.close_session(open_session.id, "100.00")

    def test_cannot_close_with_open_orders(self, db_session, open_session):
        order_service.create_order(1, 10, 5)
        with pytest.raises(StateError) as exc:
            cash_register_service.close_session(open_session.id, "100.00")
        assert exc.value.details["open_orders"] == 1

    def test_close_missing_session(self, db_session):
        with pytest.raises(NotFoundError):
            cash_register_service.close_session(999, "0")

    def test_reopen_after_close(self, db_session, open_session):
        cash_register_service.close_session(open_session.id, "100.00")
        again = cash_register_service.open_session(1, "50.00")
        assert again.id != open_session.id


class TestQueries:

    def test_list_sessions_filters(self, db_session, open_session):
        cash_register_service.open_session(2, "0")
        cash_register_service.close_session(open_session.id, "100.00")

        assert len(cash_register_service.list_sessions()) == 2
        closed = cash_register_service.list_sessions(status="closed")
        assert [s.id for s in closed] == [open_session.id]
        assert len(cash_register_service.list_sessions(location_id=2)) == 1

    def test_session_summary(self, db_session, open_session, haircut):
        order = order_service.create_order(1, 10, 5)
        order_service.add_item(order.id, haircut.id)
        order_service.close_order(order.id, payment_method_id=1)
        order_service.create_order(1, 11, 5)

        summary = cash_register_service.get_session_summary(open_session.id)

        assert summary["orders_count"] == 2
        assert summary["open_orders"] == 1
        assert summary["closed_orders"] == 1
        assert summary["total_closed_amount"] == Decimal("50.00")
        assert summary["total_commission"] == Decimal("20.00")
        assert summary["expected_balance"] == Decimal("150.00")
        assert summary["is_closed"] is False
