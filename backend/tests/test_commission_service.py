"""
Commission resolution tests.

Verifies:
- Override beats the service default
- Default applies when no override exists
- Lookup failures propagate instead of falling back
- Commission report attributes items by item professional
"""

from decimal import Decimal

import pytest

from barbercore.services import commission_service, order_service
from barbercore.validation import NotFoundError, ValidationError


class TestResolve:

    def test_override_wins(self, db_session, haircut, override):
        pct = commission_service.resolve(7, haircut.id, Decimal("40.00"))
        assert pct == Decimal("55.00")

    def test_default_without_override(self, db_session, haircut, override):
        pct = commission_service.resolve(8, haircut.id, Decimal("40.00"))
        assert pct == Decimal("40.00")

    def test_custom_lookup(self):
        pct = commission_service.resolve(1, 2, "30", lookup=lambda p, s: Decimal("12.5"))
        assert pct == Decimal("12.50")

    def test_lookup_error_propagates(self):
        def broken(professional_id, service_id):
            raise RuntimeError("commission store unavailable")

        with pytest.raises(RuntimeError):
            commission_service.resolve(1, 2, "30", lookup=broken)

    @pytest.mark.parametrize(
        "price,qty,pct,expected",
        [
            ("50.00", 1, "40", "20.00"),
            ("33.33", 3, "15", "15.00"),
            ("10.00", 2, "0", "0.00"),
            ("19.99", 1, "100", "19.99"),
        ],
    )
    def test_commission_value(self, price, qty, pct, expected):
        value = commission_service.commission_value(Decimal(price), qty, Decimal(pct))
        assert value == Decimal(expected)


class TestOverrides:

    def test_set_override_creates_then_updates(self, db_session, haircut):
        first = commission_service.set_override(3, haircut.id, "45")
        second = commission_service.set_override(3, haircut.id, "47.5")

        assert first.id == second.id
        assert commission_service.find_override(3, haircut.id) == Decimal("47.50")

    def test_set_override_rejects_over_100(self, db_session, haircut):
        with pytest.raises(ValidationError):
            commission_service.set_override(3, haircut.id, "101")

    def test_remove_override(self, db_session, haircut, override):
        commission_service.remove_override(7, haircut.id)
        assert commission_service.find_override(7, haircut.id) is None

        with pytest.raises(NotFoundError):
            commission_service.remove_override(7, haircut.id)


class TestCommissionReport:

    def test_report_counts_closed_orders_only(self, db_session, open_session, haircut, make_service):
        beard = make_service(name="Beard trim", price="30.00", commission="50.00")

        closed = order_service.create_order(1, 100, 5)
        order_service.add_item(closed.id, haircut.id)
        order_service.add_item(closed.id, beard.id, professional_id=6)
        order_service.close_order(closed.id, payment_method_id=1)

        still_open = order_service.create_order(1, 101, 5)
        order_service.add_item(still_open.id, haircut.id)

        report = commission_service.generate_commission_report(5)

        assert report["total_orders"] == 1
        assert report["total_services"] == 1
        assert report["total_commission"] == Decimal("20.00")
        assert report["average_commission_per_order"] == Decimal("20.00")

        other = commission_service.generate_commission_report(6)
        assert other["total_commission"] == Decimal("15.00")

    def test_empty_report(self, db_session):
        report = commission_service.generate_commission_report(99)
        assert report["total_orders"] == 0
        assert report["total_commission"] == Decimal("0.00")
        assert report["average_commission_per_order"] == Decimal("0.00")
