"""
HTTP API tests.

Verifies:
- Cron endpoint requires the shared secret (401) and is idempotent per day
- Order flow over HTTP: open session, create, add item, close, cancel
- Error kinds map to status codes (400/404/409/412)
"""

import pytest

from barbercore.extensions import db
from barbercore.models import IdempotencyRun
from barbercore.time_utils import business_today


AUTH = {"Authorization": "Bearer test-cron-secret"}


def _open_session(client, location_id=1, balance="100.00"):
    resp = client.post("/api/cash-sessions/open", json={"location_id": location_id, "opening_balance": balance})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["session"]


def _create_order(client, location_id=1):
    return client.post("/api/orders/", json={"location_id": location_id, "client_id": 10, "professional_id": 5})


# =============================================================================
# CRON — 401 / 200
# =============================================================================


class TestCronEndpoint:

    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"Authorization": "Basic abc"},
            {"Authorization": "Bearer wrong-secret"},
        ],
    )
    def test_requires_secret(self, client, db_session, headers):
        resp = client.get("/api/cron/recurring-expenses", headers=headers)
        assert resp.status_code == 401

    def test_missing_configured_secret_rejects(self, app, client, db_session, monkeypatch):
        monkeypatch.setitem(app.config, "CRON_SECRET", None)
        resp = client.get("/api/cron/recurring-expenses", headers=AUTH)
        assert resp.status_code == 401

    def test_runs_once_per_day(self, app, client, db_session):
        first = client.get("/api/cron/recurring-expenses", headers=AUTH)
        second = client.get("/api/cron/recurring-expenses", headers=AUTH)

        assert first.status_code == 200
        body = first.get_json()
        assert body["success"] is True
        assert body["skipped"] is False
        assert body["status"] == "SUCCESS"
        assert body["runDate"] == business_today(app.config["BUSINESS_TIMEZONE"]).isoformat()

        assert second.status_code == 200
        assert second.get_json()["skipped"] is True
        assert second.get_json()["existingRunId"] == body["runId"]

    def test_date_query_parameter_is_ignored(self, app, client, db_session):
        resp = client.get("/api/cron/recurring-expenses?date=2099-01-01", headers=AUTH)

        assert resp.status_code == 200
        assert resp.get_json()["runDate"] == business_today(app.config["BUSINESS_TIMEZONE"]).isoformat()
        run_dates = [run.run_date.isoformat() for run in db.session.query(IdempotencyRun).all()]
        assert "2099-01-01" not in run_dates

    def test_correlation_id_header(self, client, db_session):
        headers = dict(AUTH, **{"X-Correlation-Id": "sched-42"})
        resp = client.get("/api/cron/recurring-expenses", headers=headers)
        assert resp.get_json()["correlationId"] == "sched-42"

    def test_long_correlation_id_is_truncated(self, client, db_session):
        headers = dict(AUTH, **{"X-Correlation-Id": "c" * 200})
        resp = client.get("/api/cron/recurring-expenses", headers=headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["correlationId"] == "c" * 64
        assert db.session.get(IdempotencyRun, body["runId"]).correlation_id == "c" * 64


# =============================================================================
# CASH SESSIONS
# =============================================================================


class TestCashSessionRoutes:

    def test_open_twice_conflicts(self, client, db_session):
        _open_session(client)
        resp = client.post("/api/cash-sessions/open", json={"location_id": 1, "opening_balance": "5"})
        assert resp.status_code == 409

    def test_open_requires_location(self, client, db_session):
        resp = client.post("/api/cash-sessions/open", json={"opening_balance": "5"})
        assert resp.status_code == 400

    def test_current_and_close(self, client, db_session):
        session = _open_session(client)

        current = client.get("/api/cash-sessions/current?location_id=1").get_json()
        assert current["session"]["id"] == session["id"]

        resp = client.post(f"/api/cash-sessions/{session['id']}/close", json={"counted_balance": "90.00"})
        assert resp.status_code == 400

        resp = client.post(
            f"/api/cash-sessions/{session['id']}/close",
            json={"counted_balance": "90.00", "notes": "Paid the window cleaner"},
        )
        assert resp.status_code == 200
        closed = resp.get_json()["session"]
        assert closed["status"] == "CLOSED"
        assert closed["difference"] == "-10.00"

        assert client.get("/api/cash-sessions/current?location_id=1").get_json()["session"] is None

    def test_summary_of_missing_session(self, client, db_session):
        assert client.get("/api/cash-sessions/999/summary").status_code == 404


# =============================================================================
# ORDERS
# =============================================================================


class TestOrderRoutes:

    def test_create_without_session(self, client, db_session):
        assert _create_order(client).status_code == 412

    def test_full_flow(self, client, db_session, haircut):
        session = _open_session(client)

        order = _create_order(client).get_json()["order"]
        assert order["cash_session_id"] == session["id"]

        resp = client.post(f"/api/orders/{order['id']}/items", json={"service_id": haircut.id, "quantity": 2})
        assert resp.status_code == 201
        assert resp.get_json()["order"]["total_amount"] == "100.00"

        totals = client.get(f"/api/orders/{order['id']}/totals").get_json()
        assert totals == {"total_amount": "100.00", "total_commission": "40.00", "items_count": 1}

        resp = client.post(f"/api/orders/{order['id']}/close", json={"payment_method_id": 1})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["result"] == "CLOSED"
        assert body["order"]["status"] == "CLOSED"
        assert body["revenue_id"] is not None

        summary = client.get(f"/api/cash-sessions/{session['id']}/summary").get_json()
        assert summary["closed_orders"] == 1
        assert summary["expected_balance"] == "200.00"

        detail = client.get(f"/api/orders/{order['id']}").get_json()["order"]
        assert len(detail["items"]) == 1

        report = client.get("/api/orders/commissions/5").get_json()
        assert report["total_commission"] == "40.00"

    def test_cancel_reason_length(self, client, db_session):
        _open_session(client)
        order = _create_order(client).get_json()["order"]

        short = client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "too short"})
        assert short.status_code == 400

        ok = client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "Client left early"})
        assert ok.status_code == 200
        assert ok.get_json()["order"]["status"] == "CANCELED"

        again = client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "Client left early"})
        assert again.status_code == 409

    def test_inactive_service_is_not_found(self, client, db_session, make_service):
        _open_session(client)
        retired = make_service(name="Perm", is_active=False)
        order = _create_order(client).get_json()["order"]

        resp = client.post(f"/api/orders/{order['id']}/items", json={"service_id": retired.id})
        assert resp.status_code == 404

    def test_list_orders(self, client, db_session):
        _open_session(client)
        _create_order(client)
        _create_order(client)

        body = client.get("/api/orders/?location_id=1&limit=1").get_json()
        assert body["total"] == 2
        assert len(body["orders"]) == 1

        assert client.get("/api/orders/?limit=500").status_code == 400


class TestHealth:

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"
