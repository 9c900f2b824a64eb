# Overview: Flask API routes for orders (tickets); parses input and returns JSON responses.

# backend/barbercore/routes/orders.py
"""Order API routes: create, items, close, cancel, listing and commission report."""

from flask import Blueprint, request, jsonify, current_app

from ..services import order_service, commission_service
from ..time_utils import parse_iso_date
from ..validation import CommerceError, ValidationError, format_amount


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/")
@orders_bp.post("")
def create_order_route():
    """
    Create an order bound to the location's open cash session.

    Request body:
    {
        "location_id": 1,
        "client_id": 42,
        "professional_id": 3
    }

    Returns 412 if no cash session is open for the location.
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.create_order(
            location_id=data.get("location_id"),
            client_id=data.get("client_id"),
            professional_id=data.get("professional_id"),
        )
        return jsonify({"order": order.to_dict()}), 201

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict(include_items=True)}), 200
    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/")
@orders_bp.get("")
def list_orders_route():
    try:
        orders, total = order_service.list_orders(
            location_id=request.args.get("location_id", type=int),
            status=request.args.get("status"),
            professional_id=request.args.get("professional_id", type=int),
            client_id=request.args.get("client_id", type=int),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 20, type=int),
        )
        return jsonify({"orders": [o.to_dict() for o in orders], "total": total}), 200
    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.post("/<int:order_id>/items")
def add_item_route(order_id: int):
    """
    Add a service to an open order.

    Request body:
    {
        "service_id": 5,
        "professional_id": 3 (optional, defaults to the order's professional),
        "quantity": 1 (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        item = order_service.add_item(
            order_id,
            data.get("service_id"),
            professional_id=data.get("professional_id"),
            quantity=data.get("quantity", 1),
        )
        order = order_service.get_order(order_id)
        return jsonify({"item": item.to_dict(), "order": order.to_dict()}), 201

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/items/<int:item_id>")
def update_item_route(item_id: int):
    try:
        data = request.get_json(silent=True) or {}
        item = order_service.update_item(
            item_id,
            quantity=data.get("quantity"),
            unit_price=data.get("unit_price"),
            commission_percentage=data.get("commission_percentage"),
        )
        return jsonify({"item": item.to_dict()}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/items/<int:item_id>")
def remove_item_route(item_id: int):
    try:
        order_service.remove_item(item_id)
        return jsonify({"deleted": item_id}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/close")
def close_order_route(order_id: int):
    """
    Close an order and post its revenue.

    Request body:
    {
        "payment_method_id": 2,
        "account_id": 9 (optional)
    }

    Returns 200 in both outcomes; "result" is CLOSED or
    CLOSED_WITH_REVENUE_ERROR (order closed, revenue needs manual follow-up).
    """
    try:
        data = request.get_json(silent=True) or {}
        outcome = order_service.close_order(
            order_id,
            data.get("payment_method_id"),
            account_id=data.get("account_id"),
        )
        return jsonify(outcome.to_dict()), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
def cancel_order_route(order_id: int):
    """
    Cancel an open order.

    Request body:
    {
        "reason": "Client left before service" (10-500 characters)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.cancel_order(order_id, data.get("reason"))
        return jsonify({"order": order.to_dict()}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/totals")
def order_totals_route(order_id: int):
    try:
        totals = order_service.calculate_order_totals(order_id)
        return jsonify(totals.to_dict()), 200
    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/commissions/<int:professional_id>")
def commission_report_route(professional_id: int):
    """Commission report over closed orders; optional ?start=YYYY-MM-DD&end=YYYY-MM-DD."""
    try:
        try:
            start = parse_iso_date(request.args.get("start"))
            end = parse_iso_date(request.args.get("end"))
        except ValueError:
            raise ValidationError("start/end must be YYYY-MM-DD dates")

        report = commission_service.generate_commission_report(professional_id, start, end)
        report["total_commission"] = format_amount(report["total_commission"])
        report["average_commission_per_order"] = format_amount(report["average_commission_per_order"])
        return jsonify(report), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
