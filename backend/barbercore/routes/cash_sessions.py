# Overview: Flask API routes for cash register sessions; parses input and returns JSON responses.

# backend/barbercore/routes/cash_sessions.py
"""
Cash Session API Routes

DESIGN:
- Session lifecycle: open -> close (immutable once closed)
- One OPEN session per location (409 on a second open)
- Closing with a difference above tolerance requires notes (400)
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import cash_register_service, order_service
from ..validation import CommerceError, ValidationError, format_amount, require_id


cash_sessions_bp = Blueprint("cash_sessions", __name__, url_prefix="/api/cash-sessions")


@cash_sessions_bp.post("/open")
def open_session_route():
    """
    Open the cash drawer for a location.

    Request body:
    {
        "location_id": 1,
        "opening_balance": "150.00",
        "notes": "Morning float" (optional),
        "user_id": 7 (optional)
    }

    Returns 409 if the location already has an open session.
    """
    try:
        data = request.get_json(silent=True) or {}
        location_id = require_id(data.get("location_id"), "location_id")

        session = cash_register_service.open_session(
            location_id=location_id,
            opening_balance=data.get("opening_balance"),
            notes=data.get("notes"),
            user_id=data.get("user_id"),
        )

        return jsonify({"session": session.to_dict()}), 201

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open cash session")
        return jsonify({"error": "Internal server error"}), 500


@cash_sessions_bp.post("/<int:session_id>/close")
def close_session_route(session_id: int):
    """
    Close a session and calculate the drawer difference.

    Request body:
    {
        "counted_balance": "480.00",
        "notes": "Missing 5.00, change error" (required if difference > 0.01)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if "counted_balance" not in data:
            raise ValidationError("counted_balance required")

        session = cash_register_service.close_session(
            session_id=session_id,
            counted_balance=data.get("counted_balance"),
            notes=data.get("notes"),
            user_id=data.get("user_id"),
        )

        return jsonify({"session": session.to_dict()}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close cash session")
        return jsonify({"error": "Internal server error"}), 500


@cash_sessions_bp.get("/current")
def current_session_route():
    """Open session for ?location_id=, or null."""
    location_id = request.args.get("location_id", type=int)
    if not location_id:
        return jsonify({"error": "location_id required"}), 400

    session = cash_register_service.get_open_session(location_id)
    return jsonify({"session": session.to_dict() if session else None}), 200


@cash_sessions_bp.get("/")
@cash_sessions_bp.get("")
def list_sessions_route():
    location_id = request.args.get("location_id", type=int)
    status = request.args.get("status")
    limit = min(request.args.get("limit", 50, type=int), 200)

    sessions = cash_register_service.list_sessions(location_id=location_id, status=status, limit=limit)
    return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200


@cash_sessions_bp.get("/<int:session_id>/summary")
def session_summary_route(session_id: int):
    try:
        summary = cash_register_service.get_session_summary(session_id)
        for key in ("total_closed_amount", "total_commission", "expected_balance"):
            summary[key] = format_amount(summary[key])
        return jsonify(summary), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load cash session summary")
        return jsonify({"error": "Internal server error"}), 500


@cash_sessions_bp.get("/<int:session_id>/orders")
def session_orders_route(session_id: int):
    try:
        cash_register_service.get_session(session_id)
        orders = order_service.get_orders_by_session(session_id)
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200

    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
