# Overview: Scheduler-triggered batch endpoints; protected by the shared cron secret.

# backend/barbercore/routes/cron.py
"""
Cron API Routes

WHY: The external scheduler calls these once per day. Re-triggers are
normal (retries, overlapping schedulers) and must answer "skipped", never
run the batch twice.

The business day is always the server's (BUSINESS_TIMEZONE); callers cannot
choose it. Backfills go through the CLI.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_cron_secret
from ..services import recurring_expense_service
from ..services.recurring_expense_service import BatchSetupError
from ..validation import CommerceError


cron_bp = Blueprint("cron", __name__, url_prefix="/api/cron")


@cron_bp.get("/recurring-expenses")
@require_cron_secret
def recurring_expenses_route():
    """
    Generate due recurring-expense installments for today's business day.

    Headers:
    - Authorization: Bearer <CRON_SECRET>
    - X-Correlation-Id (optional, truncated to 64 characters)

    Returns:
    - 200: batch ran or was skipped (see "skipped" and "status")
    - 401: missing or invalid cron secret
    - 500: batch could not start
    """
    try:
        result = recurring_expense_service.run_recurring_expenses(
            trigger_source="cron",
            correlation_id=request.headers.get("X-Correlation-Id"),
        )
        return jsonify(result.to_dict()), 200

    except BatchSetupError as e:
        return jsonify({
            "success": False,
            "error": str(e),
            "correlationId": e.correlation_id,
            "runId": e.run_id,
        }), 500
    except CommerceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Recurring expense batch failed")
        return jsonify({"success": False, "error": "Internal server error"}), 500
