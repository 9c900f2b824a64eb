# backend/barbercore/routes/system.py
"""System health endpoint."""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import CashRegisterSession, IdempotencyRun
from ..models.cash import SESSION_OPEN
from ..models.runs import RUN_RUNNING
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity and report a few live counters."""
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        open_sessions = db.session.query(CashRegisterSession).filter_by(status=SESSION_OPEN).count()
        running_jobs = db.session.query(IdempotencyRun).filter_by(status=RUN_RUNNING).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "open_cash_sessions": open_sessions,
                "running_jobs": running_jobs,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    response = {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
        }
    }
    return response, http_status
