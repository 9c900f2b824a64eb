# Overview: Request decorators for API routes.

import secrets
from functools import wraps

from flask import current_app, jsonify, request


def require_cron_secret(f):
    """
    Require the scheduler's shared secret as a bearer token.

    SECURITY: Returns 401 if:
    - No Authorization header, or not a Bearer token
    - Token does not match CRON_SECRET
    - CRON_SECRET is not configured (the endpoint is closed by default)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("CRON_SECRET")
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        if not expected or not secrets.compare_digest(token.encode(), expected.encode()):
            current_app.logger.warning(
                "Rejected cron request with invalid secret",
                extra={"path": request.path, "remote_addr": request.remote_addr},
            )
            return jsonify({"error": "Invalid cron secret"}), 401

        return f(*args, **kwargs)

    return decorated_function
