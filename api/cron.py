"""
Scheduler-facing endpoints for refresh-token maintenance.
No caller identity is checked here: restrict /cron/* to the scheduler at the
network layer.
"""
from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

from utils.session_tokens import get_session_tokens
from utils.token_cleanup import CleanupPolicy, run_token_cleanup, token_cleanup_status

bp = Blueprint("cron", __name__, url_prefix="/cron")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@bp.post("/cleanup-tokens")
def cleanup_tokens():
    """
    Run the refresh token cleanup job once (idempotent, safe to retry)
    ---
    tags:
      - Cron
    responses:
      200:
        description: All cleanup steps succeeded
      500:
        description: At least one step failed; the next run retries it
    """
    policy = CleanupPolicy.from_config(current_app.config)
    report = run_token_cleanup(get_session_tokens().store(), policy)

    body = {
        "success": report.success,
        "message": "Token cleanup completed successfully" if report.success else "Token cleanup job failed",
        "stats": report.stats(),
        "errors": report.errors,
        "timestamp": _timestamp(),
    }
    return jsonify(body), 200 if report.success else 500


@bp.get("/cleanup-tokens")
def cleanup_status():
    """
    Current token state, for monitoring the cleanup job. Read-only.
    ---
    tags:
      - Cron
    responses:
      200:
        description: OK
    """
    policy = CleanupPolicy.from_config(current_app.config)
    stats = token_cleanup_status(get_session_tokens().store(), policy)
    stats["next_cleanup_time"] = current_app.config["TOKEN_CLEANUP_SCHEDULE"]
    return jsonify(
        {
            "success": True,
            "message": "Token cleanup job status",
            "current_stats": stats,
            "timestamp": _timestamp(),
        }
    ), 200
