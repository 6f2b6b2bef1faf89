"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  - simple 200 for load balancers
    GET /api/v1/health/live   - database reachability and background jobs
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from signum.models import db
from signum.services.side_effects import running_jobs

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe - always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check - database failed: %s", exc)

    checks["side_effects"] = {"status": "ok", "running": running_jobs()}
    checks["timeout_sweep"] = {
        "enabled": bool(current_app.config.get("TIMEOUT_SWEEP_ENABLED")),
        "days": current_app.config.get("DOC_TIMEOUT_DAYS"),
        "mode": current_app.config.get("DOC_TIMEOUT_MODE"),
    }

    status = "ok" if overall else "degraded"
    return jsonify({"status": status, "checks": checks}), 200 if overall else 503
