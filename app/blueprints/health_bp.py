"""
Health check blueprint.

Endpoints:
    GET /api/v1/health        — minimal liveness
    GET /api/v1/health/ready  — readiness probe (database reachable)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from app.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({"status": "ok", "app": "Production Workflow System"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe — 200 when the database answers, 503 otherwise."""
    checks = {}
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        logger.error("Health check — database failed: %s", exc)
        checks["database"] = {"status": "error", "detail": str(exc)}
        return jsonify({"status": "degraded", "checks": checks}), 503

    checks["accounting"] = {"provider": current_app.config.get("ACCOUNTING_PROVIDER", "mock")}
    return jsonify({"status": "ok", "checks": checks}), 200
