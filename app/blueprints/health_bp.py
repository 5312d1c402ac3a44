"""
Health check blueprint (no token required).

Endpoints:
    GET /api/v1/health        — status, timestamp, uptime, environment
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database, backups and scheduler status
"""

import logging
import os
import time
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

from app.models import db
from app.services import backup_service
from app.services.scheduler_service import SchedulerService

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")

_STARTED_AT = time.monotonic()


@health_bp.route("", methods=["GET"])
def health():
    return jsonify({
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _STARTED_AT, 1),
        "environment": os.getenv("APP_ENV", "development"),
    })


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Backups ──────────────────────────────────────────────────────
    backups = backup_service.list_backups()
    checks["backups"] = {
        "status": "ok" if backups else "none",
        "count": len(backups),
        "latest": backups[0]["created"] if backups else None,
    }

    # ── Scheduler ────────────────────────────────────────────────────
    checks["scheduler"] = {
        "enabled": bool(current_app.config.get("SCHEDULER_ENABLED")),
        "jobs": SchedulerService.list_jobs(),
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
