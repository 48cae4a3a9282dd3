"""
Liveness and readiness checks for load balancers and monitoring.

    GET /api/v1/health/ready  - process is up
    GET /api/v1/health/live   - database reachable, invitation sweep status
"""

import logging
import time
from datetime import timedelta

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.models.scheduling import ScheduledJob
from app.utils.helpers import as_utc, isoformat, utcnow

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

# The sweep runs every 5 minutes; three missed runs count as stale
SWEEP_STALE_AFTER = timedelta(minutes=15)


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"})


@health_bp.route("/live", methods=["GET"])
def live():
    """503 when the database is unreachable. A stale sweep is reported, not fatal."""
    checks = {"app": {"name": "Consultation Marketplace", "testing": current_app.testing}}

    started = time.perf_counter()
    try:
        db.session.execute(db.text("SELECT 1"))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Health check: database unreachable: %s", exc)
        checks["database"] = {"status": "error", "detail": str(exc)}
        return jsonify({"status": "degraded", "checks": checks}), 503
    checks["database"] = {
        "status": "ok",
        "latency_ms": round((time.perf_counter() - started) * 1000, 1),
    }
    checks["invitation_sweep"] = _sweep_check()

    return jsonify({"status": "healthy", "checks": checks})


def _sweep_check() -> dict:
    job = ScheduledJob.query.filter_by(job_name="expire_invitations").first()
    if job is None:
        return {"status": "not_registered"}

    last_run_at = as_utc(job.last_run_at)
    stale = job.is_enabled and (
        last_run_at is None or utcnow() - last_run_at > SWEEP_STALE_AFTER
    )
    return {
        "status": job.last_run_status or "never_run",
        "enabled": bool(job.is_enabled),
        "stale": bool(stale),
        "last_run_at": isoformat(last_run_at),
    }
