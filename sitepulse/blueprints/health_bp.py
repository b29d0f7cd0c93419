"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — dependency status (DB, survey tables, Redis, prediction config)
"""

import logging
import time

import redis
from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from sitepulse.models import db
from sitepulse.models.survey import DailySurvey, SurveyTrackingRecord

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")

_SURVEY_TABLES = (SurveyTrackingRecord.__tablename__, DailySurvey.__tablename__)


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe: 200 whenever the app is serving."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Survey tables ────────────────────────────────────────────────
    if overall:
        tables = {}
        for tbl in _SURVEY_TABLES:
            try:
                count = db.session.execute(db.text(f"SELECT COUNT(*) FROM {tbl}")).scalar()
                tables[tbl] = {"status": "ok", "count": count}
            except SQLAlchemyError as exc:
                db.session.rollback()
                tables[tbl] = {"status": "error", "detail": str(exc)}
                overall = False
        checks["tables"] = tables

    # ── Redis (rate-limit storage) ───────────────────────────────────
    redis_url = current_app.config.get("REDIS_URL", "")
    if redis_url.startswith(("redis://", "rediss://")):
        try:
            t0 = time.perf_counter()
            redis.from_url(redis_url, socket_timeout=2).ping()
            redis_ms = (time.perf_counter() - t0) * 1000
            checks["redis"] = {"status": "ok", "latency_ms": round(redis_ms, 1)}
        except redis.RedisError as exc:
            # Limiter falls back to per-process counting; not fatal
            checks["redis"] = {"status": "error", "detail": str(exc)}
    else:
        checks["redis"] = {"status": "skipped", "detail": "in-memory rate-limit storage"}

    # ── Prediction boundary ──────────────────────────────────────────
    checks["prediction"] = {
        "status": "configured" if current_app.config.get("PREDICTION_API_URL") else "missing",
        "authenticated": bool(current_app.config.get("PREDICTION_API_TOKEN")),
    }

    checks["app"] = {
        "name": "SitePulse Survey Service",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
