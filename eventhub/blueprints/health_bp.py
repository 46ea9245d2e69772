"""
Health endpoints.

    GET /api/v1/health/ready   always 200 once the app is serving
    GET /api/v1/health/live    database + redis probes; 503 when the DB is down

Redis only backs the rate limiter, so a Redis failure is reported but does
not fail the liveness check.
"""

import logging
import time

import redis
from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from eventhub.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


def _timed(probe):
    started = time.perf_counter()
    probe()
    return {"status": "ok", "latency_ms": round((time.perf_counter() - started) * 1000, 1)}


def _database_check():
    try:
        return _timed(lambda: db.session.execute(db.text("SELECT 1")))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Liveness: database unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}


def _redis_check(url):
    if not url.startswith(("redis://", "rediss://")):
        return {"status": "skipped", "detail": "no REDIS_URL configured"}
    try:
        return _timed(lambda: redis.from_url(url, socket_timeout=2).ping())
    except redis.RedisError as exc:
        logger.warning("Liveness: redis unreachable: %s", exc)
        return {"status": "error", "detail": str(exc)}


@health_bp.route("/ready", methods=["GET"])
def ready():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    cfg = current_app.config
    checks = {
        "database": _database_check(),
        "redis": _redis_check(cfg.get("REDIS_URL") or ""),
        "cron": {
            "secret_configured": bool(cfg.get("CRON_SECRET")),
            "alert_webhook_configured": bool(cfg.get("CRON_ALERT_WEBHOOK_URL")),
        },
    }
    healthy = checks["database"]["status"] == "ok"
    return jsonify({"status": "ok" if healthy else "degraded", "checks": checks}), (
        200 if healthy else 503
    )
