"""
EventHub Planning Service
Planning Blueprint.

Central-planner read models built on ``planning_analytics``:
    GET  /api/v1/planning/analytics        JSON analytics read model
    GET  /api/v1/planning/calendar.ics     ICS feed of the calendar projection
    GET  /api/v1/planning/cron-monitoring  notification + alert status
    GET  /api/v1/planning/jobs             scheduled job registry
    POST /api/v1/planning/jobs/<name>/toggle
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from eventhub.auth import require_roles
from eventhub.models import db
from eventhub.services.calendar_export import build_ics
from eventhub.services.cron_monitoring import build_cron_snapshot
from eventhub.services.planning_analytics import build_planning_analytics
from eventhub.services.scheduler_service import SchedulerService
from eventhub.utils.clock import get_clock
from eventhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

planning_bp = Blueprint("planning_bp", __name__, url_prefix="/api/v1/planning")


@planning_bp.route("/analytics", methods=["GET"])
@require_roles("central_planner")
def analytics():
    try:
        model = build_planning_analytics()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to build planning analytics")
        return api_error(E.DATABASE, "Unable to load planning analytics")
    return jsonify(model.to_dict()), 200


@planning_bp.route("/calendar.ics", methods=["GET"])
@require_roles("central_planner")
def calendar_feed():
    now = get_clock().now()
    try:
        model = build_planning_analytics(now)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to build calendar feed")
        return api_error(E.DATABASE, "Unable to load planning calendar")

    return Response(
        build_ics(model.calendar_events, now),
        status=200,
        headers={
            "Content-Type": "text/calendar; charset=utf-8",
            "Content-Disposition": 'attachment; filename="planning-feed.ics"',
        },
    )


@planning_bp.route("/cron-monitoring", methods=["GET"])
@require_roles("central_planner")
def cron_monitoring():
    try:
        snapshot = build_cron_snapshot()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to build cron monitoring snapshot")
        return api_error(E.DATABASE, "Unable to load cron monitoring")
    return jsonify(snapshot), 200


@planning_bp.route("/jobs", methods=["GET"])
@require_roles("central_planner")
def list_jobs():
    SchedulerService.ensure_jobs_registered()
    return jsonify({"items": SchedulerService.list_jobs()}), 200


@planning_bp.route("/jobs/<job_name>/toggle", methods=["POST"])
@require_roles("central_planner")
def toggle_job(job_name):
    """Body: {"enabled": bool}"""
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("enabled"), bool):
        return api_error(E.VALIDATION_REQUIRED, "enabled (boolean) is required")
    SchedulerService.ensure_jobs_registered()
    job = SchedulerService.toggle_job(job_name, data["enabled"])
    if job is None:
        return api_error(E.NOT_FOUND, f"Unknown job: {job_name}")
    return jsonify(job), 200
