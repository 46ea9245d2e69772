"""
Cron trigger endpoints.

    GET /api/cron/draft-reminders
    GET /api/cron/sla-reminders
    GET /api/cron/weekly-digest
    GET /api/cron/ai-dispatch
    GET /api/cron/alert-heartbeat

Bearer-token protected (CRON_SECRET). The response is the job summary;
HTTP 500 only when the job could not read its work set (or crashed),
503 for a failed heartbeat.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify

from eventhub.middleware.cron_auth import require_cron_token
from eventhub.services.alerting import report_cron_failure
from eventhub.services.scheduler_service import SchedulerService
from eventhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

cron_bp = Blueprint("cron_bp", __name__, url_prefix="/api/cron")

CRON_JOBS = {
    "draft-reminders": "draft_reminders",
    "sla-reminders": "sla_reminders",
    "weekly-digest": "weekly_digest",
    "ai-dispatch": "ai_publish_dispatch",
    "alert-heartbeat": "alert_heartbeat",
}


@cron_bp.route("/<job>", methods=["GET", "POST"])
@require_cron_token
def run_cron_job(job):
    job_name = CRON_JOBS.get(job)
    if job_name is None:
        return api_error(E.NOT_FOUND, f"Unknown cron job: {job}")

    SchedulerService.ensure_jobs_registered()
    run = SchedulerService.run_job(job_name)

    if run["status"] == "skipped":
        return jsonify({"job": job, "skipped": True, "message": "Job is disabled"}), 200

    result = run.get("result")
    if not isinstance(result, dict):
        # Job raised before producing a summary
        report_cron_failure(job, "Cron job crashed", run.get("error"))
        return jsonify({"job": job, "ok": False, "error": run.get("error") or "Job failed"}), 500

    body = dict(result)
    http_status = body.pop("http_status", 200)
    body["duration_ms"] = run.get("duration_ms")
    return jsonify(body), http_status
