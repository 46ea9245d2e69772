"""
EventHub Planning Service
Cron alerting: the side channel for job failures.

Every alert is POSTed to CRON_ALERT_WEBHOOK_URL (when configured) and
recorded in ``cron_alert_logs``. Neither step ever raises into the caller:
a broken alert channel must not turn a partially successful batch into a
failed one.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from flask import current_app

from eventhub.integrations.webhook_gateway import webhook_gateway
from eventhub.models import db
from eventhub.models.scheduling import CronAlertLog
from eventhub.utils.clock import get_clock, iso_z

logger = logging.getLogger(__name__)

HEARTBEAT_JOB = "webhook-heartbeat"
_BODY_LIMIT = 500


def _webhook_url() -> str:
    return current_app.config.get("CRON_ALERT_WEBHOOK_URL") or ""


def _serialize_body(result) -> str | None:
    if result.data is not None:
        try:
            return json.dumps(result.data, default=str)[:_BODY_LIMIT]
        except (TypeError, ValueError):
            return "[unserializable-body]"
    return result.body_preview


def _record_alert(*, job: str, severity: str, message: str, detail: str | None = None,
                  response_status: int | None = None, response_body: str | None = None) -> None:
    try:
        db.session.add(CronAlertLog(
            job=job,
            severity=severity,
            message=message,
            detail=detail,
            response_status=response_status,
            response_body=response_body[:_BODY_LIMIT] if response_body else None,
            created_at=get_clock().now(),
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to record cron alert log job=%s severity=%s", job, severity)


def report_cron_failure(job: str, message: str, detail: Any = None) -> None:
    """Notify the ops webhook about a job failure and log the attempt."""
    if detail is not None and not isinstance(detail, str):
        detail = json.dumps(detail, default=str)

    logger.error("Cron failure job=%s: %s", job, message, extra={"job": job})

    url = _webhook_url()
    if not url:
        _record_alert(job=job, severity="error", message=message, detail=detail,
                      response_body="Webhook URL not configured")
        return

    try:
        result = webhook_gateway.post_json(url, {
            "job": job,
            "message": message,
            "detail": detail,
            "timestamp": iso_z(get_clock().now()),
        })
    except Exception as exc:
        logger.exception("Cron alert webhook call crashed job=%s", job)
        _record_alert(job=job, severity="error", message=message,
                      detail=detail or str(exc), response_body=str(exc))
        return

    _record_alert(
        job=job,
        severity="error",
        message=message,
        detail=detail or result.error,
        response_status=result.status_code,
        response_body=_serialize_body(result),
    )


def ping_alert_webhook(job: str = HEARTBEAT_JOB) -> dict:
    """Send a heartbeat to the ops webhook.

    Returns:
        {"ok": bool, "status": int, "body": str|None}
    """
    url = _webhook_url()
    if not url:
        _record_alert(job=job, severity="info",
                      message="Cron alert webhook ping skipped (not configured)")
        return {"ok": False, "status": 0, "body": "Webhook URL not configured"}

    result = webhook_gateway.post_json(url, {
        "job": job,
        "message": "Heartbeat ping",
        "timestamp": iso_z(get_clock().now()),
    })

    if result.status_code is None:
        _record_alert(job=job, severity="error",
                      message="Cron alert webhook heartbeat failed to send",
                      detail=result.error, response_body=result.body_preview)
        return {"ok": False, "status": 0, "body": result.error}

    body = _serialize_body(result)
    _record_alert(
        job=job,
        severity="success" if result.ok else "error",
        message=("Cron alert webhook heartbeat succeeded" if result.ok
                 else "Cron alert webhook heartbeat failed"),
        response_status=result.status_code,
        response_body=body,
    )
    return {"ok": result.ok, "status": result.status_code, "body": body}
