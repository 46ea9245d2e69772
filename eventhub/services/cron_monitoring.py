"""
Cron monitoring snapshot for the planning dashboard.

Combines notification delivery state (queued / failed reminders) with the
latest ``CronAlertLog`` rows, including the newest webhook heartbeat.
"""

from __future__ import annotations

from flask import current_app

from eventhub.models.notification import Notification
from eventhub.models.scheduling import CronAlertLog
from eventhub.services.alerting import HEARTBEAT_JOB
from eventhub.services.notification import NotificationService
from eventhub.utils.clock import iso_z

RECENT_LIMIT = 20


def _failure_entry(row: Notification) -> dict:
    payload = row.payload or {}
    meta = payload.get("send_meta") or {}
    user = row.user
    return {
        "id": row.id,
        "type": row.type,
        "status": row.status,
        "eventId": payload.get("event_id"),
        "eventTitle": payload.get("title"),
        "venueName": payload.get("venue"),
        "severity": payload.get("severity"),
        "lastError": meta.get("error"),
        "retryCount": meta.get("retry_count") or 0,
        "attemptedAt": meta.get("attempted_at"),
        "retryAfter": meta.get("retry_after"),
        "reviewerId": row.user_id,
        "reviewerEmail": user.email if user else None,
        "reviewerName": user.full_name if user else None,
        "createdAt": iso_z(row.created_at),
    }


def build_cron_snapshot() -> dict:
    notifications = NotificationService.recent_with_status(("queued", "failed"), RECENT_LIMIT)
    alerts = (
        CronAlertLog.query
        .order_by(CronAlertLog.created_at.desc(), CronAlertLog.id.desc())
        .limit(RECENT_LIMIT)
        .all()
    )
    heartbeat = (
        CronAlertLog.query
        .filter_by(job=HEARTBEAT_JOB)
        .order_by(CronAlertLog.created_at.desc(), CronAlertLog.id.desc())
        .first()
    )

    return {
        "queuedCount": Notification.query.filter_by(status="queued").count(),
        "failedCount": Notification.query.filter_by(status="failed").count(),
        "recentNotifications": [_failure_entry(n) for n in notifications],
        "recentAlerts": [
            {
                "id": a.id,
                "job": a.job,
                "severity": a.severity,
                "message": a.message,
                "detail": a.detail,
                "responseStatus": a.response_status,
                "responseBody": a.response_body,
                "createdAt": iso_z(a.created_at),
            }
            for a in alerts
        ],
        "latestAlertAt": iso_z(alerts[0].created_at) if alerts else None,
        "heartbeat": {
            "status": heartbeat.severity if heartbeat else "unknown",
            "recordedAt": iso_z(heartbeat.created_at) if heartbeat else None,
            "message": heartbeat.message if heartbeat else None,
        },
        "webhookConfigured": bool(current_app.config.get("CRON_ALERT_WEBHOOK_URL")),
    }
