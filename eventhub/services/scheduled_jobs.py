"""
EventHub Planning Service
Scheduled Jobs.

Concrete batch jobs triggered through ``/api/cron/<job>``.

Jobs:
    - draft_reminders: Emails creators whose drafts were left unsubmitted
    - sla_reminders: Nudges reviewers about submitted events close to (or past) start
    - weekly_digest: Executive summary built from the planning analytics read model
    - ai_publish_dispatch: Pushes pending AI publish queue items to the webhook
    - alert_heartbeat: Pings the ops alert webhook

Every job follows the same shape: one query for due work, then items are
processed one at a time, each inside its own try/except. A failing item is
marked failed (or requeued) and the loop moves on; an aggregate alert is sent
after the loop. Only a failure of the initial query makes the run fail
(``ok=False``, ``http_status=500``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from markupsafe import escape
from sqlalchemy.exc import SQLAlchemyError

from eventhub.integrations.webhook_gateway import webhook_gateway
from eventhub.models import db
from eventhub.models.event import Event
from eventhub.models.notification import Notification
from eventhub.models.publishing import AiPublishQueueItem
from eventhub.models.scheduling import WeeklyDigestLog
from eventhub.models.user import User
from eventhub.schemas.payloads import (
    DraftReminderPayload,
    PayloadError,
    SendMeta,
    SlaWarningPayload,
)
from eventhub.services.alerting import ping_alert_webhook, report_cron_failure
from eventhub.services.email_service import EmailDeliveryError, EmailService
from eventhub.services.notification import NotificationService
from eventhub.services.planning_analytics import build_planning_analytics
from eventhub.services.scheduler_service import register_job
from eventhub.services.sla import reminder_severity
from eventhub.utils.clock import as_utc, get_clock, iso_z
from eventhub.utils.venue_spaces import format_spaces_label

logger = logging.getLogger(__name__)

SLA_LOOKBACK = timedelta(hours=24)
SLA_BACKOFF = timedelta(minutes=60)
RETRY_DELAY = timedelta(hours=1)
AI_DISPATCH_BATCH = 10
DIGEST_MIN_INTERVAL = timedelta(days=6)
DIGEST_UPCOMING = 5


@dataclass
class JobSummary:
    """Counters returned by every batch job (and serialised by the cron endpoint)."""
    job: str
    processed: int = 0
    dispatched: int = 0
    skipped: int = 0
    cancelled: int = 0
    failed: int = 0
    ok: bool = True
    error: str | None = None
    http_status: int = 200
    failures: list[dict] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)

    def item_failed(self, item_id, error: str) -> None:
        self.failed += 1
        self.failures.append({"id": item_id, "error": error})

    def to_dict(self) -> dict:
        d = {
            "job": self.job,
            "processed": self.processed,
            "dispatched": self.dispatched,
            "skipped": self.skipped,
            "cancelled": self.cancelled,
            "failed": self.failed,
            "ok": self.ok,
            "http_status": self.http_status,
        }
        if self.error:
            d["error"] = self.error
        d.update(self.extra)
        return d


def _hard_failure(summary: JobSummary, message: str, exc: Exception) -> dict:
    db.session.rollback()
    summary.ok = False
    summary.error = str(exc)
    summary.http_status = 500
    logger.error("%s: %s", message, exc, extra={"job": summary.job})
    report_cron_failure(summary.job, message, str(exc))
    return summary.to_dict()


def _alert_item_failures(summary: JobSummary, message: str) -> None:
    if summary.failed:
        report_cron_failure(summary.job, f"{message} ({summary.failed} failed)", summary.failures)


def _event_url(app, event_id: str) -> str:
    return f"{(app.config.get('APP_URL') or '').rstrip('/')}/events/{event_id}"


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Draft reminders
# ═══════════════════════════════════════════════════════════════════════════

def _draft_reminder_due(row: Notification, payload: DraftReminderPayload,
                        now: datetime, max_retries: int) -> bool:
    meta = payload.send_meta
    if row.status == "failed":
        if meta.retry_count >= max_retries:
            return False
        return meta.retry_after is None or meta.retry_after <= now
    return payload.remind_at is None or payload.remind_at <= now


def _finish_draft_reminder(row: Notification, payload: DraftReminderPayload, *,
                           status: str, now: datetime, error: str | None = None,
                           message_id: str | None = None) -> None:
    payload.send_meta = payload.send_meta.attempt(
        at=now,
        error=error,
        message_id=message_id,
        retry_after=now + RETRY_DELAY if status == "failed" else None,
    )
    row.status = status
    row.sent_at = now if status == "sent" else None
    row.payload = {**(row.payload or {}), **payload.to_dict()}
    row.updated_at = now
    db.session.commit()


def _deliver_draft_reminder(app, row: Notification, payload: DraftReminderPayload,
                            now: datetime) -> str:
    if not payload.event_id:
        _finish_draft_reminder(row, payload, status="cancelled", now=now, error="Missing event_id")
        return "cancelled"

    event = db.session.get(Event, payload.event_id)
    if event is None or event.status != "draft":
        _finish_draft_reminder(row, payload, status="cancelled", now=now,
                               error="Draft no longer available")
        return "cancelled"

    creator = event.creator
    if creator is None or not creator.email:
        _finish_draft_reminder(row, payload, status="cancelled", now=now,
                               error="Creator email not found")
        return "cancelled"

    try:
        log = EmailService.send_from_template(
            to_email=creator.email,
            to_name=creator.full_name,
            template_name="draft_reminder",
            context={
                "name": creator.full_name or "there",
                "title": event.title,
                "venue": event.venue.name if event.venue else "your venue",
                "event_url": _event_url(app, event.id),
            },
            notification_id=row.id,
            raise_on_failure=True,
        )
    except EmailDeliveryError as exc:
        logger.warning("Draft reminder %s failed: %s", row.id, exc.reason,
                       extra={"notification_id": row.id, "event_id": event.id})
        _finish_draft_reminder(row, payload, status="failed", now=now, error=exc.reason)
        return "failed"
    except Exception as exc:
        # unexpected errors still end in failed so the next run retries the row
        db.session.rollback()
        logger.exception("Draft reminder %s crashed while sending", row.id,
                         extra={"notification_id": row.id, "event_id": event.id})
        _finish_draft_reminder(row, payload, status="failed", now=now, error=str(exc))
        return "failed"

    _finish_draft_reminder(row, payload, status="sent", now=now, message_id=log.message_id)
    return "sent"


@register_job("draft_reminders", cron="0 * * * *", cadence="Hourly")
def run_draft_reminders(app) -> dict[str, Any]:
    """Send due draft reminders and retry failed ones after their backoff."""
    summary = JobSummary(job="draft-reminders")
    now = get_clock().now()
    max_retries = app.config.get("REMINDER_MAX_RETRIES", 3)

    try:
        rows = (
            Notification.query
            .filter(
                Notification.type == "draft_reminder",
                Notification.status.in_(["queued", "failed"]),
            )
            .order_by(Notification.created_at.asc(), Notification.id.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        return _hard_failure(summary, "Failed to query draft reminder notifications", exc)

    for row in rows:
        row_id = row.id
        try:
            try:
                payload = DraftReminderPayload.from_dict(row.payload)
            except PayloadError as exc:
                summary.processed += 1
                summary.cancelled += 1
                row.status = "cancelled"
                row.payload = {**(row.payload if isinstance(row.payload, dict) else {}),
                               "send_meta": SendMeta().attempt(at=now, error=str(exc)).to_dict()}
                row.updated_at = now
                db.session.commit()
                continue

            if not _draft_reminder_due(row, payload, now, max_retries):
                continue

            summary.processed += 1
            outcome = _deliver_draft_reminder(app, row, payload, now)
            if outcome == "sent":
                summary.dispatched += 1
            elif outcome == "cancelled":
                summary.cancelled += 1
            else:
                summary.item_failed(row_id, (row.payload or {}).get("send_meta", {}).get("error"))
        except Exception as exc:
            db.session.rollback()
            logger.exception("Draft reminder %s crashed", row_id, extra={"notification_id": row_id})
            summary.item_failed(row_id, str(exc))

    _alert_item_failures(summary, "Draft reminder emails failed to send")
    logger.info("Draft reminders: %s", summary.to_dict(), extra={"job": summary.job})
    return summary.to_dict()


# ═══════════════════════════════════════════════════════════════════════════
#  Job 2: Reviewer SLA reminders
# ═══════════════════════════════════════════════════════════════════════════

def _existing_meta(row: Notification) -> SendMeta:
    try:
        return SlaWarningPayload.from_dict(row.payload).send_meta
    except PayloadError as exc:
        logger.warning("Ignoring malformed SLA payload on notification %s: %s", row.id, exc,
                       extra={"notification_id": row.id})
        return SendMeta()


def _sla_reminder_blocked(existing: Notification, now: datetime) -> bool:
    """True when the latest notification for (reviewer, event) suppresses a new send."""
    if existing.status in ("sent", "cancelled"):
        return True
    meta = _existing_meta(existing)
    if meta.attempted_at is not None and now - meta.attempted_at < SLA_BACKOFF:
        return True
    return meta.retry_after is not None and meta.retry_after > now


def _process_sla_event(app, event: Event, severity: str, now: datetime) -> str:
    reviewer = event.reviewer
    if reviewer is None or not reviewer.email:
        return "skipped"

    existing = NotificationService.latest_for_event(
        type="sla_warning", user_id=reviewer.id, event_id=event.id, since=now - SLA_LOOKBACK,
    )
    if existing is not None and _sla_reminder_blocked(existing, now):
        return "skipped"

    venue_name = event.venue.name if event.venue else None
    payload = SlaWarningPayload(
        event_id=event.id,
        title=event.title,
        venue=venue_name,
        start_at=event.start_at,
        severity=severity,
        send_meta=_existing_meta(existing) if existing is not None else SendMeta(),
    )

    # Upsert: reuse the row from the lookback window instead of inserting a twin.
    row = existing
    if row is None:
        row = Notification(type="sla_warning", user_id=reviewer.id, created_at=now)
        db.session.add(row)
    row.status = "queued"
    row.payload = payload.to_dict()
    row.updated_at = now
    db.session.commit()

    error = None
    message_id = None
    try:
        log = EmailService.send_from_template(
            to_email=reviewer.email,
            to_name=reviewer.full_name,
            template_name="sla_warning",
            context={
                "name": reviewer.full_name or "there",
                "title": event.title,
                "venue": venue_name or "Venue TBC",
                "start_at": iso_z(event.start_at),
                "severity_label": "Overdue" if severity == "overdue" else "Warning",
                "event_url": _event_url(app, event.id),
            },
            notification_id=row.id,
            raise_on_failure=True,
        )
        message_id = log.message_id
    except EmailDeliveryError as exc:
        error = exc.reason
        logger.warning("SLA warning for event %s failed: %s", event.id, exc.reason,
                       extra={"event_id": event.id, "reviewer_id": reviewer.id})
    except Exception as exc:
        db.session.rollback()
        error = str(exc)
        logger.exception("SLA warning for event %s crashed while sending", event.id,
                         extra={"event_id": event.id, "reviewer_id": reviewer.id})

    payload.send_meta = payload.send_meta.attempt(
        at=now,
        error=error,
        message_id=message_id,
        retry_after=now + SLA_BACKOFF if error else None,
    )
    row.payload = payload.to_dict()
    row.updated_at = now
    if error:
        row.status = "queued"
    else:
        row.status = "sent"
        row.sent_at = now
    db.session.commit()
    return "failed" if error else "sent"


@register_job("sla_reminders", cron="*/30 * * * *", cadence="Every 30 minutes")
def run_sla_reminders(app) -> dict[str, Any]:
    """Warn assigned reviewers about submitted events starting within a day or overdue."""
    summary = JobSummary(job="sla-reminders")
    now = get_clock().now()

    try:
        events = (
            Event.query
            .filter(Event.status == "submitted", Event.assigned_reviewer_id.isnot(None))
            .order_by(Event.start_at.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        return _hard_failure(summary, "Failed to load submitted events for SLA reminders", exc)

    for event in events:
        event_id = event.id
        start = as_utc(event.start_at)
        severity = reminder_severity(start, now) if start else None
        if severity is None:
            summary.skipped += 1
            continue

        summary.processed += 1
        try:
            outcome = _process_sla_event(app, event, severity, now)
        except Exception as exc:
            db.session.rollback()
            logger.exception("SLA reminder for event %s crashed", event_id,
                             extra={"event_id": event_id})
            summary.item_failed(event_id, str(exc))
            continue

        if outcome == "sent":
            summary.dispatched += 1
        elif outcome == "skipped":
            summary.skipped += 1
        else:
            summary.item_failed(event_id, "email delivery failed")

    _alert_item_failures(summary, "SLA warning emails failed to send")
    logger.info("SLA reminders: %s", summary.to_dict(), extra={"job": summary.job})
    return summary.to_dict()


# ═══════════════════════════════════════════════════════════════════════════
#  Job 3: Weekly digest
# ═══════════════════════════════════════════════════════════════════════════

def _digest_context(analytics, now: datetime) -> dict:
    status_rows = "".join(
        f'<tr><td style="padding: 6px 8px;">{escape(status)}</td>'
        f'<td style="padding: 6px 8px; text-align: right;">{count}</td></tr>'
        for status, count in sorted(analytics.status_counts.items())
    )
    upcoming_list = "".join(
        f"<li>{escape(e.title)} · {escape(e.venue_name or 'Venue TBC')} "
        f"({escape(format_spaces_label(e.venue_space))}) · {escape(iso_z(e.start_at) or '')}</li>"
        for e in analytics.upcoming[:DIGEST_UPCOMING]
    ) or "<li>Nothing scheduled</li>"
    return {
        "week": now.date().isoformat(),
        "status_rows": status_rows,
        "conflict_count": len(analytics.conflicts),
        "awaiting_count": len(analytics.awaiting_reviewer),
        "upcoming_list": upcoming_list,
    }


@register_job("weekly_digest", cron="0 8 * * 1", cadence="Mondays at 08:00")
def run_weekly_digest(app) -> dict[str, Any]:
    """Email the weekly planning digest to executives and record a snapshot."""
    summary = JobSummary(job="weekly-digest")
    now = get_clock().now()

    try:
        latest = WeeklyDigestLog.query.order_by(WeeklyDigestLog.sent_at.desc()).first()
        if latest is not None and as_utc(latest.sent_at) > now - DIGEST_MIN_INTERVAL \
                and not (latest.payload or {}).get("failed"):
            summary.skipped += 1
            summary.extra["message"] = "Weekly digest already recorded for this week."
            return summary.to_dict()

        analytics = build_planning_analytics(now)
        recipients = (
            User.query
            .filter(User.role == "executive", User.email.isnot(None), User.email != "")
            .order_by(User.id.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        return _hard_failure(summary, "Weekly digest cron failed", exc)

    context = _digest_context(analytics, now)
    for user in recipients:
        summary.processed += 1
        try:
            EmailService.send_from_template(
                to_email=user.email,
                to_name=user.full_name,
                template_name="weekly_digest",
                context=context,
                raise_on_failure=True,
            )
            db.session.commit()
            summary.dispatched += 1
        except EmailDeliveryError as exc:
            db.session.commit()
            summary.item_failed(user.id, exc.reason)
        except Exception as exc:
            db.session.rollback()
            logger.exception("Weekly digest to user %s crashed", user.id)
            summary.item_failed(user.id, str(exc))

    metrics = {
        "statusCounts": analytics.status_counts,
        "conflicts": len(analytics.conflicts),
        "awaitingReviewer": len(analytics.awaiting_reviewer),
    }
    try:
        db.session.add(WeeklyDigestLog(
            payload={
                "generated_at": iso_z(now),
                "status_counts": analytics.status_counts,
                "conflicts": len(analytics.conflicts),
                "awaiting_reviewer": len(analytics.awaiting_reviewer),
                "upcoming": [e.to_dict() for e in analytics.upcoming[:10]],
                "recipients": [u.email for u in recipients],
                "sent": summary.dispatched,
                "failed": summary.failed,
                "errors": summary.failures,
            },
            sent_at=now,
        ))
        db.session.commit()
    except SQLAlchemyError as exc:
        return _hard_failure(summary, "Failed to record weekly digest log", exc)

    _alert_item_failures(summary, "Weekly digest email failed to send")
    summary.extra["metrics"] = metrics
    logger.info("Weekly digest: %s", summary.to_dict(), extra={"job": summary.job})
    return summary.to_dict()


# ═══════════════════════════════════════════════════════════════════════════
#  Job 4: AI publish dispatch
# ═══════════════════════════════════════════════════════════════════════════

@register_job("ai_publish_dispatch", cron="*/10 * * * *", cadence="Every 10 minutes")
def run_ai_publish_dispatch(app) -> dict[str, Any]:
    """Push pending AI publish queue items (oldest first) to the publishing webhook."""
    summary = JobSummary(job="ai-dispatch")
    now = get_clock().now()
    url = (app.config.get("AI_PUBLISH_WEBHOOK_URL") or "").strip()
    token = (app.config.get("AI_PUBLISH_WEBHOOK_TOKEN") or "").strip() or None

    try:
        items = (
            AiPublishQueueItem.query
            .filter_by(status="pending")
            .order_by(AiPublishQueueItem.created_at.asc(), AiPublishQueueItem.id.asc())
            .limit(AI_DISPATCH_BATCH)
            .all()
        )
    except SQLAlchemyError as exc:
        return _hard_failure(summary, "Failed to fetch pending AI publish queue items", exc)

    for item in items:
        item_id = item.id
        summary.processed += 1
        try:
            if url:
                result = webhook_gateway.post_json(url, {
                    "contentId": item.content_id,
                    "eventId": item.event_id,
                    "payload": item.payload,
                }, bearer_token=token)
                if not result.ok:
                    item.status = "failed"
                    item.updated_at = now
                    db.session.commit()
                    summary.item_failed(
                        item_id,
                        result.error or f"Webhook responded with status {result.status_code}",
                    )
                    continue

            item.status = "dispatched"
            item.dispatched_at = now
            item.updated_at = now
            db.session.commit()
            summary.dispatched += 1
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to update AI publish queue item %s", item_id)
            summary.item_failed(item_id, str(exc))

    _alert_item_failures(summary, "AI publish dispatch webhook failed")
    logger.info("AI publish dispatch: %s", summary.to_dict(), extra={"job": summary.job})
    return summary.to_dict()


# ═══════════════════════════════════════════════════════════════════════════
#  Job 5: Alert webhook heartbeat
# ═══════════════════════════════════════════════════════════════════════════

@register_job("alert_heartbeat", cron="0 */6 * * *", cadence="Every 6 hours")
def run_alert_heartbeat(app) -> dict[str, Any]:
    """Ping the cron alert webhook so a dead alert channel is noticed."""
    result = ping_alert_webhook()
    return {
        "job": "alert-heartbeat",
        "ok": result["ok"],
        "status": result["status"],
        "body": result["body"],
        "http_status": 200 if result["ok"] else 503,
    }
