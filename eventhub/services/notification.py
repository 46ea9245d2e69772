"""
EventHub Planning Service
Notification Service.

Central place for creating and querying notification rows. Delivery itself
happens in the batch jobs (``scheduled_jobs``) which re-read these rows on
every run.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from eventhub.models import db
from eventhub.models.notification import Notification
from eventhub.schemas.payloads import DraftReminderPayload, SendMeta
from eventhub.utils.clock import get_clock


def _event_id_expr():
    return Notification.payload["event_id"].as_string()


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def queue_draft_reminder(*, event_id: str, user_id: int, delay_hours: int = 48):
        """
        Queue a reminder for the draft's creator ``delay_hours`` from now.

        A reminder already queued for the same event is reused instead of
        duplicated.

        Returns:
            The Notification row (flushed, not committed).
        """
        existing = (
            Notification.query
            .filter(
                Notification.type == "draft_reminder",
                Notification.status == "queued",
                _event_id_expr() == str(event_id),
            )
            .first()
        )
        if existing:
            return existing

        now = get_clock().now()
        payload = DraftReminderPayload(
            event_id=str(event_id),
            remind_at=now + timedelta(hours=delay_hours),
            send_meta=SendMeta(),
        )
        notif = Notification(
            type="draft_reminder",
            user_id=user_id,
            status="queued",
            payload=payload.to_dict(),
            created_at=now,
            updated_at=now,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    @staticmethod
    def record_delivery(*, type: str, user_id: int, status: str, payload: dict):
        """Store a one-off notification that was delivered inline (assignment, decision)."""
        now = get_clock().now()
        notif = Notification(
            type=type,
            user_id=user_id,
            status=status,
            payload=payload,
            sent_at=now if status == "sent" else None,
            created_at=now,
            updated_at=now,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def latest_for_event(*, type: str, user_id: int, event_id: str,
                         since: datetime | None = None):
        """Most recent notification of ``type`` for (user, event), optionally bounded in time."""
        q = Notification.query.filter(
            Notification.type == type,
            Notification.user_id == user_id,
            _event_id_expr() == str(event_id),
        )
        if since is not None:
            q = q.filter(Notification.created_at >= since)
        return q.order_by(Notification.created_at.desc(), Notification.id.desc()).first()

    @staticmethod
    def cancel_pending_for_event(*, type: str, event_id: str) -> int:
        """Cancel queued/failed rows of ``type`` for an event. Returns the count."""
        rows = (
            Notification.query
            .filter(
                Notification.type == type,
                Notification.status.in_(["queued", "failed"]),
                _event_id_expr() == str(event_id),
            )
            .all()
        )
        now = get_clock().now()
        for row in rows:
            row.status = "cancelled"
            row.updated_at = now
        return len(rows)

    @staticmethod
    def count_by_status(type: str, status: str) -> int:
        return Notification.query.filter_by(type=type, status=status).count()

    @staticmethod
    def recent_with_status(statuses, limit: int = 20):
        return (
            Notification.query
            .filter(Notification.status.in_(list(statuses)))
            .order_by(Notification.updated_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )
