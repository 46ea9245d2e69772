"""
Tests: reminder / notification batch jobs.

Covers:
    1. Draft reminders: due / not due, cancellation reasons, retry after failure
    2. SLA reminders: severity cut, upsert + 60 minute dedup, lookback window
    3. Weekly digest: recipients, snapshot log, weekly idempotence
    4. AI publish dispatch: batch size, webhook success / failure
    5. Second-run idempotence and aggregate failure alerts
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from eventhub.models import db
from eventhub.models.notification import Notification
from eventhub.models.publishing import AiPublishQueueItem
from eventhub.models.scheduling import CronAlertLog, EmailLog, WeeklyDigestLog
from eventhub.services.email_service import EmailService
from eventhub.services.scheduled_jobs import (
    AI_DISPATCH_BATCH,
    run_ai_publish_dispatch,
    run_draft_reminders,
    run_sla_reminders,
    run_weekly_digest,
)
from eventhub.utils.clock import iso_z

NOW = datetime(2025, 5, 1, 0, 0, tzinfo=timezone.utc)


def _reminder(event, user, *, status="queued", remind_at=None, send_meta=None, payload=None):
    row = Notification(
        type="draft_reminder",
        user_id=user.id,
        status=status,
        payload=payload if payload is not None else {
            "event_id": event.id if event is not None else None,
            "remind_at": iso_z(remind_at or NOW - timedelta(hours=1)),
            "send_meta": send_meta or {},
        },
        created_at=NOW - timedelta(days=2),
        updated_at=NOW - timedelta(days=2),
    )
    db.session.add(row)
    db.session.commit()
    return row


def _smtp_down():
    return patch.object(EmailService, "_deliver", side_effect=ConnectionError("SMTP unavailable"))


@pytest.fixture()
def venue(make_venue):
    return make_venue("Town Hall")


@pytest.fixture()
def manager(make_user, venue):
    return make_user("venue_manager", venue=venue, full_name="Mia Manager")


@pytest.fixture()
def reviewer(make_user):
    return make_user("reviewer", full_name="Rita Reviewer")


# ═══════════════════════════════════════════════════════════════════════════
#  Draft reminders
# ═══════════════════════════════════════════════════════════════════════════

class TestDraftReminders:
    def test_due_reminder_is_sent(self, app, make_event, manager, venue):
        event = make_event(venue=venue, creator=manager)
        row = _reminder(event, manager)

        result = run_draft_reminders(app)

        assert result["processed"] == 1
        assert result["dispatched"] == 1
        assert result["ok"] is True
        db.session.refresh(row)
        assert row.status == "sent"
        assert row.sent_at is not None
        meta = row.payload["send_meta"]
        assert meta["retry_count"] == 1
        assert meta["error"] is None
        assert meta["message_id"]
        log = EmailLog.query.filter_by(notification_id=row.id).one()
        assert log.template_name == "draft_reminder"
        assert log.recipient_email == manager.email

    def test_future_reminder_untouched(self, app, make_event, manager, venue):
        event = make_event(venue=venue, creator=manager)
        row = _reminder(event, manager, remind_at=NOW + timedelta(hours=3))

        result = run_draft_reminders(app)

        assert result["processed"] == 0
        db.session.refresh(row)
        assert row.status == "queued"

    def test_submitted_event_cancels_reminder(self, app, make_event, manager, venue):
        event = make_event(venue=venue, creator=manager, status="submitted")
        row = _reminder(event, manager)

        result = run_draft_reminders(app)

        assert result["cancelled"] == 1
        db.session.refresh(row)
        assert row.status == "cancelled"
        assert row.payload["send_meta"]["error"] == "Draft no longer available"

    def test_missing_creator_email_cancels(self, app, make_event, make_user, venue):
        creator = make_user("venue_manager", email="", venue=venue)
        event = make_event(venue=venue, creator=creator)
        row = _reminder(event, creator)

        run_draft_reminders(app)

        db.session.refresh(row)
        assert row.status == "cancelled"
        assert row.payload["send_meta"]["error"] == "Creator email not found"

    def test_missing_event_id_cancels(self, app, manager):
        row = _reminder(None, manager)
        run_draft_reminders(app)
        db.session.refresh(row)
        assert row.status == "cancelled"
        assert row.payload["send_meta"]["error"] == "Missing event_id"

    def test_malformed_payload_cancels(self, app, make_event, manager, venue):
        event = make_event(venue=venue, creator=manager)
        row = _reminder(event, manager, payload={"event_id": event.id, "send_meta": "broken"})

        result = run_draft_reminders(app)

        assert result["cancelled"] == 1
        db.session.refresh(row)
        assert row.status == "cancelled"

    def test_failure_then_retry_after_backoff(self, app, clock, make_event, manager, venue):
        event = make_event(venue=venue, creator=manager)
        row = _reminder(event, manager)

        with _smtp_down():
            result = run_draft_reminders(app)
        assert result["failed"] == 1
        assert result["ok"] is True
        db.session.refresh(row)
        assert row.status == "failed"
        meta = row.payload["send_meta"]
        assert meta["retry_count"] == 1
        assert "SMTP unavailable" in meta["error"]
        assert meta["retry_after"] == iso_z(NOW + timedelta(hours=1))
        assert CronAlertLog.query.filter_by(job="draft-reminders").count() == 1

        # Inside the backoff window nothing happens.
        clock.advance(minutes=30)
        assert run_draft_reminders(app)["processed"] == 0

        clock.advance(minutes=30)
        result = run_draft_reminders(app)
        assert result["dispatched"] == 1
        db.session.refresh(row)
        assert row.status == "sent"
        assert row.payload["send_meta"]["retry_count"] == 2

    def test_unexpected_send_error_leaves_row_retryable(self, app, clock, make_event, manager,
                                                        venue):
        event = make_event(venue=venue, creator=manager)
        row = _reminder(event, manager)

        with patch.object(EmailService, "send_from_template",
                          side_effect=RuntimeError("worker crash")):
            first = run_draft_reminders(app)
        assert first["processed"] == 1
        assert first["failed"] == 1
        db.session.refresh(row)
        assert row.status == "failed"
        assert row.payload["send_meta"]["error"] == "worker crash"
        assert row.payload["send_meta"]["retry_count"] == 1

        clock.advance(hours=2)
        second = run_draft_reminders(app)
        assert second["processed"] == 1
        assert second["dispatched"] == 1
        db.session.refresh(row)
        assert row.status == "sent"

    def test_exhausted_retries_are_left_alone(self, app, make_event, manager, venue):
        event = make_event(venue=venue, creator=manager)
        row = _reminder(event, manager, status="failed", send_meta={
            "retry_count": 3, "retry_after": iso_z(NOW - timedelta(hours=2)),
        })

        assert run_draft_reminders(app)["processed"] == 0
        db.session.refresh(row)
        assert row.status == "failed"

    def test_second_run_is_idempotent(self, app, make_event, manager, venue):
        event = make_event(venue=venue, creator=manager)
        _reminder(event, manager)

        assert run_draft_reminders(app)["dispatched"] == 1
        second = run_draft_reminders(app)
        assert second["processed"] == 0
        assert second["dispatched"] == 0
        assert EmailLog.query.count() == 1


# ═══════════════════════════════════════════════════════════════════════════
#  SLA reminders
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture()
def due_event(make_event, venue, manager, reviewer):
    return make_event(
        title="Jazz Night", status="submitted", venue=venue, creator=manager, reviewer=reviewer,
        start_at=NOW + timedelta(hours=6),
    )


class TestSlaReminders:
    def test_warning_sent_once(self, app, due_event, reviewer):
        result = run_sla_reminders(app)

        assert result["dispatched"] == 1
        row = Notification.query.filter_by(type="sla_warning").one()
        assert row.user_id == reviewer.id
        assert row.status == "sent"
        assert row.payload["severity"] == "warning"
        assert row.payload["event_id"] == due_event.id
        assert row.payload["venue"] == "Town Hall"
        assert row.payload["send_meta"]["retry_count"] == 1

    def test_overdue_severity(self, app, make_event, venue, reviewer):
        make_event(status="submitted", venue=venue, reviewer=reviewer,
                   start_at=NOW - timedelta(days=2))
        run_sla_reminders(app)
        assert Notification.query.filter_by(type="sla_warning").one().payload["severity"] == "overdue"

    def test_far_future_event_skipped(self, app, make_event, venue, reviewer):
        make_event(status="submitted", venue=venue, reviewer=reviewer,
                   start_at=NOW + timedelta(days=5))
        result = run_sla_reminders(app)
        assert result["skipped"] == 1
        assert result["processed"] == 0
        assert Notification.query.count() == 0

    def test_non_submitted_and_unassigned_ignored(self, app, make_event, venue, reviewer):
        make_event(status="approved", venue=venue, reviewer=reviewer, start_at=NOW)
        make_event(status="submitted", venue=venue, start_at=NOW)
        result = run_sla_reminders(app)
        assert result["processed"] == 0
        assert Notification.query.count() == 0

    def test_second_run_is_idempotent(self, app, clock, due_event):
        run_sla_reminders(app)
        clock.advance(hours=2)
        second = run_sla_reminders(app)
        assert second["dispatched"] == 0
        assert second["skipped"] == 1
        assert Notification.query.filter_by(type="sla_warning").count() == 1

    def test_failure_requeues_and_dedups_within_hour(self, app, clock, due_event):
        with _smtp_down():
            result = run_sla_reminders(app)
        assert result["failed"] == 1
        row = Notification.query.filter_by(type="sla_warning").one()
        assert row.status == "queued"
        assert row.payload["send_meta"]["retry_count"] == 1
        assert row.payload["send_meta"]["retry_after"] == iso_z(NOW + timedelta(minutes=60))
        assert CronAlertLog.query.filter_by(job="sla-reminders").count() == 1

        clock.advance(minutes=30)
        second = run_sla_reminders(app)
        assert second["skipped"] == 1
        assert Notification.query.filter_by(type="sla_warning").count() == 1
        db.session.refresh(row)
        assert row.payload["send_meta"]["retry_count"] == 1

        clock.advance(minutes=31)
        third = run_sla_reminders(app)
        assert third["dispatched"] == 1
        assert Notification.query.filter_by(type="sla_warning").count() == 1
        db.session.refresh(row)
        assert row.status == "sent"
        assert row.payload["send_meta"]["retry_count"] == 2

    def test_unexpected_send_error_requeues(self, app, clock, due_event):
        with patch.object(EmailService, "send_from_template",
                          side_effect=RuntimeError("worker crash")):
            first = run_sla_reminders(app)
        assert first["failed"] == 1
        row = Notification.query.filter_by(type="sla_warning").one()
        assert row.status == "queued"
        assert row.payload["send_meta"]["error"] == "worker crash"
        assert row.payload["send_meta"]["retry_after"] == iso_z(NOW + timedelta(minutes=60))

        clock.advance(minutes=61)
        second = run_sla_reminders(app)
        assert second["dispatched"] == 1
        assert Notification.query.filter_by(type="sla_warning").count() == 1
        db.session.refresh(row)
        assert row.status == "sent"

    def test_malformed_existing_payload_is_overwritten(self, app, due_event, reviewer):
        row = Notification(
            type="sla_warning", user_id=reviewer.id, status="queued",
            payload={"event_id": due_event.id, "severity": "critical",
                     "send_meta": {"attempted_at": iso_z(NOW), "retry_count": 1}},
            created_at=NOW - timedelta(hours=1), updated_at=NOW - timedelta(hours=1),
        )
        db.session.add(row)
        db.session.commit()

        # an unreadable payload carries no usable backoff, so the row is resent
        assert run_sla_reminders(app)["dispatched"] == 1
        db.session.refresh(row)
        assert row.status == "sent"
        assert row.payload["severity"] == "warning"
        assert row.payload["send_meta"]["retry_count"] == 1
        assert Notification.query.filter_by(type="sla_warning").count() == 1

    def test_old_row_outside_lookback_does_not_block(self, app, due_event, reviewer):
        db.session.add(Notification(
            type="sla_warning", user_id=reviewer.id, status="sent",
            payload={"event_id": due_event.id, "severity": "warning"},
            created_at=NOW - timedelta(days=2), updated_at=NOW - timedelta(days=2),
        ))
        db.session.commit()

        assert run_sla_reminders(app)["dispatched"] == 1
        assert Notification.query.filter_by(type="sla_warning").count() == 2

    def test_reviewer_without_email_skipped(self, app, make_event, make_user, venue):
        silent = make_user("reviewer", email="")
        make_event(status="submitted", venue=venue, reviewer=silent, start_at=NOW)
        result = run_sla_reminders(app)
        assert result["skipped"] == 1
        assert Notification.query.count() == 0


# ═══════════════════════════════════════════════════════════════════════════
#  Weekly digest
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture()
def executives(make_user):
    return [make_user("executive"), make_user("executive"), make_user("executive", email="")]


class TestWeeklyDigest:
    def test_sends_to_executives_and_logs(self, app, executives, make_event, venue):
        make_event(status="approved", venue=venue, start_at=NOW + timedelta(days=3))
        make_event(status="submitted", venue=venue, start_at=NOW + timedelta(days=4))

        result = run_weekly_digest(app)

        assert result["dispatched"] == 2
        assert result["metrics"]["statusCounts"] == {"approved": 1, "submitted": 1}
        assert result["metrics"]["awaitingReviewer"] == 1
        log = WeeklyDigestLog.query.one()
        assert log.payload["sent"] == 2
        assert log.payload["failed"] == 0
        assert len(log.payload["upcoming"]) == 2
        assert EmailLog.query.filter_by(template_name="weekly_digest").count() == 2

    def test_second_run_same_week_skipped(self, app, clock, executives):
        run_weekly_digest(app)
        clock.advance(days=1)
        second = run_weekly_digest(app)
        assert second["skipped"] == 1
        assert WeeklyDigestLog.query.count() == 1

    def test_runs_again_after_a_week(self, app, clock, executives):
        run_weekly_digest(app)
        clock.advance(days=7)
        assert run_weekly_digest(app)["dispatched"] == 2
        assert WeeklyDigestLog.query.count() == 2

    def test_partial_failure_is_reported(self, app, executives):
        with patch.object(EmailService, "_deliver",
                          side_effect=["<ok@eventhub.local>", ConnectionError("mailbox full")]):
            result = run_weekly_digest(app)

        assert result["ok"] is True
        assert result["http_status"] == 200
        assert result["dispatched"] == 1
        assert result["failed"] == 1
        assert WeeklyDigestLog.query.one().payload["failed"] == 1
        assert CronAlertLog.query.filter_by(job="weekly-digest").count() == 1

        # A digest with failures does not block the retry.
        assert run_weekly_digest(app)["skipped"] == 0


# ═══════════════════════════════════════════════════════════════════════════
#  AI publish dispatch
# ═══════════════════════════════════════════════════════════════════════════

def _queue_items(event, count):
    items = []
    for i in range(count):
        item = AiPublishQueueItem(
            event_id=event.id, content_id=f"content-{i:02d}", payload={"n": i},
            created_at=NOW - timedelta(minutes=count - i),
        )
        db.session.add(item)
        items.append(item)
    db.session.commit()
    return items


def _response(status_code):
    resp = MagicMock()
    resp.ok = 200 <= status_code < 300
    resp.status_code = status_code
    resp.text = '{"received": true}' if resp.ok else "upstream error"
    resp.headers = {"content-type": "application/json" if resp.ok else "text/plain"}
    resp.json.return_value = {"received": True}
    return resp


class TestAiPublishDispatch:
    def test_without_webhook_items_marked_dispatched(self, app, make_event):
        items = _queue_items(make_event(status="approved"), 3)
        result = run_ai_publish_dispatch(app)
        assert result["dispatched"] == 3
        for item in items:
            db.session.refresh(item)
            assert item.status == "dispatched"

    def test_batch_limited_oldest_first(self, app, make_event):
        items = _queue_items(make_event(status="approved"), AI_DISPATCH_BATCH + 2)
        result = run_ai_publish_dispatch(app)
        assert result["processed"] == AI_DISPATCH_BATCH
        pending = AiPublishQueueItem.query.filter_by(status="pending").all()
        assert {p.content_id for p in pending} == {items[-1].content_id, items[-2].content_id}

    def test_webhook_failure_marks_item_failed(self, app, make_event, monkeypatch):
        from eventhub.integrations.webhook_gateway import webhook_gateway

        monkeypatch.setitem(app.config, "AI_PUBLISH_WEBHOOK_URL", "https://publish.example.com/hook")
        monkeypatch.setitem(app.config, "AI_PUBLISH_WEBHOOK_TOKEN", "sekret")
        session = MagicMock()
        session.post.side_effect = [_response(200), _response(500)]
        monkeypatch.setattr(webhook_gateway, "_session", session)

        first, second = _queue_items(make_event(status="approved"), 2)
        result = run_ai_publish_dispatch(app)

        assert result["dispatched"] == 1
        assert result["failed"] == 1
        db.session.refresh(first)
        db.session.refresh(second)
        assert first.status == "dispatched"
        assert second.status == "failed"

        args, kwargs = session.post.call_args_list[0]
        assert args[0] == "https://publish.example.com/hook"
        assert kwargs["json"]["contentId"] == "content-00"
        assert kwargs["headers"]["Authorization"] == "Bearer sekret"
        assert CronAlertLog.query.filter_by(job="ai-dispatch").count() == 1
