"""
EventHub Planning Service
Operational bookkeeping for the batch side of the service.

Models:
    - ScheduledJob: one row per cron-triggered job, with its latest outcome
    - EmailLog: every outbound email attempt, delivered or not
    - CronAlertLog: failure alerts and heartbeats posted to the ops webhook
    - WeeklyDigestLog: the analytics payload each executive digest carried
"""

from eventhub.models import db, utcnow
from eventhub.utils.clock import iso_z


# ── Constants ────────────────────────────────────────────────────────────────

JOB_STATUSES = {"active", "paused"}
RUN_OUTCOMES = {"success", "failed"}
EMAIL_STATUSES = {"queued", "sent", "failed"}
ALERT_SEVERITIES = {"error", "info", "success"}


class ScheduledJob(db.Model):
    """
    A reminder, digest or dispatch job known to the scheduler.

    Nothing in the app fires these on a timer; the platform cron calls
    ``/api/cron/<slug>`` and the outcome of that call is folded into the row
    by ``record_run``. Pausing a job (``is_enabled = False``) makes the cron
    endpoint answer "skipped" without touching the counters.
    """

    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False,
                         comment="Registry key, e.g. draft_reminders")
    description = db.Column(db.String(500), default="")
    schedule_config = db.Column(db.JSON, default=dict,
                                comment="Suggested cron cadence for the external trigger")
    status = db.Column(db.String(20), default="active")
    is_enabled = db.Column(db.Boolean, default=True)

    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True)
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True,
                                comment="Summary dict returned by the job")
    run_count = db.Column(db.Integer, default=0)
    error_count = db.Column(db.Integer, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def is_paused(self) -> bool:
        return not self.is_enabled

    def record_run(self, *, status="success", duration_ms=0, result=None, error=None):
        if status not in RUN_OUTCOMES:
            raise ValueError(f"Unknown run outcome: {status}")

        self.run_count = (self.run_count or 0) + 1
        self.last_run_at = utcnow()
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result

        if status == "failed":
            self.error_count = (self.error_count or 0) + 1
            # keep the previous error when the job failed without a message
            if error:
                self.last_error = str(error)

    def to_dict(self):
        data = {
            col: getattr(self, col)
            for col in (
                "id", "job_name", "description", "schedule_config", "status",
                "is_enabled", "last_run_status", "last_run_duration_ms",
                "last_run_result", "run_count", "error_count", "last_error",
            )
        }
        data["last_run_at"] = iso_z(self.last_run_at)
        return data

    def __repr__(self):
        state = "paused" if self.is_paused else self.last_run_status or "never run"
        return f"<ScheduledJob {self.job_name} ({state})>"


class EmailLog(db.Model):
    """One outbound email attempt; a failed send still leaves a row."""

    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    recipient_name = db.Column(db.String(150), nullable=True)
    subject = db.Column(db.String(500), nullable=False)
    template_name = db.Column(db.String(100), nullable=True)
    status = db.Column(db.String(20), default="queued")
    error_message = db.Column(db.Text, nullable=True)
    message_id = db.Column(db.String(255), nullable=True,
                           comment="RFC 5322 Message-ID we generated")
    # notification queue row (draft reminders, review requests) behind the email
    notification_id = db.Column(db.Integer, nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def mark_sent(self, message_id, at=None):
        self.status = "sent"
        self.message_id = message_id
        self.sent_at = at or utcnow()

    def mark_failed(self, error):
        self.status = "failed"
        self.error_message = str(error)[:2000]

    def to_dict(self):
        return {
            "id": self.id,
            "to": {"email": self.recipient_email, "name": self.recipient_name},
            "subject": self.subject,
            "template_name": self.template_name,
            "status": self.status,
            "error_message": self.error_message,
            "message_id": self.message_id,
            "notification_id": self.notification_id,
            "sent_at": iso_z(self.sent_at),
            "created_at": iso_z(self.created_at),
        }

    def __repr__(self):
        return f"<EmailLog {self.id} {self.template_name or 'raw'} {self.status}>"


class CronAlertLog(db.Model):
    """What was posted to ``CRON_ALERT_WEBHOOK_URL`` and how the webhook answered.

    ``response_status`` 0 means the POST never got an HTTP response
    (no webhook configured, timeout, connection refused).
    """

    __tablename__ = "cron_alert_logs"

    id = db.Column(db.Integer, primary_key=True)
    job = db.Column(db.String(100), nullable=False, index=True)
    severity = db.Column(db.String(20), nullable=False, default="error")
    message = db.Column(db.Text, nullable=False)
    detail = db.Column(db.Text, nullable=True)
    response_status = db.Column(db.Integer, nullable=True)
    response_body = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), index=True, default=utcnow)

    @property
    def delivered(self) -> bool:
        return bool(self.response_status) and 200 <= self.response_status < 300

    def to_dict(self):
        return {
            "id": self.id,
            "job": self.job,
            "severity": self.severity,
            "message": self.message,
            "detail": self.detail,
            "response_status": self.response_status,
            "response_body": self.response_body,
            "delivered": self.delivered,
            "created_at": iso_z(self.created_at),
        }

    def __repr__(self):
        return f"<CronAlertLog {self.job} {self.severity} -> {self.response_status}>"


class WeeklyDigestLog(db.Model):
    __tablename__ = "weekly_digest_logs"

    id = db.Column(db.Integer, primary_key=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)
    sent_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {"id": self.id, "payload": self.payload or {}, "sent_at": iso_z(self.sent_at)}
