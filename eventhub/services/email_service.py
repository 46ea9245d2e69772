"""
EventHub Planning Service
Outbound email.

Every message goes through ``EmailService.send`` which writes an ``EmailLog``
row first and then hands the message to SMTP. Without ``MAIL_SERVER`` the
hand-off is a log line only, which is what development and the test suite run
with. Template context values are HTML-escaped; keys ending in ``_rows`` or
``_list`` carry markup built by the caller and are inserted as-is.

Settings read from ``current_app.config``:
    MAIL_SERVER, MAIL_PORT, MAIL_USE_TLS, MAIL_USERNAME, MAIL_PASSWORD,
    MAIL_DEFAULT_SENDER
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any

from flask import current_app
from markupsafe import escape

from eventhub.models import db
from eventhub.models.scheduling import EmailLog
from eventhub.utils.clock import get_clock

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30
MESSAGE_ID_DOMAIN = "eventhub.local"
_RAW_HTML_SUFFIXES = ("_rows", "_list")


class EmailDeliveryError(Exception):
    """SMTP (or the dev-mode stand-in) refused the message."""

    def __init__(self, to_email: str, reason: str, log_id: int | None = None) -> None:
        super().__init__(f"Email to {to_email} failed: {reason}")
        self.to_email = to_email
        self.reason = reason
        self.log_id = log_id


# ═══════════════════════════════════════════════════════════════════════════
#  Templates
# ═══════════════════════════════════════════════════════════════════════════

_FRAME = """
<div style="font-family: Helvetica, Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background: #0f172a; color: #f8fafc; padding: 16px 24px;">
    <h2 style="margin: 0; font-size: 18px;">{heading}</h2>
  </div>
  <div style="padding: 24px; border: 1px solid #cbd5e1; border-top: none;">
    {body}
  </div>
  <p style="color: #94a3b8; font-size: 12px; text-align: center;">
    Sent by EventHub planning. Replies to this address are not read.
  </p>
</div>
"""

_GREETING = '<p>Hi {name},</p>'

_TEMPLATES: dict[str, dict[str, str]] = {
    "draft_reminder": {
        "subject": 'Reminder: "{title}" is still a draft',
        "heading": "Your draft is waiting",
        "body": _GREETING + """
    <p>{title} at {venue} has not been submitted yet. Reviewers only see
    events once they are submitted.</p>
    <p><a href="{event_url}">Finish the draft</a></p>""",
    },
    "sla_warning": {
        "subject": '{severity_label}: "{title}" needs a review decision',
        "heading": "Review SLA {severity_label}",
        "body": _GREETING + """
    <p>{title} at {venue} starts {start_at} and is waiting on your decision.</p>
    <p><a href="{event_url}">Review the event</a></p>""",
    },
    "reviewer_assignment": {
        "subject": 'Review requested: "{title}"',
        "heading": "New event to review",
        "body": _GREETING + """
    <p>{title} at {venue} ({start_at}) has been submitted and assigned to you.</p>
    <p><a href="{event_url}">Review the event</a></p>""",
    },
    "reviewer_decision": {
        "subject": '"{title}": {decision_label}',
        "heading": "Review decision",
        "body": _GREETING + """
    <p>Your event {title} was marked <strong>{decision_label}</strong>.</p>
    <blockquote style="color: #475569;">{note}</blockquote>
    <p><a href="{event_url}">Open the event</a></p>""",
    },
    "weekly_digest": {
        "subject": "Planning digest, week of {week}",
        "heading": "Weekly planning digest",
        "body": """
    <p>Week of {week}</p>
    <table style="width: 100%; border-collapse: collapse;">
      <tr><th align="left">Status</th><th align="right">Events</th></tr>
      {status_rows}
    </table>
    <p>Open venue conflicts: <strong>{conflict_count}</strong><br>
    Submitted without a reviewer: <strong>{awaiting_count}</strong></p>
    <h3>Coming up</h3>
    <ul>{upcoming_list}</ul>""",
    },
}


class _KeepMissing(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def _escaped(context: dict[str, Any]) -> _KeepMissing:
    return _KeepMissing({
        key: str(escape(value)) if isinstance(value, str) and not key.endswith(_RAW_HTML_SUFFIXES)
        else value
        for key, value in context.items()
    })


def render_template(template_name: str, context: dict[str, Any]) -> tuple[str, str]:
    """Return ``(subject, html)`` for a named template.

    Placeholders without a context value are left in place rather than
    failing the send.
    """
    try:
        template = _TEMPLATES[template_name]
    except KeyError:
        raise KeyError(f"Email template not found: {template_name}") from None

    values = _escaped(context)
    # subjects are plain text; only the HTML body needs escaping
    subject = template["subject"].format_map(_KeepMissing(context))
    html = _FRAME.format_map(_KeepMissing(
        heading=template["heading"].format_map(values),
        body=template["body"].format_map(values),
    ))
    return subject, html


# ═══════════════════════════════════════════════════════════════════════════
#  Service
# ═══════════════════════════════════════════════════════════════════════════

class EmailService:

    @staticmethod
    def is_configured() -> bool:
        return bool(current_app.config.get("MAIL_SERVER"))

    @classmethod
    def send(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        subject: str,
        html_body: str,
        template_name: str | None = None,
        notification_id: int | None = None,
        raise_on_failure: bool = False,
    ) -> EmailLog:
        """
        Deliver one message and return its ``EmailLog`` row.

        The row is flushed but not committed; the caller owns the transaction.
        With ``raise_on_failure`` a failed delivery raises
        ``EmailDeliveryError`` after the row is marked failed, which is how
        the batch jobs feed their retry bookkeeping.
        """
        clock = get_clock()
        log = EmailLog(
            recipient_email=to_email,
            recipient_name=to_name,
            subject=subject,
            template_name=template_name,
            notification_id=notification_id,
            status="queued",
            created_at=clock.now(),
        )
        db.session.add(log)
        db.session.flush()

        try:
            message_id = cls._deliver(to_email=to_email, to_name=to_name,
                                      subject=subject, html_body=html_body)
        except Exception as exc:
            log.mark_failed(exc)
            logger.error("Email %s to %s failed: %s", template_name or "(raw)", to_email, exc,
                         extra={"email_log_id": log.id})
            if raise_on_failure:
                raise EmailDeliveryError(to_email, str(exc), log.id) from exc
            return log

        log.mark_sent(message_id, at=clock.now())
        return log

    @classmethod
    def send_from_template(
        cls,
        *,
        to_email: str,
        to_name: str | None = None,
        template_name: str,
        context: dict[str, Any],
        notification_id: int | None = None,
        raise_on_failure: bool = False,
    ) -> EmailLog:
        subject, html_body = render_template(template_name, context)
        return cls.send(
            to_email=to_email,
            to_name=to_name,
            subject=subject,
            html_body=html_body,
            template_name=template_name,
            notification_id=notification_id,
            raise_on_failure=raise_on_failure,
        )

    @classmethod
    def _deliver(cls, *, to_email: str, to_name: str | None,
                 subject: str, html_body: str) -> str:
        """Send via SMTP, or only log in dev mode. Returns the Message-ID."""
        message_id = make_msgid(domain=MESSAGE_ID_DOMAIN)
        if not cls.is_configured():
            logger.info("Email not sent (no MAIL_SERVER): to=%s subject=%r", to_email, subject)
            return message_id

        cfg = current_app.config
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = cfg.get("MAIL_DEFAULT_SENDER") or f"noreply@{cfg['MAIL_SERVER']}"
        msg["To"] = formataddr((to_name, to_email)) if to_name else to_email
        msg["Message-ID"] = message_id
        msg.set_content("This message needs an HTML capable mail client.")
        msg.add_alternative(html_body, subtype="html")

        with smtplib.SMTP(cfg["MAIL_SERVER"], cfg.get("MAIL_PORT", 587),
                          timeout=SMTP_TIMEOUT_SECONDS) as smtp:
            if cfg.get("MAIL_USE_TLS", True):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME") and cfg.get("MAIL_PASSWORD"):
                smtp.login(cfg["MAIL_USERNAME"], cfg["MAIL_PASSWORD"])
            smtp.send_message(msg)

        logger.info("Email sent: to=%s subject=%r", to_email, subject)
        return message_id
