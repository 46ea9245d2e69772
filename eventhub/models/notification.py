"""
EventHub Planning Service
Notification domain model.

Models:
    - Notification: outbound reminder / alert record with delivery status.
      The JSON ``payload`` carries job-specific fields plus ``send_meta``
      (attempted_at, retry_count, error, retry_after, message_id).
"""


from eventhub.models import db, utcnow
from eventhub.utils.clock import iso_z


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {"draft_reminder", "sla_warning", "reviewer_assignment", "reviewer_decision"}
NOTIFICATION_STATUSES = {"queued", "sent", "failed", "cancelled"}
TERMINAL_NOTIFICATION_STATUSES = {"sent", "cancelled"}


class Notification(db.Model):
    """
    One delivery intent for one recipient.

    ``sent`` and ``cancelled`` are terminal; ``failed`` and ``queued`` are
    picked up again by the owning batch job.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("idx_notifications_type_status", "type", "status"),
        db.Index("idx_notifications_user_type", "user_id", "type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(40), nullable=False,
                     comment="draft_reminder | sla_warning | reviewer_assignment | reviewer_decision")
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    status = db.Column(db.String(20), nullable=False, default="queued")
    payload = db.Column(db.JSON, nullable=False, default=dict)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=utcnow,
                           onupdate=utcnow)

    user = db.relationship("User", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "user_id": self.user_id,
            "status": self.status,
            "payload": self.payload or {},
            "sent_at": iso_z(self.sent_at),
            "created_at": iso_z(self.created_at),
            "updated_at": iso_z(self.updated_at),
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.type} [{self.status}]>"
