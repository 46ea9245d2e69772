"""
EventHub Planning Service
AI publish queue model.

Approved event content waiting to be pushed to the external publishing
webhook by the ``ai_publish_dispatch`` job.
"""


from eventhub.models import db, utcnow
from eventhub.utils.clock import iso_z


PUBLISH_QUEUE_STATUSES = {"pending", "dispatched", "failed"}


class AiPublishQueueItem(db.Model):
    __tablename__ = "ai_publish_queue"
    __table_args__ = (
        db.Index("idx_ai_publish_queue_status", "status", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.String(36), db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    content_id = db.Column(db.String(64), nullable=False, unique=True,
                           comment="Identifier of the generated content record")
    payload = db.Column(db.JSON, nullable=False, default=dict)
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending, dispatched, failed")
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True),
                           default=utcnow,
                           onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "content_id": self.content_id,
            "payload": self.payload or {},
            "status": self.status,
            "dispatched_at": iso_z(self.dispatched_at),
            "created_at": iso_z(self.created_at),
        }

    def __repr__(self):
        return f"<AiPublishQueueItem {self.id}: {self.content_id} [{self.status}]>"
