"""
EventHub Planning Service
Audit trail.

``audit_logs`` is append-only: the lifecycle writes one row per step through
the audit observer and nothing updates or deletes rows afterwards. The
per-event history is served by ``GET /api/v1/events/<id>/audit``.
"""

import json

from eventhub.models import db, utcnow
from eventhub.utils.clock import iso_z


AUDIT_ENTITY_TYPES = {"event", "notification", "cron"}

AUDIT_ACTIONS = {
    "event." + step
    for step in (
        "draft_created", "draft_updated", "cloned", "submitted", "reviewer_assigned",
        "approved", "needs_revisions", "rejected", "published", "completed", "cancelled",
        "debrief_updated",
    )
}


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor_user_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(30), nullable=False)
    # event UUIDs, or integer ids rendered as strings
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(60), nullable=False)
    # NULL for steps taken by a cron job
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"),
                              nullable=True)
    details_json = db.Column(db.Text, default="{}")
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def details(self) -> dict:
        """Step context: status change, version number, reviewer id and so on."""
        if not self.details_json:
            return {}
        try:
            value = json.loads(self.details_json)
        except ValueError:
            return {}
        return value if isinstance(value, dict) else {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor_user_id": self.actor_user_id,
            "details": self.details,
            "timestamp": iso_z(self.timestamp),
        }

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"


def write_audit(*, entity_type: str, entity_id, action: str,
                actor_user_id: int | None = None, details: dict | None = None) -> AuditLog:
    """Add one audit row and flush it; committing is left to the caller."""
    if entity_type not in AUDIT_ENTITY_TYPES:
        raise ValueError(f"Unknown audit entity type: {entity_type}")
    if entity_type == "event" and action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown event audit action: {action}")

    row = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_user_id=actor_user_id,
        details_json=json.dumps(details or {}, default=str, sort_keys=True),
    )
    db.session.add(row)
    db.session.flush()
    return row
