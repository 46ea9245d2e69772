"""
EventHub Planning Service
Event domain models.

Models:
    - Event: planned event moving through the review lifecycle
    - EventArea: many-to-many link between events and venue areas
    - EventVersion: append-only snapshot written on every lifecycle step
"""

import uuid


from eventhub.models import db, utcnow
from eventhub.utils.clock import iso_z


# ── Helpers ──────────────────────────────────────────────────────────────────

def _uuid():
    return str(uuid.uuid4())


# ── Constants ────────────────────────────────────────────────────────────────

EVENT_STATUSES = {
    "draft", "submitted", "needs_revisions", "approved",
    "rejected", "published", "completed", "cancelled",
}
TERMINAL_STATUSES = {"completed", "rejected", "cancelled"}

EVENT_TRANSITIONS = {
    "submit": {"from": ["draft", "needs_revisions"], "to": "submitted"},
    "request_revisions": {"from": ["submitted"], "to": "needs_revisions"},
    "approve": {"from": ["submitted"], "to": "approved"},
    "reject": {"from": ["draft", "submitted", "needs_revisions", "approved"], "to": "rejected"},
    "publish": {"from": ["approved"], "to": "published"},
    "complete": {"from": ["published"], "to": "completed"},
    "cancel": {
        "from": ["draft", "submitted", "needs_revisions", "approved", "published"],
        "to": "cancelled",
    },
}

# Reviewer decision → lifecycle action
DECISION_ACTIONS = {
    "approved": "approve",
    "needs_revisions": "request_revisions",
    "rejected": "reject",
}


class Event(db.Model):
    """
    A proposed event at a venue.

    Lifecycle: draft → submitted → approved → published → completed, with
    needs_revisions / rejected / cancelled branches (see EVENT_TRANSITIONS).
    The space is either a set of venue areas (EventArea rows) or a free-text
    ``venue_space`` label.
    """

    __tablename__ = "events"
    __table_args__ = (
        db.Index("idx_events_status_start", "status", "start_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(150), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="draft")

    start_at = db.Column(db.DateTime(timezone=True), nullable=True)
    end_at = db.Column(db.DateTime(timezone=True), nullable=True)

    venue_id = db.Column(
        db.Integer, db.ForeignKey("venues.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    venue_space = db.Column(db.String(300), nullable=True,
                            comment="Free-text space label(s), comma separated")

    assigned_reviewer_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    created_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    venue = db.relationship("Venue", lazy="joined")
    reviewer = db.relationship("User", foreign_keys=[assigned_reviewer_id], lazy="joined")
    creator = db.relationship("User", foreign_keys=[created_by], lazy="select")
    area_links = db.relationship(
        "EventArea", backref="event", lazy="select", cascade="all, delete-orphan",
    )
    versions = db.relationship(
        "EventVersion", backref="event", lazy="dynamic", cascade="all, delete-orphan",
        order_by="EventVersion.version",
    )

    @property
    def areas(self):
        return [link.area for link in self.area_links if link.area is not None]

    @property
    def area_ids(self) -> list[int]:
        return [link.venue_area_id for link in self.area_links]

    def to_dict(self, include_areas=True):
        d = {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "start_at": _iso(self.start_at),
            "end_at": _iso(self.end_at),
            "venue_id": self.venue_id,
            "venue_name": self.venue.name if self.venue else None,
            "venue_space": self.venue_space,
            "assigned_reviewer_id": self.assigned_reviewer_id,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_areas:
            d["areas"] = [a.to_dict() for a in self.areas]
        return d

    def __repr__(self):
        return f"<Event {self.id}: {self.title[:40]} [{self.status}]>"


class EventArea(db.Model):
    __tablename__ = "event_areas"
    __table_args__ = (
        db.UniqueConstraint("event_id", "venue_area_id", name="uq_event_area"),
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.String(36), db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    venue_area_id = db.Column(
        db.Integer, db.ForeignKey("venue_areas.id", ondelete="CASCADE"), nullable=False,
    )

    area = db.relationship("VenueArea", lazy="joined")


class EventVersion(db.Model):
    """
    Immutable snapshot of an event, numbered from 1 per event.

    ``(event_id, version)`` is unique; concurrent writers that compute the same
    next number collide on the constraint and retry.
    """

    __tablename__ = "event_versions"
    __table_args__ = (
        db.UniqueConstraint("event_id", "version", name="uq_event_version"),
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(
        db.String(36), db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    version = db.Column(db.Integer, nullable=False)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_by = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "version": self.version,
            "payload": self.payload or {},
            "submitted_at": _iso(self.submitted_at),
            "submitted_by": self.submitted_by,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<EventVersion {self.event_id} v{self.version}>"


def _iso(value):
    return iso_z(value)
