"""
Read-side event snapshot used by the analytics, conflict and SLA code.

``EventSummary`` decouples the pure algorithms from the ORM: build it from an
``Event`` row with ``from_event`` or directly in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from eventhub.services.resources import Area, ReservedResource, reserved_resource
from eventhub.utils.clock import iso_z


@dataclass
class EventSummary:
    id: str
    title: str = ""
    status: str = "draft"
    start_at: datetime | str | None = None
    end_at: datetime | str | None = None
    venue_id: int | str | None = None
    venue_name: str | None = None
    venue_space: str | None = None
    assigned_reviewer_id: int | None = None
    assigned_reviewer_name: str | None = None
    assigned_reviewer_email: str | None = None
    areas: list[Area] = field(default_factory=list)

    @classmethod
    def from_event(cls, event) -> EventSummary:
        reviewer = event.reviewer
        return cls(
            id=event.id,
            title=event.title,
            status=event.status,
            start_at=event.start_at,
            end_at=event.end_at,
            venue_id=event.venue_id,
            venue_name=event.venue.name if event.venue else None,
            venue_space=event.venue_space,
            assigned_reviewer_id=event.assigned_reviewer_id,
            assigned_reviewer_name=reviewer.full_name if reviewer else None,
            assigned_reviewer_email=reviewer.email if reviewer else None,
            areas=[Area(a.id, a.name, a.capacity) for a in event.areas],
        )

    @property
    def resource(self) -> ReservedResource:
        return reserved_resource(areas=self.areas, venue_space=self.venue_space)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "startAt": _render(self.start_at),
            "endAt": _render(self.end_at),
            "venueId": self.venue_id,
            "venueName": self.venue_name,
            "venueSpace": self.venue_space,
            "assignedReviewerId": self.assigned_reviewer_id,
            "assignedReviewerName": self.assigned_reviewer_name,
            "areas": [a.to_dict() for a in self.areas],
        }


def _render(value):
    if isinstance(value, datetime):
        return iso_z(value)
    return value
