"""
EventHub Planning Service
Planning analytics read model.

One query loads every event; status counts, conflicts, reviewer SLA, the
upcoming feed and the calendar projection are all derived from that single
list. The dashboard endpoint, the ICS feed and the weekly digest consume the
same ``PlanningAnalytics`` object, so they never disagree with each other.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy.orm import selectinload

from eventhub.models.event import Event, EventArea
from eventhub.schemas.summaries import EventSummary
from eventhub.services.conflicts import (
    EventConflict,
    compute_event_bounds,
    conflicting_event_ids,
    detect_venue_conflicts,
    summarise_status_counts,
)
from eventhub.services.notification import NotificationService
from eventhub.services.sla import ReviewerSlaSnapshot, summarise_reviewer_sla
from eventhub.utils.clock import from_epoch_ms, get_clock, iso_z, parse_datetime, to_epoch_ms

logger = logging.getLogger(__name__)

UPCOMING_LIMIT = 12


@dataclass
class CalendarEvent:
    id: str
    title: str
    status: str
    start_at: str
    end_at: str
    venue_name: str | None = None
    venue_space: str | None = None
    conflict: bool = False
    assigned_reviewer_id: int | None = None
    assigned_reviewer_name: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "startAt": self.start_at,
            "endAt": self.end_at,
            "venueName": self.venue_name,
            "venueSpace": self.venue_space,
            "conflict": self.conflict,
            "assignedReviewerId": self.assigned_reviewer_id,
            "assignedReviewerName": self.assigned_reviewer_name,
        }


@dataclass
class PlanningAnalytics:
    generated_at: datetime
    summaries: list[EventSummary] = field(default_factory=list)
    status_counts: dict[str, int] = field(default_factory=dict)
    conflicts: list[EventConflict] = field(default_factory=list)
    upcoming: list[EventSummary] = field(default_factory=list)
    awaiting_reviewer: list[EventSummary] = field(default_factory=list)
    calendar_events: list[CalendarEvent] = field(default_factory=list)
    reviewer_sla: list[ReviewerSlaSnapshot] = field(default_factory=list)
    sla_warning_queued: int = 0

    @property
    def total_events(self) -> int:
        return len(self.summaries)

    def to_dict(self) -> dict:
        return {
            "generatedAt": iso_z(self.generated_at),
            "statusCounts": self.status_counts,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "upcoming": [e.to_dict() for e in self.upcoming],
            "awaitingReviewer": [e.to_dict() for e in self.awaiting_reviewer],
            "totalEvents": self.total_events,
            "calendarEvents": [c.to_dict() for c in self.calendar_events],
            "reviewerSla": [s.to_dict() for s in self.reviewer_sla],
            "slaWarningQueued": self.sla_warning_queued,
        }


# ── Pure builders ────────────────────────────────────────────────────────────

def build_planning_feed(events: Iterable[EventSummary], limit: int = 5) -> list[EventSummary]:
    """Events ordered by start; events without a parseable start are left out."""
    dated = []
    for event in events:
        start = parse_datetime(event.start_at)
        if start is not None:
            dated.append((to_epoch_ms(start), event))
    dated.sort(key=lambda item: item[0])
    return [event for _, event in dated[:limit]]


def _space_label(event: EventSummary) -> str | None:
    if event.areas:
        return ", ".join(a.name for a in event.areas if a.name) or None
    return event.venue_space


def build_calendar_events(events: Iterable[EventSummary],
                          conflict_ids: set | None = None) -> list[CalendarEvent]:
    conflict_ids = conflict_ids or set()
    calendar = []
    for event in events:
        bounds = compute_event_bounds(event)
        if not bounds.resolvable:
            continue
        calendar.append(CalendarEvent(
            id=event.id,
            title=event.title,
            status=event.status,
            start_at=iso_z(from_epoch_ms(bounds.start_ms)),
            end_at=iso_z(from_epoch_ms(bounds.end_ms)),
            venue_name=event.venue_name,
            venue_space=_space_label(event),
            conflict=event.id in conflict_ids,
            assigned_reviewer_id=event.assigned_reviewer_id,
            assigned_reviewer_name=event.assigned_reviewer_name,
        ))
    return calendar


def compose_planning_analytics(summaries: list[EventSummary], now: datetime,
                               *, sla_warning_queued: int = 0) -> PlanningAnalytics:
    conflicts = detect_venue_conflicts(summaries)
    return PlanningAnalytics(
        generated_at=now,
        summaries=summaries,
        status_counts=summarise_status_counts(summaries),
        conflicts=conflicts,
        upcoming=build_planning_feed(summaries, UPCOMING_LIMIT),
        awaiting_reviewer=[
            e for e in summaries if e.status == "submitted" and not e.assigned_reviewer_id
        ],
        calendar_events=build_calendar_events(summaries, conflicting_event_ids(conflicts)),
        reviewer_sla=summarise_reviewer_sla(summaries, now),
        sla_warning_queued=sla_warning_queued,
    )


# ── DB entry point ───────────────────────────────────────────────────────────

def load_event_summaries() -> list[EventSummary]:
    events = (
        Event.query
        .options(selectinload(Event.area_links).joinedload(EventArea.area))
        .order_by(Event.start_at.asc())
        .all()
    )
    return [EventSummary.from_event(e) for e in events]


def build_planning_analytics(now: datetime | None = None) -> PlanningAnalytics:
    """Load events once and compose the full read model.

    Raises:
        sqlalchemy.exc.SQLAlchemyError: when the event query fails.
    """
    now = now or get_clock().now()
    summaries = load_event_summaries()
    analytics = compose_planning_analytics(
        summaries, now,
        sla_warning_queued=NotificationService.count_by_status("sla_warning", "queued"),
    )
    logger.debug(
        "Planning analytics built: %d events, %d conflicts",
        analytics.total_events, len(analytics.conflicts),
    )
    return analytics
