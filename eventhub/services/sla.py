"""
Reviewer SLA classification.

A submitted event with an assigned reviewer is bucketed by how many whole
days (rounded up) remain until it starts:

    diff_days >= 3   → on_track
    0 <= diff_days   → warning
    diff_days < 0    → overdue

The reminder job uses a stricter cut (``reminder_severity``): only events
starting within a day or already past get a nudge.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from eventhub.schemas.summaries import EventSummary
from eventhub.utils.clock import from_epoch_ms, iso_z, parse_datetime, to_epoch_ms

MS_IN_DAY = 24 * 60 * 60 * 1000

ON_TRACK_DAYS = 3
REMINDER_WARNING_DAYS = 1


def days_until(start: datetime, now: datetime) -> int:
    return math.ceil((to_epoch_ms(start) - to_epoch_ms(now)) / MS_IN_DAY)


def sla_bucket(start: datetime, now: datetime) -> str:
    diff_days = days_until(start, now)
    if diff_days >= ON_TRACK_DAYS:
        return "on_track"
    if diff_days >= 0:
        return "warning"
    return "overdue"


def reminder_severity(start: datetime, now: datetime) -> str | None:
    """Severity for an SLA reminder, or None when no reminder is due yet."""
    diff_days = days_until(start, now)
    if diff_days < 0:
        return "overdue"
    if diff_days <= REMINDER_WARNING_DAYS:
        return "warning"
    return None


@dataclass
class ReviewerSlaSnapshot:
    reviewer_id: int | str
    reviewer_name: str | None = None
    total_assigned: int = 0
    on_track: int = 0
    warning: int = 0
    overdue: int = 0
    next_due_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "reviewerId": self.reviewer_id,
            "reviewerName": self.reviewer_name,
            "totalAssigned": self.total_assigned,
            "onTrack": self.on_track,
            "warning": self.warning,
            "overdue": self.overdue,
            "nextDueAt": self.next_due_at,
        }


def summarise_reviewer_sla(events: Iterable[EventSummary], now: datetime) -> list[ReviewerSlaSnapshot]:
    """Per-reviewer SLA counts, worst first.

    Ordering: overdue desc, warning desc, next_due_at asc (missing last).
    """
    snapshots: dict = {}
    next_due_ms: dict = {}

    for event in events:
        if event.status != "submitted" or not event.assigned_reviewer_id or not event.start_at:
            continue
        start = parse_datetime(event.start_at)
        if start is None:
            continue

        reviewer_id = event.assigned_reviewer_id
        snap = snapshots.get(reviewer_id)
        if snap is None:
            snap = ReviewerSlaSnapshot(reviewer_id=reviewer_id,
                                       reviewer_name=event.assigned_reviewer_name)
            snapshots[reviewer_id] = snap
            next_due_ms[reviewer_id] = None

        snap.total_assigned += 1
        bucket = sla_bucket(start, now)
        setattr(snap, bucket, getattr(snap, bucket) + 1)

        start_ms = to_epoch_ms(start)
        current = next_due_ms[reviewer_id]
        if current is None or start_ms < current:
            next_due_ms[reviewer_id] = start_ms
            snap.next_due_at = iso_z(from_epoch_ms(start_ms))

    return sorted(
        snapshots.values(),
        key=lambda s: (-s.overdue, -s.warning, s.next_due_at is None, s.next_due_at or ""),
    )
