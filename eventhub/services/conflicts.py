"""
Venue-space conflict detection.

Events are grouped into buckets (see ``resources.buckets``); inside each
bucket they are swept in start order and every pair whose closed intervals
``[start, end]`` intersect is reported. Touching endpoints count as a
conflict.

An event without a parseable start is ignored. A missing, unparsable or
backwards end is replaced by ``start + 2h``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from eventhub.schemas.summaries import EventSummary
from eventhub.services.resources import buckets
from eventhub.utils.clock import parse_datetime, to_epoch_ms

DEFAULT_EVENT_DURATION_MS = 2 * 60 * 60 * 1000


@dataclass(frozen=True)
class EventBounds:
    start_ms: int | None
    end_ms: int | None

    @property
    def resolvable(self) -> bool:
        return self.start_ms is not None and self.end_ms is not None


@dataclass
class EventConflict:
    key: str
    venue_name: str
    venue_space: str
    first: EventSummary
    second: EventSummary

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "venueName": self.venue_name,
            "venueSpace": self.venue_space,
            "first": self.first.to_dict(),
            "second": self.second.to_dict(),
        }


def _timestamp(value) -> int | None:
    parsed = parse_datetime(value)
    return to_epoch_ms(parsed) if parsed is not None else None


def compute_event_bounds(event: EventSummary) -> EventBounds:
    start_ms = _timestamp(event.start_at)
    if start_ms is None:
        return EventBounds(None, None)

    end_candidate = _timestamp(event.end_at)
    if end_candidate is not None and end_candidate >= start_ms:
        end_ms = end_candidate
    else:
        end_ms = start_ms + DEFAULT_EVENT_DURATION_MS
    return EventBounds(start_ms, end_ms)


def summarise_status_counts(events: Iterable[EventSummary]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for event in events:
        counts[event.status] = counts.get(event.status, 0) + 1
    return counts


def detect_venue_conflicts(events: Iterable[EventSummary]) -> list[EventConflict]:
    """Return every overlapping pair per shared bucket, bucket by bucket."""
    groups: dict[str, dict] = {}

    for event in events:
        bounds = compute_event_bounds(event)
        for bucket in buckets(event.resource, venue_id=event.venue_id, venue_name=event.venue_name):
            group = groups.setdefault(bucket.key, {
                "venue_name": bucket.venue_name,
                "venue_space": bucket.space_label,
                "members": [],
            })
            group["members"].append((event, bounds))

    conflicts: list[EventConflict] = []
    for key, group in groups.items():
        ordered = sorted(
            (m for m in group["members"] if m[1].resolvable),
            key=lambda m: m[1].start_ms,
        )
        for i, (current, cur) in enumerate(ordered):
            for comparison, cmp in ordered[i + 1:]:
                if cur.end_ms < cmp.start_ms:
                    break
                if cur.start_ms <= cmp.end_ms and cmp.start_ms <= cur.end_ms:
                    conflicts.append(EventConflict(
                        key=f"{key}-{current.id}-{comparison.id}",
                        venue_name=group["venue_name"],
                        venue_space=group["venue_space"],
                        first=current,
                        second=comparison,
                    ))
    return conflicts


def conflicting_event_ids(conflicts: Iterable[EventConflict]) -> set:
    ids = set()
    for conflict in conflicts:
        ids.add(conflict.first.id)
        ids.add(conflict.second.id)
    return ids
