"""
Tests: venue-space conflict detection and resource bucketing.

Covers:
    1. Bucket derivation for areas and named spaces
    2. Bound resolution (missing / backwards end → start + 2h)
    3. Overlap rules (closed intervals, zero-duration windows)
    4. Sweep result equals an O(n²) pairwise check on random input
"""

import random
from datetime import datetime, timedelta, timezone

import pytest

from eventhub.schemas.summaries import EventSummary
from eventhub.services.conflicts import (
    DEFAULT_EVENT_DURATION_MS,
    compute_event_bounds,
    conflicting_event_ids,
    detect_venue_conflicts,
    summarise_status_counts,
)
from eventhub.services.resources import (
    Area,
    Areas,
    NamedSpace,
    buckets,
    reserved_resource,
)

BASE = datetime(2025, 5, 10, 18, 0, tzinfo=timezone.utc)


def _at(hours=0, minutes=0):
    return BASE + timedelta(hours=hours, minutes=minutes)


def _summary(event_id, start, end=None, *, venue_id=1, venue_name="Town Hall",
             venue_space=None, areas=None, status="submitted"):
    return EventSummary(
        id=event_id,
        title=f"Event {event_id}",
        status=status,
        start_at=start,
        end_at=end,
        venue_id=venue_id,
        venue_name=venue_name,
        venue_space=venue_space,
        areas=list(areas or []),
    )


def _pairs(conflicts):
    return {(c.first.id, c.second.id) for c in conflicts}


# ═══════════════════════════════════════════════════════════════════════════
#  Resource bucketing
# ═══════════════════════════════════════════════════════════════════════════

class TestResourceBuckets:
    def test_areas_win_over_named_space(self):
        resource = reserved_resource(areas=[Area(3, "Hall A")], venue_space="Garden")
        assert isinstance(resource, Areas)

    def test_no_areas_gives_named_space(self):
        assert reserved_resource(areas=[], venue_space="Garden") == NamedSpace("Garden")
        assert reserved_resource(areas=None, venue_space="  ".strip()) == NamedSpace(None)

    def test_one_bucket_per_area(self):
        resource = Areas((Area(3, "Hall A"), Area(4, None)))
        result = buckets(resource, venue_id=1, venue_name="Town Hall")
        assert [b.key for b in result] == ["area::3", "area::4"]
        assert result[0].space_label == "Hall A"
        assert result[1].space_label == "Specific area"

    def test_named_space_bucket_key(self):
        [bucket] = buckets(NamedSpace("Bar"), venue_id=7, venue_name="Town Hall")
        assert bucket.key == "7::Bar"
        assert bucket.space_label == "Bar"
        assert bucket.venue_name == "Town Hall"

    def test_general_space_fallbacks(self):
        [bucket] = buckets(NamedSpace(None), venue_id=None, venue_name=None)
        assert bucket.key == "unknown::general"
        assert bucket.venue_name == "Unknown venue"
        assert bucket.space_label == "General space"

    def test_venue_name_used_when_id_missing(self):
        [bucket] = buckets(NamedSpace(None), venue_id=None, venue_name="Pier")
        assert bucket.key == "Pier::general"


# ═══════════════════════════════════════════════════════════════════════════
#  Bounds
# ═══════════════════════════════════════════════════════════════════════════

class TestEventBounds:
    def test_missing_start_is_unresolvable(self):
        bounds = compute_event_bounds(_summary("a", None))
        assert not bounds.resolvable

    def test_unparsable_start_is_unresolvable(self):
        assert not compute_event_bounds(_summary("a", "not a date")).resolvable

    def test_missing_end_defaults_to_two_hours(self):
        bounds = compute_event_bounds(_summary("a", _at()))
        assert bounds.end_ms - bounds.start_ms == DEFAULT_EVENT_DURATION_MS

    def test_end_before_start_defaults_to_two_hours(self):
        bounds = compute_event_bounds(_summary("a", _at(3), _at(1)))
        assert bounds.end_ms - bounds.start_ms == DEFAULT_EVENT_DURATION_MS

    def test_iso_strings_accepted(self):
        bounds = compute_event_bounds(_summary("a", "2025-05-10T18:00:00Z", "2025-05-10T19:30:00Z"))
        assert bounds.end_ms - bounds.start_ms == 90 * 60 * 1000


# ═══════════════════════════════════════════════════════════════════════════
#  Detection
# ═══════════════════════════════════════════════════════════════════════════

class TestDetectVenueConflicts:
    def test_overlapping_same_space(self):
        events = [
            _summary("a", _at(0), _at(2), venue_space="Bar"),
            _summary("b", _at(1), _at(3), venue_space="Bar"),
        ]
        [conflict] = detect_venue_conflicts(events)
        assert (conflict.first.id, conflict.second.id) == ("a", "b")
        assert conflict.key == "1::Bar-a-b"
        assert conflict.venue_name == "Town Hall"
        assert conflict.venue_space == "Bar"

    def test_different_spaces_do_not_conflict(self):
        events = [
            _summary("a", _at(0), _at(2), venue_space="Bar"),
            _summary("b", _at(1), _at(3), venue_space="Garden"),
        ]
        assert detect_venue_conflicts(events) == []

    def test_touching_endpoints_conflict(self):
        events = [
            _summary("a", _at(0), _at(2)),
            _summary("b", _at(2), _at(4)),
        ]
        assert _pairs(detect_venue_conflicts(events)) == {("a", "b")}

    def test_zero_duration_inside_window_conflicts(self):
        events = [
            _summary("a", _at(0), _at(4)),
            _summary("b", _at(2), _at(2)),
        ]
        assert _pairs(detect_venue_conflicts(events)) == {("a", "b")}

    def test_default_end_creates_conflict(self):
        # a has no end → [18:00, 20:00]; b starts at 19:30
        events = [
            _summary("a", _at(0), None),
            _summary("b", _at(1, 30), _at(3)),
        ]
        assert _pairs(detect_venue_conflicts(events)) == {("a", "b")}

    def test_default_end_no_conflict_after_two_hours(self):
        events = [
            _summary("a", _at(0), None),
            _summary("b", _at(2, 1), _at(3)),
        ]
        assert detect_venue_conflicts(events) == []

    def test_unscheduled_events_ignored(self):
        events = [
            _summary("a", None),
            _summary("b", _at(0), _at(1)),
        ]
        assert detect_venue_conflicts(events) == []

    def test_multi_area_event_conflicts_per_shared_area(self):
        hall, bar = Area(1, "Hall"), Area(2, "Bar")
        events = [
            _summary("a", _at(0), _at(2), areas=[hall, bar]),
            _summary("b", _at(1), _at(3), areas=[hall]),
            _summary("c", _at(1), _at(3), areas=[bar]),
        ]
        conflicts = detect_venue_conflicts(events)
        assert {c.key for c in conflicts} == {"area::1-a-b", "area::2-a-c"}
        assert conflicting_event_ids(conflicts) == {"a", "b", "c"}

    def test_same_area_different_venue_label(self):
        events = [
            _summary("a", _at(0), _at(2), venue_name=None, venue_space="Bar", venue_id=None),
            _summary("b", _at(1), _at(3), venue_name=None, venue_space="Bar", venue_id=None),
        ]
        [conflict] = detect_venue_conflicts(events)
        assert conflict.venue_name == "Unknown venue"

    def test_to_dict_shape(self):
        events = [
            _summary("a", _at(0), _at(2), venue_space="Bar"),
            _summary("b", _at(1), _at(3), venue_space="Bar"),
        ]
        data = detect_venue_conflicts(events)[0].to_dict()
        assert set(data) == {"key", "venueName", "venueSpace", "first", "second"}
        assert data["first"]["id"] == "a"


class TestStatusCounts:
    def test_counts_by_status(self):
        events = [
            _summary("a", None, status="draft"),
            _summary("b", None, status="draft"),
            _summary("c", None, status="approved"),
        ]
        assert summarise_status_counts(events) == {"draft": 2, "approved": 1}


# ═══════════════════════════════════════════════════════════════════════════
#  Sweep vs brute force
# ═══════════════════════════════════════════════════════════════════════════

def _brute_force(events):
    resolved = []
    for e in events:
        b = compute_event_bounds(e)
        if not b.resolvable:
            continue
        keys = [bk.key for bk in buckets(e.resource, venue_id=e.venue_id, venue_name=e.venue_name)]
        resolved.append((e, b, keys))

    found = set()
    for i, (e1, b1, k1) in enumerate(resolved):
        for e2, b2, k2 in resolved[i + 1:]:
            for key in set(k1) & set(k2):
                if b1.start_ms <= b2.end_ms and b2.start_ms <= b1.end_ms:
                    found.add((key, frozenset((e1.id, e2.id))))
    return found


def _sweep(events):
    found = set()
    for c in detect_venue_conflicts(events):
        bucket = c.key[: -(len(c.first.id) + len(c.second.id) + 2)]
        found.add((bucket, frozenset((c.first.id, c.second.id))))
    return found


@pytest.mark.parametrize("seed", range(25))
def test_sweep_matches_pairwise_check(seed):
    rng = random.Random(seed)
    areas = [Area(i, f"Area {i}") for i in range(1, 4)]
    spaces = [None, "Bar", "Garden"]
    events = []
    for n in range(rng.randint(0, 30)):
        start = None if rng.random() < 0.1 else _at(minutes=rng.randint(0, 24 * 60))
        end_choice = rng.random()
        if start is None or end_choice < 0.2:
            end = None
        elif end_choice < 0.3:
            end = start - timedelta(minutes=rng.randint(1, 60))
        elif end_choice < 0.4:
            end = start
        else:
            end = start + timedelta(minutes=rng.randint(1, 300))
        use_areas = rng.random() < 0.5
        events.append(_summary(
            f"e{n:02d}", start, end,
            venue_id=rng.choice([1, 2]),
            venue_space=None if use_areas else rng.choice(spaces),
            areas=rng.sample(areas, rng.randint(1, 3)) if use_areas else [],
        ))

    assert _sweep(events) == _brute_force(events)
    assert len(detect_venue_conflicts(events)) == len(_brute_force(events))
