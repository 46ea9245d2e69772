"""
Tests: reviewer SLA classification.

All boundaries are evaluated against now = 2025-05-01T00:00Z.
"""

from datetime import datetime, timedelta, timezone

import pytest

from eventhub.schemas.summaries import EventSummary
from eventhub.services.sla import (
    days_until,
    reminder_severity,
    sla_bucket,
    summarise_reviewer_sla,
)

NOW = datetime(2025, 5, 1, 0, 0, tzinfo=timezone.utc)


def _submitted(event_id, start, reviewer_id=1, *, status="submitted", name="Rita Reviewer"):
    return EventSummary(
        id=event_id,
        title=f"Event {event_id}",
        status=status,
        start_at=start,
        assigned_reviewer_id=reviewer_id,
        assigned_reviewer_name=name,
    )


class TestDaysUntil:
    def test_rounds_up_partial_days(self):
        assert days_until(NOW + timedelta(hours=1), NOW) == 1
        assert days_until(NOW + timedelta(days=2, minutes=1), NOW) == 3

    def test_past_start_is_negative(self):
        assert days_until(NOW - timedelta(days=1, hours=1), NOW) == -1

    def test_slightly_past_rounds_to_zero(self):
        assert days_until(NOW - timedelta(hours=1), NOW) == 0


class TestSlaBucket:
    @pytest.mark.parametrize("start,expected", [
        ("2025-05-04T00:00:00Z", "on_track"),   # exactly 3 days
        ("2025-05-03T23:59:00Z", "on_track"),   # rounds up to 3
        ("2025-05-03T00:00:00Z", "warning"),    # exactly 2 days
        ("2025-05-01T00:00:00Z", "warning"),    # starts now
        ("2025-04-30T12:00:00Z", "warning"),    # half a day past rounds to 0
        ("2025-04-30T00:00:00Z", "overdue"),    # a full day past
    ])
    def test_boundaries(self, start, expected):
        from eventhub.utils.clock import parse_datetime
        assert sla_bucket(parse_datetime(start), NOW) == expected


class TestReminderSeverity:
    @pytest.mark.parametrize("start,expected", [
        ("2025-05-03T00:00:00Z", None),
        ("2025-05-02T00:00:01Z", None),        # rounds up to 2 days
        ("2025-05-02T00:00:00Z", "warning"),   # exactly 1 day
        ("2025-05-01T06:00:00Z", "warning"),
        ("2025-04-30T12:00:00Z", "warning"),
        ("2025-04-29T23:00:00Z", "overdue"),
    ])
    def test_boundaries(self, start, expected):
        from eventhub.utils.clock import parse_datetime
        assert reminder_severity(parse_datetime(start), NOW) == expected


class TestSummariseReviewerSla:
    def test_only_submitted_with_reviewer_and_start(self):
        events = [
            _submitted("a", NOW + timedelta(days=5)),
            _submitted("b", NOW + timedelta(days=5), status="approved"),
            _submitted("c", NOW + timedelta(days=5), reviewer_id=None),
            _submitted("d", None),
        ]
        [snap] = summarise_reviewer_sla(events, NOW)
        assert snap.total_assigned == 1
        assert snap.on_track == 1

    def test_counts_and_next_due(self):
        events = [
            _submitted("a", NOW + timedelta(days=5)),
            _submitted("b", NOW + timedelta(days=1)),
            _submitted("c", NOW - timedelta(days=2)),
        ]
        [snap] = summarise_reviewer_sla(events, NOW)
        assert (snap.on_track, snap.warning, snap.overdue) == (1, 1, 1)
        assert snap.total_assigned == 3
        assert snap.next_due_at == "2025-04-29T00:00:00.000Z"

    def test_ordering_worst_first(self):
        events = [
            _submitted("a", NOW + timedelta(days=5), reviewer_id=1),
            _submitted("b", NOW + timedelta(days=1), reviewer_id=2),
            _submitted("c", NOW - timedelta(days=2), reviewer_id=3),
            _submitted("d", NOW + timedelta(days=9), reviewer_id=4),
            _submitted("e", NOW + timedelta(hours=30), reviewer_id=5),
        ]
        order = [s.reviewer_id for s in summarise_reviewer_sla(events, NOW)]
        # overdue first, then warnings by next due, then on-track by next due
        assert order == [3, 2, 5, 1, 4]

    def test_to_dict_keys(self):
        [snap] = summarise_reviewer_sla([_submitted("a", NOW + timedelta(days=5))], NOW)
        assert snap.to_dict() == {
            "reviewerId": 1,
            "reviewerName": "Rita Reviewer",
            "totalAssigned": 1,
            "onTrack": 1,
            "warning": 0,
            "overdue": 0,
            "nextDueAt": "2025-05-06T00:00:00.000Z",
        }
