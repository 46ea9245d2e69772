"""
Tests: planning analytics read model and the planning API.

Covers:
    1. Pure composition (status counts, conflicts, feed, calendar projection)
    2. DB-backed build from Event rows
    3. /api/v1/planning/* endpoints (role guard, JSON, ICS, cron monitoring, jobs)
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from eventhub.models import db
from eventhub.models.notification import Notification
from eventhub.models.scheduling import CronAlertLog
from eventhub.schemas.summaries import EventSummary
from eventhub.services.planning_analytics import (
    UPCOMING_LIMIT,
    build_calendar_events,
    build_planning_analytics,
    build_planning_feed,
    compose_planning_analytics,
)
from eventhub.services.resources import Area

NOW = datetime(2025, 5, 1, 0, 0, tzinfo=timezone.utc)


def _summary(event_id, start=None, end=None, *, status="approved", space=None, areas=None,
             reviewer_id=None):
    return EventSummary(
        id=event_id,
        title=f"Event {event_id}",
        status=status,
        start_at=start,
        end_at=end,
        venue_id=1,
        venue_name="Town Hall",
        venue_space=space,
        assigned_reviewer_id=reviewer_id,
        areas=list(areas or []),
    )


# ═══════════════════════════════════════════════════════════════════════════
#  Pure builders
# ═══════════════════════════════════════════════════════════════════════════

class TestPlanningFeed:
    def test_sorted_by_start_and_limited(self):
        events = [
            _summary("c", NOW + timedelta(days=3)),
            _summary("a", NOW + timedelta(days=1)),
            _summary("x", None),
            _summary("b", NOW + timedelta(days=2)),
        ]
        assert [e.id for e in build_planning_feed(events, limit=2)] == ["a", "b"]

    def test_past_events_kept(self):
        events = [_summary("old", NOW - timedelta(days=30))]
        assert [e.id for e in build_planning_feed(events)] == ["old"]


class TestCalendarEvents:
    def test_default_end_and_conflict_flag(self):
        events = [_summary("a", NOW), _summary("b", None)]
        [entry] = build_calendar_events(events, {"a"})
        assert entry.start_at == "2025-05-01T00:00:00.000Z"
        assert entry.end_at == "2025-05-01T02:00:00.000Z"
        assert entry.conflict is True

    def test_area_names_used_as_space(self):
        events = [_summary("a", NOW, areas=[Area(1, "Hall A"), Area(2, "Hall B")], space="Ignored")]
        [entry] = build_calendar_events(events)
        assert entry.venue_space == "Hall A, Hall B"


class TestComposeAnalytics:
    def test_full_model(self):
        events = [
            _summary("a", NOW + timedelta(hours=1), NOW + timedelta(hours=3), space="Bar"),
            _summary("b", NOW + timedelta(hours=2), NOW + timedelta(hours=4), space="Bar"),
            _summary("c", NOW + timedelta(days=1), status="submitted", space="Lounge"),
            _summary("d", NOW + timedelta(days=1), status="submitted", space="Garden",
                     reviewer_id=9),
            _summary("e", None, status="draft"),
        ]
        model = compose_planning_analytics(events, NOW, sla_warning_queued=2)

        assert model.total_events == 5
        assert model.status_counts == {"approved": 2, "submitted": 2, "draft": 1}
        assert [(c.first.id, c.second.id) for c in model.conflicts] == [("a", "b")]
        assert [e.id for e in model.awaiting_reviewer] == ["c"]
        assert [e.id for e in model.upcoming] == ["a", "b", "c", "d"]
        assert {c.id for c in model.calendar_events if c.conflict} == {"a", "b"}
        assert [s.reviewer_id for s in model.reviewer_sla] == [9]
        assert model.reviewer_sla[0].warning == 1

        data = model.to_dict()
        assert data["generatedAt"] == "2025-05-01T00:00:00.000Z"
        assert data["totalEvents"] == 5
        assert data["slaWarningQueued"] == 2
        assert set(data) >= {
            "statusCounts", "conflicts", "upcoming", "awaitingReviewer",
            "calendarEvents", "reviewerSla",
        }

    def test_upcoming_limit(self):
        events = [_summary(f"e{i:02d}", NOW + timedelta(hours=i)) for i in range(UPCOMING_LIMIT + 3)]
        assert len(compose_planning_analytics(events, NOW).upcoming) == UPCOMING_LIMIT


class TestBuildFromDatabase:
    def test_loads_rows_with_areas(self, make_venue, make_area, make_event, make_user):
        venue = make_venue("Town Hall")
        hall = make_area(venue, "Hall A")
        reviewer = make_user("reviewer", full_name="Rita Reviewer")
        make_event(title="One", status="submitted", venue=venue, areas=[hall], reviewer=reviewer,
                   start_at=NOW + timedelta(hours=1))
        make_event(title="Two", status="approved", venue=venue, areas=[hall],
                   start_at=NOW + timedelta(hours=2))
        db.session.add(Notification(type="sla_warning", user_id=reviewer.id, status="queued",
                                    payload={"event_id": "x"}))
        db.session.commit()

        model = build_planning_analytics()

        assert model.total_events == 2
        assert len(model.conflicts) == 1
        assert model.conflicts[0].venue_space == "Hall A"
        assert model.reviewer_sla[0].reviewer_name == "Rita Reviewer"
        assert model.sla_warning_queued == 1
        assert model.generated_at == NOW


# ═══════════════════════════════════════════════════════════════════════════
#  Planning API
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture()
def planner(make_user):
    return make_user("central_planner")


class TestPlanningApi:
    def test_requires_authentication(self, client):
        res = client.get("/api/v1/planning/analytics")
        assert res.status_code == 401

    @pytest.mark.parametrize("role", ["venue_manager", "reviewer", "executive"])
    def test_planner_only(self, client, auth, make_user, role):
        user = make_user(role)
        res = client.get("/api/v1/planning/analytics", headers=auth(user))
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_analytics_json(self, client, auth, planner, make_event, make_venue):
        venue = make_venue()
        make_event(status="approved", venue=venue, start_at=NOW + timedelta(days=2))
        res = client.get("/api/v1/planning/analytics", headers=auth(planner))
        assert res.status_code == 200
        body = res.get_json()
        assert body["totalEvents"] == 1
        assert body["statusCounts"] == {"approved": 1}

    def test_analytics_database_error(self, client, auth, planner):
        with patch("eventhub.blueprints.planning_bp.build_planning_analytics",
                   side_effect=OperationalError("SELECT", {}, Exception("db gone"))):
            res = client.get("/api/v1/planning/analytics", headers=auth(planner))
        assert res.status_code == 500
        assert res.get_json()["code"] == "ERR_DATABASE"

    def test_calendar_feed(self, client, auth, planner, make_event, make_venue):
        venue = make_venue()
        make_event(title="Quiz, Night", status="approved", venue=venue, venue_space="Bar",
                   start_at=NOW + timedelta(days=2))
        make_event(title="Karaoke", status="approved", venue=venue, venue_space="Bar",
                   start_at=NOW + timedelta(days=2, hours=1))
        res = client.get("/api/v1/planning/calendar.ics", headers=auth(planner))

        assert res.status_code == 200
        assert res.headers["Content-Type"].startswith("text/calendar")
        assert "planning-feed.ics" in res.headers["Content-Disposition"]
        text = res.get_data(as_text=True)
        assert text.startswith("BEGIN:VCALENDAR\r\n")
        assert text.count("BEGIN:VEVENT") == 2
        assert "SUMMARY:Conflict · Quiz\\, Night" in text
        assert "DTSTAMP:20250501T000000Z" in text

    def test_cron_monitoring(self, client, auth, planner, make_user, app):
        reviewer = make_user("reviewer")
        db.session.add(Notification(type="sla_warning", user_id=reviewer.id, status="failed",
                                    payload={"event_id": "e1", "title": "Jazz",
                                             "send_meta": {"error": "SMTP down", "retry_count": 2}}))
        db.session.add(Notification(type="draft_reminder", user_id=reviewer.id, status="queued",
                                    payload={"event_id": "e2"}))
        db.session.add(CronAlertLog(job="webhook-heartbeat", severity="success",
                                    message="Cron alert webhook heartbeat succeeded",
                                    created_at=NOW - timedelta(hours=1)))
        db.session.commit()

        res = client.get("/api/v1/planning/cron-monitoring", headers=auth(planner))

        assert res.status_code == 200
        body = res.get_json()
        assert body["queuedCount"] == 1
        assert body["failedCount"] == 1
        failed = [n for n in body["recentNotifications"] if n["status"] == "failed"][0]
        assert failed["lastError"] == "SMTP down"
        assert failed["retryCount"] == 2
        assert failed["reviewerEmail"] == reviewer.email
        assert body["heartbeat"]["status"] == "success"
        assert body["webhookConfigured"] is False

    def test_jobs_list_and_toggle(self, client, auth, planner):
        res = client.get("/api/v1/planning/jobs", headers=auth(planner))
        assert res.status_code == 200
        names = {j["job_name"] for j in res.get_json()["items"]}
        assert names == {
            "draft_reminders", "sla_reminders", "weekly_digest",
            "ai_publish_dispatch", "alert_heartbeat",
        }

        res = client.post("/api/v1/planning/jobs/weekly_digest/toggle",
                          json={"enabled": False}, headers=auth(planner))
        assert res.status_code == 200
        assert res.get_json()["status"] == "paused"

    def test_toggle_validation(self, client, auth, planner):
        res = client.post("/api/v1/planning/jobs/weekly_digest/toggle",
                          json={"enabled": "no"}, headers=auth(planner))
        assert res.status_code == 400
        res = client.post("/api/v1/planning/jobs/unknown/toggle",
                          json={"enabled": True}, headers=auth(planner))
        assert res.status_code == 404
