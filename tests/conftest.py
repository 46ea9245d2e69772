"""
Shared pytest fixtures for the EventHub planning test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - clock: FixedClock pinned at 2025-05-01T00:00:00Z
    - make_user / make_venue / make_area / make_event: row factories
    - auth: X-User-Id header builder
"""

from datetime import datetime, timezone

import pytest

from eventhub import create_app
from eventhub.models import db as _db
from eventhub.utils.clock import FixedClock

NOW = datetime(2025, 5, 1, 0, 0, tzinfo=timezone.utc)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture(autouse=True)
def clock(app):
    """Pin "now" for every test; restore the previous clock afterwards."""
    previous = app.extensions.get("clock")
    fixed = FixedClock(NOW)
    app.extensions["clock"] = fixed
    yield fixed
    app.extensions["clock"] = previous


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_venue():
    from eventhub.models.venue import Venue

    def _make(name="Town Hall", **kw):
        venue = Venue(name=name, **kw)
        _db.session.add(venue)
        _db.session.commit()
        return venue
    return _make


@pytest.fixture()
def make_area():
    from eventhub.models.venue import VenueArea

    def _make(venue, name="Main Hall", capacity=None):
        area = VenueArea(venue_id=venue.id, name=name, capacity=capacity)
        _db.session.add(area)
        _db.session.commit()
        return area
    return _make


@pytest.fixture()
def make_user():
    from eventhub.models.user import User

    counter = {"n": 0}

    def _make(role="venue_manager", *, email=None, full_name=None, venue=None, **kw):
        counter["n"] += 1
        user = User(
            role=role,
            email=email if email is not None else f"{role}{counter['n']}@example.com",
            full_name=full_name or f"{role.replace('_', ' ').title()} {counter['n']}",
            venue_id=venue.id if venue is not None else None,
            created_at=NOW,
            **kw,
        )
        _db.session.add(user)
        _db.session.commit()
        return user
    return _make


@pytest.fixture()
def make_event():
    """Insert an Event row directly (no version / audit side effects)."""
    from eventhub.models.event import Event, EventArea

    def _make(*, title="Quiz Night", status="draft", venue=None, start_at=None,
              end_at=None, venue_space=None, areas=(), creator=None, reviewer=None):
        event = Event(
            title=title,
            status=status,
            venue_id=venue.id if venue is not None else None,
            start_at=start_at,
            end_at=end_at,
            venue_space=venue_space,
            created_by=creator.id if creator is not None else None,
            assigned_reviewer_id=reviewer.id if reviewer is not None else None,
            created_at=NOW,
            updated_at=NOW,
        )
        _db.session.add(event)
        _db.session.flush()
        for area in areas:
            _db.session.add(EventArea(event_id=event.id, venue_area_id=area.id))
        _db.session.commit()
        return event
    return _make


@pytest.fixture()
def auth():
    """Header dict identifying ``user`` to the API."""
    def _headers(user):
        return {"X-User-Id": str(user.id)}
    return _headers


