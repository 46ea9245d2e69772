"""Injectable clock and UTC datetime helpers.

Every time-dependent decision (SLA buckets, reminder due dates, retry
windows) reads "now" from the clock registered on the app, so tests can pin
time with ``FixedClock``.

Usage
-----
    from eventhub.utils.clock import get_clock, parse_datetime

    now = get_clock().now()
    start = parse_datetime(event.start_at)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from flask import current_app, has_app_context


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock:
    """Clock frozen at a given instant; ``advance`` moves it forward."""

    def __init__(self, at: datetime | str) -> None:
        self._now = parse_datetime(at)
        if self._now is None:
            raise ValueError(f"Invalid clock instant: {at!r}")

    def now(self) -> datetime:
        return self._now

    def set(self, at: datetime | str) -> None:
        parsed = parse_datetime(at)
        if parsed is None:
            raise ValueError(f"Invalid clock instant: {at!r}")
        self._now = parsed

    def advance(self, **delta) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now


_system_clock = SystemClock()


def init_clock(app, clock=None) -> None:
    """Register *clock* (default: system clock) on the app."""
    app.extensions["clock"] = clock or _system_clock


def get_clock():
    if has_app_context():
        return current_app.extensions.get("clock", _system_clock)
    return _system_clock


# ── Conversions ──────────────────────────────────────────────────────────────

def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values (SQLite drops tzinfo) and normalise aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value) -> datetime | None:
    """Parse a datetime or ISO-8601 string into an aware UTC datetime.

    Returns None for missing or unparsable input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def to_epoch_ms(value: datetime) -> int:
    return int(as_utc(value).timestamp() * 1000)


def from_epoch_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def iso_z(value: datetime | None) -> str | None:
    """Render as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (millisecond precision, UTC)."""
    if value is None:
        return None
    value = as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
