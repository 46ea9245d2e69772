"""
ICS (RFC 5545) export of the planning calendar.

Text values are escaped (backslash, semicolon, comma, newline), content lines
longer than 75 octets are folded onto continuation lines that start with a
space, and lines are joined with CRLF. Folding counts UTF-8 octets and never
splits a multi-byte character.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from eventhub.services.planning_analytics import CalendarEvent
from eventhub.utils.clock import as_utc, parse_datetime

PRODID = "-//EventHub//Planning Feed//EN"
UID_DOMAIN = "eventhub"
CONFLICT_PREFIX = "Conflict · "
CONFLICT_WARNING = "Venue-space conflict detected: review before confirming."
MAX_LINE_OCTETS = 75


def format_ics_date(value) -> str:
    """``YYYYMMDDTHHMMSSZ`` in UTC, or "" when the value cannot be parsed."""
    parsed = value if isinstance(value, datetime) else parse_datetime(value)
    if parsed is None:
        return ""
    return as_utc(parsed).strftime("%Y%m%dT%H%M%SZ")


def escape_text(value: str | None) -> str:
    if not value:
        return ""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def unescape_text(value: str) -> str:
    """Inverse of ``escape_text`` as a conforming ICS reader applies it."""
    out = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value):
            nxt = value[i + 1]
            out.append("\n" if nxt in "nN" else nxt)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def fold_line(line: str) -> str:
    """Fold one content line at 75 octets (RFC 5545 section 3.1)."""
    if len(line.encode("utf-8")) <= MAX_LINE_OCTETS:
        return line

    chunks = []
    current = ""
    size = 0
    # continuation lines spend one octet on the leading space
    limit = MAX_LINE_OCTETS
    for ch in line:
        width = len(ch.encode("utf-8"))
        if size + width > limit:
            chunks.append(current)
            current, size, limit = "", 0, MAX_LINE_OCTETS - 1
        current += ch
        size += width
    chunks.append(current)
    return "\r\n ".join(chunks)


def unfold(ics: str) -> str:
    return ics.replace("\r\n ", "").replace("\r\n\t", "")


def _vevent(event: CalendarEvent, stamp: str) -> list[str]:
    start = format_ics_date(event.start_at)
    end = format_ics_date(event.end_at)
    if not start or not end:
        return []

    summary = f"{CONFLICT_PREFIX if event.conflict else ''}{event.title}"
    description = [f"Status: {event.status}"]
    if event.assigned_reviewer_name:
        description.append(f"Reviewer: {event.assigned_reviewer_name}")
    if event.conflict:
        description.append(CONFLICT_WARNING)
    location = " · ".join(part for part in (event.venue_name, event.venue_space) if part)

    return [
        "BEGIN:VEVENT",
        f"UID:{event.id}@{UID_DOMAIN}",
        f"DTSTAMP:{stamp}",
        f"DTSTART:{start}",
        f"DTEND:{end}",
        f"SUMMARY:{escape_text(summary)}",
        f"DESCRIPTION:{escape_text(chr(10).join(description))}",
        f"LOCATION:{escape_text(location)}",
        "END:VEVENT",
    ]


def build_ics(events: Iterable[CalendarEvent], now: datetime) -> str:
    stamp = format_ics_date(now)
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
    ]
    for event in events:
        lines.extend(_vevent(event, stamp))
    lines.extend(["END:VCALENDAR", ""])
    return "\r\n".join(fold_line(line) for line in lines)
