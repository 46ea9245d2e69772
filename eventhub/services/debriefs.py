"""
Post-event debriefs.

A debrief is captured when an event is completed (``transition_event`` with
``action="complete"``) and can be corrected afterwards. Every field is
optional; whatever is sent replaces the stored row as a whole, so leaving a
field out clears it.

    fields = parse_debrief({"attendance": 120, "wet_takings": "845.50"})
    debrief = upsert_debrief(event.id, fields, submitted_by=actor.id)
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from eventhub.core.exceptions import ValidationError
from eventhub.models import db
from eventhub.models.debrief import Debrief
from eventhub.utils.clock import get_clock

logger = logging.getLogger(__name__)

MAX_ATTENDANCE = 100_000
SHORT_TEXT_MAX = 1000
LONG_TEXT_MAX = 2000

_INTEGER_FIELDS = {
    "attendance": (0, MAX_ATTENDANCE),
    "baseline_attendance": (0, MAX_ATTENDANCE),
    "promo_effectiveness": (1, 5),
}
_MONEY_FIELDS = ("wet_takings", "food_takings", "baseline_wet_takings", "baseline_food_takings")
_TEXT_FIELDS = {
    "highlights": SHORT_TEXT_MAX,
    "issues": SHORT_TEXT_MAX,
    "guest_sentiment_notes": LONG_TEXT_MAX,
    "operational_notes": LONG_TEXT_MAX,
    "next_time_actions": LONG_TEXT_MAX,
}
DEBRIEF_FIELDS = (*_INTEGER_FIELDS, *_MONEY_FIELDS, *_TEXT_FIELDS, "would_book_again")


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_integer(value, low: int, high: int) -> int:
    if isinstance(value, bool):
        raise ValueError
    if isinstance(value, float) and not value.is_integer():
        raise ValueError
    number = int(str(value).strip()) if isinstance(value, str) else int(value)
    if not low <= number <= high:
        raise ValueError
    return number


def _parse_money(value) -> float:
    if isinstance(value, bool):
        raise ValueError
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError from None
    if not amount.is_finite() or amount < 0:
        raise ValueError
    return float(round(amount, 2))


def _parse_yes_no(value) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("yes", "no"):
        return value.strip().lower() == "yes"
    raise ValueError


def parse_debrief(data: Any) -> dict[str, Any]:
    """
    Validate a debrief body and return the column values.

    Raises:
        ValidationError: with one message per offending field in ``details``.
    """
    if not isinstance(data, dict):
        raise ValidationError("Debrief must be an object.", details={"debrief": "must be an object"})

    errors: dict[str, str] = {}
    for key in data:
        if key not in DEBRIEF_FIELDS:
            errors[key] = "Unknown debrief field"

    fields: dict[str, Any] = dict.fromkeys(DEBRIEF_FIELDS)
    for name, (low, high) in _INTEGER_FIELDS.items():
        value = data.get(name)
        if _blank(value):
            continue
        try:
            fields[name] = _parse_integer(value, low, high)
        except (TypeError, ValueError):
            errors[name] = f"Must be a whole number between {low} and {high}"

    for name in _MONEY_FIELDS:
        value = data.get(name)
        if _blank(value):
            continue
        try:
            fields[name] = _parse_money(value)
        except (TypeError, ValueError):
            errors[name] = "Must be an amount of 0 or more"

    for name, limit in _TEXT_FIELDS.items():
        value = data.get(name)
        if _blank(value):
            continue
        if not isinstance(value, str):
            errors[name] = "Must be text"
        elif len(value.strip()) > limit:
            errors[name] = f"Must be {limit} characters or fewer"
        else:
            fields[name] = value.strip()

    if not _blank(data.get("would_book_again")):
        try:
            fields["would_book_again"] = _parse_yes_no(data["would_book_again"])
        except ValueError:
            errors["would_book_again"] = "Must be true/false or yes/no"

    if errors:
        raise ValidationError("Please fix the highlighted debrief fields.", details=errors)
    return fields


def get_debrief(event_id: str) -> Debrief | None:
    return Debrief.query.filter_by(event_id=event_id).first()


def upsert_debrief(event_id: str, fields: dict[str, Any], *, submitted_by: int | None) -> Debrief:
    """Insert or replace the event's debrief. Flushed, not committed."""
    debrief = get_debrief(event_id)
    if debrief is None:
        debrief = Debrief(event_id=event_id)
        db.session.add(debrief)
    for name in DEBRIEF_FIELDS:
        setattr(debrief, name, fields.get(name))
    debrief.submitted_by = submitted_by
    debrief.submitted_at = get_clock().now()
    db.session.flush()
    logger.info("Debrief saved for event %s by user %s", event_id, submitted_by,
                extra={"event_id": event_id})
    return debrief
