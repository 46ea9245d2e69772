"""
Event Lifecycle Service

Manages event drafts and their status transitions with:
  - Transition validation (EVENT_TRANSITIONS)
  - Role / ownership checks
  - Append-only versioning (one EventVersion per successful step)
  - Compensation: a draft or clone whose first version cannot be written is deleted
  - Side channels (audit trail, emails) that never break the main flow

Usage:
    from eventhub.services.event_lifecycle import create_draft, submit_event

    event = create_draft(actor, {"title": "Quiz night", "venue_id": 1, "start_at": "..."})
    result = submit_event(actor, event.id)
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from eventhub.core.exceptions import (
    NotFoundError,
    PermissionDenied,
    TransitionError,
    ValidationError,
    VersionSnapshotError,
)
from eventhub.models import db
from eventhub.models.event import (
    DECISION_ACTIONS,
    EVENT_TRANSITIONS,
    Event,
    EventArea,
    EventVersion,
)
from eventhub.models.user import REVIEWER_ROLES, User
from eventhub.models.venue import Venue, VenueArea, VenueDefaultReviewer
from eventhub.services.debriefs import parse_debrief, upsert_debrief
from eventhub.services.email_service import EmailService
from eventhub.services.notification import NotificationService
from eventhub.services.observers import LifecycleEvent, notify_observers
from eventhub.utils.clock import get_clock, iso_z, parse_datetime

logger = logging.getLogger(__name__)

TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 150
DECISION_NOTE_MAX_LENGTH = 500
MAX_VERSION_ATTEMPTS = 3

_AUDIT_ACTIONS = {
    "submit": "event.submitted",
    "approve": "event.approved",
    "request_revisions": "event.needs_revisions",
    "reject": "event.rejected",
    "publish": "event.published",
    "complete": "event.completed",
    "cancel": "event.cancelled",
    "debrief": "event.debrief_updated",
}

_DECISION_LABELS = {
    "approved": "Approved",
    "needs_revisions": "Needs revisions",
    "rejected": "Rejected",
}


# ═════════════════════════════════════════════════════════════════════════════
# Lookups & permission helpers
# ═════════════════════════════════════════════════════════════════════════════

def get_event(event_id: str) -> Event:
    event = db.session.get(Event, event_id)
    if event is None:
        raise NotFoundError(resource="Event", resource_id=event_id)
    return event


def _is_owner_manager(actor: User, event: Event) -> bool:
    return actor.role == "venue_manager" and event.created_by == actor.id


def _require_planner_or_owner(actor: User, event: Event, action: str) -> None:
    if actor.role == "central_planner" or _is_owner_manager(actor, event):
        return
    raise PermissionDenied(action, "only the owning venue manager or a central planner may do this")


def _require_planner(actor: User, action: str) -> None:
    if actor.role != "central_planner":
        raise PermissionDenied(action, "central planners only")


def _event_url(event_id: str) -> str:
    base = (current_app.config.get("APP_URL") or "").rstrip("/")
    return f"{base}/events/{event_id}"


# ═════════════════════════════════════════════════════════════════════════════
# Transition rules
# ═════════════════════════════════════════════════════════════════════════════

def validate_transition(event: Event, action: str) -> dict:
    """
    Validate whether an action is valid for the current state.

    Returns:
        {"valid": bool, "from": str, "to": str|None, "reason": str|None}
    """
    rule = EVENT_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": event.status, "to": None,
                "reason": f"Unknown action: {action}"}

    if event.status not in rule["from"]:
        return {"valid": False, "from": event.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{event.status}'"}

    return {"valid": True, "from": event.status, "to": rule["to"], "reason": None}


def get_available_transitions(event: Event) -> list[str]:
    return [action for action, rule in EVENT_TRANSITIONS.items() if event.status in rule["from"]]


# ═════════════════════════════════════════════════════════════════════════════
# Versioning
# ═════════════════════════════════════════════════════════════════════════════

def latest_version(event_id: str) -> EventVersion | None:
    return (
        EventVersion.query
        .filter_by(event_id=event_id)
        .order_by(EventVersion.version.desc())
        .first()
    )


def list_versions(event_id: str) -> list[EventVersion]:
    get_event(event_id)
    return (
        EventVersion.query
        .filter_by(event_id=event_id)
        .order_by(EventVersion.version.asc())
        .all()
    )


def _insert_version(event_id: str, number: int, payload: dict, *,
                    submitted_at=None, submitted_by=None) -> EventVersion:
    with db.session.begin_nested():
        version = EventVersion(
            event_id=event_id,
            version=number,
            payload=payload,
            submitted_at=submitted_at,
            submitted_by=submitted_by,
            created_at=get_clock().now(),
        )
        db.session.add(version)
    return version


def append_version(
    event_id: str,
    build_payload: Callable[[dict], dict],
    *,
    action: str,
    submitted_at=None,
    submitted_by=None,
) -> EventVersion:
    """
    Append version ``max(existing) + 1`` for an event and commit it.

    ``build_payload`` receives the previous version's payload (``{}`` for the
    first version). A concurrent writer taking the same number collides on
    ``uq_event_version``; the number is then re-read and the insert retried.

    Raises:
        VersionSnapshotError: the row could not be written.
    """
    last_error: Exception | None = None
    for attempt in range(1, MAX_VERSION_ATTEMPTS + 1):
        current_max = (
            db.session.query(func.max(EventVersion.version))
            .filter(EventVersion.event_id == event_id)
            .scalar()
        ) or 0
        previous = latest_version(event_id) if current_max else None
        payload = build_payload(dict(previous.payload or {}) if previous else {})
        try:
            version = _insert_version(
                event_id, current_max + 1, payload,
                submitted_at=submitted_at, submitted_by=submitted_by,
            )
            db.session.commit()
            return version
        except IntegrityError as exc:
            last_error = exc
            logger.warning(
                "Version %d for event %s already taken (attempt %d/%d)",
                current_max + 1, event_id, attempt, MAX_VERSION_ATTEMPTS,
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise VersionSnapshotError(event_id, action, exc) from exc

    db.session.rollback()
    raise VersionSnapshotError(event_id, action, last_error)


def _delete_event(event_id: str) -> None:
    """Compensation for a create/clone whose first version failed."""
    db.session.rollback()
    try:
        event = db.session.get(Event, event_id)
        if event is not None:
            db.session.delete(event)
            db.session.commit()
            logger.warning("Deleted event %s after version snapshot failure", event_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Compensation delete failed for event %s", event_id)


# ═════════════════════════════════════════════════════════════════════════════
# Input validation
# ═════════════════════════════════════════════════════════════════════════════

def _parse_draft_input(data: dict[str, Any]) -> dict[str, Any]:
    errors: dict[str, str] = {}

    title = (data.get("title") or "").strip()
    if not title:
        errors["title"] = "Title is required"
    elif len(title) < TITLE_MIN_LENGTH:
        errors["title"] = f"Title must be at least {TITLE_MIN_LENGTH} characters"
    elif len(title) > TITLE_MAX_LENGTH:
        errors["title"] = f"Title should be under {TITLE_MAX_LENGTH} characters"

    venue_id = data.get("venue_id")
    try:
        venue_id = int(venue_id)
    except (TypeError, ValueError):
        errors["venue_id"] = "Select a venue before creating a draft."
        venue_id = None

    start_at = parse_datetime(data.get("start_at"))
    if start_at is None:
        errors["start_at"] = "Start date/time must be valid"

    end_raw = data.get("end_at")
    end_at = parse_datetime(end_raw) if end_raw else None
    if end_raw and end_at is None:
        errors["end_at"] = "End date/time must be valid"

    raw_area_ids = data.get("area_ids") or []
    if not isinstance(raw_area_ids, list):
        errors["area_ids"] = "area_ids must be a list"
        raw_area_ids = []
    area_ids: list[int] = []
    for raw in raw_area_ids:
        text = str(raw).strip()
        if not text:
            continue
        try:
            area_ids.append(int(text))
        except ValueError:
            errors["area_ids"] = f"Invalid area id: {raw!r}"

    if errors:
        raise ValidationError("Please fix the highlighted fields before submitting.", details=errors)

    venue_space = (data.get("venue_space") or "").strip() or None
    return {
        "title": title,
        "venue_id": venue_id,
        "start_at": start_at,
        "end_at": end_at,
        "area_ids": area_ids,
        "venue_space": venue_space,
    }


def _validate_areas(venue_id: int, area_ids: list[int]) -> None:
    if not area_ids:
        if VenueArea.query.filter_by(venue_id=venue_id).count() > 0:
            raise ValidationError(
                "Select at least one area before creating this draft.",
                details={"area_ids": "Select at least one area for this venue."},
            )
        return

    areas = VenueArea.query.filter(VenueArea.id.in_(area_ids)).all()
    if len(areas) != len(set(area_ids)):
        raise ValidationError(
            "One or more selected areas could not be found.",
            details={"area_ids": "unknown area"},
        )
    if any(area.venue_id != venue_id for area in areas):
        raise ValidationError(
            "Selected areas do not belong to the chosen venue.",
            details={"area_ids": "area from another venue"},
        )


def _check_venue_access(actor: User, venue_id: int) -> Venue:
    venue = db.session.get(Venue, venue_id)
    if venue is None:
        raise ValidationError("Select a venue before creating a draft.",
                              details={"venue_id": "unknown venue"})
    if actor.role == "venue_manager" and actor.venue_id and actor.venue_id != venue_id:
        raise PermissionDenied("create a draft", "venue managers can only use their assigned venue")
    return venue


def _draft_snapshot(fields: dict[str, Any]) -> dict[str, Any]:
    return {
        "title": fields["title"],
        "start_at": iso_z(fields["start_at"]),
        "end_at": iso_z(fields["end_at"]),
        "venue_id": fields["venue_id"],
        "venue_space": fields["venue_space"],
        "venue_area_ids": sorted(fields["area_ids"]),
    }


def _queue_reminder(event: Event, user_id: int) -> None:
    try:
        NotificationService.queue_draft_reminder(
            event_id=event.id,
            user_id=user_id,
            delay_hours=current_app.config.get("DRAFT_REMINDER_DELAY_HOURS", 48),
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to queue draft reminder for event %s", event.id)


# ═════════════════════════════════════════════════════════════════════════════
# Create / update draft
# ═════════════════════════════════════════════════════════════════════════════

def create_draft(actor: User, data: dict[str, Any], *, submit: bool = False) -> Event:
    """
    Create an event draft with version #1.

    Args:
        actor: Venue manager (own venue only) or central planner.
        data: {title, venue_id, start_at, end_at?, area_ids?, venue_space?}
        submit: Submit right away instead of queueing a draft reminder.

    Raises:
        PermissionDenied, ValidationError, VersionSnapshotError
    """
    if actor.role not in ("venue_manager", "central_planner"):
        raise PermissionDenied("create event drafts")

    fields = _parse_draft_input(data)
    _check_venue_access(actor, fields["venue_id"])
    _validate_areas(fields["venue_id"], fields["area_ids"])

    now = get_clock().now()
    event = Event(
        title=fields["title"],
        status="draft",
        start_at=fields["start_at"],
        end_at=fields["end_at"],
        venue_id=fields["venue_id"],
        venue_space=fields["venue_space"],
        created_by=actor.id,
        created_at=now,
        updated_at=now,
    )
    db.session.add(event)
    db.session.flush()
    for area_id in fields["area_ids"]:
        db.session.add(EventArea(event_id=event.id, venue_area_id=area_id))
    db.session.commit()
    event_id = event.id

    snapshot = _draft_snapshot(fields)
    try:
        append_version(event_id, lambda _prev: dict(snapshot), action="create")
    except VersionSnapshotError:
        _delete_event(event_id)
        raise

    notify_observers(LifecycleEvent(
        action="event.draft_created",
        event_id=event_id,
        actor_id=actor.id,
        details={**snapshot, "version": 1},
    ))
    logger.info("Draft %s created by user %s", event_id, actor.id)

    if submit:
        submit_event(actor, event_id)
    else:
        _queue_reminder(event, actor.id)
    return get_event(event_id)


def update_draft(actor: User, event_id: str, data: dict[str, Any], *, submit: bool = False) -> Event:
    """Edit a draft (or an event needing revisions) and append a version.

    If the version cannot be written, the previous fields and areas are restored.
    """
    event = get_event(event_id)
    if actor.role not in ("venue_manager", "central_planner"):
        raise PermissionDenied("update this event")
    _require_planner_or_owner(actor, event, "update this event")
    if event.status not in ("draft", "needs_revisions"):
        raise TransitionError(event.id, "update", event.status,
                              "Only drafts or events needing revisions can be updated.")

    fields = _parse_draft_input(data)
    _check_venue_access(actor, fields["venue_id"])
    _validate_areas(fields["venue_id"], fields["area_ids"])

    previous = {
        "title": event.title,
        "start_at": event.start_at,
        "end_at": event.end_at,
        "venue_id": event.venue_id,
        "venue_space": event.venue_space,
        "area_ids": sorted(event.area_ids),
    }

    def _apply(values: dict[str, Any]) -> None:
        event.title = values["title"]
        event.start_at = values["start_at"]
        event.end_at = values["end_at"]
        event.venue_id = values["venue_id"]
        event.venue_space = values["venue_space"]
        event.updated_at = get_clock().now()
        # Diff instead of replacing: the flush inserts before it deletes,
        # so re-adding a kept area would trip uq_event_area.
        wanted = set(values["area_ids"])
        for link in list(event.area_links):
            if link.venue_area_id not in wanted:
                event.area_links.remove(link)
        kept = {link.venue_area_id for link in event.area_links}
        for area_id in sorted(wanted - kept):
            event.area_links.append(EventArea(venue_area_id=area_id))

    _apply(fields)
    db.session.commit()

    snapshot = _draft_snapshot(fields)
    status = event.status
    try:
        append_version(event.id, lambda prev: {**prev, **snapshot, "status": status}, action="update")
    except VersionSnapshotError:
        event = get_event(event_id)
        _apply(previous)
        db.session.commit()
        raise

    notify_observers(LifecycleEvent(
        action="event.draft_updated",
        event_id=event.id,
        actor_id=actor.id,
        details={
            "previous": _draft_snapshot(previous),
            "updated": snapshot,
        },
    ))

    if submit:
        submit_event(actor, event.id)
    else:
        _queue_reminder(event, actor.id)
    return get_event(event_id)


# ═════════════════════════════════════════════════════════════════════════════
# Submission & reviewer assignment
# ═════════════════════════════════════════════════════════════════════════════

def _pick_default_reviewer(event: Event) -> int | None:
    if event.venue_id is not None:
        default = (
            VenueDefaultReviewer.query
            .filter_by(venue_id=event.venue_id)
            .order_by(VenueDefaultReviewer.created_at.asc(), VenueDefaultReviewer.id.asc())
            .first()
        )
        if default:
            return default.reviewer_id

    planner = (
        User.query
        .filter_by(role="central_planner")
        .order_by(User.created_at.asc(), User.id.asc())
        .first()
    )
    return planner.id if planner else None


def _send_assignment_email(event: Event, reviewer: User) -> None:
    if not reviewer.email:
        return
    try:
        log = EmailService.send_from_template(
            to_email=reviewer.email,
            to_name=reviewer.full_name,
            template_name="reviewer_assignment",
            context={
                "name": reviewer.full_name or "there",
                "title": event.title,
                "venue": event.venue.name if event.venue else "Venue TBC",
                "start_at": iso_z(event.start_at) or "Unscheduled",
                "event_url": _event_url(event.id),
            },
        )
        NotificationService.record_delivery(
            type="reviewer_assignment",
            user_id=reviewer.id,
            status="sent" if log.status == "sent" else "failed",
            payload={"event_id": event.id, "send_meta": {"message_id": log.message_id,
                                                         "error": log.error_message}},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to send assignment email event=%s reviewer=%s",
                         event.id, reviewer.id)


def submit_event(actor: User, event_id: str) -> dict:
    """
    Submit a draft (or revised event) for review.

    Assigns a reviewer when none is set (venue default reviewer, else the
    earliest central planner), moves the event to ``submitted`` and appends
    a version carrying the submission fields.

    Raises:
        NotFoundError, PermissionDenied, TransitionError, ValidationError,
        VersionSnapshotError (the event stays submitted)
    """
    event = get_event(event_id)
    _require_planner_or_owner(actor, event, "submit this draft")

    validation = validate_transition(event, "submit")
    if not validation["valid"]:
        raise TransitionError(event.id, "submit", event.status,
                              "Only drafts or revisions can be submitted.")

    area_ids = sorted(event.area_ids)
    if not area_ids and event.venue_id is not None:
        if VenueArea.query.filter_by(venue_id=event.venue_id).count() > 0:
            raise ValidationError(
                "Assign at least one venue area before submitting this draft.",
                details={"area_ids": "required for this venue"},
            )

    newly_assigned = None
    if event.assigned_reviewer_id is None:
        reviewer_id = _pick_default_reviewer(event)
        if reviewer_id is not None:
            event.assigned_reviewer_id = reviewer_id
            newly_assigned = reviewer_id

    now = get_clock().now()
    previous_status = event.status
    event.status = validation["to"]
    event.updated_at = now
    db.session.commit()

    if newly_assigned is not None:
        notify_observers(LifecycleEvent(
            action="event.reviewer_assigned",
            event_id=event.id,
            actor_id=actor.id,
            details={"reviewer_id": newly_assigned, "automatic": True},
        ))
        reviewer = db.session.get(User, newly_assigned)
        if reviewer is not None:
            _send_assignment_email(event, reviewer)

    submission = {
        "status": event.status,
        "title": event.title,
        "start_at": iso_z(event.start_at),
        "end_at": iso_z(event.end_at),
        "venue_id": event.venue_id,
        "venue_area_ids": area_ids,
        "assigned_reviewer_id": event.assigned_reviewer_id,
        "submitted_at": iso_z(now),
        "submitted_by": actor.id,
    }
    try:
        version = append_version(
            event.id, lambda prev: {**prev, **submission}, action="submit",
            submitted_at=now, submitted_by=actor.id,
        )
    except VersionSnapshotError:
        logger.error("Event %s submitted but version snapshot failed", event_id)
        raise

    NotificationService.cancel_pending_for_event(type="draft_reminder", event_id=event.id)
    db.session.commit()

    notify_observers(LifecycleEvent(
        action="event.submitted",
        event_id=event.id,
        actor_id=actor.id,
        details={
            "version": version.version,
            "submitted_at": submission["submitted_at"],
            "venue_area_ids": area_ids,
            "assigned_reviewer_id": event.assigned_reviewer_id,
        },
    ))
    logger.info("Event %s submitted (v%d) by user %s", event.id, version.version, actor.id)

    return {
        "event_id": event.id,
        "previous_status": previous_status,
        "new_status": event.status,
        "version": version.version,
        "assigned_reviewer_id": event.assigned_reviewer_id,
    }


def assign_reviewer(actor: User, event_id: str, reviewer_id: int) -> Event:
    """Manually (re)assign the reviewer of an event."""
    if actor.role not in REVIEWER_ROLES:
        raise PermissionDenied("assign reviewers")

    event = get_event(event_id)
    reviewer = db.session.get(User, reviewer_id)
    if reviewer is None or reviewer.role not in REVIEWER_ROLES:
        raise ValidationError("Select a reviewer to assign.", details={"reviewer_id": "not a reviewer"})
    if event.status in ("completed", "rejected", "cancelled"):
        raise TransitionError(event.id, "assign_reviewer", event.status, "event is closed")

    previous = event.assigned_reviewer_id
    event.assigned_reviewer_id = reviewer.id
    event.updated_at = get_clock().now()
    db.session.commit()

    notify_observers(LifecycleEvent(
        action="event.reviewer_assigned",
        event_id=event.id,
        actor_id=actor.id,
        details={"reviewer_id": reviewer.id, "previous_reviewer_id": previous},
    ))
    _send_assignment_email(event, reviewer)
    return event


# ═════════════════════════════════════════════════════════════════════════════
# Clone
# ═════════════════════════════════════════════════════════════════════════════

def clone_event(actor: User, event_id: str) -> Event:
    """
    Copy an event into a fresh draft (central planners only).

    Dates and reviewer are cleared; venue, space and areas are copied.
    The new draft is deleted again if its first version cannot be written.
    """
    _require_planner(actor, "clone events")
    source = get_event(event_id)
    source_latest = latest_version(source.id)
    source_payload = dict(source_latest.payload or {}) if source_latest else {}
    area_ids = sorted(source.area_ids)

    now = get_clock().now()
    clone = Event(
        title=f"{source.title} (Copy)"[:TITLE_MAX_LENGTH],
        status="draft",
        start_at=None,
        end_at=None,
        venue_id=source.venue_id,
        venue_space=source.venue_space,
        created_by=actor.id,
        assigned_reviewer_id=None,
        created_at=now,
        updated_at=now,
    )
    db.session.add(clone)
    db.session.flush()
    for area_id in area_ids:
        db.session.add(EventArea(event_id=clone.id, venue_area_id=area_id))
    db.session.commit()
    clone_id = clone.id

    payload = {
        **source_payload,
        "title": clone.title,
        "status": "draft",
        "start_at": None,
        "end_at": None,
        "assigned_reviewer_id": None,
        "cloned_from": source.id,
        "cloned_at": iso_z(now),
        "venue_area_ids": area_ids,
    }
    try:
        append_version(clone_id, lambda _prev: dict(payload), action="clone")
    except VersionSnapshotError:
        _delete_event(clone_id)
        raise

    notify_observers(LifecycleEvent(
        action="event.cloned",
        event_id=clone_id,
        actor_id=actor.id,
        details={"cloned_from": source.id, "venue_area_ids": area_ids},
    ))
    logger.info("Event %s cloned into %s by user %s", source.id, clone_id, actor.id)
    return get_event(clone_id)


# ═════════════════════════════════════════════════════════════════════════════
# Decisions & generic transitions
# ═════════════════════════════════════════════════════════════════════════════

def _apply_transition(actor: User, event: Event, action: str, *, details: dict | None = None) -> dict:
    validation = validate_transition(event, action)
    if not validation["valid"]:
        raise TransitionError(event.id, action, event.status, validation["reason"])

    now = get_clock().now()
    previous_status = event.status
    event.status = validation["to"]
    event.updated_at = now
    db.session.commit()

    extra = dict(details or {})
    fields = {
        "status": event.status,
        "changed_by": actor.id,
        "changed_at": iso_z(now),
        **extra,
    }
    version = append_version(event.id, lambda prev: {**prev, **fields}, action=action)

    if event.status in ("rejected", "cancelled", "completed"):
        for kind in ("draft_reminder", "sla_warning"):
            NotificationService.cancel_pending_for_event(type=kind, event_id=event.id)
        db.session.commit()

    notify_observers(LifecycleEvent(
        action=_AUDIT_ACTIONS[action],
        event_id=event.id,
        actor_id=actor.id,
        details={"from": previous_status, "to": event.status, "version": version.version, **extra},
    ))
    return {
        "event_id": event.id,
        "action": action,
        "previous_status": previous_status,
        "new_status": event.status,
        "version": version.version,
    }


def _send_decision_email(event: Event, decision: str, note: str | None) -> None:
    creator = db.session.get(User, event.created_by) if event.created_by else None
    if creator is None or not creator.email:
        return
    try:
        log = EmailService.send_from_template(
            to_email=creator.email,
            to_name=creator.full_name,
            template_name="reviewer_decision",
            context={
                "name": creator.full_name or "there",
                "title": event.title,
                "decision_label": _DECISION_LABELS[decision],
                "note": note or "No note provided.",
                "event_url": _event_url(event.id),
            },
        )
        NotificationService.record_delivery(
            type="reviewer_decision",
            user_id=creator.id,
            status="sent" if log.status == "sent" else "failed",
            payload={"event_id": event.id, "decision": decision,
                     "send_meta": {"message_id": log.message_id, "error": log.error_message}},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Failed to send decision email event=%s", event.id)


def record_decision(actor: User, event_id: str, decision: str, note: str | None = None) -> dict:
    """
    Record a reviewer decision: approved, needs_revisions or rejected.

    Reviewers may only decide on events assigned to them; central planners
    may decide on any event.
    """
    if actor.role not in REVIEWER_ROLES:
        raise PermissionDenied("record a decision")

    action = DECISION_ACTIONS.get(decision)
    if action is None:
        raise ValidationError("Please provide a valid decision before submitting.",
                              details={"decision": f"must be one of {sorted(DECISION_ACTIONS)}"})
    note = (note or "").strip() or None
    if note and len(note) > DECISION_NOTE_MAX_LENGTH:
        raise ValidationError("Decision note must be 500 characters or fewer.",
                              details={"note": "too long"})

    event = get_event(event_id)
    if actor.role == "reviewer" and event.assigned_reviewer_id != actor.id:
        raise PermissionDenied("record a decision",
                               "you are not assigned to this event")

    result = _apply_transition(actor, event, action, details={
        "decision": decision,
        "decision_note": note,
        "decided_by": actor.id,
        "decided_at": iso_z(get_clock().now()),
    })
    _send_decision_email(event, decision, note)
    return result


def transition_event(actor: User, event_id: str, action: str,
                     debrief: dict[str, Any] | None = None) -> dict:
    """
    Publish, complete or cancel an event.

    ``debrief`` is only accepted with ``complete``; it is validated before the
    status changes and stored in the same commit as the new status.
    """
    event = get_event(event_id)
    if debrief is not None and action != "complete":
        raise ValidationError("A debrief can only be sent when completing an event.",
                              details={"debrief": f"not accepted for '{action}'"})
    if action == "publish":
        _require_planner(actor, "publish events")
    elif action in ("complete", "cancel"):
        _require_planner_or_owner(actor, event, f"{action} this event")
    elif action in DECISION_ACTIONS.values() or action == "submit":
        raise ValidationError(f"Use the dedicated endpoint for '{action}'.",
                              details={"action": action})
    else:
        raise ValidationError(f"Unknown action: {action}", details={"action": action})

    if debrief is None:
        return _apply_transition(actor, event, action)

    fields = parse_debrief(debrief)
    validation = validate_transition(event, action)
    if not validation["valid"]:
        raise TransitionError(event.id, action, event.status, validation["reason"])
    saved = upsert_debrief(event.id, fields, submitted_by=actor.id)
    return _apply_transition(actor, event, action, details={"debrief": saved.to_dict()})


def update_debrief(actor: User, event_id: str, data: dict[str, Any]) -> dict:
    """
    Record or correct the debrief of a completed event.

    Appends a version carrying the new debrief and audits
    ``event.debrief_updated``; the status stays ``completed``.
    """
    event = get_event(event_id)
    _require_planner_or_owner(actor, event, "record a debrief")
    if event.status != "completed":
        raise TransitionError(event.id, "debrief", event.status,
                              "debriefs are recorded once the event is completed")

    fields = parse_debrief(data)
    saved = upsert_debrief(event.id, fields, submitted_by=actor.id).to_dict()
    event.updated_at = get_clock().now()
    db.session.commit()

    version = append_version(event.id, lambda prev: {**prev, "debrief": saved}, action="debrief")
    notify_observers(LifecycleEvent(
        action=_AUDIT_ACTIONS["debrief"],
        event_id=event.id,
        actor_id=actor.id,
        details={"version": version.version, "debrief": saved},
    ))
    return {"event_id": event.id, "version": version.version, "debrief": saved}
