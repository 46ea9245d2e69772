"""
EventHub Planning Service
Events Blueprint.

Provides:
    - Draft create / edit (optionally submitting in the same call)
    - Lifecycle actions: submit, clone, reviewer assignment, decisions,
      publish / complete (with an optional debrief) / cancel
    - Debrief read and correction for completed events
    - Read endpoints: event detail, versions, audit trail
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from eventhub.auth import current_user, require_roles
from eventhub.blueprints import paginated
from eventhub.core.exceptions import (
    NotFoundError,
    PermissionDenied,
    TransitionError,
    ValidationError,
    VersionSnapshotError,
)
from eventhub.models.audit import AuditLog
from eventhub.models.event import EVENT_STATUSES, Event
from eventhub.services import event_lifecycle
from eventhub.services.debriefs import get_debrief
from eventhub.utils.errors import E, api_error, error_response

logger = logging.getLogger(__name__)

events_bp = Blueprint("events_bp", __name__, url_prefix="/api/v1/events")

_SERVICE_ERRORS = (
    NotFoundError,
    PermissionDenied,
    TransitionError,
    ValidationError,
    VersionSnapshotError,
)

_EDITOR_ROLES = ("venue_manager", "central_planner")
_ALL_ROLES = ("venue_manager", "reviewer", "central_planner", "executive")


def _wants_submit(data: dict) -> bool:
    return (data.get("intent") or "save") == "submit"


def _event_detail(event: Event) -> dict:
    d = event.to_dict()
    d["available_transitions"] = event_lifecycle.get_available_transitions(event)
    latest = event_lifecycle.latest_version(event.id)
    d["version"] = latest.version if latest else None
    return d


# ═══════════════════════════════════════════════════════════════════════════
#  READ
# ═══════════════════════════════════════════════════════════════════════════

@events_bp.route("", methods=["GET"])
@require_roles(*_ALL_ROLES)
def list_events():
    """List events, optionally filtered by ?status= and ?venue_id=."""
    q = Event.query
    status = request.args.get("status")
    if status:
        if status not in EVENT_STATUSES:
            return api_error(E.VALIDATION_INVALID, f"Invalid status. Must be one of: {sorted(EVENT_STATUSES)}")
        q = q.filter(Event.status == status)
    venue_id = request.args.get("venue_id", type=int)
    if venue_id is not None:
        q = q.filter(Event.venue_id == venue_id)

    page = paginated(q.order_by(Event.start_at.asc(), Event.created_at.asc()), Event.to_dict)
    return jsonify(page), 200


@events_bp.route("/<event_id>", methods=["GET"])
@require_roles(*_ALL_ROLES)
def get_event(event_id):
    try:
        event = event_lifecycle.get_event(event_id)
    except NotFoundError as exc:
        return error_response(exc)
    return jsonify(_event_detail(event)), 200


@events_bp.route("/<event_id>/versions", methods=["GET"])
@require_roles(*_ALL_ROLES)
def list_versions(event_id):
    try:
        versions = event_lifecycle.list_versions(event_id)
    except NotFoundError as exc:
        return error_response(exc)
    return jsonify({"items": [v.to_dict() for v in versions], "total": len(versions)}), 200


@events_bp.route("/<event_id>/audit", methods=["GET"])
@require_roles("reviewer", "central_planner")
def event_audit(event_id):
    q = (
        AuditLog.query
        .filter_by(entity_type="event", entity_id=event_id)
        .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
    )
    return jsonify(paginated(q, AuditLog.to_dict)), 200


# ═══════════════════════════════════════════════════════════════════════════
#  DRAFTS
# ═══════════════════════════════════════════════════════════════════════════

@events_bp.route("", methods=["POST"])
@require_roles(*_EDITOR_ROLES)
def create_event():
    """Create a draft. Body: {title, venue_id, start_at, end_at?, area_ids?, venue_space?, intent?}"""
    data = request.get_json(silent=True) or {}
    try:
        event = event_lifecycle.create_draft(current_user(), data, submit=_wants_submit(data))
    except _SERVICE_ERRORS as exc:
        return error_response(exc)
    return jsonify(_event_detail(event)), 201


@events_bp.route("/<event_id>", methods=["PATCH"])
@require_roles(*_EDITOR_ROLES)
def update_event(event_id):
    data = request.get_json(silent=True) or {}
    try:
        event = event_lifecycle.update_draft(current_user(), event_id, data,
                                             submit=_wants_submit(data))
    except _SERVICE_ERRORS as exc:
        return error_response(exc)
    return jsonify(_event_detail(event)), 200


# ═══════════════════════════════════════════════════════════════════════════
#  LIFECYCLE ACTIONS
# ═══════════════════════════════════════════════════════════════════════════

@events_bp.route("/<event_id>/submit", methods=["POST"])
@require_roles(*_EDITOR_ROLES)
def submit_event(event_id):
    try:
        result = event_lifecycle.submit_event(current_user(), event_id)
    except _SERVICE_ERRORS as exc:
        return error_response(exc)
    return jsonify(result), 200


@events_bp.route("/<event_id>/clone", methods=["POST"])
@require_roles("central_planner")
def clone_event(event_id):
    try:
        clone = event_lifecycle.clone_event(current_user(), event_id)
    except _SERVICE_ERRORS as exc:
        return error_response(exc)
    return jsonify(_event_detail(clone)), 201


@events_bp.route("/<event_id>/assign-reviewer", methods=["POST"])
@require_roles("reviewer", "central_planner")
def assign_reviewer(event_id):
    data = request.get_json(silent=True) or {}
    reviewer_id = data.get("reviewer_id")
    if reviewer_id is None:
        return api_error(E.VALIDATION_REQUIRED, "reviewer_id is required")
    try:
        event = event_lifecycle.assign_reviewer(current_user(), event_id, int(reviewer_id))
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "reviewer_id must be an integer")
    except _SERVICE_ERRORS as exc:
        return error_response(exc)
    return jsonify(_event_detail(event)), 200


@events_bp.route("/<event_id>/decision", methods=["POST"])
@require_roles("reviewer", "central_planner")
def record_decision(event_id):
    """Body: {decision: approved|needs_revisions|rejected, note?}"""
    data = request.get_json(silent=True) or {}
    try:
        result = event_lifecycle.record_decision(
            current_user(), event_id, data.get("decision") or "", data.get("note"),
        )
    except _SERVICE_ERRORS as exc:
        return error_response(exc)
    return jsonify(result), 200


@events_bp.route("/<event_id>/transition", methods=["POST"])
@require_roles(*_EDITOR_ROLES)
def transition_event(event_id):
    """Body: {action: publish|complete|cancel, debrief?: {...} (complete only)}"""
    data = request.get_json(silent=True) or {}
    action = (data.get("action") or "").strip()
    if not action:
        return api_error(E.VALIDATION_REQUIRED, "action is required")
    try:
        result = event_lifecycle.transition_event(current_user(), event_id, action,
                                                  debrief=data.get("debrief"))
    except _SERVICE_ERRORS as exc:
        return error_response(exc)
    return jsonify(result), 200


# ═══════════════════════════════════════════════════════════════════════════
#  DEBRIEF
# ═══════════════════════════════════════════════════════════════════════════

@events_bp.route("/<event_id>/debrief", methods=["GET"])
@require_roles(*_ALL_ROLES)
def get_event_debrief(event_id):
    try:
        event = event_lifecycle.get_event(event_id)
    except NotFoundError as exc:
        return error_response(exc)
    debrief = get_debrief(event.id)
    if debrief is None:
        return error_response(NotFoundError(resource="Debrief", resource_id=event.id))
    return jsonify(debrief.to_dict()), 200


@events_bp.route("/<event_id>/debrief", methods=["PUT"])
@require_roles(*_EDITOR_ROLES)
def put_event_debrief(event_id):
    """Replace the debrief of a completed event. Body: the debrief fields."""
    data = request.get_json(silent=True)
    if data is None:
        return api_error(E.VALIDATION_REQUIRED, "JSON body is required")
    try:
        result = event_lifecycle.update_debrief(current_user(), event_id, data)
    except _SERVICE_ERRORS as exc:
        return error_response(exc)
    return jsonify(result), 200
