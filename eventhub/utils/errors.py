"""JSON error bodies for the API.

Every error response looks like::

    {"error": "<message>", "code": "ERR_...", "details": {...}}

with ``details`` only present when there is something to put in it.

    return api_error(E.VALIDATION_REQUIRED, "reviewer_id is required")

    except (NotFoundError, TransitionError) as exc:
        return error_response(exc)
"""

from __future__ import annotations

import logging

from flask import jsonify

from eventhub.core.exceptions import (
    EventHubError,
    NotFoundError,
    PermissionDenied,
    TransitionError,
    ValidationError,
    VersionSnapshotError,
)

logger = logging.getLogger(__name__)


class E:
    """Error codes, grouped by the HTTP status they default to."""

    # 400: missing or malformed request input
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    # 422: well-formed input that breaks a planning rule
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    UNAUTHORIZED = "ERR_UNAUTHORIZED"
    FORBIDDEN = "ERR_FORBIDDEN"
    NOT_FOUND = "ERR_NOT_FOUND"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"
    RATE_LIMITED = "ERR_RATE_LIMITED"

    DATABASE = "ERR_DATABASE"
    VERSION_SNAPSHOT = "ERR_VERSION_SNAPSHOT"
    CONFIGURATION = "ERR_CONFIGURATION"
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.METHOD_NOT_ALLOWED: 405,
    E.CONFLICT_STATE: 409,
    E.RATE_LIMITED: 429,
}

# first match wins
_CODE_BY_EXCEPTION: tuple[tuple[type[EventHubError], str], ...] = (
    (NotFoundError, E.NOT_FOUND),
    (ValidationError, E.VALIDATION_RULE),
    (PermissionDenied, E.FORBIDDEN),
    (TransitionError, E.CONFLICT_STATE),
    (VersionSnapshotError, E.VERSION_SNAPSHOT),
)


def status_for(code: str) -> int:
    """HTTP status for an error code; unknown and server-side codes give 500."""
    return _STATUS_BY_CODE.get(code, 500)


def api_error(code: str, message: str, *, status: int | None = None,
              details: dict | None = None):
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or status_for(code)


def error_response(exc: Exception):
    """Translate a service exception into ``api_error`` output."""
    for exc_type, code in _CODE_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return api_error(code, str(exc), details=exc.details)
    logger.error("Unmapped exception reached error_response: %r", exc)
    return api_error(E.INTERNAL, "Internal server error")
