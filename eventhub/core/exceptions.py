"""
Exceptions raised by the service layer.

Services never build HTTP responses. Blueprints catch these and hand them to
``eventhub.utils.errors.error_response``, which picks the status code from
the exception type and puts ``details`` in the response body.
"""


class EventHubError(Exception):
    """Base class; ``details`` is the structured part of the error body."""

    @property
    def details(self) -> dict:
        return {}


class NotFoundError(EventHubError):
    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        where = f" id={resource_id}" if resource_id is not None else ""
        super().__init__(f"{resource}{where} not found")


class ValidationError(EventHubError):
    """Business-rule validation failed.

    ``field_errors`` maps a field name to the message shown next to it in
    the planner form, e.g. ``{"title": "Title must be at least 3 characters"}``.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.field_errors = dict(details or {})
        super().__init__(message)

    @property
    def details(self) -> dict:
        return self.field_errors


class PermissionDenied(EventHubError):
    """The caller's role, venue or ownership does not cover the action."""

    def __init__(self, action: str, reason: str | None = None) -> None:
        self.action = action
        self.reason = reason
        super().__init__(f"Not allowed to {action}: {reason}" if reason
                         else f"Not allowed to {action}")


class TransitionError(EventHubError):
    """A lifecycle action is not available from the event's current status."""

    def __init__(self, event_id: str, action: str, current: str, reason: str | None = None):
        self.event_id = event_id
        self.action = action
        self.current_status = current
        self.reason = reason
        text = f"Cannot '{action}' event {event_id} while it is {current}"
        super().__init__(f"{text}: {reason}" if reason else text)

    @property
    def details(self) -> dict:
        return {"current_status": self.current_status, "action": self.action}


class VersionSnapshotError(EventHubError):
    """The ``EventVersion`` row for a lifecycle step could not be written.

    Create and clone delete the half-made event before raising; submit keeps
    its status change.
    """

    def __init__(self, event_id: str, action: str, cause: Exception | None = None) -> None:
        self.event_id = event_id
        self.action = action
        self.cause = cause
        text = f"Could not record version for event {event_id} during '{action}'"
        super().__init__(f"{text}: {cause}" if cause is not None else text)
