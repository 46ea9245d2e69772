"""
Lifecycle observers.

Side channels (audit trail, ...) subscribe to lifecycle steps through the
``LifecycleObserver`` interface. ``notify_observers`` isolates each observer:
a failing observer is logged and never affects the primary operation or the
other observers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from eventhub.models import db
from eventhub.models.audit import write_audit

logger = logging.getLogger(__name__)


@dataclass
class LifecycleEvent:
    """A completed lifecycle step, e.g. action="event.submitted"."""
    action: str
    event_id: str
    actor_id: int | None = None
    details: dict[str, Any] = field(default_factory=dict)


class LifecycleObserver:
    """Base observer; subclasses override ``on_event``."""

    name = "observer"

    def on_event(self, change: LifecycleEvent) -> None:
        raise NotImplementedError


class AuditObserver(LifecycleObserver):
    """Appends one ``audit_logs`` row per lifecycle step."""

    name = "audit"

    def on_event(self, change: LifecycleEvent) -> None:
        # Savepoint so a failed audit insert leaves the outer session usable.
        with db.session.begin_nested():
            write_audit(
                entity_type="event",
                entity_id=change.event_id,
                action=change.action,
                actor_user_id=change.actor_id,
                details=change.details,
            )
        db.session.commit()


_observers: list[LifecycleObserver] = [AuditObserver()]


def register_observer(observer: LifecycleObserver) -> None:
    _observers.append(observer)


def unregister_observer(observer: LifecycleObserver) -> None:
    if observer in _observers:
        _observers.remove(observer)


def get_observers() -> list[LifecycleObserver]:
    return list(_observers)


def notify_observers(change: LifecycleEvent) -> None:
    for observer in list(_observers):
        try:
            observer.on_event(change)
        except Exception:
            logger.exception(
                "Lifecycle observer %s failed for %s on event %s",
                observer.name, change.action, change.event_id,
            )
            db.session.rollback()
