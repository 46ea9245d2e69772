"""
Typed views over the JSON ``payload`` column of notifications.

The column stays schemaless on disk; jobs parse it into these dataclasses at
read time so unknown or malformed fields surface as ``PayloadError`` instead
of silently propagating.

    payload = SlaWarningPayload.from_dict(notification.payload)
    payload.send_meta.retry_count
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from eventhub.utils.clock import iso_z, parse_datetime


class PayloadError(ValueError):
    """Raised when a stored payload cannot be read as the expected shape."""


SLA_SEVERITIES = ("warning", "overdue")


# ═════════════════════════════════════════════════════════════════════════════
# Send metadata
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class SendMeta:
    """Delivery bookkeeping shared by every notification type."""
    attempted_at: datetime | None = None
    retry_count: int = 0
    error: str | None = None
    retry_after: datetime | None = None
    message_id: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> SendMeta:
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise PayloadError("send_meta must be an object")
        try:
            retry_count = int(raw.get("retry_count") or 0)
        except (TypeError, ValueError) as exc:
            raise PayloadError(f"send_meta.retry_count is not an integer: {raw.get('retry_count')!r}") from exc
        return cls(
            attempted_at=parse_datetime(raw.get("attempted_at")),
            retry_count=max(retry_count, 0),
            error=raw.get("error"),
            retry_after=parse_datetime(raw.get("retry_after")),
            message_id=raw.get("message_id"),
        )

    def to_dict(self) -> dict:
        return {
            "attempted_at": iso_z(self.attempted_at),
            "retry_count": self.retry_count,
            "error": self.error,
            "retry_after": iso_z(self.retry_after),
            "message_id": self.message_id,
        }

    def attempt(self, *, at: datetime, error: str | None = None,
                message_id: str | None = None, retry_after: datetime | None = None) -> SendMeta:
        """Return the meta for a new delivery attempt (retry_count + 1)."""
        return replace(
            self,
            attempted_at=at,
            retry_count=self.retry_count + 1,
            error=error,
            message_id=message_id,
            retry_after=retry_after,
        )


def _require_event_id(raw: dict) -> str | None:
    event_id = raw.get("event_id")
    if event_id is None or event_id == "":
        return None
    return str(event_id)


# ═════════════════════════════════════════════════════════════════════════════
# Job-specific payloads
# ═════════════════════════════════════════════════════════════════════════════

@dataclass
class DraftReminderPayload:
    event_id: str | None
    remind_at: datetime | None
    send_meta: SendMeta = field(default_factory=SendMeta)

    @classmethod
    def from_dict(cls, raw: Any) -> DraftReminderPayload:
        if not isinstance(raw, dict):
            raise PayloadError("draft reminder payload must be an object")
        return cls(
            event_id=_require_event_id(raw),
            remind_at=parse_datetime(raw.get("remind_at")),
            send_meta=SendMeta.from_dict(raw.get("send_meta")),
        )

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "remind_at": iso_z(self.remind_at),
            "send_meta": self.send_meta.to_dict(),
        }


@dataclass
class SlaWarningPayload:
    event_id: str | None
    title: str = ""
    venue: str | None = None
    start_at: datetime | None = None
    severity: str = "warning"
    send_meta: SendMeta = field(default_factory=SendMeta)

    @classmethod
    def from_dict(cls, raw: Any) -> SlaWarningPayload:
        if not isinstance(raw, dict):
            raise PayloadError("SLA warning payload must be an object")
        severity = raw.get("severity") or "warning"
        if severity not in SLA_SEVERITIES:
            raise PayloadError(f"Unknown SLA severity: {severity!r}")
        return cls(
            event_id=_require_event_id(raw),
            title=raw.get("title") or "",
            venue=raw.get("venue"),
            start_at=parse_datetime(raw.get("start_at")),
            severity=severity,
            send_meta=SendMeta.from_dict(raw.get("send_meta")),
        )

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "title": self.title,
            "venue": self.venue,
            "start_at": iso_z(self.start_at),
            "severity": self.severity,
            "send_meta": self.send_meta.to_dict(),
        }
