"""
JSON webhook client shared by the ops alerting and the AI publish dispatch.

``post_json`` does not raise on timeouts, connection errors or non-2xx
answers; the outcome is always a ``GatewayResult``. Tests swap the HTTP
session with ``monkeypatch.setattr(webhook_gateway, "_session", MagicMock())``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import requests

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 10
_BODY_PREVIEW_CHARS = 500


@dataclass
class GatewayResult:
    ok: bool
    # None when no HTTP response arrived
    status_code: int | None
    data: dict | list | None
    body: str | None
    error: str | None
    duration_ms: int

    @classmethod
    def no_response(cls, error: str, duration_ms: int = 0) -> GatewayResult:
        return cls(False, None, None, error, error, duration_ms)

    @property
    def body_preview(self) -> str | None:
        return None if self.body is None else self.body[:_BODY_PREVIEW_CHARS]

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "status": self.status_code or 0,
            "body": self.body_preview,
            "error": self.error,
            "duration_ms": self.duration_ms,
        }


def _json_body(resp) -> dict | list | None:
    if "application/json" not in (resp.headers.get("content-type") or ""):
        return None
    try:
        return resp.json()
    except ValueError:
        return None


class WebhookGateway:

    def __init__(self, session: requests.Session | None = None) -> None:
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def post_json(self, url: str, payload: dict[str, Any], *,
                  bearer_token: str | None = None,
                  timeout: int = _DEFAULT_TIMEOUT) -> GatewayResult:
        headers = {"Content-Type": "application/json"}
        if bearer_token:
            headers["Authorization"] = f"Bearer {bearer_token}"

        started = time.perf_counter()
        try:
            resp = self.session.post(url, json=payload, headers=headers, timeout=timeout)
        except requests.Timeout:
            logger.warning("Webhook POST to %s timed out after %ss", url, timeout)
            return GatewayResult.no_response(f"Request timed out after {timeout}s",
                                             int(timeout * 1000))
        except requests.RequestException as exc:
            logger.warning("Webhook POST to %s failed: %s", url, exc)
            return GatewayResult.no_response(str(exc)[:_BODY_PREVIEW_CHARS])
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        text = resp.text or ""
        error = None
        if not resp.ok:
            error = f"HTTP {resp.status_code}: {text[:_BODY_PREVIEW_CHARS]}"
            logger.warning("Webhook POST to %s answered %d", url, resp.status_code)
        return GatewayResult(resp.ok, resp.status_code, _json_body(resp), text, error, elapsed_ms)


webhook_gateway = WebhookGateway()
