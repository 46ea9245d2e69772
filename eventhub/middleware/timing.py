"""
Request timing and correlation ids.

Every response carries ``X-Request-ID`` (echoed when the caller sent one)
and ``X-Request-Duration-Ms``. Log records emitted while a request is being
served are stamped with ``request_id``, so the log lines of a batch job run
through ``/api/cron/<job>`` can be tied back to the cron call that started it.
"""

import logging
import time
import uuid

from flask import Flask, g, has_request_context, request

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SLOW_REQUEST_MS = 1000
_QUIET_PREFIXES = ("/api/v1/health/",)


class RequestIdFilter(logging.Filter):
    """Copy the active request's id onto each record that lacks one."""

    def filter(self, record):
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = g.get("request_id")
        return True


def _level_for(status: int, elapsed_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if elapsed_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    """Install the request hooks and stamp root handlers with request ids."""
    request_filter = RequestIdFilter()
    for handler in logging.getLogger().handlers:
        handler.addFilter(request_filter)

    @app.before_request
    def _open_request():
        g.request_started = time.perf_counter()
        g.request_id = (request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12])[:64]

    @app.after_request
    def _close_request(response):
        started = g.get("request_started")
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        response.headers[REQUEST_ID_HEADER] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"

        if request.path.startswith(_QUIET_PREFIXES):
            return response

        user = g.get("current_user")
        logger.log(
            _level_for(response.status_code, elapsed_ms),
            "%s %s -> %d (%.0fms)",
            request.method, request.path, response.status_code, elapsed_ms,
            extra={
                "method": request.method,
                "path": request.path,
                "status": response.status_code,
                "duration_ms": elapsed_ms,
                "remote_addr": request.remote_addr,
                "user_id": user.id if user is not None else None,
            },
        )
        return response
