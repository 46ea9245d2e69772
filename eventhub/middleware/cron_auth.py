"""
Bearer-token guard for the cron endpoints.

The external scheduler sends ``Authorization: Bearer <CRON_SECRET>``.

    500  CRON_SECRET is not configured
    401  header missing or token mismatch
"""

import functools
import hmac
import logging

from flask import current_app, request

from eventhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_cron_token(f):
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        secret = current_app.config.get("CRON_SECRET")
        if not secret:
            logger.error("CRON_SECRET is not configured; rejecting cron call to %s", request.path)
            return api_error(E.CONFIGURATION, "CRON_SECRET not configured")

        expected = f"Bearer {secret}"
        provided = request.headers.get("Authorization", "")
        if not hmac.compare_digest(provided.encode(), expected.encode()):
            logger.warning("Unauthorized cron call to %s", request.path)
            return api_error(E.UNAUTHORIZED, "Unauthorized")
        return f(*args, **kwargs)
    return decorated
