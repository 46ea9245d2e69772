"""
EventHub Planning Service
Identity & role checks.

Authentication happens upstream (SSO gateway / reverse proxy). The gateway
forwards the authenticated user's id in ``X-User-Id``; this module loads the
matching ``User`` row and offers a role decorator for the API blueprints.

Provides:
    - init_auth(app): before_request hook filling g.current_user
    - require_roles(*roles): 401 without a user, 403 for any other role
    - current_user(): the loaded User or None
"""

import functools
import logging

from flask import g, request

from eventhub.models import db
from eventhub.models.user import User
from eventhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


def _load_user_from_request():
    raw = request.headers.get(USER_HEADER, "").strip()
    if not raw:
        return None
    try:
        user_id = int(raw)
    except ValueError:
        logger.warning("Ignoring malformed %s header: %r", USER_HEADER, raw[:20])
        return None
    return db.session.get(User, user_id)


def init_auth(app):
    """Resolve the acting user for every API request."""

    @app.before_request
    def _load_current_user():
        g.current_user = None
        if request.path.startswith("/api/v1/"):
            g.current_user = _load_user_from_request()


def current_user():
    return getattr(g, "current_user", None)


def require_roles(*roles: str):
    """
    Decorator: require an authenticated user with one of ``roles``.

    Usage:
        @bp.route("/analytics")
        @require_roles("central_planner")
        def analytics(): ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = current_user()
            if user is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")
            if roles and user.role not in roles:
                logger.warning("Access denied: role '%s' on %s", user.role, request.path,
                               extra={"user_id": user.id})
                return api_error(E.FORBIDDEN, "You do not have access to this resource")
            return f(*args, **kwargs)
        return decorated
    return decorator
